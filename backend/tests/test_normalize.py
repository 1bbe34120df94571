"""Order payload normalisation at the API boundary."""

from __future__ import annotations

from decimal import Decimal

import pytest

from settlement.errors import ValidationError
from settlement.utils.normalize import normalize_raw_order


def _payload(**overrides):
    body = {
        "customer": {"email": "A@B.com", "firstName": "Ana", "lastName": "Bee"},
        "items": [{"type": "digital", "releaseId": "r1", "artistId": "art-1", "pricePerSale": 8}],
    }
    body.update(overrides)
    return body


class TestLegacyFieldNames:
    def test_camel_case_release_item(self) -> None:
        data = normalize_raw_order(_payload())
        item = data["items"][0]
        assert item["product_id"] == "r1"
        assert item["payee_id"] == "art-1"
        assert item["payee_type"] == "artist"
        assert item["unit_price"] == Decimal("8.00")
        assert item["quantity"] == 1
        assert data["customer"] == {"email": "a@b.com", "first_name": "Ana", "last_name": "Bee", "user_id": None}

    def test_submitter_is_artist(self) -> None:
        data = normalize_raw_order(_payload(items=[{"productType": "track", "id": "t9", "submitterId": "sub-1", "price": "1.50"}]))
        item = data["items"][0]
        assert (item["type"], item["product_id"], item["payee_id"], item["unit_price"]) == ("track", "t9", "sub-1", Decimal("1.50"))

    def test_merch_pays_supplier(self) -> None:
        data = normalize_raw_order(_payload(
            items=[{"type": "merch", "productId": "tee", "supplierId": "sup-1", "artistId": "art-1", "price": 15}],
            shipping_address={"address1": "1 High St", "city": "Bristol"},
        ))
        assert data["items"][0]["payee_id"] == "sup-1"
        assert data["items"][0]["payee_type"] == "supplier"

    def test_crate_seller(self) -> None:
        data = normalize_raw_order(_payload(
            items=[{"type": "vinyl", "id": "lp-7", "sellerId": "crate-9", "price": 20}],
            shipping_address={"address1": "2 Low Rd"},
        ))
        assert data["items"][0]["payee_type"] == "seller"

    def test_payment_reference_aliases(self) -> None:
        assert normalize_raw_order(_payload(paymentIntentId="pi_1"))["payment_reference"] == "pi_1"
        data = normalize_raw_order(_payload(paymentMethod="paypal", paypalCaptureId="CAP-1"))
        assert (data["payment_method"], data["payment_reference"]) == ("paypal", "CAP-1")

    def test_flat_shipping_number(self) -> None:
        assert normalize_raw_order(_payload(shipping=3.5))["shipping"] == Decimal("3.50")


class TestValidation:
    @pytest.mark.parametrize("customer", [
        {"firstName": "Ana", "lastName": "Bee"},
        {"email": "a@b.com", "lastName": "Bee"},
        {"email": "a@b.com", "firstName": "Ana"},
    ])
    def test_customer_fields_required(self, customer) -> None:
        with pytest.raises(ValidationError):
            normalize_raw_order(_payload(customer=customer))

    def test_items_required(self) -> None:
        with pytest.raises(ValidationError):
            normalize_raw_order(_payload(items=[]))

    def test_physical_items_need_an_address(self) -> None:
        with pytest.raises(ValidationError, match="Shipping address"):
            normalize_raw_order(_payload(items=[{"type": "vinyl", "id": "lp", "artistId": "a", "price": 20}]))

    @pytest.mark.parametrize("qty", [0, -1, 1.5, "two"])
    def test_bad_quantity(self, qty) -> None:
        with pytest.raises(ValidationError):
            normalize_raw_order(_payload(items=[{"type": "digital", "id": "r", "price": 1, "quantity": qty}]))

    def test_negative_price(self) -> None:
        with pytest.raises(ValidationError):
            normalize_raw_order(_payload(items=[{"type": "digital", "id": "r", "price": -2}]))

    def test_unknown_payment_method(self) -> None:
        with pytest.raises(ValidationError):
            normalize_raw_order(_payload(paymentMethod="cheque"))

    def test_not_an_object(self) -> None:
        with pytest.raises(ValidationError):
            normalize_raw_order(["nope"])
