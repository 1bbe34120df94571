"""Map incoming order payloads onto one canonical shape.

Storefront clients and old records use several names for the same field
(``pricePerSale`` vs ``price``, ``artistId`` vs ``submitterId``...). They are
resolved here, once, so nothing past the boundary has to guess.
"""

from __future__ import annotations

from typing import Any

from settlement.errors import ValidationError
from settlement.utils.fees import money, to_decimal

ITEM_TYPES = ("digital", "track", "vinyl", "merch", "giftcard")
PAYMENT_METHODS = ("stripe", "paypal", "free")

_PRICE_KEYS = ("unit_price", "pricePerSale", "price_per_sale", "price")
_PRODUCT_KEYS = ("product_id", "releaseId", "release_id", "productId", "id")
_TYPE_KEYS = ("type", "productType", "product_type")


def _first(d: dict, keys, default=None):
    for k in keys:
        v = d.get(k)
        if v is not None and v != "":
            return v
    return default


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _payee(item: dict) -> tuple[str | None, str | None]:
    """Resolve who gets paid for an item and in what capacity."""
    supplier = _first(item, ("supplier_id", "supplierId", "supplier"))
    if supplier and _text(item.get("type") or item.get("productType")) == "merch":
        return _text(supplier), "supplier"
    explicit = _first(item, ("payee_id", "payeeId"))
    if explicit:
        return _text(explicit), _text(_first(item, ("payee_type", "payeeType"), "artist")) or "artist"
    seller = _first(item, ("seller_id", "sellerId"))
    if seller:
        return _text(seller), "seller"
    artist = _first(item, ("artist_id", "artistId", "submitter_id", "submitterId"))
    if artist:
        return _text(artist), "artist"
    if supplier:
        return _text(supplier), "supplier"
    return None, None


def normalize_item(item: Any, index: int = 0) -> dict:
    if not isinstance(item, dict):
        raise ValidationError("Each item must be an object", index=index)

    item_type = _text(_first(item, _TYPE_KEYS, "digital")).lower()
    if item_type == "release":
        item_type = "digital"
    if item_type not in ITEM_TYPES:
        raise ValidationError(f"Unknown item type: {item_type}", index=index)

    raw_qty = item.get("quantity", 1)
    try:
        quantity = int(raw_qty)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be an integer", index=index)
    if isinstance(raw_qty, float) and raw_qty != quantity:
        raise ValidationError("Quantity must be an integer", index=index)
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", index=index)

    unit_price = to_decimal(_first(item, _PRICE_KEYS, 0))
    if unit_price < 0:
        raise ValidationError("Price must not be negative", index=index)

    payee_id, payee_type = _payee(item)
    product_id = _first(item, _PRODUCT_KEYS)

    return {
        "type": item_type,
        "product_id": _text(product_id) or None,
        "title": _text(_first(item, ("title", "name"), ""))[:200],
        "payee_id": payee_id,
        "payee_type": payee_type,
        "unit_price": money(unit_price),
        "quantity": quantity,
    }


def normalize_raw_order(payload: Any) -> dict:
    """Validate and canonicalise an order payload.

    Raises ValidationError on anything a settlement cannot be built from.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Order payload must be an object")

    customer = payload.get("customer") or {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    email = _text(_first(customer, ("email",)) or payload.get("email")).lower()
    first_name = _text(_first(customer, ("first_name", "firstName")))
    last_name = _text(_first(customer, ("last_name", "lastName")))
    if not email:
        raise ValidationError("Customer email is required")
    if not first_name or not last_name:
        raise ValidationError("Customer first and last name are required")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must contain at least one item")
    items = [normalize_item(it, i) for i, it in enumerate(raw_items)]

    address = payload.get("shipping_address") or payload.get("shipping") or {}
    if not isinstance(address, dict):
        address = {}
    shipping_address = {
        "address1": _text(address.get("address1") or address.get("line1")),
        "address2": _text(address.get("address2") or address.get("line2")),
        "city": _text(address.get("city")),
        "postcode": _text(address.get("postcode") or address.get("postal_code")),
        "country": _text(address.get("country")),
    }
    if any(it["type"] in ("vinyl", "merch") for it in items) and not shipping_address["address1"]:
        raise ValidationError("Shipping address is required for physical items")

    totals = payload.get("totals") or {}
    flat_shipping = payload.get("shipping") if not isinstance(payload.get("shipping"), dict) else None
    shipping_cost = money(_first(payload, ("shipping_cost", "shippingCost")) or totals.get("shipping") or flat_shipping or 0)
    if shipping_cost < 0:
        raise ValidationError("Shipping must not be negative")

    method = _text(_first(payload, ("payment_method", "paymentMethod"), "stripe")).lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Unsupported payment method: {method}")

    return {
        "customer": {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "user_id": _text(_first(customer, ("user_id", "userId")) or payload.get("user_id")) or None,
        },
        "shipping_address": shipping_address,
        "items": items,
        "shipping": shipping_cost,
        "payment_method": method,
        "payment_reference": _text(
            _first(payload, ("payment_reference", "paymentIntentId", "payment_intent_id", "paypalCaptureId", "paypalOrderId"))
        ) or None,
        "currency": _text(payload.get("currency")).upper() or None,
        "is_test": bool(payload.get("is_test") or payload.get("testMode")),
    }
