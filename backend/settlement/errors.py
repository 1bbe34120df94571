"""Error taxonomy for the settlement engine.

Every error carries the HTTP status the segments render it with, so the
services can raise without knowing about Flask.
"""

from __future__ import annotations


class SettlementError(Exception):
    status_code = 500
    code = "settlement_error"

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict:
        body = {"ok": False, "error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SettlementError):
    """Bad input or an operation not allowed in the current state. Never retried."""

    status_code = 400
    code = "validation_error"


class NotFoundError(SettlementError):
    status_code = 404
    code = "not_found"


class ConflictError(SettlementError):
    """Optimistic-update guard kept failing after the bounded retries."""

    status_code = 409
    code = "conflict"


class RailError(SettlementError):
    """A payment rail rejected the request or did not answer in time."""

    status_code = 502
    code = "rail_error"

    def __init__(self, message: str = "", *, rail: str = "", timeout: bool = False, **details):
        super().__init__(message, **details)
        self.rail = rail
        self.timeout = timeout


class ConfigurationError(SettlementError):
    status_code = 500
    code = "configuration_error"


def register_error_handlers(app) -> None:
    from flask import jsonify

    @app.errorhandler(SettlementError)
    def _settlement_error(e: SettlementError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status_code
