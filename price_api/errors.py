"""Error taxonomy shared by the validator, the gateway and the HTTP layer.

Every error knows its envelope ``code`` and the HTTP status it maps to, so
handlers never have to guess.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class ValidationError(AppError):
    """Malformed, oversized or duplicate symbol input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class UpstreamError(AppError):
    """Upstream answered with an invalid payload, or failed in an unclassified way."""

    code = "BINANCE_API_ERROR"
    status_code = 502


class ServiceUnavailable(AppError):
    """Upstream unreachable or timed out; the caller may retry later."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503
