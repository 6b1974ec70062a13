"""
Gateway exception hierarchy.

Every failure the gateway reports to a caller is a GatewayError carrying a
stable machine-readable code, an HTTP status for the single-case API, and
optional structured details.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ConfigurationError(GatewayError):
    """A provider is missing a credential or setting it needs."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="configuration_error", details=details)


class BadRequestError(GatewayError):
    """Malformed input at the API boundary."""

    status_code = 400

    def __init__(self, message: str = "bad_request", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="bad_request", details=details)

    @classmethod
    def from_validation(cls, exc: Any) -> "BadRequestError":
        """Build from a pydantic ValidationError, keeping only location + message."""
        errors = [
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        ]
        return cls(details={"errors": errors})


class PHINotAllowedError(GatewayError):
    status_code = 400

    def __init__(self):
        super().__init__("phi_not_allowed", code="phi_not_allowed")


class UnknownProviderError(GatewayError):
    status_code = 400

    def __init__(self, provider: str):
        super().__init__(
            "unknown_provider", code="unknown_provider", details={"provider": provider}
        )
        self.provider = provider


class ProviderDisabledError(GatewayError):
    status_code = 400

    def __init__(self, provider: str):
        super().__init__(
            "provider_disabled", code="provider_disabled", details={"provider": provider}
        )
        self.provider = provider


class UpstreamHTTPError(GatewayError):
    """
    A vendor call failed.

    ``status`` is the vendor's HTTP status, or None when the request never
    produced a response (connection refused, timeout). ``retry_after`` is the
    server's wait hint in seconds, when it sent one.
    """

    status_code = 502

    def __init__(
        self,
        provider: str,
        status: Optional[int],
        retry_after: Optional[float] = None,
        body: Optional[str] = None,
    ):
        message = f"{provider}_http_{status}" if status is not None else f"{provider}_transport_error"
        details: Dict[str, Any] = {"provider": provider, "status": status}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, code="upstream_http_error", details=details)
        self.provider = provider
        self.status = status
        self.retry_after = retry_after
        self.body = body


class UpstreamParseError(GatewayError):
    """A vendor answered, but not with the structured data we expect."""

    status_code = 502

    def __init__(self, provider: str, reason: str = ""):
        details: Dict[str, Any] = {"provider": provider}
        if reason:
            details["reason"] = reason
        super().__init__(f"{provider}_parse_error", code="upstream_parse_error", details=details)
        self.provider = provider
