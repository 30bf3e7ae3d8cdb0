"""
Shared error handling for the Token Data Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GatewayError(Exception):
    """Base exception for gateway errors."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthorizationError(GatewayError):
    """Caller's shared secret is missing or wrong."""

    status_code = 403

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class RateLimitError(GatewayError):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Too many requests, please try again later.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class UpstreamError(GatewayError):
    """The token data provider failed or returned an unusable payload.

    ``source`` names the lookup that failed ("price" or "metadata").
    """

    status_code = 502

    def __init__(self, source: str, message: str = "Upstream provider error",
                 details: Optional[Dict[str, Any]] = None):
        self.source = source
        super().__init__("UPSTREAM_ERROR", f"{source}: {message}", details)


class ConfigurationError(GatewayError):
    """Invalid startup configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)
