"""
Shared-secret authentication for the Token Gateway.
"""

import hmac
from typing import Optional

from fastapi import Request

from shared.errors import AuthorizationError


class SharedSecretAuth:
    """Allows a request only when its ``authorization`` header equals the configured secret.

    The header value is compared as-is (no ``Bearer`` prefix handling) and in
    constant time. Used as a FastAPI dependency, so a denied request never
    reaches its route handler.
    """

    header_name = "authorization"

    def __init__(self, secret_token: str):
        self._secret = secret_token.encode("utf-8")

    def is_authorized(self, header_value: Optional[str]) -> bool:
        if not header_value:
            return False
        return hmac.compare_digest(header_value.encode("utf-8"), self._secret)

    async def __call__(self, request: Request) -> None:
        # Denials show up in the access log only
        if not self.is_authorized(request.headers.get(self.header_name)):
            raise AuthorizationError()
