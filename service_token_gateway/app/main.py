"""
Token Gateway service: exposes Moralis token data behind a shared secret.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse

from shared.base_service import BaseService
from shared.config import TokenGatewayConfig, get_config
from service_token_gateway.app.adapters import MoralisClient
from service_token_gateway.app.domain import SharedSecretAuth
from service_token_gateway.app.ratelimit import RateLimitMiddleware, create_rate_limiter
from service_token_gateway.app.token_data import TokenDataError, TokenDataService


GREETING = "Hello, API!"
TOKEN_DATA_ERROR_MESSAGE = "Error retrieving token data"
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class TokenGatewayService(BaseService):
    """Token Gateway service implementation."""

    def __init__(self, config: Optional[TokenGatewayConfig] = None):
        super().__init__("gateway", config if config is not None else get_config())

        self.moralis_client = MoralisClient(
            self.config.moralis_server_url,
            self.config.moralis_app_id,
            chain_id=self.config.chain_id,
            timeout=self.config.upstream_timeout_seconds,
            metrics=self.metrics,
        )
        self.token_data_service = TokenDataService(self.moralis_client)
        self.auth_gate = SharedSecretAuth(self.config.secret_token)
        self.rate_limiter = create_rate_limiter(self.config)

        self._setup_gateway_routes()
        self._setup_rate_limiting()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_rate_limiting(self):
        """Install the limiter outermost so every route, including the open ones, is counted."""
        self.app.add_middleware(
            RateLimitMiddleware,
            rate_limiter=self.rate_limiter,
            trust_proxy_headers=self.config.trust_proxy_headers,
            metrics=self.metrics,
        )

    def _setup_gateway_routes(self):
        """Set up the greeting and token data routes."""

        @self.app.get("/", response_class=PlainTextResponse)
        async def root():
            """Open greeting route."""
            return GREETING

        api = APIRouter(prefix="/api", dependencies=[Depends(self.auth_gate)])

        @api.get("/tokenData/{token_address}")
        async def get_token_data(token_address: str):
            """Price and metadata for a token on the configured chain."""
            try:
                data = await self.token_data_service.get_token_data(token_address)
            except Exception as e:
                self.logger.error(
                    "Token data handler failed",
                    token_address=token_address,
                    error=str(e),
                    exc_info=e
                )
                return PlainTextResponse(TOKEN_DATA_ERROR_MESSAGE, status_code=500)

            if isinstance(data, TokenDataError):
                return JSONResponse(status_code=500, content=data.model_dump())
            return data.model_dump()

        # Unknown paths under /api are authenticated before they 404
        @api.api_route("", methods=ALL_METHODS, include_in_schema=False)
        @api.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
        async def api_not_found():
            raise HTTPException(status_code=404, detail="Not Found")

        self.app.include_router(api)

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {
            f"rate_limiter_{self.rate_limiter.backend}": await self.rate_limiter.check_health()
        }

    async def on_shutdown(self):
        await self.rate_limiter.close()
        await super().on_shutdown()


def create_app(config: Optional[TokenGatewayConfig] = None):
    """Create FastAPI application."""
    service = TokenGatewayService(config)
    return service.app


def main():
    service = TokenGatewayService()
    service.run()


if __name__ == "__main__":
    main()
