"""
Base service class for Token Data Gateway services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from contextlib import asynccontextmanager
from typing import Dict, Any
import time
import os

from shared.config import BaseConfig
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import GatewayError


# Helmet's default header set, minus the ones that only matter for HTML apps.
SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
}

HSTS_HEADER = "max-age=15552000; includeSubDomains"

FALLBACK_ERROR_MESSAGE = "Something broke!"


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: BaseConfig):
        self.service_name = service_name
        self.config = config
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.on_startup()
            try:
                yield
            finally:
                await self.on_shutdown()

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Token Data Gateway - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    async def on_startup(self):
        """Startup hook. Override in subclasses."""
        self.logger.info("Service starting", port=self.config.port)

    async def on_shutdown(self):
        """Shutdown hook. Override in subclasses."""
        self.logger.info("Service stopping")

    def _setup_middleware(self):
        """Set up middleware."""
        @self.app.middleware("http")
        async def add_security_headers(request: Request, call_next):
            # Unhandled route errors get their 500 inside the outer layers
            try:
                response = await call_next(request)
            except Exception as exc:
                response = self._fallback_response(request, exc)
            self._apply_security_headers(response)
            return response

        # Registered last so it wraps the security headers middleware
        @self.app.middleware("http")
        async def log_request(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

            try:
                response = await call_next(request)
            except Exception:
                duration = time.time() - start_time
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=self._endpoint_label(request),
                    status_code=500,
                    duration=duration
                )
                self.logger.error(
                    "HTTP request failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round(duration * 1000, 2)
                )
                clear_context()
                raise

            duration = time.time() - start_time

            self.metrics.record_http_request(
                method=request.method,
                endpoint=self._endpoint_label(request),
                status_code=response.status_code,
                duration=duration
            )

            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
                content_length=response.headers.get("content-length")
            )

            response.headers["X-Request-ID"] = request_id
            clear_context()
            return response

    def _apply_security_headers(self, response: Response) -> None:
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        if self.config.env != "local":
            response.headers.setdefault("Strict-Transport-Security", HSTS_HEADER)

    def _fallback_response(self, request: Request, exc: Exception) -> Response:
        """Generic 500 for anything a route did not handle itself."""
        self.logger.error(
            "Unhandled exception",
            error=str(exc),
            path=request.url.path,
            exc_info=exc
        )
        self.metrics.record_error("UNHANDLED_EXCEPTION")
        return PlainTextResponse(FALLBACK_ERROR_MESSAGE, status_code=500)

    @staticmethod
    def _endpoint_label(request: Request) -> str:
        """Use the route template so path parameters do not explode label cardinality."""
        route = request.scope.get("route")
        path = getattr(route, "path", None)
        return path or "unmatched"

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                dependencies = await self._check_dependencies()
                status = "ok" if all(state == "ok" for state in dependencies.values()) else "degraded"

                self.metrics.record_health_check(status)

                return {
                    "service": self.service_name,
                    "status": status,
                    "uptime_seconds": self._get_uptime(),
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={
                        "service": self.service_name,
                        "status": "error",
                        "error": str(e)
                    }
                )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            from prometheus_client import CONTENT_TYPE_LATEST
            return Response(
                content=self.metrics.export(),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(GatewayError)
        async def gateway_error_handler(request: Request, exc: GatewayError):
            """Answer known gateway errors with their own status code."""
            self.logger.debug(
                "Gateway error",
                code=exc.code,
                message=exc.message,
                path=request.url.path
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(Exception)
        async def fallback_exception_handler(request: Request, exc: Exception):
            """Errors raised outside the middleware stack, e.g. by the rate limiter."""
            response = self._fallback_response(request, exc)
            self._apply_security_headers(response)
            return response

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
