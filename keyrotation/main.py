"""Entry-point for the serverless → FastAPI ASGI app.

This module constructs the FastAPI instance, wires global middleware,
registers the rotation routes, and exposes the `app` variable that Vercel
expects (detects `app` attribute).
"""

from __future__ import annotations

import logging
import os
import traceback
from contextvars import ContextVar
from time import perf_counter
from typing import Awaitable, Callable, Dict

from fastapi import FastAPI, Request, Response
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from keyrotation import APP_ENV, __version__
from keyrotation.utils.logger import configure_logging, logger

# Rate limiter (IP-based by default)
limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach request-level context vars for structured logging."""

    _request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:  # type: ignore[override]
        start = perf_counter()
        request_id = request.headers.get("X-Request-Id", os.urandom(4).hex())
        token = self._request_id_ctx.set(request_id)
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration_ms = (perf_counter() - start) * 1000
            logger.info(
                "request.complete",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": round(duration_ms, 2),
                    "request_id": request_id,
                },
            )
            self._request_id_ctx.reset(token)
        return response


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="API Key Rotation Service",
        version=__version__,
        docs_url="/docs" if APP_ENV != "production" else None,
        redoc_url=None,
        openapi_url="/openapi.json" if APP_ENV != "production" else None,
    )

    app.add_middleware(RequestContextMiddleware)
    # SlowAPI expects the limiter via app.state
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    from slowapi import _rate_limit_exceeded_handler  # noqa: WPS433  (runtime import)
    from slowapi.errors import RateLimitExceeded

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(Exception)
    async def log_unhandled_exceptions(request: Request, exc: Exception):
        """Log full traceback for any unhandled exception that would become a 500."""
        error_logger = logging.getLogger("uvicorn.error")
        error_logger.error(
            "UNHANDLED %s at %s %s\n%s",
            type(exc).__name__,
            request.method,
            request.url.path,
            "".join(traceback.format_tb(exc.__traceback__)),
        )
        raise exc

    @app.get("/")
    async def root() -> Dict[str, str]:  # pylint: disable=unused-variable
        return {"status": "ok"}

    from keyrotation.routers import rotation_routes  # noqa: WPS433

    app.include_router(rotation_routes.router)

    return app


# The object Vercel imports
app = create_app()
