"""FastAPI application wiring for the deployment message router.

This module bootstraps the HTTP API:

- Configures logging, Prometheus metrics and rate limiting.
- Builds the repositories, token manager and platform handlers once and
  keeps them on ``app.state.services``.
- Exposes the Slack and GoHighLevel webhook routes plus health and version
  endpoints.
"""

from __future__ import annotations

import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.rate_limit import limiter
from .routers import webhooks
from .services import Services, build_services_from_env

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    load_dotenv()

    app = FastAPI(title="botdeploy", version=__version__)
    init_logging(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.state.services = services or build_services_from_env()
    app.include_router(webhooks.router)

    # Expose Prometheus metrics
    Instrumentator().instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )

    @app.get("/api/health")
    async def health():
        """Liveness and readiness check with a minimal JSON body."""
        return {"status": "ok"}

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    logger.info("botdeploy %s ready", __version__)
    return app


app = create_app()
