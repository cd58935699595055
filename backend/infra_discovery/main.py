"""FastAPI application entry point for the infrastructure discovery service."""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from infra_discovery.api.routes import api_router
from infra_discovery.cloud_parsers.registry import ParserRegistry, build_default_registry
from infra_discovery.core.config import settings

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(registry: Optional[ParserRegistry] = None) -> FastAPI:
    """
    Build the application.

    Args:
        registry: Parser registry to serve; the default Azure registry is
            built when omitted. It is frozen before being stored on app.state.
    """
    configure_logging()

    app = FastAPI(title="Infrastructure Discovery API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.registry = (registry if registry is not None else build_default_registry()).freeze()
    logger.info(
        f"Discovery API ready ({settings.ENVIRONMENT}): "
        f"{len(app.state.registry)} parsers, root {settings.DISCOVERY_ROOT}"
    )

    app.include_router(api_router, prefix="/api")
    return app
