"""FastAPI application factory."""

import os
from datetime import datetime, timezone

from fastapi import FastAPI

from skill_router import __version__
from skill_router.api.middleware import register_exception_handlers
from skill_router.api.routers import skills
from skill_router.core.config import configure_logging, load_environment

# Load environment variables
load_environment()

configure_logging(os.getenv("LOG_LEVEL", "INFO"))


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Skill Router API",
        description="REST API for routing requests to skills in a curated taxonomy",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Register exception handlers
    register_exception_handlers(app)

    # Register routers with /api/v1 prefix
    app.include_router(skills.router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint.

        Returns:
            Health status
        """
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


# Create app instance for uvicorn
app = create_app()
