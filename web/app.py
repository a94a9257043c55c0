"""
Comparables Engine API application.

Serves the saved-comparables endpoints used by HttpComparablesStore and
a stateless valuation endpoint. Deployment settings come from the
environment.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.persistence import get_comparables_repository
from utils.config import Config
from web.comparables_routes import router as comparables_router


logger = logging.getLogger(__name__)

# =============================================================================
# Deployment Settings
# =============================================================================

IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

# Comma-separated list; localhost only outside production
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    ALLOWED_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:8000"]

DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true" and not IS_PRODUCTION


def create_app(config: Config = None) -> FastAPI:
    """Build the API application around the comparables repository."""
    config = config or Config.load()

    app = FastAPI(
        title="Comparables Engine",
        description="Comparable selection, valuation and saved comparables API",
        version="1.0.0",
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None,
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=DEBUG_MODE,
    )

    # Liveness checks touch no storage
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        return {"status": "ok"}

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type", "X-User-Id"],
        )

    @app.on_event("startup")
    def init_repository():
        """Bind the repository singleton to the configured data file."""
        repo = get_comparables_repository(config.comparables_file)
        logger.info("Comparables repository ready (%d records)", repo.count())

    app.include_router(comparables_router)

    return app


app = create_app()
