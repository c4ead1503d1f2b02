"""
FastAPI application entry point.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from snaptriage import __version__
from snaptriage.analyzers.vision_client import VisionClient
from snaptriage.api import analyze
from snaptriage.config import Settings
from snaptriage.middleware.cors import EmptyPreflightCORSMiddleware
from snaptriage.middleware.logging import RequestLoggingMiddleware
from snaptriage.services.analysis_store import AnalysisStore, AnalysisStoreError
from snaptriage.services.image_analysis import ImageAnalysisService
from snaptriage.services.image_fetcher import ImageFetcher
from snaptriage.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    vision_client: Optional[VisionClient] = None,
    store: Optional[AnalysisStore] = None,
    image_fetcher: Optional[ImageFetcher] = None,
) -> FastAPI:
    """
    Build the application.

    Settings are read once here and handed to each service; collaborators
    can be injected directly (tests pass fakes).
    """
    settings = settings or Settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="SnapTriage",
        description="Structured diagnostics for error screenshots",
        version=__version__
    )

    app.add_middleware(
        EmptyPreflightCORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    vision_client = vision_client or VisionClient(settings)
    store = store or AnalysisStore(settings.database_url)
    image_fetcher = image_fetcher or ImageFetcher(
        max_bytes=settings.max_image_bytes,
        timeout_seconds=settings.image_fetch_timeout_seconds,
    )

    app.state.settings = settings
    app.state.vision_client = vision_client
    app.state.analysis_store = store
    app.state.image_fetcher = image_fetcher
    app.state.analysis_service = ImageAnalysisService(
        vision_client,
        store,
        max_image_bytes=settings.max_image_bytes,
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {"status": "healthy", "version": __version__}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "SnapTriage API",
            "version": __version__,
            "docs": "/docs"
        }

    app.include_router(analyze.router)
    app.add_exception_handler(RequestValidationError, analyze.analyze_validation_handler)

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on application startup."""
        logger.info("Starting SnapTriage API")

        try:
            await store.initialize()
            logger.info("Analysis store initialized")
        except AnalysisStoreError as e:
            # Analyses are still served; they just won't reach history
            logger.error(f"Analysis store unavailable: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup services on application shutdown."""
        logger.info("Shutting down SnapTriage API")

        await store.close()
        await image_fetcher.close()
        await vision_client.close()
        logger.info("Services closed")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
