"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from animalid.api.routes import router, ws_router
from animalid.config import Settings, get_settings
from animalid.encyclopedia import EncyclopediaClient
from animalid.ml.image_classifier import MobileNetClassifier
from animalid.ml.inference import InferencePool
from animalid.ml.model_manager import OnnxModelManager
from animalid.ml.preprocessing import LetterboxPreprocessor
from animalid.ml.result_filter import ResultFilter

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient) -> None:
    """Build the shared services the routes depend on."""
    pool = InferencePool(settings)
    model_manager = OnnxModelManager(settings)

    app.state.settings = settings
    app.state.inference_pool = pool
    app.state.model_manager = model_manager
    app.state.preprocessor = LetterboxPreprocessor(settings)
    app.state.classifier = MobileNetClassifier(settings, model_manager, pool)
    app.state.result_filter = ResultFilter.from_settings(settings)
    app.state.encyclopedia = EncyclopediaClient(http_client, settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting AnimalID (device=%s, max_concurrent=%s, model=v%s alpha=%s, languages=%s/%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_version,
        settings.model_alpha,
        settings.primary_language,
        settings.secondary_language,
    )

    async with httpx.AsyncClient(timeout=settings.http_timeout) as http_client:
        init_app_state(app, settings, http_client)
        logger.info("AnimalID ready")
        yield

        logger.info("Shutting down AnimalID")
        app.state.inference_pool.shutdown()
        app.state.model_manager.shutdown()
    logger.info("AnimalID shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="AnimalID",
        description="Identify animals from photos or names and summarize them from Wikipedia",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    application.include_router(ws_router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("animalid.main:app", host=settings.host, port=settings.port)
