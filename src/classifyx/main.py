"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from classifyx.ml.engine import ClassificationEngine
    from classifyx.ml.labels import LabelSet

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classifyx.api.errors import register_error_handlers
from classifyx.api.routes import public_router, router
from classifyx.config import Settings, get_settings
from classifyx.errors import ModelContractViolation
from classifyx.ml.labels import load_labels
from classifyx.ml.model_manager import OnnxModelManager
from classifyx.ml.pool import InferenceEnginePool
from classifyx.service import ClassificationRequestHandler
from classifyx.storage import TempArtifactStore

logger = logging.getLogger(__name__)


def check_engine_contract(engines: Sequence[ClassificationEngine], labels: LabelSet) -> None:
    """Refuse engines whose declared output size differs from the label count."""
    for engine in engines:
        if engine.output_size is not None and engine.output_size != len(labels):
            raise ModelContractViolation(
                f"Model {engine.model_name} outputs {engine.output_size} scores but there are {len(labels)} labels"
            )


def init_pipeline(
    app: FastAPI,
    settings: Settings,
    labels: LabelSet,
    engines: Sequence[ClassificationEngine],
    *,
    model_source: str,
) -> InferenceEnginePool:
    """Wire the classification pipeline onto ``app.state``."""
    check_engine_contract(engines, labels)
    store = TempArtifactStore(settings.temp_dir)
    pool = InferenceEnginePool(engines, acquire_timeout=settings.pool_acquire_timeout)

    app.state.settings = settings
    app.state.labels = labels
    app.state.model_source = model_source
    app.state.engine_pool = pool
    app.state.request_handler = ClassificationRequestHandler(
        labels,
        store,
        pool,
        max_payload_bytes=settings.max_file_size,
    )
    return pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting ClassifyX (device=%s, pool_size=%s, labels=%s, temp_dir=%s)",
        settings.device,
        settings.pool_size,
        settings.labels_path,
        settings.temp_dir,
    )

    labels = load_labels(settings.labels_path)
    model_manager = OnnxModelManager(settings)
    engines = model_manager.create_engines(settings.pool_size)
    engine_pool = init_pipeline(app, settings, labels, engines, model_source=model_manager.model_source)

    logger.info("ClassifyX ready")
    yield

    logger.info("Shutting down ClassifyX")
    engine_pool.shutdown()
    logger.info("ClassifyX shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="ClassifyX",
        description="Image classification API backed by a pool of ONNX inference engines",
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

    register_error_handlers(application)
    application.include_router(public_router)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    uvicorn.run("classifyx.main:app", host=settings.host, port=settings.port)
