"""FastAPI app factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ..generation import (
    GenerationConfig,
    GenerationCoordinator,
    ImageArchive,
    ModuleType,
    TaskEventBus,
    TaskStore,
)
from ..generation.coordinator import ProviderFactory
from ..generation.inputs import MODULE_INPUTS
from ..generation.models import utc_timestamp
from .config import WebConfig
from .models import ModuleInfo, envelope

logger = logging.getLogger(__name__)

# Modules whose payload accepts a referenceImages list
_MULTI_REFERENCE = {
    ModuleType.IMAGE_FUSION,
    ModuleType.OBJECT_REPLACE,
    ModuleType.GROUP_PHOTO,
    ModuleType.STANDARD,
}


def create_app(
    config: WebConfig | None = None,
    generation_config: GenerationConfig | None = None,
    provider_factory: ProviderFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Web settings. Loaded from the environment when omitted.
        generation_config: Provider and retry settings. Loaded from YAML and
            the environment when omitted.
        provider_factory: Overrides provider selection (tests use this).
    """
    config = config or WebConfig.load()
    generation_config = generation_config or GenerationConfig.load(config.generation_config_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """App lifespan: open the task store, recover, start the coordinator."""
        store = TaskStore(config.db_path)
        await store.open()

        recovered = await store.recover_interrupted()
        if recovered:
            logger.info("Recovered %d interrupted task(s)", len(recovered))

        archive: ImageArchive | None = None
        if generation_config.archive_images and store.is_open:
            archive = ImageArchive(store.db)
            await archive.init_schema()

        events = TaskEventBus()
        coordinator = GenerationCoordinator(
            store,
            generation_config,
            provider_factory=provider_factory,
            sinks=[archive] if archive else [],
            events=events,
        )

        app.state.store = store
        app.state.archive = archive
        app.state.events = events
        app.state.coordinator = coordinator

        yield

        await coordinator.shutdown()
        await store.close()

    app = FastAPI(
        title="Pictora",
        description="AI image generation with asynchronous task tracking",
        version="0.1.0",
        debug=config.debug,
        lifespan=lifespan,
    )

    # CORS
    origins = config.cors_origins or [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    from .generate.router import router as generate_router
    from .images.router import router as images_router
    from .tasks.router import router as tasks_router

    app.include_router(generate_router)
    app.include_router(tasks_router)
    app.include_router(images_router)

    # Error handlers
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return envelope(None, code=400, message=str(exc))

    @app.get("/api/health")
    async def health(request: Request):
        coordinator: GenerationCoordinator = request.app.state.coordinator
        return envelope(
            {
                "status": "ok",
                "activeTasks": coordinator.active_count,
                "timestamp": utc_timestamp(),
            }
        )

    @app.get("/api/modules")
    async def modules():
        return envelope(
            [
                ModuleInfo(
                    id=module.value, multiple_references=module in _MULTI_REFERENCE
                ).model_dump(by_alias=True)
                for module in MODULE_INPUTS
            ]
        )

    return app
