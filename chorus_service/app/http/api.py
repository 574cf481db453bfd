from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI

from chorus_service.app.http.routers.chat import router as chat_router
from chorus_service.app.http.routers.conversations import router as conversations_router
from chorus_service.app.http.routers.health import router as health_router
from chorus_service.app.http.routers.streams import router as streams_router
from chorus_service.app.http.routers.tools import router as tools_router
from chorus_service.core.logging import configure_logging, logger
from chorus_service.protocol.service.generation_service import GenerationService


def create_app(settings: Optional[Dict[str, Any]] = None, service: Optional[GenerationService] = None) -> FastAPI:
    """Create the FastAPI application. Pass `service` to inject a pre-built one (tests)."""
    if service is None:
        from chorus_service.core.config import load_settings
        from chorus_service.core.factory import ServiceFactory

        settings = settings if settings is not None else load_settings()
        configure_logging(settings)
        service = ServiceFactory(settings).get_generation_service()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("chorus_service starting")
        yield
        await app.state.gen_svc.shutdown()

    app = FastAPI(title="chorus_service", lifespan=lifespan)
    app.state.gen_svc = service

    v1_router = APIRouter(prefix="/api/v1")
    v1_router.include_router(health_router)
    v1_router.include_router(streams_router)
    v1_router.include_router(chat_router)
    v1_router.include_router(conversations_router)
    v1_router.include_router(tools_router)

    app.include_router(v1_router)
    return app
