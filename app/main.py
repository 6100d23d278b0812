import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.auth.router import router as auth_router
from app.api.v1.materials.router import router as materials_router
from app.api.v1.payments.router import router as payments_router
from app.api.v1.schedules.router import router as schedules_router
from app.api.v1.stats.router import router as stats_router
from app.api.v1.students.router import router as students_router
from app.core.cache import TTLCache
from app.core.config import settings
from app.core.error_handlers import add_error_handlers
from app.core.logging import setup_logging
from app.integrations.storage import FileStorage
from app.integrations.telegram import TelegramNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting attendance API (telegram=%s, storage=%s)",
        app.state.notifier.enabled,
        app.state.storage.enabled,
    )
    yield
    await app.state.notifier.aclose()
    await app.state.storage.aclose()


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="Attendance Backend", lifespan=lifespan)

    # Shared collaborators; routes reach them through app.core.dependencies
    app.state.cache = TTLCache(settings.list_cache_ttl_seconds)
    app.state.notifier = TelegramNotifier.from_settings()
    app.state.storage = FileStorage.from_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_error_handlers(app)

    @app.get("/api/v1", tags=["health"])
    async def health() -> dict:
        return {"status": "ok", "service": "attendance-backend"}

    # Routers
    app.include_router(auth_router)
    app.include_router(schedules_router)
    app.include_router(students_router)
    app.include_router(attendance_router)
    app.include_router(payments_router)
    app.include_router(materials_router)
    app.include_router(stats_router)

    return app


app = create_app()
