"""
FastAPI сервер хранения результатов perfbudget.

Хранилище создаётся в lifespan и живёт в app.state.service.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from backend.config import Settings, get_settings
from backend.errors import install_error_handlers
from backend.routers import health, projects
from perfbudget import __version__
from perfbudget.core.redis_store import RedisStorageMethod
from perfbudget.core.service import StorageService
from perfbudget.core.sql_store import SqlStorageMethod
from perfbudget.core.storage import StorageMethod

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_storage(settings: Settings) -> StorageMethod:
    """Выбрать backend хранилища по настройкам."""
    if settings.storage_method == "redis":
        return RedisStorageMethod(settings.redis_url, prefix=settings.redis_prefix)
    return SqlStorageMethod(settings.sql_database_path)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle: startup и shutdown."""
        # === STARTUP ===
        storage = build_storage(settings)
        await storage.initialize()
        app.state.service = StorageService(storage)
        logger.info(f"🚀 Storage ready: {settings.storage_method}")

        yield

        # === SHUTDOWN ===
        app.state.service = None
        await storage.close()
        logger.info("Storage closed")

    app = FastAPI(
        title="perfbudget server",
        version=__version__,
        description="Stores audit runs and serves them for budget assertions",
        lifespan=lifespan,
    )
    app.state.service = None

    install_error_handlers(app)
    app.include_router(health.router)
    app.include_router(projects.router)
    app.mount("/metrics", make_asgi_app())

    return app


app = create_app()


# ==================== Run ====================

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port)
