# notifier/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notifier.api.status import router as status_router
from notifier.config import Settings
from notifier.logging_config import setup_logging
from notifier.services.container import ServiceContainer

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 1) build everything once from the environment (.env included)
        if app.state.container is None:
            settings = Settings.from_env()
            setup_logging(settings.log_level)
            app.state.container = ServiceContainer.from_settings(settings)

        # 2) lanes + scheduled jobs in the background
        await app.state.container.start()
        logger.info("Notification pipeline started")
        try:
            yield
        finally:
            await app.state.container.stop()
            logger.info("Notification pipeline stopped")

    app = FastAPI(title="Notification Pipeline", lifespan=lifespan)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(status_router)
    return app


app = create_app()
