"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared_calendar.api.routes import router
from shared_calendar.config import settings
from shared_calendar.logging_config import setup_logging
from shared_calendar.services.event_store import EventStore

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_FORMAT == "json")
    logger.info(
        "app_started",
        data_dir=settings.DATA_DIR or None,
        month_row_budget=settings.MONTH_ROW_BUDGET,
        week_row_budget=settings.WEEK_ROW_BUDGET,
    )
    yield
    logger.info("app_stopped")


def create_app(store: Optional[EventStore] = None) -> FastAPI:
    """Factory to create the FastAPI application."""
    settings.validate()

    app = FastAPI(
        title="Shared Calendar",
        description="Shared calendars with live updates and month/week layouts",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.store = store if store is not None else EventStore(settings.DATA_DIR)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(router)

    return app


# Default app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "shared_calendar.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
