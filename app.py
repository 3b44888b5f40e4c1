"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.convention_controller import router as convention_router
from backend.controllers.planner_controller import router as planner_router
from backend.repository.data_repository import DataRepository
from backend.services.paper_service import PaperCsvService
from backend.services.planner_service import SessionPlanner
from backend.services.workspace_service import ConventionWorkspaceService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    planner = SessionPlanner(settings)
    workspace_service = ConventionWorkspaceService(
        repository=repository,
        planner=planner,
        paper_service=PaperCsvService(settings),
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(planner_router)
    app.include_router(convention_router)

    app.state.repository = repository
    app.state.planner = planner
    app.state.workspace_service = workspace_service

    return app


def _startup(app: FastAPI) -> None:
    """Idempotent startup sequence. Safe to re-run on server restarts."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup complete | database=%s", repository.database_path)


# Module-level app object for uvicorn
app = create_app()
