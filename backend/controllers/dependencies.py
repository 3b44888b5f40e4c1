"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from backend.services.planner_service import SessionPlanner
from backend.services.workspace_service import ConventionWorkspaceService
from backend.utils.config import get_settings


def get_planner(request: Request) -> SessionPlanner:
    planner = getattr(request.app.state, "planner", None)
    if planner is None:
        planner = SessionPlanner(settings=get_settings())
        request.app.state.planner = planner
    return planner


def get_workspace_service(request: Request) -> ConventionWorkspaceService:
    service = getattr(request.app.state, "workspace_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        if repository is not None:
            service = ConventionWorkspaceService(
                repository=repository,
                planner=get_planner(request),
                settings=get_settings(),
            )
            request.app.state.workspace_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Convention workspace is not initialized",
        )
    return service
