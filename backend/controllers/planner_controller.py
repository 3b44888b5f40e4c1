"""HTTP controller layer for stateless session planning."""

from __future__ import annotations

from typing import Any, Union

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_planner
from backend.domain.models import as_plain_dict
from backend.services.planner_service import SessionPlanner
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["planner"])

# Form fields arrive as whatever the client typed; coercion happens in the domain layer.
FormValue = Union[int, float, str, None]


class CategoryInput(BaseModel):
    name: str = ""
    paper_count: FormValue = None


class PlanningFormRequest(BaseModel):
    """Raw planning form. Missing or invalid values fall back to defaults."""

    convention_days: FormValue = None
    time_slots_per_day: FormValue = None
    available_rooms: FormValue = None
    sessions_per_time_slot: FormValue = None
    total_papers: FormValue = None
    papers_per_session: FormValue = None
    min_papers_per_session: FormValue = None
    max_papers_per_session: FormValue = None
    total_round_tables: FormValue = None
    round_table_duration: FormValue = None
    categories: list[CategoryInput] = Field(default_factory=list)
    custom_time_slots: dict[str, FormValue] = Field(default_factory=dict)
    custom_rooms_per_day: dict[str, FormValue] = Field(default_factory=dict)
    custom_sessions_per_slot: dict[str, FormValue] = Field(default_factory=dict)


@router.post("/calculate", status_code=status.HTTP_200_OK)
async def calculate(
    payload: PlanningFormRequest,
    planner: SessionPlanner = Depends(get_planner),
) -> dict[str, Any]:
    """Distribute papers, size round tables and check room capacity in one pass."""
    try:
        params = planner.parameters_from_form(payload.model_dump())
        return planner.plan(params).to_dict()
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected calculation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Calculation failed",
        ) from exc


@router.post("/distribute", status_code=status.HTTP_200_OK)
async def distribute(
    payload: PlanningFormRequest,
    planner: SessionPlanner = Depends(get_planner),
) -> dict[str, Any]:
    try:
        params = planner.parameters_from_form(payload.model_dump())
        return as_plain_dict(planner.distribute_papers(params))
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected distribution failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Distribution failed",
        ) from exc
