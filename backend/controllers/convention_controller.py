"""Controller layer for saved conventions and their schedule workspace."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_workspace_service
from backend.controllers.planner_controller import PlanningFormRequest
from backend.domain.models import (
    Convention,
    GridPosition,
    Paper,
    Participant,
    Person,
    PersonRole,
    SessionCustomization,
    SessionType,
    TimeSlotSetting,
    as_plain_dict,
)
from backend.services.assignment_service import (
    AssignmentValidationError,
    PositionOccupiedError,
    SessionFullError,
)
from backend.services.paper_service import PaperImportError
from backend.services.workspace_service import (
    ConventionNotFoundError,
    ConventionWorkspaceService,
    PaperNotFoundError,
    PersonNotFoundError,
    TimeSlotValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/conventions", tags=["conventions"])

_ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
    (ConventionNotFoundError, status.HTTP_404_NOT_FOUND),
    (PaperNotFoundError, status.HTTP_404_NOT_FOUND),
    (PersonNotFoundError, status.HTTP_404_NOT_FOUND),
    (AssignmentValidationError, status.HTTP_400_BAD_REQUEST),
    (PaperImportError, status.HTTP_400_BAD_REQUEST),
    (TimeSlotValidationError, status.HTTP_400_BAD_REQUEST),
    (PositionOccupiedError, status.HTTP_409_CONFLICT),
    (SessionFullError, status.HTTP_409_CONFLICT),
)


def _http_error(exc: Exception, action: str) -> HTTPException:
    """Map a service exception to its HTTP status. Call from an except block."""
    if isinstance(exc, HTTPException):
        return exc
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    logger.exception("Unexpected failure | action=%s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{action} failed",
    )


class PeopleGroup(str, Enum):
    MODERATORS = "moderators"
    CHAIRS = "chairs"

    @property
    def role(self) -> PersonRole:
        return PersonRole.MODERATOR if self is PeopleGroup.MODERATORS else PersonRole.CHAIR


class ConventionCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    parameters: PlanningFormRequest = Field(default_factory=PlanningFormRequest)


class ConventionUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    parameters: Optional[PlanningFormRequest] = None


class ConventionResponse(BaseModel):
    convention_id: str
    name: str
    parameters: dict[str, Any]
    created_at: str
    updated_at: str


class RoomNamesRequest(BaseModel):
    room_names: dict[int, str] = Field(default_factory=dict)


class RoomNamesResponse(BaseModel):
    room_names: dict[int, str]


class TimeSlotPayload(BaseModel):
    day: int = Field(ge=1)
    slot: int = Field(ge=0)
    label: str = Field(default="", max_length=100)
    start_time: str = ""


class TimeSlotsRequest(BaseModel):
    time_slots: list[TimeSlotPayload] = Field(default_factory=list)


class TimeSlotResponse(BaseModel):
    day: int
    slot: int
    label: str
    start_time: str
    display: str


class PaperRequest(BaseModel):
    title: str = Field(min_length=1)
    student: str = Field(min_length=1)
    school: str = Field(min_length=1)
    category: Optional[str] = None
    email: Optional[str] = None


class PaperResponse(BaseModel):
    paper_id: str
    title: str
    student: str
    school: str
    category: str
    email: Optional[str] = None


class PaperImportRequest(BaseModel):
    csv_text: str


class PaperImportResponse(BaseModel):
    imported: int = Field(ge=0)
    papers: list[PaperResponse]


class PersonRequest(BaseModel):
    name: str = Field(min_length=1)
    school: str = Field(min_length=1)
    email: Optional[str] = None


class PersonResponse(BaseModel):
    person_id: int
    role: PersonRole
    name: str
    school: str
    email: Optional[str] = None


class ParticipantPayload(BaseModel):
    name: str = ""
    school: str = ""


class SessionCustomizationRequest(BaseModel):
    session_type: Optional[SessionType] = None
    paper_count: Optional[int] = Field(default=None, gt=0)
    category: Optional[str] = None
    preferred_room: str = ""
    notes: str = ""
    moderator_name: str = ""
    moderator_school: str = ""
    chair_name: str = ""
    chair_school: str = ""
    custom_name: str = ""
    participants: list[ParticipantPayload] = Field(default_factory=list)


class RoundTablePlacementRequest(BaseModel):
    day: int = Field(ge=1)
    slot: int = Field(ge=0)
    position: Optional[int] = Field(default=None, ge=0)


class GridPositionRequest(BaseModel):
    day: int = Field(ge=1)
    slot: int = Field(ge=0)
    position: int = Field(ge=0)


class PaperAssignmentRequest(BaseModel):
    session_id: int = Field(gt=0)
    paper_id: str = Field(min_length=1)


class PaperAssignmentsResponse(BaseModel):
    assignments: dict[int, list[str]]


def _convention_response(convention: Convention) -> ConventionResponse:
    return ConventionResponse(
        convention_id=convention.convention_id,
        name=convention.name,
        parameters=convention.parameters.to_dict(),
        created_at=convention.created_at,
        updated_at=convention.updated_at,
    )


def _paper_response(paper: Paper) -> PaperResponse:
    return PaperResponse(**as_plain_dict(paper))


def _person_response(person: Person) -> PersonResponse:
    return PersonResponse(**as_plain_dict(person))


# --- Conventions ---


@router.post("", response_model=ConventionResponse, status_code=status.HTTP_201_CREATED)
async def create_convention(
    payload: ConventionCreateRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> ConventionResponse:
    try:
        convention = service.create_convention(payload.name, payload.parameters.model_dump())
        return _convention_response(convention)
    except Exception as exc:
        raise _http_error(exc, "Convention creation") from exc


@router.get("", response_model=list[ConventionResponse], status_code=status.HTTP_200_OK)
async def list_conventions(
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> list[ConventionResponse]:
    try:
        return [_convention_response(item) for item in service.list_conventions()]
    except Exception as exc:
        raise _http_error(exc, "Convention listing") from exc


@router.get("/{convention_id}", response_model=ConventionResponse)
async def get_convention(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> ConventionResponse:
    try:
        return _convention_response(service.get_convention(convention_id))
    except Exception as exc:
        raise _http_error(exc, "Convention lookup") from exc


@router.put("/{convention_id}", response_model=ConventionResponse)
async def update_convention(
    convention_id: str,
    payload: ConventionUpdateRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> ConventionResponse:
    try:
        convention = service.update_convention(
            convention_id,
            payload.name,
            payload.parameters.model_dump() if payload.parameters is not None else None,
        )
        return _convention_response(convention)
    except Exception as exc:
        raise _http_error(exc, "Convention update") from exc


@router.delete("/{convention_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_convention(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> Response:
    try:
        service.delete_convention(convention_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as exc:
        raise _http_error(exc, "Convention delete") from exc


@router.post("/{convention_id}/calculate")
async def calculate_convention(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    """Plan the convention from its stored parameters."""
    try:
        return service.plan_for(convention_id).to_dict()
    except Exception as exc:
        raise _http_error(exc, "Convention calculation") from exc


# --- Rooms ---


@router.get("/{convention_id}/rooms", response_model=RoomNamesResponse)
async def get_room_names(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> RoomNamesResponse:
    try:
        return RoomNamesResponse(room_names=service.get_room_names(convention_id))
    except Exception as exc:
        raise _http_error(exc, "Room name lookup") from exc


@router.put("/{convention_id}/rooms", response_model=RoomNamesResponse)
async def set_room_names(
    convention_id: str,
    payload: RoomNamesRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> RoomNamesResponse:
    try:
        return RoomNamesResponse(
            room_names=service.set_room_names(convention_id, payload.room_names)
        )
    except Exception as exc:
        raise _http_error(exc, "Room name update") from exc


# --- Time slots ---


@router.get("/{convention_id}/time-slots", response_model=list[TimeSlotResponse])
async def get_time_slots(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> list[TimeSlotResponse]:
    try:
        return [
            TimeSlotResponse(**as_plain_dict(view))
            for view in service.get_time_slots(convention_id)
        ]
    except Exception as exc:
        raise _http_error(exc, "Time slot lookup") from exc


@router.put("/{convention_id}/time-slots", response_model=list[TimeSlotResponse])
async def set_time_slots(
    convention_id: str,
    payload: TimeSlotsRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> list[TimeSlotResponse]:
    try:
        views = service.set_time_slots(
            convention_id,
            [TimeSlotSetting(**item.model_dump()) for item in payload.time_slots],
        )
        return [TimeSlotResponse(**as_plain_dict(view)) for view in views]
    except Exception as exc:
        raise _http_error(exc, "Time slot update") from exc


# --- Papers ---


@router.get("/{convention_id}/papers", response_model=list[PaperResponse])
async def list_papers(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> list[PaperResponse]:
    try:
        return [_paper_response(paper) for paper in service.list_papers(convention_id)]
    except Exception as exc:
        raise _http_error(exc, "Paper listing") from exc


@router.post(
    "/{convention_id}/papers",
    response_model=PaperResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_paper(
    convention_id: str,
    payload: PaperRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PaperResponse:
    try:
        paper = service.add_paper(
            convention_id,
            title=payload.title,
            student=payload.student,
            school=payload.school,
            category=payload.category,
            email=payload.email,
        )
        return _paper_response(paper)
    except Exception as exc:
        raise _http_error(exc, "Paper creation") from exc


@router.post(
    "/{convention_id}/papers/import",
    response_model=PaperImportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_papers(
    convention_id: str,
    payload: PaperImportRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PaperImportResponse:
    try:
        papers = service.import_papers(convention_id, payload.csv_text)
        return PaperImportResponse(
            imported=len(papers),
            papers=[_paper_response(paper) for paper in papers],
        )
    except Exception as exc:
        raise _http_error(exc, "Paper import") from exc


@router.get("/{convention_id}/papers/export")
async def export_papers(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> Response:
    try:
        content = service.export_papers(convention_id)
    except Exception as exc:
        raise _http_error(exc, "Paper export") from exc
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="papers.csv"'},
    )


@router.delete("/{convention_id}/papers/{paper_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_paper(
    convention_id: str,
    paper_id: str,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> Response:
    try:
        service.delete_paper(convention_id, paper_id)
    except Exception as exc:
        raise _http_error(exc, "Paper delete") from exc
    background_tasks.add_task(service.persist_paper_assignments, convention_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Moderators and chairs ---


@router.get("/{convention_id}/people/{group}", response_model=list[PersonResponse])
async def list_people(
    convention_id: str,
    group: PeopleGroup,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> list[PersonResponse]:
    try:
        return [
            _person_response(person)
            for person in service.list_people(convention_id, group.role)
        ]
    except Exception as exc:
        raise _http_error(exc, "People listing") from exc


@router.post(
    "/{convention_id}/people/{group}",
    response_model=PersonResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_person(
    convention_id: str,
    group: PeopleGroup,
    payload: PersonRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PersonResponse:
    try:
        person = service.add_person(
            convention_id,
            group.role,
            name=payload.name,
            school=payload.school,
            email=payload.email,
        )
        return _person_response(person)
    except Exception as exc:
        raise _http_error(exc, "Person creation") from exc


@router.delete(
    "/{convention_id}/people/{group}/{person_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_person(
    convention_id: str,
    group: PeopleGroup,
    person_id: int,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> Response:
    try:
        service.delete_person(convention_id, group.role, person_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as exc:
        raise _http_error(exc, "Person delete") from exc


# --- Sessions ---


@router.get("/{convention_id}/sessions")
async def list_sessions(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> list[dict[str, Any]]:
    try:
        return [as_plain_dict(view) for view in service.list_sessions(convention_id)]
    except Exception as exc:
        raise _http_error(exc, "Session listing") from exc


@router.put("/{convention_id}/sessions/{session_key}")
async def save_session_customization(
    convention_id: str,
    session_key: str,
    payload: SessionCustomizationRequest,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        fields = payload.model_dump(exclude={"participants"})
        customization = SessionCustomization(
            session_key=session_key,
            participants=tuple(
                Participant(name=item.name, school=item.school)
                for item in payload.participants
            ),
            **fields,
        )
        return as_plain_dict(service.save_session_customization(convention_id, customization))
    except Exception as exc:
        raise _http_error(exc, "Session customization") from exc


# --- Schedule grid ---


@router.get("/{convention_id}/schedule")
async def get_schedule(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        return as_plain_dict(service.schedule_view(convention_id))
    except Exception as exc:
        raise _http_error(exc, "Schedule lookup") from exc


@router.post("/{convention_id}/schedule/round-tables/{rt_id}")
async def place_round_table(
    convention_id: str,
    rt_id: int,
    payload: RoundTablePlacementRequest,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        position = service.assign_round_table(
            convention_id,
            rt_id,
            day=payload.day,
            slot=payload.slot,
            position=payload.position,
        )
    except Exception as exc:
        raise _http_error(exc, "Round table placement") from exc
    background_tasks.add_task(service.persist_schedule, convention_id)
    return {"rt_id": rt_id, "position": as_plain_dict(position)}


@router.delete("/{convention_id}/schedule/round-tables/{rt_id}")
async def unplace_round_table(
    convention_id: str,
    rt_id: int,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        removed = service.unassign_round_table(convention_id, rt_id)
    except Exception as exc:
        raise _http_error(exc, "Round table removal") from exc
    background_tasks.add_task(service.persist_schedule, convention_id)
    return {"rt_id": rt_id, "removed": removed}


@router.post("/{convention_id}/schedule/paper-sessions", status_code=status.HTTP_201_CREATED)
async def place_paper_session(
    convention_id: str,
    payload: GridPositionRequest,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        placed = service.add_paper_session(
            convention_id,
            GridPosition(day=payload.day, slot=payload.slot, position=payload.position),
        )
    except Exception as exc:
        raise _http_error(exc, "Paper session placement") from exc
    background_tasks.add_task(service.persist_schedule, convention_id)
    return as_plain_dict(placed)


@router.delete("/{convention_id}/schedule/positions/{day}/{slot}/{position}")
async def clear_position(
    convention_id: str,
    day: int,
    slot: int,
    position: int,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        removed = service.remove_from_position(
            convention_id,
            GridPosition(day=day, slot=slot, position=position),
        )
    except Exception as exc:
        raise _http_error(exc, "Position clear") from exc
    background_tasks.add_task(service.persist_schedule, convention_id)
    return {"removed": as_plain_dict(removed) if removed is not None else None}


@router.post("/{convention_id}/schedule/auto-populate")
async def auto_populate_schedule(
    convention_id: str,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        service.auto_populate(convention_id)
        view = service.schedule_view(convention_id)
    except Exception as exc:
        raise _http_error(exc, "Schedule auto-populate") from exc
    background_tasks.add_task(service.persist_schedule, convention_id)
    return as_plain_dict(view)


# --- Paper assignments ---


@router.get("/{convention_id}/paper-assignments", response_model=PaperAssignmentsResponse)
async def get_paper_assignments(
    convention_id: str,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PaperAssignmentsResponse:
    try:
        return PaperAssignmentsResponse(assignments=service.paper_assignments(convention_id))
    except Exception as exc:
        raise _http_error(exc, "Paper assignment lookup") from exc


@router.post("/{convention_id}/paper-assignments", response_model=PaperAssignmentsResponse)
async def assign_paper(
    convention_id: str,
    payload: PaperAssignmentRequest,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PaperAssignmentsResponse:
    try:
        service.assign_paper(convention_id, payload.session_id, payload.paper_id)
        assignments = service.paper_assignments(convention_id)
    except Exception as exc:
        raise _http_error(exc, "Paper assignment") from exc
    background_tasks.add_task(service.persist_paper_assignments, convention_id)
    return PaperAssignmentsResponse(assignments=assignments)


@router.delete(
    "/{convention_id}/paper-assignments/{session_id}/{paper_id}",
    response_model=PaperAssignmentsResponse,
)
async def unassign_paper(
    convention_id: str,
    session_id: int,
    paper_id: str,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PaperAssignmentsResponse:
    try:
        service.remove_paper_assignment(convention_id, session_id, paper_id)
        assignments = service.paper_assignments(convention_id)
    except Exception as exc:
        raise _http_error(exc, "Paper unassignment") from exc
    background_tasks.add_task(service.persist_paper_assignments, convention_id)
    return PaperAssignmentsResponse(assignments=assignments)


@router.post("/{convention_id}/paper-assignments/auto", response_model=PaperAssignmentsResponse)
async def auto_assign_papers(
    convention_id: str,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PaperAssignmentsResponse:
    try:
        assignments = service.auto_assign_papers(convention_id)
    except Exception as exc:
        raise _http_error(exc, "Paper auto-assign") from exc
    background_tasks.add_task(service.persist_paper_assignments, convention_id)
    return PaperAssignmentsResponse(assignments=assignments)


@router.delete("/{convention_id}/paper-assignments", response_model=PaperAssignmentsResponse)
async def clear_paper_assignments(
    convention_id: str,
    background_tasks: BackgroundTasks,
    service: ConventionWorkspaceService = Depends(get_workspace_service),
) -> PaperAssignmentsResponse:
    try:
        service.clear_paper_assignments(convention_id)
    except Exception as exc:
        raise _http_error(exc, "Paper assignment clear") from exc
    background_tasks.add_task(service.persist_paper_assignments, convention_id)
    return PaperAssignmentsResponse(assignments={})
