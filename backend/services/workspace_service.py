"""Convention workspace: stored conventions plus their live schedule state."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from threading import RLock
from typing import Any, Iterable, Mapping, Optional

from backend.domain.models import (
    Convention,
    GridPosition,
    Paper,
    Person,
    PersonRole,
    PlacedSession,
    SchedulePlan,
    Session,
    SessionCustomization,
    SessionType,
    TimeSlotSetting,
)
from backend.repository.data_repository import DataRepository, RepositoryError
from backend.services.assignment_service import (
    AssignmentStore,
    GridCell,
    session_key,
    session_label,
)
from backend.services.paper_service import PaperCsvService
from backend.services.planner_service import SessionPlanner
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class ConventionNotFoundError(LookupError):
    """Raised when a convention id is unknown."""


class PaperNotFoundError(LookupError):
    """Raised when a paper id is unknown within a convention."""


class PersonNotFoundError(LookupError):
    """Raised when a moderator or chair id is unknown within a convention."""


class TimeSlotValidationError(ValueError):
    """Raised when a time slot setting names a missing slot or an unreadable start time."""


@dataclass(frozen=True)
class SessionView:
    session_key: str
    session_type: SessionType
    number: int
    label: str
    paper_count: int
    category: Optional[str]
    customization: Optional[SessionCustomization]


@dataclass(frozen=True)
class ScheduleCell:
    day: int
    slot: int
    slot_label: str
    position: int
    room: str
    session: Optional[Session]
    label: Optional[str]
    paper_count: int = 0
    category: Optional[str] = None


@dataclass(frozen=True)
class TimeSlotView:
    day: int
    slot: int
    label: str
    start_time: str
    display: str


@dataclass(frozen=True)
class ScheduleView:
    cells: tuple[ScheduleCell, ...]
    unassigned_round_tables: tuple[int, ...]
    unplaced_paper_sessions: int


class ConventionWorkspaceService:
    """Coordinates storage, planning and in-memory assignment state per convention."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        planner: Optional[SessionPlanner] = None,
        paper_service: Optional[PaperCsvService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._planner = planner or SessionPlanner(self._settings)
        self._paper_service = paper_service or PaperCsvService(self._settings)
        self._lock = RLock()
        self._stores: dict[str, AssignmentStore] = {}

    # --- Conventions ---

    def create_convention(self, name: str, raw_parameters: Mapping[str, Any]) -> Convention:
        parameters = self._planner.parameters_from_form(raw_parameters)
        convention = self._repository.create_convention(name.strip() or "Untitled Convention", parameters)
        logger.info(
            "Convention created | convention_id=%s | name=%s",
            convention.convention_id,
            convention.name,
        )
        return convention

    def list_conventions(self) -> list[Convention]:
        return self._repository.list_conventions()

    def get_convention(self, convention_id: str) -> Convention:
        convention = self._repository.get_convention(convention_id)
        if convention is None:
            raise ConventionNotFoundError(f"Convention {convention_id} does not exist")
        return convention

    def update_convention(
        self,
        convention_id: str,
        name: Optional[str],
        raw_parameters: Optional[Mapping[str, Any]],
    ) -> Convention:
        current = self.get_convention(convention_id)
        parameters = (
            self._planner.parameters_from_form(raw_parameters)
            if raw_parameters is not None
            else current.parameters
        )
        new_name = name.strip() if name and name.strip() else current.name
        updated = self._repository.update_convention(convention_id, new_name, parameters)
        if updated is None:
            raise ConventionNotFoundError(f"Convention {convention_id} does not exist")
        self._resync_loaded_store(convention_id)
        return updated

    def delete_convention(self, convention_id: str) -> None:
        if not self._repository.delete_convention(convention_id):
            raise ConventionNotFoundError(f"Convention {convention_id} does not exist")
        with self._lock:
            self._stores.pop(convention_id, None)
        logger.info("Convention deleted | convention_id=%s", convention_id)

    def plan_for(self, convention_id: str) -> SchedulePlan:
        return self._planner.plan(self.get_convention(convention_id).parameters)

    # --- Rooms ---

    def get_room_names(self, convention_id: str) -> dict[int, str]:
        self.get_convention(convention_id)
        return self._repository.load_room_names(convention_id)

    def set_room_names(self, convention_id: str, room_names: Mapping[int, str]) -> dict[int, str]:
        self.get_convention(convention_id)
        cleaned = {
            int(number): name.strip()
            for number, name in room_names.items()
            if int(number) > 0 and name and name.strip()
        }
        self._repository.save_room_names(convention_id, cleaned)
        return cleaned

    # --- Papers ---

    def list_papers(self, convention_id: str) -> list[Paper]:
        self.get_convention(convention_id)
        return self._repository.list_papers(convention_id)

    def add_paper(
        self,
        convention_id: str,
        title: str,
        student: str,
        school: str,
        category: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Paper:
        self.get_convention(convention_id)
        paper = self._paper_service.build_paper(title, student, school, category, email)
        self._repository.add_papers(convention_id, [paper])
        return paper

    def import_papers(self, convention_id: str, csv_text: str) -> list[Paper]:
        self.get_convention(convention_id)
        papers = self._paper_service.parse_csv(csv_text)
        self._repository.add_papers(convention_id, papers)
        logger.info(
            "Papers imported | convention_id=%s | count=%s",
            convention_id,
            len(papers),
        )
        return papers

    def export_papers(self, convention_id: str) -> str:
        return self._paper_service.export_csv(self.list_papers(convention_id))

    def delete_paper(self, convention_id: str, paper_id: str) -> None:
        self.get_convention(convention_id)
        if not self._repository.delete_paper(convention_id, paper_id):
            raise PaperNotFoundError(f"Paper {paper_id} does not exist")
        self.store_for(convention_id).forget_paper(paper_id)

    # --- Moderators and chairs ---

    def list_people(self, convention_id: str, role: PersonRole) -> list[Person]:
        self.get_convention(convention_id)
        return self._repository.list_people(convention_id, role)

    def add_person(
        self,
        convention_id: str,
        role: PersonRole,
        name: str,
        school: str,
        email: Optional[str] = None,
    ) -> Person:
        self.get_convention(convention_id)
        return self._repository.add_person(
            convention_id,
            role,
            name.strip(),
            school.strip(),
            (email or "").strip() or None,
        )

    def delete_person(self, convention_id: str, role: PersonRole, person_id: int) -> None:
        self.get_convention(convention_id)
        if not self._repository.delete_person(convention_id, role, person_id):
            raise PersonNotFoundError(f"{role.value.title()} {person_id} does not exist")

    # --- Sessions ---

    def list_sessions(self, convention_id: str) -> list[SessionView]:
        plan = self.plan_for(convention_id)
        customizations = self._repository.list_session_customizations(convention_id)
        views: list[SessionView] = []
        for session in plan.distribution.sessions + plan.round_tables:
            key = session_key(session.session_type, session.session_id)
            customization = customizations.get(key)
            views.append(
                SessionView(
                    session_key=key,
                    session_type=session.session_type,
                    number=session.session_id,
                    label=session_label(session.session_type, session.session_id, customizations),
                    paper_count=(
                        customization.paper_count
                        if customization is not None and customization.paper_count
                        else session.paper_count
                    ),
                    category=(
                        customization.category
                        if customization is not None and customization.category
                        else session.category
                    ),
                    customization=customization,
                )
            )
        return views

    def save_session_customization(
        self,
        convention_id: str,
        customization: SessionCustomization,
    ) -> SessionCustomization:
        self.get_convention(convention_id)
        if customization.session_type is None:
            session_type = (
                SessionType.ROUND_TABLE
                if customization.session_key.startswith("rt-")
                else SessionType.PAPER
            )
            customization = replace(customization, session_type=session_type)
        self._repository.save_session_customization(convention_id, customization)
        self._resync_loaded_store(convention_id)
        return customization

    # --- Time slots ---

    def get_time_slots(self, convention_id: str) -> list[TimeSlotView]:
        """Every slot of every day with its custom label, start time and display text."""
        plan = self.plan_for(convention_id)
        stored = self._time_slot_settings(convention_id)
        views: list[TimeSlotView] = []
        for day, slots in enumerate(plan.parameters.time_slots_by_day, start=1):
            for slot in range(slots):
                setting = stored.get((day, slot))
                views.append(
                    TimeSlotView(
                        day=day,
                        slot=slot,
                        label=setting.label if setting is not None else "",
                        start_time=setting.start_time if setting is not None else "",
                        display=self._planner.format_time_slot(slot, setting),
                    )
                )
        return views

    def set_time_slots(
        self,
        convention_id: str,
        settings: Iterable[TimeSlotSetting],
    ) -> list[TimeSlotView]:
        """Replace the convention's time slot settings. Blank entries are dropped."""
        params = self.plan_for(convention_id).parameters
        cleaned: dict[tuple[int, int], TimeSlotSetting] = {}
        for setting in settings:
            if not 1 <= setting.day <= params.convention_days:
                raise TimeSlotValidationError(
                    f"Day {setting.day} is outside the convention (1-{params.convention_days})"
                )
            if not 0 <= setting.slot < params.time_slots_by_day[setting.day - 1]:
                raise TimeSlotValidationError(
                    f"Slot {setting.slot} does not exist on day {setting.day}"
                )
            label = setting.label.strip()
            start_time = _normalize_start_time(setting.start_time)
            if label or start_time:
                cleaned[(setting.day, setting.slot)] = TimeSlotSetting(
                    day=setting.day,
                    slot=setting.slot,
                    label=label,
                    start_time=start_time,
                )
        self._repository.save_time_slots(convention_id, cleaned.values())
        logger.info(
            "Time slots saved | convention_id=%s | customized=%s",
            convention_id,
            len(cleaned),
        )
        return self.get_time_slots(convention_id)

    def _time_slot_settings(self, convention_id: str) -> dict[tuple[int, int], TimeSlotSetting]:
        return {
            (setting.day, setting.slot): setting
            for setting in self._repository.load_time_slots(convention_id)
        }

    # --- Schedule grid ---

    def store_for(self, convention_id: str) -> AssignmentStore:
        with self._lock:
            store = self._stores.get(convention_id)
            if store is None:
                self.get_convention(convention_id)
                store = AssignmentStore(
                    placements=self._repository.load_schedule_assignments(convention_id),
                    paper_assignments=self._repository.load_paper_assignments(convention_id),
                )
                self._stores[convention_id] = store
            return store

    def _paper_counts(self, customizations: Mapping[str, SessionCustomization]) -> dict[int, int]:
        """Paper session capacities overridden through session customizations."""
        counts: dict[int, int] = {}
        for key, customization in customizations.items():
            prefix, _, number = key.partition("-")
            if prefix == "paper" and number.isdigit() and customization.paper_count:
                counts[int(number)] = customization.paper_count
        return counts

    def _synced(self, convention_id: str) -> tuple[SchedulePlan, AssignmentStore, dict[int, int]]:
        """Current plan plus a store already trimmed to fit it."""
        plan = self.plan_for(convention_id)
        store = self.store_for(convention_id)
        paper_counts = self._paper_counts(
            self._repository.list_session_customizations(convention_id)
        )
        store.reconcile(plan, paper_counts)
        return plan, store, paper_counts

    def _resync_loaded_store(self, convention_id: str) -> None:
        """Trim an in-memory store to the current plan and save what is left."""
        with self._lock:
            loaded = convention_id in self._stores
        if not loaded:
            return
        self._synced(convention_id)
        self.persist_schedule(convention_id)
        self.persist_paper_assignments(convention_id)

    def schedule_view(self, convention_id: str) -> ScheduleView:
        plan, store, _ = self._synced(convention_id)
        room_names = self._repository.load_room_names(convention_id)
        customizations = self._repository.list_session_customizations(convention_id)
        time_slots = self._time_slot_settings(convention_id)
        cells = store.grid(plan)
        placed_papers = sum(
            1
            for cell in cells
            if cell.session is not None and cell.session.session_type is SessionType.PAPER
        )
        return ScheduleView(
            cells=tuple(
                self._schedule_cell(cell, room_names, customizations, time_slots)
                for cell in cells
            ),
            unassigned_round_tables=tuple(store.unassigned_round_tables(plan)),
            unplaced_paper_sessions=max(0, len(plan.distribution.sessions) - placed_papers),
        )

    def _schedule_cell(
        self,
        cell: GridCell,
        room_names: Mapping[int, str],
        customizations: Mapping[str, SessionCustomization],
        time_slots: Mapping[tuple[int, int], TimeSlotSetting],
    ) -> ScheduleCell:
        position = cell.position
        room_number = position.position + 1
        label = None
        paper_count = 0
        category = None
        session = cell.session
        if session is not None:
            label = session_label(session.session_type, session.session_id, customizations)
            customization = customizations.get(
                session_key(session.session_type, session.session_id)
            )
            paper_count = session.paper_count
            category = session.category
            if customization is not None and customization.paper_count:
                paper_count = customization.paper_count
            if customization is not None and customization.category:
                category = customization.category
        return ScheduleCell(
            day=position.day,
            slot=position.slot,
            slot_label=self._planner.format_time_slot(
                position.slot,
                time_slots.get((position.day, position.slot)),
            ),
            position=position.position,
            room=room_names.get(room_number, f"Room {room_number}"),
            session=session,
            label=label,
            paper_count=paper_count,
            category=category,
        )

    def assign_round_table(
        self,
        convention_id: str,
        rt_id: int,
        day: int,
        slot: int,
        position: Optional[int] = None,
    ) -> GridPosition:
        plan, store, _ = self._synced(convention_id)
        if position is None:
            return store.assign_round_table_to_slot(plan, rt_id, day, slot)
        target = GridPosition(day=day, slot=slot, position=position)
        store.assign_round_table_to_position(plan, rt_id, target)
        return target

    def unassign_round_table(self, convention_id: str, rt_id: int) -> bool:
        _, store, _ = self._synced(convention_id)
        return store.unassign_round_table(rt_id)

    def add_paper_session(self, convention_id: str, position: GridPosition) -> PlacedSession:
        plan, store, _ = self._synced(convention_id)
        return store.assign_paper_session_to_position(plan, position)

    def remove_from_position(
        self,
        convention_id: str,
        position: GridPosition,
    ) -> Optional[PlacedSession]:
        _, store, _ = self._synced(convention_id)
        return store.remove_from_position(position)

    def auto_populate(self, convention_id: str) -> dict[GridPosition, PlacedSession]:
        plan, store, _ = self._synced(convention_id)
        return store.auto_populate(plan)

    # --- Paper assignments ---

    def paper_assignments(self, convention_id: str) -> dict[int, list[str]]:
        _, store, _ = self._synced(convention_id)
        return store.paper_assignments()

    def assign_paper(self, convention_id: str, session_id: int, paper_id: str) -> None:
        plan, store, paper_counts = self._synced(convention_id)
        known = {paper.paper_id for paper in self._repository.list_papers(convention_id)}
        if paper_id not in known:
            raise PaperNotFoundError(f"Paper {paper_id} does not exist")
        store.assign_paper_to_session(plan, session_id, paper_id, paper_counts)

    def remove_paper_assignment(self, convention_id: str, session_id: int, paper_id: str) -> bool:
        _, store, _ = self._synced(convention_id)
        return store.remove_paper_from_session(session_id, paper_id)

    def auto_assign_papers(self, convention_id: str) -> dict[int, list[str]]:
        plan, store, paper_counts = self._synced(convention_id)
        papers = self._repository.list_papers(convention_id)
        return store.auto_assign_papers(plan, papers, paper_counts)

    def clear_paper_assignments(self, convention_id: str) -> None:
        self.store_for(convention_id).clear_paper_assignments()

    # --- Best-effort persistence ---

    def persist_schedule(self, convention_id: str) -> None:
        """Save grid placements. Failures are logged and in-memory state is kept."""
        with self._lock:
            store = self._stores.get(convention_id)
        if store is None:
            return
        try:
            self._repository.save_schedule_assignments(convention_id, store.placements())
        except RepositoryError:
            logger.exception("Schedule auto-save failed | convention_id=%s", convention_id)

    def persist_paper_assignments(self, convention_id: str) -> None:
        with self._lock:
            store = self._stores.get(convention_id)
        if store is None:
            return
        try:
            self._repository.save_paper_assignments(convention_id, store.paper_assignments())
        except RepositoryError:
            logger.exception(
                "Paper assignment auto-save failed | convention_id=%s",
                convention_id,
            )


def _normalize_start_time(value: str) -> str:
    """'9:05' -> '09:05'. Blank stays blank; anything else must read as 24h HH:MM."""
    text = (value or "").strip()
    if not text:
        return ""
    try:
        return datetime.strptime(text, "%H:%M").strftime("%H:%M")
    except ValueError as exc:
        raise TimeSlotValidationError(f"Start time {text!r} is not a valid HH:MM time") from exc
