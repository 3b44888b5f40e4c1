"""In-memory schedule grid and paper-to-session assignments for one convention.

The store only remembers which session number sits at which grid position and
which papers belong to which paper session. Titles, paper counts and
categories are read from the plan passed into each call, so a recalculation
never leaves stale session details behind.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Iterator, Mapping, Optional, Sequence

from backend.domain.models import (
    GridPosition,
    Paper,
    PlacedSession,
    SchedulePlan,
    Session,
    SessionCustomization,
    SessionType,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AssignmentValidationError(ValueError):
    """Raised when an assignment refers to something outside the plan."""


class PositionOccupiedError(RuntimeError):
    """Raised when a grid position already holds a session."""


class SessionFullError(RuntimeError):
    """Raised when a paper session already holds its planned number of papers."""


@dataclass(frozen=True)
class GridCell:
    position: GridPosition
    session: Optional[Session]


def iter_grid_positions(plan: SchedulePlan) -> Iterator[GridPosition]:
    """Walk every position of the plan's grid in day, slot, position order."""
    params = plan.parameters
    for day_index, (slots, positions) in enumerate(
        zip(params.time_slots_by_day, params.sessions_per_slot_by_day),
        start=1,
    ):
        for slot in range(slots):
            for position in range(positions):
                yield GridPosition(day=day_index, slot=slot, position=position)


def session_label(
    session_type: SessionType,
    number: int,
    customizations: Optional[Mapping[str, SessionCustomization]] = None,
) -> str:
    """Display name of a session: the custom name when one is set."""
    customization = (customizations or {}).get(session_key(session_type, number))
    if customization is not None and customization.custom_name.strip():
        return customization.custom_name.strip()
    if session_type is SessionType.ROUND_TABLE:
        return f"Round Table {number}"
    return f"Paper Session {number}"


def session_key(session_type: SessionType, number: int) -> str:
    prefix = "rt" if session_type is SessionType.ROUND_TABLE else "paper"
    return f"{prefix}-{number}"


def planned_session(plan: SchedulePlan, placed: PlacedSession) -> Optional[Session]:
    """The session of the current plan behind a placement, if it still exists."""
    pool = (
        plan.round_tables
        if placed.session_type is SessionType.ROUND_TABLE
        else plan.distribution.sessions
    )
    for session in pool:
        if session.session_id == placed.session_number:
            return session
    return None


class AssignmentStore:
    """Grid placements and paper assignments. The planner never mutates this.

    ``paper_counts`` arguments carry per-session capacity overrides; sessions
    missing from the mapping hold their planned number of papers.
    """

    def __init__(
        self,
        placements: Optional[Mapping[GridPosition, PlacedSession]] = None,
        paper_assignments: Optional[Mapping[int, Sequence[str]]] = None,
    ) -> None:
        self._lock = RLock()
        self._placements: dict[GridPosition, PlacedSession] = dict(placements or {})
        self._paper_assignments: dict[int, list[str]] = {
            int(session_id): list(paper_ids)
            for session_id, paper_ids in (paper_assignments or {}).items()
        }

    # --- Snapshots ---

    def placements(self) -> dict[GridPosition, PlacedSession]:
        with self._lock:
            return dict(self._placements)

    def paper_assignments(self) -> dict[int, list[str]]:
        with self._lock:
            return {
                session_id: list(paper_ids)
                for session_id, paper_ids in self._paper_assignments.items()
                if paper_ids
            }

    def reconcile(
        self,
        plan: SchedulePlan,
        paper_counts: Optional[Mapping[int, int]] = None,
    ) -> bool:
        """Drop whatever the current plan no longer has room for.

        Placements off the grid or naming a session the plan lacks are removed,
        assignments to missing sessions are removed, and assignments beyond a
        session's capacity are cut from the end. Returns True when anything changed.
        """
        with self._lock:
            grid = set(iter_grid_positions(plan))
            stale_positions = [
                position
                for position, placed in self._placements.items()
                if position not in grid or planned_session(plan, placed) is None
            ]
            for position in stale_positions:
                del self._placements[position]

            planned_ids = {session.session_id for session in plan.distribution.sessions}
            trimmed_papers = 0
            for session_id in list(self._paper_assignments):
                paper_ids = self._paper_assignments[session_id]
                if session_id not in planned_ids:
                    trimmed_papers += len(paper_ids)
                    del self._paper_assignments[session_id]
                    continue
                capacity = self._capacity_of(plan, session_id, paper_counts)
                if len(paper_ids) > capacity:
                    trimmed_papers += len(paper_ids) - capacity
                    del paper_ids[capacity:]

            changed = bool(stale_positions) or trimmed_papers > 0
            if changed:
                logger.info(
                    "Assignments reconciled with plan | dropped_placements=%s | "
                    "unassigned_papers=%s",
                    len(stale_positions),
                    trimmed_papers,
                )
            return changed

    # --- Grid ---

    def _validate_position(self, plan: SchedulePlan, position: GridPosition) -> None:
        params = plan.parameters
        if not 1 <= position.day <= params.convention_days:
            raise AssignmentValidationError(
                f"Day {position.day} is outside the convention (1-{params.convention_days})"
            )
        slots = params.time_slots_by_day[position.day - 1]
        if not 0 <= position.slot < slots:
            raise AssignmentValidationError(
                f"Slot {position.slot} does not exist on day {position.day}"
            )
        positions = params.sessions_per_slot_by_day[position.day - 1]
        if not 0 <= position.position < positions:
            raise AssignmentValidationError(
                f"Position {position.position} does not exist in day {position.day} "
                f"slot {position.slot}"
            )

    def _validate_round_table(self, plan: SchedulePlan, rt_id: int) -> None:
        total = plan.parameters.round_table_sessions
        if not 1 <= rt_id <= total:
            raise AssignmentValidationError(
                f"Round table {rt_id} does not exist (1-{total})"
            )

    def _find_round_table(self, rt_id: int) -> Optional[GridPosition]:
        for position, placed in self._placements.items():
            if placed.session_type is SessionType.ROUND_TABLE and placed.session_number == rt_id:
                return position
        return None

    def _occupied_error(self, position: GridPosition, occupant: PlacedSession) -> PositionOccupiedError:
        return PositionOccupiedError(
            f"Day {position.day} slot {position.slot} position {position.position} "
            f"is already taken by {session_label(occupant.session_type, occupant.session_number)}"
        )

    def assign_round_table_to_position(
        self,
        plan: SchedulePlan,
        rt_id: int,
        position: GridPosition,
    ) -> PlacedSession:
        with self._lock:
            self._validate_round_table(plan, rt_id)
            self._validate_position(plan, position)

            current = self._find_round_table(rt_id)
            occupant = self._placements.get(position)
            if occupant is not None and current != position:
                raise self._occupied_error(position, occupant)
            if current is not None:
                del self._placements[current]

            placed = PlacedSession(session_type=SessionType.ROUND_TABLE, session_number=rt_id)
            self._placements[position] = placed
            logger.info(
                "Round table placed | rt_id=%s | day=%s | slot=%s | position=%s",
                rt_id,
                position.day,
                position.slot,
                position.position,
            )
            return placed

    def assign_round_table_to_slot(
        self,
        plan: SchedulePlan,
        rt_id: int,
        day: int,
        slot: int,
    ) -> GridPosition:
        """Place the round table in the first free position of a slot."""
        with self._lock:
            self._validate_round_table(plan, rt_id)
            self._validate_position(plan, GridPosition(day=day, slot=slot, position=0))

            current = self._find_round_table(rt_id)
            if current is not None and current.day == day and current.slot == slot:
                return current

            positions = plan.parameters.sessions_per_slot_by_day[day - 1]
            for index in range(positions):
                candidate = GridPosition(day=day, slot=slot, position=index)
                if candidate not in self._placements:
                    self.assign_round_table_to_position(plan, rt_id, candidate)
                    return candidate
            raise PositionOccupiedError(f"Day {day} slot {slot} has no free position")

    def unassign_round_table(self, rt_id: int) -> bool:
        with self._lock:
            current = self._find_round_table(rt_id)
            if current is None:
                return False
            del self._placements[current]
            return True

    def _next_paper_session_number(self, plan: SchedulePlan) -> Optional[int]:
        used = {
            placed.session_number
            for placed in self._placements.values()
            if placed.session_type is SessionType.PAPER
        }
        for session in plan.distribution.sessions:
            if session.session_id not in used:
                return session.session_id
        return None

    def assign_paper_session_to_position(
        self,
        plan: SchedulePlan,
        position: GridPosition,
    ) -> PlacedSession:
        """Place the lowest-numbered planned paper session not yet on the grid."""
        with self._lock:
            self._validate_position(plan, position)
            occupant = self._placements.get(position)
            if occupant is not None:
                raise self._occupied_error(position, occupant)
            number = self._next_paper_session_number(plan)
            if number is None:
                raise AssignmentValidationError(
                    "Every planned paper session is already on the grid"
                )
            placed = PlacedSession(session_type=SessionType.PAPER, session_number=number)
            self._placements[position] = placed
            return placed

    def remove_from_position(self, position: GridPosition) -> Optional[PlacedSession]:
        with self._lock:
            return self._placements.pop(position, None)

    def auto_populate(self, plan: SchedulePlan) -> dict[GridPosition, PlacedSession]:
        """Rebuild the grid: a round table closes each slot while any remain."""
        with self._lock:
            self._placements.clear()
            round_tables = list(plan.round_tables)
            paper_sessions = list(plan.distribution.sessions)

            params = plan.parameters
            for position in iter_grid_positions(plan):
                if not round_tables and not paper_sessions:
                    break
                last_position = params.sessions_per_slot_by_day[position.day - 1] - 1
                if position.position == last_position and round_tables:
                    session = round_tables.pop(0)
                elif paper_sessions:
                    session = paper_sessions.pop(0)
                else:
                    continue
                self._placements[position] = PlacedSession(
                    session_type=session.session_type,
                    session_number=session.session_id,
                )

            logger.info(
                "Grid auto-populated | placed=%s | unplaced_papers=%s | unplaced_round_tables=%s",
                len(self._placements),
                len(paper_sessions),
                len(round_tables),
            )
            return dict(self._placements)

    def unassigned_round_tables(self, plan: SchedulePlan) -> list[int]:
        with self._lock:
            placed = {
                item.session_number
                for item in self._placements.values()
                if item.session_type is SessionType.ROUND_TABLE
            }
        return [
            session.session_id
            for session in plan.round_tables
            if session.session_id not in placed
        ]

    def grid(self, plan: SchedulePlan) -> list[GridCell]:
        """Every grid position with the plan's session for its occupant, if any."""
        with self._lock:
            cells = []
            for position in iter_grid_positions(plan):
                placed = self._placements.get(position)
                cells.append(
                    GridCell(
                        position=position,
                        session=planned_session(plan, placed) if placed is not None else None,
                    )
                )
            return cells

    # --- Paper assignments ---

    def _capacity_of(
        self,
        plan: SchedulePlan,
        session_id: int,
        paper_counts: Optional[Mapping[int, int]] = None,
    ) -> int:
        if paper_counts and paper_counts.get(session_id):
            return paper_counts[session_id]
        for session in plan.distribution.sessions:
            if session.session_id == session_id:
                return session.paper_count
        raise AssignmentValidationError(f"Paper session {session_id} is not in the plan")

    def assign_paper_to_session(
        self,
        plan: SchedulePlan,
        session_id: int,
        paper_id: str,
        paper_counts: Optional[Mapping[int, int]] = None,
    ) -> None:
        with self._lock:
            if session_id not in {session.session_id for session in plan.distribution.sessions}:
                raise AssignmentValidationError(f"Paper session {session_id} is not in the plan")
            capacity = self._capacity_of(plan, session_id, paper_counts)
            target = self._paper_assignments.setdefault(session_id, [])
            if paper_id in target:
                return
            if len(target) >= capacity:
                raise SessionFullError(
                    f"Paper session {session_id} already has {capacity} papers"
                )
            for other_id, paper_ids in self._paper_assignments.items():
                if other_id != session_id and paper_id in paper_ids:
                    paper_ids.remove(paper_id)
            target.append(paper_id)

    def remove_paper_from_session(self, session_id: int, paper_id: str) -> bool:
        with self._lock:
            paper_ids = self._paper_assignments.get(session_id, [])
            if paper_id not in paper_ids:
                return False
            paper_ids.remove(paper_id)
            return True

    def forget_paper(self, paper_id: str) -> None:
        with self._lock:
            for paper_ids in self._paper_assignments.values():
                if paper_id in paper_ids:
                    paper_ids.remove(paper_id)

    def auto_assign_papers(
        self,
        plan: SchedulePlan,
        papers: Sequence[Paper],
        paper_counts: Optional[Mapping[int, int]] = None,
    ) -> dict[int, list[str]]:
        """Fill sessions from scratch, matching categories before anything else."""
        with self._lock:
            self._paper_assignments.clear()
            pool = list(papers)
            sessions = plan.distribution.sessions

            for session in sessions:
                if not session.category:
                    continue
                capacity = self._capacity_of(plan, session.session_id, paper_counts)
                chosen = [paper for paper in pool if paper.category == session.category]
                chosen = chosen[:capacity]
                for paper in chosen:
                    pool.remove(paper)
                self._paper_assignments[session.session_id] = [paper.paper_id for paper in chosen]

            for session in sessions:
                if session.category:
                    continue
                capacity = self._capacity_of(plan, session.session_id, paper_counts)
                chosen, pool = pool[:capacity], pool[capacity:]
                self._paper_assignments[session.session_id] = [paper.paper_id for paper in chosen]

            logger.info(
                "Papers auto-assigned | sessions=%s | assigned=%s | unassigned=%s",
                len(sessions),
                len(papers) - len(pool),
                len(pool),
            )
            return self.paper_assignments()

    def clear_paper_assignments(self) -> None:
        with self._lock:
            self._paper_assignments.clear()
