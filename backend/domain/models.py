"""Domain models for convention session planning and scheduling."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


DayOverrides = tuple[tuple[int, int], ...]


class SessionType(str, Enum):
    PAPER = "paper"
    ROUND_TABLE = "round_table"


class SizeLabel(str, Enum):
    SMALL = "small"
    STANDARD = "standard"
    LARGE = "large"


class PersonRole(str, Enum):
    MODERATOR = "moderator"
    CHAIR = "chair"


@dataclass(frozen=True)
class Category:
    name: str
    paper_count: int


@dataclass(frozen=True)
class PaperBounds:
    min_papers: int
    max_papers: int
    standard_papers: int


@dataclass(frozen=True)
class ScheduleParameters:
    """Inputs for one planning run. Rebuilt from form state on every change."""

    convention_days: int
    time_slots_per_day: int
    available_rooms: int
    sessions_per_time_slot: int
    total_papers: int
    papers_per_session: int
    min_papers_per_session: int
    max_papers_per_session: int
    total_round_tables: int
    round_table_duration: int
    categories: tuple[Category, ...] = ()
    # Per-day overrides as sorted (day, value) pairs.
    custom_time_slots: DayOverrides = ()
    custom_rooms_per_day: DayOverrides = ()
    custom_sessions_per_slot: DayOverrides = ()

    @property
    def has_custom_daily_config(self) -> bool:
        return bool(
            self.custom_time_slots or self.custom_rooms_per_day or self.custom_sessions_per_slot
        )

    def _per_day(self, overrides: DayOverrides, uniform: int) -> tuple[int, ...]:
        lookup = dict(overrides)
        return tuple(
            lookup.get(day) or uniform
            for day in range(1, self.convention_days + 1)
        )

    @property
    def time_slots_by_day(self) -> tuple[int, ...]:
        return self._per_day(self.custom_time_slots, self.time_slots_per_day)

    @property
    def rooms_by_day(self) -> tuple[int, ...]:
        return self._per_day(self.custom_rooms_per_day, self.available_rooms)

    @property
    def sessions_per_slot_by_day(self) -> tuple[int, ...]:
        return self._per_day(self.custom_sessions_per_slot, self.sessions_per_time_slot)

    @property
    def total_time_slots(self) -> int:
        return sum(self.time_slots_by_day)

    @property
    def round_table_sessions(self) -> int:
        return self.total_round_tables * self.round_table_duration

    def to_dict(self) -> dict[str, Any]:
        payload = as_plain_dict(self)
        for name in ("custom_time_slots", "custom_rooms_per_day", "custom_sessions_per_slot"):
            payload[name] = dict(getattr(self, name))
        return payload


@dataclass(frozen=True)
class Session:
    session_id: int
    paper_count: int
    title: str
    session_type: SessionType = SessionType.PAPER
    size_label: Optional[SizeLabel] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class CategoryStats:
    sessions: int
    papers: int


@dataclass(frozen=True)
class SessionStats:
    small: int
    standard: int
    large: int
    average_papers: float
    min_papers: int
    max_papers: int
    by_category: dict[str, CategoryStats] = field(default_factory=dict)


@dataclass(frozen=True)
class PaperDistribution:
    sessions: tuple[Session, ...]
    total_papers: int
    stats: SessionStats
    used_categories: bool = False
    category_mismatch: bool = False


@dataclass(frozen=True)
class DayCapacity:
    day: int
    time_slots: int
    rooms: int
    sessions_per_slot: int
    capacity: int
    sessions_scheduled: int
    rooms_used: int
    utilization_rate: float


@dataclass(frozen=True)
class ScheduleResult:
    paper_sessions: int
    round_table_sessions: int
    total_sessions: int
    total_time_slots: int
    total_capacity: int
    total_room_slots: int
    min_rooms_needed: int
    is_feasible: bool
    utilization_rate: float
    sessions_per_day: int
    rooms_used_per_day: int
    excess_rooms: int
    days: tuple[DayCapacity, ...]
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class SchedulePlan:
    parameters: ScheduleParameters
    distribution: PaperDistribution
    round_tables: tuple[Session, ...]
    result: ScheduleResult

    def to_dict(self) -> dict[str, Any]:
        payload = as_plain_dict(self)
        payload["parameters"] = self.parameters.to_dict()
        return payload


@dataclass(frozen=True)
class GridPosition:
    """A seat in the schedule grid. Day is 1-based; slot and position are 0-based."""

    day: int
    slot: int
    position: int


@dataclass(frozen=True)
class PlacedSession:
    """What occupies a grid position. Session details always come from the current plan."""

    session_type: SessionType
    session_number: int


@dataclass(frozen=True)
class TimeSlotSetting:
    """Custom label and start time (24h 'HH:MM') for one slot of one day."""

    day: int
    slot: int
    label: str = ""
    start_time: str = ""


@dataclass(frozen=True)
class Paper:
    paper_id: str
    title: str
    student: str
    school: str
    category: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Person:
    person_id: int
    role: PersonRole
    name: str
    school: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Participant:
    name: str
    school: str


@dataclass(frozen=True)
class SessionCustomization:
    session_key: str
    session_type: Optional[SessionType] = None
    paper_count: Optional[int] = None
    category: Optional[str] = None
    preferred_room: str = ""
    notes: str = ""
    moderator_name: str = ""
    moderator_school: str = ""
    chair_name: str = ""
    chair_school: str = ""
    custom_name: str = ""
    participants: tuple[Participant, ...] = ()


@dataclass(frozen=True)
class Convention:
    convention_id: str
    name: str
    parameters: ScheduleParameters
    created_at: str
    updated_at: str


def _plain_factory(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in items}


def as_plain_dict(instance: Any) -> dict[str, Any]:
    """Convert a domain dataclass into JSON-ready primitives."""
    return asdict(instance, dict_factory=_plain_factory)
