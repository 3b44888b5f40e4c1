"""Session distribution and room capacity planning.

Everything here is a pure function of its inputs. Assignment state (grid
placements, paper-to-session mappings) lives in the assignment service and
is never touched by the planner.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Any, Mapping, Optional, Sequence

from backend.domain.constraints import build_schedule_parameters, normalize_paper_bounds
from backend.domain.models import (
    CategoryStats,
    DayCapacity,
    PaperBounds,
    PaperDistribution,
    ScheduleParameters,
    SchedulePlan,
    ScheduleResult,
    Session,
    SessionStats,
    SessionType,
    SizeLabel,
    TimeSlotSetting,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def paper_bounds_for(params: ScheduleParameters) -> PaperBounds:
    return normalize_paper_bounds(
        min_papers=params.min_papers_per_session,
        max_papers=params.max_papers_per_session,
        target_papers=params.papers_per_session,
    )


def categorize_session(paper_count: int, bounds: PaperBounds) -> SizeLabel:
    """Label a session by size. Display only; distribution ignores it."""
    if paper_count <= bounds.min_papers + 1:
        return SizeLabel.SMALL
    if paper_count >= bounds.max_papers - 1:
        return SizeLabel.LARGE
    return SizeLabel.STANDARD


def partition_papers(total_papers: int, bounds: PaperBounds) -> list[int]:
    """Split papers into session sizes with a single greedy left-to-right pass.

    Sizes stay within [min, max] and lean towards the standard size. A short
    tail is folded into the previous session when that keeps it under the
    maximum; otherwise one undersized final session is accepted.
    """
    sizes: list[int] = []
    remaining = total_papers
    while remaining > 0:
        if remaining <= bounds.max_papers:
            if remaining >= bounds.min_papers:
                sizes.append(remaining)
            elif sizes and sizes[-1] + remaining <= bounds.max_papers:
                sizes[-1] += remaining
            else:
                sizes.append(remaining)
            break

        estimated_sessions_left = math.ceil(remaining / bounds.standard_papers)
        optimal_size = math.ceil(remaining / estimated_sessions_left)
        size = max(bounds.min_papers, min(bounds.max_papers, optimal_size))
        if 0 < remaining - size < bounds.min_papers:
            size = max(bounds.min_papers, remaining - bounds.min_papers)
        sizes.append(size)
        remaining -= size
    return sizes


def _paper_session(
    session_id: int,
    paper_count: int,
    bounds: PaperBounds,
    category: Optional[str] = None,
) -> Session:
    title = f"Paper Session {session_id} ({paper_count} papers)"
    if category:
        title = f"{title} - {category}"
    return Session(
        session_id=session_id,
        paper_count=paper_count,
        title=title,
        session_type=SessionType.PAPER,
        size_label=categorize_session(paper_count, bounds),
        category=category,
    )


def compute_session_stats(sessions: Sequence[Session], bounds: PaperBounds) -> SessionStats:
    counts = [session.paper_count for session in sessions]
    labels = [categorize_session(count, bounds) for count in counts]

    by_category: dict[str, list[int]] = defaultdict(list)
    for session in sessions:
        if session.category:
            by_category[session.category].append(session.paper_count)

    return SessionStats(
        small=labels.count(SizeLabel.SMALL),
        standard=labels.count(SizeLabel.STANDARD),
        large=labels.count(SizeLabel.LARGE),
        average_papers=round(sum(counts) / len(counts), 1) if counts else 0.0,
        min_papers=min(counts) if counts else 0,
        max_papers=max(counts) if counts else 0,
        by_category={
            name: CategoryStats(sessions=len(sizes), papers=sum(sizes))
            for name, sizes in by_category.items()
        },
    )


def _distribute_by_category(params: ScheduleParameters, bounds: PaperBounds) -> list[Session]:
    ranked = sorted(
        (category for category in params.categories if category.paper_count > 0),
        key=lambda category: category.paper_count,
        reverse=True,
    )
    sessions: list[Session] = []
    for category in ranked:
        for size in partition_papers(category.paper_count, bounds):
            sessions.append(
                _paper_session(len(sessions) + 1, size, bounds, category=category.name)
            )
    return sessions


def distribute_papers(params: ScheduleParameters) -> PaperDistribution:
    """Partition ``total_papers`` into paper sessions.

    When categories are given and their counts add up to ``total_papers``
    each category is split on its own. Any mismatch falls back to the global
    split and is reported through ``category_mismatch``.
    """
    bounds = paper_bounds_for(params)
    used_categories = False
    category_mismatch = False

    if params.categories:
        category_total = sum(category.paper_count for category in params.categories)
        if category_total == params.total_papers:
            used_categories = True
        else:
            category_mismatch = True
            logger.warning(
                "Category paper counts do not match total; using global distribution | "
                "category_total=%s | total_papers=%s",
                category_total,
                params.total_papers,
            )

    if used_categories:
        sessions = _distribute_by_category(params, bounds)
    else:
        sessions = [
            _paper_session(index, size, bounds)
            for index, size in enumerate(partition_papers(params.total_papers, bounds), start=1)
        ]

    return PaperDistribution(
        sessions=tuple(sessions),
        total_papers=sum(session.paper_count for session in sessions),
        stats=compute_session_stats(sessions, bounds),
        used_categories=used_categories,
        category_mismatch=category_mismatch,
    )


def build_round_table_sessions(params: ScheduleParameters) -> tuple[Session, ...]:
    return tuple(
        Session(
            session_id=number,
            paper_count=0,
            title=f"Round Table {number}",
            session_type=SessionType.ROUND_TABLE,
        )
        for number in range(1, params.round_table_sessions + 1)
    )


def _utilization(sessions: int, capacity: int) -> float:
    if capacity <= 0:
        return 0.0
    return round(sessions / capacity * 100, 1)


def _day_breakdown(params: ScheduleParameters, total_sessions: int) -> tuple[DayCapacity, ...]:
    days: list[DayCapacity] = []
    remaining = total_sessions
    for index, (slots, rooms, sessions_per_slot) in enumerate(
        zip(params.time_slots_by_day, params.rooms_by_day, params.sessions_per_slot_by_day),
        start=1,
    ):
        capacity = slots * sessions_per_slot
        scheduled = min(remaining, capacity)
        remaining -= scheduled
        days.append(
            DayCapacity(
                day=index,
                time_slots=slots,
                rooms=rooms,
                sessions_per_slot=sessions_per_slot,
                capacity=capacity,
                sessions_scheduled=scheduled,
                rooms_used=math.ceil(scheduled / slots) if slots > 0 else 0,
                utilization_rate=_utilization(scheduled, capacity),
            )
        )
    return tuple(days)


def _suggestions(
    params: ScheduleParameters,
    total_sessions: int,
    min_rooms_needed: int,
) -> tuple[str, ...]:
    suggestions = [
        f"Increase the number of available rooms to at least {min_rooms_needed}",
        f"Add more time slots per day (currently {params.time_slots_per_day})",
    ]
    room_slots_per_day = params.time_slots_per_day * params.available_rooms
    if room_slots_per_day > 0:
        suggestions.append(
            f"Extend the convention to {math.ceil(total_sessions / room_slots_per_day)} days"
        )
    paper_positions = (
        params.total_time_slots * params.available_rooms - params.round_table_sessions
    )
    if paper_positions > 0 and params.total_papers > 0:
        suggestions.append(
            "Increase papers per session to "
            f"{math.ceil(params.total_papers / paper_positions)}"
        )
    return tuple(suggestions)


def compute_capacity(params: ScheduleParameters, total_sessions: int) -> ScheduleResult:
    """Check whether ``total_sessions`` fit and report utilization.

    ``total_sessions`` counts paper sessions plus round-table slot units.
    """
    total_time_slots = params.total_time_slots

    if params.has_custom_daily_config:
        total_capacity = 0
        total_room_slots = 0
        min_rooms_needed = 0
        for slots, rooms, sessions_per_slot in zip(
            params.time_slots_by_day, params.rooms_by_day, params.sessions_per_slot_by_day
        ):
            total_capacity += slots * sessions_per_slot
            total_room_slots += slots * rooms
            min_rooms_needed = max(min_rooms_needed, min(rooms, sessions_per_slot))
    else:
        total_capacity = total_time_slots * params.sessions_per_time_slot
        total_room_slots = total_time_slots * params.available_rooms
        min_rooms_needed = (
            math.ceil(total_sessions / total_time_slots) if total_time_slots > 0 else 0
        )

    if total_capacity > 0:
        is_feasible = total_sessions <= total_capacity
    else:
        is_feasible = total_sessions == 0

    sessions_per_day = (
        math.ceil(total_sessions / params.convention_days) if params.convention_days > 0 else 0
    )
    if params.has_custom_daily_config:
        rooms_used_per_day = max(params.rooms_by_day, default=0)
    elif params.time_slots_per_day > 0:
        rooms_used_per_day = math.ceil(sessions_per_day / params.time_slots_per_day)
    else:
        rooms_used_per_day = 0

    return ScheduleResult(
        paper_sessions=max(0, total_sessions - params.round_table_sessions),
        round_table_sessions=params.round_table_sessions,
        total_sessions=total_sessions,
        total_time_slots=total_time_slots,
        total_capacity=total_capacity,
        total_room_slots=total_room_slots,
        min_rooms_needed=min_rooms_needed,
        is_feasible=is_feasible,
        utilization_rate=_utilization(total_sessions, total_capacity),
        sessions_per_day=sessions_per_day,
        rooms_used_per_day=rooms_used_per_day,
        excess_rooms=params.available_rooms - min_rooms_needed,
        days=_day_breakdown(params, total_sessions),
        suggestions=() if is_feasible else _suggestions(params, total_sessions, min_rooms_needed),
    )


def plan_schedule(params: ScheduleParameters) -> SchedulePlan:
    distribution = distribute_papers(params)
    round_tables = build_round_table_sessions(params)
    result = compute_capacity(params, len(distribution.sessions) + len(round_tables))
    logger.info(
        "Plan computed | paper_sessions=%s | round_table_sessions=%s | capacity=%s | "
        "feasible=%s | utilization=%.1f",
        result.paper_sessions,
        result.round_table_sessions,
        result.total_capacity,
        result.is_feasible,
        result.utilization_rate,
    )
    return SchedulePlan(
        parameters=params,
        distribution=distribution,
        round_tables=round_tables,
        result=result,
    )


def slot_label(slot_index: int, labels: str) -> str:
    if 0 <= slot_index < len(labels):
        return labels[slot_index]
    return f"Slot {slot_index + 1}"


def format_start_time(start_time: str) -> str:
    """'13:05' -> '1:05 PM'. Empty input gives an empty string."""
    if not start_time:
        return ""
    hours, minutes = start_time.split(":")
    hour = int(hours)
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = 12 if hour == 0 else hour - 12 if hour > 12 else hour
    return f"{display_hour}:{minutes} {suffix}"


def format_time_slot(
    slot_index: int,
    labels: str,
    setting: Optional[TimeSlotSetting] = None,
) -> str:
    """Custom slot label when set, else the slot letter; start time appended in parentheses."""
    label = slot_label(slot_index, labels)
    if setting is None:
        return label
    if setting.label.strip():
        label = setting.label.strip()
    if setting.start_time:
        return f"{label} ({format_start_time(setting.start_time)})"
    return label


class SessionPlanner:
    """Entry point for planning runs built from raw form values."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def parameters_from_form(self, raw: Mapping[str, Any]) -> ScheduleParameters:
        return build_schedule_parameters(raw, self._settings)

    def distribute_papers(self, params: ScheduleParameters) -> PaperDistribution:
        return distribute_papers(params)

    def compute_capacity(self, params: ScheduleParameters, total_sessions: int) -> ScheduleResult:
        return compute_capacity(params, total_sessions)

    def plan(self, params: ScheduleParameters) -> SchedulePlan:
        return plan_schedule(params)

    def slot_label(self, slot_index: int) -> str:
        return slot_label(slot_index, self._settings.time_slot_labels)

    def format_time_slot(
        self,
        slot_index: int,
        setting: Optional[TimeSlotSetting] = None,
    ) -> str:
        return format_time_slot(slot_index, self._settings.time_slot_labels, setting)
