"""Input coercion and bound normalization for planning parameters.

Form inputs never fail a calculation: anything missing, unparsable, zero or
negative silently becomes the field's default.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from backend.domain.models import Category, DayOverrides, PaperBounds, ScheduleParameters
from backend.utils.config import Settings, get_settings


def coerce_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        if isinstance(value, str):
            text = value.strip()
            parsed = int(float(text)) if text else 0
        else:
            parsed = int(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if parsed <= 0:
        return default
    return parsed


def normalize_paper_bounds(
    min_papers: int,
    max_papers: int,
    target_papers: int,
) -> PaperBounds:
    lower = max(1, min(min_papers, max_papers))
    upper = max(lower, min_papers, max_papers)
    return PaperBounds(
        min_papers=lower,
        max_papers=upper,
        standard_papers=max(lower, min(upper, target_papers)),
    )


def coerce_day_overrides(raw: Any) -> DayOverrides:
    """Keep positive day -> positive value entries; everything else is dropped.

    Accepts a mapping from the form or the stored list of ``[day, value]`` pairs.
    """
    if isinstance(raw, Mapping):
        items: Iterable[Any] = raw.items()
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        return ()

    overrides: dict[int, int] = {}
    for item in items:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            continue
        day_number = coerce_int(item[0], 0)
        count = coerce_int(item[1], 0)
        if day_number > 0 and count > 0:
            overrides[day_number] = count
    return tuple(sorted(overrides.items()))


def coerce_categories(raw: Optional[Iterable[Any]]) -> tuple[Category, ...]:
    categories: list[Category] = []
    for item in raw or ():
        if isinstance(item, Category):
            categories.append(item)
            continue
        if not isinstance(item, Mapping):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        paper_count = coerce_int(item.get("paper_count", item.get("paperCount")), 0)
        categories.append(Category(name=name, paper_count=paper_count))
    return tuple(categories)


def build_schedule_parameters(
    raw: Mapping[str, Any],
    settings: Optional[Settings] = None,
) -> ScheduleParameters:
    """Coerce loosely typed form values into planner parameters."""
    settings = settings or get_settings()
    return ScheduleParameters(
        convention_days=coerce_int(raw.get("convention_days"), settings.default_convention_days),
        time_slots_per_day=coerce_int(
            raw.get("time_slots_per_day"), settings.default_time_slots_per_day
        ),
        available_rooms=coerce_int(raw.get("available_rooms"), settings.default_available_rooms),
        sessions_per_time_slot=coerce_int(
            raw.get("sessions_per_time_slot"), settings.default_sessions_per_time_slot
        ),
        total_papers=coerce_int(raw.get("total_papers"), 0),
        papers_per_session=coerce_int(
            raw.get("papers_per_session"), settings.default_papers_per_session
        ),
        min_papers_per_session=coerce_int(
            raw.get("min_papers_per_session"), settings.default_min_papers_per_session
        ),
        max_papers_per_session=coerce_int(
            raw.get("max_papers_per_session"), settings.default_max_papers_per_session
        ),
        total_round_tables=coerce_int(raw.get("total_round_tables"), 0),
        round_table_duration=coerce_int(
            raw.get("round_table_duration"), settings.default_round_table_duration
        ),
        categories=coerce_categories(raw.get("categories")),
        custom_time_slots=coerce_day_overrides(raw.get("custom_time_slots")),
        custom_rooms_per_day=coerce_day_overrides(raw.get("custom_rooms_per_day")),
        custom_sessions_per_slot=coerce_day_overrides(raw.get("custom_sessions_per_slot")),
    )
