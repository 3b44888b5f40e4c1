"""Tests for planning form coercion and paper bound normalization."""

from __future__ import annotations

import pytest

from backend.domain.constraints import (
    build_schedule_parameters,
    coerce_categories,
    coerce_day_overrides,
    coerce_int,
    normalize_paper_bounds,
)
from backend.domain.models import Category, PaperBounds
from backend.utils.config import Settings


# --- coerce_int ---

@pytest.mark.parametrize(
    "raw, expected",
    [
        (7, 7),
        ("7", 7),
        (" 4 ", 4),
        ("3.7", 3),
        (2.9, 2),
    ],
)
def test_coerce_int_accepts_positive_numbers(raw, expected) -> None:
    assert coerce_int(raw, 5) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "abc", "0", "-3", 0, -1, True, float("nan"), float("inf"), [1]],
)
def test_coerce_int_falls_back_to_default(raw) -> None:
    assert coerce_int(raw, 5) == 5


# --- normalize_paper_bounds ---

def test_swapped_bounds_are_reordered() -> None:
    assert normalize_paper_bounds(6, 2, 4) == PaperBounds(
        min_papers=2,
        max_papers=6,
        standard_papers=4,
    )


def test_standard_size_is_clamped_into_bounds() -> None:
    assert normalize_paper_bounds(2, 6, 10).standard_papers == 6
    assert normalize_paper_bounds(3, 6, 1).standard_papers == 3


def test_zero_bounds_never_produce_empty_sessions() -> None:
    bounds = normalize_paper_bounds(0, 0, 0)
    assert bounds.min_papers == 1
    assert bounds.max_papers == 1
    assert bounds.standard_papers == 1


# --- per-day overrides and categories ---

def test_day_overrides_keep_only_positive_entries() -> None:
    overrides = coerce_day_overrides({"2": "5", "1": 4, "x": 3, "3": -1, "4": 0})
    assert overrides == ((1, 4), (2, 5))


def test_day_overrides_accept_missing_input() -> None:
    assert coerce_day_overrides(None) == ()


def test_day_overrides_accept_stored_pairs() -> None:
    assert coerce_day_overrides([[3, 2], ["1", "6"], [2]]) == ((1, 6), (3, 2))


def test_categories_are_trimmed_and_unnamed_entries_dropped() -> None:
    categories = coerce_categories(
        [
            {"name": " Physics ", "paper_count": "5"},
            {"name": "", "paper_count": 3},
            {"name": "Biology", "paperCount": 2},
            {"name": "History", "paper_count": "lots"},
            "junk",
        ]
    )
    assert categories == (
        Category(name="Physics", paper_count=5),
        Category(name="Biology", paper_count=2),
        Category(name="History", paper_count=0),
    )


# --- build_schedule_parameters ---

def test_empty_form_uses_configured_defaults() -> None:
    settings = Settings()
    params = build_schedule_parameters({}, settings)

    assert params.convention_days == settings.default_convention_days
    assert params.time_slots_per_day == settings.default_time_slots_per_day
    assert params.available_rooms == settings.default_available_rooms
    assert params.sessions_per_time_slot == settings.default_sessions_per_time_slot
    assert params.papers_per_session == settings.default_papers_per_session
    assert params.min_papers_per_session == settings.default_min_papers_per_session
    assert params.max_papers_per_session == settings.default_max_papers_per_session
    assert params.round_table_duration == settings.default_round_table_duration
    assert params.total_papers == 0
    assert params.total_round_tables == 0
    assert params.categories == ()
    assert not params.has_custom_daily_config


def test_invalid_form_values_never_raise() -> None:
    params = build_schedule_parameters(
        {
            "convention_days": "-2",
            "time_slots_per_day": "four",
            "available_rooms": None,
            "total_papers": "30",
            "total_round_tables": "2",
            "round_table_duration": "2",
        },
        Settings(),
    )
    assert params.convention_days == 3
    assert params.time_slots_per_day == 4
    assert params.available_rooms == 10
    assert params.total_papers == 30
    assert params.round_table_sessions == 4


def test_overrides_shape_the_per_day_layout() -> None:
    params = build_schedule_parameters(
        {
            "convention_days": 3,
            "time_slots_per_day": 4,
            "custom_time_slots": {"2": 2},
            "custom_rooms_per_day": {"3": 6},
        },
        Settings(),
    )
    assert params.has_custom_daily_config
    assert params.time_slots_by_day == (4, 2, 4)
    assert params.rooms_by_day == (10, 10, 6)
    assert params.sessions_per_slot_by_day == (3, 3, 3)
    assert params.total_time_slots == 10


def test_parameters_are_immutable_and_hashable() -> None:
    raw = {"convention_days": 2, "custom_time_slots": {"2": 2}}
    params = build_schedule_parameters(raw, Settings())

    assert params.custom_time_slots == ((2, 2),)
    assert hash(params) == hash(build_schedule_parameters(raw, Settings()))
    with pytest.raises(TypeError):
        params.custom_time_slots[0] = (1, 9)  # type: ignore[index]
    with pytest.raises(AttributeError):
        params.custom_time_slots = ()  # type: ignore[misc]
    assert params.to_dict()["custom_time_slots"] == {2: 2}
