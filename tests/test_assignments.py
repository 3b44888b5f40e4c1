from __future__ import annotations

import pytest

from backend.domain.constraints import build_schedule_parameters
from backend.domain.models import (
    GridPosition,
    Paper,
    PlacedSession,
    SchedulePlan,
    SessionCustomization,
    SessionType,
)
from backend.services.assignment_service import (
    AssignmentStore,
    AssignmentValidationError,
    PositionOccupiedError,
    SessionFullError,
    session_label,
)
from backend.services.planner_service import plan_schedule
from backend.utils.config import Settings


def make_plan(**form) -> SchedulePlan:
    defaults = {
        "convention_days": 1,
        "time_slots_per_day": 2,
        "sessions_per_time_slot": 3,
        "total_papers": 8,
        "total_round_tables": 2,
    }
    defaults.update(form)
    return plan_schedule(build_schedule_parameters(defaults, Settings()))


def make_paper(paper_id: str, category: str = "General") -> Paper:
    return Paper(
        paper_id=paper_id,
        title=f"Paper {paper_id}",
        student="Student",
        school="School",
        category=category,
    )


# --- grid ---

def test_auto_populate_closes_each_slot_with_a_round_table() -> None:
    plan = make_plan()
    store = AssignmentStore()

    placements = store.auto_populate(plan)

    assert {
        (position.slot, position.position): (placed.session_type, placed.session_number)
        for position, placed in placements.items()
    } == {
        (0, 0): (SessionType.PAPER, 1),
        (0, 1): (SessionType.PAPER, 2),
        (0, 2): (SessionType.ROUND_TABLE, 1),
        (1, 2): (SessionType.ROUND_TABLE, 2),
    }
    assert store.unassigned_round_tables(plan) == []


def test_auto_populate_with_one_position_per_slot_still_places_papers() -> None:
    plan = make_plan(time_slots_per_day=3, sessions_per_time_slot=1, total_round_tables=1)
    store = AssignmentStore()

    placements = store.auto_populate(plan)

    assert [
        (position.slot, placed.session_type)
        for position, placed in sorted(placements.items(), key=lambda item: item[0].slot)
    ] == [
        (0, SessionType.ROUND_TABLE),
        (1, SessionType.PAPER),
        (2, SessionType.PAPER),
    ]


def test_auto_populate_replaces_previous_placements() -> None:
    plan = make_plan()
    store = AssignmentStore()
    store.assign_round_table_to_position(plan, 2, GridPosition(day=1, slot=0, position=0))

    store.auto_populate(plan)

    assert store.placements()[GridPosition(day=1, slot=0, position=0)].session_type is SessionType.PAPER


def test_placed_paper_sessions_read_details_from_the_plan() -> None:
    plan = make_plan()
    store = AssignmentStore()
    position = GridPosition(day=1, slot=0, position=0)

    placed = store.assign_paper_session_to_position(plan, position)

    assert placed == PlacedSession(session_type=SessionType.PAPER, session_number=1)
    cell = store.grid(plan)[0]
    assert cell.session is not None
    assert cell.session.title == "Paper Session 1 (4 papers)"
    assert cell.session.paper_count == 4


def test_paper_sessions_reuse_the_lowest_free_number() -> None:
    plan = make_plan()
    store = AssignmentStore()
    first = GridPosition(day=1, slot=0, position=0)
    store.assign_paper_session_to_position(plan, first)
    store.assign_paper_session_to_position(plan, GridPosition(day=1, slot=0, position=1))
    store.remove_from_position(first)

    placed = store.assign_paper_session_to_position(plan, GridPosition(day=1, slot=1, position=0))
    assert placed.session_number == 1

    with pytest.raises(AssignmentValidationError):
        store.assign_paper_session_to_position(plan, GridPosition(day=1, slot=1, position=1))


def test_grid_reflects_a_recalculated_plan() -> None:
    store = AssignmentStore()
    store.auto_populate(make_plan())

    smaller = make_plan(
        total_papers=10,
        papers_per_session=5,
        min_papers_per_session=5,
        max_papers_per_session=5,
        total_round_tables=1,
    )
    cell = store.grid(smaller)[0]

    assert cell.session is not None
    assert cell.session.paper_count == 5
    assert cell.session.title == "Paper Session 1 (5 papers)"


def test_reconcile_drops_what_the_plan_no_longer_has() -> None:
    store = AssignmentStore()
    plan = make_plan()
    store.auto_populate(plan)
    for index in range(4):
        store.assign_paper_to_session(plan, 1, f"p{index}")
    store.assign_paper_to_session(plan, 2, "q1")

    shrunk = make_plan(
        time_slots_per_day=1,
        total_papers=3,
        papers_per_session=3,
        min_papers_per_session=3,
        max_papers_per_session=3,
        total_round_tables=1,
    )

    assert store.reconcile(shrunk)
    assert {
        (position.slot, position.position): (placed.session_type, placed.session_number)
        for position, placed in store.placements().items()
    } == {
        (0, 0): (SessionType.PAPER, 1),
        (0, 2): (SessionType.ROUND_TABLE, 1),
    }
    assert store.paper_assignments() == {1: ["p0", "p1", "p2"]}
    assert not store.reconcile(shrunk)


def test_reconcile_keeps_papers_within_a_raised_capacity() -> None:
    plan = make_plan()
    store = AssignmentStore(paper_assignments={1: ["p0", "p1", "p2", "p3", "p4"]})

    assert not store.reconcile(plan, paper_counts={1: 5})
    assert store.reconcile(plan)
    assert store.paper_assignments() == {1: ["p0", "p1", "p2", "p3"]}


def test_round_table_moves_when_reassigned() -> None:
    plan = make_plan()
    store = AssignmentStore()
    store.assign_round_table_to_position(plan, 1, GridPosition(day=1, slot=0, position=2))
    store.assign_round_table_to_position(plan, 1, GridPosition(day=1, slot=1, position=2))

    assert list(store.placements()) == [GridPosition(day=1, slot=1, position=2)]
    assert store.unassigned_round_tables(plan) == [2]


def test_occupied_position_is_rejected() -> None:
    plan = make_plan()
    store = AssignmentStore()
    position = GridPosition(day=1, slot=0, position=0)
    store.assign_paper_session_to_position(plan, position)

    with pytest.raises(PositionOccupiedError):
        store.assign_round_table_to_position(plan, 1, position)
    with pytest.raises(PositionOccupiedError):
        store.assign_paper_session_to_position(plan, position)


@pytest.mark.parametrize(
    "rt_id, position",
    [
        (3, GridPosition(day=1, slot=0, position=0)),
        (0, GridPosition(day=1, slot=0, position=0)),
        (1, GridPosition(day=2, slot=0, position=0)),
        (1, GridPosition(day=1, slot=2, position=0)),
        (1, GridPosition(day=1, slot=0, position=3)),
    ],
)
def test_positions_outside_the_plan_are_rejected(rt_id: int, position: GridPosition) -> None:
    with pytest.raises(AssignmentValidationError):
        AssignmentStore().assign_round_table_to_position(make_plan(), rt_id, position)


def test_round_table_takes_first_free_position_in_slot() -> None:
    plan = make_plan()
    store = AssignmentStore()
    store.assign_paper_session_to_position(plan, GridPosition(day=1, slot=0, position=0))
    store.assign_paper_session_to_position(plan, GridPosition(day=1, slot=0, position=1))

    assert store.assign_round_table_to_slot(plan, 1, 1, 0) == GridPosition(day=1, slot=0, position=2)
    with pytest.raises(PositionOccupiedError):
        store.assign_round_table_to_slot(plan, 2, 1, 0)


def test_unassign_round_table() -> None:
    plan = make_plan()
    store = AssignmentStore()
    store.assign_round_table_to_slot(plan, 2, 1, 1)

    assert store.unassign_round_table(2)
    assert not store.unassign_round_table(2)
    assert store.unassigned_round_tables(plan) == [1, 2]


def test_grid_lists_every_position() -> None:
    plan = make_plan()
    store = AssignmentStore()
    store.assign_round_table_to_slot(plan, 1, 1, 1)

    cells = store.grid(plan)

    assert len(cells) == 6
    assert cells[0].position == GridPosition(day=1, slot=0, position=0)
    assert cells[0].session is None
    assert cells[3].session is not None
    assert cells[3].session.session_type is SessionType.ROUND_TABLE


# --- paper assignments ---

def test_full_session_rejects_more_papers() -> None:
    plan = make_plan()
    store = AssignmentStore()
    for index in range(4):
        store.assign_paper_to_session(plan, 1, f"p{index}")

    with pytest.raises(SessionFullError):
        store.assign_paper_to_session(plan, 1, "p9")


def test_custom_paper_count_sets_session_capacity() -> None:
    plan = make_plan()
    store = AssignmentStore()
    for index in range(5):
        store.assign_paper_to_session(plan, 1, f"p{index}", paper_counts={1: 5})

    with pytest.raises(SessionFullError):
        store.assign_paper_to_session(plan, 1, "p9", paper_counts={1: 5})

    store.assign_paper_to_session(plan, 2, "q0", paper_counts={2: 1})
    with pytest.raises(SessionFullError):
        store.assign_paper_to_session(plan, 2, "q1", paper_counts={2: 1})


def test_auto_assign_respects_custom_paper_counts() -> None:
    plan = make_plan()
    papers = [make_paper(f"p{index}") for index in range(8)]

    assignments = AssignmentStore().auto_assign_papers(plan, papers, paper_counts={1: 6})

    assert assignments == {
        1: ["p0", "p1", "p2", "p3", "p4", "p5"],
        2: ["p6", "p7"],
    }


def test_assigning_moves_paper_between_sessions() -> None:
    plan = make_plan()
    store = AssignmentStore()
    store.assign_paper_to_session(plan, 1, "p1")
    store.assign_paper_to_session(plan, 2, "p1")

    assert store.paper_assignments() == {2: ["p1"]}


def test_unknown_session_is_rejected() -> None:
    with pytest.raises(AssignmentValidationError):
        AssignmentStore().assign_paper_to_session(make_plan(), 9, "p1")


def test_remove_and_clear_paper_assignments() -> None:
    plan = make_plan()
    store = AssignmentStore()
    store.assign_paper_to_session(plan, 1, "p1")
    store.assign_paper_to_session(plan, 1, "p2")

    assert store.remove_paper_from_session(1, "p1")
    assert not store.remove_paper_from_session(1, "p1")
    assert store.paper_assignments() == {1: ["p2"]}

    store.clear_paper_assignments()
    assert store.paper_assignments() == {}


def test_auto_assign_fills_sessions_in_order() -> None:
    plan = make_plan()
    papers = [make_paper(f"p{index}") for index in range(5)]

    assignments = AssignmentStore().auto_assign_papers(plan, papers)

    assert assignments == {1: ["p0", "p1", "p2", "p3"], 2: ["p4"]}


def test_auto_assign_matches_categories_first() -> None:
    plan = make_plan(
        categories=[
            {"name": "Art", "paper_count": 4},
            {"name": "History", "paper_count": 4},
        ]
    )
    papers = [
        make_paper("h1", "History"),
        make_paper("a1", "Art"),
        make_paper("g1", "General"),
        make_paper("a2", "Art"),
        make_paper("h2", "History"),
    ]

    assignments = AssignmentStore().auto_assign_papers(plan, papers)

    assert assignments == {1: ["a1", "a2"], 2: ["h1", "h2"]}


# --- labels ---

def test_session_label_prefers_custom_name() -> None:
    customizations = {
        "paper-1": SessionCustomization(session_key="paper-1", custom_name="Opening Papers"),
        "rt-1": SessionCustomization(session_key="rt-1", custom_name="   "),
    }

    assert session_label(SessionType.PAPER, 1, customizations) == "Opening Papers"
    assert session_label(SessionType.ROUND_TABLE, 1, customizations) == "Round Table 1"
    assert session_label(SessionType.PAPER, 2) == "Paper Session 2"
