from __future__ import annotations

from dataclasses import replace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.controllers.convention_controller import router as convention_router
from backend.controllers.planner_controller import router as planner_router
from backend.repository.data_repository import DataRepository
from backend.services.planner_service import SessionPlanner
from backend.services.workspace_service import ConventionWorkspaceService
from backend.utils.config import get_settings


PAPERS_CSV = (
    "title,student,school,category\n"
    "Waves,Cy Lee,East High,Science\n"
    "Tides,Di Park,West High,Science\n"
    '"Maps, Old and New",Ed Fox,North High,History\n'
    "Orbits,Flo Kim,South High,\n"
    "Glaciers,Gus Day,East High,Science\n"
)

LAYOUT = {"convention_days": 1, "time_slots_per_day": 2, "sessions_per_time_slot": 3}


def _build_test_app(tmp_path) -> tuple[FastAPI, DataRepository]:
    get_settings.cache_clear()
    settings = replace(get_settings(), database_path=tmp_path / "api_flow.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    planner = SessionPlanner(settings)

    app = FastAPI()
    app.include_router(planner_router)
    app.include_router(convention_router)
    app.state.repository = repository
    app.state.planner = planner
    app.state.workspace_service = ConventionWorkspaceService(
        repository=repository,
        planner=planner,
        settings=settings,
    )
    return app, repository


def test_calculate_returns_full_plan(tmp_path) -> None:
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post("/calculate", json={"total_papers": 30, "total_round_tables": "2"})

    assert response.status_code == 200
    body = response.json()
    assert body["distribution"]["total_papers"] == 30
    assert len(body["distribution"]["sessions"]) == 7
    assert len(body["round_tables"]) == 2
    assert body["result"]["total_sessions"] == 9
    assert body["result"]["is_feasible"] is True
    assert body["result"]["total_capacity"] == 36


def test_calculate_tolerates_garbage_input(tmp_path) -> None:
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post(
        "/calculate",
        json={"total_papers": "abc", "convention_days": -1, "available_rooms": 2.5},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["parameters"]["convention_days"] == 3
    assert body["parameters"]["available_rooms"] == 2
    assert body["distribution"]["sessions"] == []


def test_distribute_reports_category_mismatch(tmp_path) -> None:
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post(
        "/distribute",
        json={"total_papers": 12, "categories": [{"name": "Art", "paper_count": 5}]},
    )

    assert response.status_code == 200
    assert response.json()["category_mismatch"] is True
    assert [item["paper_count"] for item in response.json()["sessions"]] == [4, 4, 4]


def test_convention_workspace_flow(tmp_path) -> None:
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)

    created = client.post(
        "/conventions",
        json={
            "name": "Spring Symposium",
            "parameters": {
                "convention_days": 1,
                "time_slots_per_day": 2,
                "sessions_per_time_slot": 3,
                "total_papers": 8,
                "total_round_tables": 1,
            },
        },
    )
    assert created.status_code == 201
    convention_id = created.json()["convention_id"]
    base = f"/conventions/{convention_id}"

    assert [item["name"] for item in client.get("/conventions").json()] == ["Spring Symposium"]
    assert client.get("/conventions/unknown").status_code == 404

    plan = client.post(f"{base}/calculate").json()
    assert [item["paper_count"] for item in plan["distribution"]["sessions"]] == [4, 4]

    rooms = client.put(f"{base}/rooms", json={"room_names": {"1": "Main Hall"}})
    assert rooms.status_code == 200
    assert rooms.json() == {"room_names": {"1": "Main Hall"}}

    imported = client.post(f"{base}/papers/import", json={"csv_text": PAPERS_CSV})
    assert imported.status_code == 201
    assert imported.json()["imported"] == 5
    assert client.post(f"{base}/papers/import", json={"csv_text": ""}).status_code == 400

    exported = client.get(f"{base}/papers/export")
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    assert exported.text.splitlines()[0] == "Title,Student,School,Category"
    assert '"Maps, Old and New","Ed Fox","North High","History"' in exported.text

    moderator = client.post(
        f"{base}/people/moderators",
        json={"name": "Zoe Hart", "school": "North High"},
    )
    assert moderator.status_code == 201
    assert moderator.json()["role"] == "moderator"
    assert len(client.get(f"{base}/people/moderators").json()) == 1
    assert client.get(f"{base}/people/chairs").json() == []
    assert client.post(f"{base}/people/judges", json={"name": "X", "school": "Y"}).status_code == 422
    person_id = moderator.json()["person_id"]
    assert client.delete(f"{base}/people/moderators/{person_id}").status_code == 204
    assert client.delete(f"{base}/people/moderators/{person_id}").status_code == 404

    customized = client.put(f"{base}/sessions/paper-1", json={"custom_name": "Opening Papers"})
    assert customized.status_code == 200
    assert customized.json()["session_type"] == "paper"
    sessions = client.get(f"{base}/sessions").json()
    assert [item["label"] for item in sessions] == [
        "Opening Papers",
        "Paper Session 2",
        "Round Table 1",
    ]

    populated = client.post(f"{base}/schedule/auto-populate")
    assert populated.status_code == 200
    assert repository.load_schedule_assignments(convention_id) != {}

    schedule = client.get(f"{base}/schedule").json()
    first_cell = schedule["cells"][0]
    assert first_cell["label"] == "Opening Papers"
    assert first_cell["room"] == "Main Hall"
    assert first_cell["slot_label"] == "A"
    assert schedule["cells"][2]["session"]["session_type"] == "round_table"
    assert schedule["unassigned_round_tables"] == []
    assert schedule["unplaced_paper_sessions"] == 0

    occupied = client.post(
        f"{base}/schedule/paper-sessions",
        json={"day": 1, "slot": 0, "position": 0},
    )
    assert occupied.status_code == 409

    cleared = client.delete(f"{base}/schedule/positions/1/0/0")
    assert cleared.json()["removed"]["session_number"] == 1
    replaced = client.post(
        f"{base}/schedule/paper-sessions",
        json={"day": 1, "slot": 1, "position": 0},
    )
    assert replaced.status_code == 201
    assert replaced.json()["session_number"] == 1

    moved = client.post(f"{base}/schedule/round-tables/1", json={"day": 1, "slot": 1})
    assert moved.status_code == 200
    assert moved.json()["position"] == {"day": 1, "slot": 1, "position": 1}
    assert client.post(f"{base}/schedule/round-tables/5", json={"day": 1, "slot": 1}).status_code == 400
    assert len(repository.load_schedule_assignments(convention_id)) == 3

    auto = client.post(f"{base}/paper-assignments/auto")
    assert auto.status_code == 200
    assignments = auto.json()["assignments"]
    assert [len(assignments["1"]), len(assignments["2"])] == [4, 1]
    assert repository.load_paper_assignments(convention_id) == {
        1: assignments["1"],
        2: assignments["2"],
    }

    unknown_paper = client.post(
        f"{base}/paper-assignments",
        json={"session_id": 1, "paper_id": "missing"},
    )
    assert unknown_paper.status_code == 404
    full = client.post(
        f"{base}/paper-assignments",
        json={"session_id": 1, "paper_id": assignments["2"][0]},
    )
    assert full.status_code == 409

    removed = client.delete(f"{base}/paper-assignments/1/{assignments['1'][0]}")
    assert len(removed.json()["assignments"]["1"]) == 3
    assert client.delete(f"{base}/paper-assignments").json() == {"assignments": {}}
    assert repository.load_paper_assignments(convention_id) == {}

    assert client.delete(base).status_code == 204
    assert client.get(base).status_code == 404


def test_update_convention_replaces_parameters(tmp_path) -> None:
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    convention_id = client.post("/conventions", json={"name": "Draft"}).json()["convention_id"]

    updated = client.put(
        f"/conventions/{convention_id}",
        json={"name": "Final", "parameters": {"total_papers": 10}},
    )

    assert updated.status_code == 200
    assert updated.json()["name"] == "Final"
    assert updated.json()["parameters"]["total_papers"] == 10
    assert client.put("/conventions/missing", json={"name": "x"}).status_code == 404


def test_schedule_reflects_updated_parameters(tmp_path) -> None:
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)
    convention_id = client.post(
        "/conventions",
        json={"name": "Resize", "parameters": {**LAYOUT, "total_papers": 10, "total_round_tables": 3}},
    ).json()["convention_id"]
    base = f"/conventions/{convention_id}"
    client.post(f"{base}/schedule/auto-populate")

    updated = client.put(
        base,
        json={
            "parameters": {
                **LAYOUT,
                "total_papers": 30,
                "papers_per_session": 5,
                "min_papers_per_session": 5,
                "max_papers_per_session": 5,
                "total_round_tables": 1,
            }
        },
    )
    assert updated.status_code == 200

    schedule = client.get(f"{base}/schedule").json()
    assert schedule["cells"][0]["paper_count"] == 5
    assert schedule["cells"][0]["session"]["title"] == "Paper Session 1 (5 papers)"
    assert [
        cell["label"] for cell in schedule["cells"] if cell["session"] is not None
    ] == ["Paper Session 1", "Paper Session 2", "Round Table 1"]
    assert schedule["unplaced_paper_sessions"] == 4
    assert len(repository.load_schedule_assignments(convention_id)) == 3


def test_time_slot_labels_round_trip(tmp_path) -> None:
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    convention_id = client.post(
        "/conventions",
        json={"name": "Slots", "parameters": {**LAYOUT, "total_papers": 8}},
    ).json()["convention_id"]
    base = f"/conventions/{convention_id}"

    defaults = client.get(f"{base}/time-slots")
    assert defaults.status_code == 200
    assert [item["display"] for item in defaults.json()] == ["A", "B"]

    saved = client.put(
        f"{base}/time-slots",
        json={"time_slots": [{"day": 1, "slot": 0, "label": "Morning Panel", "start_time": "09:00"}]},
    )
    assert saved.status_code == 200
    assert saved.json()[0] == {
        "day": 1,
        "slot": 0,
        "label": "Morning Panel",
        "start_time": "09:00",
        "display": "Morning Panel (9:00 AM)",
    }

    client.post(f"{base}/schedule/auto-populate")
    cells = client.get(f"{base}/schedule").json()["cells"]
    assert cells[0]["slot_label"] == "Morning Panel (9:00 AM)"
    assert cells[3]["slot_label"] == "B"

    bad_time = client.put(
        f"{base}/time-slots",
        json={"time_slots": [{"day": 1, "slot": 1, "start_time": "7pm"}]},
    )
    assert bad_time.status_code == 400
    assert client.get("/conventions/missing/time-slots").status_code == 404


def test_missing_workspace_returns_service_unavailable() -> None:
    app = FastAPI()
    app.include_router(convention_router)
    client = TestClient(app)

    assert client.get("/conventions").status_code == 503
