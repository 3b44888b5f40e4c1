"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional
from uuid import uuid4

from backend.domain.constraints import build_schedule_parameters
from backend.domain.models import (
    Convention,
    GridPosition,
    Paper,
    Participant,
    Person,
    PersonRole,
    PlacedSession,
    ScheduleParameters,
    SessionCustomization,
    SessionType,
    TimeSlotSetting,
    as_plain_dict,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class RepositoryError(RuntimeError):
    """Raised when a SQLite operation fails."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Cursor]:
        try:
            connection = self._connect()
            try:
                with connection:
                    yield connection.cursor()
            finally:
                connection.close()
        except sqlite3.Error as exc:
            raise RepositoryError(f"{action} failed: {exc}") from exc

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        with self._transaction("Database initialization") as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS Conventions (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    parameters TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS RoomNames (
                    convention_id TEXT NOT NULL,
                    room_number INTEGER NOT NULL CHECK (room_number > 0),
                    custom_name TEXT NOT NULL,
                    PRIMARY KEY (convention_id, room_number),
                    FOREIGN KEY (convention_id) REFERENCES Conventions(id) ON DELETE CASCADE
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS Papers (
                    id TEXT PRIMARY KEY,
                    convention_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    student_name TEXT NOT NULL,
                    school TEXT NOT NULL,
                    category TEXT NOT NULL,
                    email TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (convention_id) REFERENCES Conventions(id) ON DELETE CASCADE
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS People (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    convention_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('moderator', 'chair')),
                    name TEXT NOT NULL,
                    school TEXT NOT NULL,
                    email TEXT,
                    FOREIGN KEY (convention_id) REFERENCES Conventions(id) ON DELETE CASCADE
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS SessionCustomizations (
                    convention_id TEXT NOT NULL,
                    session_key TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (convention_id, session_key),
                    FOREIGN KEY (convention_id) REFERENCES Conventions(id) ON DELETE CASCADE
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ScheduleAssignments (
                    convention_id TEXT NOT NULL,
                    day INTEGER NOT NULL,
                    slot INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    session_type TEXT NOT NULL CHECK (session_type IN ('paper', 'round_table')),
                    session_number INTEGER NOT NULL,
                    PRIMARY KEY (convention_id, day, slot, position),
                    FOREIGN KEY (convention_id) REFERENCES Conventions(id) ON DELETE CASCADE
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS TimeSlots (
                    convention_id TEXT NOT NULL,
                    day INTEGER NOT NULL,
                    slot INTEGER NOT NULL,
                    label TEXT NOT NULL DEFAULT '',
                    start_time TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY (convention_id, day, slot),
                    FOREIGN KEY (convention_id) REFERENCES Conventions(id) ON DELETE CASCADE
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS PaperAssignments (
                    convention_id TEXT NOT NULL,
                    session_id INTEGER NOT NULL,
                    paper_id TEXT NOT NULL,
                    sort_order INTEGER NOT NULL,
                    PRIMARY KEY (convention_id, paper_id),
                    FOREIGN KEY (convention_id) REFERENCES Conventions(id) ON DELETE CASCADE
                );
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_papers_convention_category
                ON Papers(convention_id, category);
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_people_convention_role
                ON People(convention_id, role);
                """
            )
        logger.info("Database initialized at %s", self._db_path)

    # --- Conventions ---

    def _row_to_convention(self, row: sqlite3.Row) -> Convention:
        return Convention(
            convention_id=str(row["id"]),
            name=str(row["name"]),
            parameters=build_schedule_parameters(
                json.loads(row["parameters"]),
                self._settings,
            ),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
        )

    def create_convention(self, name: str, parameters: ScheduleParameters) -> Convention:
        convention_id = str(uuid4())
        now = _utc_now()
        with self._transaction("Convention insert") as cursor:
            cursor.execute(
                """
                INSERT INTO Conventions (id, name, parameters, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (convention_id, name, json.dumps(parameters.to_dict()), now, now),
            )
        return Convention(
            convention_id=convention_id,
            name=name,
            parameters=parameters,
            created_at=now,
            updated_at=now,
        )

    def update_convention(
        self,
        convention_id: str,
        name: str,
        parameters: ScheduleParameters,
    ) -> Optional[Convention]:
        with self._transaction("Convention update") as cursor:
            cursor.execute(
                """
                UPDATE Conventions
                SET name = ?, parameters = ?, updated_at = ?
                WHERE id = ?;
                """,
                (name, json.dumps(parameters.to_dict()), _utc_now(), convention_id),
            )
            if cursor.rowcount == 0:
                return None
        return self.get_convention(convention_id)

    def get_convention(self, convention_id: str) -> Optional[Convention]:
        with self._transaction("Convention lookup") as cursor:
            cursor.execute(
                """
                SELECT id, name, parameters, created_at, updated_at
                FROM Conventions
                WHERE id = ?;
                """,
                (convention_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_convention(row)

    def list_conventions(self) -> list[Convention]:
        with self._transaction("Convention listing") as cursor:
            cursor.execute(
                """
                SELECT id, name, parameters, created_at, updated_at
                FROM Conventions
                ORDER BY updated_at DESC, id ASC;
                """
            )
            rows = cursor.fetchall()
        return [self._row_to_convention(row) for row in rows]

    def delete_convention(self, convention_id: str) -> bool:
        with self._transaction("Convention delete") as cursor:
            cursor.execute("DELETE FROM Conventions WHERE id = ?;", (convention_id,))
            return cursor.rowcount > 0

    # --- Room names ---

    def save_room_names(self, convention_id: str, room_names: Mapping[int, str]) -> None:
        """Replace every custom room name for the convention."""
        with self._transaction("Room name save") as cursor:
            cursor.execute("DELETE FROM RoomNames WHERE convention_id = ?;", (convention_id,))
            cursor.executemany(
                """
                INSERT INTO RoomNames (convention_id, room_number, custom_name)
                VALUES (?, ?, ?);
                """,
                [
                    (convention_id, int(room_number), custom_name)
                    for room_number, custom_name in sorted(room_names.items())
                ],
            )

    def load_room_names(self, convention_id: str) -> dict[int, str]:
        with self._transaction("Room name load") as cursor:
            cursor.execute(
                """
                SELECT room_number, custom_name
                FROM RoomNames
                WHERE convention_id = ?
                ORDER BY room_number ASC;
                """,
                (convention_id,),
            )
            return {
                int(row["room_number"]): str(row["custom_name"])
                for row in cursor.fetchall()
            }

    # --- Papers ---

    def add_papers(self, convention_id: str, papers: Iterable[Paper]) -> int:
        rows = [
            (
                paper.paper_id,
                convention_id,
                paper.title,
                paper.student,
                paper.school,
                paper.category,
                paper.email,
            )
            for paper in papers
        ]
        if not rows:
            return 0
        with self._transaction("Paper insert") as cursor:
            cursor.executemany(
                """
                INSERT INTO Papers (id, convention_id, title, student_name, school, category, email)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                rows,
            )
        return len(rows)

    def list_papers(self, convention_id: str) -> list[Paper]:
        with self._transaction("Paper listing") as cursor:
            cursor.execute(
                """
                SELECT id, title, student_name, school, category, email
                FROM Papers
                WHERE convention_id = ?
                ORDER BY created_at ASC, rowid ASC;
                """,
                (convention_id,),
            )
            return [
                Paper(
                    paper_id=str(row["id"]),
                    title=str(row["title"]),
                    student=str(row["student_name"]),
                    school=str(row["school"]),
                    category=str(row["category"]),
                    email=row["email"],
                )
                for row in cursor.fetchall()
            ]

    def delete_paper(self, convention_id: str, paper_id: str) -> bool:
        with self._transaction("Paper delete") as cursor:
            cursor.execute(
                "DELETE FROM PaperAssignments WHERE convention_id = ? AND paper_id = ?;",
                (convention_id, paper_id),
            )
            cursor.execute(
                "DELETE FROM Papers WHERE convention_id = ? AND id = ?;",
                (convention_id, paper_id),
            )
            return cursor.rowcount > 0

    # --- Moderators and chairs ---

    def add_person(
        self,
        convention_id: str,
        role: PersonRole,
        name: str,
        school: str,
        email: Optional[str] = None,
    ) -> Person:
        with self._transaction("Person insert") as cursor:
            cursor.execute(
                """
                INSERT INTO People (convention_id, role, name, school, email)
                VALUES (?, ?, ?, ?, ?);
                """,
                (convention_id, role.value, name, school, email),
            )
            person_id = int(cursor.lastrowid)
        return Person(person_id=person_id, role=role, name=name, school=school, email=email)

    def list_people(self, convention_id: str, role: PersonRole) -> list[Person]:
        with self._transaction("Person listing") as cursor:
            cursor.execute(
                """
                SELECT id, role, name, school, email
                FROM People
                WHERE convention_id = ? AND role = ?
                ORDER BY name ASC, id ASC;
                """,
                (convention_id, role.value),
            )
            return [
                Person(
                    person_id=int(row["id"]),
                    role=PersonRole(row["role"]),
                    name=str(row["name"]),
                    school=str(row["school"]),
                    email=row["email"],
                )
                for row in cursor.fetchall()
            ]

    def delete_person(self, convention_id: str, role: PersonRole, person_id: int) -> bool:
        with self._transaction("Person delete") as cursor:
            cursor.execute(
                "DELETE FROM People WHERE convention_id = ? AND role = ? AND id = ?;",
                (convention_id, role.value, person_id),
            )
            return cursor.rowcount > 0

    # --- Time slots ---

    def save_time_slots(self, convention_id: str, settings: Iterable[TimeSlotSetting]) -> None:
        """Replace every custom time slot label and start time for the convention."""
        with self._transaction("Time slot save") as cursor:
            cursor.execute("DELETE FROM TimeSlots WHERE convention_id = ?;", (convention_id,))
            cursor.executemany(
                """
                INSERT INTO TimeSlots (convention_id, day, slot, label, start_time)
                VALUES (?, ?, ?, ?, ?);
                """,
                [
                    (convention_id, setting.day, setting.slot, setting.label, setting.start_time)
                    for setting in settings
                ],
            )

    def load_time_slots(self, convention_id: str) -> list[TimeSlotSetting]:
        with self._transaction("Time slot load") as cursor:
            cursor.execute(
                """
                SELECT day, slot, label, start_time
                FROM TimeSlots
                WHERE convention_id = ?
                ORDER BY day ASC, slot ASC;
                """,
                (convention_id,),
            )
            return [
                TimeSlotSetting(
                    day=int(row["day"]),
                    slot=int(row["slot"]),
                    label=str(row["label"]),
                    start_time=str(row["start_time"]),
                )
                for row in cursor.fetchall()
            ]

    # --- Session customizations ---

    def save_session_customization(
        self,
        convention_id: str,
        customization: SessionCustomization,
    ) -> None:
        payload = as_plain_dict(customization)
        payload.pop("session_key")
        with self._transaction("Session customization save") as cursor:
            cursor.execute(
                """
                INSERT INTO SessionCustomizations (convention_id, session_key, payload, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (convention_id, session_key)
                DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at;
                """,
                (convention_id, customization.session_key, json.dumps(payload), _utc_now()),
            )

    def list_session_customizations(self, convention_id: str) -> dict[str, SessionCustomization]:
        with self._transaction("Session customization load") as cursor:
            cursor.execute(
                """
                SELECT session_key, payload
                FROM SessionCustomizations
                WHERE convention_id = ?
                ORDER BY session_key ASC;
                """,
                (convention_id,),
            )
            rows = cursor.fetchall()

        customizations: dict[str, SessionCustomization] = {}
        for row in rows:
            payload = json.loads(row["payload"])
            session_type = payload.pop("session_type", None)
            participants = payload.pop("participants", None) or []
            customizations[str(row["session_key"])] = SessionCustomization(
                session_key=str(row["session_key"]),
                session_type=SessionType(session_type) if session_type else None,
                participants=tuple(
                    Participant(name=item.get("name", ""), school=item.get("school", ""))
                    for item in participants
                ),
                **payload,
            )
        return customizations

    # --- Grid placements and paper assignments ---

    def save_schedule_assignments(
        self,
        convention_id: str,
        placements: Mapping[GridPosition, PlacedSession],
    ) -> None:
        """Replace the stored grid with the given placements."""
        with self._transaction("Schedule assignment save") as cursor:
            cursor.execute(
                "DELETE FROM ScheduleAssignments WHERE convention_id = ?;",
                (convention_id,),
            )
            cursor.executemany(
                """
                INSERT INTO ScheduleAssignments (
                    convention_id,
                    day,
                    slot,
                    position,
                    session_type,
                    session_number
                )
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                [
                    (
                        convention_id,
                        position.day,
                        position.slot,
                        position.position,
                        placed.session_type.value,
                        placed.session_number,
                    )
                    for position, placed in placements.items()
                ],
            )

    def load_schedule_assignments(self, convention_id: str) -> dict[GridPosition, PlacedSession]:
        with self._transaction("Schedule assignment load") as cursor:
            cursor.execute(
                """
                SELECT day, slot, position, session_type, session_number
                FROM ScheduleAssignments
                WHERE convention_id = ?
                ORDER BY day ASC, slot ASC, position ASC;
                """,
                (convention_id,),
            )
            return {
                GridPosition(
                    day=int(row["day"]),
                    slot=int(row["slot"]),
                    position=int(row["position"]),
                ): PlacedSession(
                    session_type=SessionType(row["session_type"]),
                    session_number=int(row["session_number"]),
                )
                for row in cursor.fetchall()
            }

    def save_paper_assignments(
        self,
        convention_id: str,
        assignments: Mapping[int, list[str]],
    ) -> None:
        with self._transaction("Paper assignment save") as cursor:
            cursor.execute(
                "DELETE FROM PaperAssignments WHERE convention_id = ?;",
                (convention_id,),
            )
            cursor.executemany(
                """
                INSERT INTO PaperAssignments (convention_id, session_id, paper_id, sort_order)
                VALUES (?, ?, ?, ?);
                """,
                [
                    (convention_id, session_id, paper_id, order)
                    for session_id, paper_ids in assignments.items()
                    for order, paper_id in enumerate(paper_ids)
                ],
            )

    def load_paper_assignments(self, convention_id: str) -> dict[int, list[str]]:
        with self._transaction("Paper assignment load") as cursor:
            cursor.execute(
                """
                SELECT session_id, paper_id
                FROM PaperAssignments
                WHERE convention_id = ?
                ORDER BY session_id ASC, sort_order ASC;
                """,
                (convention_id,),
            )
            assignments: dict[int, list[str]] = {}
            for row in cursor.fetchall():
                assignments.setdefault(int(row["session_id"]), []).append(str(row["paper_id"]))
            return assignments
