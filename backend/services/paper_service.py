"""CSV import and export of convention papers."""

from __future__ import annotations

import csv
import io
from typing import Optional, Sequence
from uuid import uuid4

import pandas as pd

from backend.domain.models import Paper
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

REQUIRED_COLUMNS = ("title", "student", "school")
EXPORT_COLUMNS = ("Title", "Student", "School", "Category")


class PaperImportError(ValueError):
    """Raised when uploaded CSV text cannot be read as a paper list."""


def new_paper_id() -> str:
    return uuid4().hex


class PaperCsvService:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def build_paper(
        self,
        title: str,
        student: str,
        school: str,
        category: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Paper:
        return Paper(
            paper_id=new_paper_id(),
            title=title.strip(),
            student=student.strip(),
            school=school.strip(),
            category=(category or "").strip() or self._settings.csv_default_category,
            email=(email or "").strip() or None,
        )

    def parse_csv(self, csv_text: str) -> list[Paper]:
        """Read papers from CSV text with a header row.

        Headers are matched case-insensitively. Rows missing a title, student
        or school are skipped.
        """
        if not csv_text or not csv_text.strip():
            raise PaperImportError("CSV content is empty")

        try:
            frame = pd.read_csv(
                io.StringIO(csv_text),
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise PaperImportError(f"CSV could not be parsed: {exc}") from exc

        frame.columns = [str(column).strip().lower() for column in frame.columns]
        missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
        if missing:
            raise PaperImportError(
                "CSV must include title, student and school columns; missing: "
                + ", ".join(missing)
            )

        papers: list[Paper] = []
        skipped = 0
        for record in frame.to_dict(orient="records"):
            title = str(record.get("title", "")).strip()
            student = str(record.get("student", "")).strip()
            school = str(record.get("school", "")).strip()
            if not (title and student and school):
                skipped += 1
                continue
            papers.append(
                self.build_paper(
                    title=title,
                    student=student,
                    school=school,
                    category=str(record.get("category", "")),
                    email=str(record.get("email", "")),
                )
            )

        logger.info("CSV parsed | papers=%s | skipped=%s", len(papers), skipped)
        return papers

    def export_csv(self, papers: Sequence[Paper]) -> str:
        frame = pd.DataFrame(
            [
                (paper.title, paper.student, paper.school, paper.category)
                for paper in papers
            ],
            columns=list(EXPORT_COLUMNS),
        )
        body = frame.to_csv(
            index=False,
            header=False,
            quoting=csv.QUOTE_ALL,
            lineterminator="\n",
        )
        return ",".join(EXPORT_COLUMNS) + "\n" + body
