"""Section-based worksheets — navigation and responses over a content-defined list.

The worksheet definition is read-only content; a learner has exactly one
section submission per assignment, reused across visits. Responses are
stored opaquely under ``section_<index>``; this module never interprets
their shape except in :func:`validate_section_response`.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from errors.exceptions import (
    AuthRequiredError,
    InvalidRequestError,
    RecordNotFoundError,
    StoreError,
    SubmissionClosedError,
    VersionConflictError,
    WorksheetNotFoundError,
)
from models.learner import Learner
from models.submission import (
    SectionProgress,
    SectionStatus,
    SectionSubmission,
    SectionValidation,
    section_key,
)
from models.worksheet import Worksheet
from services.record_store import SECTION_SUBMISSIONS, WORKSHEETS, RecordStore, utc_now

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3
DEFAULT_WORKSHEET_DIR = Path(__file__).parent.parent / "data" / "worksheets"


# ── Pure helpers ─────────────────────────────────────────────


def calculate_progress(total_sections: int, completed_sections: list[int]) -> int:
    """Completion percentage, rounded half-up; 0 for an empty worksheet."""
    if total_sections == 0:
        return 0
    return int(math.floor(len(completed_sections) / total_sections * 100 + 0.5))


def validate_section_response(section: Any, response: Any) -> SectionValidation:
    """Check that a response carries the inputs its section type requires.

    Observation sections need at least one table row, analysis sections at
    least one answered question. Other types accept anything.
    """
    section_type = getattr(section, "type", None)
    if section_type is None and isinstance(section, dict):
        section_type = section.get("type")

    errors: list[str] = []
    if section_type == "observation":
        rows = response.get("rows") if isinstance(response, dict) else None
        if not rows:
            errors.append("Tabel pengamatan belum diisi")
    elif section_type == "analysis":
        if not isinstance(response, dict) or not response:
            errors.append("Belum ada pertanyaan yang dijawab")

    return SectionValidation(valid=not errors, errors=errors)


# ── Worksheet content ────────────────────────────────────────


async def get_worksheet(store: RecordStore, assignment_id: str) -> Worksheet | None:
    rows = await store.query(WORKSHEETS, {"assignment_id": assignment_id}, limit=1)
    if not rows:
        return None
    try:
        return Worksheet.model_validate(rows[0])
    except ValidationError as e:
        logger.error("Invalid worksheet for assignment %s: %s", assignment_id, e)
        return None


async def create_worksheet(store: RecordStore, data: dict[str, Any]) -> Worksheet:
    """Validate and store a worksheet definition (id and timestamps assigned)."""
    draft = Worksheet.model_validate({**data, "id": 0})
    stored = await store.create(
        WORKSHEETS, draft.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
    )
    return Worksheet.model_validate(stored)


async def seed_worksheets(store: RecordStore, directory: Path = DEFAULT_WORKSHEET_DIR) -> int:
    """Load bundled ``*.json`` worksheet definitions not yet in the store."""
    if not directory.exists():
        return 0
    count = 0
    for file_path in sorted(directory.glob("*.json")):
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            assignment_id = data.get("assignmentId") or data.get("assignment_id")
            if await get_worksheet(store, assignment_id) is not None:
                continue
            await create_worksheet(store, data)
            count += 1
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Skipping worksheet file %s: %s", file_path, e)
    if count:
        logger.info("Seeded %d worksheet(s) from %s", count, directory)
    return count


# ── Navigator ────────────────────────────────────────────────


class SectionNavigator:
    """A learner's position in one section-based worksheet."""

    def __init__(self, store: RecordStore, worksheet: Worksheet, submission: SectionSubmission):
        self._store = store
        self.worksheet = worksheet
        self.submission = submission

    @classmethod
    async def open(
        cls, store: RecordStore, assignment_id: str, learner: Learner | None
    ) -> SectionNavigator:
        """Load the worksheet and get-or-create the learner's submission."""
        if learner is None:
            raise AuthRequiredError()
        worksheet = await get_worksheet(store, assignment_id)
        if worksheet is None:
            raise WorksheetNotFoundError(assignment_id)

        rows = await store.query(
            SECTION_SUBMISSIONS,
            {"assignment_id": assignment_id, "learner_id": learner.id},
            order_by="id",
            limit=1,
        )
        if rows:
            submission = SectionSubmission.model_validate(rows[0])
        else:
            stored = await store.create(SECTION_SUBMISSIONS, {
                "assignment_id": assignment_id,
                "learner_id": learner.id,
                "section_responses": {},
                "current_section": 0,
                "completed_sections": [],
                "status": SectionStatus.DRAFT.value,
                "started_at": utc_now(),
                "submitted_at": None,
            })
            submission = SectionSubmission.model_validate(stored)
            logger.info(
                "Created section submission %s (%s, %s)",
                submission.id, assignment_id, learner.id,
            )
        return cls(store, worksheet, submission)

    async def _mutate(
        self, apply: Callable[[SectionSubmission], dict[str, Any] | None]
    ) -> SectionSubmission:
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            row = await self._store.get(SECTION_SUBMISSIONS, self.submission.id)
            if row is None:
                raise RecordNotFoundError(SECTION_SUBMISSIONS, self.submission.id)
            fresh = SectionSubmission.model_validate(row)
            changes = apply(fresh)
            if changes is None:
                self.submission = fresh
                return fresh
            try:
                stored = await self._store.update(
                    SECTION_SUBMISSIONS, fresh.id, changes, expected_version=fresh.version
                )
            except VersionConflictError:
                if attempt == MAX_WRITE_ATTEMPTS:
                    raise
                continue
            self.submission = SectionSubmission.model_validate(stored)
            return self.submission
        raise AssertionError("write loop exited without result")

    def _section(self, index: int):
        if not 0 <= index < self.worksheet.section_count:
            raise InvalidRequestError(
                "Invalid section index",
                f"{index} not in 0..{self.worksheet.section_count - 1}",
            )
        return self.worksheet.sections[index]

    async def save_section(self, index: int, response: Any) -> bool:
        """Store a section response. Returns False when the store failed."""

        def apply(sub: SectionSubmission) -> dict[str, Any]:
            if sub.status != SectionStatus.DRAFT:
                raise SubmissionClosedError(sub.id)
            sub.section_responses[section_key(index)] = response
            return {"section_responses": sub.section_responses}

        try:
            await self._mutate(apply)
        except StoreError as exc:
            logger.warning("Error saving section %d of %s: %s", index, self.submission.id, exc)
            return False
        return True

    async def go_to_section(self, index: int) -> SectionSubmission:
        """Persist the current-section pointer, then update local state.

        The index is not bounds-checked; callers keep it within the
        worksheet's sections.
        """
        await self._store.update(SECTION_SUBMISSIONS, self.submission.id, {"current_section": index})
        self.submission = self.submission.model_copy(update={"current_section": index})
        return self.submission

    async def mark_section_complete(self, index: int) -> SectionSubmission:
        """Add *index* to the completed list (sorted, no duplicates).

        The stored response must satisfy :func:`validate_section_response`.
        """
        section = self._section(index)

        def apply(sub: SectionSubmission) -> dict[str, Any] | None:
            if sub.status != SectionStatus.DRAFT:
                raise SubmissionClosedError(sub.id)
            result = validate_section_response(
                section, sub.section_responses.get(section_key(index))
            )
            if not result.valid:
                raise InvalidRequestError("Section response is incomplete", "; ".join(result.errors))
            if index in sub.completed_sections:
                return None
            return {"completed_sections": sorted({*sub.completed_sections, index})}

        return await self._mutate(apply)

    async def submit(self) -> SectionSubmission:
        """Hand the worksheet in for review. Repeated calls are no-ops."""

        def apply(sub: SectionSubmission) -> dict[str, Any] | None:
            if sub.status != SectionStatus.DRAFT:
                return None
            return {
                "status": SectionStatus.SUBMITTED.value,
                "submitted_at": datetime.now(timezone.utc).isoformat(),
            }

        submission = await self._mutate(apply)
        logger.info("Section submission %s submitted", submission.id)
        return submission

    def progress(self) -> SectionProgress:
        return SectionProgress(
            total_sections=self.worksheet.section_count,
            completed_sections=len(self.submission.completed_sections),
            current_section=self.submission.current_section,
            percentage=calculate_progress(
                self.worksheet.section_count, self.submission.completed_sections
            ),
        )
