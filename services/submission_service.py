"""Staged worksheet submissions — resumable progress through stages 1..N.

A :class:`WorksheetSession` is the explicit per-learner context: it is
opened when the learner enters the worksheet, holds the active submission
snapshot, and is closed on logout or when the learner navigates away.
Sessions live in a :class:`WorksheetSessionRegistry` owned by the app.

Every mutation runs under the session lock and is a compare-and-swap:
re-read the submission, apply the change to that fresh copy, write it back
with ``expected_version``. A concurrent writer therefore makes us retry
instead of silently overwriting its stage data.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable

from errors.exceptions import (
    AuthRequiredError,
    InvalidStageError,
    NoActiveSubmissionError,
    RecordNotFoundError,
    StoreError,
    SubmissionClosedError,
    VersionConflictError,
)
from models.learner import Learner
from models.submission import (
    Progress,
    StageSlot,
    Submission,
    WorksheetType,
    stage_key,
)
from services.record_store import ASSIGNMENT_SUBMISSIONS, SUBMISSIONS, RecordStore, utc_now

logger = logging.getLogger(__name__)

DEFAULT_STAGE_COUNT = 6
DEFAULT_TITLE = "Guided Worksheet"
MAX_WRITE_ATTEMPTS = 3


def progress_for(submission: Submission | None, stage_count: int) -> Progress:
    """Completed stages are those whose slot carries a completion timestamp."""
    if submission is None:
        return Progress(completed=0, total=stage_count, percentage=0)
    completed = sum(
        1
        for stage in range(1, stage_count + 1)
        if (slot := submission.slot(stage)) is not None and slot.completed_at is not None
    )
    # Half-up rounding
    percentage = int(math.floor(completed / stage_count * 100 + 0.5))
    return Progress(completed=completed, total=stage_count, percentage=percentage)


class WorksheetSession:
    """One learner's working context for a staged worksheet."""

    def __init__(
        self,
        store: RecordStore,
        learner: Learner | None,
        *,
        stage_count: int = DEFAULT_STAGE_COUNT,
        title: str = DEFAULT_TITLE,
    ):
        self._store = store
        self.learner = learner
        self.stage_count = stage_count
        self.title = title
        self._submission: Submission | None = None
        self._lock = asyncio.Lock()

    @property
    def submission(self) -> Submission | None:
        return self._submission

    def _require_learner(self) -> Learner:
        if self.learner is None:
            raise AuthRequiredError()
        return self.learner

    def _check_stage(self, stage: int) -> None:
        if not 1 <= stage <= self.stage_count:
            raise InvalidStageError(stage, self.stage_count)

    # ── Entry ────────────────────────────────────────────────

    async def initialize(
        self,
        *,
        worksheet_type: WorksheetType = WorksheetType.CYLINDER,
        assignment_submission_id: int | None = None,
    ) -> Submission:
        """Resume the learner's open submission or start a new one."""
        learner = self._require_learner()
        async with self._lock:
            rows = await self._store.query(
                SUBMISSIONS,
                {"learner_id": learner.id, "is_completed": False},
                order_by="id",
                descending=True,
                limit=1,
            )
            if rows:
                self._submission = Submission.model_validate(rows[0])
                logger.info("Resumed submission %s for %s", self._submission.id, learner.id)
                return self._submission

            now = utc_now()
            stored = await self._store.create(SUBMISSIONS, {
                "learner_id": learner.id,
                "title": self.title,
                "worksheet_type": WorksheetType(worksheet_type).value,
                "stages": {},
                "current_stage": 1,
                "completed_stages": [],
                "is_completed": False,
                "assignment_submission_id": assignment_submission_id,
                "started_at": now,
                "last_auto_save": now,
                "submitted_at": None,
                "completed_at": None,
            })
            self._submission = Submission.model_validate(stored)
            logger.info("Created submission %s for %s", self._submission.id, learner.id)
            return self._submission

    async def load(self, submission_id: int | None = None) -> Submission:
        """Fetch a specific or the most recent submission; never "not found".

        When nothing matches (or the id belongs to another learner) this
        falls through to :meth:`initialize`.
        """
        learner = self._require_learner()
        async with self._lock:
            if submission_id is not None:
                row = await self._store.get(SUBMISSIONS, submission_id)
                rows = [row] if row is not None and row.get("learner_id") == learner.id else []
            else:
                rows = await self._store.query(
                    SUBMISSIONS,
                    {"learner_id": learner.id},
                    order_by="id",
                    descending=True,
                    limit=1,
                )
            if rows:
                self._submission = Submission.model_validate(rows[0])
                return self._submission
        return await self.initialize()

    # ── Mutations ────────────────────────────────────────────

    async def _mutate(
        self, apply: Callable[[Submission], dict[str, Any] | None]
    ) -> Submission:
        """Read-apply-write with optimistic concurrency.

        *apply* mutates the fresh snapshot and returns the changed columns,
        or None when there is nothing to write. Local state is replaced only
        after the store accepted the write.
        """
        if self._submission is None:
            raise NoActiveSubmissionError()
        submission_id = self._submission.id

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            row = await self._store.get(SUBMISSIONS, submission_id)
            if row is None:
                raise RecordNotFoundError(SUBMISSIONS, submission_id)
            fresh = Submission.model_validate(row)
            changes = apply(fresh)
            if changes is None:
                self._submission = fresh
                return fresh
            try:
                stored = await self._store.update(
                    SUBMISSIONS, submission_id, changes, expected_version=fresh.version
                )
            except VersionConflictError:
                if attempt == MAX_WRITE_ATTEMPTS:
                    raise
                logger.info(
                    "Submission %s changed concurrently, retrying (%d/%d)",
                    submission_id, attempt, MAX_WRITE_ATTEMPTS,
                )
                continue
            self._submission = Submission.model_validate(stored)
            return self._submission

        raise AssertionError("write loop exited without result")

    async def update_stage(self, stage: int, payload: dict[str, Any]) -> Submission:
        """Complete a stage: merge its data, stamp it, advance the pointer.

        Store failures propagate; the caller must not move on when this
        raises.
        """
        self._check_stage(stage)

        def apply(sub: Submission) -> dict[str, Any]:
            if sub.is_completed:
                raise SubmissionClosedError(sub.id)
            now = datetime.now(timezone.utc)
            existing = sub.slot(stage)
            sub.stages[stage_key(stage)] = StageSlot(
                data={**(existing.data if existing else {}), **payload},
                completed_at=now,
            )
            if stage not in sub.completed_stages:
                sub.completed_stages.append(stage)
            sub.current_stage = min(stage + 1, self.stage_count)
            sub.last_auto_save = now
            return sub.to_changes()

        async with self._lock:
            submission = await self._mutate(apply)
        logger.info("Submission %s completed stage %d", submission.id, stage)
        return submission

    async def auto_save(self, stage: int, payload: dict[str, Any]) -> bool:
        """Best-effort draft save of a stage. Returns whether it was stored.

        Never touches ``completed_stages`` or ``current_stage`` and keeps an
        existing completion timestamp. Failures are logged, not raised.
        """
        self._check_stage(stage)
        if self._submission is None:
            return False

        def apply(sub: Submission) -> dict[str, Any]:
            if sub.is_completed:
                raise SubmissionClosedError(sub.id)
            existing = sub.slot(stage)
            sub.stages[stage_key(stage)] = StageSlot(
                data={**(existing.data if existing else {}), **payload},
                completed_at=existing.completed_at if existing else None,
            )
            sub.last_auto_save = datetime.now(timezone.utc)
            return sub.to_changes()

        try:
            async with self._lock:
                await self._mutate(apply)
        except SubmissionClosedError:
            logger.info("Ignoring auto-save on closed submission %s", self._submission.id)
            return False
        except StoreError as exc:
            logger.warning("Error auto-saving stage %d: %s", stage, exc)
            return False
        return True

    async def submit(self) -> Submission:
        """Finalize the submission. Irreversible; a second call is a no-op."""
        linked_id: int | None = None

        def apply(sub: Submission) -> dict[str, Any] | None:
            nonlocal linked_id
            if sub.is_completed:
                return None
            now = datetime.now(timezone.utc)
            sub.is_completed = True
            sub.completed_at = now
            sub.submitted_at = now
            linked_id = sub.assignment_submission_id
            return sub.to_changes()

        async with self._lock:
            submission = await self._mutate(apply)

        if linked_id is not None:
            await self._close_assignment_submission(linked_id, submission)
        logger.info("Submission %s submitted", submission.id)
        return submission

    async def _close_assignment_submission(self, record_id: int, submission: Submission) -> None:
        stamp = submission.completed_at.isoformat() if submission.completed_at else utc_now()
        try:
            await self._store.update(ASSIGNMENT_SUBMISSIONS, record_id, {
                "status": "submitted",
                "is_completed": True,
                "submitted_at": stamp,
                "completed_at": stamp,
            })
        except RecordNotFoundError:
            logger.warning(
                "Linked assignment submission %s missing for submission %s",
                record_id, submission.id,
            )

    # ── Queries / teardown ───────────────────────────────────

    def get_progress(self) -> Progress:
        return progress_for(self._submission, self.stage_count)

    def close(self) -> None:
        """Drop local state (logout / navigation away)."""
        self._submission = None


class WorksheetSessionRegistry:
    """Learner id → open :class:`WorksheetSession`."""

    def __init__(
        self,
        store: RecordStore,
        *,
        stage_count: int = DEFAULT_STAGE_COUNT,
        title: str = DEFAULT_TITLE,
    ):
        self._store = store
        self._stage_count = stage_count
        self._title = title
        self._sessions: dict[str, WorksheetSession] = {}

    def get(self, learner_id: str) -> WorksheetSession | None:
        return self._sessions.get(learner_id)

    def open(self, learner: Learner | None) -> WorksheetSession:
        """Return the learner's session, creating it on first use."""
        if learner is None:
            raise AuthRequiredError()
        session = self._sessions.get(learner.id)
        if session is None:
            session = WorksheetSession(
                self._store, learner, stage_count=self._stage_count, title=self._title
            )
            self._sessions[learner.id] = session
        return session

    def close(self, learner_id: str) -> bool:
        session = self._sessions.pop(learner_id, None)
        if session is None:
            return False
        session.close()
        return True

    def __len__(self) -> int:
        return len(self._sessions)
