"""Assessment pipeline — validate, record, prompt, call the model, finalize.

One :meth:`AssessmentService.evaluate` call is a single chain:

    validate → create record (processing) → build prompt → one model call
             → parse reply → persist terminal status → respond

Malformed model output never fails a request: the parser substitutes the
fallback feedback and the record completes with ``needs_review`` set. Only
an exception from the model call itself produces a ``failed`` record.
"""

from __future__ import annotations

import logging
import math
import re
import time
from typing import Any

from config.prompts.assessment import build_evaluation_prompt
from errors.exceptions import (
    AssessmentNotFoundError,
    IllegalTransitionError,
    InvalidRequestError,
    ModelInvocationFailedError,
    StoreError,
    StoreUnavailableError,
    UnauthorizedError,
)
from models.assessment import AssessmentRecord, LessonAssessmentStats
from models.learner import Learner
from models.request import EvaluationRequest, EvaluationResponse
from services.llm_service import LLMService
from services.record_store import ASSESSMENTS, RecordStore
from services.response_parser import feedback_conforms, parse_assessment_response
from services.rubric_service import get_rubric_criteria

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^\d+$")


def coerce_identifier(value: Any) -> int | None:
    """Numeric id from a JSON number or digit string; None if not coercible.

    Accepts ints, integer-valued floats and strings of digits (surrounding
    whitespace ignored). Booleans, fractions and strings such as ``"12abc"``
    are rejected.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and _DIGITS.match(value.strip()):
        return int(value.strip())
    return None


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def validate_request(request: EvaluationRequest) -> tuple[int, int | None]:
    """Check required fields and coerce ids. Returns ``(lesson_id, rubric_id)``.

    Raises:
        InvalidRequestError: missing field or non-numeric id.
    """
    if (
        not request.problem_text
        or not request.student_answer
        or _is_missing(request.lesson_id)
        or not request.geometry_type
    ):
        raise InvalidRequestError("Missing required fields")

    lesson_id = coerce_identifier(request.lesson_id)
    if lesson_id is None:
        raise InvalidRequestError("Invalid lesson ID format")

    rubric_id = None
    if not _is_missing(request.rubric_id):
        rubric_id = coerce_identifier(request.rubric_id)
        if rubric_id is None:
            raise InvalidRequestError("Invalid rubric ID format")

    return lesson_id, rubric_id


class AssessmentService:
    """Owns the assessment record lifecycle for one store and model."""

    def __init__(self, store: RecordStore, llm: LLMService):
        self._store = store
        self._llm = llm

    async def evaluate(
        self, request: EvaluationRequest, learner: Learner | None
    ) -> EvaluationResponse:
        """Grade one answer.

        Raises:
            UnauthorizedError: no learner.
            InvalidRequestError: bad input (nothing persisted).
            StoreUnavailableError: the record could not be created.
            ModelInvocationFailedError: the model call raised; the record
                is left ``failed``.
        """
        if learner is None:
            raise UnauthorizedError("Unauthorized")
        lesson_id, rubric_id = validate_request(request)

        record = AssessmentRecord(
            learner_id=learner.id,
            lesson_id=lesson_id,
            rubric_id=rubric_id,
            geometry_type=request.geometry_type,
            problem_text=request.problem_text,
            student_answer=request.student_answer,
        )
        record.start_processing()
        try:
            stored = await self._store.create(ASSESSMENTS, record.to_record())
        except StoreError as exc:
            logger.error("Error creating assessment record: %s", exc)
            raise StoreUnavailableError(
                "Failed to create assessment record", exc.details or exc.message
            ) from exc
        record = AssessmentRecord.from_record(stored)
        logger.info(
            "Assessment %s processing (learner=%s lesson=%s rubric=%s)",
            record.id, learner.id, lesson_id, rubric_id,
        )

        prompt = build_evaluation_prompt(
            record.problem_text,
            record.student_answer,
            record.geometry_type,
            get_rubric_criteria(rubric_id),
        )

        started = time.perf_counter()
        try:
            reply = await self._llm.generate(prompt)
        except Exception as exc:
            logger.exception("AI evaluation error for assessment %s", record.id)
            await self._mark_failed(record.id, str(exc))
            raise ModelInvocationFailedError(str(exc), assessment_id=record.id) from exc
        processing_time_ms = int((time.perf_counter() - started) * 1000)

        outcome = parse_assessment_response(reply)
        if outcome.kind == "fallback":
            logger.warning(
                "Assessment %s used fallback feedback (%s)", record.id, outcome.reason
            )
            needs_review = True
        else:
            needs_review = not feedback_conforms(outcome)
            if needs_review:
                logger.warning("Assessment %s feedback is off-format, flagged for review", record.id)
        record.complete(
            feedback=outcome.feedback,
            reasoning=outcome.reasoning,
            processing_time_ms=processing_time_ms,
            needs_review=needs_review,
        )

        try:
            await self._store.update(
                ASSESSMENTS, record.id, record.state_changes(),
                expected_version=record.version,
            )
        except StoreError:
            logger.exception("Error updating assessment %s", record.id)
            await self._mark_failed(record.id, "Failed to persist assessment result")

        return EvaluationResponse(
            assessment_id=record.id,
            feedback=outcome.feedback,
            reasoning=outcome.reasoning,
            processing_time_ms=processing_time_ms,
        )

    async def _mark_failed(self, record_id: int, reason: str) -> None:
        """Best effort: move a stored ``processing`` record to ``failed``."""
        try:
            stored = await self._store.get(ASSESSMENTS, record_id)
            if stored is None:
                logger.error("Assessment %s vanished before it could be failed", record_id)
                return
            record = AssessmentRecord.from_record(stored)
            record.fail(reason)
            await self._store.update(
                ASSESSMENTS, record_id, record.state_changes(),
                expected_version=record.version,
            )
        except (StoreError, IllegalTransitionError) as exc:
            logger.error("Could not mark assessment %s failed: %s", record_id, exc)

    # ── Read operations ──────────────────────────────────────

    async def list_history(
        self, learner: Learner, lesson_id: int | None = None
    ) -> list[AssessmentRecord]:
        """The learner's assessments, newest first."""
        filters: dict[str, Any] = {"learner_id": learner.id}
        if lesson_id is not None:
            filters["lesson_id"] = lesson_id
        rows = await self._store.query(
            ASSESSMENTS, filters, order_by="created_at", descending=True
        )
        return [AssessmentRecord.from_record(row) for row in rows]

    async def get_assessment(self, learner: Learner, assessment_id: int) -> AssessmentRecord:
        stored = await self._store.get(ASSESSMENTS, assessment_id)
        # Other learners' records are reported as absent
        if stored is None or stored.get("learner_id") != learner.id:
            raise AssessmentNotFoundError(assessment_id)
        return AssessmentRecord.from_record(stored)

    async def lesson_stats(
        self, lesson_id: int, learner: Learner | None = None
    ) -> LessonAssessmentStats:
        """Aggregate figures for one lesson, optionally for one learner only.

        ``average_score`` is the rounded mean over completed records that
        carry a numeric score; ``completion_rate`` is the share of completed
        records as a percentage.
        """
        filters: dict[str, Any] = {"lesson_id": lesson_id}
        if learner is not None:
            filters["learner_id"] = learner.id
        rows = await self._store.query(ASSESSMENTS, filters)
        if not rows:
            return LessonAssessmentStats()

        completed = [
            row for row in rows
            if row.get("status") == "completed" and row.get("score") is not None
        ]
        average = (
            int(math.floor(sum(row["score"] for row in completed) / len(completed) + 0.5))
            if completed
            else 0
        )
        return LessonAssessmentStats(
            total_submissions=len(rows),
            average_score=average,
            last_submission=max(row["created_at"] for row in rows),
            completion_rate=len(completed) / len(rows) * 100,
        )
