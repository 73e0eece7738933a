"""API request / response models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from models.base import CamelModel
from models.submission import (
    Progress,
    SectionProgress,
    SectionSubmission,
    SectionValidation,
    Submission,
    WorksheetType,
)
from models.worksheet import Worksheet


class EvaluationRequest(CamelModel):
    """POST /api/assessments/evaluate — request body.

    Fields are optional here so that missing values surface as a 400
    ``Missing required fields`` from the service instead of a 422.
    """

    problem_text: str | None = None
    student_answer: str | None = None
    lesson_id: Any = None  # string or number, coerced by the service
    rubric_id: Any = None
    geometry_type: str | None = None


class EvaluationResponse(CamelModel):
    """POST /api/assessments/evaluate — response body."""

    assessment_id: int
    feedback: dict[str, Any]
    reasoning: list[Any]
    processing_time_ms: int


class StagePayloadRequest(CamelModel):
    """PUT/PATCH /api/worksheet/stages/{stage} — request body."""

    data: dict[str, Any] = Field(default_factory=dict)


class SectionResponseRequest(CamelModel):
    """PUT /api/lkpd/{assignment_id}/sections/{index} — request body."""

    response: Any = None


class CurrentSectionRequest(CamelModel):
    """PUT /api/lkpd/{assignment_id}/current-section — request body."""

    index: int


class SessionStartRequest(CamelModel):
    """POST /api/worksheet/session — optional request body."""

    worksheet_type: WorksheetType = WorksheetType.CYLINDER
    assignment_submission_id: int | None = None


class WorksheetSessionView(CamelModel):
    """Worksheet session endpoints — response body."""

    submission: Submission | None = None
    progress: Progress


class AutoSaveResponse(CamelModel):
    saved: bool


class SectionSaveResponse(CamelModel):
    saved: bool
    validation: SectionValidation | None = None


class LkpdView(CamelModel):
    """Section-based worksheet endpoints — response body."""

    worksheet: Worksheet
    submission: SectionSubmission
    progress: SectionProgress
