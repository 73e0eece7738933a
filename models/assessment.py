"""Assessment models — feedback payloads and the assessment record lifecycle.

The record status is a closed union of four states. Only the transitions

    pending → processing → completed
                         → failed

are allowed; ``completed`` and ``failed`` are absorbing. Score, feedback and
reasoning exist only on the ``completed`` state, so a record can never carry
a score without being completed.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import Field

from errors.exceptions import IllegalTransitionError
from models.base import CamelModel


class GeometryType(str, Enum):
    CYLINDER = "cylinder"
    CONE = "cone"
    SPHERE = "sphere"


class ReasoningStep(CamelModel):
    """One step of the model's reasoning trace."""
    step: int
    reasoning: str
    finding: str
    confidence: float = Field(ge=0.0, le=1.0)


class AssessmentFeedback(CamelModel):
    """Structured feedback object the model is asked to produce."""
    overall_score: int = Field(ge=0, le=100)
    criteria_scores: dict[str, int]
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    detailed_feedback: str = ""
    next_steps: list[str] = Field(default_factory=list)


# ── Status union ─────────────────────────────────────────────


class PendingState(CamelModel):
    status: Literal["pending"] = "pending"


class ProcessingState(CamelModel):
    status: Literal["processing"] = "processing"


class CompletedState(CamelModel):
    status: Literal["completed"] = "completed"
    score: int | float | None = None
    feedback: dict[str, Any]
    reasoning: list[Any] = Field(default_factory=list)
    processing_time_ms: int = 0
    needs_review: bool = False  # fallback feedback was substituted


class FailedState(CamelModel):
    status: Literal["failed"] = "failed"
    reason: str = ""


AssessmentState = Annotated[
    Union[PendingState, ProcessingState, CompletedState, FailedState],
    Field(discriminator="status"),
]

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"processing"}),
    "processing": frozenset({"completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
}


class AssessmentRecord(CamelModel):
    """Persisted unit of work for one grading request."""

    id: int | None = None
    learner_id: str
    lesson_id: int
    rubric_id: int | None = None
    geometry_type: str
    problem_text: str
    student_answer: str
    state: AssessmentState = Field(default_factory=PendingState)
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def status(self) -> str:
        return self.state.status

    def start_processing(self) -> None:
        self._transition(ProcessingState())

    def complete(
        self,
        *,
        feedback: dict[str, Any],
        reasoning: list[Any],
        processing_time_ms: int,
        needs_review: bool = False,
    ) -> None:
        self._transition(CompletedState(
            score=_numeric_score(feedback),
            feedback=feedback,
            reasoning=reasoning,
            processing_time_ms=processing_time_ms,
            needs_review=needs_review,
        ))

    def fail(self, reason: str) -> None:
        self._transition(FailedState(reason=reason))

    def _transition(self, new_state: CompletedState | FailedState | ProcessingState) -> None:
        if new_state.status not in ALLOWED_TRANSITIONS[self.status]:
            raise IllegalTransitionError(self.status, new_state.status)
        self.state = new_state

    # ── Persistence mapping ──────────────────────────────────

    def to_record(self) -> dict[str, Any]:
        """Flatten into store columns (ids and timestamps are store-assigned)."""
        state = self.state
        return {
            "learner_id": self.learner_id,
            "lesson_id": self.lesson_id,
            "rubric_id": self.rubric_id,
            "geometry_type": self.geometry_type,
            "problem_text": self.problem_text,
            "student_answer": self.student_answer,
            "status": state.status,
            "score": state.score if isinstance(state, CompletedState) else None,
            "feedback": state.feedback if isinstance(state, CompletedState) else None,
            "reasoning": state.reasoning if isinstance(state, CompletedState) else None,
            "processing_time_ms": (
                state.processing_time_ms if isinstance(state, CompletedState) else None
            ),
            "needs_review": state.needs_review if isinstance(state, CompletedState) else False,
            "failure_reason": state.reason if isinstance(state, FailedState) else None,
        }

    def state_changes(self) -> dict[str, Any]:
        """Columns touched by a status transition."""
        record = self.to_record()
        return {
            key: record[key]
            for key in (
                "status", "score", "feedback", "reasoning",
                "processing_time_ms", "needs_review", "failure_reason",
            )
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> AssessmentRecord:
        status = data.get("status", "pending")
        if status == "completed":
            state: Any = CompletedState(
                score=data.get("score"),
                feedback=data.get("feedback") or {},
                reasoning=data.get("reasoning") or [],
                processing_time_ms=data.get("processing_time_ms") or 0,
                needs_review=bool(data.get("needs_review")),
            )
        elif status == "failed":
            state = FailedState(reason=data.get("failure_reason") or "")
        elif status == "processing":
            state = ProcessingState()
        else:
            state = PendingState()
        return cls(
            id=data.get("id"),
            learner_id=data["learner_id"],
            lesson_id=data["lesson_id"],
            rubric_id=data.get("rubric_id"),
            geometry_type=data.get("geometry_type", GeometryType.CYLINDER.value),
            problem_text=data.get("problem_text", ""),
            student_answer=data.get("student_answer", ""),
            state=state,
            version=data.get("version", 0),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


def _numeric_score(feedback: dict[str, Any]) -> int | float | None:
    """``overallScore`` as given by the model, when it is a number."""
    value = feedback.get("overallScore")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


# ── Read models ──────────────────────────────────────────────


class AssessmentView(CamelModel):
    """Flat, client-facing projection of an :class:`AssessmentRecord`."""

    id: int
    lesson_id: int
    rubric_id: int | None = None
    geometry_type: str
    problem_text: str
    student_answer: str
    status: str
    score: int | float | None = None
    feedback: dict[str, Any] | None = None
    reasoning: list[Any] | None = None
    processing_time_ms: int | None = None
    needs_review: bool = False
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_assessment(cls, record: AssessmentRecord) -> AssessmentView:
        return cls(
            id=record.id,
            created_at=record.created_at,
            updated_at=record.updated_at,
            **{k: v for k, v in record.to_record().items() if k != "learner_id"},
        )


class LessonAssessmentStats(CamelModel):
    total_submissions: int = 0
    average_score: int = 0
    last_submission: datetime | None = None
    completion_rate: float = 0.0
