"""Submission models — a learner's progress through a worksheet.

Two variants share the same ownership rules:

- :class:`Submission` — fixed, numbered stages (1..N, N=6 by default).
- :class:`SectionSubmission` — variable-length section list defined by the
  worksheet content.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from models.base import CamelModel


class WorksheetType(str, Enum):
    """Solid the guided project is built around."""

    CYLINDER = "cylinder"
    HEMISPHERE = "hemisphere"
    CONE = "cone"
    COMPOSITE = "composite"


def stage_key(stage: int) -> str:
    """Payload-map key for a stage number."""
    return f"stage{stage}"


def section_key(index: int) -> str:
    """Response-map key for a section index."""
    return f"section_{index}"


class StageSlot(CamelModel):
    """Learner data captured for one stage."""
    data: dict[str, Any] = Field(default_factory=dict)
    completed_at: datetime | None = None


class Submission(CamelModel):
    """One learner's attempt at a staged worksheet."""

    id: int
    learner_id: str
    title: str = ""
    worksheet_type: WorksheetType = WorksheetType.CYLINDER
    stages: dict[str, StageSlot] = Field(default_factory=dict)
    current_stage: int = 1
    completed_stages: list[int] = Field(default_factory=list)
    is_completed: bool = False
    assignment_submission_id: int | None = None
    started_at: datetime | None = None
    last_auto_save: datetime | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def slot(self, stage: int) -> StageSlot | None:
        return self.stages.get(stage_key(stage))

    def to_changes(self) -> dict[str, Any]:
        """Mutable columns written back on every stage update."""
        return self.model_dump(
            mode="json",
            include={
                "stages",
                "current_stage",
                "completed_stages",
                "is_completed",
                "last_auto_save",
                "submitted_at",
                "completed_at",
            },
        )


class Progress(CamelModel):
    completed: int
    total: int
    percentage: int


class SectionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"


class SectionSubmission(CamelModel):
    """One learner's submission for a section-based worksheet assignment."""

    id: int
    assignment_id: str
    learner_id: str
    section_responses: dict[str, Any] = Field(default_factory=dict)
    current_section: int = 0
    completed_sections: list[int] = Field(default_factory=list)
    status: SectionStatus = SectionStatus.DRAFT
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SectionValidation(CamelModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class SectionProgress(CamelModel):
    total_sections: int
    completed_sections: int
    current_section: int
    percentage: int
