"""Worksheet definition models (read-only content).

A worksheet is an ordered list of typed sections. The ``type`` field is the
discriminator; each type carries its own inputs. Rendering of the content
(markdown, 3D scenes) is the client's concern.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import Field

from models.base import CamelModel


class IntroSection(CamelModel):
    type: Literal["intro"] = "intro"
    title: str
    content: str = ""  # markdown


class ActivitySection(CamelModel):
    type: Literal["activity"] = "activity"
    title: str
    steps: list[str] = Field(default_factory=list)
    requires_3d: bool = False
    capture_parameters: list[str] = Field(default_factory=list)  # e.g. ["radius", "height"]
    instruction: str = ""


class ObservationSection(CamelModel):
    type: Literal["observation"] = "observation"
    title: str
    instruction: str = ""
    table_headers: list[str] = Field(default_factory=list)
    rows: int = 0
    auto_calculate: bool = False
    example_row: dict[str, str] | None = None


class AnalysisQuestion(CamelModel):
    id: str
    question: str
    hint: str | None = None
    type: Literal["essay", "short_answer"] = "essay"


class AnalysisSection(CamelModel):
    type: Literal["analysis"] = "analysis"
    title: str
    questions: list[AnalysisQuestion] = Field(default_factory=list)


class ConclusionSection(CamelModel):
    type: Literal["conclusion"] = "conclusion"
    title: str
    prompt: str = ""


WorksheetSection = Annotated[
    Union[IntroSection, ActivitySection, ObservationSection, AnalysisSection, ConclusionSection],
    Field(discriminator="type"),
]


class MaterialsNeeded(CamelModel):
    virtual: list[str] = Field(default_factory=list)
    physical: list[str] = Field(default_factory=list)


class RubricWeight(CamelModel):
    weight: float
    criteria: str


class Worksheet(CamelModel):
    id: int
    assignment_id: str
    title: str
    description: str = ""
    geometry_type: Literal["cylinder", "cone", "sphere"] = "cylinder"
    estimated_minutes: int = 0
    learning_objectives: list[str] = Field(default_factory=list)
    materials_needed: MaterialsNeeded = Field(default_factory=MaterialsNeeded)
    sections: list[WorksheetSection] = Field(default_factory=list)
    rubric: dict[str, RubricWeight] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def section_count(self) -> int:
        return len(self.sections)
