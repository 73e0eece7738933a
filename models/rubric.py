"""Rubric models — scoring criteria used to structure a grading response.

Every assessment is scored on the same four criteria, each on an integer
1–4 scale (4 = excellent, 3 = good, 2 = satisfactory, 1 = needs improvement).
The overall score is a separate 0–100 value.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from models.base import CamelModel


class Criterion(str, Enum):
    """The four fixed rubric criteria."""

    MATHEMATICAL_ACCURACY = "mathematical_accuracy"
    CONCEPTUAL_UNDERSTANDING = "conceptual_understanding"
    PROBLEM_SOLVING_APPROACH = "problem_solving_approach"
    COMMUNICATION = "communication"


CRITERION_MIN_SCORE = 1
CRITERION_MAX_SCORE = 4


class RubricLevel(CamelModel):
    """Descriptor for one point on the 1–4 scale."""
    score: int = Field(ge=CRITERION_MIN_SCORE, le=CRITERION_MAX_SCORE)
    descriptor: str


class RubricCriterion(CamelModel):
    """A single scoring dimension."""
    key: Criterion
    name: str
    description: str = ""
    weight: float = 0.25
    levels: list[RubricLevel] = Field(default_factory=list)


class Rubric(CamelModel):
    """A named set of scoring criteria, optionally attached to a lesson."""
    id: int
    lesson_id: int | None = None
    title: str
    max_score: int = 100
    criteria: list[RubricCriterion] = Field(default_factory=list)
