"""Tests for rubric service and the rubric models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from models.rubric import Criterion, RubricLevel
from services.rubric_service import (
    get_rubric_criteria,
    get_rubric_for_lesson,
    list_rubrics,
    load_rubric,
)


class TestRubricService:
    """Tests for rubric_service.py functions."""

    def test_load_rubric_exists(self):
        """Should load a bundled rubric by ID."""
        rubric = load_rubric(1)
        assert rubric is not None
        assert rubric.id == 1
        assert rubric.lesson_id == 1
        assert rubric.max_score == 100
        assert [c.key for c in rubric.criteria] == list(Criterion)

    def test_load_rubric_not_found(self):
        assert load_rubric(999) is None

    def test_list_rubrics_all(self):
        rubrics = list_rubrics()
        assert [r["id"] for r in rubrics] == [1, 2, 3]
        assert rubrics[0]["criteria"] == [c.value for c in Criterion]

    def test_list_rubrics_filter_lesson(self):
        rubrics = list_rubrics(lesson_id=2)
        assert len(rubrics) == 1
        assert rubrics[0]["lessonId"] == 2

    def test_list_rubrics_filter_no_match(self):
        assert list_rubrics(lesson_id=404) == []

    def test_get_rubric_for_lesson(self):
        rubric = get_rubric_for_lesson(3)
        assert rubric is not None
        assert "Sphere" in rubric.title

    def test_get_rubric_for_lesson_missing(self):
        assert get_rubric_for_lesson(404) is None


class TestRubricCriteria:
    def test_criteria_mapping(self):
        criteria = get_rubric_criteria(1)
        assert set(criteria) == {c.value for c in Criterion}
        accuracy = criteria["mathematical_accuracy"]
        assert accuracy["name"] == "Mathematical Accuracy"
        assert set(accuracy["levels"]) == {"1", "2", "3", "4"}

    def test_absent_rubric_is_empty(self):
        assert get_rubric_criteria(None) == {}
        assert get_rubric_criteria(999) == {}


class TestRubricLevel:
    def test_score_range(self):
        assert RubricLevel(score=4, descriptor="excellent").score == 4
        with pytest.raises(ValidationError):
            RubricLevel(score=5, descriptor="off the scale")
        with pytest.raises(ValidationError):
            RubricLevel(score=0, descriptor="below the scale")
