"""Rubric loading and retrieval service.

Provides access to assessment rubrics stored as ``rubric-<id>.json`` in
data/rubrics/ (or the directory named by ``RUBRIC_DIR``). Supports loading by
ID, listing/filtering by lesson and turning a rubric into the criteria
mapping embedded in the evaluation prompt.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from config.settings import get_settings
from models.rubric import Rubric

logger = logging.getLogger(__name__)

DEFAULT_RUBRIC_DIR = Path(__file__).parent.parent / "data" / "rubrics"


def rubric_dir() -> Path:
    configured = get_settings().rubric_dir
    return Path(configured) if configured else DEFAULT_RUBRIC_DIR


@lru_cache(maxsize=32)
def load_rubric(rubric_id: int) -> Rubric | None:
    """Load a rubric by ID from the rubric directory.

    Args:
        rubric_id: Numeric rubric ID (file ``rubric-<id>.json``).

    Returns:
        Rubric object if found and valid, None otherwise.
    """
    file_path = rubric_dir() / f"rubric-{rubric_id}.json"
    if not file_path.exists():
        logger.warning("Rubric not found: %s", rubric_id)
        return None

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Rubric.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error("Failed to load rubric %s: %s", rubric_id, e)
        return None


def list_rubrics(lesson_id: int | None = None) -> list[dict[str, Any]]:
    """List available rubrics, optionally filtered by lesson.

    Returns:
        List of rubric summaries with id, lessonId, title, maxScore and the
        criteria keys, ordered by id.
    """
    directory = rubric_dir()
    if not directory.exists():
        logger.warning("Rubric directory does not exist: %s", directory)
        return []

    rubrics = []
    for file_path in directory.glob("rubric-*.json"):
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)

            if lesson_id is not None and data.get("lessonId") != lesson_id:
                continue

            rubrics.append({
                "id": data["id"],
                "lessonId": data.get("lessonId"),
                "title": data["title"],
                "maxScore": data.get("maxScore", 100),
                "criteria": [c["key"] for c in data.get("criteria", [])],
            })
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Failed to read rubric file %s: %s", file_path, e)
            continue

    return sorted(rubrics, key=lambda r: r["id"])


def get_rubric_for_lesson(lesson_id: int) -> Rubric | None:
    """First rubric attached to a lesson, or None."""
    candidates = list_rubrics(lesson_id=lesson_id)
    if not candidates:
        return None
    return load_rubric(candidates[0]["id"])


def get_rubric_criteria(rubric_id: int | None) -> dict[str, Any]:
    """Convert a rubric's criteria into a mapping suitable for LLM prompts.

    Absence is tolerated: an unknown, unreadable or unspecified rubric
    yields ``{}`` and the evaluation proceeds without criteria.

    Returns:
        ``{criterion_key: {name, description, weight, levels}}`` where
        ``levels`` maps each score (as a string) to its descriptor.
    """
    if rubric_id is None:
        return {}
    rubric = load_rubric(rubric_id)
    if rubric is None:
        return {}

    return {
        criterion.key.value: {
            "name": criterion.name,
            "description": criterion.description,
            "weight": criterion.weight,
            "levels": {str(level.score): level.descriptor for level in criterion.levels},
        }
        for criterion in rubric.criteria
    }
