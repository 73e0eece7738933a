"""Rubric API — read-only access to the bundled scoring rubrics."""

from __future__ import annotations

from fastapi import APIRouter, Query

from errors.exceptions import NotFoundError
from models.rubric import Rubric
from services.rubric_service import list_rubrics, load_rubric

router = APIRouter(prefix="/api/rubrics", tags=["rubrics"])


@router.get("")
async def get_rubrics(lesson_id: int | None = Query(default=None, alias="lessonId")):
    return {"rubrics": list_rubrics(lesson_id=lesson_id)}


@router.get("/{rubric_id}", response_model=Rubric)
async def get_rubric(rubric_id: int):
    rubric = load_rubric(rubric_id)
    if rubric is None:
        raise NotFoundError("Rubric not found", f"id={rubric_id}")
    return rubric
