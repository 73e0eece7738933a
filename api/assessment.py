"""Assessment API — essay evaluation and assessment history."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from api.deps import get_assessment_llm, get_record_store
from config.settings import get_settings
from models.assessment import AssessmentView, LessonAssessmentStats
from models.learner import Learner
from models.request import EvaluationRequest, EvaluationResponse
from services.assessment_service import AssessmentService
from services.auth import get_current_learner
from services.llm_service import LLMService
from services.record_store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assessments", tags=["assessments"])


def get_assessment_service(
    store: RecordStore = Depends(get_record_store),
    llm: LLMService = Depends(get_assessment_llm),
) -> AssessmentService:
    return AssessmentService(store, llm)


@router.options("/evaluate")
async def evaluate_preflight():
    """Explicit preflight answer for clients that bypass the CORS middleware."""
    settings = get_settings()
    return PlainTextResponse("ok", headers={
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": ", ".join(settings.cors_allow_headers),
    })


@router.api_route(
    "/evaluate", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False
)
async def evaluate_method_not_allowed():
    # Registered ahead of /{assessment_id} so "evaluate" is never read as an id
    raise HTTPException(status_code=405, detail="Method not allowed", headers={"Allow": "POST, OPTIONS"})


@router.post("/evaluate", response_model=EvaluationResponse)
async def evaluate(
    req: EvaluationRequest | None = Body(default=None),
    learner: Learner = Depends(get_current_learner),
    service: AssessmentService = Depends(get_assessment_service),
):
    """Grade a free-text answer with the assessment model.

    Always answers with feedback unless the model call itself fails; an
    unusable model reply yields the fallback feedback.
    """
    return await service.evaluate(req or EvaluationRequest(), learner)


@router.get("", response_model=list[AssessmentView])
async def list_assessments(
    lesson_id: int | None = Query(default=None, alias="lessonId"),
    learner: Learner = Depends(get_current_learner),
    service: AssessmentService = Depends(get_assessment_service),
):
    records = await service.list_history(learner, lesson_id)
    return [AssessmentView.from_assessment(r) for r in records]


@router.get("/lessons/{lesson_id}/stats", response_model=LessonAssessmentStats)
async def lesson_stats(
    lesson_id: int,
    learner: Learner = Depends(get_current_learner),
    service: AssessmentService = Depends(get_assessment_service),
):
    return await service.lesson_stats(lesson_id, learner)


@router.get("/{assessment_id}", response_model=AssessmentView)
async def get_assessment(
    assessment_id: int,
    learner: Learner = Depends(get_current_learner),
    service: AssessmentService = Depends(get_assessment_service),
):
    record = await service.get_assessment(learner, assessment_id)
    return AssessmentView.from_assessment(record)
