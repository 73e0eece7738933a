"""Worksheet API — staged submission session for the current learner."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Query

from api.deps import get_session_registry
from errors.exceptions import NoActiveSubmissionError
from models.learner import Learner
from models.request import (
    AutoSaveResponse,
    SessionStartRequest,
    StagePayloadRequest,
    WorksheetSessionView,
)
from models.submission import Progress
from services.auth import get_current_learner
from services.submission_service import WorksheetSession, WorksheetSessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/worksheet", tags=["worksheet"])


def _view(session: WorksheetSession) -> WorksheetSessionView:
    return WorksheetSessionView(submission=session.submission, progress=session.get_progress())


def _active_session(
    learner: Learner = Depends(get_current_learner),
    registry: WorksheetSessionRegistry = Depends(get_session_registry),
) -> WorksheetSession:
    session = registry.get(learner.id)
    if session is None or session.submission is None:
        raise NoActiveSubmissionError()
    return session


@router.post("/session", response_model=WorksheetSessionView)
async def start_session(
    req: SessionStartRequest | None = Body(default=None),
    learner: Learner = Depends(get_current_learner),
    registry: WorksheetSessionRegistry = Depends(get_session_registry),
):
    """Enter the worksheet: resume the open submission or start a new one."""
    req = req or SessionStartRequest()
    session = registry.open(learner)
    await session.initialize(
        worksheet_type=req.worksheet_type,
        assignment_submission_id=req.assignment_submission_id,
    )
    return _view(session)


@router.get("/session", response_model=WorksheetSessionView)
async def load_session(
    submission_id: int | None = Query(default=None, alias="submissionId"),
    learner: Learner = Depends(get_current_learner),
    registry: WorksheetSessionRegistry = Depends(get_session_registry),
):
    session = registry.open(learner)
    await session.load(submission_id)
    return _view(session)


@router.delete("/session")
async def close_session(
    learner: Learner = Depends(get_current_learner),
    registry: WorksheetSessionRegistry = Depends(get_session_registry),
):
    """Leave the worksheet (logout / navigation away)."""
    return {"closed": registry.close(learner.id)}


@router.put("/stages/{stage}", response_model=WorksheetSessionView)
async def complete_stage(
    stage: int,
    req: StagePayloadRequest,
    session: WorksheetSession = Depends(_active_session),
):
    """Complete a stage. Errors are returned so the client does not advance."""
    await session.update_stage(stage, req.data)
    return _view(session)


@router.patch("/stages/{stage}", response_model=AutoSaveResponse)
async def auto_save_stage(
    stage: int,
    req: StagePayloadRequest,
    session: WorksheetSession = Depends(_active_session),
):
    return AutoSaveResponse(saved=await session.auto_save(stage, req.data))


@router.post("/submit", response_model=WorksheetSessionView)
async def submit_worksheet(session: WorksheetSession = Depends(_active_session)):
    await session.submit()
    return _view(session)


@router.get("/progress", response_model=Progress)
async def get_progress(
    learner: Learner = Depends(get_current_learner),
    registry: WorksheetSessionRegistry = Depends(get_session_registry),
):
    """Stage progress; zero when no submission is loaded."""
    return registry.open(learner).get_progress()
