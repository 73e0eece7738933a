"""LKPD API — section-based worksheets (navigation, responses, submission)."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.deps import get_record_store
from models.learner import Learner
from models.request import (
    CurrentSectionRequest,
    LkpdView,
    SectionResponseRequest,
    SectionSaveResponse,
)
from services.auth import get_current_learner
from services.record_store import RecordStore
from services.section_service import SectionNavigator, validate_section_response

router = APIRouter(prefix="/api/lkpd", tags=["lkpd"])


def _view(nav: SectionNavigator) -> LkpdView:
    return LkpdView(worksheet=nav.worksheet, submission=nav.submission, progress=nav.progress())


async def _navigator(
    assignment_id: str,
    learner: Learner = Depends(get_current_learner),
    store: RecordStore = Depends(get_record_store),
) -> SectionNavigator:
    return await SectionNavigator.open(store, assignment_id, learner)


@router.get("/{assignment_id}", response_model=LkpdView)
async def get_lkpd(nav: SectionNavigator = Depends(_navigator)):
    """Worksheet definition plus the learner's (possibly new) submission."""
    return _view(nav)


@router.put("/{assignment_id}/sections/{index}", response_model=SectionSaveResponse)
async def save_section(
    index: int,
    req: SectionResponseRequest,
    nav: SectionNavigator = Depends(_navigator),
):
    """Auto-save a section response. Validation is advisory here."""
    validation = None
    if 0 <= index < nav.worksheet.section_count:
        validation = validate_section_response(nav.worksheet.sections[index], req.response)
    saved = await nav.save_section(index, req.response)
    return SectionSaveResponse(saved=saved, validation=validation)


@router.post("/{assignment_id}/sections/{index}/complete", response_model=LkpdView)
async def complete_section(index: int, nav: SectionNavigator = Depends(_navigator)):
    await nav.mark_section_complete(index)
    return _view(nav)


@router.put("/{assignment_id}/current-section", response_model=LkpdView)
async def set_current_section(
    req: CurrentSectionRequest,
    nav: SectionNavigator = Depends(_navigator),
):
    await nav.go_to_section(req.index)
    return _view(nav)


@router.post("/{assignment_id}/submit", response_model=LkpdView)
async def submit_lkpd(nav: SectionNavigator = Depends(_navigator)):
    await nav.submit()
    return _view(nav)
