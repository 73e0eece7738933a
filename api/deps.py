"""Shared FastAPI dependencies — store, sessions and the assessment model."""

from __future__ import annotations

from fastapi import Request

from services.llm_service import LLMService
from services.record_store import RecordStore
from services.submission_service import WorksheetSessionRegistry


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.record_store


def get_session_registry(request: Request) -> WorksheetSessionRegistry:
    return request.app.state.session_registry


def get_assessment_llm() -> LLMService:
    return LLMService()
