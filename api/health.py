"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

from config.settings import get_settings
from services.record_store import RedisRecordStore

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(request: Request):
    settings = get_settings()
    store = getattr(request.app.state, "record_store", None)
    status = {
        "status": "healthy",
        "model": settings.assessment_model,
        "recordStore": type(store).__name__ if store is not None else None,
    }
    if isinstance(store, RedisRecordStore):
        status["redis"] = "ok" if await store.ping() else "unreachable"
    return status
