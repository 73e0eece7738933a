"""Shared pytest fixtures for the worksheet and assessment tests.

Provides:
- ``store``: Fresh InMemoryRecordStore per test
- ``learner`` / ``other_learner``: authenticated identities
- ``fake_llm``: scripted stand-in for the assessment model
- ``client``: httpx AsyncClient against the app, with the store, session
  registry, learner and model wired in
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from models.learner import Learner
from services.record_store import InMemoryRecordStore
from services.submission_service import WorksheetSessionRegistry
from tests.fakes import FakeLLM, sample_reply


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Fresh record store — isolated per test."""
    return InMemoryRecordStore()


@pytest.fixture
def learner() -> Learner:
    return Learner(id="learner-001", email="siswa@example.com")


@pytest.fixture
def other_learner() -> Learner:
    return Learner(id="learner-002", email="teman@example.com")


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM(reply=sample_reply())


@pytest.fixture
async def client(store, learner, fake_llm):
    from api.deps import get_assessment_llm
    from main import app
    from services.auth import get_current_learner

    # ASGITransport does not run the lifespan; wire state by hand
    app.state.record_store = store
    app.state.session_registry = WorksheetSessionRegistry(store, stage_count=6)
    app.dependency_overrides[get_current_learner] = lambda: learner
    app.dependency_overrides[get_assessment_llm] = lambda: fake_llm

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
