"""Tests for services.submission_service — the staged worksheet session."""

from __future__ import annotations

import pytest

from errors.exceptions import (
    AuthRequiredError,
    InvalidStageError,
    NoActiveSubmissionError,
    StoreUnavailableError,
    SubmissionClosedError,
    VersionConflictError,
)
from models.submission import Submission, WorksheetType
from services.record_store import ASSIGNMENT_SUBMISSIONS, SUBMISSIONS
from services.submission_service import (
    MAX_WRITE_ATTEMPTS,
    WorksheetSession,
    WorksheetSessionRegistry,
    progress_for,
)


@pytest.fixture
def session(store, learner) -> WorksheetSession:
    return WorksheetSession(store, learner, stage_count=6, title="LKPD Tabung")


# ── Entry ────────────────────────────────────────────────────


class TestInitialize:
    @pytest.mark.asyncio
    async def test_new_learner_gets_fresh_submission(self, session, store, learner):
        sub = await session.initialize()
        assert sub.current_stage == 1
        assert sub.completed_stages == []
        assert sub.is_completed is False
        assert sub.learner_id == learner.id
        assert sub.title == "LKPD Tabung"
        assert sub.worksheet_type == WorksheetType.CYLINDER
        assert len(await store.query(SUBMISSIONS)) == 1

    @pytest.mark.asyncio
    async def test_resume_is_idempotent(self, session, store):
        first = await session.initialize()
        await session.update_stage(1, {"answer": "r = 7"})

        again = await WorksheetSession(store, session.learner).initialize()
        assert again.id == first.id
        assert again.completed_stages == [1]
        assert len(await store.query(SUBMISSIONS)) == 1

    @pytest.mark.asyncio
    async def test_completed_submission_starts_new_attempt(self, session):
        first = await session.initialize()
        await session.submit()
        second = await session.initialize()
        assert second.id != first.id
        assert second.current_stage == 1

    @pytest.mark.asyncio
    async def test_worksheet_type_and_link(self, session):
        sub = await session.initialize(
            worksheet_type=WorksheetType.CONE, assignment_submission_id=17
        )
        assert sub.worksheet_type == WorksheetType.CONE
        assert sub.assignment_submission_id == 17

    @pytest.mark.asyncio
    async def test_requires_learner(self, store):
        with pytest.raises(AuthRequiredError):
            await WorksheetSession(store, None).initialize()

    @pytest.mark.asyncio
    async def test_sessions_do_not_share_submissions(self, store, learner, other_learner):
        mine = await WorksheetSession(store, learner).initialize()
        theirs = await WorksheetSession(store, other_learner).initialize()
        assert mine.id != theirs.id


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_specific(self, session, store, learner):
        first = await session.initialize()
        await session.submit()

        loaded = await WorksheetSession(store, learner).load(first.id)
        assert loaded.id == first.id
        assert loaded.is_completed is True

    @pytest.mark.asyncio
    async def test_load_latest(self, session, store, learner):
        created = await session.initialize()
        loaded = await WorksheetSession(store, learner).load()
        assert loaded.id == created.id

    @pytest.mark.asyncio
    async def test_load_missing_falls_back_to_initialize(self, session, store):
        loaded = await session.load(12345)
        assert loaded.current_stage == 1
        assert len(await store.query(SUBMISSIONS)) == 1

    @pytest.mark.asyncio
    async def test_load_foreign_id_falls_back(self, store, learner, other_learner):
        theirs = await WorksheetSession(store, other_learner).initialize()
        mine = await WorksheetSession(store, learner).load(theirs.id)
        assert mine.id != theirs.id
        assert mine.learner_id == learner.id


# ── Stage completion ─────────────────────────────────────────


class TestUpdateStage:
    @pytest.mark.asyncio
    async def test_complete_two_stages(self, session):
        await session.initialize()
        await session.update_stage(1, {"radius": 7})
        sub = await session.update_stage(2, {"height": 10})

        assert sub.completed_stages == [1, 2]
        assert sub.current_stage == 3
        assert sub.slot(1).data == {"radius": 7}
        assert sub.slot(2).completed_at is not None

    @pytest.mark.asyncio
    async def test_repeat_completion_no_duplicates(self, session):
        await session.initialize()
        await session.update_stage(3, {"a": 1})
        sub = await session.update_stage(3, {"b": 2})
        assert sub.completed_stages.count(3) == 1
        assert sub.current_stage == 4
        assert sub.slot(3).data == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stage,expected", [(1, 2), (5, 6), (6, 6)])
    async def test_current_stage_is_capped(self, session, stage, expected):
        await session.initialize()
        sub = await session.update_stage(stage, {})
        assert sub.current_stage == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stage", [0, 7, -1])
    async def test_out_of_range_stage(self, session, stage):
        await session.initialize()
        with pytest.raises(InvalidStageError):
            await session.update_stage(stage, {})

    @pytest.mark.asyncio
    async def test_without_submission(self, session):
        with pytest.raises(NoActiveSubmissionError):
            await session.update_stage(1, {})

    @pytest.mark.asyncio
    async def test_rejected_after_submit(self, session):
        await session.initialize()
        await session.submit()
        with pytest.raises(SubmissionClosedError):
            await session.update_stage(1, {"late": True})

    @pytest.mark.asyncio
    async def test_persisted_before_local_state(self, session, store, monkeypatch):
        await session.initialize()

        async def broken_update(*args, **kwargs):
            raise StoreUnavailableError("Record store unavailable", "down")

        monkeypatch.setattr(store, "update", broken_update)
        with pytest.raises(StoreUnavailableError):
            await session.update_stage(1, {"radius": 7})
        assert session.submission.completed_stages == []
        assert session.submission.current_stage == 1

    @pytest.mark.asyncio
    async def test_concurrent_write_is_not_lost(self, session, store):
        sub = await session.initialize()
        real_update = store.update
        interfered = {"done": False}

        async def racing_update(collection, record_id, changes, expected_version=None):
            if not interfered["done"]:
                interfered["done"] = True
                # Another device saves stage 2 between our read and our write
                row = await store.get(SUBMISSIONS, record_id)
                stages = {**row["stages"], "stage2": {"data": {"other": "device"}, "completed_at": None}}
                await real_update(collection, record_id, {"stages": stages})
            return await real_update(collection, record_id, changes, expected_version=expected_version)

        store.update = racing_update
        result = await session.update_stage(1, {"radius": 7})

        assert result.slot(1).data == {"radius": 7}
        assert result.slot(2).data == {"other": "device"}
        assert result.version == sub.version + 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, session, store):
        await session.initialize()
        calls = {"n": 0}

        async def always_conflicts(collection, record_id, changes, expected_version=None):
            calls["n"] += 1
            raise VersionConflictError(collection, record_id, expected_version, expected_version + 1)

        store.update = always_conflicts
        with pytest.raises(VersionConflictError):
            await session.update_stage(1, {})
        assert calls["n"] == MAX_WRITE_ATTEMPTS


# ── Auto-save ────────────────────────────────────────────────


class TestAutoSave:
    @pytest.mark.asyncio
    async def test_draft_does_not_advance(self, session, store):
        await session.initialize()
        assert await session.auto_save(2, {"draft": "half done"}) is True

        sub = session.submission
        assert sub.completed_stages == []
        assert sub.current_stage == 1
        assert sub.slot(2).data == {"draft": "half done"}
        assert sub.slot(2).completed_at is None

        row = await store.get(SUBMISSIONS, sub.id)
        assert row["stages"]["stage2"]["data"] == {"draft": "half done"}

    @pytest.mark.asyncio
    async def test_keeps_existing_completion(self, session):
        await session.initialize()
        completed = await session.update_stage(1, {"a": 1})
        stamp = completed.slot(1).completed_at

        await session.auto_save(1, {"b": 2})
        sub = session.submission
        assert sub.slot(1).completed_at == stamp
        assert sub.slot(1).data == {"a": 1, "b": 2}
        assert sub.completed_stages == [1]
        assert sub.current_stage == 2

    @pytest.mark.asyncio
    async def test_updates_last_auto_save(self, session):
        created = await session.initialize()
        await session.auto_save(1, {"x": 1})
        assert session.submission.last_auto_save >= created.last_auto_save

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, session, store, monkeypatch):
        await session.initialize()

        async def broken_update(*args, **kwargs):
            raise StoreUnavailableError("Record store unavailable", "timeout")

        monkeypatch.setattr(store, "update", broken_update)
        assert await session.auto_save(1, {"x": 1}) is False
        assert session.submission.slot(1) is None

    @pytest.mark.asyncio
    async def test_without_submission(self, session):
        assert await session.auto_save(1, {"x": 1}) is False

    @pytest.mark.asyncio
    async def test_closed_submission(self, session):
        await session.initialize()
        await session.submit()
        assert await session.auto_save(1, {"x": 1}) is False


# ── Submit ───────────────────────────────────────────────────


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_finalizes(self, session, store):
        await session.initialize()
        sub = await session.submit()
        assert sub.is_completed is True
        assert sub.completed_at is not None
        assert sub.submitted_at == sub.completed_at
        assert (await store.get(SUBMISSIONS, sub.id))["is_completed"] is True

    @pytest.mark.asyncio
    async def test_second_submit_is_noop(self, session):
        await session.initialize()
        first = await session.submit()
        second = await session.submit()
        assert second.completed_at == first.completed_at
        assert second.version == first.version

    @pytest.mark.asyncio
    async def test_closes_linked_assignment_submission(self, session, store):
        linked = await store.create(ASSIGNMENT_SUBMISSIONS, {"status": "in_progress", "is_completed": False})
        await session.initialize(assignment_submission_id=linked["id"])
        await session.submit()

        row = await store.get(ASSIGNMENT_SUBMISSIONS, linked["id"])
        assert row["status"] == "submitted"
        assert row["is_completed"] is True
        assert row["completed_at"] is not None

    @pytest.mark.asyncio
    async def test_missing_linked_record_is_tolerated(self, session):
        await session.initialize(assignment_submission_id=999)
        sub = await session.submit()
        assert sub.is_completed is True

    @pytest.mark.asyncio
    async def test_without_submission(self, session):
        with pytest.raises(NoActiveSubmissionError):
            await session.submit()


# ── Progress ─────────────────────────────────────────────────


class TestProgress:
    def test_no_submission(self):
        progress = progress_for(None, 6)
        assert (progress.completed, progress.total, progress.percentage) == (0, 6, 0)

    @pytest.mark.asyncio
    async def test_session_without_submission(self, session):
        assert session.get_progress().percentage == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stages,percentage", [
        ([1], 17),
        ([1, 2], 33),
        ([1, 2, 3], 50),
        ([1, 2, 3, 4, 5, 6], 100),
    ])
    async def test_percentage_rounds(self, session, stages, percentage):
        await session.initialize()
        for stage in stages:
            await session.update_stage(stage, {})
        progress = session.get_progress()
        assert progress.completed == len(stages)
        assert progress.percentage == percentage

    def test_half_rounds_up(self):
        sub = Submission(
            id=1,
            learner_id="x",
            stages={"stage1": {"completed_at": "2026-01-01T00:00:00Z"}},
        )
        assert progress_for(sub, 8).percentage == 13  # 12.5

    @pytest.mark.asyncio
    async def test_drafts_do_not_count(self, session):
        await session.initialize()
        await session.auto_save(1, {"draft": True})
        assert session.get_progress().completed == 0


# ── Registry ─────────────────────────────────────────────────


class TestRegistry:
    def test_open_reuses_session(self, store, learner):
        registry = WorksheetSessionRegistry(store)
        assert registry.open(learner) is registry.open(learner)
        assert len(registry) == 1

    def test_open_requires_learner(self, store):
        with pytest.raises(AuthRequiredError):
            WorksheetSessionRegistry(store).open(None)

    @pytest.mark.asyncio
    async def test_close_drops_state(self, store, learner):
        registry = WorksheetSessionRegistry(store)
        session = registry.open(learner)
        await session.initialize()

        assert registry.close(learner.id) is True
        assert session.submission is None
        assert registry.get(learner.id) is None
        assert registry.close(learner.id) is False
