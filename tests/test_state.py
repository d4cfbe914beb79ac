"""Tests for the project state machine."""

import asyncio

import pytest

from dossier.errors import NotFoundError, PipelineStateConflictError
from dossier.models import Project, ProjectStatus as S
from dossier.pipeline import IN_PROGRESS, ProjectStateMachine, can_transition
from dossier.storage import SQLiteRepository


@pytest.fixture
def machine(repository):
    return ProjectStateMachine(repository)


async def project_in(repository, status: S, project_id: str = "p1") -> Project:
    project = Project(id=project_id, title="Audit", status=status)
    await repository.save_project(project)
    return project


class TestTransitionTable:
    """Tests for the allowed transitions."""

    @pytest.mark.parametrize("current,target", [
        (S.DRAFT, S.UPLOADING),
        (S.DRAFT, S.INGESTING),
        (S.UPLOADING, S.INGESTING),
        (S.INGESTING, S.INGESTED),
        (S.INGESTED, S.EMBEDDING),
        (S.EMBEDDING, S.EMBEDDED),
        (S.EMBEDDED, S.GENERATING),
        (S.GENERATING, S.GENERATED),
        (S.GENERATED, S.EXPORTED),
        (S.EXPORTED, S.EXPORTED),
        (S.GENERATED, S.GENERATING),
        (S.GENERATED, S.UPLOADING),
        (S.ERROR, S.INGESTING),
        (S.ERROR, S.EMBEDDING),
        (S.ERROR, S.GENERATING),
        (S.GENERATING, S.ERROR),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (S.DRAFT, S.GENERATING),
        (S.DRAFT, S.EMBEDDING),
        (S.UPLOADING, S.GENERATING),
        (S.INGESTED, S.GENERATING),
        (S.EMBEDDED, S.EXPORTED),
        (S.GENERATING, S.GENERATING),
        (S.INGESTING, S.UPLOADING),
        (S.EMBEDDING, S.INGESTING),
        (S.DRAFT, S.ERROR),
        (S.GENERATED, S.ERROR),
        (S.ERROR, S.DRAFT),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_in_progress(self):
        assert IN_PROGRESS == {S.INGESTING, S.EMBEDDING, S.GENERATING}
        for status in IN_PROGRESS:
            for target in (S.INGESTING, S.EMBEDDING, S.GENERATING, S.UPLOADING):
                assert not can_transition(status, target)


class TestStateMachine:
    """Tests for guarded status writes."""

    @pytest.mark.asyncio
    async def test_transition_persists(self, machine, repository):
        before = await project_in(repository, S.EMBEDDED)
        updated = await machine.transition("p1", S.GENERATING)
        assert updated.status == S.GENERATING
        stored = await repository.get_project("p1")
        assert stored.status == S.GENERATING
        assert stored.updated_at >= before.updated_at

    @pytest.mark.asyncio
    async def test_conflict_leaves_status(self, machine, repository):
        await project_in(repository, S.DRAFT)
        with pytest.raises(PipelineStateConflictError) as exc:
            await machine.transition("p1", S.GENERATING)
        assert exc.value.current == "draft"
        assert exc.value.requested == "generating"
        assert exc.value.retryable is False
        assert (await repository.get_project("p1")).status == S.DRAFT

    @pytest.mark.asyncio
    async def test_unknown_project(self, machine):
        with pytest.raises(NotFoundError):
            await machine.transition("ghost", S.UPLOADING)

    @pytest.mark.asyncio
    async def test_error_records_reason_and_success_clears_it(self, machine, repository):
        await project_in(repository, S.GENERATING)
        failed = await machine.fail("p1", "provider down")
        assert failed.status == S.ERROR
        assert failed.last_error == "provider down"

        await machine.transition("p1", S.GENERATING)
        assert (await repository.get_project("p1")).last_error == "provider down"
        done = await machine.transition("p1", S.GENERATED)
        assert done.last_error is None

    def test_ensure_allowed(self, machine):
        project = Project(id="p1", title="Audit", status=S.INGESTING)
        with pytest.raises(PipelineStateConflictError):
            machine.ensure_allowed(project, S.INGESTING)
        machine.ensure_allowed(project, S.INGESTED)

    @pytest.mark.asyncio
    async def test_concurrent_start_only_one_wins(self, machine, repository):
        await project_in(repository, S.EMBEDDED)
        outcomes = await asyncio.gather(
            machine.transition("p1", S.GENERATING),
            machine.transition("p1", S.GENERATING),
            return_exceptions=True,
        )
        winners = [o for o in outcomes if isinstance(o, Project)]
        losers = [o for o in outcomes if isinstance(o, PipelineStateConflictError)]
        assert len(winners) == 1
        assert len(losers) == 1


class TestSharedDatabase:
    """Tests for status changes from separate workers on one database."""

    @pytest.mark.asyncio
    async def test_two_workers_only_one_starts(self, tmp_path):
        db_path = str(tmp_path / "shared.db")
        first = ProjectStateMachine(SQLiteRepository(db_path))
        second = ProjectStateMachine(SQLiteRepository(db_path))
        await project_in(first.repository, S.EMBEDDED)

        outcomes = await asyncio.gather(
            first.transition("p1", S.GENERATING),
            second.transition("p1", S.GENERATING),
            return_exceptions=True,
        )
        winners = [o for o in outcomes if isinstance(o, Project)]
        losers = [o for o in outcomes if isinstance(o, PipelineStateConflictError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].current == "generating"
        assert (await second.repository.get_project("p1")).status == S.GENERATING

    @pytest.mark.asyncio
    async def test_many_workers_only_one_starts(self, tmp_path):
        db_path = str(tmp_path / "shared.db")
        machines = [ProjectStateMachine(SQLiteRepository(db_path)) for _ in range(6)]
        await project_in(machines[0].repository, S.INGESTED)

        outcomes = await asyncio.gather(
            *(m.transition("p1", S.EMBEDDING) for m in machines),
            return_exceptions=True,
        )
        assert sum(isinstance(o, Project) for o in outcomes) == 1
        assert sum(isinstance(o, PipelineStateConflictError) for o in outcomes) == 5


class TestRepositoryTransition:
    """Tests for the conditional status write of each backend."""

    @pytest.mark.asyncio
    async def test_allowed_status_is_replaced(self, any_repository):
        await project_in(any_repository, S.EMBEDDED)
        previous, project = await any_repository.transition_status(
            "p1", frozenset({S.EMBEDDED}), S.GENERATING
        )
        assert previous == S.EMBEDDED
        assert project.status == S.GENERATING
        assert (await any_repository.get_project("p1")).status == S.GENERATING

    @pytest.mark.asyncio
    async def test_disallowed_status_is_kept(self, any_repository):
        await project_in(any_repository, S.GENERATING)
        with pytest.raises(PipelineStateConflictError) as exc:
            await any_repository.transition_status(
                "p1", frozenset({S.EMBEDDED, S.GENERATED}), S.GENERATING
            )
        assert exc.value.current == "generating"
        assert (await any_repository.get_project("p1")).status == S.GENERATING

    @pytest.mark.asyncio
    async def test_empty_allowed_set(self, any_repository):
        await project_in(any_repository, S.ERROR)
        with pytest.raises(PipelineStateConflictError):
            await any_repository.transition_status("p1", frozenset(), S.DRAFT)

    @pytest.mark.asyncio
    async def test_missing_project(self, any_repository):
        with pytest.raises(NotFoundError):
            await any_repository.transition_status("ghost", frozenset({S.DRAFT}), S.UPLOADING)

    @pytest.mark.asyncio
    async def test_last_error_written_only_when_asked(self, any_repository):
        await project_in(any_repository, S.GENERATING)
        _, failed = await any_repository.transition_status(
            "p1", frozenset({S.GENERATING}), S.ERROR, last_error="timeout", update_error=True
        )
        assert failed.last_error == "timeout"
        _, retried = await any_repository.transition_status("p1", frozenset({S.ERROR}), S.GENERATING)
        assert retried.last_error == "timeout"
