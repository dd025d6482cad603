"""Tests for ProjectSyncService: link, re-sync, single-flight and status polling."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from acto_sync.connection.descriptor import ServerInfo
from acto_sync.connection.resolver import ConnectionResult
from acto_sync.errors import InvalidConnectionStringError, ProjectNotFoundError
from acto_sync.sync.orchestrator import MAX_STATUS_LENGTH
from acto_sync.sync.service import (
    ALREADY_RUNNING_MESSAGE,
    LINK_STARTED_MESSAGE,
    RESYNC_STARTED_MESSAGE,
    ProjectSyncService,
)

from conftest import RAW_CONNECTION_STRING, TARGET_PASSWORD, SyncHarness


def _service(harness: SyncHarness, factory=None, resolver=None) -> ProjectSyncService:
    return ProjectSyncService(
        projects=harness.projects,
        status_store=harness.status,
        resolver=resolver or MagicMock(),
        orchestrator_factory=factory or harness.orchestrator_factory(),
    )


class GatedOrchestrator:
    """Orchestrator stand-in that blocks until released."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.runs: list[int] = []

    async def run(self, project_id, target, user_id) -> bool:
        self.runs.append(project_id)
        await self.gate.wait()
        return True

    def factory(self):
        @asynccontextmanager
        async def scope():
            yield self

        return scope


# ============================================================================
# Link
# ============================================================================


class TestLinkProject:
    """Link creates or updates the project, then syncs in the background."""

    @pytest.mark.asyncio
    async def test_new_project_named_after_database(self, harness) -> None:
        service = _service(harness)

        ack = await service.link_project(None, RAW_CONNECTION_STRING, actor_user_id=7)

        assert ack.message == LINK_STARTED_MESSAGE
        project = harness.projects.projects[ack.project_id]
        assert project.project_name == "Sales"
        assert project.database_name == "Sales"

    @pytest.mark.asyncio
    async def test_sync_completes_and_links(self, harness) -> None:
        service = _service(harness)

        ack = await service.link_project(None, RAW_CONNECTION_STRING, actor_user_id=7)
        assert await service.wait_for_sync(ack.project_id) is True

        status = await service.get_sync_status(ack.project_id)
        assert (status.status, status.progress) == ("Completed", 100)
        assert harness.projects.projects[ack.project_id].is_linked is True
        assert len(harness.store.snapshot["tables"]) == 2

    @pytest.mark.asyncio
    async def test_existing_project_keeps_name(self, harness) -> None:
        project_id = await harness.projects.create("Reporting", 7, database_name="Old")
        service = _service(harness)

        ack = await service.link_project(project_id, RAW_CONNECTION_STRING, actor_user_id=9)
        await service.wait_for_sync(project_id)

        assert ack.project_id == project_id
        project = harness.projects.projects[project_id]
        assert project.project_name == "Reporting"
        assert project.database_name == "Sales"

    @pytest.mark.asyncio
    async def test_connection_string_not_stored(self, harness) -> None:
        service = _service(harness)

        ack = await service.link_project(None, RAW_CONNECTION_STRING, actor_user_id=7)
        await service.wait_for_sync(ack.project_id)

        stored = harness.projects.projects[ack.project_id].model_dump_json()
        assert TARGET_PASSWORD not in stored
        assert all(TARGET_PASSWORD not in s for s in harness.status.statuses_for(ack.project_id))

    @pytest.mark.asyncio
    async def test_unparseable_connection_string(self, harness) -> None:
        service = _service(harness)

        with pytest.raises(InvalidConnectionStringError):
            await service.link_project(None, "Server=S1;Password=x;", actor_user_id=7)

        assert harness.projects.projects == {}

    @pytest.mark.asyncio
    async def test_validation_message_redacted(self, harness) -> None:
        service = _service(harness)
        raw = f"Server=S1;Database=Sales;Password={TARGET_PASSWORD};"

        with pytest.raises(InvalidConnectionStringError) as exc_info:
            await service.link_project(None, raw, actor_user_id=7)

        assert TARGET_PASSWORD not in str(exc_info.value)
        assert "Username" in str(exc_info.value)


# ============================================================================
# Re-sync
# ============================================================================


class TestResyncProject:
    @pytest.mark.asyncio
    async def test_unknown_project_fails_before_any_connection(self, harness) -> None:
        service = _service(harness)

        with pytest.raises(ProjectNotFoundError):
            await service.resync_project(404, RAW_CONNECTION_STRING, actor_user_id=7)

        assert harness.reader.calls == []
        assert harness.detector.calls == 0
        assert harness.status.history == []

    @pytest.mark.asyncio
    async def test_unknown_project_checked_before_parsing(self, harness) -> None:
        service = _service(harness)

        with pytest.raises(ProjectNotFoundError):
            await service.resync_project(404, "not a connection string", actor_user_id=7)

    @pytest.mark.asyncio
    async def test_resync_existing(self, harness) -> None:
        project_id = await harness.projects.create("Sales", 7, database_name="Sales")
        service = _service(harness)

        ack = await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)

        assert ack.message == RESYNC_STARTED_MESSAGE
        assert await service.wait_for_sync(project_id) is True

    @pytest.mark.asyncio
    async def test_failed_resync_leaves_project_untouched(self, harness) -> None:
        project_id = await harness.projects.create("Sales", 7, database_name="Sales")
        before = harness.projects.projects[project_id]
        harness.reader.fail_on = "list_tables"
        service = _service(harness)

        await service.resync_project(
            project_id,
            RAW_CONNECTION_STRING.replace("Database=Sales", "Database=Other"),
            actor_user_id=8,
        )
        assert await service.wait_for_sync(project_id) is False

        assert harness.projects.projects[project_id] == before
        status = await service.get_sync_status(project_id)
        assert status.is_failed

    @pytest.mark.asyncio
    async def test_deleted_project_not_found(self, harness) -> None:
        project_id = await harness.projects.create("Sales", 7, database_name="Sales")
        await harness.projects.delete(project_id, 7)
        service = _service(harness)

        with pytest.raises(ProjectNotFoundError):
            await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)


# ============================================================================
# Single-flight
# ============================================================================


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_second_request_while_running(self, harness) -> None:
        gated = GatedOrchestrator()
        service = _service(harness, factory=gated.factory())
        project_id = await harness.projects.create("Sales", 7, database_name="Sales")

        await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)
        await asyncio.sleep(0)
        second = await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)

        assert second.message == ALREADY_RUNNING_MESSAGE
        assert service.is_sync_running(project_id) is True

        gated.gate.set()
        await service.wait_all()
        assert gated.runs == [project_id]

    @pytest.mark.asyncio
    async def test_new_sync_allowed_after_finish(self, harness) -> None:
        service = _service(harness)
        project_id = await harness.projects.create("Sales", 7, database_name="Sales")

        await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)
        await service.wait_all()
        await asyncio.sleep(0)
        ack = await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)

        assert ack.message == RESYNC_STARTED_MESSAGE
        await service.wait_all()

    @pytest.mark.asyncio
    async def test_different_projects_run_concurrently(self, harness) -> None:
        gated = GatedOrchestrator()
        service = _service(harness, factory=gated.factory())
        first = await harness.projects.create("A", 7, database_name="A")
        second = await harness.projects.create("B", 7, database_name="B")

        await service.resync_project(first, RAW_CONNECTION_STRING, actor_user_id=7)
        await service.resync_project(second, RAW_CONNECTION_STRING, actor_user_id=7)
        await asyncio.sleep(0)

        assert service.is_sync_running(first) and service.is_sync_running(second)
        gated.gate.set()
        await service.wait_all()
        assert sorted(gated.runs) == [first, second]

    @pytest.mark.asyncio
    async def test_wait_for_sync_without_task(self, harness) -> None:
        assert await _service(harness).wait_for_sync(1) is None


# ============================================================================
# Background scope failures
# ============================================================================


class TestBackgroundFailure:
    @pytest.mark.asyncio
    async def test_scope_failure_recorded_redacted(self, harness) -> None:
        @asynccontextmanager
        async def broken_scope():
            raise RuntimeError(f"cannot open store: Password={TARGET_PASSWORD};")
            yield  # pragma: no cover

        service = _service(harness, factory=broken_scope)
        project_id = await harness.projects.create("Sales", 7, database_name="Sales")

        await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)
        assert await service.wait_for_sync(project_id) is False

        status = await service.get_sync_status(project_id)
        assert status.status.startswith("Failed: ")
        assert status.progress == -1
        assert TARGET_PASSWORD not in status.status

    @pytest.mark.asyncio
    async def test_scope_failure_status_fits_column(self, harness) -> None:
        @asynccontextmanager
        async def broken_scope():
            raise RuntimeError("pool exhausted " + "x" * 1000)
            yield  # pragma: no cover

        service = _service(harness, factory=broken_scope)
        project_id = await harness.projects.create("Sales", 7, database_name="Sales")

        await service.resync_project(project_id, RAW_CONNECTION_STRING, actor_user_id=7)
        await service.wait_for_sync(project_id)

        status = await service.get_sync_status(project_id)
        assert len(status.status) <= MAX_STATUS_LENGTH
        assert status.status.startswith("Failed: pool exhausted")

    @pytest.mark.asyncio
    async def test_orchestrator_failure_observable(self, harness) -> None:
        harness.writer.fail_on = "columns"
        service = _service(harness)

        ack = await service.link_project(None, RAW_CONNECTION_STRING, actor_user_id=7)
        assert await service.wait_for_sync(ack.project_id) is False

        status = await service.get_sync_status(ack.project_id)
        assert status.is_failed
        assert harness.projects.projects[ack.project_id].is_linked is False


# ============================================================================
# Status polling
# ============================================================================


class TestWatchSyncStatus:
    @pytest.mark.asyncio
    async def test_yields_until_completed(self, harness) -> None:
        service = _service(harness)
        ack = await service.link_project(None, RAW_CONNECTION_STRING, actor_user_id=7)

        seen = [s async for s in service.watch_sync_status(ack.project_id, poll_interval=0.001)]

        assert seen[-1].status == "Completed"
        progress = [s.progress for s in seen]
        assert progress == sorted(progress)
        pairs = [(s.status, s.progress) for s in seen]
        assert len(pairs) == len(set(pairs))

    @pytest.mark.asyncio
    async def test_stops_on_failed(self, harness) -> None:
        harness.reader.fail_on = "list_tables"
        service = _service(harness)
        ack = await service.link_project(None, RAW_CONNECTION_STRING, actor_user_id=7)

        seen = [s async for s in service.watch_sync_status(ack.project_id, poll_interval=0.001)]

        assert seen[-1].is_failed
        assert seen[-1].progress == -1

    @pytest.mark.asyncio
    async def test_never_synced_project(self, harness) -> None:
        service = _service(harness)

        seen = [s async for s in service.watch_sync_status(99, poll_interval=0.001)]

        assert seen == []

    @pytest.mark.asyncio
    async def test_finished_sync_yields_once(self, harness) -> None:
        await harness.status.set(5, "Completed", 100)
        service = _service(harness)

        seen = [s async for s in service.watch_sync_status(5, poll_interval=0.001)]

        assert [(s.status, s.progress) for s in seen] == [("Completed", 100)]


# ============================================================================
# Verify and project CRUD
# ============================================================================


class TestVerifyConnection:
    @pytest.mark.asyncio
    async def test_delegates_to_resolver(self, harness) -> None:
        resolver = MagicMock()
        resolver.test_connection = AsyncMock(
            return_value=ConnectionResult(valid=True, message="Connection successful.")
        )
        service = _service(harness, resolver=resolver)
        info = ServerInfo(
            server="S1", database="Sales", username="u", password=SecretStr("p")
        )

        result = await service.verify_connection(info)

        assert result.valid is True
        resolver.test_connection.assert_awaited_once_with(info)


class TestProjects:
    @pytest.mark.asyncio
    async def test_create_and_get(self, harness) -> None:
        service = _service(harness)

        project = await service.create_project("Sales", 7, database_name="Sales")

        assert (await service.get_project(project.project_id)).project_name == "Sales"
        assert project.is_linked is False

    @pytest.mark.asyncio
    async def test_get_missing(self, harness) -> None:
        with pytest.raises(ProjectNotFoundError):
            await _service(harness).get_project(12)

    @pytest.mark.asyncio
    async def test_update_keeps_database(self, harness) -> None:
        service = _service(harness)
        project = await service.create_project("Sales", 7, database_name="Sales")

        updated = await service.update_project(
            project.project_id, "Sales EU", 8, description="EU tenant"
        )

        assert updated.project_name == "Sales EU"
        assert updated.database_name == "Sales"
        assert updated.description == "EU tenant"

    @pytest.mark.asyncio
    async def test_delete_hides_project(self, harness) -> None:
        service = _service(harness)
        project = await service.create_project("Sales", 7)

        await service.delete_project(project.project_id, 7)

        assert await service.list_projects() == []
        with pytest.raises(ProjectNotFoundError):
            await service.get_project(project.project_id)
