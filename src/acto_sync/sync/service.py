"""Caller-facing project sync operations.

``ProjectSyncService`` is what a request handler or the CLI talks to.
``link_project`` and ``resync_project`` return as soon as the background
sync task is scheduled; progress is observed with ``get_sync_status`` or
``watch_sync_status``.

Background syncs run in their own scope (a fresh metadata store and
orchestrator from ``orchestrator_factory``), independent of the caller's
connections.  At most one sync per project id runs at a time within a
service instance.

Usage:
    async with sync_service(config) as service:
        ack = await service.link_project(None, raw_connection_string, actor_user_id=7)
        async for status in service.watch_sync_status(ack.project_id):
            print(status.status, status.progress)
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager

from pydantic import BaseModel

from acto_sync.adapters.base import SyncStatusStore
from acto_sync.config.models import ConnectionSettings, SyncSettings
from acto_sync.connection.descriptor import (
    ConnectionDescriptor,
    ServerInfo,
    descriptor_from_connection_string,
)
from acto_sync.connection.resolver import ConnectionResolver, ConnectionResult
from acto_sync.errors import ProjectNotFoundError
from acto_sync.schema.models import Project, SyncStatus
from acto_sync.sync.orchestrator import FAILED_PROGRESS, SyncOrchestrator, failure_status
from acto_sync.sync.projects import ProjectRepository

logger = logging.getLogger(__name__)

LINK_STARTED_MESSAGE = (
    "Project linking started. Schema sync in progress. Connection string will not be stored."
)
RESYNC_STARTED_MESSAGE = (
    "Project re-sync started. Schema sync in progress. Connection string will not be stored."
)
ALREADY_RUNNING_MESSAGE = (
    "A schema sync is already in progress for this project. "
    "Connection string will not be stored."
)

OrchestratorFactory = Callable[[], AbstractAsyncContextManager[SyncOrchestrator]]


class SyncStartedResponse(BaseModel):
    """Acknowledgment returned by link and re-sync."""

    project_id: int
    message: str


class ProjectSyncService:
    """Verify, link, re-sync and observe projects.

    Args:
        projects: Project repository in the caller's scope.
        status_store: Status store used for reads.
        resolver: Connection resolver for ``verify_connection``.
        orchestrator_factory: Opens an independent orchestrator scope for
            each background sync.
        connection_settings: Driver defaults and environment.
        sync_settings: Poll interval for ``watch_sync_status``.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        status_store: SyncStatusStore,
        resolver: ConnectionResolver,
        orchestrator_factory: OrchestratorFactory,
        connection_settings: ConnectionSettings | None = None,
        sync_settings: SyncSettings | None = None,
    ) -> None:
        self._projects = projects
        self._status_store = status_store
        self._resolver = resolver
        self._orchestrator_factory = orchestrator_factory
        self._connection_settings = connection_settings or ConnectionSettings()
        self._sync_settings = sync_settings or SyncSettings()
        self._tasks: dict[int, asyncio.Task[bool]] = {}

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def verify_connection(self, info: ServerInfo) -> ConnectionResult:
        return await self._resolver.test_connection(info)

    # ------------------------------------------------------------------
    # Link / re-sync
    # ------------------------------------------------------------------

    async def link_project(
        self,
        project_id: int | None,
        connection_string: str,
        actor_user_id: int,
    ) -> SyncStartedResponse:
        """Create or update a project from a connection string and sync it.

        A new project is named after the database.  The connection string
        is used only by the background sync and is never stored.

        Raises:
            InvalidConnectionStringError: If the connection string cannot be
                parsed (message redacted).
        """
        descriptor = descriptor_from_connection_string(connection_string, self._connection_settings)
        project_id = await self._projects.add_or_update(
            project_id,
            project_name=descriptor.database,
            database_name=descriptor.database,
            user_id=actor_user_id,
        )
        return self._start_sync(project_id, descriptor, actor_user_id, LINK_STARTED_MESSAGE)

    async def resync_project(
        self,
        project_id: int,
        connection_string: str,
        actor_user_id: int,
    ) -> SyncStartedResponse:
        """Re-sync an existing project.

        The project row is left as it is; only its sync status changes.

        Raises:
            ProjectNotFoundError: If the project does not exist.  Checked
                before the connection string is parsed or any connection
                is opened.
            InvalidConnectionStringError: If the connection string cannot be
                parsed (message redacted).
        """
        project = await self._projects.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)

        descriptor = descriptor_from_connection_string(connection_string, self._connection_settings)
        return self._start_sync(project_id, descriptor, actor_user_id, RESYNC_STARTED_MESSAGE)

    def is_sync_running(self, project_id: int) -> bool:
        task = self._tasks.get(project_id)
        return task is not None and not task.done()

    async def wait_for_sync(self, project_id: int) -> bool | None:
        """Wait for this instance's running sync of ``project_id``.

        Returns:
            The sync outcome, or ``None`` if no sync is running.
        """
        task = self._tasks.get(project_id)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def wait_all(self) -> None:
        """Wait for every sync this instance started."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _start_sync(
        self,
        project_id: int,
        descriptor: ConnectionDescriptor,
        actor_user_id: int,
        message: str,
    ) -> SyncStartedResponse:
        if self.is_sync_running(project_id):
            logger.info("Sync already running for project %s; not starting another", project_id)
            return SyncStartedResponse(project_id=project_id, message=ALREADY_RUNNING_MESSAGE)

        task = asyncio.create_task(
            self._run_sync(project_id, descriptor, actor_user_id),
            name=f"acto-sync-project-{project_id}",
        )
        self._tasks[project_id] = task
        task.add_done_callback(lambda t: self._forget_task(project_id, t))
        return SyncStartedResponse(project_id=project_id, message=message)

    async def _run_sync(
        self,
        project_id: int,
        descriptor: ConnectionDescriptor,
        actor_user_id: int,
    ) -> bool:
        try:
            async with self._orchestrator_factory() as orchestrator:
                return await orchestrator.run(project_id, descriptor, actor_user_id)
        except Exception as e:
            logger.exception("Could not run sync for project %s", project_id)
            try:
                await self._status_store.set(project_id, failure_status(e), FAILED_PROGRESS)
            except Exception:
                logger.exception("Could not record failed status for project %s", project_id)
            return False

    def _forget_task(self, project_id: int, task: asyncio.Task) -> None:
        if self._tasks.get(project_id) is task:
            del self._tasks[project_id]

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_sync_status(self, project_id: int) -> SyncStatus | None:
        return await self._status_store.get(project_id)

    async def watch_sync_status(
        self,
        project_id: int,
        poll_interval: float | None = None,
    ) -> AsyncIterator[SyncStatus]:
        """Yield each distinct status until the sync finishes.

        Stops after a ``Completed`` or ``Failed`` status is observed while
        no sync of the project is running in this instance.
        """
        interval = poll_interval or self._sync_settings.status_poll_interval
        last: tuple[str, int] | None = None
        while True:
            running = self.is_sync_running(project_id)
            status = await self._status_store.get(project_id)
            if status is not None and (status.status, status.progress) != last:
                last = (status.status, status.progress)
                yield status
            if status is not None and status.is_terminal and not running:
                return
            if status is None and not running:
                return
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        project_name: str,
        actor_user_id: int,
        database_name: str | None = None,
        description: str | None = None,
    ) -> Project:
        project_id = await self._projects.create(
            project_name,
            actor_user_id,
            database_name=database_name,
            description=description,
        )
        project = await self._projects.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def get_project(self, project_id: int) -> Project:
        """Raises ``ProjectNotFoundError`` for unknown or deleted projects."""
        project = await self._projects.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def list_projects(self) -> list[Project]:
        return await self._projects.list_active()

    async def update_project(
        self,
        project_id: int,
        project_name: str,
        actor_user_id: int,
        description: str | None = None,
    ) -> Project:
        project = await self.get_project(project_id)
        await self._projects.update(
            project_id,
            project_name,
            actor_user_id,
            database_name=project.database_name,
            description=description,
        )
        return await self.get_project(project_id)

    async def delete_project(self, project_id: int, actor_user_id: int) -> None:
        await self._projects.delete(project_id, actor_user_id)
