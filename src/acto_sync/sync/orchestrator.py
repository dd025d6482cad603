"""Schema sync orchestration.

One call to ``SyncOrchestrator.run`` performs a full sync of a project:

1. Status ``Started`` (0).
2. Same-server detection, then inside one metadata store transaction either
   the server-side ``SyncSchemaMetadata`` procedure (same server) or the
   explicit tables -> columns -> foreign keys -> procedures phases (cross
   server), each phase reporting progress.
3. Commit.
4. Best-effort dependency analysis (95) and logical FK detection (97).
   Failures are logged and do not fail the sync.
5. Status ``Completed`` (100) and ``IsLinked = 1``.

Any failure before step 5 rolls the transaction back and records
``Failed: <redacted message>`` with progress -1.  ``IsLinked`` is left as
it was.

Progress values written during one run never decrease (until ``Failed``).

Usage:
    orchestrator = SyncOrchestrator(
        store, status_store, detector, reader, writer, projects, clients,
        dependency_analyzer=analyzer, fk_detector=fk_detector,
    )
    ok = await orchestrator.run(project_id, descriptor, user_id=7)
"""

import logging
import re
from collections.abc import Awaitable, Callable, Iterable

from sqlalchemy.exc import StatementError

from acto_sync.adapters.base import (
    ClientRepository,
    DependencyAnalyzer,
    LogicalFkDetector,
    SyncStatusStore,
)
from acto_sync.adapters.store import MetadataStore, UnitOfWork
from acto_sync.config.models import SyncSettings
from acto_sync.connection.descriptor import ConnectionDescriptor
from acto_sync.connection.redaction import redact
from acto_sync.errors import DefaultClientError
from acto_sync.schema import queries
from acto_sync.schema.models import SyncCounts
from acto_sync.schema.reader import SchemaReader
from acto_sync.schema.server import SameServerDetector
from acto_sync.schema.writer import MetadataWriter, table_key
from acto_sync.sync.projects import ProjectRepository

logger = logging.getLogger(__name__)

STARTED = "Started"
ANALYZING_DEPENDENCIES = "Analyzing Dependencies..."
DETECTING_LOGICAL_FKS = "Detecting logical FKs..."
COMPLETED = "Completed"
FAILED_PREFIX = "Failed: "
FAILED_PROGRESS = -1

# Width of Projects.SyncStatus
MAX_STATUS_LENGTH = 500

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_@#$]*$")


class SyncOrchestrator:
    """Runs one project sync end to end.

    Args:
        store: Metadata store; one unit of work is opened per run.
        status_store: Where progress is written.
        detector: Chooses between the same-server and cross-server paths.
        reader: Reads the target catalog (cross-server path).
        writer: Upserts the snapshot into the metadata store.
        projects: Used to set ``IsLinked`` on success.
        clients: Resolves the default client that owns synced procedures.
        dependency_analyzer: Optional post-commit dependency analysis.
        fk_detector: Optional post-commit logical FK detection.
        settings: Default client name and same-server procedure name.
    """

    def __init__(
        self,
        store: MetadataStore,
        status_store: SyncStatusStore,
        detector: SameServerDetector,
        reader: SchemaReader,
        writer: MetadataWriter,
        projects: ProjectRepository,
        clients: ClientRepository,
        dependency_analyzer: DependencyAnalyzer | None = None,
        fk_detector: LogicalFkDetector | None = None,
        settings: SyncSettings | None = None,
    ) -> None:
        self._store = store
        self._status_store = status_store
        self._detector = detector
        self._reader = reader
        self._writer = writer
        self._projects = projects
        self._clients = clients
        self._dependency_analyzer = dependency_analyzer
        self._fk_detector = fk_detector
        self._settings = settings or SyncSettings()

    async def run(self, project_id: int, target: ConnectionDescriptor, user_id: int) -> bool:
        """Sync ``target`` into ``project_id``.

        Returns:
            ``True`` if the sync reached ``Completed``, ``False`` if it
            ended in ``Failed``.  Errors are recorded, not raised.
        """
        logger.info("Starting sync for project %s from %s", project_id, target.safe_target())
        try:
            await self._status_store.set(project_id, STARTED, 0)

            same_server = await self._detector.is_same_server(target)

            async with self._store.begin() as uow:
                if same_server:
                    await self.sync_same_server(uow, project_id, target.database, user_id)
                else:
                    counts = await self.sync_cross_server(uow, project_id, target, user_id)
                    logger.info(
                        "Project %s: %d tables, %d columns, %d foreign keys, %d procedures",
                        project_id,
                        counts.tables,
                        counts.columns,
                        counts.foreign_keys,
                        counts.procedures,
                    )
                await uow.commit()

            await self._best_effort(
                project_id, ANALYZING_DEPENDENCIES, 95, self._analyze_dependencies
            )
            await self._best_effort(
                project_id, DETECTING_LOGICAL_FKS, 97, self._detect_logical_fks
            )

            await self._status_store.set(project_id, COMPLETED, 100)
            await self._projects.set_linked(project_id, True)
            logger.info("Sync completed for project %s", project_id)
            return True

        except Exception as e:
            # Full detail goes to server-side logs only
            logger.exception("Sync failed for project %s", project_id)
            await self._record_failure(project_id, e, target)
            return False

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def sync_same_server(
        self,
        uow: UnitOfWork,
        project_id: int,
        database_name: str,
        user_id: int,
    ) -> None:
        """One server-side procedure call reading the target by three-part names."""
        await self._status_store.set(project_id, "Syncing schema on metadata server...", 10)
        procedure = quote_procedure_name(self._settings.same_server_procedure)
        await uow.execute(
            queries.SAME_SERVER_SYNC.format(procedure=procedure),
            {"project_id": project_id, "database_name": database_name, "user_id": user_id},
        )
        await self._status_store.set(project_id, "Synced schema on metadata server", 90)

    async def sync_cross_server(
        self,
        uow: UnitOfWork,
        project_id: int,
        target: ConnectionDescriptor,
        user_id: int,
    ) -> SyncCounts:
        """Read the target directly and write each phase through ``uow``."""
        counts = SyncCounts()

        # Tables
        await self._status_store.set(project_id, "Syncing tables...", 10)
        tables = await self._reader.list_tables(target)
        counts.tables = await self._writer.sync_tables(uow, project_id, tables)
        await self._status_store.set(project_id, f"Synced {counts.tables} tables", 33)

        # Columns
        await self._status_store.set(project_id, "Syncing columns...", 40)
        table_ids = await self._writer.get_project_tables(uow, project_id)
        async with self._reader.open(target) as conn:
            for table in tables:
                table_id = table_ids.get(table_key(table.schema_name, table.table_name))
                if table_id is None:
                    logger.warning(
                        "Table %s has no metadata id in project %s",
                        table.qualified_name,
                        project_id,
                    )
                    continue
                columns = await self._reader.list_columns(
                    conn, table.schema_name, table.table_name
                )
                counts.columns += await self._writer.sync_columns(uow, table_id, columns)
        await self._status_store.set(project_id, f"Synced {counts.columns} columns", 66)

        # Foreign keys
        await self._status_store.set(project_id, "Syncing foreign keys...", 67)
        foreign_keys = await self._reader.list_foreign_keys(target, tables)
        counts.foreign_keys = await self._writer.sync_foreign_keys(
            uow, project_id, foreign_keys, table_ids
        )
        await self._status_store.set(
            project_id, f"Synced {counts.foreign_keys} foreign keys", 70
        )

        # Stored procedures
        await self._status_store.set(project_id, "Syncing stored procedures...", 89)
        procedures = await self._reader.list_stored_procedures(target)
        client_id = await self.ensure_default_client(project_id, user_id)
        counts.procedures = await self._writer.sync_stored_procedures(
            uow, project_id, client_id, procedures, user_id
        )
        await self._status_store.set(project_id, f"Synced {counts.procedures} procedures", 90)

        return counts

    async def ensure_default_client(self, project_id: int, user_id: int) -> int:
        """Get or create the default client and link it to the project.

        Raises:
            DefaultClientError: If the client was created but cannot be read
                back.  Not retried.
        """
        name = self._settings.default_client_name
        client = await self._clients.get_by_name(name)
        if client is None:
            client_id = await self._clients.create(name, user_id)
            client = await self._clients.get_by_id(client_id)
            if client is None:
                raise DefaultClientError(
                    f"Default client '{name}' was created but could not be retrieved."
                )
            logger.info("Created default client %s (%s)", client.client_id, name)

        if not await self._clients.is_linked(project_id, client.client_id):
            await self._clients.link(project_id, client.client_id, user_id)

        return client.client_id

    # ------------------------------------------------------------------
    # Post-commit steps
    # ------------------------------------------------------------------

    async def _analyze_dependencies(self, project_id: int) -> None:
        if self._dependency_analyzer is not None:
            await self._dependency_analyzer.analyze_project(project_id)

    async def _detect_logical_fks(self, project_id: int) -> None:
        if self._fk_detector is not None:
            await self._fk_detector.detect_and_persist_candidates(project_id)

    async def _best_effort(
        self,
        project_id: int,
        status: str,
        progress: int,
        step: Callable[[int], Awaitable[None]],
    ) -> None:
        try:
            await self._status_store.set(project_id, status, progress)
            await step(project_id)
        except Exception:
            logger.exception("%s failed for project %s; continuing", status, project_id)

    async def _record_failure(
        self,
        project_id: int,
        error: Exception,
        target: ConnectionDescriptor,
    ) -> None:
        secrets: list[str] = []
        words: list[str] = []
        if target.credential is not None:
            secrets.append(target.credential.password.get_secret_value())
            words.append(target.credential.username)
        status = failure_status(error, secrets=secrets, words=words)
        try:
            await self._status_store.set(project_id, status, FAILED_PROGRESS)
        except Exception:
            logger.exception("Could not record failed status for project %s", project_id)


def quote_procedure_name(name: str) -> str:
    """``dbo.SyncSchemaMetadata`` -> ``[dbo].[SyncSchemaMetadata]``.

    Raises:
        ValueError: If any part is not a plain identifier.
    """
    parts = name.split(".")
    if not all(_IDENTIFIER_RE.match(part) for part in parts):
        raise ValueError(f"Invalid procedure name: {name!r}")
    return ".".join(f"[{part}]" for part in parts)


def failure_status(
    error: BaseException,
    secrets: Iterable[str | None] = (),
    words: Iterable[str | None] = (),
) -> str:
    """Build the redacted ``Failed: ...`` status text for ``error``.

    SQLAlchemy statement errors are reduced to the driver message so the
    statement text and bound parameters never reach the status.  The result
    fits in ``MAX_STATUS_LENGTH``.
    """
    if isinstance(error, StatementError) and error.orig is not None:
        detail = str(error.orig) or type(error.orig).__name__
    else:
        detail = str(error) or type(error).__name__

    status = FAILED_PREFIX + redact(detail, secrets=secrets, words=words)
    if len(status) > MAX_STATUS_LENGTH:
        status = status[: MAX_STATUS_LENGTH - 3] + "..."
    return status
