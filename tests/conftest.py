"""Shared in-memory fakes for sync tests.

The fakes mirror the contracts of the real collaborators closely enough to
exercise the orchestrator and service without a database:

- ``FakeMetadataStore`` hands out ``FakeUnitOfWork`` objects that stage a
  copy of the snapshot and publish it only on ``commit``.
- ``InMemoryWriter`` upserts with the same keys as ``MetadataWriter`` and
  keeps ids stable across runs.
- ``FakeReader`` serves a canned target catalog and records every call.
"""

import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from pydantic import SecretStr

from acto_sync.config.models import ConnectionSettings, SyncSettings
from acto_sync.connection.descriptor import ServerInfo, build_descriptor
from acto_sync.errors import ProjectNotFoundError
from acto_sync.schema.models import (
    Client,
    ColumnMetadata,
    ForeignKeyScanResult,
    Project,
    StoredProcedureMetadata,
    SyncStatus,
    TableInfo,
)
from acto_sync.sync.orchestrator import SyncOrchestrator

TARGET_PASSWORD = "Sup3r$ecret!"
TARGET_USER = "sync_user"
RAW_CONNECTION_STRING = (
    f"Server=S1;Database=Sales;User Id={TARGET_USER};Password={TARGET_PASSWORD};"
)


# ============================================================================
# Status store
# ============================================================================


class InMemoryStatusStore:
    """Single current value per project plus a write history."""

    def __init__(self) -> None:
        self.rows: dict[int, SyncStatus] = {}
        self.history: list[tuple[int, str, int]] = []

    async def get(self, project_id: int) -> SyncStatus | None:
        return self.rows.get(project_id)

    async def set(self, project_id: int, status: str, progress: int) -> None:
        self.history.append((project_id, status, progress))
        self.rows[project_id] = SyncStatus(
            project_id=project_id,
            status=status,
            progress=progress,
            last_sync_attempt=datetime.now(timezone.utc),
        )

    def progress_for(self, project_id: int) -> list[int]:
        return [p for pid, _, p in self.history if pid == project_id]

    def statuses_for(self, project_id: int) -> list[str]:
        return [s for pid, s, _ in self.history if pid == project_id]


# ============================================================================
# Metadata store and unit of work
# ============================================================================


def _empty_snapshot() -> dict[str, dict]:
    return {"tables": {}, "columns": {}, "foreign_keys": {}, "procedures": {}}


class FakeUnitOfWork:
    def __init__(self, store: "FakeMetadataStore") -> None:
        self._store = store
        self.staged = copy.deepcopy(store.snapshot)
        self.executed: list[tuple[str, dict | None]] = []
        self.committed = False

    async def execute(self, sql: str, params: dict | None = None) -> int:
        self.executed.append((sql, params))
        return 1

    async def commit(self) -> None:
        self._store.snapshot = self.staged
        self.committed = True


class FakeMetadataStore:
    def __init__(self) -> None:
        self.snapshot = _empty_snapshot()
        self.units: list[FakeUnitOfWork] = []
        self.rollbacks = 0
        self._next_id = 0

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[FakeUnitOfWork]:
        uow = FakeUnitOfWork(self)
        self.units.append(uow)
        try:
            yield uow
        finally:
            if not uow.committed:
                self.rollbacks += 1


class InMemoryWriter:
    """Upserts into ``uow.staged`` with ``MetadataWriter``'s keys."""

    def __init__(self, store: FakeMetadataStore, fail_on: str | None = None) -> None:
        self._store = store
        self.fail_on = fail_on

    def _maybe_fail(self, phase: str) -> None:
        if self.fail_on == phase:
            raise RuntimeError(f"write failed during {phase}")

    async def sync_tables(self, uow, project_id, tables) -> int:
        self._maybe_fail("tables")
        count = 0
        for t in tables:
            key = (project_id, t.schema_name.lower(), t.table_name.lower())
            if key not in uow.staged["tables"]:
                uow.staged["tables"][key] = self._store.next_id()
            count += 1
        return count

    async def get_project_tables(self, uow, project_id) -> dict:
        return {
            (schema, name): table_id
            for (pid, schema, name), table_id in uow.staged["tables"].items()
            if pid == project_id
        }

    async def sync_columns(self, uow, table_id, columns) -> int:
        self._maybe_fail("columns")
        count = 0
        for c in columns:
            key = (table_id, c.column_name.lower())
            existing = uow.staged["columns"].get(key)
            column_id = existing[0] if existing else self._store.next_id()
            uow.staged["columns"][key] = (column_id, c.model_dump())
            count += 1
        return count

    async def sync_foreign_keys(self, uow, project_id, foreign_keys, table_ids=None) -> int:
        self._maybe_fail("foreign_keys")
        table_ids = table_ids or await self.get_project_tables(uow, project_id)
        count = 0
        for fk in foreign_keys:
            source_table = table_ids.get((fk.schema_name.lower(), fk.table_name.lower()))
            target_table = table_ids.get(
                (fk.referenced_schema_name.lower(), fk.referenced_table_name.lower())
            )
            source = uow.staged["columns"].get((source_table, fk.column_name.lower()))
            target = uow.staged["columns"].get((target_table, fk.referenced_column_name.lower()))
            if source is None or target is None:
                continue
            uow.staged["foreign_keys"][(source[0], target[0])] = (
                fk.on_delete_action,
                fk.on_update_action,
            )
            count += 1
        return count

    async def sync_stored_procedures(self, uow, project_id, client_id, procedures, user_id) -> int:
        self._maybe_fail("procedures")
        count = 0
        for p in procedures:
            key = (project_id, client_id, p.schema_name.lower(), p.procedure_name.lower())
            uow.staged["procedures"][key] = p.definition
            count += 1
        return count


# ============================================================================
# Target reader and detector
# ============================================================================


class FakeReader:
    def __init__(self) -> None:
        self.tables = [
            TableInfo(table_name="Customers", schema_name="dbo"),
            TableInfo(table_name="Orders", schema_name="dbo"),
        ]
        self.columns = {
            ("dbo", "Customers"): [
                ColumnMetadata(
                    column_name="CustomerId", data_type="int", max_length=4,
                    precision=10, scale=0, is_nullable=False,
                    is_primary_key=True, ordinal_position=1,
                ),
                ColumnMetadata(
                    column_name="Name", data_type="nvarchar", max_length=200,
                    is_nullable=False, ordinal_position=2,
                ),
            ],
            ("dbo", "Orders"): [
                ColumnMetadata(
                    column_name="OrderId", data_type="int", max_length=4,
                    precision=10, scale=0, is_nullable=False,
                    is_primary_key=True, ordinal_position=1,
                ),
                ColumnMetadata(
                    column_name="CustomerId", data_type="int", max_length=4,
                    precision=10, scale=0, is_nullable=False,
                    is_foreign_key=True, ordinal_position=2,
                ),
            ],
        }
        self.foreign_keys = [
            ForeignKeyScanResult(
                foreign_key_name="FK_Orders_Customers",
                table_name="Orders",
                column_name="CustomerId",
                referenced_table_name="Customers",
                referenced_column_name="CustomerId",
                on_delete_action="CASCADE",
            )
        ]
        self.procedures = [
            StoredProcedureMetadata(
                procedure_name="usp_GetOrders",
                definition="CREATE PROCEDURE usp_GetOrders AS SELECT * FROM Orders",
            )
        ]
        self.calls: list[str] = []
        self.fail_on: str | None = None
        self.error: Exception | None = None

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise self.error or RuntimeError(f"read failed: {name}")

    @asynccontextmanager
    async def open(self, descriptor):
        self._record("open")
        yield object()

    async def list_tables(self, descriptor):
        self._record("list_tables")
        return list(self.tables)

    async def list_columns(self, conn, schema_name, table_name):
        self._record("list_columns")
        return list(self.columns.get((schema_name, table_name), []))

    async def list_foreign_keys(self, descriptor, tables):
        self._record("list_foreign_keys")
        return list(self.foreign_keys)

    async def list_stored_procedures(self, descriptor):
        self._record("list_stored_procedures")
        return list(self.procedures)


class FakeDetector:
    def __init__(self, same: bool = False, error: Exception | None = None) -> None:
        self.same = same
        self.error = error
        self.calls = 0

    async def is_same_server(self, target) -> bool:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.same


# ============================================================================
# Repositories
# ============================================================================


class FakeProjectRepository:
    def __init__(self) -> None:
        self.projects: dict[int, Project] = {}
        self._next_id = 0
        self.set_linked_calls: list[tuple[int, bool]] = []

    async def get_by_id(self, project_id: int) -> Project | None:
        project = self.projects.get(project_id)
        return project if project and project.is_active else None

    async def list_active(self) -> list[Project]:
        return [p for p in self.projects.values() if p.is_active]

    async def create(self, project_name, user_id, database_name=None, description=None,
                     database_type="SqlServer") -> int:
        self._next_id += 1
        self.projects[self._next_id] = Project(
            project_id=self._next_id,
            project_name=project_name,
            database_name=database_name,
            description=description,
            database_type=database_type,
            created_by=user_id,
        )
        return self._next_id

    async def update(self, project_id, project_name, user_id, database_name=None,
                     description=None) -> None:
        project = await self.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        self.projects[project_id] = project.model_copy(
            update={
                "project_name": project_name,
                "database_name": database_name,
                "description": description,
                "updated_by": user_id,
            }
        )

    async def add_or_update(self, project_id, project_name, database_name, user_id) -> int:
        existing = await self.get_by_id(project_id) if project_id is not None else None
        if existing is not None:
            await self.update(existing.project_id, existing.project_name, user_id,
                              database_name=database_name, description=existing.description)
            return existing.project_id
        return await self.create(project_name, user_id, database_name=database_name)

    async def delete(self, project_id, user_id) -> None:
        project = await self.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        self.projects[project_id] = project.model_copy(update={"is_active": False})

    async def set_linked(self, project_id: int, is_linked: bool) -> None:
        self.set_linked_calls.append((project_id, is_linked))
        project = self.projects[project_id]
        self.projects[project_id] = project.model_copy(update={"is_linked": is_linked})


class FakeClientRepository:
    def __init__(self, unreadable_after_create: bool = False) -> None:
        self.clients: dict[int, Client] = {}
        self.links: set[tuple[int, int]] = set()
        self.unreadable_after_create = unreadable_after_create
        self.create_calls = 0
        self.link_calls = 0

    async def get_by_name(self, name: str) -> Client | None:
        if self.unreadable_after_create:
            return None
        return next((c for c in self.clients.values() if c.client_name == name), None)

    async def create(self, name: str, actor_user_id: int) -> int:
        self.create_calls += 1
        client_id = len(self.clients) + 100
        self.clients[client_id] = Client(client_id=client_id, client_name=name)
        return client_id

    async def get_by_id(self, client_id: int) -> Client | None:
        if self.unreadable_after_create:
            return None
        return self.clients.get(client_id)

    async def is_linked(self, project_id: int, client_id: int) -> bool:
        return (project_id, client_id) in self.links

    async def link(self, project_id: int, client_id: int, actor_user_id: int) -> None:
        self.link_calls += 1
        self.links.add((project_id, client_id))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def connection_settings() -> ConnectionSettings:
    return ConnectionSettings()


@pytest.fixture
def descriptor(connection_settings):
    info = ServerInfo(
        server="S1",
        database="Sales",
        username=TARGET_USER,
        password=SecretStr(TARGET_PASSWORD),
    )
    return build_descriptor(info, connection_settings)


class SyncHarness:
    """All fakes wired into one orchestrator."""

    def __init__(self, same_server: bool = False) -> None:
        self.store = FakeMetadataStore()
        self.status = InMemoryStatusStore()
        self.detector = FakeDetector(same=same_server)
        self.reader = FakeReader()
        self.writer = InMemoryWriter(self.store)
        self.projects = FakeProjectRepository()
        self.clients = FakeClientRepository()
        self.analyzer = None
        self.fk_detector = None
        self.settings = SyncSettings()

    def orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            store=self.store,
            status_store=self.status,
            detector=self.detector,
            reader=self.reader,
            writer=self.writer,
            projects=self.projects,
            clients=self.clients,
            dependency_analyzer=self.analyzer,
            fk_detector=self.fk_detector,
            settings=self.settings,
        )

    def orchestrator_factory(self):
        @asynccontextmanager
        async def scope():
            yield self.orchestrator()

        return scope


@pytest.fixture
def harness() -> SyncHarness:
    return SyncHarness()
