"""Metadata store access: pooled engine plus an explicit unit of work.

Usage:
    from acto_sync.adapters.store import MetadataStore

    store = MetadataStore.from_settings(config.metadata, config.connection)

    # One-off statements run in their own short transaction
    row = await store.fetch_one("SELECT * FROM Projects WHERE ProjectId = :id", {"id": 1})

    # Multi-statement work shares one transaction
    async with store.begin() as uow:
        await uow.execute("UPDATE ...", {...})
        await uow.commit()          # rolled back on exit if not committed

    await store.close()
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from pydantic import SecretStr
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from acto_sync.adapters.mssql import create_async_engine_pooled
from acto_sync.config.models import ConnectionSettings, MetadataStoreSettings
from acto_sync.connection.descriptor import ConnectionDescriptor, ServerInfo, build_descriptor
from acto_sync.errors import MetadataStoreError

logger = logging.getLogger(__name__)


class UnitOfWork:
    """One connection and one transaction on the metadata store.

    Passed explicitly to every writer call within a sync.  Only the owner of
    the unit of work commits it.
    """

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn
        self.committed = False
        self.closed = False

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Execute a statement and return the affected row count."""
        self._check_open()
        result = await self._conn.execute(text(sql), params or {})
        return result.rowcount

    async def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Run a query and return rows as dicts."""
        self._check_open()
        result = await self._conn.execute(text(sql), params or {})
        return [dict(row) for row in result.mappings().all()]

    async def fetch_one(self, sql: str, params: dict[str, Any] | None = None) -> dict | None:
        """Run a query and return the first row as a dict, or ``None``."""
        self._check_open()
        result = await self._conn.execute(text(sql), params or {})
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def scalar(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        """Run a query and return the first column of the first row."""
        self._check_open()
        result = await self._conn.execute(text(sql), params or {})
        return result.scalar()

    async def commit(self) -> None:
        self._check_open()
        await self._conn.commit()
        self.committed = True

    async def rollback(self) -> None:
        self._check_open()
        await self._conn.rollback()

    def _check_open(self) -> None:
        if self.closed:
            raise MetadataStoreError("Unit of work is closed.")
        if self.committed:
            raise MetadataStoreError("Unit of work is already committed.")


class MetadataStore:
    """Async access to the ActoEngine metadata database.

    Args:
        engine: Pooled ``AsyncEngine`` for the metadata database.
        descriptor: Descriptor the engine was built from.  Needed when a
            separate connection is opened (server identity checks).
    """

    def __init__(self, engine: AsyncEngine, descriptor: ConnectionDescriptor | None = None) -> None:
        self._engine = engine
        self.descriptor = descriptor

    @classmethod
    def from_settings(
        cls,
        metadata: MetadataStoreSettings,
        connection: ConnectionSettings,
        **engine_kwargs: Any,
    ) -> "MetadataStore":
        """Build a store from the ``[metadata]`` and ``[connection]`` settings."""
        info = ServerInfo(
            server=metadata.server,
            port=metadata.port,
            database=metadata.database,
            username=metadata.username,
            password=metadata.password or SecretStr(""),
        )
        descriptor = build_descriptor(
            info,
            connection,
            trusted_connection=metadata.trusted_connection,
        )
        logger.debug("Metadata store target: %s", descriptor.safe_target())
        return cls(create_async_engine_pooled(descriptor, **engine_kwargs), descriptor)

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[UnitOfWork]:
        """Open a unit of work; it is rolled back on exit unless committed."""
        async with self._engine.connect() as conn:
            uow = UnitOfWork(conn)
            try:
                yield uow
            except BaseException:
                if not uow.committed:
                    try:
                        await conn.rollback()
                    except Exception:
                        # Keep the original error; this one is only logged
                        logger.exception("Rollback after failed unit of work also failed")
                raise
            else:
                if not uow.committed:
                    await conn.rollback()
            finally:
                uow.closed = True

    # ------------------------------------------------------------------
    # Single-statement helpers (own transaction, committed on success)
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        async with self._engine.begin() as conn:
            result = await conn.execute(text(sql), params or {})
            return result.rowcount

    async def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        async with self._engine.begin() as conn:
            result = await conn.execute(text(sql), params or {})
            return [dict(row) for row in result.mappings().all()]

    async def fetch_one(self, sql: str, params: dict[str, Any] | None = None) -> dict | None:
        async with self._engine.begin() as conn:
            result = await conn.execute(text(sql), params or {})
            row = result.mappings().first()
            return dict(row) if row is not None else None

    async def scalar(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        async with self._engine.begin() as conn:
            result = await conn.execute(text(sql), params or {})
            return result.scalar()

    async def close(self) -> None:
        """Dispose of the connection pool."""
        if self._engine:
            await self._engine.dispose()
