"""SQL Server schema reading via the ``sys`` catalog views.

This module queries the target database to extract schema information:
- Tables with their schema names
- Columns (type, length, precision, scale, nullability, PK/FK flags, ordinal)
- Declared foreign keys with referential actions
- Stored procedures with their definitions

All reads are read-only.  Errors propagate to the caller; there are no
retries and no partial-result suppression.

Usage:
    reader = SchemaReader()
    tables = await reader.list_tables(descriptor)

    async with reader.open(descriptor) as conn:
        for table in tables:
            columns = await reader.list_columns(conn, table.schema_name, table.table_name)
"""

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from acto_sync.adapters.mssql import open_connection
from acto_sync.connection.descriptor import ConnectionDescriptor
from acto_sync.schema import queries
from acto_sync.schema.models import (
    ColumnMetadata,
    ForeignKeyScanResult,
    StoredProcedureMetadata,
    TableInfo,
)

logger = logging.getLogger(__name__)


class SchemaReader:
    """Reads tables, columns, foreign keys and procedures from a target."""

    @asynccontextmanager
    async def open(self, descriptor: ConnectionDescriptor) -> AsyncIterator[AsyncConnection]:
        """Open a connection to the target for a series of column reads."""
        async with open_connection(descriptor) as conn:
            yield conn

    async def list_tables(self, descriptor: ConnectionDescriptor) -> list[TableInfo]:
        """List user tables with their schema names."""
        async with open_connection(descriptor) as conn:
            result = await conn.execute(text(queries.TARGET_TABLES))
            tables = [TableInfo(table_name=row[0], schema_name=row[1]) for row in result.fetchall()]
        logger.debug("Read %d tables from %s", len(tables), descriptor.safe_target())
        return tables

    async def list_columns(
        self,
        conn: AsyncConnection,
        schema_name: str,
        table_name: str,
    ) -> list[ColumnMetadata]:
        """List columns of one table in ordinal order.

        Rows are read positionally: name, type, max length, precision,
        scale, nullable, primary key, foreign key, ordinal.
        """
        result = await conn.execute(
            text(queries.TARGET_COLUMNS),
            {"schema_name": schema_name, "table_name": table_name},
        )
        return [
            ColumnMetadata(
                column_name=row[0],
                data_type=row[1],
                max_length=row[2],
                precision=row[3],
                scale=row[4],
                is_nullable=bool(row[5]),
                is_primary_key=bool(row[6]),
                is_foreign_key=bool(row[7]),
                ordinal_position=row[8],
            )
            for row in result.fetchall()
        ]

    async def list_foreign_keys(
        self,
        descriptor: ConnectionDescriptor,
        tables: Iterable[TableInfo],
    ) -> list[ForeignKeyScanResult]:
        """List declared foreign keys whose source table is in ``tables``."""
        wanted = {(t.schema_name.lower(), t.table_name.lower()) for t in tables}
        if not wanted:
            return []

        async with open_connection(descriptor) as conn:
            result = await conn.execute(text(queries.TARGET_FOREIGN_KEYS))
            rows = result.mappings().all()

        return [
            ForeignKeyScanResult(**row)
            for row in rows
            if (row["schema_name"].lower(), row["table_name"].lower()) in wanted
        ]

    async def list_stored_procedures(
        self,
        descriptor: ConnectionDescriptor,
    ) -> list[StoredProcedureMetadata]:
        async with open_connection(descriptor) as conn:
            result = await conn.execute(text(queries.TARGET_PROCEDURES))
            procedures = [StoredProcedureMetadata(**row) for row in result.mappings().all()]
        logger.debug("Read %d procedures from %s", len(procedures), descriptor.safe_target())
        return procedures
