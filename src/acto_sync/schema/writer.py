"""Idempotent upserts of a schema snapshot into the metadata store.

Every method takes the caller's ``UnitOfWork`` and never commits or rolls
back; the orchestrator owns the transaction.  Re-running a sync against an
unchanged target rewrites identical values and keeps row ids stable.

Upsert keys:

- tables: (project, schema name, table name)
- columns: (table id, column name)
- foreign keys: (column id, referenced column id)
- procedures: (project, client, schema name, procedure name)
"""

import logging
from collections.abc import Iterable, Mapping

from acto_sync.adapters.store import UnitOfWork
from acto_sync.schema import queries
from acto_sync.schema.models import (
    ColumnMetadata,
    ForeignKeyScanResult,
    StoredProcedureMetadata,
    TableInfo,
)

logger = logging.getLogger(__name__)

# (schema name, table name), lower-cased
TableKey = tuple[str, str]


def table_key(schema_name: str, table_name: str) -> TableKey:
    return (schema_name.lower(), table_name.lower())


class MetadataWriter:
    """Writes tables, columns, foreign keys and procedures for a project."""

    async def sync_tables(
        self,
        uow: UnitOfWork,
        project_id: int,
        tables: Iterable[TableInfo],
    ) -> int:
        """Upsert tables; returns the number of rows touched."""
        count = 0
        for table in tables:
            await uow.execute(
                queries.UPSERT_TABLE,
                {
                    "project_id": project_id,
                    "schema_name": table.schema_name,
                    "table_name": table.table_name,
                },
            )
            count += 1
        logger.debug("Upserted %d tables for project %s", count, project_id)
        return count

    async def get_project_tables(self, uow: UnitOfWork, project_id: int) -> dict[TableKey, int]:
        """Map (schema, table) to TableId for every table of the project.

        One round trip per sync; column and foreign key writes look table ids
        up here instead of querying per row.
        """
        rows = await uow.fetch_all(queries.GET_PROJECT_TABLES, {"project_id": project_id})
        return {table_key(row["SchemaName"], row["TableName"]): row["TableId"] for row in rows}

    async def sync_columns(
        self,
        uow: UnitOfWork,
        table_id: int,
        columns: Iterable[ColumnMetadata],
    ) -> int:
        """Upsert the columns of one table; returns the number of rows touched."""
        count = 0
        for column in columns:
            params = column.model_dump()
            params["table_id"] = table_id
            await uow.execute(queries.UPSERT_COLUMN, params)
            count += 1
        return count

    async def sync_foreign_keys(
        self,
        uow: UnitOfWork,
        project_id: int,
        foreign_keys: Iterable[ForeignKeyScanResult],
        table_ids: Mapping[TableKey, int] | None = None,
    ) -> int:
        """Upsert foreign keys whose endpoints resolve to synced columns.

        Foreign keys referencing tables or columns outside the snapshot are
        skipped.  Returns the number of rows touched.
        """
        if table_ids is None:
            table_ids = await self.get_project_tables(uow, project_id)
        column_ids = await self._get_project_columns(uow, project_id)

        count = 0
        for fk in foreign_keys:
            source_table = table_ids.get(table_key(fk.schema_name, fk.table_name))
            target_table = table_ids.get(
                table_key(fk.referenced_schema_name, fk.referenced_table_name)
            )
            source_column = column_ids.get((source_table, fk.column_name.lower()))
            target_column = column_ids.get((target_table, fk.referenced_column_name.lower()))

            if None in (source_table, target_table, source_column, target_column):
                logger.debug(
                    "Skipping foreign key %s (%s.%s -> %s.%s): endpoint not in snapshot",
                    fk.foreign_key_name,
                    fk.table_name,
                    fk.column_name,
                    fk.referenced_table_name,
                    fk.referenced_column_name,
                )
                continue

            await uow.execute(
                queries.UPSERT_FOREIGN_KEY,
                {
                    "table_id": source_table,
                    "column_id": source_column,
                    "referenced_table_id": target_table,
                    "referenced_column_id": target_column,
                    "foreign_key_name": fk.foreign_key_name,
                    "on_delete_action": fk.on_delete_action,
                    "on_update_action": fk.on_update_action,
                },
            )
            count += 1
        return count

    async def sync_stored_procedures(
        self,
        uow: UnitOfWork,
        project_id: int,
        client_id: int,
        procedures: Iterable[StoredProcedureMetadata],
        user_id: int,
    ) -> int:
        """Upsert procedures under ``client_id``; returns the number touched."""
        count = 0
        for procedure in procedures:
            await uow.execute(
                queries.UPSERT_PROCEDURE,
                {
                    "project_id": project_id,
                    "client_id": client_id,
                    "schema_name": procedure.schema_name,
                    "procedure_name": procedure.procedure_name,
                    "definition": procedure.definition,
                    "user_id": user_id,
                },
            )
            count += 1
        return count

    async def _get_project_columns(
        self,
        uow: UnitOfWork,
        project_id: int,
    ) -> dict[tuple[int, str], int]:
        rows = await uow.fetch_all(queries.GET_PROJECT_COLUMNS, {"project_id": project_id})
        return {(row["TableId"], row["ColumnName"].lower()): row["ColumnId"] for row in rows}
