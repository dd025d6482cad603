"""Pydantic models for synced schema metadata and projects.

This module contains schema-domain models:
- Target catalog rows: TableInfo, ColumnMetadata, ForeignKeyScanResult,
  StoredProcedureMetadata
- Metadata store entities: Project, Client, SyncStatus

Configuration models live in acto_sync.config.models.
"""

from datetime import datetime

from pydantic import BaseModel


# ============================================================================
# Target Catalog Models
# ============================================================================


class TableInfo(BaseModel):
    """A user table in the target database."""

    table_name: str
    schema_name: str = "dbo"

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


class ColumnMetadata(BaseModel):
    """A column read from ``sys.columns``.

    Field order matches the catalog query's positional column order.
    """

    column_name: str
    data_type: str
    max_length: int | None = None
    precision: int | None = None
    scale: int | None = None
    is_nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    ordinal_position: int = 0


class ForeignKeyScanResult(BaseModel):
    """One column pair of a declared foreign key."""

    foreign_key_name: str
    schema_name: str = "dbo"
    table_name: str
    column_name: str
    referenced_schema_name: str = "dbo"
    referenced_table_name: str
    referenced_column_name: str
    on_delete_action: str = "NO_ACTION"
    on_update_action: str = "NO_ACTION"


class StoredProcedureMetadata(BaseModel):
    """A stored procedure and its full definition text."""

    schema_name: str = "dbo"
    procedure_name: str
    definition: str | None = None


# ============================================================================
# Metadata Store Entities
# ============================================================================


class SyncStatus(BaseModel):
    """Current sync status of a project.

    ``progress`` is 0..100, or -1 when the status is ``Failed: ...``.

    Example:
        >>> SyncStatus(project_id=1, status="Completed", progress=100).is_terminal
        True
    """

    project_id: int
    status: str
    progress: int
    last_sync_attempt: datetime | None = None

    @property
    def is_failed(self) -> bool:
        return self.status.startswith("Failed")

    @property
    def is_terminal(self) -> bool:
        return self.status == "Completed" or self.is_failed


class Project(BaseModel):
    """A registered target database."""

    project_id: int
    project_name: str
    description: str | None = None
    database_name: str | None = None
    database_type: str = "SqlServer"
    is_linked: bool = False
    is_active: bool = True
    created_at: datetime | None = None
    created_by: int | None = None
    updated_at: datetime | None = None
    updated_by: int | None = None


class Client(BaseModel):
    """Grouping owner for synced stored procedures."""

    client_id: int
    client_name: str
    is_active: bool = True
    created_at: datetime | None = None
    created_by: int | None = None


class SyncCounts(BaseModel):
    """Rows touched per phase of a cross-server sync."""

    tables: int = 0
    columns: int = 0
    foreign_keys: int = 0
    procedures: int = 0
