"""Schema snapshot models, catalog reader, metadata writer."""

from acto_sync.schema.models import (
    Client,
    ColumnMetadata,
    ForeignKeyScanResult,
    Project,
    StoredProcedureMetadata,
    SyncCounts,
    SyncStatus,
    TableInfo,
)
from acto_sync.schema.reader import SchemaReader
from acto_sync.schema.server import SameServerDetector
from acto_sync.schema.writer import MetadataWriter

__all__ = [
    "Client",
    "ColumnMetadata",
    "ForeignKeyScanResult",
    "MetadataWriter",
    "Project",
    "SameServerDetector",
    "SchemaReader",
    "StoredProcedureMetadata",
    "SyncCounts",
    "SyncStatus",
    "TableInfo",
]
