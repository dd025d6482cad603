"""Database plumbing and collaborator protocols."""

from acto_sync.adapters.base import (
    ClientRepository,
    DependencyAnalyzer,
    LogicalFkDetector,
    SyncStatusStore,
)
from acto_sync.adapters.mssql import (
    create_async_engine_pooled,
    create_target_engine,
    open_connection,
)
from acto_sync.adapters.store import MetadataStore, UnitOfWork

__all__ = [
    "ClientRepository",
    "DependencyAnalyzer",
    "LogicalFkDetector",
    "MetadataStore",
    "SyncStatusStore",
    "UnitOfWork",
    "create_async_engine_pooled",
    "create_target_engine",
    "open_connection",
]
