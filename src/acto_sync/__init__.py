"""acto-sync: SQL Server schema metadata sync for ActoEngine projects.

Verifies connections to target SQL Server databases, links them as projects
and synchronizes their tables, columns, foreign keys and stored procedures
into the ActoEngine metadata store with incremental, pollable progress.

Usage:
    from acto_sync import load_sync_config, sync_service
    from acto_sync import ServerInfo, ConnectionResult, ConnectionErrorKind
    from acto_sync import ProjectSyncService, SyncOrchestrator, redact
"""

__version__ = "0.1.0"

# Config
from acto_sync.config.loader import load_sync_config
from acto_sync.config.models import SyncConfig

# Connection
from acto_sync.connection.classification import ConnectionErrorKind, classify_error
from acto_sync.connection.descriptor import ConnectionDescriptor, ServerInfo, build_descriptor
from acto_sync.connection.redaction import redact
from acto_sync.connection.resolver import ConnectionResolver, ConnectionResult

# Errors
from acto_sync.errors import (
    ActoSyncError,
    DefaultClientError,
    InvalidConnectionStringError,
    ProjectNotFoundError,
)

# Factory
from acto_sync.factory import orchestrator_scope, sync_service

# Schema
from acto_sync.schema.models import Project, SyncStatus

# Sync
from acto_sync.sync.orchestrator import SyncOrchestrator
from acto_sync.sync.service import ProjectSyncService, SyncStartedResponse

__all__ = [
    # Config
    "load_sync_config",
    "SyncConfig",
    # Connection
    "ConnectionDescriptor",
    "ConnectionErrorKind",
    "ConnectionResolver",
    "ConnectionResult",
    "ServerInfo",
    "build_descriptor",
    "classify_error",
    "redact",
    # Errors
    "ActoSyncError",
    "DefaultClientError",
    "InvalidConnectionStringError",
    "ProjectNotFoundError",
    # Factory
    "orchestrator_scope",
    "sync_service",
    # Schema
    "Project",
    "SyncStatus",
    # Sync
    "ProjectSyncService",
    "SyncOrchestrator",
    "SyncStartedResponse",
]
