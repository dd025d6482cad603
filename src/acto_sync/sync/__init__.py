"""Project sync: status store, repositories, orchestrator, service."""

from acto_sync.sync.clients import SqlClientRepository
from acto_sync.sync.orchestrator import SyncOrchestrator, quote_procedure_name
from acto_sync.sync.projects import ProjectRepository
from acto_sync.sync.service import (
    ALREADY_RUNNING_MESSAGE,
    LINK_STARTED_MESSAGE,
    RESYNC_STARTED_MESSAGE,
    ProjectSyncService,
    SyncStartedResponse,
)
from acto_sync.sync.status import SqlSyncStatusStore

__all__ = [
    "ALREADY_RUNNING_MESSAGE",
    "LINK_STARTED_MESSAGE",
    "RESYNC_STARTED_MESSAGE",
    "ProjectRepository",
    "ProjectSyncService",
    "SqlClientRepository",
    "SqlSyncStatusStore",
    "SyncOrchestrator",
    "SyncStartedResponse",
    "quote_procedure_name",
]
