"""Wiring of stores, repositories and the sync service from configuration.

Usage:
    from acto_sync.config import load_sync_config
    from acto_sync.factory import sync_service

    config = load_sync_config()
    async with sync_service(config) as service:
        ack = await service.link_project(None, raw_connection_string, actor_user_id=7)
        await service.wait_for_sync(ack.project_id)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from acto_sync.adapters.base import DependencyAnalyzer, LogicalFkDetector
from acto_sync.adapters.store import MetadataStore
from acto_sync.config.models import SyncConfig
from acto_sync.connection.resolver import ConnectionResolver
from acto_sync.schema.reader import SchemaReader
from acto_sync.schema.server import SameServerDetector
from acto_sync.schema.writer import MetadataWriter
from acto_sync.sync.clients import SqlClientRepository
from acto_sync.sync.orchestrator import SyncOrchestrator
from acto_sync.sync.projects import ProjectRepository
from acto_sync.sync.service import OrchestratorFactory, ProjectSyncService
from acto_sync.sync.status import SqlSyncStatusStore


def orchestrator_scope(
    config: SyncConfig,
    dependency_analyzer: DependencyAnalyzer | None = None,
    fk_detector: LogicalFkDetector | None = None,
) -> OrchestratorFactory:
    """Return a factory opening an orchestrator with its own metadata store.

    Each scope creates a small dedicated pool and disposes of it on exit, so
    a background sync never shares connections with the scope that
    started it.
    """

    @asynccontextmanager
    async def scope() -> AsyncIterator[SyncOrchestrator]:
        store = MetadataStore.from_settings(
            config.metadata,
            config.connection,
            pool_size=2,
            max_overflow=2,
        )
        try:
            yield SyncOrchestrator(
                store=store,
                status_store=SqlSyncStatusStore(store),
                detector=SameServerDetector(store),
                reader=SchemaReader(),
                writer=MetadataWriter(),
                projects=ProjectRepository(store),
                clients=SqlClientRepository(store),
                dependency_analyzer=dependency_analyzer,
                fk_detector=fk_detector,
                settings=config.sync,
            )
        finally:
            await store.close()

    return scope


@asynccontextmanager
async def sync_service(
    config: SyncConfig,
    dependency_analyzer: DependencyAnalyzer | None = None,
    fk_detector: LogicalFkDetector | None = None,
) -> AsyncIterator[ProjectSyncService]:
    """Open a ``ProjectSyncService`` bound to the configured metadata store.

    Background syncs still running when the block exits are awaited before
    the store is closed.
    """
    store = MetadataStore.from_settings(config.metadata, config.connection)
    service = ProjectSyncService(
        projects=ProjectRepository(store),
        status_store=SqlSyncStatusStore(store),
        resolver=ConnectionResolver(config.connection),
        orchestrator_factory=orchestrator_scope(config, dependency_analyzer, fk_detector),
        connection_settings=config.connection,
        sync_settings=config.sync,
    )
    try:
        yield service
        await service.wait_all()
    finally:
        await store.close()
