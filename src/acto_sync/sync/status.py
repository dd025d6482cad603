"""Sync status persistence on the Projects table."""

import logging

from acto_sync.adapters.store import MetadataStore
from acto_sync.schema import queries
from acto_sync.schema.models import SyncStatus

logger = logging.getLogger(__name__)


class SqlSyncStatusStore:
    """Stores ``SyncStatus``/``SyncProgress``/``LastSyncAttempt`` per project.

    Each write runs in its own short transaction, separate from the sync's
    unit of work, so pollers see progress while the sync is still open.
    A project whose ``SyncStatus`` is ``NULL`` has never synced and reads as
    ``None``.
    """

    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    async def get(self, project_id: int) -> SyncStatus | None:
        row = await self._store.fetch_one(queries.GET_SYNC_STATUS, {"project_id": project_id})
        if row is None:
            return None
        return SyncStatus(**row)

    async def set(self, project_id: int, status: str, progress: int) -> None:
        await self._store.execute(
            queries.SET_SYNC_STATUS,
            {"project_id": project_id, "status": status, "progress": progress},
        )
        logger.debug("Project %s sync status: %s (%s)", project_id, status, progress)
