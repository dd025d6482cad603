"""Same-server detection between a target and the metadata store."""

import logging

from sqlalchemy import text

from acto_sync.adapters.mssql import open_connection
from acto_sync.adapters.store import MetadataStore
from acto_sync.connection.descriptor import ConnectionDescriptor
from acto_sync.schema import queries

logger = logging.getLogger(__name__)


class SameServerDetector:
    """Decides whether a target database lives on the metadata store's server.

    Both sides are asked for ``@@SERVERNAME`` over short-lived connections
    and the names are compared case-insensitively.  An empty or ``NULL``
    name on either side means "different servers".  The answer is not
    cached; it is recomputed for every sync.

    Connection failures propagate to the caller.
    """

    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    async def is_same_server(self, target: ConnectionDescriptor) -> bool:
        target_name = await self._target_server_name(target)
        store_name = await self._store.scalar(queries.SERVER_NAME)

        if not target_name or not str(target_name).strip():
            logger.debug("Target server identity unknown; using cross-server sync")
            return False
        if not store_name or not str(store_name).strip():
            logger.debug("Metadata store identity unknown; using cross-server sync")
            return False

        same = str(target_name).strip().lower() == str(store_name).strip().lower()
        logger.info(
            "Target %s is %s the metadata store server",
            target.safe_target(),
            "on" if same else "not on",
        )
        return same

    async def _target_server_name(self, target: ConnectionDescriptor) -> str | None:
        async with open_connection(target) as conn:
            result = await conn.execute(text(queries.SERVER_NAME))
            return result.scalar()
