"""Client records and their links to projects."""

from acto_sync.adapters.store import MetadataStore
from acto_sync.schema import queries
from acto_sync.schema.models import Client


class SqlClientRepository:
    """``ClientRepository`` backed by the ``Clients``/``ProjectClients`` tables."""

    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    async def get_by_name(self, name: str) -> Client | None:
        row = await self._store.fetch_one(queries.GET_CLIENT_BY_NAME, {"client_name": name})
        return Client(**row) if row else None

    async def get_by_id(self, client_id: int) -> Client | None:
        row = await self._store.fetch_one(queries.GET_CLIENT_BY_ID, {"client_id": client_id})
        return Client(**row) if row else None

    async def create(self, name: str, actor_user_id: int) -> int:
        client_id = await self._store.scalar(
            queries.INSERT_CLIENT,
            {"client_name": name, "user_id": actor_user_id},
        )
        return int(client_id)

    async def is_linked(self, project_id: int, client_id: int) -> bool:
        linked = await self._store.scalar(
            queries.IS_CLIENT_LINKED,
            {"project_id": project_id, "client_id": client_id},
        )
        return bool(linked)

    async def link(self, project_id: int, client_id: int, actor_user_id: int) -> None:
        await self._store.execute(
            queries.LINK_CLIENT,
            {"project_id": project_id, "client_id": client_id, "user_id": actor_user_id},
        )
