"""Project records in the metadata store.

Usage:
    repo = ProjectRepository(store)
    project_id = await repo.create("Sales", user_id=7, database_name="Sales")
    project = await repo.get_by_id(project_id)
"""

import logging

from acto_sync.adapters.store import MetadataStore
from acto_sync.errors import ProjectNotFoundError
from acto_sync.schema import queries
from acto_sync.schema.models import Project

logger = logging.getLogger(__name__)


class ProjectRepository:
    """CRUD over ``Projects``.  Deletes are soft (``IsActive = 0``)."""

    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    async def get_by_id(self, project_id: int) -> Project | None:
        row = await self._store.fetch_one(queries.GET_PROJECT_BY_ID, {"project_id": project_id})
        return Project(**row) if row else None

    async def list_active(self) -> list[Project]:
        rows = await self._store.fetch_all(queries.GET_ACTIVE_PROJECTS)
        return [Project(**row) for row in rows]

    async def create(
        self,
        project_name: str,
        user_id: int,
        database_name: str | None = None,
        description: str | None = None,
        database_type: str = "SqlServer",
    ) -> int:
        """Insert a project (not linked) and return its id."""
        project_id = await self._store.scalar(
            queries.INSERT_PROJECT,
            {
                "project_name": project_name,
                "description": description,
                "database_name": database_name,
                "database_type": database_type,
                "user_id": user_id,
            },
        )
        logger.info("Created project %s (%s)", project_id, project_name)
        return int(project_id)

    async def update(
        self,
        project_id: int,
        project_name: str,
        user_id: int,
        database_name: str | None = None,
        description: str | None = None,
    ) -> None:
        """Update name, description and database name.

        Raises:
            ProjectNotFoundError: If no active project has this id.
        """
        affected = await self._store.execute(
            queries.UPDATE_PROJECT,
            {
                "project_id": project_id,
                "project_name": project_name,
                "description": description,
                "database_name": database_name,
                "user_id": user_id,
            },
        )
        if affected == 0:
            raise ProjectNotFoundError(project_id)

    async def add_or_update(
        self,
        project_id: int | None,
        project_name: str,
        database_name: str,
        user_id: int,
    ) -> int:
        """Upsert by id, used by link.

        ``project_name`` is only used when a project is created; an existing
        project keeps its name and takes the new database name.  ``IsLinked``
        is never changed here.
        """
        existing = await self.get_by_id(project_id) if project_id is not None else None
        if existing is not None:
            await self.update(
                existing.project_id,
                existing.project_name,
                user_id,
                database_name=database_name,
                description=existing.description,
            )
            return existing.project_id
        return await self.create(project_name, user_id, database_name=database_name)

    async def delete(self, project_id: int, user_id: int) -> None:
        """Soft-delete a project.

        Raises:
            ProjectNotFoundError: If no active project has this id.
        """
        affected = await self._store.execute(
            queries.SOFT_DELETE_PROJECT,
            {"project_id": project_id, "user_id": user_id},
        )
        if affected == 0:
            raise ProjectNotFoundError(project_id)
        logger.info("Deleted project %s", project_id)

    async def set_linked(self, project_id: int, is_linked: bool) -> None:
        await self._store.execute(
            queries.SET_PROJECT_LINKED,
            {"project_id": project_id, "is_linked": is_linked},
        )
