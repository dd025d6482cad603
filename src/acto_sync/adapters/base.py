"""Collaborator protocol definitions.

The sync core talks to services it does not own through these Protocols.
All methods are ``async def``.

Usage:
    from acto_sync.adapters.base import DependencyAnalyzer

    class NoOpAnalyzer:
        async def analyze_project(self, project_id: int) -> None:
            return None

    analyzer: DependencyAnalyzer = NoOpAnalyzer()
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from acto_sync.schema.models import Client, SyncStatus


class DependencyAnalyzer(Protocol):
    """Analyzes object dependencies of a synced project.

    Called after the schema transaction commits.  Failures are logged and
    swallowed by the caller.
    """

    async def analyze_project(self, project_id: int) -> None:
        ...


class LogicalFkDetector(Protocol):
    """Infers undeclared foreign keys and stores them as candidates.

    Same swallow-on-failure policy as ``DependencyAnalyzer``.
    """

    async def detect_and_persist_candidates(self, project_id: int) -> None:
        ...


class ClientRepository(Protocol):
    """Grouping "client" records that own synced stored procedures."""

    async def get_by_name(self, name: str) -> "Client | None":
        ...

    async def create(self, name: str, actor_user_id: int) -> int:
        """Create a client and return its id.

        Raises:
            Exception: If a client with the same name already exists.
        """
        ...

    async def get_by_id(self, client_id: int) -> "Client | None":
        ...

    async def is_linked(self, project_id: int, client_id: int) -> bool:
        ...

    async def link(self, project_id: int, client_id: int, actor_user_id: int) -> None:
        ...


class SyncStatusStore(Protocol):
    """Single current-value sync status per project."""

    async def get(self, project_id: int) -> "SyncStatus | None":
        """Return the status, or ``None`` if the project has never synced."""
        ...

    async def set(self, project_id: int, status: str, progress: int) -> None:
        """Overwrite the project's status; visible to readers immediately."""
        ...
