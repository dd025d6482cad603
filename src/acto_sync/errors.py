"""Exception types raised by acto-sync.

Messages on these exceptions may reach API responses, so anything derived
from caller input is passed through ``redact`` before it is attached.
"""


class ActoSyncError(Exception):
    """Base class for acto-sync errors."""

    pass


class ProjectNotFoundError(ActoSyncError):
    """Raised when an operation names a project id that does not exist."""

    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(f"Project with ID {project_id} not found.")


class InvalidConnectionStringError(ActoSyncError, ValueError):
    """Raised when a raw connection string cannot be used for a sync."""

    pass


class DefaultClientError(ActoSyncError):
    """Raised when the default client was created but cannot be read back."""

    pass


class MetadataStoreError(ActoSyncError):
    """Raised on misuse of a metadata store unit of work."""

    pass
