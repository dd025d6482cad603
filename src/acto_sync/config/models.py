"""Pydantic models for sync configuration."""

from typing import Literal

from pydantic import BaseModel, Field, SecretStr


Environment = Literal["production", "staging", "development"]


# ============================================================================
# Configuration Models
# ============================================================================


class MetadataStoreSettings(BaseModel):
    """Connection settings for the metadata store (the ActoEngine database)."""

    server: str
    port: int = 1433
    database: str = "ActoEngine"
    username: str | None = None
    password: SecretStr | None = None
    trusted_connection: bool = False


class ConnectionSettings(BaseModel):
    """Driver defaults shared by every connection the library opens."""

    driver: str = "ODBC Driver 18 for SQL Server"
    application_name: str = "ActoEngine"
    environment: Environment = "production"

    @property
    def is_development(self) -> bool:
        """True when relaxed certificate validation is allowed."""
        return self.environment == "development"


class SyncSettings(BaseModel):
    """Knobs for the sync orchestrator."""

    default_client_name: str = "Default Client"
    same_server_procedure: str = "SyncSchemaMetadata"
    status_poll_interval: float = Field(default=1.0, gt=0)


class SyncConfig(BaseModel):
    """Complete configuration from acto.toml."""

    metadata: MetadataStoreSettings
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
