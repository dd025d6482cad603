"""TOML configuration loader.

Usage:
    from acto_sync.config.loader import load_sync_config

    config = load_sync_config()                      # ./acto.toml
    config = load_sync_config(Path("conf/acto.toml"), env_prefix="APP_")
"""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from acto_sync.config.models import (
    ConnectionSettings,
    MetadataStoreSettings,
    SyncConfig,
    SyncSettings,
)


def load_sync_config(
    config_path: Path | None = None,
    env_prefix: str = "",
) -> SyncConfig:
    """Load sync configuration from a TOML file.

    Two values may be overridden from the environment so they need not live
    in the file:

    - ``{env_prefix}ACTO_METADATA_PASSWORD``: metadata store password.
    - ``{env_prefix}ACTO_ENV``: ``production``, ``staging`` or ``development``.

    Args:
        config_path: Path to acto.toml (default: ``acto.toml`` in the
            current working directory).
        env_prefix: Prefix for environment variable lookup.

    Returns:
        SyncConfig with metadata, connection and sync sections.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config format is invalid.
    """
    if config_path is None:
        config_path = Path.cwd() / "acto.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Sync config not found: {config_path}\n"
            f"Create acto.toml with a [metadata] section (server, database)."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path.name}: {e}") from e

    metadata_data = dict(data.get("metadata", {}))
    if "server" not in metadata_data:
        raise ValueError(
            f"{config_path.name} is missing [metadata] server setting"
        )

    env_password = os.environ.get(f"{env_prefix}ACTO_METADATA_PASSWORD")
    if env_password:
        metadata_data["password"] = env_password

    connection_data = dict(data.get("connection", {}))
    env_name = os.environ.get(f"{env_prefix}ACTO_ENV")
    if env_name:
        connection_data["environment"] = env_name.lower()

    try:
        return SyncConfig(
            metadata=MetadataStoreSettings(**metadata_data),
            connection=ConnectionSettings(**connection_data),
            sync=SyncSettings(**data.get("sync", {})),
        )
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {config_path.name}: {e}") from e
