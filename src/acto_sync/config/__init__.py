"""Configuration management: TOML loading and config models.

Usage:
    >>> from acto_sync.config import load_sync_config, SyncConfig
"""

from acto_sync.config.loader import load_sync_config
from acto_sync.config.models import (
    ConnectionSettings,
    MetadataStoreSettings,
    SyncConfig,
    SyncSettings,
)

__all__ = [
    "load_sync_config",
    "SyncConfig",
    "MetadataStoreSettings",
    "ConnectionSettings",
    "SyncSettings",
]
