"""Configuration for keypool."""

from keypool.config.settings import KeypoolSettings, ProviderConfig, StorageConfig, get_settings

__all__ = ["KeypoolSettings", "ProviderConfig", "StorageConfig", "get_settings"]
