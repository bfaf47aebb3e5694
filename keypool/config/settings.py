"""
Configuration system using Pydantic for type-safe settings management.

Settings come from environment variables (prefix ``KEYPOOL_``, nested
sections separated by ``__``) or from a YAML file loaded with
:meth:`KeypoolSettings.from_yaml`. The fallback Gemini key is read from
``GEMINI_API_KEY`` (or ``VITE_GEMINI_API_KEY`` for configs shared with the
web build).
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from keypool.exceptions import ConfigurationError

DEFAULT_API_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_IMAGE_MODEL = "imagen-4.0-generate-001"


class StorageConfig(BaseModel):
    """Where the key collection and the active index are persisted."""

    backend: Literal["file", "keyring", "encrypted", "memory"] = Field(
        default="file", description="Key/value backend used by the credential store"
    )
    path: Path = Field(
        default=Path("~/.keypool/storage.json"),
        description="Storage file for the file and encrypted backends",
    )
    namespace: str = Field(default="default", description="Keyring namespace (keyring backend only)")
    master_password: str | None = Field(
        default=None, description="Master password for the encrypted backend", repr=False
    )
    collection_key: str = Field(default="gemini-api-keys", description="Record holding the key collection")
    active_index_key: str = Field(
        default="gemini-active-api-key-index", description="Record holding the active index"
    )

    @property
    def resolved_path(self) -> Path:
        """Storage path with ``~`` expanded."""
        return self.path.expanduser()


class ProviderConfig(BaseModel):
    """Gemini API endpoint configuration."""

    base_url: str = Field(default=DEFAULT_API_BASE_URL, description="Gemini REST API base URL")
    api_version: str = Field(default="v1beta", description="API version path segment")
    proxy_api_version: str = Field(default="v1", description="API version path segment for proxied requests")
    proxy_url: str | None = Field(
        default=None,
        description="Optional proxy that forwards Gemini requests (requests go through it when set)",
    )
    default_model: str = Field(default="gemini-2.5-flash", description="Model used by `keypool generate`")
    image_model: str = Field(default=DEFAULT_IMAGE_MODEL, description="Imagen model used by `keypool imagine`")
    timeout: float = Field(default=120.0, ge=1.0, le=900.0, description="Request timeout in seconds")
    validation_timeout: float = Field(
        default=10.0, ge=1.0, le=120.0, description="Timeout for key validation requests in seconds"
    )

    @field_validator("proxy_url")
    @classmethod
    def validate_proxy_url(cls, value: str | None) -> str | None:
        """Reject proxy URLs without an http(s) scheme."""
        if not value:
            return None
        if not (value.startswith("http://") or value.startswith("https://")):
            raise ValueError(f"proxy_url must start with http:// or https://, got: {value}")
        return value

    @property
    def models_url(self) -> str:
        """Model-listing endpoint used for validation requests."""
        return f"{self.base_url.rstrip('/')}/{self.api_version}/models"


class KeypoolSettings(BaseSettings):
    """Main keypool settings."""

    model_config = SettingsConfigDict(
        env_prefix="KEYPOOL_",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "VITE_GEMINI_API_KEY"),
        description="Fallback key tried before the stored keys",
        repr=False,
    )
    locale: Literal["en", "zh"] = Field(default="en", description="Language of user-facing error messages")
    log_level: str = Field(default="INFO", description="Minimum log level")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)

    @property
    def environment_secret(self) -> str | None:
        """Fallback key, or None when unset or blank."""
        if self.gemini_api_key and self.gemini_api_key.strip():
            return self.gemini_api_key
        return None

    @classmethod
    def from_yaml(cls, config_path: str) -> KeypoolSettings:
        """Load settings from a YAML file with environment variable interpolation.

        Supports ``${VAR_NAME}`` and ``${VAR_NAME:-default}``.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Replace ``${VAR}`` / ``${VAR:-default}`` placeholders.

        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            if default_value is not None:
                return default_value
            raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))


@lru_cache
def get_settings() -> KeypoolSettings:
    """Settings from the environment, cached for the process."""
    return KeypoolSettings()
