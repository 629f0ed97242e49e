# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FORGE_NAME = "bareforge"


class ConfigurationError(Exception):
    """Raised when the process cannot start with the given configuration."""


class Settings(BaseSettings):
    """Adapter settings loaded from ``BAREFORGE_*`` environment variables."""

    # Repositories
    repos: Path
    url: str

    # OIDC
    client_id: str
    client_secret: str = ""
    # When both are set the file wins over ``client_secret``.
    client_secret_file: Path | None = None
    provider: str
    redirect: str
    oidc_timeout: float = 30.0

    # Misc
    log_level: str = "info"
    log_format: str = "text"
    log_file: Path | None = None
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = SettingsConfigDict(env_prefix="BAREFORGE_", env_file=".env")

    @model_validator(mode="after")
    def _resolve_client_secret(self) -> "Settings":
        if self.client_secret_file is not None:
            self.client_secret = self.client_secret_file.read_text().strip()
        if not self.client_secret:
            raise ValueError("client secret is required")
        return self

    @model_validator(mode="after")
    def _validate_log_format(self) -> "Settings":
        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
        return self


def load_settings(**overrides: object) -> Settings:
    """Build settings, turning every failure into a ``ConfigurationError``."""
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"could not read client secret file: {exc}") from exc


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance. Lazy-loaded to avoid import-time failures."""
    return load_settings()
