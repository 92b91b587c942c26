from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from objstore.infra.storage.client import (
    AMAZON_S3_ENDPOINT,
    StorageConfigError,
    StorageServerConfig,
)

ENV_FILE = Path(".env")

ADDRESSING_STYLES: tuple[str, ...] = ("auto", "path", "virtual")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    S3_ENDPOINT: str = AMAZON_S3_ENDPOINT
    S3_REGION: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_ADDRESSING_STYLE: str = "auto"
    LOG_LEVEL: str = "INFO"
    ENABLE_METRICS: bool = True

    def __post_init__(self) -> None:
        style = (self.S3_ADDRESSING_STYLE or "auto").strip().lower()
        if style not in ADDRESSING_STYLES:
            raise ValueError(
                f"S3_ADDRESSING_STYLE must be one of {', '.join(ADDRESSING_STYLES)}."
            )
        self.S3_ADDRESSING_STYLE = style

    def server_config(self) -> StorageServerConfig:
        if not self.S3_ACCESS_KEY_ID or not self.S3_SECRET_ACCESS_KEY:
            raise StorageConfigError(
                "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are required"
            )
        return StorageServerConfig(
            endpoint=self.S3_ENDPOINT,
            access_key=self.S3_ACCESS_KEY_ID,
            secret_key=self.S3_SECRET_ACCESS_KEY,
            region=self.S3_REGION,
        )

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_ENDPOINT=os.environ.get("S3_ENDPOINT", cls.S3_ENDPOINT),
            S3_REGION=_as_optional(os.environ.get("S3_REGION")),
            S3_ACCESS_KEY_ID=_as_optional(os.environ.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(os.environ.get("S3_SECRET_ACCESS_KEY")),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
