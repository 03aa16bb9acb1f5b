"""Configuration settings for Catalyst.

Settings are read from ``CATALYST_*`` environment variables (and a local
``.env`` file). The graph cache lives in a user-scoped cache directory:

- ``$XDG_CACHE_HOME/catalyst`` (``~/.cache/catalyst`` when unset)
- ``~/Library/Caches/catalyst`` on macOS
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_ID = "catalyst"


def default_cache_dir() -> Path:
    """Resolve the per-user cache root, namespaced by the app id."""
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg) / APP_ID
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / APP_ID
    return Path.home() / ".cache" / APP_ID


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CATALYST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cache_dir: Path = Field(default_factory=default_cache_dir)

    # External tools
    tuist_bin: str = "tuist"
    bazel_bin: str = "bazel"
    xcrun_bin: str = "xcrun"

    # Pinned rules_apple release
    rules_apple_version: str = "3.5.1"
    rules_apple_sha256: str = "b4df908ec14868369021182ab191dbd1f40830c9b300650d5dc389e0b9266c8d"

    # Minimum OS versions when the graph declares no deployment target
    ios_minimum_os: str = "15.0"
    macos_minimum_os: str = "12.0"
    tvos_minimum_os: str = "15.0"
    watchos_minimum_os: str = "8.0"
    visionos_minimum_os: str = "1.0"

    # Bazel disk cache (defaults to <cache_dir>/bazel-disk-cache)
    disk_cache: Path | None = None

    # Simulator
    default_simulator: str = "iPhone 16"
    boot_timeout: float = 120.0
    boot_poll_interval: float = 1.0

    # Command record/replay ("off", "record", "replay")
    cassette_mode: str = "off"
    cassette_dir: Path | None = None

    @property
    def graphs_dir(self) -> Path:
        """Directory holding one cached graph per project."""
        return self.cache_dir / "graphs"

    @property
    def logs_dir(self) -> Path:
        """Directory for structured JSONL run logs."""
        return self.cache_dir / "logs"

    @property
    def bazel_disk_cache(self) -> Path:
        return self.disk_cache or self.cache_dir / "bazel-disk-cache"

    def minimum_os(self, platform: str) -> str:
        """Default minimum OS version for a platform name (``ios``, ``macos``...)."""
        return getattr(self, f"{platform}_minimum_os")

    def ensure_cache_dir(self) -> None:
        """Create cache directory if it doesn't exist."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings cache (useful for testing)."""
    global _settings
    _settings = None
