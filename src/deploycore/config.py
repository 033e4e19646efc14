"""
Centralized configuration for deploycore.

Uses Pydantic BaseSettings for environment variable integration
and validation. All agent-level settings live here; per-deployment
settings come from the variables file instead.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (DEPLOYCORE_*)
3. .env file
4. Default values

Example:
    from deploycore.config import get_config

    config = get_config()
    print(config.get_journal_path())  # From DEPLOYCORE_JOURNAL_FILE or default

    # Override at runtime
    config = get_config(lock_timeout_seconds=5)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeployCoreConfig(BaseSettings):
    """
    Central configuration for the deployment agent.

    All settings can be overridden via environment variables
    prefixed with DEPLOYCORE_.

    Example:
        export DEPLOYCORE_HOME_DIR=/var/lib/deploycore
        export DEPLOYCORE_LOCK_TIMEOUT_SECONDS=60
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPLOYCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Agent-owned state
    home_dir: str = Field(
        default="~/.deploycore",
        description="Root directory for journal, locks and applications",
    )
    journal_file: Optional[str] = Field(
        default=None,
        description="Path of the deployment journal (defaults to <home_dir>/DeploymentJournal.json)",
    )
    lock_dir: Optional[str] = Field(
        default=None,
        description="Directory holding lock files (defaults to <home_dir>/locks)",
    )
    applications_dir: Optional[str] = Field(
        default=None,
        description="Root of package extraction directories (defaults to <home_dir>/Applications)",
    )
    feature_scripts_dir: Optional[str] = Field(
        default=None,
        description="Directory of feature lifecycle scripts (defaults to <home_dir>/Features)",
    )

    # Locking
    lock_timeout_seconds: float = Field(
        default=180.0,
        ge=0,
        description="How long to wait for a host-wide lock before giving up",
    )
    lock_poll_interval_seconds: float = Field(
        default=0.1,
        gt=0,
        description="Retry interval while waiting for a lock",
    )

    # Journal
    journal_history_limit: int = Field(
        default=20,
        ge=1,
        description="Superseded journal entries retained per target identity",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for deploycore",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log output format (json for log shippers, text for console)",
    )

    @field_validator("home_dir", "journal_file", "lock_dir", "applications_dir", "feature_scripts_dir")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))

    def _under_home(self, value: Optional[str], default_name: str) -> Path:
        if value:
            return Path(value)
        return Path(self.home_dir) / default_name

    def get_journal_path(self) -> Path:
        """Get the deployment journal path."""
        return self._under_home(self.journal_file, "DeploymentJournal.json")

    def get_lock_dir(self) -> Path:
        """Get the lock file directory."""
        return self._under_home(self.lock_dir, "locks")

    def get_applications_dir(self) -> Path:
        """Get the root directory packages are extracted under."""
        return self._under_home(self.applications_dir, "Applications")

    def get_feature_scripts_dir(self) -> Path:
        """Get the feature scripts directory."""
        return self._under_home(self.feature_scripts_dir, "Features")


# Global singleton
_config: Optional[DeployCoreConfig] = None


def get_config(**overrides) -> DeployCoreConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        DeployCoreConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = DeployCoreConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
