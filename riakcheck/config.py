"""Run configuration — loaded from environment / .env / optional YAML file.

Built once at startup and handed to every component; never mutated.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    INTERACTIVE = "interactive"
    MONITORING = "monitoring"


class Settings(BaseSettings):
    """Central configuration for a single check run."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "RIAKCHECK_",
        "extra": "ignore",
        "frozen": True,
    }

    # Node under inspection
    host: str = "127.0.0.1"
    port: int = 8098
    timeout: float = 5.0  # seconds, applied to every HTTP probe

    # Storage
    log_root: str = "/var/db/riak/leveldb"

    # Memory thresholds (bytes)
    rss_warning: int = 4 * 1024**3
    rss_critical: int = 6 * 1024**3

    # Service manager / process table
    service_name: str = "riak"
    service_user: str = "riak"
    process_name: str = "beam.smp"

    # External tools
    riak_admin: str = "riak"
    erl_path: str = "/opt/local/lib/riak/erts-5.9.1/bin/erl"
    fixer_path: str = "/opt/local/bin/leveldb-fix"
    profile_seconds: int = 10
    command_timeout: float = 60.0  # seconds, for local admin commands

    # Version detection (node_version wins over the release file)
    node_version: str = ""
    version_file: str = "/opt/local/lib/riak/releases/start_erl.data"

    # Stats counter that must be present for the stats check
    stats_field: str = "vnode_gets"

    # Mode switches
    monitoring: bool = False
    all_checks: bool = False

    # Logging
    log_level: str = "WARNING"

    @model_validator(mode="after")
    def _check_thresholds(self) -> Settings:
        if self.rss_critical < self.rss_warning:
            raise ValueError(
                f"rss_critical ({self.rss_critical}) must not be below "
                f"rss_warning ({self.rss_warning})"
            )
        return self

    @property
    def mode(self) -> RunMode:
        return RunMode.MONITORING if self.monitoring else RunMode.INTERACTIVE

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


def load_settings(config_file: Path | None = None, **overrides: Any) -> Settings:
    """Build Settings from env, an optional YAML file, then CLI overrides.

    ``None`` overrides are dropped so unset CLI flags fall through to the
    lower layers.
    """
    values: dict[str, Any] = {}
    if config_file is not None:
        with open(config_file, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")
        logger.debug("Loaded %d settings from %s", len(data), config_file)
        values.update(data)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
