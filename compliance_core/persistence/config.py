# =============================================================================
# compliance_core/persistence/config.py
# Persistence Configuration
# =============================================================================
"""
PersistenceConfig - immutable settings for auto-save, backups and sync retry.

Values are loaded from Streamlit secrets when running inside the app:

    [persistence]
    auto_save = true
    auto_save_interval = 30      # seconds
    max_backup_count = 10
    sync_on_connect = true
    retry_attempts = 3
    retry_delay = 1.0            # seconds

Outside Streamlit the same keys are read from COMPLIANCE_* environment
variables, and anything missing falls back to the defaults below.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import streamlit as st

from compliance_core.errors import ConfigurationError
from compliance_core.logging import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "COMPLIANCE_"
DEFAULT_DB_PATH = Path("local_data") / "compliance_state.db"


@dataclass(frozen=True)
class PersistenceConfig:
    """Per-instance persistence settings. Durations are in seconds."""
    auto_save: bool = True
    auto_save_interval: float = 30.0
    max_backup_count: int = 10
    sync_on_connect: bool = True
    retry_attempts: int = 3
    retry_delay: float = 1.0

    def __post_init__(self):
        if self.auto_save_interval <= 0:
            raise ConfigurationError(
                "auto_save_interval must be positive",
                config_key="auto_save_interval",
            )
        if self.max_backup_count < 1:
            raise ConfigurationError(
                "max_backup_count must be at least 1",
                config_key="max_backup_count",
            )
        if self.retry_attempts < 0:
            raise ConfigurationError(
                "retry_attempts cannot be negative",
                config_key="retry_attempts",
            )
        if self.retry_delay < 0:
            raise ConfigurationError(
                "retry_delay cannot be negative",
                config_key="retry_delay",
            )

    def merged(self, **overrides: Any) -> PersistenceConfig:
        """Return a copy with ``overrides`` applied (partial merge)."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown persistence settings: {sorted(unknown)}",
                config_key=", ".join(sorted(unknown)),
            )
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _coerce(name: str, raw: Any) -> Any:
    """Convert a secrets/env value to the type of the matching field."""
    target = type(getattr(PersistenceConfig(), name))
    if target is bool:
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    try:
        return target(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r}",
            config_key=name,
        ) from e


def _read_secrets() -> Optional[Mapping[str, Any]]:
    try:
        if "persistence" in st.secrets:
            return dict(st.secrets["persistence"])
    except Exception as e:
        # st.secrets raises when no secrets.toml exists at all
        logger.debug(f"Streamlit secrets not available: {e}")
    return None


def load_persistence_config(**overrides: Any) -> PersistenceConfig:
    """
    Build a PersistenceConfig from secrets, environment and defaults.

    Args:
        **overrides: Explicit values that win over every other source

    Returns:
        Validated PersistenceConfig
    """
    values: Dict[str, Any] = {}
    source = _read_secrets()

    for f in fields(PersistenceConfig):
        if source is not None and f.name in source:
            values[f.name] = _coerce(f.name, source[f.name])
            continue
        env_value = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
        if env_value is not None:
            values[f.name] = _coerce(f.name, env_value)

    values.update(overrides)
    config = PersistenceConfig(**values)
    logger.debug(f"Persistence config loaded: {config.to_dict()}")
    return config


def get_state_db_path() -> Path:
    """Location of the local SQLite state database."""
    return Path(os.getenv(f"{ENV_PREFIX}STATE_DB", str(DEFAULT_DB_PATH)))


def get_facility_id() -> Optional[str]:
    """Facility the local workflow belongs to, when configured."""
    return os.getenv(f"{ENV_PREFIX}FACILITY_ID") or None
