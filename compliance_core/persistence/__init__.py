# =============================================================================
# compliance_core/persistence/__init__.py
# Local State Persistence for the Compliance Workflow
# =============================================================================
"""
Local State Persistence Module

Protects the in-memory workflow state against crashes and storage
corruption.

Architecture:
------------
    save(data)                              load()
        |                                     |
        v                                     v
  ┌─────────────┐  record   ┌───────────────┐ |  invalid  ┌────────────────┐
  │ StateStore  │ ────────► │ BackupManager │ ◄────────── │ RecoveryEngine │
  └─────────────┘           └───────────────┘   list()    └────────────────┘
        │                          │
        └──────────┬───────────────┘
                   ▼
          ┌─────────────────┐        ┌───────────────────┐
          │ KeyValueStorage │        │ ChecksumValidator │
          │ (SQLite/memory) │        │     (SHA-256)     │
          └─────────────────┘        └───────────────────┘

  AutoSaveScheduler calls a save routine every auto_save_interval seconds.
"""

from compliance_core.persistence.autosave import (
    AsyncioScheduler,
    AutoSaveScheduler,
    Scheduler,
    TimerHandle,
)
from compliance_core.persistence.backup_manager import BackupManager
from compliance_core.persistence.checksum import ChecksumValidator, canonical_json
from compliance_core.persistence.config import (
    PersistenceConfig,
    load_persistence_config,
)
from compliance_core.persistence.models import STATE_VERSION, Backup, StateEnvelope
from compliance_core.persistence.recovery import RecoveryEngine
from compliance_core.persistence.state_store import StateStats, StateStore
from compliance_core.persistence.storage import (
    BACKUPS_KEY,
    CURRENT_STATE_KEY,
    KeyValueStorage,
    MemoryStorage,
    SQLiteStorage,
)

__all__ = [
    # Storage
    "KeyValueStorage",
    "MemoryStorage",
    "SQLiteStorage",
    "CURRENT_STATE_KEY",
    "BACKUPS_KEY",
    # Records
    "StateEnvelope",
    "Backup",
    "STATE_VERSION",
    # Components
    "ChecksumValidator",
    "canonical_json",
    "StateStore",
    "StateStats",
    "BackupManager",
    "RecoveryEngine",
    "AutoSaveScheduler",
    "AsyncioScheduler",
    "Scheduler",
    "TimerHandle",
    # Configuration
    "PersistenceConfig",
    "load_persistence_config",
]
