# =============================================================================
# compliance_core/service.py
# Workflow State Service (single API for the application layer)
# =============================================================================
"""
WorkflowStateService - wires storage, backups, recovery, auto-save and sync
together behind one object.

Construct it explicitly (tests pass in-memory storage, a fake remote and a
manual scheduler); ``create_default_service`` builds the production wiring
from configuration.
"""

from __future__ import annotations
import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import pandas as pd

from compliance_core.data.supabase_client import get_supabase_client
from compliance_core.errors import ConfigurationError, SyncError, handle_error
from compliance_core.logging import get_logger
from compliance_core.persistence.autosave import AutoSaveScheduler, Scheduler
from compliance_core.persistence.backup_manager import BackupManager
from compliance_core.persistence.checksum import ChecksumValidator
from compliance_core.persistence.config import (
    PersistenceConfig,
    get_facility_id,
    get_state_db_path,
    load_persistence_config,
)
from compliance_core.persistence.models import STATE_VERSION, StateEnvelope, utcnow
from compliance_core.persistence.state_store import Migration, StateStats, StateStore
from compliance_core.persistence.storage import KeyValueStorage, MemoryStorage, SQLiteStorage
from compliance_core.sync.coordinator import SyncCoordinator
from compliance_core.sync.models import RemoteSnapshot, SyncStatus, WorkflowState
from compliance_core.sync.remote_store import RemoteStore, SupabaseRemoteStore

logger = get_logger(__name__)


class WorkflowStateService:
    """
    Usage:
        service = WorkflowStateService(config, storage=SQLiteStorage(path), remote=remote)
        service.save_state(state)
        service.start_auto_save(lambda: service.save_state(current_state()))
        await service.sync(state)
    """

    def __init__(
        self,
        config: Optional[PersistenceConfig] = None,
        storage: Optional[KeyValueStorage] = None,
        remote: Optional[RemoteStore] = None,
        scheduler: Optional[Scheduler] = None,
        facility_id_provider: Optional[Callable[[], Optional[str]]] = None,
        version: str = STATE_VERSION,
        migrations: Optional[Mapping[str, Migration]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or PersistenceConfig()
        self.storage = storage or MemoryStorage()
        self.validator = ChecksumValidator()
        self.backups = BackupManager(
            self.storage,
            max_backup_count=self.config.max_backup_count,
            validator=self.validator,
            clock=clock,
        )
        self.store = StateStore(
            self.storage,
            self.backups,
            validator=self.validator,
            version=version,
            migrations=migrations,
            clock=clock,
        )
        self.auto_save = AutoSaveScheduler(self.config, scheduler)
        self.coordinator = (
            SyncCoordinator(
                remote,
                self.config,
                facility_id_provider=facility_id_provider,
                sleep=sleep,
                clock=clock,
            )
            if remote is not None
            else None
        )

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def update_config(self, **overrides: Any) -> PersistenceConfig:
        """Merge new settings in; an active auto-save timer is restarted."""
        self.config = self.config.merged(**overrides)
        self.backups.max_backup_count = self.config.max_backup_count
        if self.coordinator is not None:
            self.coordinator.config = self.config
        self.auto_save.reconfigure(self.config)
        logger.info(f"Persistence config updated: {sorted(overrides)}")
        return self.config

    # =========================================================================
    # LOCAL STATE
    # =========================================================================

    def save_state(self, state: Any) -> StateEnvelope:
        return self.store.save(state)

    def load_state(self) -> Optional[Any]:
        return self.store.load()

    def clear_all_state(self) -> None:
        self.store.clear_all()

    def export_state(self) -> str:
        return self.store.export_state()

    def import_state(self, bundle: Union[str, Mapping[str, Any]]) -> None:
        self.store.import_state(bundle)

    def get_stats(self) -> StateStats:
        return self.store.get_stats()

    def backup_history(self) -> pd.DataFrame:
        return self.backups.to_frame()

    def start_auto_save(self, save_fn: Callable[[], None]) -> None:
        self.auto_save.start(save_fn)

    def stop_auto_save(self) -> None:
        self.auto_save.stop()

    # =========================================================================
    # REMOTE SYNC
    # =========================================================================

    def _require_coordinator(self) -> SyncCoordinator:
        if self.coordinator is None:
            raise ConfigurationError("No remote store configured", config_key="remote")
        return self.coordinator

    async def sync(self, state: Union[WorkflowState, dict]) -> None:
        await self._require_coordinator().sync(state)

    async def load_from_remote(self, facility_id: Optional[str] = None) -> RemoteSnapshot:
        return await self._require_coordinator().load_from_remote(facility_id)

    def get_sync_status(self) -> SyncStatus:
        if self.coordinator is None:
            return SyncStatus()
        return self.coordinator.get_status()

    def reset_sync_status(self) -> None:
        self._require_coordinator().reset_status()

    def needs_sync(self, last_local_change: datetime) -> bool:
        return self._require_coordinator().needs_sync(last_local_change)

    async def on_connection_restored(self, state: Union[WorkflowState, dict]) -> bool:
        """
        Sync after connectivity returns, when ``sync_on_connect`` is set.

        Failures are logged, not raised; the errors stay visible through
        get_sync_status().

        Returns:
            True if a sync ran and succeeded
        """
        coordinator = self._require_coordinator()
        if not self.config.sync_on_connect:
            return False
        if coordinator.is_syncing:
            logger.debug("Connection restored during a sync, skipping")
            return False

        logger.info("Connection restored, triggering sync")
        try:
            await coordinator.sync(state)
        except SyncError as e:
            handle_error(e, show_user_message=False)
            return False
        return True


def create_default_service(**overrides: Any) -> WorkflowStateService:
    """
    Production wiring: SQLite storage and a Supabase remote store, with
    settings from Streamlit secrets / environment.
    """
    config = load_persistence_config(**overrides)
    storage = SQLiteStorage(get_state_db_path())
    remote = SupabaseRemoteStore(get_supabase_client())
    return WorkflowStateService(
        config,
        storage=storage,
        remote=remote,
        facility_id_provider=get_facility_id,
    )
