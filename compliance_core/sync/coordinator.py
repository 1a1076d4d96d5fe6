# =============================================================================
# compliance_core/sync/coordinator.py
# Single-Flight Synchronization to the Remote Store
# =============================================================================
"""
SyncCoordinator - pushes in-memory workflow state to the remote store.

States: Idle -> Syncing -> Idle. There is no error state; a failed attempt
returns to Idle with ``sync_errors`` filled in so the next attempt can run.

Features:
- Single-flight: a second sync while one is in flight is rejected
- Fixed category order: test results -> failure incidents -> settings
- Per-call retry (``retry_attempts`` extra tries, ``retry_delay`` apart)
- Status callbacks for the UI
"""

from __future__ import annotations
import asyncio
import copy
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Union

from compliance_core.errors import ComplianceStateError, ConcurrentSyncError, SyncError
from compliance_core.logging import LogContext, get_logger
from compliance_core.persistence.config import PersistenceConfig
from compliance_core.persistence.models import utcnow
from compliance_core.sync.models import (
    DEFAULT_COMPLIANCE_SETTINGS,
    RemoteSnapshot,
    SyncStatus,
    WorkflowState,
)
from compliance_core.sync.remote_store import RemoteStore

logger = get_logger(__name__)

RECENT_ACTIVITY_LIMIT = 100
RECENT_TEST_RESULTS_LIMIT = 50


class SyncCoordinator:
    """
    Usage:
        coordinator = SyncCoordinator(remote, config, facility_id_provider=lambda: "fac-1")
        await coordinator.sync(state)
        coordinator.get_status().sync_errors
    """

    def __init__(
        self,
        remote: RemoteStore,
        config: Optional[PersistenceConfig] = None,
        facility_id_provider: Optional[Callable[[], Optional[str]]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.remote = remote
        self.config = config or PersistenceConfig()
        self._facility_id_provider = facility_id_provider
        self._sleep = sleep
        self._clock = clock
        self._status = SyncStatus()
        self._callbacks: List[Callable[[SyncStatus], None]] = []

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def is_syncing(self) -> bool:
        return self._status.is_syncing

    def get_status(self) -> SyncStatus:
        """A copy of the current status; changing it has no effect."""
        return copy.deepcopy(self._status)

    def reset_status(self) -> None:
        """Clear counters and errors. An in-flight sync stays marked as such."""
        self._status = SyncStatus(is_syncing=self._status.is_syncing)
        self._notify_callbacks()

    def mark_pending(self, count: int = 1) -> None:
        """Record local changes that have not been pushed yet."""
        self._status.pending_changes += count
        self._notify_callbacks()

    def needs_sync(self, last_local_change: datetime) -> bool:
        """True when there are local changes newer than the last sync."""
        if self._status.last_sync_time is None:
            return True
        return last_local_change > self._status.last_sync_time

    def register_callback(self, callback: Callable[[SyncStatus], None]) -> None:
        """Register a callback for sync status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncStatus], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self.get_status())
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    # =========================================================================
    # PUSH
    # =========================================================================

    async def sync(self, state: Union[WorkflowState, dict]) -> None:
        """
        Push every category present in ``state`` to the remote store.

        Raises:
            ConcurrentSyncError: another sync is in flight (nothing changes)
            SyncError: a remote call failed after retries; status has been
                updated and ``is_syncing`` reset before this is raised
        """
        if self._status.is_syncing:
            raise ConcurrentSyncError()

        self._status.is_syncing = True
        self._status.sync_errors = []
        self._notify_callbacks()

        try:
            workflow = WorkflowState.coerce(state)
            with LogContext(logger, "Syncing workflow state"):
                await self._push(workflow)

            self._status.last_sync_time = self._clock()
            self._status.pending_changes = 0
            self._status.failed_changes = 0

        except Exception as e:
            message = e.message if isinstance(e, ComplianceStateError) else (str(e) or type(e).__name__)
            self._status.sync_errors.append(message)
            self._status.failed_changes += 1
            if isinstance(e, SyncError):
                raise
            raise SyncError(message) from e

        finally:
            self._status.is_syncing = False
            self._notify_callbacks()

    async def _push(self, state: WorkflowState) -> None:
        if state.bi_test_results is not None:
            for result in state.bi_test_results:
                await self._call(
                    "test results", self.remote.create_or_update_test_result, result
                )
            logger.info(f"Synced {len(state.bi_test_results)} BI test result(s)")

        if state.bi_failure_history is not None:
            for incident in state.bi_failure_history:
                await self._call(
                    "failure incidents", self.remote.create_failure_incident, incident
                )
            logger.info(f"Synced {len(state.bi_failure_history)} BI failure incident(s)")

        settings = state.compliance_settings()
        if settings is not None:
            facility_id = self._resolve_facility_id(state.facility_id, "compliance settings")
            await self._call(
                "compliance settings",
                self.remote.upsert_compliance_settings,
                {**settings, "facility_id": facility_id},
                conflict_key="facility_id",
            )
            logger.info(f"Synced compliance settings for facility {facility_id}")

    async def _call(self, category: str, operation, *args, **kwargs) -> Any:
        """Run one remote call, retrying transient failures."""
        attempts = 1 + self.config.retry_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return await operation(*args, **kwargs)
            except Exception as e:
                last_error = e
                logger.warning(f"Syncing {category} failed (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    await self._sleep(self.config.retry_delay)

        raise SyncError(
            f"Failed to sync {category}: {last_error}",
            category=category,
            attempts=attempts,
        ) from last_error

    def _resolve_facility_id(self, facility_id: Optional[str], purpose: str) -> str:
        facility_id = facility_id or (
            self._facility_id_provider() if self._facility_id_provider else None
        )
        if not facility_id:
            raise SyncError(f"No facility ID available for {purpose}", category=purpose)
        return facility_id

    # =========================================================================
    # PULL
    # =========================================================================

    async def load_from_remote(self, facility_id: Optional[str] = None) -> RemoteSnapshot:
        """
        Fetch the remote view of the facility's workflow.

        Read-only: sync status and local backups are untouched. A failed
        read of one part is logged and that part falls back to empty (or
        default settings).

        Raises:
            SyncError: no facility id is available
        """
        facility_id = self._resolve_facility_id(facility_id, "remote load")

        incidents = await self._read(
            "incident history", self.remote.load_incident_history(facility_id), []
        )
        settings = await self._read(
            "compliance settings", self.remote.load_compliance_settings(facility_id), None
        )
        activity = await self._read(
            "activity log",
            self.remote.load_recent_activity(facility_id, RECENT_ACTIVITY_LIMIT),
            [],
        )
        results = await self._read(
            "BI test results",
            self.remote.load_recent_test_results(facility_id, RECENT_TEST_RESULTS_LIMIT),
            [],
        )

        return RemoteSnapshot(
            bi_failure_history=incidents or [],
            compliance_settings=settings or dict(DEFAULT_COMPLIANCE_SETTINGS),
            activity_log=activity or [],
            bi_test_results=results or [],
        )

    @staticmethod
    async def _read(what: str, pending: Awaitable[Any], default: Any) -> Any:
        try:
            return await pending
        except Exception as e:
            logger.error(f"Error loading {what}: {e}")
            return default
