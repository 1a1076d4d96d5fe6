# =============================================================================
# compliance_core/sync/__init__.py
# Remote Synchronization
# =============================================================================

from compliance_core.sync.coordinator import SyncCoordinator
from compliance_core.sync.models import RemoteSnapshot, SyncStatus, WorkflowState
from compliance_core.sync.remote_store import RemoteStore, SupabaseRemoteStore

__all__ = [
    "SyncCoordinator",
    "SyncStatus",
    "WorkflowState",
    "RemoteSnapshot",
    "RemoteStore",
    "SupabaseRemoteStore",
]
