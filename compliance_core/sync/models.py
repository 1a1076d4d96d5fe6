# =============================================================================
# compliance_core/sync/models.py
# Sync State Data Classes
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional


@dataclass
class SyncStatus:
    """Process-local sync status shown to the UI. Never persisted."""
    last_sync_time: Optional[datetime] = None
    is_syncing: bool = False
    pending_changes: int = 0
    failed_changes: int = 0
    sync_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "is_syncing": self.is_syncing,
            "pending_changes": self.pending_changes,
            "failed_changes": self.failed_changes,
            "sync_errors": list(self.sync_errors),
        }


# Keys accepted from the persisted (camelCase) form of the workflow state
_STATE_ALIASES = {
    "biTestResults": "bi_test_results",
    "biFailureHistory": "bi_failure_history",
    "enforceBI": "enforce_bi",
    "enforceCI": "enforce_ci",
    "allowOverrides": "allow_overrides",
    "facilityId": "facility_id",
}


@dataclass
class WorkflowState:
    """In-memory BI workflow state that gets pushed to the remote store."""
    bi_test_results: Optional[List[Dict[str, Any]]] = None
    bi_failure_history: Optional[List[Dict[str, Any]]] = None
    enforce_bi: Optional[bool] = None
    enforce_ci: Optional[bool] = None
    allow_overrides: Optional[bool] = None
    facility_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> WorkflowState:
        values = {}
        for key, value in raw.items():
            name = _STATE_ALIASES.get(key, key)
            if name in cls.__dataclass_fields__:
                values[name] = value
        return cls(**values)

    @classmethod
    def coerce(cls, state: Any) -> WorkflowState:
        if isinstance(state, cls):
            return state
        if isinstance(state, Mapping):
            return cls.from_dict(state)
        raise TypeError(f"Cannot sync state of type {type(state).__name__}")

    def compliance_settings(self) -> Optional[Dict[str, Any]]:
        """Settings flags that are set, or None when none are."""
        settings = {
            "enforce_bi": self.enforce_bi,
            "enforce_ci": self.enforce_ci,
            "allow_overrides": self.allow_overrides,
        }
        settings = {k: v for k, v in settings.items() if v is not None}
        return settings or None

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


DEFAULT_COMPLIANCE_SETTINGS = {
    "enforce_bi": True,
    "enforce_ci": True,
    "allow_overrides": False,
    "ci_required": True,
    "bi_required": True,
}


@dataclass
class RemoteSnapshot:
    """Authoritative remote view used for cold starts and manual refresh."""
    bi_failure_history: List[Dict[str, Any]] = field(default_factory=list)
    compliance_settings: Dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_COMPLIANCE_SETTINGS)
    )
    activity_log: List[Dict[str, Any]] = field(default_factory=list)
    bi_test_results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bi_failure_history": self.bi_failure_history,
            "compliance_settings": self.compliance_settings,
            "activity_log": self.activity_log,
            "bi_test_results": self.bi_test_results,
        }
