# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from compliance_core.persistence.autosave import Scheduler, TimerHandle
from compliance_core.persistence.storage import MemoryStorage
from compliance_core.sync.remote_store import RemoteStore


# =============================================================================
# FAKES
# =============================================================================

class FailingStorage(MemoryStorage):
    """MemoryStorage whose writes can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def apply(self, updates):
        if self.fail_writes:
            raise OSError("disk full")
        super().apply(updates)


class ManualTimer(TimerHandle):
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Fake clock: timers only fire when the test calls advance()."""

    def __init__(self):
        self.now = 0.0
        self._timers: List[ManualTimer] = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self.now = target


class FakeRemoteStore(RemoteStore):
    """
    In-memory RemoteStore.

    failures: method name -> number of calls that should fail (-1 = always)
    gate: when set to an asyncio.Event, every write waits on it first
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.failures: Dict[str, int] = {}
        self.read_failures = set()
        self.gate: Optional[asyncio.Event] = None
        self.incidents: List[dict] = []
        self.settings: Optional[dict] = None
        self.activity: List[dict] = []
        self.results: List[dict] = []

    async def _write(self, name: str, payload: Any) -> None:
        if self.gate is not None:
            await self.gate.wait()
        self.calls.append((name, payload))
        remaining = self.failures.get(name, 0)
        if remaining:
            if remaining > 0:
                self.failures[name] = remaining - 1
            raise RuntimeError(f"{name} failed")

    def _read(self, name: str, value: Any) -> Any:
        self.calls.append((name, None))
        if name in self.read_failures:
            raise RuntimeError(f"{name} failed")
        return value

    @property
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    async def create_or_update_test_result(self, result):
        await self._write("create_or_update_test_result", result)

    async def create_failure_incident(self, incident):
        await self._write("create_failure_incident", incident)

    async def upsert_compliance_settings(self, settings, conflict_key="facility_id"):
        await self._write("upsert_compliance_settings", (settings, conflict_key))

    async def load_incident_history(self, facility_id):
        return self._read("load_incident_history", list(self.incidents))

    async def load_compliance_settings(self, facility_id):
        return self._read("load_compliance_settings", self.settings)

    async def load_recent_activity(self, facility_id, limit):
        return self._read("load_recent_activity", list(self.activity[:limit]))

    async def load_recent_test_results(self, facility_id, limit):
        return self._read("load_recent_test_results", list(self.results[:limit]))


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class SteppingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def failing_storage():
    return FailingStorage()


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()


@pytest.fixture
def fake_remote():
    return FakeRemoteStore()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def sample_workflow_state() -> Dict[str, Any]:
    """Workflow state as the UI persists it (camelCase keys)"""
    return {
        "biTestResults": [
            {"facility_id": "fac-1", "result": "pass", "bi_lot_number": "LOT-001"},
            {"facility_id": "fac-1", "result": "fail", "failure_reason": "growth observed"},
        ],
        "biFailureHistory": [
            {
                "facility_id": "fac-1",
                "affected_tools_count": 12,
                "affected_batch_ids": ["B-17", "B-18"],
                "severity_level": "high",
            },
        ],
        "enforceBI": True,
        "enforceCI": False,
        "allowOverrides": False,
        "facilityId": "fac-1",
    }


@pytest.fixture
def mock_streamlit(monkeypatch):
    """Replace the streamlit module used by the error handlers"""
    mock_st = MagicMock()
    mock_st.session_state = {}
    monkeypatch.setattr("compliance_core.errors.handlers.st", mock_st)
    return mock_st


@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.execute.return_value.data = []
    mock_client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])
    return mock_client


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def tamper_current_state(storage, key: str = "state.current", **changes) -> None:
    """Rewrite the stored envelope's data without updating its checksum."""
    envelope = json.loads(storage.get(key))
    envelope["data"].update(changes)
    storage.set(key, json.dumps(envelope))


def tamper_backup(storage, index: int, **changes) -> None:
    """Rewrite one backup's wrapped data without updating its checksum."""
    backups = json.loads(storage.get("state.backups"))
    backups[index]["data"]["data"].update(changes)
    storage.set("state.backups", json.dumps(backups))


class _Tamper:
    current = staticmethod(tamper_current_state)
    backup = staticmethod(tamper_backup)


@pytest.fixture
def tamper():
    """Helpers that corrupt stored records in place"""
    return _Tamper
