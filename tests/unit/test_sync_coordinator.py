# =============================================================================
# tests/unit/test_sync_coordinator.py
# Unit Tests for SyncCoordinator
# =============================================================================

import asyncio
from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def coordinator(fake_remote, recording_sleep, clock):
    from compliance_core.persistence.config import PersistenceConfig
    from compliance_core.sync.coordinator import SyncCoordinator

    return SyncCoordinator(
        fake_remote,
        PersistenceConfig(retry_attempts=3, retry_delay=1.0),
        sleep=recording_sleep,
        clock=clock,
    )


class TestSyncPush:
    """Category order and payloads"""

    @pytest.mark.asyncio
    async def test_categories_pushed_in_order(self, coordinator, fake_remote, sample_workflow_state):
        """Categories pushed in order"""
        await coordinator.sync(sample_workflow_state)

        assert fake_remote.call_names == [
            "create_or_update_test_result",
            "create_or_update_test_result",
            "create_failure_incident",
            "upsert_compliance_settings",
        ]

    @pytest.mark.asyncio
    async def test_settings_upserted_on_facility(self, coordinator, fake_remote, sample_workflow_state):
        """Settings upserted on facility"""
        await coordinator.sync(sample_workflow_state)

        settings, conflict_key = fake_remote.calls[-1][1]
        assert conflict_key == "facility_id"
        assert settings == {
            "enforce_bi": True,
            "enforce_ci": False,
            "allow_overrides": False,
            "facility_id": "fac-1",
        }

    @pytest.mark.asyncio
    async def test_missing_categories_are_skipped(self, coordinator, fake_remote):
        """Missing categories are skipped"""
        await coordinator.sync({"biFailureHistory": [{"facility_id": "fac-1"}]})

        assert fake_remote.call_names == ["create_failure_incident"]

    @pytest.mark.asyncio
    async def test_workflow_state_object_is_accepted(self, coordinator, fake_remote):
        """Workflow state object is accepted"""
        from compliance_core.sync.models import WorkflowState

        await coordinator.sync(WorkflowState(bi_test_results=[{"result": "pass"}]))

        assert fake_remote.call_names == ["create_or_update_test_result"]

    @pytest.mark.asyncio
    async def test_success_updates_status(self, coordinator, sample_workflow_state):
        """Success updates status"""
        coordinator.mark_pending(3)

        await coordinator.sync(sample_workflow_state)

        status = coordinator.get_status()
        assert status.is_syncing is False
        assert status.last_sync_time == datetime(2024, 5, 1, 8, 0, 1, tzinfo=timezone.utc)
        assert status.pending_changes == 0
        assert status.failed_changes == 0
        assert status.sync_errors == []


class TestSingleFlight:
    """Only one sync may be in flight"""

    @pytest.mark.asyncio
    async def test_second_sync_is_rejected(self, coordinator, fake_remote, sample_workflow_state):
        """Second sync is rejected"""
        from compliance_core.errors import ConcurrentSyncError

        fake_remote.gate = asyncio.Event()
        first = asyncio.create_task(coordinator.sync(sample_workflow_state))
        await asyncio.sleep(0)
        assert coordinator.is_syncing

        with pytest.raises(ConcurrentSyncError):
            await coordinator.sync(sample_workflow_state)

        status = coordinator.get_status()
        assert status.is_syncing is True
        assert status.sync_errors == []

        fake_remote.gate.set()
        await first

        assert coordinator.is_syncing is False
        assert fake_remote.call_names.count("create_failure_incident") == 1

    @pytest.mark.asyncio
    async def test_sync_allowed_again_after_completion(self, coordinator, fake_remote, sample_workflow_state):
        """Sync allowed again after completion"""
        await coordinator.sync(sample_workflow_state)
        await coordinator.sync(sample_workflow_state)

        assert fake_remote.call_names.count("upsert_compliance_settings") == 2


class TestSyncFailure:
    """Failures update status and surface as SyncError"""

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_sync_error(
        self, coordinator, fake_remote, recording_sleep, sample_workflow_state
    ):
        """Exhausted retries raise sync error"""
        from compliance_core.errors import SyncError

        fake_remote.failures["create_failure_incident"] = -1

        with pytest.raises(SyncError) as exc_info:
            await coordinator.sync(sample_workflow_state)

        assert exc_info.value.details == {"category": "failure incidents", "attempts": 4}
        assert exc_info.value.recoverable is True
        assert fake_remote.call_names.count("create_failure_incident") == 4
        assert "upsert_compliance_settings" not in fake_remote.call_names
        assert recording_sleep.delays == [1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_failure_status(self, coordinator, fake_remote, sample_workflow_state):
        """Failed sync records the error in status"""
        from compliance_core.errors import SyncError

        fake_remote.failures["create_failure_incident"] = -1

        with pytest.raises(SyncError):
            await coordinator.sync(sample_workflow_state)

        status = coordinator.get_status()
        assert status.is_syncing is False
        assert status.failed_changes == 1
        assert status.last_sync_time is None
        assert status.sync_errors == [
            "Failed to sync failure incidents: create_failure_incident failed"
        ]

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(
        self, coordinator, fake_remote, recording_sleep, sample_workflow_state
    ):
        """Transient failure is retried"""
        fake_remote.failures["create_or_update_test_result"] = 2

        await coordinator.sync(sample_workflow_state)

        assert fake_remote.call_names.count("create_or_update_test_result") == 4
        assert recording_sleep.delays == [1.0, 1.0]
        assert coordinator.get_status().sync_errors == []

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(
        self, fake_remote, recording_sleep, sample_workflow_state
    ):
        """Zero retries means single attempt"""
        from compliance_core.errors import SyncError
        from compliance_core.persistence.config import PersistenceConfig
        from compliance_core.sync.coordinator import SyncCoordinator

        coordinator = SyncCoordinator(
            fake_remote, PersistenceConfig(retry_attempts=0), sleep=recording_sleep
        )
        fake_remote.failures["create_or_update_test_result"] = 1

        with pytest.raises(SyncError):
            await coordinator.sync(sample_workflow_state)

        assert fake_remote.call_names == ["create_or_update_test_result"]
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_errors_cleared_on_next_attempt(self, coordinator, fake_remote, sample_workflow_state):
        """Errors cleared on next attempt"""
        from compliance_core.errors import SyncError

        fake_remote.failures["upsert_compliance_settings"] = 4
        with pytest.raises(SyncError):
            await coordinator.sync(sample_workflow_state)
        assert coordinator.get_status().sync_errors

        await coordinator.sync(sample_workflow_state)

        status = coordinator.get_status()
        assert status.sync_errors == []
        assert status.failed_changes == 0
        assert status.last_sync_time is not None

    @pytest.mark.asyncio
    async def test_unsupported_state_type(self, coordinator, fake_remote):
        """Unsupported state type should be rejected"""
        from compliance_core.errors import SyncError

        with pytest.raises(SyncError):
            await coordinator.sync(42)

        assert fake_remote.calls == []
        assert coordinator.get_status().sync_errors == ["Cannot sync state of type int"]

    @pytest.mark.asyncio
    async def test_missing_facility_id_for_settings(self, coordinator, fake_remote):
        """Missing facility id for settings"""
        from compliance_core.errors import SyncError

        with pytest.raises(SyncError) as exc_info:
            await coordinator.sync({"enforceBI": True})

        assert "No facility ID" in exc_info.value.message
        assert fake_remote.calls == []

    @pytest.mark.asyncio
    async def test_facility_id_from_provider(self, fake_remote, recording_sleep):
        """Facility id from provider"""
        from compliance_core.sync.coordinator import SyncCoordinator

        coordinator = SyncCoordinator(
            fake_remote, facility_id_provider=lambda: "fac-env", sleep=recording_sleep
        )

        await coordinator.sync({"enforceCI": True})

        settings, _ = fake_remote.calls[0][1]
        assert settings == {"enforce_ci": True, "facility_id": "fac-env"}

    @pytest.mark.asyncio
    async def test_no_settings_flags_means_no_upsert(self, coordinator, fake_remote):
        """No settings flags means no upsert"""
        await coordinator.sync({"biTestResults": [], "biFailureHistory": []})

        assert fake_remote.calls == []
        assert coordinator.get_status().last_sync_time is not None


class TestStatus:
    """Status copies, reset and callbacks"""

    def test_get_status_returns_copy(self, coordinator):
        """Get status returns copy"""
        status = coordinator.get_status()
        status.sync_errors.append("tampered")
        status.pending_changes = 99

        fresh = coordinator.get_status()
        assert fresh.sync_errors == []
        assert fresh.pending_changes == 0

    @pytest.mark.asyncio
    async def test_reset_status(self, coordinator, fake_remote, sample_workflow_state):
        """Reset clears counters and errors"""
        from compliance_core.errors import SyncError

        fake_remote.failures["create_failure_incident"] = -1
        with pytest.raises(SyncError):
            await coordinator.sync(sample_workflow_state)

        coordinator.reset_status()

        status = coordinator.get_status()
        assert status.sync_errors == []
        assert status.failed_changes == 0
        assert status.last_sync_time is None

    @pytest.mark.asyncio
    async def test_reset_during_sync_keeps_flag(self, coordinator, fake_remote, sample_workflow_state):
        """Reset during sync keeps flag"""
        fake_remote.gate = asyncio.Event()
        task = asyncio.create_task(coordinator.sync(sample_workflow_state))
        await asyncio.sleep(0)

        coordinator.reset_status()
        assert coordinator.is_syncing

        fake_remote.gate.set()
        await task
        assert coordinator.is_syncing is False

    @pytest.mark.asyncio
    async def test_callbacks_see_transitions(self, coordinator, sample_workflow_state):
        """Callbacks see transitions"""
        seen = []
        coordinator.register_callback(lambda status: seen.append(status.is_syncing))

        await coordinator.sync(sample_workflow_state)

        assert seen == [True, False]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_sync(self, coordinator, fake_remote, sample_workflow_state):
        """Failing callback does not break sync"""
        def broken(status):
            raise ValueError("ui gone")

        coordinator.register_callback(broken)

        await coordinator.sync(sample_workflow_state)

        assert len(fake_remote.calls) == 4

    def test_unregister_callback(self, coordinator):
        """Unregistered callback is no longer called"""
        seen = []
        callback = seen.append
        coordinator.register_callback(callback)
        coordinator.register_callback(callback)
        coordinator.mark_pending()
        coordinator.unregister_callback(callback)
        coordinator.mark_pending()

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_needs_sync(self, coordinator, sample_workflow_state):
        """Pending or failed changes mean a sync is needed"""
        long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert coordinator.needs_sync(long_ago)

        await coordinator.sync(sample_workflow_state)
        last = coordinator.get_status().last_sync_time

        assert coordinator.needs_sync(long_ago) is False
        assert coordinator.needs_sync(last + timedelta(seconds=1))


class TestLoadFromRemote:
    """Remote snapshot for cold starts"""

    @pytest.mark.asyncio
    async def test_snapshot_contents(self, coordinator, fake_remote):
        """Load returns every remote category"""
        fake_remote.incidents = [{"id": "inc-1"}]
        fake_remote.settings = {"enforce_bi": False, "facility_id": "fac-1"}
        fake_remote.activity = [{"id": i} for i in range(150)]
        fake_remote.results = [{"id": i} for i in range(80)]

        snapshot = await coordinator.load_from_remote("fac-1")

        assert snapshot.bi_failure_history == [{"id": "inc-1"}]
        assert snapshot.compliance_settings == {"enforce_bi": False, "facility_id": "fac-1"}
        assert len(snapshot.activity_log) == 100
        assert len(snapshot.bi_test_results) == 50

    @pytest.mark.asyncio
    async def test_missing_settings_fall_back_to_defaults(self, coordinator):
        """Missing settings fall back to defaults"""
        from compliance_core.sync.models import DEFAULT_COMPLIANCE_SETTINGS

        snapshot = await coordinator.load_from_remote("fac-1")

        assert snapshot.compliance_settings == DEFAULT_COMPLIANCE_SETTINGS
        assert snapshot.bi_failure_history == []

    @pytest.mark.asyncio
    async def test_failed_read_degrades_to_empty(self, coordinator, fake_remote):
        """Failed read degrades to empty"""
        fake_remote.incidents = [{"id": "inc-1"}]
        fake_remote.activity = [{"id": "a"}]
        fake_remote.read_failures = {"load_recent_activity", "load_compliance_settings"}

        snapshot = await coordinator.load_from_remote("fac-1")

        assert snapshot.activity_log == []
        assert snapshot.bi_failure_history == [{"id": "inc-1"}]
        assert snapshot.compliance_settings["enforce_bi"] is True

    @pytest.mark.asyncio
    async def test_requires_facility_id(self, coordinator, fake_remote):
        """Load without a facility id should fail"""
        from compliance_core.errors import SyncError

        with pytest.raises(SyncError):
            await coordinator.load_from_remote()

        assert fake_remote.calls == []

    @pytest.mark.asyncio
    async def test_does_not_touch_sync_status(self, coordinator):
        """Does not touch sync status"""
        await coordinator.load_from_remote("fac-1")

        status = coordinator.get_status()
        assert status.last_sync_time is None
        assert status.is_syncing is False
