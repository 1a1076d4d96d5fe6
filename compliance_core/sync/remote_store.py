# =============================================================================
# compliance_core/sync/remote_store.py
# Remote Store Contract and Supabase Implementation
# =============================================================================
"""
RemoteStore - the only operations the sync engine performs remotely.

SupabaseRemoteStore maps them onto these tables:
    bi_test_results               test results (upsert by id / insert)
    bi_failure_incidents          failure incidents (insert)
    facility_compliance_settings  one row per facility (upsert on facility_id)
    bi_activity_log               read-only activity feed

supabase-py is a blocking client; calls run through asyncio.to_thread so
the event loop (and the auto-save timer on it) keeps running while a
request is in flight.
"""

from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from compliance_core.logging import get_logger

logger = get_logger(__name__)


class RemoteStore(ABC):
    """Async contract of the remote compliance store."""

    @abstractmethod
    async def create_or_update_test_result(self, result: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def create_failure_incident(self, incident: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def upsert_compliance_settings(
        self,
        settings: Dict[str, Any],
        conflict_key: str = "facility_id",
    ) -> None:
        ...

    @abstractmethod
    async def load_incident_history(self, facility_id: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def load_compliance_settings(self, facility_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def load_recent_activity(self, facility_id: str, limit: int) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def load_recent_test_results(self, facility_id: str, limit: int) -> List[Dict[str, Any]]:
        ...


class SupabaseRemoteStore(RemoteStore):
    """
    RemoteStore backed by Supabase tables.

    Usage:
        remote = SupabaseRemoteStore(get_supabase_client())
        await remote.create_failure_incident({...})
    """

    TEST_RESULTS_TABLE = "bi_test_results"
    INCIDENTS_TABLE = "bi_failure_incidents"
    SETTINGS_TABLE = "facility_compliance_settings"
    ACTIVITY_TABLE = "bi_activity_log"

    # Filled in when the local state does not carry these settings
    SETTINGS_DEFAULTS = {
        "autoclave_receipt_settings": {},
        "cycle_settings": {},
        "default_cycle_type": "pouches",
        "allow_custom_cycles": True,
    }

    def __init__(self, client):
        self.client = client

    async def _execute(self, query) -> List[Dict[str, Any]]:
        response = await asyncio.to_thread(query.execute)
        return response.data or []

    async def create_or_update_test_result(self, result: Dict[str, Any]) -> None:
        table = self.client.table(self.TEST_RESULTS_TABLE)
        if result.get("id"):
            await self._execute(table.upsert(result))
        else:
            await self._execute(table.insert(result))
        logger.debug(f"Synced BI test result for facility {result.get('facility_id')}")

    async def create_failure_incident(self, incident: Dict[str, Any]) -> None:
        await self._execute(self.client.table(self.INCIDENTS_TABLE).insert(incident))
        logger.debug(f"Synced BI failure incident for facility {incident.get('facility_id')}")

    async def upsert_compliance_settings(
        self,
        settings: Dict[str, Any],
        conflict_key: str = "facility_id",
    ) -> None:
        row = {**self.SETTINGS_DEFAULTS, **settings}
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        await self._execute(
            self.client.table(self.SETTINGS_TABLE).upsert(row, on_conflict=conflict_key)
        )
        logger.debug(f"Synced compliance settings for facility {row.get('facility_id')}")

    async def load_incident_history(self, facility_id: str) -> List[Dict[str, Any]]:
        return await self._execute(
            self.client.table(self.INCIDENTS_TABLE)
            .select("*")
            .eq("facility_id", facility_id)
            .order("created_at", desc=True)
        )

    async def load_compliance_settings(self, facility_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._execute(
            self.client.table(self.SETTINGS_TABLE)
            .select("*")
            .eq("facility_id", facility_id)
            .limit(1)
        )
        return rows[0] if rows else None

    async def load_recent_activity(self, facility_id: str, limit: int) -> List[Dict[str, Any]]:
        return await self._execute(
            self.client.table(self.ACTIVITY_TABLE)
            .select("*")
            .eq("facility_id", facility_id)
            .order("created_at", desc=True)
            .limit(limit)
        )

    async def load_recent_test_results(self, facility_id: str, limit: int) -> List[Dict[str, Any]]:
        return await self._execute(
            self.client.table(self.TEST_RESULTS_TABLE)
            .select("*")
            .eq("facility_id", facility_id)
            .order("test_date", desc=True)
            .limit(limit)
        )
