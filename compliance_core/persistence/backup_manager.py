# =============================================================================
# compliance_core/persistence/backup_manager.py
# Bounded Backup Rotation
# =============================================================================
"""
BackupManager - keeps a bounded, newest-first history of saved envelopes.

Every successful StateStore.save prepends one Backup; the list is then cut
back to ``max_backup_count`` by dropping the oldest entries. The list is
always rewritten in full so ordering and truncation land together.
"""

from __future__ import annotations
import json
from datetime import datetime
from typing import Callable, List, Optional

import pandas as pd

from compliance_core.errors import error_boundary
from compliance_core.logging import get_logger
from compliance_core.persistence.checksum import ChecksumValidator
from compliance_core.persistence.models import Backup, StateEnvelope, utcnow
from compliance_core.persistence.storage import BACKUPS_KEY, KeyValueStorage

logger = get_logger(__name__)


class BackupManager:
    """
    Usage:
        manager = BackupManager(storage, max_backup_count=10)
        manager.record(envelope)
        manager.list()  # newest first
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        max_backup_count: int = 10,
        validator: Optional[ChecksumValidator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.max_backup_count = max_backup_count
        self.validator = validator or ChecksumValidator()
        self._clock = clock

    def rotated(self, envelope: StateEnvelope) -> List[Backup]:
        """
        The backup list as it would be after recording ``envelope``.

        Nothing is written; StateStore.save uses this to write the current
        record and the rotated list in one storage batch.
        """
        # list() hands back its shared default on read failure
        backups = self.list().copy()
        backups.insert(0, Backup.from_envelope(envelope, self.validator, now=self._clock()))
        dropped = len(backups) - self.max_backup_count
        if dropped > 0:
            logger.debug(f"Rotating out {dropped} old backup(s)")
        return backups[: self.max_backup_count]

    @staticmethod
    def serialize(backups: List[Backup]) -> str:
        return json.dumps([backup.to_dict() for backup in backups])

    def record(self, envelope: StateEnvelope) -> None:
        """Prepend a backup of ``envelope`` and write the trimmed list back."""
        backups = self.rotated(envelope)
        self.storage.set(BACKUPS_KEY, self.serialize(backups))
        logger.debug(f"Backup recorded ({len(backups)}/{self.max_backup_count})")

    @error_boundary(default_return=[], error_message="Failed to read backups")
    def list(self) -> List[Backup]:
        """
        Current backups, newest first.

        A read or parse failure means there is no usable recovery material;
        it is logged and an empty list is returned.
        """
        raw = self.storage.get(BACKUPS_KEY)
        if not raw:
            return []
        entries = json.loads(raw)
        if not isinstance(entries, list):
            raise TypeError(f"Backup list must be an array, got {type(entries).__name__}")
        return [Backup.from_dict(entry) for entry in entries]

    def to_frame(self) -> pd.DataFrame:
        """Backup history as a DataFrame for operator tooling."""
        rows = [
            {
                "id": backup.id,
                "timestamp": backup.created_at,
                "version": backup.version,
                "checksum": backup.checksum,
                "valid": self.validator.is_valid(backup.data),
            }
            for backup in self.list()
        ]
        return pd.DataFrame(rows, columns=["id", "timestamp", "version", "checksum", "valid"])
