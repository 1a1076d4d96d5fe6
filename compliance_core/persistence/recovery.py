# =============================================================================
# compliance_core/persistence/recovery.py
# Recovery Cascade over Backups
# =============================================================================

from __future__ import annotations
from typing import Any, Callable, Dict, Optional

from compliance_core.errors import IntegrityError, RecoveryExhausted
from compliance_core.logging import get_logger
from compliance_core.persistence.backup_manager import BackupManager
from compliance_core.persistence.checksum import ChecksumValidator

logger = get_logger(__name__)


class RecoveryEngine:
    """
    Walks the backups newest-first and returns the first intact payload.

    Read-only: skipped backups stay in the list so a later recovery attempt
    can still see the whole history.
    """

    def __init__(
        self,
        backups: BackupManager,
        validator: Optional[ChecksumValidator] = None,
        unwrap: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ):
        """
        Args:
            backups: Source of backups
            validator: Checksum validator for wrapped envelopes
            unwrap: Turns a validated envelope dict into application data;
                raises IntegrityError when the envelope is unusable (e.g. an
                unsupported version). Defaults to returning ``data``.
        """
        self.backups = backups
        self.validator = validator or backups.validator
        self._unwrap = unwrap or (lambda envelope: envelope["data"])

    def recover(self) -> Optional[Any]:
        """
        Data of the newest valid backup, or None.

        None covers both "no backups" and "every backup failed validation";
        the caller starts from empty state either way.
        """
        backups = self.backups.list()
        if not backups:
            logger.warning("No backups available, starting from empty state")
            return None

        for backup in backups:
            if not self.validator.is_valid(backup.data):
                logger.warning(f"Skipping corrupted backup {backup.id}")
                continue
            try:
                data = self._unwrap(backup.data)
            except IntegrityError as e:
                logger.warning(f"Skipping unusable backup {backup.id}: {e.message}")
                continue
            except Exception as e:
                logger.error(f"Skipping backup {backup.id}, migration failed: {e}")
                continue
            logger.info(f"State recovered from backup {backup.id} ({backup.timestamp})")
            return data

        exhausted = RecoveryExhausted(
            "No valid backup found",
            backups_checked=len(backups),
        )
        logger.error(str(exhausted))
        return None
