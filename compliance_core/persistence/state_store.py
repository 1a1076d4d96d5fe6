# =============================================================================
# compliance_core/persistence/state_store.py
# Current-State Snapshot with Corruption Detection
# =============================================================================
"""
StateStore - saves and loads the single "current state" snapshot.

Save path:
    data -> StateEnvelope (version, timestamp, checksum)
         -> state.current + rotated state.backups, written in one batch

Load path:
    state.current -> checksum + version check -> data
                         |
                         +-- invalid --> RecoveryEngine.recover()

Envelopes written by an older schema version are passed through a
registered migration; a version without a migration is treated like
corruption and recovery is attempted instead.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Mapping, Optional, TypeVar, Union

from compliance_core.errors import (
    IntegrityError,
    PersistenceWriteError,
    StateImportError,
    error_boundary,
)
from compliance_core.logging import get_logger
from compliance_core.persistence.backup_manager import BackupManager
from compliance_core.persistence.checksum import ChecksumValidator
from compliance_core.persistence.models import STATE_VERSION, Backup, StateEnvelope, utcnow
from compliance_core.persistence.recovery import RecoveryEngine
from compliance_core.persistence.storage import BACKUPS_KEY, CURRENT_STATE_KEY, KeyValueStorage

logger = get_logger(__name__)

T = TypeVar("T")

Migration = Callable[[Any], Any]


@dataclass(frozen=True)
class StateStats:
    """Summary of what is stored locally."""
    has_state: bool = False
    state_size: int = 0
    backup_count: int = 0
    last_backup: Optional[datetime] = None


class StateStore(Generic[T]):
    """
    Usage:
        store = StateStore(storage, BackupManager(storage, max_backup_count=10))
        store.save({"biTestResults": [...]})
        state = store.load()  # None when nothing usable is stored
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        backups: Optional[BackupManager] = None,
        validator: Optional[ChecksumValidator] = None,
        version: str = STATE_VERSION,
        migrations: Optional[Mapping[str, Migration]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            storage: Local key/value storage
            backups: Backup manager sharing the same storage
            validator: Checksum validator
            version: Version tag written into new envelopes
            migrations: Map of old version -> function upgrading its data
            clock: Source of envelope timestamps
        """
        self.storage = storage
        self.validator = validator or ChecksumValidator()
        self.backups = backups or BackupManager(storage, validator=self.validator)
        self.version = version
        self.migrations: Dict[str, Migration] = dict(migrations or {})
        self._clock = clock
        self.recovery = RecoveryEngine(self.backups, self.validator, unwrap=self._unwrap)

    # =========================================================================
    # SAVE / LOAD
    # =========================================================================

    def save(self, data: T) -> StateEnvelope[T]:
        """
        Write ``data`` as the current state and record a backup.

        Raises:
            PersistenceWriteError: data could not be serialized or the
                storage write failed; nothing was written
        """
        try:
            envelope = StateEnvelope.create(
                data, self.validator, version=self.version, now=self._clock()
            )
        except (TypeError, ValueError) as e:
            raise PersistenceWriteError(
                f"State is not serializable: {e}",
                key=CURRENT_STATE_KEY,
            ) from e

        backups = self.backups.rotated(envelope)
        try:
            self.storage.apply({
                CURRENT_STATE_KEY: json.dumps(envelope.to_dict()),
                BACKUPS_KEY: self.backups.serialize(backups),
            })
        except Exception as e:
            logger.error(f"Failed to save state: {e}")
            raise PersistenceWriteError(
                f"State save failed: {e}",
                key=CURRENT_STATE_KEY,
            ) from e

        logger.debug(f"State saved (checksum {envelope.checksum[:12]}, {len(backups)} backups)")
        return envelope

    def load(self) -> Optional[T]:
        """
        Read the current state.

        Returns None when nothing has been saved yet. A corrupted or
        unreadable snapshot is replaced by the newest valid backup, or None
        when no backup validates.
        """
        try:
            raw = self.storage.get(CURRENT_STATE_KEY)
            if raw is None:
                return None
            return self._unwrap(json.loads(raw))
        except IntegrityError as e:
            logger.warning(f"State validation failed, attempting recovery: {e}")
        except Exception as e:
            logger.error(f"Failed to load state, attempting recovery: {e}")

        return self.recovery.recover()

    def _unwrap(self, envelope: Dict[str, Any]) -> Any:
        """Validate an envelope dict and return its (migrated) data."""
        if not isinstance(envelope, dict) or not self.validator.is_valid(envelope):
            raise IntegrityError(
                "Checksum mismatch",
                key=CURRENT_STATE_KEY,
                expected=envelope.get("checksum") if isinstance(envelope, dict) else None,
            )

        version = envelope.get("version")
        if version == self.version:
            return envelope["data"]

        migrate = self.migrations.get(version)
        if migrate is None:
            raise IntegrityError(
                f"Unsupported state version {version!r}",
                expected=self.version,
                actual=str(version),
            )
        logger.info(f"Migrating state from version {version} to {self.version}")
        return migrate(envelope["data"])

    def clear_all(self) -> None:
        """Remove the current state and every backup. Safe to repeat."""
        try:
            self.storage.delete_many([CURRENT_STATE_KEY, BACKUPS_KEY])
        except Exception as e:
            raise PersistenceWriteError(f"Failed to clear state: {e}") from e
        logger.info("Local state and backups cleared")

    # =========================================================================
    # EXPORT / IMPORT
    # =========================================================================

    def export_state(self) -> str:
        """Serialize the current state and all backups into one bundle."""
        state = None
        raw = self.storage.get(CURRENT_STATE_KEY)
        if raw is not None:
            try:
                state = json.loads(raw)
            except ValueError as e:
                logger.warning(f"Current state is unreadable and is exported as null: {e}")

        bundle = {
            "state": state,
            "backups": [backup.to_dict() for backup in self.backups.list()],
            "exportDate": utcnow().isoformat(),
            "version": self.version,
        }
        return json.dumps(bundle, indent=2)

    def import_state(self, bundle: Union[str, Mapping[str, Any]]) -> None:
        """
        Replace the current state and backups with an exported bundle.

        Nothing is merged: a bundle without state clears the current record
        and one without backups clears the history.

        Raises:
            StateImportError: the bundle is malformed
            PersistenceWriteError: the storage write failed
        """
        try:
            parsed = json.loads(bundle) if isinstance(bundle, str) else dict(bundle)
        except (TypeError, ValueError) as e:
            raise StateImportError(f"Bundle is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise StateImportError("Bundle must be a JSON object")

        state = parsed.get("state")
        raw_backups = parsed.get("backups") or []
        if not isinstance(raw_backups, list):
            raise StateImportError("Bundle backups must be an array")
        try:
            backups = [Backup.from_dict(entry) for entry in raw_backups]
        except TypeError as e:
            raise StateImportError(f"Invalid backup entry: {e}") from e

        if len(backups) > self.backups.max_backup_count:
            logger.warning(
                f"Imported bundle has {len(backups)} backups, keeping newest "
                f"{self.backups.max_backup_count}"
            )
            backups = backups[: self.backups.max_backup_count]

        try:
            self.storage.apply({
                CURRENT_STATE_KEY: json.dumps(state) if state is not None else None,
                BACKUPS_KEY: self.backups.serialize(backups),
            })
        except Exception as e:
            raise PersistenceWriteError(f"State import failed: {e}") from e

        logger.info(f"State imported ({len(backups)} backups, exported {parsed.get('exportDate')})")

    @error_boundary(default_return=StateStats(), error_message="Failed to get state stats")
    def get_stats(self) -> StateStats:
        raw = self.storage.get(CURRENT_STATE_KEY)
        backups = self.backups.list()
        return StateStats(
            has_state=raw is not None,
            state_size=len(raw) if raw else 0,
            backup_count=len(backups),
            last_backup=backups[0].created_at if backups else None,
        )
