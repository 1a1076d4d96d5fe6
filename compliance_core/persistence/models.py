# =============================================================================
# compliance_core/persistence/models.py
# Envelope and Backup Records
# =============================================================================

from __future__ import annotations
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, TypeVar

from compliance_core.persistence.checksum import ChecksumValidator, canonical_json

T = TypeVar("T")

STATE_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StateEnvelope(Generic[T]):
    """Application state plus the integrity/version/time metadata."""
    data: T
    version: str
    timestamp: str
    checksum: str

    @classmethod
    def create(
        cls,
        data: T,
        validator: ChecksumValidator,
        version: str = STATE_VERSION,
        now: Optional[datetime] = None,
    ) -> StateEnvelope[T]:
        """
        Wrap ``data`` in a new envelope.

        The payload is normalized through its JSON form, so the envelope
        holds exactly what a later load will read back and later changes to
        the caller's object do not leak into it.

        Raises:
            TypeError/ValueError: data is not JSON-serializable, or would
                read back differently (non-string keys, tuples)
        """
        normalized = json.loads(canonical_json(data))
        if normalized != data:
            raise ValueError("State does not survive a JSON round-trip unchanged")
        return cls(
            data=normalized,
            version=version,
            timestamp=(now or utcnow()).isoformat(),
            checksum=validator.compute_digest(normalized),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "version": self.version,
            "timestamp": self.timestamp,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> StateEnvelope:
        """Raises KeyError/TypeError when ``raw`` is not an envelope."""
        return cls(
            data=raw["data"],
            version=raw["version"],
            timestamp=raw["timestamp"],
            checksum=raw["checksum"],
        )


@dataclass(frozen=True)
class Backup:
    """Immutable, timestamped copy of a StateEnvelope (kept in dict form)."""
    id: str
    timestamp: str
    data: Any
    version: str
    checksum: str

    @classmethod
    def from_envelope(
        cls,
        envelope: StateEnvelope,
        validator: ChecksumValidator,
        now: Optional[datetime] = None,
    ) -> Backup:
        now = now or utcnow()
        wrapped = envelope.to_dict()
        return cls(
            id=f"backup-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}",
            timestamp=now.isoformat(),
            data=wrapped,
            version=envelope.version,
            checksum=validator.compute_digest(wrapped),
        )

    @property
    def created_at(self) -> Optional[datetime]:
        try:
            return datetime.fromisoformat(self.timestamp)
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "data": self.data,
            "version": self.version,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Backup:
        """
        Parse a stored backup.

        Only the container shape is checked here; whether the wrapped
        envelope is intact is decided at recovery time.
        """
        if not isinstance(raw, dict):
            raise TypeError(f"Backup entry must be an object, got {type(raw).__name__}")
        return cls(
            id=str(raw.get("id", "")),
            timestamp=str(raw.get("timestamp", "")),
            data=raw.get("data"),
            version=str(raw.get("version", "")),
            checksum=str(raw.get("checksum", "")),
        )
