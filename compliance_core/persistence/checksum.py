# =============================================================================
# compliance_core/persistence/checksum.py
# Integrity Digests for Persisted State
# =============================================================================

from __future__ import annotations
import hashlib
import json
from typing import Any, Mapping

from compliance_core.logging import get_logger

logger = get_logger(__name__)


def canonical_json(payload: Any) -> str:
    """
    Serialize ``payload`` to its canonical JSON form.

    Object keys are sorted so the result does not depend on insertion order;
    list order is kept. NaN/Infinity are rejected because they do not
    survive a JSON round-trip.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


class ChecksumValidator:
    """
    Computes and verifies SHA-256 digests over serializable payloads.

    Usage:
        validator = ChecksumValidator()
        digest = validator.compute_digest({"count": 1})
        validator.is_valid(envelope)  # True / False, never raises
    """

    def compute_digest(self, payload: Any) -> str:
        """
        Digest of the canonical serialized form of ``payload``.

        Raises:
            TypeError/ValueError: payload is not JSON-serializable
        """
        hasher = hashlib.sha256()
        hasher.update(canonical_json(payload).encode("utf-8"))
        return hasher.hexdigest()

    def is_valid(self, envelope: Any) -> bool:
        """
        Check that the envelope's stored checksum matches its data.

        Accepts a StateEnvelope or its dict form. Anything that cannot be
        validated (missing fields, unserializable data) is invalid.
        """
        try:
            if isinstance(envelope, Mapping):
                data = envelope["data"]
                checksum = envelope["checksum"]
            else:
                data = envelope.data
                checksum = envelope.checksum
            if not isinstance(checksum, str) or not checksum:
                return False
            return self.compute_digest(data) == checksum
        except Exception as e:
            logger.debug(f"Envelope cannot be validated: {e}")
            return False
