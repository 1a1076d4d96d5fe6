# =============================================================================
# compliance_core/errors/exceptions.py
# Custom Exception Hierarchy for the Compliance State Engine
# =============================================================================

from typing import Optional, Dict, Any


class ComplianceStateError(Exception):
    """
    Base exception for all state persistence and sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STATE_001")
        details: Additional context as a dictionary
        recoverable: Whether the application can keep going after this error
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CS_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# LOCAL PERSISTENCE EXCEPTIONS
# =============================================================================

class IntegrityError(ComplianceStateError):
    """Raised when a stored envelope fails checksum or version validation"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual

        super().__init__(
            message=message,
            code="STATE_001",
            details=details,
            **kwargs,
        )


class RecoveryExhausted(ComplianceStateError):
    """Logged when no backup passes validation; load() returns None instead"""

    def __init__(self, message: str, backups_checked: int = 0, **kwargs):
        details = kwargs.pop("details", {})
        details["backups_checked"] = backups_checked

        super().__init__(
            message=message,
            code="STATE_002",
            details=details,
            **kwargs,
        )


class PersistenceWriteError(ComplianceStateError):
    """Raised when the local storage write fails; data may not be saved"""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        kwargs.setdefault("recoverable", False)

        super().__init__(
            message=message,
            code="STATE_003",
            details=details,
            **kwargs,
        )


class StateImportError(ComplianceStateError):
    """Raised when an exported state bundle cannot be imported"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, code="STATE_004", **kwargs)


# =============================================================================
# SYNC EXCEPTIONS
# =============================================================================

class SyncError(ComplianceStateError):
    """Raised when talking to the remote store fails during sync"""

    def __init__(
        self,
        message: str,
        category: Optional[str] = None,
        attempts: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if category:
            details["category"] = category
        if attempts is not None:
            details["attempts"] = attempts

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


class ConcurrentSyncError(ComplianceStateError):
    """Raised when sync() is called while another sync is in flight"""

    def __init__(self, message: str = "Sync already in progress", **kwargs):
        super().__init__(message=message, code="SYNC_002", **kwargs)


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(ComplianceStateError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            **kwargs,
        )
