# =============================================================================
# compliance_core/errors/__init__.py
# Centralized Error Handling for the Compliance State Engine
# =============================================================================

from .exceptions import (
    ComplianceStateError,
    IntegrityError,
    RecoveryExhausted,
    PersistenceWriteError,
    StateImportError,
    SyncError,
    ConcurrentSyncError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    error_boundary,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "ComplianceStateError",
    "IntegrityError",
    "RecoveryExhausted",
    "PersistenceWriteError",
    "StateImportError",
    "SyncError",
    "ConcurrentSyncError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "error_boundary",
    "ErrorContext",
]
