# =============================================================================
# compliance_core/errors/handlers.py
# Error Handling Utilities for the Compliance State Engine
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any
import streamlit as st

from compliance_core.logging import get_logger
from .exceptions import ComplianceStateError

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Recoverable errors (a failed sync: local state is still valid) are shown
    as a non-blocking warning. Non-recoverable errors (a failed local write:
    the data may not have been saved at all) are shown as a blocking error.

    Args:
        error: The exception to handle
        show_user_message: Whether to display the error in the Streamlit page
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, ComplianceStateError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message:
        if recoverable:
            st.warning(f"{message}. Your changes are kept locally.")
        else:
            st.error(f"Critical Error: {message}. Data may not have been saved.")


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator for operations that must never raise.

    The wrapped call's exception is logged and ``default_return`` is
    returned in its place.

    Usage:
        @error_boundary(default_return=[], error_message="Failed to read backups")
        def list(self) -> List[Backup]:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"{error_message or 'Error'} in {func.__name__}: {e}",
                        exc_info=True,
                    )
                return default_return

        return wrapper

    return decorator


class ErrorContext:
    """
    Context manager that reports an error to the user and re-raises it.

    Usage:
        with ErrorContext("Saving sterilization workflow"):
            service.save_state(state)
    """

    def __init__(self, operation: str, show_user_message: bool = True):
        self.operation = operation
        self.show_user_message = show_user_message

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None and isinstance(exc_val, Exception):
            handle_error(
                exc_val,
                show_user_message=self.show_user_message,
                user_message=None if isinstance(exc_val, ComplianceStateError)
                else f"Error during: {self.operation}",
            )
        else:
            logger.debug(f"Completed: {self.operation}")

        return False
