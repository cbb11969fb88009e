# =============================================================================
# mindcare_core/errors/handlers.py
# Error Handling Utilities for MindCare
# =============================================================================

from __future__ import annotations
import traceback
from typing import Any, Dict, Optional, Tuple
import streamlit as st

from mindcare_core.logging import get_logger
from .exceptions import MindCareError

logger = get_logger(__name__)


def _describe(error: BaseException) -> Tuple[str, str, Dict[str, Any], bool]:
    """(message, code, details, recoverable) for any exception."""
    if isinstance(error, MindCareError):
        return error.message, error.code, error.details, error.recoverable
    return str(error), "UNKNOWN", {"traceback": traceback.format_exc()}, True


def handle_error(
    error: BaseException,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Log a failure and optionally tell the user about it.

    MindCare errors (offline, expired session, duplicates) are expected and
    logged without a traceback; anything else gets one.

    Args:
        error: The exception to handle
        show_user_message: Show it in the page via st.error
        log_error: Write it to the log
        user_message: Text for the page instead of the error message
    """
    message, code, details, recoverable = _describe(error)

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=not isinstance(error, MindCareError),
        )

    if show_user_message:
        shown = user_message or message
        if recoverable:
            st.error(f"Error: {shown}")
        else:
            st.error(f"Critical Error: {shown}. Please contact support.")


class ErrorContext:
    """
    Runs a best-effort block: failures are handled and, when recoverable,
    swallowed so the caller can inspect ``failed`` instead.

    Usage:
        with ErrorContext("Uploading local data", show_user_message=False) as ctx:
            await remote_store.save_document(...)
        if ctx.failed:
            ...
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        show_user_message: bool = True,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.show_user_message = show_user_message
        self.error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __enter__(self) -> ErrorContext:
        logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.info(f"Completed: {self.operation}")
            return False

        self.error = exc_val
        handle_error(
            exc_val,
            show_user_message=self.show_user_message,
            user_message=None if isinstance(exc_val, MindCareError) else f"Error during: {self.operation}",
        )
        return self.recoverable
