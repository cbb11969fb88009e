# =============================================================================
# mindcare_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Dict, Any, Callable
from dataclasses import dataclass

from mindcare_core.logging import get_logger, LogContext
from mindcare_core.errors import handle_error, MindCareError


@dataclass
class ServiceResult:
    """
    Outcome of a service or storage operation.

    Writes never raise for expected failures: callers branch on ``success``
    and read ``error_type`` ("AuthExpired", "DuplicateEntity", ...) to decide
    what to show.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Dict[str, Any] = None,
        error_type: Optional[str] = None,
    ) -> ServiceResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            error_type=error_type,
            metadata=metadata,
        )

    @classmethod
    def from_exception(cls, e: BaseException) -> ServiceResult:
        """Failed result carrying the exception's message, code and class name."""
        if isinstance(e, MindCareError):
            return cls.fail(e.message, e.code, metadata=e.details, error_type=type(e).__name__)
        return cls.fail(str(e), "EXCEPTION", error_type=type(e).__name__)


class BaseService(ABC):
    """
    Base for services that report through ServiceResult.

    Provides:
    - A logger named after the service class
    - Timed operations (``log_operation``)
    - Central error logging (``fail_from``, ``safe_execute``)

    Usage:
        class ReportService(BaseService):
            def totals(self, rows) -> ServiceResult:
                return self.safe_execute("Computing totals", sum, rows)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        return LogContext(self.logger, operation)

    def fail_from(self, error: BaseException) -> ServiceResult:
        """Log an error centrally (never in the page) and turn it into a failed result."""
        handle_error(error, show_user_message=False)
        return ServiceResult.from_exception(error)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        **kwargs
    ) -> ServiceResult:
        """
        Run ``func(*args, **kwargs)`` inside a timed block.

        MindCare errors become failed results through ``fail_from``;
        unexpected exceptions are logged with a traceback first.
        """
        with self.log_operation(operation):
            try:
                return ServiceResult.ok(func(*args, **kwargs))
            except MindCareError as e:
                return self.fail_from(e)
            except Exception as e:
                self.logger.error(f"{operation} failed: {e}", exc_info=True)
                return ServiceResult.from_exception(e)
