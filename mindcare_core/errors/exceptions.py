# =============================================================================
# mindcare_core/errors/exceptions.py
# Custom Exception Hierarchy for MindCare
# =============================================================================

from typing import Optional, Dict, Any


class MindCareError(Exception):
    """
    Base exception for all MindCare errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "AUTH_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
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
        self.code = code or "MC_000"
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
# CREDENTIAL EXCEPTIONS
# =============================================================================

class AuthRequired(MindCareError):
    """Raised when there is no credential at all, or the remote rejects it (401)"""

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message=message, code="AUTH_001", **kwargs)


class AuthExpired(MindCareError):
    """Raised when the stored credential is stale and silent renewal failed"""

    def __init__(
        self,
        message: str = "Session expired, please sign in again",
        expired_at: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if expired_at:
            details["expired_at"] = expired_at

        super().__init__(
            message=message,
            code="AUTH_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class RemoteUnavailable(MindCareError):
    """Raised on transport failures or non-auth errors from the remote store"""

    def __init__(
        self,
        message: str,
        document: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if document:
            details["document"] = document
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )


class DocumentNotFound(MindCareError):
    """Raised when a named document does not exist in the remote folder"""

    def __init__(self, document: str, **kwargs):
        details = kwargs.pop("details", {})
        details["document"] = document

        super().__init__(
            message=f"Document '{document}' not found",
            code="REMOTE_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# DATA INTEGRITY EXCEPTIONS
# =============================================================================

class DuplicateEntity(MindCareError):
    """Raised when a creation call matches an existing record's identity fields"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        existing_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if existing_id:
            details["existing_id"] = existing_id

        super().__init__(
            message=message,
            code="DATA_001",
            details=details,
            **kwargs,
        )


class EntityNotFound(MindCareError):
    """Raised when a write references a record that does not exist"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        entity_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if entity_id:
            details["entity_id"] = entity_id

        super().__init__(
            message=message,
            code="DATA_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(MindCareError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
