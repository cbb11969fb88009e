# =============================================================================
# mindcare_core/errors/__init__.py
# Centralized Error Handling for MindCare
# =============================================================================

from .exceptions import (
    MindCareError,
    AuthRequired,
    AuthExpired,
    RemoteUnavailable,
    DocumentNotFound,
    DuplicateEntity,
    EntityNotFound,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "MindCareError",
    "AuthRequired",
    "AuthExpired",
    "RemoteUnavailable",
    "DocumentNotFound",
    "DuplicateEntity",
    "EntityNotFound",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "ErrorContext",
]
