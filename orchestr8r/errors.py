"""Error types raised by the working-context subsystem."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ContextError(Exception):
    """Base error carrying a machine-readable code and the offending context."""

    def __init__(self, message: str, code: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "error": self.message,
            "code": self.code,
            "context": self.context,
        }


class ContextValidationError(ContextError):
    """A context or partial update does not conform to the schema."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", context)


class ContextPersistenceError(ContextError):
    """The durable record could not be written."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PERSISTENCE_ERROR", context)


class ContextLockError(ContextError):
    """The cross-process lock marker could not be acquired."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "LOCK_ERROR", context)


class GitHubAPIError(Exception):
    """GitHub returned an HTTP or GraphQL error."""


class ProjectNotFoundError(LookupError):
    """A project node id does not resolve."""


class IssueNotFoundError(LookupError):
    """An issue node id does not resolve."""
