"""
Authorization error taxonomy.

These are never raised across the public query boundary
(``has_permission`` / ``check_condition``). Evaluators resolve every
failure to a deny and hand the error object to the caller's
``on_error`` callback or to the log.
"""

from typing import Any


class AuthorizationError(Exception):
    """Base class for authorization failures."""

    code = "authorization_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class Unauthenticated(AuthorizationError):
    """No subject identity is available."""

    code = "unauthenticated"


class PolicyLoadPending(AuthorizationError):
    """Role/permission state for the subject has not been loaded yet."""

    code = "policy_load_pending"


class InvalidContext(AuthorizationError):
    """Caller supplied contradictory or malformed context attributes."""

    code = "invalid_context"


class ContextualCheckFailed(AuthorizationError):
    """Network or server error while resolving contextual attributes."""

    code = "contextual_check_failed"


class AttributeSourceTimeout(ContextualCheckFailed):
    """The attribute source did not answer within the allowed time."""

    code = "attribute_source_timeout"
