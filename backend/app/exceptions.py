"""
NeighborHelp Backend: Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every error scenario in messaging.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, the cipher and the identity dependency.

Exception Hierarchy:
    NeighborHelpError (base)
    ├── ValidationError             → 400 Bad Request (client can fix)
    ├── AuthenticationError         → 401 Unauthorized
    ├── AuthorizationError          → 403 Forbidden
    ├── NotFoundError               → 404 Not Found
    ├── KeyDerivationError          → fatal at startup
    ├── DecryptionError             → 500 Internal Server Error
    │   ├── MalformedCiphertextError   (not valid base64)
    │   └── InvalidCiphertextError     (stale key; callers substitute a placeholder)
    ├── NotificationError           → never raised to callers
    │   └── CircuitBreakerOpenError    (email provider short-circuited)
    └── DatabaseError               → 500 Internal Server Error

NotificationError and its subclass travel inside NotificationResult
(see services/notifier_base.py). They exist as exception types so the
error carried by a failed result has the same message/context shape as
everything else that gets logged.
"""

from typing import Any, Dict, Optional


class NeighborHelpError(Exception):
    """
    Base exception for all NeighborHelp application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for 5xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NeighborHelpError):
    """
    Raised when client input fails a business rule.

    When:    Self-send, unknown recipient, missing or hidden resource.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "You cannot send a message to yourself",
            "details": {"field": "recipient_id"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(NeighborHelpError):
    """The caller's account could not be resolved from the request. HTTP 401."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(NeighborHelpError):
    """
    Raised when a known caller acts on a message that is not theirs.

    When:    Non-recipient marks a message read; a third party reads or
             deletes a message.
    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(NeighborHelpError):
    """
    Raised when a requested record does not exist.

    SQLAlchemy returns None for missing rows; the service layer converts
    that None into this exception so routes stay free of lookups.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class KeyDerivationError(NeighborHelpError):
    """
    Raised when the message encryption key cannot be derived.

    When:    Empty ENCRYPTION_SECRET / ENCRYPTION_SALT, or a KDF failure.
    Effect:  Startup aborts. The service cannot run without a key.
    """

    def __init__(
        self,
        message: str = "Could not derive the message encryption key",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DecryptionError(NeighborHelpError):
    """
    Raised when a stored message body cannot be decrypted.

    Used directly for unexpected failures (e.g. a payload that is not a
    whole number of cipher blocks). Those indicate corruption and propagate
    as a 500; only InvalidCiphertextError is tolerated by the read path.
    """

    def __init__(
        self,
        message: str = "Unexpected error while decrypting message content",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MalformedCiphertextError(DecryptionError):
    """The stored token is not valid base64."""

    def __init__(
        self,
        message: str = "Encrypted content is not valid base64",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidCiphertextError(DecryptionError):
    """
    The token decodes but does not decrypt under the current key.

    This is what content encrypted under a previous, rotated key looks like.
    The read path replaces the body with a fixed placeholder instead of
    failing the surrounding operation.
    """

    def __init__(
        self,
        message: str = "Encrypted content does not match the current key or is corrupted",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotificationError(NeighborHelpError):
    """
    A message notification email could not be delivered.

    Carried inside a failed NotificationResult; the delivery service logs
    and discards it. Never surfaced to the sender.
    """

    def __init__(
        self,
        message: str = "Message notification could not be delivered",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(NotificationError):
    """
    The email provider failed too often recently and is being skipped.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (skip all sends for M seconds)
        → After M seconds → HALF-OPEN (allow one test send)
        → If test succeeds → CLOSED
        → If test fails → OPEN again (reset timer)
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Email provider is temporarily disabled after repeated failures. "
            f"Retrying in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(NeighborHelpError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error
    The message returned to the client is always generic; the SQL error is
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
