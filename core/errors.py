"""
core/errors.py -- Domain error taxonomy shared by the stores, auth, and API.

Every error carries a machine-readable code and the HTTP status the API layer
maps it to. Stores and services raise these; api/main.py owns the single
exception handler that turns them into the ErrorResponse envelope. Nothing
below api/ imports fastapi to signal a failure.

Layer rule: core/ is the kernel. No imports from api/, auth/, audit/, or feedback/.
"""

from __future__ import annotations


class FeedbackAppError(Exception):
    """Base class for all expected, caller-visible failures."""

    code: str = "error"
    status_code: int = 500
    # detail goes to the server log only when False
    expose_detail: bool = True

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class InvalidArgument(FeedbackAppError):
    """A required field is missing or malformed."""

    code = "invalid_argument"
    status_code = 400


class WeakCredential(FeedbackAppError):
    """The password does not satisfy the strength policy."""

    code = "weak_password"
    status_code = 400


class DuplicateIdentity(FeedbackAppError):
    code = "duplicate_email"
    status_code = 400


class Unauthenticated(FeedbackAppError):
    """Missing, invalid, or expired token, or bad credentials.

    The message is deliberately uniform; the reason a token was rejected is
    only ever written to the server log.
    """

    code = "unauthorized"
    status_code = 401
    expose_detail = False

    def __init__(self, message: str = "Authentication required.", *, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)


class Forbidden(FeedbackAppError):
    code = "forbidden"
    status_code = 403
    expose_detail = False

    def __init__(self, message: str = "Admin access required.", *, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)


class NotFound(FeedbackAppError):
    code = "not_found"
    status_code = 404


class Conflict(FeedbackAppError):
    """A write lost an optimistic-lock race and could not be retried."""

    code = "conflict"
    status_code = 409


class PersistenceFailure(FeedbackAppError):
    code = "persistence_failure"
    status_code = 500
    expose_detail = False
