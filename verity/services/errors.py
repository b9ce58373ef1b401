"""
Verity — Service-layer error taxonomy.

Services raise these; ``verity.main`` maps them onto HTTP responses.
Idempotent repeats (duplicate interest, already-provisioned room,
already-submitted feedback) are *not* errors and never raise.
"""

from __future__ import annotations


class VerityError(Exception):
    """Base class for every error the lifecycle services raise."""

    status_code: int = 400
    code: str = "verity_error"
    retryable: bool = False
    degrade_to_noop: bool = False

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(VerityError):
    """Malformed input, e.g. expressing interest in yourself."""

    status_code = 422
    code = "validation_error"


class NotFoundError(VerityError):
    status_code = 404
    code = "not_found"


class ForbiddenError(VerityError):
    """The caller is not a participant of the resource."""

    status_code = 403
    code = "forbidden"


class RateLimitedError(VerityError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, retry_after_seconds: int, **context) -> None:
        super().__init__(message, **context)
        self.retry_after_seconds = retry_after_seconds


class RoomProvisioningError(VerityError):
    """The room provider stayed unavailable after bounded retries."""

    status_code = 503
    code = "room_provisioning_failed"
    retryable = True


class InvariantViolation(VerityError):
    """A request that should be impossible under correct guarding.

    The API degrades these to a no-op carrying the current state wherever
    that is semantically safe.
    """

    status_code = 409
    code = "invariant_violation"
    degrade_to_noop = True


class BlockedPairError(InvariantViolation):
    code = "blocked_pair"


class ChatLockedError(InvariantViolation):
    code = "chat_locked"
    degrade_to_noop = False
