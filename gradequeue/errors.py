"""
Exception hierarchy for the grading-queue backend.

Canvas failures carry an ``error_kind`` string so that per-course failures
can be reported to the dashboard without keeping exception objects around.
"""


class GradeQueueError(Exception):
    """Base class for all grading-queue exceptions."""


class MissingCredentialError(GradeQueueError):
    """The user has no usable Canvas URL/token on file. The user must reconnect."""

    def __init__(self, user_id, message="Canvas credentials not configured"):
        super().__init__(message)
        self.user_id = user_id


class CanvasAPIError(GradeQueueError):
    """A Canvas request failed with a non-retryable status."""

    error_kind = "api_error"
    retryable = False

    def __init__(self, message, status=None, url=None):
        super().__init__(message)
        self.status = status
        self.url = url


class AuthError(CanvasAPIError):
    """401/403 from Canvas: token invalid, expired or lacking permission."""

    error_kind = "auth"


class NotFoundError(CanvasAPIError):
    """404 from Canvas: the resource was deleted or is not visible."""

    error_kind = "not_found"


class TransientError(CanvasAPIError):
    """Network failure or 5xx. Eligible for retry."""

    error_kind = "transient"
    retryable = True


class RateLimitError(TransientError):
    """429 from Canvas."""

    error_kind = "rate_limited"

    def __init__(self, message, status=429, url=None, retry_after=None):
        super().__init__(message, status=status, url=url)
        self.retry_after = retry_after


class ValidationError(GradeQueueError):
    """A Canvas object could not be normalized into a queue item."""

    error_kind = "validation"


class RefreshSuperseded(GradeQueueError):
    """A newer refresh for the same user replaced this one."""
