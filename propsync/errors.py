"""
Error classes for propsync.

These error types separate the three failure families of the sync engine:
- SubscriptionError: A live query failed. Recorded on the bucket, never raised
  to engine callers.
- CommitError: An atomic bucket write failed. Raised to the caller of save();
  the draft is left untouched so the user can retry or discard.
- InvariantViolation: Programming error (re-entrant save, unknown bucket key,
  duplicate id). Always raised.

Commit errors carry a retry classification at the store boundary:
- TransientCommitError: Safe to retry (unavailable, deadline, contention)
- PermanentCommitError: Do not retry (permission, not found, invalid data)

The engine itself never retries. Retry policy is a caller decision.
"""


class PropsyncError(Exception):
    """Base exception for propsync."""
    pass


class ConfigError(PropsyncError):
    """Configuration validation error."""
    pass


class SubscriptionError(PropsyncError):
    """
    A live subscription failed to establish or was interrupted.

    Terminal for that subscription. The bucket keeps its last known
    draft/original and stops loading.
    """

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class CommitError(PropsyncError):
    """
    The atomic write for a bucket failed.

    The bucket stays dirty and its draft is untouched.
    """

    retryable = False

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class TransientCommitError(CommitError):
    """
    Transient commit failure - safe to retry.

    Examples:
    - Service temporarily unavailable
    - Deadline exceeded
    - Transaction aborted by contention
    - Rate limit exceeded
    """

    retryable = True


class PermanentCommitError(CommitError):
    """
    Permanent commit failure - do not retry without changes.

    Examples:
    - Permission denied by security rules
    - Parent document not found
    - Invalid field value
    """

    retryable = False


class InvariantViolation(PropsyncError):
    """Engine used incorrectly. Should never happen in correct usage."""
    pass


class NotReadyError(PropsyncError):
    """Operation needs data that has not been loaded yet."""
    pass
