"""Tests for propsync error classes.

Tests cover:
- Error hierarchy
- Retry classification on commit errors
- Bucket key carried by subscription and commit errors
"""

import pytest
from propsync.errors import (
    CommitError,
    ConfigError,
    InvariantViolation,
    NotReadyError,
    PermanentCommitError,
    PropsyncError,
    SubscriptionError,
    TransientCommitError,
)


class TestHierarchy:
    """Every propsync error derives from PropsyncError."""

    @pytest.mark.parametrize("cls", [
        ConfigError,
        SubscriptionError,
        CommitError,
        TransientCommitError,
        PermanentCommitError,
        InvariantViolation,
        NotReadyError,
    ])
    def test_is_propsync_error(self, cls):
        assert issubclass(cls, PropsyncError)

    def test_commit_subclasses(self):
        """Transient and permanent failures can be caught as CommitError."""
        with pytest.raises(CommitError):
            raise TransientCommitError("unavailable")
        with pytest.raises(CommitError):
            raise PermanentCommitError("permission denied")

    def test_invariant_violation_is_not_commit_error(self):
        assert not issubclass(InvariantViolation, CommitError)


class TestCommitError:
    """Tests for CommitError classification."""

    def test_transient_is_retryable(self):
        assert TransientCommitError("x").retryable is True

    def test_permanent_is_not_retryable(self):
        assert PermanentCommitError("x").retryable is False

    def test_has_message_and_key(self):
        error = CommitError("write failed", key="mon")
        assert str(error) == "write failed"
        assert error.key == "mon"


class TestSubscriptionError:
    """Tests for SubscriptionError."""

    def test_key_defaults_to_none(self):
        assert SubscriptionError("gone").key is None

    def test_has_key(self):
        error = SubscriptionError("listen failed", key="tue")
        assert error.key == "tue"
        assert str(error) == "listen failed"
