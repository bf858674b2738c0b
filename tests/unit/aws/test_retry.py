"""Tests for error classification and throttling retries."""

from __future__ import annotations

import threading
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from nuker.aws.retry import (
    ErrorCategory,
    RetryConfig,
    call_with_retry,
    categorize_error,
    is_not_found,
    to_deletion_error,
)
from nuker.errors import (
    DeletionError,
    DependencyBlockedError,
    MalformedRequestError,
    NotFoundError,
    PermissionDeniedError,
    ThrottledError,
)
from tests.fixtures.resources import client_error

NO_DELAY = RetryConfig(max_attempts=3, base_delay=0, max_delay=0)


class TestCategorizeError:
    """Test suite for error categorization."""

    @pytest.mark.parametrize(
        "code,category",
        [
            ("Throttling", ErrorCategory.THROTTLING),
            ("RequestLimitExceeded", ErrorCategory.THROTTLING),
            ("InvalidVolume.NotFound", ErrorCategory.NOT_FOUND),
            ("InvalidSubnetID.NotFound", ErrorCategory.NOT_FOUND),
            ("NoSuchBucket", ErrorCategory.NOT_FOUND),
            ("DependencyViolation", ErrorCategory.DEPENDENCY),
            ("InvalidDBInstanceState", ErrorCategory.DEPENDENCY),
            ("UnauthorizedOperation", ErrorCategory.ACCESS_DENIED),
            ("InvalidParameterValue", ErrorCategory.MALFORMED),
            ("InvalidSomethingElse", ErrorCategory.MALFORMED),
            ("InternalError", ErrorCategory.UNKNOWN),
        ],
    )
    def test_codes(self, code: str, category: ErrorCategory) -> None:
        """Test each error code lands in its category."""
        assert categorize_error(client_error(code)) is category

    def test_non_client_error(self) -> None:
        """Test non-provider errors are unknown."""
        assert categorize_error(RuntimeError("boom")) is ErrorCategory.UNKNOWN
        assert is_not_found(RuntimeError("boom")) is False


class TestToDeletionError:
    """Test suite for mapping provider errors onto deletion errors."""

    @pytest.mark.parametrize(
        "code,error_class",
        [
            ("ThrottlingException", ThrottledError),
            ("InvalidInstanceID.NotFound", NotFoundError),
            ("DependencyViolation", DependencyBlockedError),
            ("AccessDenied", PermissionDeniedError),
            ("ValidationError", MalformedRequestError),
        ],
    )
    def test_mapping(self, code: str, error_class: type) -> None:
        """Test the deletion error subclass follows the category."""
        error = to_deletion_error(client_error(code, "details"))

        assert type(error) is error_class
        assert error.error_code == code
        assert str(error) == "details"

    def test_unknown_code(self) -> None:
        """Test unknown codes map to the base class."""
        error = to_deletion_error(client_error("InternalError"))

        assert type(error) is DeletionError
        assert error.error_code == "InternalError"


class TestCallWithRetry:
    """Test suite for call_with_retry."""

    def test_returns_on_success(self) -> None:
        """Test a successful call is made once."""
        func = Mock(return_value="ok")

        assert call_with_retry(func, 1, key="v", retry_config=NO_DELAY) == "ok"
        func.assert_called_once_with(1, key="v")

    def test_retries_throttling_until_success(self) -> None:
        """Test throttled calls are retried."""
        func = Mock(side_effect=[client_error("Throttling"), client_error("SlowDown"), "ok"])

        assert call_with_retry(func, retry_config=NO_DELAY) == "ok"
        assert func.call_count == 3

    def test_gives_up_after_max_attempts(self) -> None:
        """Test the last throttling error is raised when attempts run out."""
        func = Mock(side_effect=client_error("Throttling"))

        with pytest.raises(ClientError):
            call_with_retry(func, retry_config=NO_DELAY)
        assert func.call_count == 3

    def test_non_throttling_not_retried(self) -> None:
        """Test other errors surface on the first attempt."""
        func = Mock(side_effect=client_error("DependencyViolation"))

        with pytest.raises(ClientError):
            call_with_retry(func, retry_config=NO_DELAY)
        func.assert_called_once()

    @patch("nuker.aws.retry.time.sleep")
    def test_backoff_sleeps_between_attempts(self, mock_sleep: Mock) -> None:
        """Test a backoff delay separates attempts."""
        func = Mock(side_effect=[client_error("Throttling"), "ok"])

        call_with_retry(func, retry_config=RetryConfig(max_attempts=2, base_delay=1, max_delay=1))

        mock_sleep.assert_called_once()
        assert 0 <= mock_sleep.call_args.args[0] <= 1

    def test_cancel_event_aborts_backoff(self) -> None:
        """Test a set cancel event stops retrying."""
        cancel_event = threading.Event()
        cancel_event.set()
        func = Mock(side_effect=client_error("Throttling"))

        with pytest.raises(ClientError):
            call_with_retry(
                func,
                retry_config=RetryConfig(max_attempts=5, base_delay=10, max_delay=10),
                cancel_event=cancel_event,
            )
        func.assert_called_once()


class TestRetryConfig:
    """Test suite for RetryConfig."""

    def test_delay_is_capped(self) -> None:
        """Test delays never exceed max_delay."""
        config = RetryConfig(base_delay=1, max_delay=4)

        assert all(0 <= config.get_delay(attempt) <= 4 for attempt in range(10))

    def test_invalid_attempts(self) -> None:
        """Test at least one attempt is required."""
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)
