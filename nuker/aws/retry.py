"""AWS error classification and retry with exponential backoff.

Only throttling errors are retried. Everything else surfaces to the caller on the first
attempt so that it can be mapped to an outcome.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from botocore.exceptions import ClientError

from ..errors import (
    DeletionError,
    DependencyBlockedError,
    MalformedRequestError,
    NotFoundError,
    PermissionDeniedError,
    ThrottledError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

THROTTLING_ERROR_CODES = {
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "RequestThrottledException",
    "TooManyRequestsException",
    "RateExceeded",
    "SlowDown",
    "ProvisionedThroughputExceededException",
}

NOT_FOUND_ERROR_CODES = {
    "InvalidInstanceID.NotFound",
    "InvalidVolume.NotFound",
    "InvalidAllocationID.NotFound",
    "InvalidAddress.NotFound",
    "InvalidGroup.NotFound",
    "DBInstanceNotFound",
    "DBInstanceNotFoundFault",
    "ClusterNotFound",
    "ClusterNotFoundFault",
    "DBClusterNotFoundFault",
    "LoadBalancerNotFound",
    "NoSuchBucket",
    "NoSuchEntity",
    "ResourceNotFoundException",
    "NotFound",
}

DEPENDENCY_ERROR_CODES = {
    "DependencyViolation",
    "ResourceInUse",
    "ResourceInUseFault",
    "ResourceContention",
    "ScalingActivityInProgress",
    "ScalingActivityInProgressFault",
    "InvalidDBInstanceState",
    "InvalidDBInstanceStateFault",
    "InvalidDBClusterStateFault",
    "InvalidSnapshot.InUse",
    "ResourceInUseException",
    "InvalidClusterState",
    "InvalidClusterStateFault",
    "BucketNotEmpty",
}

ACCESS_DENIED_ERROR_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
    "UnauthorizedAccess",
    "AuthFailure",
    "OperationNotPermitted",
}

MALFORMED_ERROR_CODES = {
    "ValidationError",
    "ValidationException",
    "InvalidParameterValue",
    "InvalidParameterCombination",
    "MissingParameter",
    "MalformedPolicyDocument",
}


class ErrorCategory(Enum):
    """Provider error classes the cleanup engine reacts to differently."""

    THROTTLING = "throttling"
    NOT_FOUND = "not-found"
    DEPENDENCY = "dependency"
    ACCESS_DENIED = "access-denied"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RetryConfig:
    """Retry settings for throttled calls.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Delay before the first retry (seconds)
        max_delay: Upper bound for any single delay (seconds)
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays cannot be negative")

    def get_delay(self, attempt: int) -> float:
        """Full jitter delay for the given retry number (0-based)."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        return random.uniform(0, delay)


DEFAULT_RETRY_CONFIG = RetryConfig()


def get_error_code(error: Exception) -> str:
    """Provider error code of a ClientError, or the exception class name."""
    response = getattr(error, "response", None)
    if response is not None:
        return response.get("Error", {}).get("Code", "Unknown")
    return error.__class__.__name__


def get_error_message(error: Exception) -> str:
    response = getattr(error, "response", None)
    if response is not None:
        return response.get("Error", {}).get("Message", str(error))
    return str(error)


def is_throttling(error: Exception) -> bool:
    return isinstance(error, ClientError) and get_error_code(error) in THROTTLING_ERROR_CODES


def is_not_found(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    code = get_error_code(error)
    return code in NOT_FOUND_ERROR_CODES or code.endswith(".NotFound")


def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    cancel_event: Optional[threading.Event] = None,
    **kwargs: Any,
) -> T:
    """Call ``func`` and retry it while AWS throttles the request.

    Args:
        func: Callable issuing one AWS request
        retry_config: Attempt count and backoff bounds
        cancel_event: Abort the backoff wait when set

    Returns:
        Whatever ``func`` returns

    Raises:
        ClientError: The last throttling error once attempts are exhausted, or any
            non-throttling error immediately
    """
    for attempt in range(retry_config.max_attempts):
        try:
            return func(*args, **kwargs)
        except ClientError as e:
            if not is_throttling(e) or attempt == retry_config.max_attempts - 1:
                raise

            delay = retry_config.get_delay(attempt)
            logger.debug(
                f"Throttled ({get_error_code(e)}), retrying in {delay:.2f}s "
                f"(attempt {attempt + 1}/{retry_config.max_attempts})"
            )
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise
            else:
                time.sleep(delay)

    raise AssertionError("unreachable")


def categorize_error(error: Exception) -> ErrorCategory:
    """Classify a provider error by its code."""
    if not isinstance(error, ClientError):
        return ErrorCategory.UNKNOWN

    code = get_error_code(error)
    if code in THROTTLING_ERROR_CODES:
        return ErrorCategory.THROTTLING
    if is_not_found(error):
        return ErrorCategory.NOT_FOUND
    if code in DEPENDENCY_ERROR_CODES:
        return ErrorCategory.DEPENDENCY
    if code in ACCESS_DENIED_ERROR_CODES:
        return ErrorCategory.ACCESS_DENIED
    if code in MALFORMED_ERROR_CODES or code.startswith("Invalid"):
        return ErrorCategory.MALFORMED
    return ErrorCategory.UNKNOWN


_DELETION_ERRORS = {
    ErrorCategory.THROTTLING: ThrottledError,
    ErrorCategory.NOT_FOUND: NotFoundError,
    ErrorCategory.DEPENDENCY: DependencyBlockedError,
    ErrorCategory.ACCESS_DENIED: PermissionDeniedError,
    ErrorCategory.MALFORMED: MalformedRequestError,
}


def to_deletion_error(error: ClientError) -> DeletionError:
    """Map a ClientError raised by a deletion call onto the deletion error taxonomy."""
    error_class = _DELETION_ERRORS.get(categorize_error(error), DeletionError)
    return error_class(get_error_message(error), error_code=get_error_code(error))
