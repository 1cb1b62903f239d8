"""Retry utilities for operations that fail on transient filesystem contention"""

import errno
import logging
import random
import time
from enum import Enum
from typing import Callable, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors raised while another process still holds files open
_TRANSIENT_ERRNOS = {errno.EBUSY, errno.ENOTEMPTY, errno.EACCES, errno.EPERM, errno.EAGAIN}


class RetryableErrorType(Enum):
    """Types of errors that should trigger retries"""

    TEMPORARY = "temporary"  # Busy files and directories
    PERMANENT = "permanent"  # Missing paths, anything else


def is_retryable_error(error: Exception) -> Tuple[bool, RetryableErrorType]:
    """Determine if an error is retryable and what type it is

    Args:
        error: The exception that occurred

    Returns:
        Tuple of (is_retryable, error_type)
    """
    if isinstance(error, OSError) and error.errno is not None:
        if error.errno in _TRANSIENT_ERRNOS:
            return True, RetryableErrorType.TEMPORARY
        return False, RetryableErrorType.PERMANENT

    message = str(error).lower()
    busy_indicators = ["busy", "in use", "not empty", "being used by another process"]
    if any(indicator in message for indicator in busy_indicators):
        return True, RetryableErrorType.TEMPORARY

    return False, RetryableErrorType.PERMANENT


def compute_delay(attempt: int, initial_delay: float, max_delay: float, exponential_base: float,
                  jitter: bool) -> float:
    """Delay before the retry following `attempt` (0-based)"""
    delay = min(initial_delay * (exponential_base**attempt), max_delay)
    if jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))
    return delay


def retry_operation(
    operation: Callable[..., T],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    operation_name: str = "operation",
) -> T:
    """Retry an operation with exponential backoff

    Args:
        operation: Callable to retry
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay between retries
        exponential_base: Base for exponential backoff (1.0 for a fixed delay)
        jitter: Add random jitter
        operation_name: Name for logging purposes

    Returns:
        Result of operation

    Raises:
        The last error once it is not retryable or retries are exhausted
    """
    for attempt in range(max_retries + 1):
        try:
            result = operation()
        except Exception as e:
            is_retryable, error_type = is_retryable_error(e)

            if not is_retryable:
                logger.error(f"{operation_name} failed with non-retryable error: {e}")
                raise

            if attempt >= max_retries:
                logger.error(f"{operation_name} failed after {max_retries + 1} attempts: {e}")
                raise

            delay = compute_delay(attempt, initial_delay, max_delay, exponential_base, jitter)
            logger.debug(
                f"{operation_name} failed on attempt {attempt + 1}/{max_retries + 1} "
                f"({error_type.value} error). Retrying in {delay:.2f}s..."
            )
            time.sleep(delay)
            continue

        if attempt > 0:
            logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
        return result
