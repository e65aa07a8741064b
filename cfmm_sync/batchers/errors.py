"""
Error handling utilities for batch calling operations.

This module provides the remote error taxonomy used by the batch request
layer and a string-classifying ErrorHandler that maps raw provider
exceptions onto it.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class BatchError(Exception):
    """Base exception for batch operations."""
    pass


class RemoteError(BatchError):
    """Base class for errors reported by the remote ledger."""
    pass


class TransientRemoteError(RemoteError):
    """Timeouts, dropped connections and other retryable failures."""
    pass


class RateLimitError(TransientRemoteError):
    """Raised when rate limit is hit."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RangeTooLarge(RemoteError):
    """The requested block range returns too many logs for one call."""
    pass


class FatalRemoteError(RemoteError):
    """Protocol-level failure that retrying will not fix."""
    pass


class DiscoveryFailed(BatchError):
    """A discovery sub-range could not be scanned."""

    def __init__(self, message: str, from_block: int, to_block: int,
                 last_error: Optional[Exception] = None):
        super().__init__(message)
        self.from_block = from_block
        self.to_block = to_block
        self.last_error = last_error


class FetchFailed(BatchError):
    """A state fetch batch exhausted its retries."""

    def __init__(self, batch_pools: List[str], last_error: Optional[Exception]):
        super().__init__(f"Fetch failed for {len(batch_pools)} pools: {last_error}")
        self.batch_pools = list(batch_pools)
        self.last_error = last_error


class Cancelled(BatchError):
    """The caller's cancel event was set; no further batches were dispatched."""
    pass


class ErrorHandler:
    """
    Centralized error handling for batch operations.

    Provides classification, logging, and recovery strategies
    for various types of errors encountered during batch calls.
    """

    RANGE_KEYWORDS = [
        'more than 10000 results', 'block range', 'range too large', 'range is too large',
        'query returned more than', 'response size exceeded', 'limit exceeded',
        'query timeout exceeded', 'log response size',
    ]
    RATE_LIMIT_KEYWORDS = ['rate limit', 'too many requests', '429', 'capacity exceeded']
    NETWORK_KEYWORDS = ['connection', 'timeout', 'timed out', 'network', 'dns', '502', '503', '504']
    CONTRACT_KEYWORDS = ['revert', 'execution reverted', 'out of gas']
    VALIDATION_KEYWORDS = ['invalid', 'bad request', '400', 'method not found']

    def __init__(self, logger: Optional[logging.Logger] = None,
                 base_delay: float = 1.0, max_delay: float = 60.0):
        self.logger = logger or logging.getLogger(__name__)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def classify_error(self, error: Exception) -> str:
        """
        Classify an error into a category for appropriate handling.

        Args:
            error: Exception to classify

        Returns:
            Error category string
        """
        if isinstance(error, RateLimitError):
            return 'rate_limit'
        if isinstance(error, RangeTooLarge):
            return 'range_too_large'
        if isinstance(error, TransientRemoteError):
            return 'network'
        if isinstance(error, FatalRemoteError):
            return 'fatal'
        if isinstance(error, (TimeoutError, ConnectionError)):
            return 'network'

        error_str = str(error).lower()

        # Range errors first: "query timeout exceeded" must not read as a network timeout
        if any(keyword in error_str for keyword in self.RANGE_KEYWORDS):
            return 'range_too_large'

        # Rate limiting errors
        if any(keyword in error_str for keyword in self.RATE_LIMIT_KEYWORDS):
            return 'rate_limit'

        # Network connectivity errors
        if any(keyword in error_str for keyword in self.NETWORK_KEYWORDS):
            return 'network'

        # Contract execution errors
        if any(keyword in error_str for keyword in self.CONTRACT_KEYWORDS):
            return 'contract'

        # Validation errors
        if any(keyword in error_str for keyword in self.VALIDATION_KEYWORDS):
            return 'validation'

        return 'unknown'

    def to_remote_error(self, error: Exception) -> RemoteError:
        """
        Map a raw provider exception onto the remote error taxonomy.

        Args:
            error: Exception raised by the transport

        Returns:
            RemoteError subclass instance wrapping the original message
        """
        if isinstance(error, RemoteError):
            return error

        category = self.classify_error(error)
        message = f"{type(error).__name__}: {error}"

        if category == 'rate_limit':
            return RateLimitError(message)
        if category == 'range_too_large':
            return RangeTooLarge(message)
        if category in ('network', 'unknown'):
            return TransientRemoteError(message)
        return FatalRemoteError(message)

    def should_retry(self, error: Exception, attempt: int, max_retries: int) -> bool:
        """
        Determine if an error should trigger a retry.

        Args:
            error: Exception that occurred
            attempt: Current attempt number (0-based)
            max_retries: Maximum number of attempts allowed

        Returns:
            True if operation should be retried
        """
        if attempt + 1 >= max_retries:
            return False

        error_category = self.classify_error(error)

        # Retry network and rate limit errors
        if error_category in ['network', 'rate_limit', 'unknown']:
            return True

        # Range errors are handled by splitting, contract and validation
        # errors are deterministic
        return False

    def get_retry_delay(self, error: Exception, attempt: int) -> float:
        """
        Calculate appropriate retry delay based on error type and attempt.

        Args:
            error: Exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds before retry
        """
        error_category = self.classify_error(error)

        # Base exponential backoff
        base_delay = min(self.base_delay * 2 ** attempt, self.max_delay)

        # Rate limit errors get longer delays unless the server said how long
        if error_category == 'rate_limit':
            retry_after = getattr(error, 'retry_after', None)
            if retry_after is not None:
                return min(float(retry_after), self.max_delay)
            return min(base_delay * 2, self.max_delay)

        # Network errors get standard backoff
        if error_category == 'network':
            return base_delay

        # Unknown errors get conservative delay
        return min(base_delay * 1.5, self.max_delay)

    def log_error(self, error: Exception, context: Dict[str, Any]):
        """
        Log error with appropriate level and context.

        Args:
            error: Exception to log
            context: Additional context for logging
        """
        error_category = self.classify_error(error)

        log_data = {
            'error_type': type(error).__name__,
            'error_category': error_category,
            'error_message': str(error),
            **context
        }

        # Log validation errors as warnings
        if error_category == 'validation':
            self.logger.warning("Validation error occurred", extra=log_data)
        # Log contract and fatal errors as errors
        elif error_category in ('contract', 'fatal'):
            self.logger.error("Contract execution failed", extra=log_data)
        # Log rate limit and range errors as info (expected)
        elif error_category in ('rate_limit', 'range_too_large'):
            self.logger.info(f"{error_category} encountered", extra=log_data)
        # Everything else as warning
        else:
            self.logger.warning("Batch operation error", extra=log_data)
