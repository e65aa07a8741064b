import pytest

from cfmm_sync.batchers.errors import (
    ErrorHandler,
    FatalRemoteError,
    RangeTooLarge,
    RateLimitError,
    TransientRemoteError,
)


@pytest.fixture
def handler():
    return ErrorHandler(base_delay=1.0, max_delay=10.0)


class TestClassification:
    """Raw provider errors mapped onto categories."""

    @pytest.mark.parametrize("message, category", [
        ("429 Client Error: Too Many Requests", "rate_limit"),
        ("query returned more than 10000 results", "range_too_large"),
        ("query timeout exceeded", "range_too_large"),
        ("Connection reset by peer", "network"),
        ("execution reverted", "contract"),
        ("invalid argument 0", "validation"),
        ("something odd", "unknown"),
    ])
    def test_message_keywords(self, handler, message, category):
        assert handler.classify_error(Exception(message)) == category

    def test_typed_errors_win_over_message(self, handler):
        assert handler.classify_error(RateLimitError("connection closed")) == "rate_limit"
        assert handler.classify_error(TimeoutError()) == "network"

    @pytest.mark.parametrize("message, error_type", [
        ("429 Too Many Requests", RateLimitError),
        ("block range is too large", RangeTooLarge),
        ("read timed out", TransientRemoteError),
        ("mystery", TransientRemoteError),
        ("execution reverted", FatalRemoteError),
    ])
    def test_to_remote_error(self, handler, message, error_type):
        assert type(handler.to_remote_error(Exception(message))) is error_type

    def test_remote_errors_pass_through(self, handler):
        error = FatalRemoteError("bad")
        assert handler.to_remote_error(error) is error


class TestRetryPolicy:
    """Retry decisions and delays."""

    def test_transient_errors_retry_until_last_attempt(self, handler):
        error = TransientRemoteError("timeout")
        assert handler.should_retry(error, attempt=0, max_retries=3)
        assert not handler.should_retry(error, attempt=2, max_retries=3)

    def test_fatal_and_range_errors_do_not_retry(self, handler):
        assert not handler.should_retry(FatalRemoteError("x"), 0, 5)
        assert not handler.should_retry(RangeTooLarge("x"), 0, 5)

    def test_exponential_backoff_capped(self, handler):
        error = TransientRemoteError("timeout")
        assert [handler.get_retry_delay(error, n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_retry_after_honored(self, handler):
        assert handler.get_retry_delay(RateLimitError("slow down", retry_after=3), 0) == 3.0
        assert handler.get_retry_delay(RateLimitError("slow down"), 0) == 2.0
