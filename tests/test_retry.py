import pytest
from selenium.common.exceptions import WebDriverException

from adaptive_scraper.core.exceptions import BlockedError, NetworkError, is_retryable, HTTPError
from adaptive_scraper.utils.retry import compute_delay, with_retry


class Flaky:
    def __init__(self, failures, error):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def test_retries_transient_errors():
    delays = []
    fn = Flaky(2, NetworkError("reset"))

    assert with_retry(fn, retries=3, sleep=delays.append) == "ok"
    assert fn.calls == 3
    assert len(delays) == 2


def test_permanent_error_is_raised_immediately():
    fn = Flaky(5, BlockedError())
    with pytest.raises(BlockedError):
        with_retry(fn, retries=3, sleep=lambda s: None)
    assert fn.calls == 1


def test_exhausted_raises_last_error():
    fn = Flaky(10, NetworkError("down"))
    with pytest.raises(NetworkError):
        with_retry(fn, retries=2, sleep=lambda s: None)
    assert fn.calls == 3


def test_fixed_delay_with_explicit_exceptions():
    delays = []
    fn = Flaky(2, WebDriverException("session not created"))

    with_retry(fn, retries=2, base_delay=2.0, backoff=False, retry_on=(WebDriverException,), sleep=delays.append)

    assert delays == [2.0, 2.0]


def test_backoff_delay_is_bounded():
    for attempt in range(6):
        delay = compute_delay(attempt, base_delay=1.0, max_delay=8.0, backoff=True)
        assert 0.7 * min(8.0, 2 ** attempt) <= delay <= 1.3 * min(8.0, 2 ** attempt)


@pytest.mark.parametrize("error, expected", [
    (NetworkError("x"), True),
    (HTTPError("x", status_code=503), True),
    (HTTPError("x", status_code=400), False),
    (BlockedError(), False),
    (ValueError("x"), False),
])
def test_is_retryable(error, expected):
    assert is_retryable(error) is expected


def test_policy_decorator_retries_until_success(monkeypatch):
    from adaptive_scraper.utils import retry as retry_module

    monkeypatch.setattr(retry_module.time, "sleep", lambda s: None)
    fn = Flaky(1, NetworkError("reset"))

    @retry_module.retry_on_network_errors(retries=1, source="test")
    def call():
        return fn()

    assert call() == "ok"
    assert fn.calls == 2
