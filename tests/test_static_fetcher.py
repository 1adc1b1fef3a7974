import pytest
import requests
from cloudscraper.exceptions import CloudflareChallengeError

from adaptive_scraper.core.exceptions import (
    BlockedError,
    HTTPError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    TimeoutError,
)
from adaptive_scraper.services import static_fetcher
from adaptive_scraper.utils import retry as retry_module


class FakeResponse:
    def __init__(self, status_code=200, text="<html></html>", url=None):
        self.status_code = status_code
        self.text = text
        self.url = url


class FakeScraper:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if outcome.url is None:
            outcome.url = url
        return outcome


@pytest.fixture
def scraper(monkeypatch):
    holder = {}

    def install(*outcomes):
        fake = FakeScraper(outcomes)
        holder["proxies"] = []

        def create(proxies=None):
            holder["proxies"].append(proxies)
            return fake, {}

        monkeypatch.setattr(static_fetcher, "create_stealth_scraper", create)
        monkeypatch.setattr(retry_module.time, "sleep", lambda s: None)
        fake.proxies_seen = holder["proxies"]
        return fake

    return install


URL = "https://dealer.example.com/inventory"


def test_success(scraper):
    fake = scraper(FakeResponse(200, "<html>ok</html>", url=URL + "?page=1"))
    proxies = {"http": "http://u:p@proxy:1", "https": "http://u:p@proxy:1"}

    result = static_fetcher.fetch_static(URL, proxies=proxies)

    assert result.html == "<html>ok</html>"
    assert result.method == "static"
    assert result.final_url == URL + "?page=1"
    assert fake.proxies_seen == [proxies]
    assert fake.calls[0][1]["allow_redirects"] is True


@pytest.mark.parametrize("status, error", [
    (403, BlockedError),
    (404, NotFoundError),
    (410, HTTPError),
])
def test_client_errors_are_not_retried(scraper, status, error):
    fake = scraper(FakeResponse(status))
    with pytest.raises(error):
        static_fetcher.fetch_static(URL)
    assert len(fake.calls) == 1


def test_rate_limit_is_retried_then_raised(scraper):
    fake = scraper(FakeResponse(429))
    with pytest.raises(RateLimitError):
        static_fetcher.fetch_static(URL)
    assert len(fake.calls) == 3


def test_server_error_recovers(scraper):
    fake = scraper(FakeResponse(502), FakeResponse(200, "<html>back</html>"))
    assert static_fetcher.fetch_static(URL).html == "<html>back</html>"
    assert len(fake.calls) == 2


def test_timeout_mapped(scraper):
    scraper(requests.exceptions.ReadTimeout("slow"))
    with pytest.raises(TimeoutError):
        static_fetcher.fetch_static(URL)


def test_connection_error_mapped(scraper):
    fake = scraper(requests.exceptions.ConnectionError("refused"))
    with pytest.raises(NetworkError):
        static_fetcher.fetch_static(URL)
    assert len(fake.calls) == 3


def test_cloudflare_challenge_is_blocked(scraper):
    fake = scraper(CloudflareChallengeError("challenge"))
    with pytest.raises(BlockedError) as exc_info:
        static_fetcher.fetch_static(URL)
    assert exc_info.value.status_code == 403
    assert len(fake.calls) == 1
