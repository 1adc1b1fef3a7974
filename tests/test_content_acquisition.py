import pytest

from adaptive_scraper.core.config import ProxyCredentials
from adaptive_scraper.core.exceptions import AcquisitionError, ProxyUnavailableError
from adaptive_scraper.normalizers.records import FetchResult, ScrapeTarget
from adaptive_scraper.services.content_acquisition import ContentAcquisition

URL = "https://dealer.example.com/inventory"
CREDS = ProxyCredentials(username="customer-x-city-dallas-session-1", password="pw", host="proxy.test", port=7777)


class StubSessionService:
    def __init__(self, credentials):
        self.credentials = credentials
        self.requested = []

    def get_session_credentials(self, operator_id):
        self.requested.append(operator_id)
        return self.credentials


class RecordingFetch:
    def __init__(self, method, error=None):
        self.method = method
        self.error = error
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return FetchResult(html="<html></html>", final_url=url, method=self.method)


def _acquisition(credentials=CREDS, dynamic_error=None):
    static = RecordingFetch("static")
    dynamic = RecordingFetch("dynamic", error=dynamic_error)
    service = StubSessionService(credentials)
    return ContentAcquisition(session_service=service, static_fetch=static, dynamic_fetch=dynamic), static, dynamic, service


def test_static_fetch_through_pinned_proxy():
    acquisition, static, dynamic, service = _acquisition()

    result = acquisition.fetch(ScrapeTarget(url=URL), operator_id=7)

    assert result.method == "static"
    assert service.requested == [7]
    assert static.calls == [(URL, {"proxies": CREDS.to_dict()})]
    assert dynamic.calls == []


def test_dynamic_fetch_gets_credentials():
    acquisition, static, dynamic, _ = _acquisition()

    result = acquisition.fetch(ScrapeTarget(url=URL, allow_dynamic_loading=True), operator_id=7)

    assert result.method == "dynamic"
    assert dynamic.calls[0][1]["proxy_credentials"] is CREDS
    assert static.calls == []


def test_fail_closed_without_pinned_proxy():
    acquisition, static, dynamic, _ = _acquisition(credentials=None)

    with pytest.raises(ProxyUnavailableError) as excinfo:
        acquisition.fetch(ScrapeTarget(url=URL), operator_id=7)

    assert excinfo.value.operator_id == 7
    assert static.calls == []
    assert dynamic.calls == []


def test_no_operator_fetches_direct():
    acquisition, static, _, service = _acquisition()

    acquisition.fetch(ScrapeTarget(url=URL))

    assert service.requested == []
    assert static.calls == [(URL, {"proxies": None})]


def test_dynamic_failure_is_not_retried_statically():
    acquisition, static, _, _ = _acquisition(dynamic_error=AcquisitionError("Navigation failed"))

    with pytest.raises(AcquisitionError):
        acquisition.fetch(ScrapeTarget(url=URL, allow_dynamic_loading=True), operator_id=7)
    assert static.calls == []
