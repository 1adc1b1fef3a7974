import pytest

from adaptive_scraper.utils.urls import resolve_url, is_valid_url, host_of, domain_key

BASE = "https://example.com/a/b/page.html"


@pytest.mark.parametrize("url,expected", [
    ("", ""),
    ("   ", ""),
    ("https://cdn.example.net/x.jpg", "https://cdn.example.net/x.jpg"),
    ("//cdn.example.net/x.jpg", "https://cdn.example.net/x.jpg"),
    ("/x.jpg", "https://example.com/x.jpg"),
    ("x.jpg", "https://example.com/a/b/x.jpg"),
    ("img/x.jpg", "https://example.com/a/b/img/x.jpg"),
])
def test_resolve_url_table(url, expected):
    assert resolve_url(url, BASE) == expected


def test_resolve_url_keeps_port():
    assert resolve_url("/x", "http://localhost:8080/list") == "http://localhost:8080/x"


def test_resolve_url_relative_at_root():
    assert resolve_url("x.jpg", "https://example.com/page") == "https://example.com/x.jpg"
    assert resolve_url("x.jpg", "https://example.com") == "https://example.com/x.jpg"


def test_resolve_url_protocol_relative_uses_base_scheme():
    assert resolve_url("//cdn.example.net/x.jpg", "http://example.com/") == "http://cdn.example.net/x.jpg"


def test_is_valid_url():
    assert is_valid_url("https://example.com/a")
    assert is_valid_url("http://example.com")
    assert not is_valid_url("")
    assert not is_valid_url("#")
    assert not is_valid_url("/relative")
    assert not is_valid_url("javascript:void(0)")
    assert not is_valid_url("ftp://example.com/file")


def test_host_normalization():
    assert host_of("https://WWW.Example.com:8443/path") == "example.com"
    assert host_of("http://user:pw@shop.example.com/x") == "shop.example.com"
    assert host_of("example.com/inventory") == "example.com"


def test_domain_key_shared_across_pages_of_same_host():
    assert domain_key("https://www.example.com/a") == domain_key("http://example.com/b?page=2")
    assert domain_key("https://example.com") != domain_key("https://other.com")
    assert len(domain_key("https://example.com")) == 32
