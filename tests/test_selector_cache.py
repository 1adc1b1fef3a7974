import json
from datetime import datetime

from adaptive_scraper.normalizers.records import CacheEntry, SelectorMap
from adaptive_scraper.services.selector_cache_service import FileSelectorCache, SelectorCache


def _entry(key, container=".card", note="primary"):
    return CacheEntry(
        domain_key=key,
        selectors=SelectorMap(container=container, title="h3"),
        domain="example.com",
        created_at=datetime(2025, 1, 1, 12, 0, 0),
        sample_url="https://example.com/list",
        note=note,
    )


def test_miss_returns_none(selector_cache):
    assert selector_cache.get(SelectorCache.domain_key("https://example.com")) is None


def test_put_then_get_is_idempotent(selector_cache):
    key = SelectorCache.domain_key("https://example.com/list")
    selector_cache.put(key, _entry(key))

    first = selector_cache.get(key)
    second = selector_cache.get(key)
    assert first == second
    assert first.selectors.container == ".card"
    assert first.note == "primary"


def test_last_write_wins(selector_cache):
    key = SelectorCache.domain_key("example.com")
    selector_cache.put(key, _entry(key, container=".old"))
    selector_cache.put(key, _entry(key, container=".new", note="fallback"))

    entry = selector_cache.get(key)
    assert entry.selectors.container == ".new"
    assert entry.note == "fallback"


def test_file_layout(selector_cache):
    key = SelectorCache.domain_key("example.com")
    selector_cache.put(key, _entry(key))

    path = selector_cache.path_for(key)
    assert path.name == f"selectors_{key}.json"
    data = json.loads(path.read_text())
    assert set(data) == {"selectors", "domain", "created_at", "sample_url", "note"}
    assert data["selectors"]["container"] == ".card"
    # Pas de fichier temporaire résiduel
    assert [p.name for p in path.parent.iterdir()] == [path.name]


def test_corrupt_entry_is_a_miss(selector_cache):
    key = SelectorCache.domain_key("example.com")
    selector_cache.directory.mkdir(parents=True)
    selector_cache.path_for(key).write_text("{not json")
    assert selector_cache.get(key) is None


def test_entry_without_container_is_a_miss(selector_cache):
    key = SelectorCache.domain_key("example.com")
    selector_cache.directory.mkdir(parents=True)
    selector_cache.path_for(key).write_text(json.dumps({"selectors": {"title": "h3"}, "domain": "example.com"}))
    assert selector_cache.get(key) is None


def test_write_error_is_not_fatal(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    cache = FileSelectorCache(blocker / "cache")
    key = SelectorCache.domain_key("example.com")

    cache.put(key, _entry(key))
    assert cache.get(key) is None


def test_delete(selector_cache):
    key = SelectorCache.domain_key("example.com")
    selector_cache.put(key, _entry(key))
    selector_cache.delete(key)
    assert selector_cache.get(key) is None
