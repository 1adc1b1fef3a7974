"""
Selector Cache Service - SelectorMap par domaine.

Backends:
- file (défaut): un JSON par domaine, écriture atomique (tmp + os.replace)
- redis: même JSON sous selectors:<domain_key>

Pas de TTL; dernière écriture gagnante. Une entrée qui ne produit plus
de record est détectée par la cascade et réécrite.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Optional

import redis
from loguru import logger
from pydantic import ValidationError

from adaptive_scraper.core.config import REDIS_URL, SELECTOR_CACHE_BACKEND, SELECTOR_CACHE_DIR
from adaptive_scraper.core.exceptions import SelectorValidationError
from adaptive_scraper.normalizers.records import CacheEntry
from adaptive_scraper.utils.urls import domain_key as compute_domain_key

REDIS_KEY_PREFIX = "selectors:"


class SelectorCache:
    """Interface commune des backends."""

    @staticmethod
    def domain_key(url_or_host: str) -> str:
        return compute_domain_key(url_or_host)

    def get(self, domain_key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    def put(self, domain_key: str, entry: CacheEntry) -> None:
        raise NotImplementedError

    def delete(self, domain_key: str) -> None:
        raise NotImplementedError

    @staticmethod
    def _decode(domain_key: str, raw) -> Optional[CacheEntry]:
        try:
            data = json.loads(raw)
            return CacheEntry.from_json_dict(domain_key, data)
        except (ValueError, TypeError, AttributeError, ValidationError, SelectorValidationError) as e:
            logger.warning(f"Corrupt selector cache entry {domain_key}: {e}")
            return None


class FileSelectorCache(SelectorCache):

    def __init__(self, directory: Path = SELECTOR_CACHE_DIR):
        self.directory = Path(directory)

    def path_for(self, domain_key: str) -> Path:
        return self.directory / f"selectors_{domain_key}.json"

    def get(self, domain_key: str) -> Optional[CacheEntry]:
        path = self.path_for(domain_key)
        if not path.exists():
            logger.debug(f"Selector cache MISS {domain_key}")
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Selector cache read error {path}: {e}")
            return None

        entry = self._decode(domain_key, raw)
        if entry:
            logger.debug(f"Selector cache HIT {domain_key} ({entry.domain})")
        return entry

    def put(self, domain_key: str, entry: CacheEntry) -> None:
        payload = json.dumps(entry.to_json_dict(), indent=2)
        tmp_path = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".selectors_{domain_key}.", suffix=".tmp", dir=self.directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path_for(domain_key))
        except OSError as e:
            logger.warning(f"Selector cache write error {domain_key}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            return
        logger.info(f"Cached selectors for {entry.domain} ({entry.note})")

    def delete(self, domain_key: str) -> None:
        path = self.path_for(domain_key)
        if path.exists():
            path.unlink()


class RedisSelectorCache(SelectorCache):

    def __init__(self, client: Optional[redis.Redis] = None, url: str = REDIS_URL):
        self._client = client
        self._url = url

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._url)
        return self._client

    def get(self, domain_key: str) -> Optional[CacheEntry]:
        try:
            raw = self.client.get(f"{REDIS_KEY_PREFIX}{domain_key}")
        except redis.RedisError as e:
            logger.warning(f"Redis selector cache error: {e}")
            return None
        if raw is None:
            logger.debug(f"Selector cache MISS {domain_key}")
            return None
        return self._decode(domain_key, raw)

    def put(self, domain_key: str, entry: CacheEntry) -> None:
        try:
            self.client.set(f"{REDIS_KEY_PREFIX}{domain_key}", json.dumps(entry.to_json_dict()))
            logger.info(f"Cached selectors for {entry.domain} ({entry.note})")
        except redis.RedisError as e:
            logger.warning(f"Redis selector cache set error: {e}")

    def delete(self, domain_key: str) -> None:
        try:
            self.client.delete(f"{REDIS_KEY_PREFIX}{domain_key}")
        except redis.RedisError as e:
            logger.warning(f"Redis selector cache delete error: {e}")


def build_selector_cache(backend: str = SELECTOR_CACHE_BACKEND) -> SelectorCache:
    if backend == "redis":
        return RedisSelectorCache()
    return FileSelectorCache()


_selector_cache: Optional[SelectorCache] = None


def get_selector_cache() -> SelectorCache:
    global _selector_cache
    if _selector_cache is None:
        _selector_cache = build_selector_cache()
    return _selector_cache
