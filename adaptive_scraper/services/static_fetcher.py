"""
Static Fetcher - Acquisition HTML par simple GET.

Session cloudscraper (cookies conservés entre redirections), headers
réalistes et proxy épinglé de l'opérateur.
"""
import time
from typing import Optional, Dict

import requests
from cloudscraper.exceptions import CloudflareException

from adaptive_scraper.core.exceptions import (
    NetworkError,
    TimeoutError,
    HTTPError,
    BlockedError,
    NotFoundError,
    RateLimitError,
)
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.normalizers.records import FetchResult
from adaptive_scraper.utils.http_stealth import create_stealth_scraper
from adaptive_scraper.utils.retry import retry_on_network_errors

SOURCE = "static_fetcher"
REQUEST_TIMEOUT = 30

logger = get_logger(__name__)


def raise_for_status(status_code: int, url: str) -> None:
    """Mappe un code HTTP d'erreur sur l'exception correspondante."""
    if status_code == 403:
        raise BlockedError("Blocked by anti-bot protection", source=SOURCE, url=url, status_code=403)
    if status_code == 404:
        raise NotFoundError("Page not found", source=SOURCE, url=url)
    if status_code == 429:
        raise RateLimitError(source=SOURCE, url=url)
    if status_code >= 400:
        raise HTTPError("HTTP error", status_code=status_code, source=SOURCE, url=url)


@retry_on_network_errors(retries=2, source=SOURCE)
def fetch_static(url: str, proxies: Optional[Dict[str, str]] = None, timeout: int = REQUEST_TIMEOUT) -> FetchResult:
    """
    GET unique à travers le proxy donné.

    Raises:
        BlockedError, NotFoundError, RateLimitError, HTTPError, TimeoutError, NetworkError
    """
    scraper, _headers = create_stealth_scraper(proxies=proxies)
    start = time.perf_counter()

    try:
        resp = scraper.get(url, timeout=timeout, allow_redirects=True, verify=True)
    except requests.exceptions.Timeout as e:
        raise TimeoutError(f"Timeout after {timeout}s", source=SOURCE, url=url) from e
    except requests.exceptions.ConnectionError as e:
        raise NetworkError(f"Connection error: {e}", source=SOURCE, url=url) from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Network error: {e}", source=SOURCE, url=url) from e
    except CloudflareException as e:
        # Challenge non résolu: même traitement qu'un 403
        raise BlockedError(f"Cloudflare challenge: {e}", source=SOURCE, url=url, status_code=403) from e
    finally:
        duration_ms = (time.perf_counter() - start) * 1000

    final_url = resp.url or url
    raise_for_status(resp.status_code, final_url)

    logger.info(
        "Static fetch complete",
        url=final_url,
        status_code=resp.status_code,
        duration_ms=duration_ms,
        html_length=len(resp.text),
        proxied=bool(proxies),
    )
    return FetchResult(
        html=resp.text,
        status_code=resp.status_code,
        final_url=final_url,
        duration_ms=duration_ms,
        method="static",
    )
