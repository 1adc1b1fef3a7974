"""
Smoke Tests - Extraction réelle sur des pages liste (réseau + clé LLM).
Usage: SMOKE_URLS="https://a/inventory,https://b/trailers" python tests/smoke_test.py

Non collecté par pytest.
"""
import os
import sys
import time
from dataclasses import dataclass
from typing import Optional

from adaptive_scraper.core.exceptions import ExtractionError
from adaptive_scraper.normalizers.records import ScrapeTarget
from adaptive_scraper.services.extraction_engine import get_engine


@dataclass
class SmokeResult:
    url: str
    success: bool
    duration_ms: float
    records: int = 0
    provenance: Optional[str] = None
    first_title: Optional[str] = None
    error: Optional[str] = None


def check_url(url: str, dynamic: bool) -> SmokeResult:
    """Extrait une URL et retourne le résultat."""
    start = time.perf_counter()
    try:
        result = get_engine().extract(ScrapeTarget(url=url, allow_dynamic_loading=dynamic))
    except ExtractionError as e:
        return SmokeResult(
            url=url,
            success=False,
            duration_ms=(time.perf_counter() - start) * 1000,
            error=str(e)[:100],
        )

    return SmokeResult(
        url=url,
        success=bool(result.records),
        duration_ms=(time.perf_counter() - start) * 1000,
        records=len(result.records),
        provenance=result.debug_info.get("provenance"),
        first_title=result.records[0].title[:50] if result.records else None,
        error=None if result.records else "no records",
    )


def main():
    urls = [u.strip() for u in os.getenv("SMOKE_URLS", "").split(",") if u.strip()]
    dynamic = os.getenv("SMOKE_DYNAMIC", "").lower() in ("1", "true", "yes")
    if not urls:
        print("SMOKE_URLS is empty, nothing to check")
        return 1

    print("\n" + "=" * 60)
    print(f"SMOKE TESTS - {len(urls)} page(s), {'dynamic' if dynamic else 'static'}")
    print("=" * 60 + "\n")

    results = []
    for url in urls:
        print(f"Extracting {url}...", end=" ", flush=True)
        result = check_url(url, dynamic)
        results.append(result)

        if result.success:
            print(f"OK ({result.duration_ms:.0f}ms) - {result.records} records [{result.provenance}] {result.first_title}")
        else:
            print(f"FAIL ({result.duration_ms:.0f}ms) - {result.error}")

    print("\n" + "-" * 60)
    passed = sum(1 for r in results if r.success)
    print(f"\nResults: {passed}/{len(results)} pages OK")
    return 0 if passed == len(results) else 1


if __name__ == "__main__":
    sys.exit(main())
