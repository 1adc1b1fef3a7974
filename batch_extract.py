#!/usr/bin/env python3
"""
Extraction d'un lot d'URLs depuis un fichier (une URL par ligne).

Usage:
    python batch_extract.py urls.txt [--operator 3] [--dynamic] [--enqueue] [--output out.json]
"""
import argparse
import json
import sys
from pathlib import Path

from adaptive_scraper.core.config import LOG_LEVEL
from adaptive_scraper.core.logging import setup_logging, get_logger
from adaptive_scraper.normalizers.records import ScrapeTarget

logger = get_logger("batch_extract")


def read_urls(path: Path):
    urls = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Batch listing extraction")
    parser.add_argument("url_file", type=Path)
    parser.add_argument("--operator", type=int, default=None, help="operator id (pinned proxy)")
    parser.add_argument("--dynamic", action="store_true", help="load pages in the browser")
    parser.add_argument("--enqueue", action="store_true", help="send to the RQ worker instead of running inline")
    parser.add_argument("--output", type=Path, default=None)
    args = parser.parse_args(argv)

    setup_logging(level=LOG_LEVEL)
    urls = read_urls(args.url_file)
    if not urls:
        logger.warning("No URLs to extract", path=str(args.url_file))
        return 1

    if args.enqueue:
        from adaptive_scraper.jobs_extraction import enqueue_batch
        print(json.dumps(enqueue_batch(urls, args.operator, args.dynamic)))
        return 0

    from adaptive_scraper.services.extraction_engine import get_engine

    targets = [ScrapeTarget(url=u, allow_dynamic_loading=args.dynamic) for u in urls]
    batch = get_engine().extract_batch(targets, operator_id=args.operator)
    payload = {
        "total_records": batch.total_records,
        "results": [r.model_dump(mode="json") for r in batch.results],
        "errors": batch.errors,
    }

    output = json.dumps(payload, indent=2)
    if args.output:
        args.output.write_text(output, encoding="utf-8")
    else:
        print(output)
    return 0 if not batch.errors else 2


if __name__ == "__main__":
    sys.exit(main())
