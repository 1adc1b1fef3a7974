#!/usr/bin/env python3
"""
Worker RQ des jobs d'extraction et de maintenance.
Usage: python worker.py [queue ...]   (par défaut: high default low)
"""
import sys

import redis
from rq import Worker, Queue

from adaptive_scraper.core.config import LOG_LEVEL, REDIS_URL
from adaptive_scraper.core.logging import setup_logging, get_logger

setup_logging(level=LOG_LEVEL)
logger = get_logger("worker")

DEFAULT_QUEUES = ["high", "default", "low"]


def prepare() -> None:
    """Tables présentes, profils Chrome abandonnés supprimés."""
    from adaptive_scraper.db.session import init_db
    from adaptive_scraper.services.browser_session import cleanup_orphaned_profiles

    init_db()
    removed = cleanup_orphaned_profiles()
    logger.info("Worker ready", removed_profiles=removed)


def main(argv=None):
    queue_names = (argv if argv is not None else sys.argv[1:]) or DEFAULT_QUEUES
    redis_conn = redis.from_url(REDIS_URL)

    prepare()
    worker = Worker([Queue(name, connection=redis_conn) for name in queue_names], connection=redis_conn)
    logger.info("Worker listening", queues=queue_names)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
