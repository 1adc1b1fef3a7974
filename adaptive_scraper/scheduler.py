"""
Scheduler - Jobs de maintenance planifiés (rq-scheduler).
"""
from datetime import datetime, timedelta, timezone

import redis
from rq_scheduler import Scheduler

from adaptive_scraper.core.config import REDIS_URL
from adaptive_scraper.core.logging import get_logger

logger = get_logger(__name__)

PROFILE_SWEEP_INTERVAL = 1800    # 30 minutes
SESSION_PURGE_INTERVAL = 21600   # 6 heures


def setup_scheduled_jobs(connection=None) -> Scheduler:
    redis_conn = connection or redis.from_url(REDIS_URL)
    scheduler = Scheduler(connection=redis_conn, queue_name="low")

    # Annuler les jobs existants
    for job in scheduler.get_jobs():
        scheduler.cancel(job)

    from adaptive_scraper.jobs_maintenance import sweep_browser_profiles, purge_proxy_sessions

    scheduler.schedule(
        scheduled_time=datetime.now(timezone.utc) + timedelta(minutes=1),
        func=sweep_browser_profiles,
        interval=PROFILE_SWEEP_INTERVAL,
        repeat=None,
        result_ttl=3600,
        queue_name="low",
    )
    logger.info("Scheduled: browser profile sweep every 30 min")

    scheduler.schedule(
        scheduled_time=datetime.now(timezone.utc) + timedelta(minutes=5),
        func=purge_proxy_sessions,
        interval=SESSION_PURGE_INTERVAL,
        repeat=None,
        result_ttl=3600,
        queue_name="low",
    )
    logger.info("Scheduled: proxy session purge every 6h")

    return scheduler


if __name__ == "__main__":
    from adaptive_scraper.core.logging import setup_logging
    from adaptive_scraper.core.config import LOG_LEVEL

    setup_logging(level=LOG_LEVEL)
    setup_scheduled_jobs()
