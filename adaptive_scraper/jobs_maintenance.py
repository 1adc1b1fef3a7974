"""
Jobs de maintenance - profils navigateur orphelins et sessions proxy périmées.
"""
from typing import Dict

from adaptive_scraper.core.config import BROWSER_PROFILE_ROOT, BROWSER_PROFILE_MAX_AGE
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.services.browser_session import cleanup_orphaned_profiles
from adaptive_scraper.services.proxy_session_service import get_session_service

logger = get_logger(__name__)

PROXY_SESSION_MAX_AGE_HOURS = 24


def sweep_browser_profiles(max_age_seconds: int = BROWSER_PROFILE_MAX_AGE) -> Dict[str, int]:
    removed = cleanup_orphaned_profiles(BROWSER_PROFILE_ROOT, max_age_seconds)
    logger.info("Browser profile sweep done", removed=removed)
    return {"removed_profiles": removed}


def purge_proxy_sessions(max_age_hours: int = PROXY_SESSION_MAX_AGE_HOURS) -> Dict[str, int]:
    purged = get_session_service().purge_stale_sessions(max_age_hours)
    logger.info("Proxy session purge done", purged=purged, max_age_hours=max_age_hours)
    return {"purged_sessions": purged}
