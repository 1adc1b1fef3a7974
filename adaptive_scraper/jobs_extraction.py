"""
Jobs d'extraction - exécutés par le worker RQ.

Les résultats sont renvoyés en dict JSON-sérialisable (stockés par RQ).
"""
from typing import List, Dict, Optional, Any

import redis
from rq import Queue

from adaptive_scraper.core.config import REDIS_URL
from adaptive_scraper.core.exceptions import ExtractionError
from adaptive_scraper.core.logging import get_logger, set_trace_id
from adaptive_scraper.normalizers.records import ExtractedRecord, ScrapeTarget
from adaptive_scraper.services.detail_extraction_service import get_detail_service
from adaptive_scraper.services.extraction_engine import get_engine

logger = get_logger(__name__)

BATCH_JOB_TIMEOUT = 1800
SINGLE_JOB_TIMEOUT = 600
RESULT_TTL = 3600


def extract_listing_job(
    url: str,
    operator_id: Optional[int] = None,
    allow_dynamic_loading: bool = False,
    manual_location: Optional[str] = None,
    use_cache: bool = True,
) -> Dict[str, Any]:
    trace_id = set_trace_id()
    target = ScrapeTarget(
        url=url,
        allow_dynamic_loading=allow_dynamic_loading,
        manual_location_override=manual_location,
    )
    try:
        result = get_engine().extract(target, operator_id=operator_id, use_cache=use_cache)
    except ExtractionError as e:
        return {"status": "error", "trace_id": trace_id, **e.to_error_entry(url)}
    return {"status": "success", "trace_id": trace_id, **result.model_dump(mode="json")}


def batch_extract_job(
    urls: List[str],
    operator_id: Optional[int] = None,
    allow_dynamic_loading: bool = False,
) -> Dict[str, Any]:
    trace_id = set_trace_id()
    targets = [ScrapeTarget(url=u, allow_dynamic_loading=allow_dynamic_loading) for u in urls]
    logger.info("Batch job started", operator_id=operator_id, urls=len(targets))

    batch = get_engine().extract_batch(targets, operator_id=operator_id)
    return {
        "status": "completed" if not batch.errors else "partial",
        "trace_id": trace_id,
        "total_records": batch.total_records,
        "results": [r.model_dump(mode="json") for r in batch.results],
        "errors": batch.errors,
    }


def extract_details_job(
    url: str,
    operator_id: Optional[int] = None,
    listing: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """listing: record de la page liste (dict) à fusionner dans la fiche normalisée."""
    trace_id = set_trace_id()
    try:
        result = get_detail_service().extract_details(
            url,
            operator_id=operator_id,
            listing=ExtractedRecord(**listing) if listing else None,
        )
    except ExtractionError as e:
        return {"status": "error", "trace_id": trace_id, **e.to_error_entry(url)}
    return {"status": "success", "trace_id": trace_id, **result}


def enqueue_batch(
    urls: List[str],
    operator_id: Optional[int] = None,
    allow_dynamic_loading: bool = False,
    queue: Optional[Queue] = None,
) -> Dict[str, Any]:
    """Place un lot d'URLs dans la file 'default'."""
    if queue is None:
        queue = Queue("default", connection=redis.from_url(REDIS_URL))

    job = queue.enqueue(
        batch_extract_job,
        urls,
        operator_id,
        allow_dynamic_loading,
        job_timeout=BATCH_JOB_TIMEOUT,
        result_ttl=RESULT_TTL,
    )
    logger.info("Batch enqueued", job_id=job.id, operator_id=operator_id, urls=len(urls))
    return {
        "status": "enqueued",
        "job_id": job.id,
        "urls": len(urls),
    }
