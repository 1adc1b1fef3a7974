"""
Logs JSON sur une ligne, un objet par événement.

Champs de premier niveau quand ils sont connus: url, domain, operator_id,
provenance, duration_ms, job_id, status_code, error_type. Le reste des
kwargs atterrit dans "extra". Le trace_id (un par job ou par appel CLI)
est ajouté automatiquement.
"""
import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime
from functools import wraps
from typing import Optional, Dict, Any

_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

TOP_LEVEL_FIELDS = (
    "source",
    "url",
    "domain",
    "operator_id",
    "provenance",
    "duration_ms",
    "job_id",
    "status_code",
    "error_type",
)
MAX_URL_LENGTH = 200
QUIET_LIBRARIES = ("urllib3", "requests", "httpx", "selenium", "anthropic", "rq.worker")


def get_trace_id() -> Optional[str]:
    return _trace_id.get()


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Ouvre une corrélation; un id court est généré si aucun n'est fourni."""
    trace_id = trace_id or uuid.uuid4().hex[:8]
    _trace_id.set(trace_id)
    return trace_id


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        trace_id = get_trace_id()
        if trace_id:
            payload["trace_id"] = trace_id

        payload.update({k: getattr(record, k) for k in TOP_LEVEL_FIELDS if hasattr(record, k)})

        extra = getattr(record, "extra_data", None)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _clean_field(key: str, value: Any) -> Any:
    if key == "url":
        return str(value)[:MAX_URL_LENGTH]
    if key == "duration_ms":
        return round(float(value), 2)
    if key == "provenance":
        return getattr(value, "value", value)
    return value


class StructuredLogger:
    """
    Enveloppe de logging.Logger acceptant du contexte en kwargs:

        logger.info("Static fetch complete", url=url, status_code=200, html_length=n)
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def log(self, level: int, message: str, exc_info: bool = False, **context):
        fields = {}
        extra_data = {}
        for key, value in context.items():
            if value is None or value == "":
                continue
            if key in TOP_LEVEL_FIELDS:
                fields[key] = _clean_field(key, value)
            else:
                extra_data[key] = value
        if extra_data:
            fields["extra_data"] = extra_data

        self._logger.log(level, message, exc_info=exc_info, extra=fields)

    def debug(self, message: str, **context):
        self.log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self.log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self.log(logging.WARNING, message, **context)

    def error(self, message: str, exc_info: bool = True, **context):
        self.log(logging.ERROR, message, exc_info=exc_info, **context)

    # Cycle de vie d'une extraction

    def extraction_start(self, url: str, method: str, operator_id: Optional[int] = None):
        self.info("Extraction started", url=url, operator_id=operator_id, method=method)

    def extraction_success(
        self,
        url: str,
        duration_ms: float,
        records_count: int,
        provenance: Optional[str] = None,
        operator_id: Optional[int] = None,
    ):
        """Zéro record reste un succès: la cascade a simplement été épuisée."""
        self.info(
            "Extraction complete",
            url=url,
            duration_ms=duration_ms,
            operator_id=operator_id,
            provenance=provenance,
            records_count=records_count,
        )

    def extraction_error(
        self,
        url: str,
        error: Exception,
        duration_ms: Optional[float] = None,
        operator_id: Optional[int] = None,
    ):
        self.error(
            f"Extraction failed: {error}",
            url=url,
            duration_ms=duration_ms,
            operator_id=operator_id,
            error_type=type(error).__name__,
            status_code=getattr(error, "status_code", None),
            exc_info=False,
        )


def setup_logging(level: str = "INFO", stream=None) -> None:
    """Remplace les handlers racine par un unique handler JSON."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)


def timed(logger: StructuredLogger, label: Optional[str] = None):
    """Log DEBUG de la durée d'un appel; un échec est loggé puis relancé."""
    def decorator(func):
        name = label or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"{name} failed",
                    duration_ms=(time.perf_counter() - start) * 1000,
                    error_type=type(e).__name__,
                )
                raise
            logger.debug(f"{name} completed", duration_ms=(time.perf_counter() - start) * 1000)
            return result
        return wrapper
    return decorator
