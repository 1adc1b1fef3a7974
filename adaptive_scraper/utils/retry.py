"""
Nouvelles tentatives pour les opérations d'acquisition.

Deux régimes:
- réseau (GET statique): backoff exponentiel avec jitter, filtré par is_retryable
- connexion ChromeDriver: délai fixe, sur WebDriverException uniquement
"""
import random
import time
from dataclasses import dataclass, replace
from functools import wraps
from typing import Callable, Type, Tuple, Optional, TypeVar

from adaptive_scraper.core.exceptions import is_retryable
from adaptive_scraper.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def compute_delay(attempt: int, base_delay: float, max_delay: float, backoff: bool) -> float:
    """attempt commence à 0; jitter de +/-30% en mode backoff."""
    if not backoff:
        return base_delay
    return min(max_delay, base_delay * 2 ** attempt) * random.uniform(0.7, 1.3)


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    backoff: bool = True
    retry_on: Optional[Tuple[Type[Exception], ...]] = None

    def should_retry(self, exc: Exception) -> bool:
        if self.retry_on is not None:
            return isinstance(exc, self.retry_on)
        return is_retryable(exc)

    def run(
        self,
        fn: Callable[[], T],
        source: Optional[str] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> T:
        """Lève l'exception de la dernière tentative (ou la première non retryable)."""
        sleep = sleep or time.sleep
        attempt = 0
        while True:
            try:
                return fn()
            except Exception as e:
                if attempt >= self.retries or not self.should_retry(e):
                    logger.warning(
                        f"Giving up after {attempt + 1} attempt(s)",
                        source=source,
                        error_type=type(e).__name__,
                        max_attempts=self.retries + 1,
                    )
                    raise

                delay = compute_delay(attempt, self.base_delay, self.max_delay, self.backoff)
                attempt += 1
                logger.info(
                    f"Retrying in {delay:.2f}s ({attempt}/{self.retries})",
                    source=source,
                    error_type=type(e).__name__,
                )
                sleep(delay)


NETWORK_POLICY = RetryPolicy(retries=2, base_delay=1.0, max_delay=8.0)


def with_retry(
    fn: Callable[[], T],
    retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    retry_on: Optional[Tuple[Type[Exception], ...]] = None,
    source: Optional[str] = None,
    backoff: bool = True,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """
    Args:
        fn: appel sans argument
        retries: tentatives supplémentaires (retries + 1 au total)
        retry_on: exceptions à retenter; None = is_retryable()
        backoff: False = délai fixe de base_delay
        sleep: attente injectable (tests)
    """
    policy = RetryPolicy(
        retries=retries,
        base_delay=base_delay,
        max_delay=max_delay,
        backoff=backoff,
        retry_on=retry_on,
    )
    return policy.run(fn, source=source, sleep=sleep)


def retry(policy: RetryPolicy = RetryPolicy(), source: Optional[str] = None):
    """
    Décorateur:

        @retry(NETWORK_POLICY, source="static_fetcher")
        def fetch_static(url): ...
    """
    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @wraps(fn)
        def wrapper(*args, **kwargs) -> T:
            return policy.run(lambda: fn(*args, **kwargs), source=source or fn.__module__)
        return wrapper
    return decorator


def retry_on_network_errors(retries: int = 2, source: Optional[str] = None):
    """Timeouts, connexion, 5xx et 429 uniquement."""
    return retry(replace(NETWORK_POLICY, retries=retries), source=source)
