"""
Content Acquisition - Choix statique / dynamique et politique proxy.

Politique proxy (fail closed):
- opérateur fourni + aucun proxy épinglé -> ProxyUnavailableError
- pas d'opérateur -> accès direct (décision explicite de l'appelant, loggée)

Un échec dynamique n'est jamais rejoué silencieusement en statique.
"""
import threading
from typing import Optional, Callable

from adaptive_scraper.core.exceptions import ProxyUnavailableError
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.normalizers.records import ScrapeTarget, FetchResult
from adaptive_scraper.services.dynamic_fetcher import fetch_dynamic
from adaptive_scraper.services.proxy_session_service import ProxySessionService, get_session_service
from adaptive_scraper.services.static_fetcher import fetch_static

logger = get_logger(__name__)


class ContentAcquisition:

    def __init__(
        self,
        session_service: Optional[ProxySessionService] = None,
        static_fetch: Callable[..., FetchResult] = fetch_static,
        dynamic_fetch: Callable[..., FetchResult] = fetch_dynamic,
    ):
        self._session_service = session_service
        self._static_fetch = static_fetch
        self._dynamic_fetch = dynamic_fetch

    @property
    def session_service(self) -> ProxySessionService:
        if self._session_service is None:
            self._session_service = get_session_service()
        return self._session_service

    def fetch(
        self,
        target: ScrapeTarget,
        operator_id: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FetchResult:
        credentials = None
        if operator_id is not None:
            credentials = self.session_service.get_session_credentials(operator_id)
            if credentials is None:
                raise ProxyUnavailableError(
                    "No pinned proxy available for operator",
                    operator_id=operator_id,
                    source="content_acquisition",
                    url=target.url,
                )
        else:
            logger.info("Fetching without proxy (no operator)", url=target.url)

        if target.allow_dynamic_loading:
            return self._dynamic_fetch(
                target.url,
                proxy_credentials=credentials,
                cancel_event=cancel_event,
            )
        return self._static_fetch(
            target.url,
            proxies=credentials.to_dict() if credentials else None,
        )


_acquisition: Optional[ContentAcquisition] = None


def get_acquisition() -> ContentAcquisition:
    global _acquisition
    if _acquisition is None:
        _acquisition = ContentAcquisition()
    return _acquisition
