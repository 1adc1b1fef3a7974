"""
Extraction Engine - Orchestration d'une extraction de page liste.

Pipeline:
1. Acquisition (statique ou navigateur, proxy épinglé de l'opérateur)
2. Réduction du HTML pour le prompt
3. Cascade de sélecteurs (cache -> LLM -> repli -> gabarits -> historique)
4. Extraction structurée sur le HTML complet

Les erreurs d'acquisition remontent à l'appelant. Une cascade épuisée
renvoie 0 record avec un diagnostic dans debug_info.
"""
import threading
import time
from typing import Optional, List, Dict, Any, Union

from adaptive_scraper.core.exceptions import ExtractionError
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.normalizers.records import (
    BatchResult,
    ExtractionResult,
    ScrapeTarget,
    SelectorMap,
)
from adaptive_scraper.services.content_acquisition import ContentAcquisition, get_acquisition
from adaptive_scraper.services.content_reducer import (
    ContentReducer,
    DYNAMIC_TOKEN_BUDGET,
    STATIC_TOKEN_BUDGET,
    get_reducer,
)
from adaptive_scraper.services.selector_cache_service import SelectorCache, get_selector_cache
from adaptive_scraper.services.selector_inference import (
    CascadeContext,
    SelectorCascade,
    build_cascade,
    test_selectors as run_selector_diagnostic,
)
from adaptive_scraper.services.static_fetcher import fetch_static
from adaptive_scraper.services.structured_extractor import StructuredExtractor, get_extractor
from adaptive_scraper.utils.urls import domain_of, is_valid_url

logger = get_logger(__name__)


class ExtractionEngine:

    def __init__(
        self,
        acquisition: Optional[ContentAcquisition] = None,
        reducer: Optional[ContentReducer] = None,
        cascade: Optional[SelectorCascade] = None,
        extractor: Optional[StructuredExtractor] = None,
        cache: Optional[SelectorCache] = None,
    ):
        self.acquisition = acquisition or get_acquisition()
        self.reducer = reducer or get_reducer()
        self.extractor = extractor or get_extractor()
        self.cache = cache or get_selector_cache()
        self.cascade = cascade or build_cascade(cache=self.cache, extractor=self.extractor)

    def extract(
        self,
        target: ScrapeTarget,
        operator_id: Optional[int] = None,
        use_cache: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExtractionResult:
        """
        Extrait les annonces d'une page liste.

        use_cache=False désactive la lecture ET l'écriture du cache de
        sélecteurs pour cet appel.

        Raises:
            AcquisitionError, HTTPError, NetworkError: la page n'a pas pu être récupérée
        """
        method = "dynamic" if target.allow_dynamic_loading else "static"
        logger.extraction_start(target.url, method, operator_id=operator_id)
        start = time.perf_counter()

        try:
            fetched = self.acquisition.fetch(target, operator_id=operator_id, cancel_event=cancel_event)
        except ExtractionError as e:
            logger.extraction_error(target.url, e, (time.perf_counter() - start) * 1000, operator_id)
            raise

        if target.allow_dynamic_loading:
            reduced = self.reducer.extract_main_content(fetched.html, DYNAMIC_TOKEN_BUDGET)
        else:
            reduced = self.reducer.reduce(fetched.html, STATIC_TOKEN_BUDGET)

        ctx = CascadeContext(
            html=fetched.html,
            reduced_html=reduced,
            url=target.url,
            base_url=fetched.final_url,
            allow_legacy=target.allow_dynamic_loading,
            use_cache=use_cache,
        )
        outcome = self.cascade.run(ctx)
        provenance = outcome.result.provenance.value if outcome.result else None

        result = ExtractionResult(
            records=outcome.records,
            selectors=outcome.selectors,
            url=target.url,
            domain=domain_of(target.url),
            manual_location=target.manual_location_override,
            debug_info={
                "html_length": len(fetched.html),
                "reduced_html_length": len(reduced),
                "cache_used": outcome.cache_used,
                "records_found": len(outcome.records),
                "method_used": fetched.method,
                "provenance": provenance,
                "products_detected": fetched.products_detected,
                "scroll_attempts": fetched.scroll_attempts,
                "diagnostics": outcome.diagnostics or None,
            },
        )

        logger.extraction_success(
            target.url,
            (time.perf_counter() - start) * 1000,
            len(result.records),
            provenance=provenance,
            operator_id=operator_id,
        )
        return result

    def extract_batch(self, targets: List[ScrapeTarget], operator_id: Optional[int] = None) -> BatchResult:
        """Séquentiel; une URL en échec est notée et le lot continue."""
        batch = BatchResult()
        for target in targets:
            try:
                batch.results.append(self.extract(target, operator_id=operator_id))
            except ExtractionError as e:
                batch.errors.append(e.to_error_entry(target.url))

        logger.info(
            "Batch extraction complete",
            operator_id=operator_id,
            urls=len(targets),
            succeeded=len(batch.results),
            failed=len(batch.errors),
            total_records=batch.total_records,
        )
        return batch

    def test_selectors(
        self,
        url_or_html: str,
        selectors: Union[SelectorMap, Dict[str, Any]],
    ) -> Dict[str, Dict[str, Any]]:
        """Diagnostic sur une URL (GET direct) ou un HTML déjà récupéré."""
        if isinstance(selectors, SelectorMap):
            selectors = selectors.model_dump()
        html = url_or_html
        if is_valid_url(url_or_html):
            html = fetch_static(url_or_html).html
        return run_selector_diagnostic(html, selectors)


_engine: Optional[ExtractionEngine] = None


def get_engine() -> ExtractionEngine:
    global _engine
    if _engine is None:
        _engine = ExtractionEngine()
    return _engine
