"""
Selector Inference - Cascade de stratégies pour obtenir une SelectorMap.

Ordre:
1. cache du domaine (si la map produit encore des records)
2. inférence LLM primaire sur le HTML réduit
3. inférence LLM de repli sur un échantillon d'éléments répétés
4. bibliothèque de gabarits
5. gabarit historique (pages dynamiques uniquement)

Chaque stratégie renvoie un TierResult; un palier en échec fait passer
au suivant. Aucune exception pour les échecs attendus.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

import anthropic
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from adaptive_scraper.core.exceptions import InferenceError, ParseError
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.normalizers.records import (
    CacheEntry,
    ExtractedRecord,
    Provenance,
    SelectorMap,
    SELECTOR_FIELDS,
)
from adaptive_scraper.services.llm_client import LLMClient, get_llm_client
from adaptive_scraper.services.selector_cache_service import SelectorCache, get_selector_cache
from adaptive_scraper.services.selector_patterns import FALLBACK_SAMPLE_PATTERNS, pattern_maps, legacy_map
from adaptive_scraper.services.structured_extractor import StructuredExtractor, clean_text, get_extractor
from adaptive_scraper.utils.urls import host_of

logger = get_logger(__name__)

HTML_SAMPLE_CHARS = 500
FALLBACK_SAMPLE_SIZE = 3
FALLBACK_MAX_MATCHES = 100
FALLBACK_SAMPLE_MAX_CHARS = 120000

# =============================================================================
# PROMPTS
# =============================================================================

SELECTOR_SYSTEM_PROMPT = (
    "You are an expert web scraper. You read HTML from listing pages and "
    "answer with CSS selectors as a single JSON object, nothing else."
)

PRIMARY_PROMPT = """Analyze this HTML from a listing page ({url}).

Find the element that repeats once per listing: this is the container.
Then give selectors for each field, written RELATIVE to one container
(they are evaluated inside each container match, never on the whole page).

Fields:
- container: the repeating listing element
- title: listing title or name
- image: an element carrying the main image src (usually img)
- price: the displayed price
- link: an element carrying the detail page href (usually a)
- description: short description or subtitle
- stock: stock number, SKU or item id

Use null for any field you cannot find. Prefer stable class names over
positional selectors.

Return ONLY a JSON object with the keys container, title, image, price,
link, description, stock.

HTML:
{html}"""

FALLBACK_PROMPT = """A first attempt to find selectors on this page ({url}) failed.

These are {count} similar elements from the page; the sample below shows
the first {sample_size}. Each element is one listing.

Be flexible:
- the container must match each of these elements
- field selectors are RELATIVE to the container
- partial class matches ([class*="..."]) and tag names are fine
- use null for fields that are not present

Return ONLY a JSON object with the keys container, title, image, price,
link, description, stock.

Elements:
{sample}"""


# =============================================================================
# TYPES
# =============================================================================

@dataclass
class TierResult:
    provenance: Provenance
    selectors: Optional[SelectorMap] = None
    records: List[ExtractedRecord] = field(default_factory=list)
    succeeded: bool = False
    reason: str = ""


@dataclass
class CascadeContext:
    """Entrées partagées par les paliers d'une extraction."""
    html: str
    reduced_html: str
    url: str
    allow_legacy: bool = False
    use_cache: bool = True
    # URL finale après redirections, base des liens et images
    base_url: str = ""
    attempted: List[Dict[str, Any]] = field(default_factory=list)
    _soup: Optional[BeautifulSoup] = None

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, "html.parser")
        return self._soup

    @property
    def domain_key(self) -> str:
        return SelectorCache.domain_key(self.url)


@dataclass
class CascadeOutcome:
    result: Optional[TierResult]
    cache_used: bool = False
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def records(self) -> List[ExtractedRecord]:
        return self.result.records if self.result else []

    @property
    def selectors(self) -> Optional[SelectorMap]:
        return self.result.selectors if self.result else None


def validate_selectors(
    ctx: CascadeContext,
    selectors: SelectorMap,
    provenance: Provenance,
    extractor: StructuredExtractor,
) -> TierResult:
    """Le container doit matcher au moins un élément et produire au moins un record."""
    ctx.attempted.append({"tier": provenance.value, "selectors": selectors.model_dump()})
    records = extractor.extract_from_soup(ctx.soup, selectors, ctx.base_url or ctx.url)
    if not records:
        return TierResult(provenance, selectors=selectors, reason="container matched no elements")
    return TierResult(provenance, selectors=selectors, records=records, succeeded=True)


# =============================================================================
# STRATÉGIES
# =============================================================================

class SelectorStrategy:
    provenance: Provenance

    def run(self, ctx: CascadeContext) -> TierResult:
        raise NotImplementedError


class CachedSelectorStrategy(SelectorStrategy):
    provenance = Provenance.CACHE

    def __init__(self, cache: SelectorCache, extractor: StructuredExtractor):
        self.cache = cache
        self.extractor = extractor

    def run(self, ctx: CascadeContext) -> TierResult:
        if not ctx.use_cache:
            return TierResult(self.provenance, reason="cache disabled")
        entry = self.cache.get(ctx.domain_key)
        if entry is None:
            return TierResult(self.provenance, reason="cache miss")

        result = validate_selectors(ctx, entry.selectors, self.provenance, self.extractor)
        if not result.succeeded:
            logger.info("Cached selectors are stale", url=ctx.url, cached_note=entry.note)
            result.reason = "stale cache entry"
        return result


class PrimaryInferenceStrategy(SelectorStrategy):
    provenance = Provenance.PRIMARY

    def __init__(self, llm: LLMClient, extractor: StructuredExtractor):
        self.llm = llm
        self.extractor = extractor

    def infer(self, ctx: CascadeContext) -> SelectorMap:
        prompt = PRIMARY_PROMPT.format(url=ctx.url, html=ctx.reduced_html)
        return SelectorMap.from_raw(self.llm.complete_json(prompt, system=SELECTOR_SYSTEM_PROMPT))

    def run(self, ctx: CascadeContext) -> TierResult:
        try:
            selectors = self.infer(ctx)
        except (InferenceError, ParseError, anthropic.APIError) as e:
            logger.warning(f"Selector inference failed: {e}", url=ctx.url, tier=self.provenance.value)
            return TierResult(self.provenance, reason=str(e))
        return validate_selectors(ctx, selectors, self.provenance, self.extractor)


class FallbackInferenceStrategy(PrimaryInferenceStrategy):
    provenance = Provenance.FALLBACK

    def find_repeating_sample(self, ctx: CascadeContext) -> Optional[Dict[str, Any]]:
        """Motif le plus répété (1 < n < 100) et ses premiers éléments."""
        best_pattern, best_elements = None, []
        for pattern in FALLBACK_SAMPLE_PATTERNS:
            try:
                elements = ctx.soup.select(pattern)
            except SelectorSyntaxError:
                continue
            if 1 < len(elements) < FALLBACK_MAX_MATCHES and len(elements) > len(best_elements):
                best_pattern, best_elements = pattern, elements

        if not best_pattern:
            return None
        sample = "\n".join(str(el) for el in best_elements[:FALLBACK_SAMPLE_SIZE])
        return {
            "pattern": best_pattern,
            "count": len(best_elements),
            "sample": sample[:FALLBACK_SAMPLE_MAX_CHARS],
        }

    def infer(self, ctx: CascadeContext) -> SelectorMap:
        found = self.find_repeating_sample(ctx)
        if found is None:
            raise InferenceError("No repeating element pattern to sample", source="fallback", url=ctx.url)

        logger.info("Fallback sampling", url=ctx.url, pattern=found["pattern"], count=found["count"])
        prompt = FALLBACK_PROMPT.format(
            url=ctx.url,
            count=found["count"],
            sample_size=min(FALLBACK_SAMPLE_SIZE, found["count"]),
            sample=found["sample"],
        )
        return SelectorMap.from_raw(self.llm.complete_json(prompt, system=SELECTOR_SYSTEM_PROMPT))


class PatternLibraryStrategy(SelectorStrategy):
    provenance = Provenance.PATTERN_LIBRARY

    def __init__(self, extractor: StructuredExtractor):
        self.extractor = extractor

    def run(self, ctx: CascadeContext) -> TierResult:
        for name, selectors in pattern_maps():
            result = validate_selectors(ctx, selectors, self.provenance, self.extractor)
            if result.succeeded:
                logger.info("Pattern library match", url=ctx.url, pattern=name, records=len(result.records))
                result.reason = name
                return result
        return TierResult(self.provenance, reason="no library pattern matched")


class LegacySelectorStrategy(SelectorStrategy):
    provenance = Provenance.LEGACY

    def __init__(self, extractor: StructuredExtractor):
        self.extractor = extractor

    def run(self, ctx: CascadeContext) -> TierResult:
        if not ctx.allow_legacy:
            return TierResult(self.provenance, reason="legacy selectors disabled for static pages")
        return validate_selectors(ctx, legacy_map(), self.provenance, self.extractor)


# =============================================================================
# CASCADE
# =============================================================================

class SelectorCascade:

    def __init__(self, strategies: List[SelectorStrategy], cache: SelectorCache):
        self.strategies = strategies
        self.cache = cache

    def run(self, ctx: CascadeContext) -> CascadeOutcome:
        for strategy in self.strategies:
            result = strategy.run(ctx)
            logger.debug(
                "Cascade tier finished",
                url=ctx.url,
                tier=strategy.provenance.value,
                succeeded=result.succeeded,
                reason=result.reason,
            )
            if not result.succeeded:
                continue

            from_cache = strategy.provenance is Provenance.CACHE
            if not from_cache and ctx.use_cache:
                self.persist(ctx, result)
            return CascadeOutcome(result=result, cache_used=from_cache)

        logger.warning("Selector cascade exhausted", url=ctx.url, attempts=len(ctx.attempted))
        return CascadeOutcome(
            result=None,
            diagnostics={
                "selectors_attempted": ctx.attempted,
                "html_sample": clean_text(ctx.soup.get_text(" ", strip=True))[:HTML_SAMPLE_CHARS],
            },
        )

    def persist(self, ctx: CascadeContext, result: TierResult) -> None:
        entry = CacheEntry(
            domain_key=ctx.domain_key,
            selectors=result.selectors,
            domain=host_of(ctx.url),
            created_at=datetime.utcnow(),
            sample_url=ctx.url,
            note=result.provenance.value,
        )
        self.cache.put(ctx.domain_key, entry)


def build_cascade(
    cache: Optional[SelectorCache] = None,
    llm: Optional[LLMClient] = None,
    extractor: Optional[StructuredExtractor] = None,
) -> SelectorCascade:
    cache = cache or get_selector_cache()
    llm = llm or get_llm_client()
    extractor = extractor or get_extractor()
    return SelectorCascade(
        strategies=[
            CachedSelectorStrategy(cache, extractor),
            PrimaryInferenceStrategy(llm, extractor),
            FallbackInferenceStrategy(llm, extractor),
            PatternLibraryStrategy(extractor),
            LegacySelectorStrategy(extractor),
        ],
        cache=cache,
    )


def test_selectors(html: str, selectors: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Diagnostic: pour chaque champ, nombre de matches et texte du premier.
    Les sélecteurs invalides sont signalés, jamais levés.
    """
    soup = BeautifulSoup(html, "html.parser")
    report: Dict[str, Dict[str, Any]] = {}
    for name in SELECTOR_FIELDS:
        selector = selectors.get(name)
        if not isinstance(selector, str) or not selector.strip():
            continue
        try:
            matches = soup.select(selector)
        except SelectorSyntaxError as e:
            report[name] = {"selector": selector, "count": 0, "error": str(e)}
            continue
        sample = matches[0].get_text(" ", strip=True)[:100] if matches else ""
        report[name] = {"selector": selector, "count": len(matches), "sample": sample}
    return report
