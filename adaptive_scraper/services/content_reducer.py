"""
Content Reducer - Ramène le HTML sous un budget de tokens pour le LLM.

La sortie ne sert qu'à l'inférence; l'extraction se fait toujours sur le
HTML complet.
"""
import re
from typing import Optional

from bs4 import BeautifulSoup

from adaptive_scraper.core.logging import get_logger, timed

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4
STATIC_TOKEN_BUDGET = 50000
DYNAMIC_TOKEN_BUDGET = 40000
MAX_HALVING_ITERATIONS = 10

_NOISE_PATTERNS = [
    re.compile(r"<script\b[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<style\b[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<!--.*?-->", re.DOTALL),
    re.compile(r"<noscript\b[^>]*>.*?</noscript>", re.IGNORECASE | re.DOTALL),
]

CONTENT_SELECTORS = [
    "main",
    '[class*="content"]',
    '[class*="product"]',
    '[class*="inventory"]',
    '[class*="listing"]',
    '[class*="collection"]',
    '[class*="catalog"]',
    '[id*="content"]',
    '[id*="products"]',
    '[id*="inventory"]',
]

SAMPLE_PATTERNS = ["article", ".item, .product", '[class*="card"]']
SAMPLES_PER_PATTERN = 5

ZONE_SELECTORS = [
    '[class*="inventory"]',
    '[class*="product"]',
    '[class*="item"]',
    '[class*="listing"]',
    '[class*="catalog"]',
    '[class*="grid"]',
    '[id*="inventory"]',
    '[id*="product"]',
    '[id*="listing"]',
    '[id*="catalog"]',
    "main",
    ".main",
    "#main",
    ".content",
    "#content",
    ".container",
    '[class*="trailer"]',
    '[class*="unit"]',
    '[class*="vehicle"]',
]
MIN_ZONE_LENGTH = 1000
MIN_ZONE_SCORE = 5

KEYWORD_WEIGHTS = {
    "price": 3,
    "trailer": 3,
    "inventory": 3,
    "stock": 2,
    "model": 2,
    "year": 2,
    "condition": 2,
    "new": 1,
    "used": 1,
    "sale": 1,
    "item": 1,
    "product": 1,
}

PATTERN_WEIGHTS = {
    'class="item': 2,
    'class="product': 2,
    'class="listing': 2,
    'class="trailer': 3,
    "data-item": 2,
    "data-product": 2,
}

# Appliquées une seule fois si présentes
PENALTIES = {
    "header": -5,
    "footer": -5,
    "navigation": -3,
    "menu": -3,
    "logo": -5,
    "copyright": -3,
}


def strip_noise(html: str) -> str:
    """Supprime script, style, commentaires et noscript."""
    for pattern in _NOISE_PATTERNS:
        html = pattern.sub("", html)
    return html


def score_content(html: str) -> int:
    """Probabilité (heuristique) qu'un fragment contienne des annonces."""
    lower = html.lower()
    score = 0
    for keyword, weight in KEYWORD_WEIGHTS.items():
        score += lower.count(keyword) * weight
    for pattern, weight in PATTERN_WEIGHTS.items():
        score += lower.count(pattern) * weight
    for word, weight in PENALTIES.items():
        if word in lower:
            score += weight
    return max(0, score)


class ContentReducer:

    def smart_reduction(self, html: str, max_chars: int) -> Optional[str]:
        """
        Garde la section de contenu la mieux notée parmi celles assez
        grandes pour être significatives, sinon un échantillon d'éléments
        répétés. None si rien d'exploitable.
        """
        soup = BeautifulSoup(html, "html.parser")

        best_content = None
        best_score = -1
        for selector in CONTENT_SELECTORS:
            for match in soup.select(selector):
                content = str(match)
                if len(content) < MIN_ZONE_LENGTH or len(content) >= max_chars * 1.2:
                    continue
                score = score_content(content)
                if score > best_score:
                    best_score = score
                    best_content = content

        if best_content is not None:
            logger.info("Found suitable content section", score=best_score, content_size=len(best_content))
            return best_content

        combined = ""
        for pattern in SAMPLE_PATTERNS:
            for element in soup.select(pattern, limit=SAMPLES_PER_PATTERN):
                fragment = str(element)
                if len(combined) + len(fragment) >= max_chars:
                    break
                combined += fragment + "\n"

            if len(combined) > max_chars * 0.3:
                logger.info("Created combined content section", pattern=pattern, content_size=len(combined))
                return combined

        return None

    @timed(logger, "reduce")
    def reduce(self, html: str, token_budget: int = STATIC_TOKEN_BUDGET) -> str:
        original_size = len(html)
        max_chars = token_budget * CHARS_PER_TOKEN
        clean = strip_noise(html)

        if len(clean) > max_chars:
            smart = self.smart_reduction(clean, max_chars)
            if smart:
                clean = smart

        iterations = 0
        while len(clean) > max_chars and iterations < MAX_HALVING_ITERATIONS:
            iterations += 1
            cut = clean.find(">", len(clean) // 2)
            if cut == -1:
                clean = clean[:max_chars]
                break
            clean = clean[:cut + 1]

        logger.info(
            "HTML reduction complete",
            original_size=original_size,
            final_size=len(clean),
            iterations=iterations,
        )
        return clean

    @timed(logger, "extract_main_content")
    def extract_main_content(self, html: str, token_budget: int = DYNAMIC_TOKEN_BUDGET) -> str:
        """
        Réduction ciblée pour les pages dynamiques: on choisit la zone la
        mieux notée avant de réduire.
        """
        soup = BeautifulSoup(html, "html.parser")
        best_content = ""
        best_score = 0

        for selector in ZONE_SELECTORS:
            for element in soup.select(selector):
                fragment = str(element)
                if len(fragment) <= MIN_ZONE_LENGTH:
                    continue
                score = score_content(fragment)
                if score > best_score:
                    best_score = score
                    best_content = fragment

        if best_content and best_score > MIN_ZONE_SCORE:
            logger.info("Using targeted content section", score=best_score, length=len(best_content))
            return self.reduce(best_content, token_budget)

        logger.info("No good content section found, using standard reduction")
        return self.reduce(html, token_budget)


_reducer: Optional[ContentReducer] = None


def get_reducer() -> ContentReducer:
    global _reducer
    if _reducer is None:
        _reducer = ContentReducer()
    return _reducer
