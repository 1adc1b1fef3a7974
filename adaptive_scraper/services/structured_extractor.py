"""
Structured Extractor - Applique une SelectorMap au HTML complet.

Chaque élément matché par le container est un scope: les sélecteurs de
champ ne sont évalués qu'à l'intérieur (pas de contamination entre
annonces voisines).
"""
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.normalizers.records import ExtractedRecord, SelectorMap
from adaptive_scraper.utils.urls import resolve_url, is_valid_url

logger = get_logger(__name__)

ONCLICK_URL_RE = re.compile(r"""(?:location\.href|window\.open|navigate)\s*=\s*['"]([^'"]+)['"]""")
DATA_LINK_ATTRS = ("data-url", "data-href", "data-link")
TEXT_FIELDS = ("title", "price", "description", "stock")


def clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def select_one(scope: Tag, selector: Optional[str]) -> Optional[Tag]:
    """select_one tolérant: sélecteur vide ou invalide -> None."""
    if not selector:
        return None
    try:
        return scope.select_one(selector)
    except SelectorSyntaxError:
        logger.debug("Invalid field selector", selector=selector)
        return None


def _usable_href(href: Optional[str]) -> bool:
    if not href:
        return False
    href = href.strip()
    return bool(href) and not href.startswith("#") and not href.lower().startswith(("javascript:", "mailto:", "tel:"))


def find_best_link(container: Tag, base_url: str) -> str:
    """
    Cherche un lien de détail dans le container, par ordre de confiance:
    ancres, attributs data-*, handlers onclick, puis ancres parentes.
    """
    anchors = container.select("a[href]")
    if container.name == "a" and container.has_attr("href"):
        anchors.insert(0, container)
    for anchor in anchors:
        href = anchor.get("href")
        if _usable_href(href):
            resolved = resolve_url(href, base_url)
            if is_valid_url(resolved):
                return resolved

    for element in container.select("[data-url], [data-href], [data-link]"):
        for attr in DATA_LINK_ATTRS:
            value = element.get(attr)
            if value:
                resolved = resolve_url(value, base_url)
                if is_valid_url(resolved):
                    return resolved
                break

    for element in container.select("[onclick]"):
        match = ONCLICK_URL_RE.search(element.get("onclick") or "")
        if match:
            resolved = resolve_url(match.group(1), base_url)
            if is_valid_url(resolved):
                return resolved

    for parent in container.parents:
        if parent.name == "a" and _usable_href(parent.get("href")):
            resolved = resolve_url(parent["href"], base_url)
            if is_valid_url(resolved):
                return resolved

    return ""


class StructuredExtractor:

    def extract_from_soup(self, soup: BeautifulSoup, selectors: SelectorMap, base_url: str) -> List[ExtractedRecord]:
        try:
            containers = soup.select(selectors.container)
        except SelectorSyntaxError:
            logger.warning("Invalid container selector", selector=selectors.container)
            return []

        records = []
        for container in containers:
            data = {}
            for field in TEXT_FIELDS:
                element = select_one(container, getattr(selectors, field))
                data[field] = clean_text(element.get_text(" ", strip=True)) if element else ""

            image = select_one(container, selectors.image)
            data["image"] = resolve_url(image.get("src") if image else "", base_url)

            link = select_one(container, selectors.link)
            href = link.get("href") if link else None
            data["link"] = resolve_url(href, base_url) if _usable_href(href) else ""
            if not is_valid_url(data["link"]):
                data["link"] = find_best_link(container, base_url)

            records.append(ExtractedRecord(**data))

        logger.debug("Extracted records", container=selectors.container, count=len(records))
        return records

    def extract(self, html: str, selectors: SelectorMap, base_url: str) -> List[ExtractedRecord]:
        return self.extract_from_soup(BeautifulSoup(html, "html.parser"), selectors, base_url)


_extractor: Optional[StructuredExtractor] = None


def get_extractor() -> StructuredExtractor:
    global _extractor
    if _extractor is None:
        _extractor = StructuredExtractor()
    return _extractor
