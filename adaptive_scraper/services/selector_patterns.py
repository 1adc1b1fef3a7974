"""
Bibliothèque de gabarits de sélecteurs pour les mises en page courantes,
essayés quand l'inférence LLM ne donne rien d'exploitable.
"""
from typing import Dict, List, Tuple

from adaptive_scraper.normalizers.records import SelectorMap

PATTERN_LIBRARY: List[Tuple[str, Dict[str, str]]] = [
    ("generic_product_grid", {
        "container": ".product, .item, .listing",
        "title": ".title, .name, .product-title, .item-title, h2, h3",
        "image": "img",
        "price": '.price, .cost, .amount, [class*="price"]',
        "link": "a",
        "description": ".description, .desc, .details, p",
        "stock": '.stock, .sku, .item-number, [class*="stock"]',
    }),
    ("card_layout", {
        "container": ".card, .card-body, .item-card",
        "title": ".card-title, .title, h3, h4",
        "image": ".card-img, .card-image, img",
        "price": ".price, .card-price, .amount",
        "link": "a, .card-link",
        "description": ".card-text, .description, p",
        "stock": ".stock, .item-id, .card-stock",
    }),
    ("table_row_layout", {
        "container": "tr, .table-row, .row",
        "title": "td:first-child, .title-cell, .name",
        "image": "img",
        "price": "td:last-child, .price-cell, .price",
        "link": "a",
        "description": "td:nth-child(2), .desc-cell",
        "stock": ".stock, .id, .item-number",
    }),
    ("list_item_layout", {
        "container": ".list-item, .item, li",
        "title": ".item-title, .title, h3",
        "image": ".item-image, img",
        "price": ".item-price, .price",
        "link": "a, .item-link",
        "description": ".item-description, .description",
        "stock": ".item-stock, .stock",
    }),
    ("trailer_specific", {
        "container": '[class*="trailer"], [class*="vehicle"], [class*="unit"]',
        "title": '[class*="title"], [class*="name"], [class*="model"]',
        "image": "img",
        "price": '[class*="price"], [class*="cost"]',
        "link": "a",
        "description": '[class*="desc"], [class*="detail"]',
        "stock": '[class*="stock"], [class*="sku"], [class*="id"]',
    }),
    ("bootstrap_grid", {
        "container": ".col, .col-md-4, .col-lg-3, .col-sm-6",
        "title": "h3, h4, .title",
        "image": "img",
        "price": ".price, .badge, .text-primary",
        "link": "a",
        "description": "p, .description",
        "stock": ".badge, .label, .stock",
    }),
    ("inventory_layout", {
        "container": '[class*="inventory"], [class*="stock"], .item-wrapper',
        "title": ".item-title, .inventory-title, .title",
        "image": ".item-img, .inventory-img, img",
        "price": ".item-price, .inventory-price, .price",
        "link": ".item-link, .inventory-link, a",
        "description": ".item-desc, .inventory-desc, .description",
        "stock": ".item-stock, .inventory-stock, .stock",
    }),
]

# Mise en page historique (pages dynamiques uniquement)
LEGACY_SELECTORS: Dict[str, str] = {
    "container": ".item-wrapper",
    "title": ".item-info .item-title .label",
    "image": ".item-img img[src]",
    "price": ".item-info .price span:last-child",
    "link": ".item-link",
    "description": ".item-info .item-title .prefix",
    "stock": ".item-stock .stock span:last-child",
}

# Zones répétées candidates pour l'échantillonnage de repli
FALLBACK_SAMPLE_PATTERNS = [
    '[class*="trailer"]',
    '[class*="vehicle"]',
    '[class*="unit"]',
    '[class*="inventory"]',
    '[class*="stock"]',
    ".product",
    ".item",
    ".listing",
    ".card",
    "article",
    '[id*="inventory"]',
    '[id*="product"]',
    '[id*="listing"]',
    '[id*="item"]',
    "[data-product]",
    "[data-item]",
    "[data-listing]",
    ".row .col",
    ".grid-item",
    ".list-item",
]


def pattern_maps() -> List[Tuple[str, SelectorMap]]:
    return [(name, SelectorMap(**selectors)) for name, selectors in PATTERN_LIBRARY]


def legacy_map() -> SelectorMap:
    return SelectorMap(**LEGACY_SELECTORS)
