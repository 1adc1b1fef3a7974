"""
Detail Extraction Service - Fiche complète d'une page détail.

Récupération statique (même politique proxy que les pages liste),
réduction, puis un prompt LLM qui ne renvoie que les champs présents.
Les images sont lues directement dans le HTML complet.
"""
import time
from datetime import datetime
from typing import Optional, Dict, Any, List

from bs4 import BeautifulSoup

from adaptive_scraper.core.config import LLM_DETAIL_MAX_TOKENS
from adaptive_scraper.core.exceptions import InferenceError, ParseError
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.normalizers.detail import normalize_record
from adaptive_scraper.normalizers.records import ExtractedRecord, ScrapeTarget
from adaptive_scraper.services.content_acquisition import ContentAcquisition, get_acquisition
from adaptive_scraper.services.content_reducer import ContentReducer, DYNAMIC_TOKEN_BUDGET, get_reducer
from adaptive_scraper.services.llm_client import LLMClient, get_llm_client
from adaptive_scraper.utils.urls import resolve_url

logger = get_logger(__name__)

DETAIL_TOKEN_BUDGET = DYNAMIC_TOKEN_BUDGET
MIN_IMAGE_DIMENSION = 100
EXCLUDED_IMAGE_MARKERS = ("logo.png", "/thumbnail", "/thumbnails", "thumb")

DETAIL_FIELDS = {
    "title": "Main title or name of the listing",
    "description": "Detailed description (combine all relevant descriptive text)",
    "features": "List of key features, specifications and highlights",
    "price": "Price information",
    "stock_number": "Stock or inventory number",
    "condition": "New/Used or other condition information",
    "status": "Available/Sold or other status",
    "brand": "Brand",
    "manufacturer": "Manufacturer name",
    "model": "Model name or number",
    "year": "Model year",
    "type": "Type (e.g. Trailer, Truck Bed)",
    "category": "Category (e.g. Tilt Trailer, Utility Trailer)",
    "vin": "VIN number",
    "location": "Dealer location: city, state or address",
    "dealer_name": "Dealer or company name",
    "dealer_address": "Full dealer address",
    "dealer_phone": "Dealer phone number",
    "floor_length": "Floor length with units",
    "floor_width": "Floor width with units",
    "length_total": "Total length with units",
    "width_total": "Total width with units",
    "floor_height": "Floor height with units",
    "weight": "Weight with units",
    "empty_weight": "Empty weight with units",
    "axle_capacity": "Axle capacity with units",
    "axles": "Number of axles",
    "color": "Primary color",
    "exterior_color": "Exterior or body color",
    "interior_color": "Interior color if different",
    "construction": "Construction material (e.g. Steel, Aluminum)",
    "pull_type": "Pull type (e.g. Bumper, Gooseneck)",
    "rental": "Rental availability",
    "dimensions": "Combined dimensions if not available separately",
    "additional_info": "Any other relevant specification",
}

DETAIL_SYSTEM_PROMPT = "You extract listing details from HTML and answer with a single JSON object, nothing else."

DETAIL_PROMPT = """Analyze this HTML from a listing detail page and extract every
available specification and detail, including the dealer location.

Return ONLY a JSON object using these keys:
{fields}

Rules:
- include only fields with a meaningful value (no null, "", "N/A", "Not Available")
- keep units on measurements (in, ft, lb)
- "features" is a list of strings
- look for the location in headers, footers, contact blocks and dealer information

HTML:
{html}"""


def failed_details(error: str, description: str) -> Dict[str, Any]:
    return {
        "title": "Information extraction failed",
        "description": description,
        "features": [],
        "error": error,
    }


def _dimension(value: Optional[str]) -> Optional[int]:
    if value and value.strip().isdigit():
        return int(value.strip())
    return None


def extract_images(html: str, base_url: str) -> List[Dict[str, Any]]:
    """
    Toutes les <img src> résolues, sans logos ni vignettes, sans
    icônes (largeur ou hauteur déclarée <= 100), dédoublonnées dans l'ordre.
    """
    soup = BeautifulSoup(html, "html.parser")
    images = []
    seen = set()

    for node in soup.find_all("img"):
        src = resolve_url(node.get("src"), base_url)
        if not src:
            continue
        lowered = src.lower()
        if any(marker in lowered for marker in EXCLUDED_IMAGE_MARKERS):
            continue

        width = _dimension(node.get("width"))
        height = _dimension(node.get("height"))
        if (width is not None and width <= MIN_IMAGE_DIMENSION) or (
            height is not None and height <= MIN_IMAGE_DIMENSION
        ):
            continue
        if src in seen:
            continue

        seen.add(src)
        images.append({"url": src, "alt": node.get("alt") or "", "width": width, "height": height})

    return images


class DetailExtractionService:

    def __init__(
        self,
        acquisition: Optional[ContentAcquisition] = None,
        reducer: Optional[ContentReducer] = None,
        llm: Optional[LLMClient] = None,
    ):
        self.acquisition = acquisition or get_acquisition()
        self.reducer = reducer or get_reducer()
        self.llm = llm or get_llm_client()

    def extract_detailed_info(self, reduced_html: str) -> Dict[str, Any]:
        fields = "\n".join(f'  "{name}": {hint}' for name, hint in DETAIL_FIELDS.items())
        prompt = DETAIL_PROMPT.format(fields=fields, html=reduced_html)
        try:
            details = self.llm.complete_json(prompt, system=DETAIL_SYSTEM_PROMPT, max_tokens=LLM_DETAIL_MAX_TOKENS)
        except ParseError as e:
            logger.warning(f"Could not parse detail response: {e}")
            return failed_details("Failed to parse model response", "Could not extract detailed information from the page")
        except InferenceError as e:
            logger.warning(f"Detail inference failed: {e}")
            return failed_details(str(e), f"Error occurred while extracting information: {e}")

        logger.info("Extracted detail fields", fields=sorted(details))
        return details

    def extract_details(
        self,
        url: str,
        operator_id: Optional[int] = None,
        listing: Optional[ExtractedRecord] = None,
    ) -> Dict[str, Any]:
        """
        listing: ligne de la page liste correspondante, fusionnée dans
        `record` (les champs de la page détail priment).

        Raises:
            AcquisitionError, HTTPError, NetworkError: la page n'a pas pu être récupérée
        """
        logger.extraction_start(url, "detail", operator_id=operator_id)
        start = time.perf_counter()

        fetched = self.acquisition.fetch(ScrapeTarget(url=url), operator_id=operator_id)
        reduced = self.reducer.reduce(fetched.html, DETAIL_TOKEN_BUDGET)
        details = self.extract_detailed_info(reduced)
        images = extract_images(fetched.html, fetched.final_url or url)

        record = None
        if "error" not in details:
            record = normalize_record(
                listing or ExtractedRecord(link=url),
                {**details, "images": [image["url"] for image in images]},
            ).model_dump()

        logger.info(
            "Detail extraction complete",
            url=url,
            operator_id=operator_id,
            duration_ms=(time.perf_counter() - start) * 1000,
            images=len(images),
            normalized=record is not None,
        )
        return {
            "url": url,
            "details": details,
            "record": record,
            "images": images,
            "timestamp": datetime.utcnow().isoformat(),
            "debug_info": {
                "html_length": len(fetched.html),
                "reduced_html_length": len(reduced),
                "images_found": len(images),
            },
        }


_detail_service: Optional[DetailExtractionService] = None


def get_detail_service() -> DetailExtractionService:
    global _detail_service
    if _detail_service is None:
        _detail_service = DetailExtractionService()
    return _detail_service
