"""
Modèles échangés par le moteur d'extraction.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Any, List, Dict

from pydantic import BaseModel, ConfigDict, Field

from adaptive_scraper.core.exceptions import SelectorValidationError

SELECTOR_FIELDS = ("container", "title", "image", "price", "link", "description", "stock")
RECORD_FIELDS = ("title", "image", "price", "link", "description", "stock")


class Provenance(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    PATTERN_LIBRARY = "pattern-library"
    LEGACY = "legacy"
    # Uniquement dans debug_info: la map vient du cache
    CACHE = "cache"


class ScrapeTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    allow_dynamic_loading: bool = False
    manual_location_override: Optional[str] = None


class SelectorMap(BaseModel):
    container: str = Field(min_length=1)
    title: Optional[str] = None
    image: Optional[str] = None
    price: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    stock: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "SelectorMap":
        """
        Construit une map depuis un payload LLM/JSON.

        Les clés inconnues et valeurs non-string sont ignorées.
        Lève SelectorValidationError si container manque.
        """
        if not isinstance(raw, dict):
            raise SelectorValidationError("Selector payload is not an object", field="container")

        cleaned: Dict[str, str] = {}
        for key in SELECTOR_FIELDS:
            value = raw.get(key)
            if isinstance(value, str) and value.strip():
                cleaned[key] = value.strip()

        if "container" not in cleaned:
            raise SelectorValidationError("Missing container selector", field="container")
        return cls(**cleaned)

    def field_selectors(self) -> Dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in RECORD_FIELDS}


class CacheEntry(BaseModel):
    domain_key: str
    selectors: SelectorMap
    domain: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    sample_url: str = ""
    note: str = ""

    def to_json_dict(self) -> Dict[str, Any]:
        """Format fichier: {selectors, domain, created_at, sample_url, note}."""
        return {
            "selectors": self.selectors.model_dump(),
            "domain": self.domain,
            "created_at": self.created_at.isoformat(),
            "sample_url": self.sample_url,
            "note": self.note,
        }

    @classmethod
    def from_json_dict(cls, domain_key: str, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            domain_key=domain_key,
            selectors=SelectorMap.from_raw(data.get("selectors")),
            domain=data.get("domain") or "",
            created_at=data.get("created_at") or datetime.utcnow(),
            sample_url=data.get("sample_url") or "",
            note=data.get("note") or "",
        )


class ExtractedRecord(BaseModel):
    title: str = ""
    image: str = ""
    price: str = ""
    link: str = ""
    description: str = ""
    stock: str = ""


class DetailRecord(BaseModel):
    """Fiche normalisée d'une annonce (liste + page détail)."""
    title: str = ""
    make: str = ""
    model: str = ""
    year: Optional[int] = None
    price: float = 0.0
    condition: str = "used"
    trailer_type: str = "Utility Trailer"
    color: str = "Grey"
    size: Optional[str] = None
    stock_number: str = ""
    description: str = ""
    link: str = ""
    images: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    specs: Dict[str, Any] = Field(default_factory=dict)


class FetchResult(BaseModel):
    html: str
    status_code: int = 200
    final_url: str
    duration_ms: float = 0.0
    method: str = "static"
    products_detected: Optional[int] = None
    scroll_attempts: Optional[int] = None


class ExtractionResult(BaseModel):
    records: List[ExtractedRecord] = Field(default_factory=list)
    selectors: Optional[SelectorMap] = None
    url: str
    domain: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    manual_location: Optional[str] = None
    debug_info: Dict[str, Any] = Field(default_factory=dict)


class BatchResult(BaseModel):
    results: List[ExtractionResult] = Field(default_factory=list)
    errors: List[Dict[str, str]] = Field(default_factory=list)

    @property
    def total_records(self) -> int:
        return sum(len(r.records) for r in self.results)
