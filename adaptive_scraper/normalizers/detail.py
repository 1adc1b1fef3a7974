"""
Normalisation des annonces: titre -> (année, marque, modèle), prix, type,
état, couleur et dimensions.

Toutes les fonctions sont pures et tolèrent des entrées vides.
"""
import re
from typing import Optional, Dict, Any

from adaptive_scraper.normalizers.records import ExtractedRecord, DetailRecord

MANUFACTURERS = [
    "IRON BULL", "IRONBULL", "LOAD TRAIL", "LOADTRAIL", "BIG TEX", "BIGTEX",
    "PJ TRAILERS", "PJ", "SURE-TRAC", "SURETRAC", "DIAMOND C", "DIAMONDC",
    "LAMAR", "GATORMADE", "GATOR MADE", "CARRY-ON", "CARRYON", "WELLS CARGO",
    "CARGO MATE", "CARGOMATE", "HAULMARK", "CONTINENTAL CARGO", "PACE AMERICAN",
    "HOMESTEADER", "LOOK", "UNITED", "INTERSTATE", "CROSS", "FORMULA",
    "NEXHAUL", "ALUMA", "ECHO", "IRON PANTHER",
]

# Ordre significatif: la première règle qui matche gagne
TRAILER_TYPE_RULES = [
    (r"\b(dump|dumping|dump bed|tilt)\b", "Dump Trailer"),
    (r"\b(enclosed|cargo|box trailer|vnose|v-nose)\b", "Enclosed Trailer"),
    (r"\b(car hauler|auto|vehicle|car trailer|auto hauler)\b", "Car Hauler"),
    (r"\b(flatbed|flat bed|deck over|deckover)\b", "Flatbed Trailer"),
    (r"\b(equipment|skid steer|bobcat|excavator|heavy duty)\b", "Equipment Trailer"),
    (r"\b(gooseneck|goose neck)\b", "Gooseneck Trailer"),
    (r"\b(utility|single axle|dual axle|landscape|mesh|rail|ramp)\b", "Utility Trailer"),
    (r"\b(boat|pontoon|watercraft)\b", "Boat Trailer"),
    (r"\b(motorcycle|bike|atv|quad)\b", "Motorcycle Trailer"),
]
DEFAULT_TRAILER_TYPE = "Utility Trailer"

COLORS = [
    "white", "black", "gray", "grey", "blue", "red", "green", "yellow", "orange",
    "brown", "silver", "tan", "beige", "charcoal", "navy", "purple", "pink",
    "gold", "bronze", "maroon", "teal", "olive",
]

# Palette acceptée par la marketplace
MARKETPLACE_COLORS = {
    "black": "Black", "blue": "Blue", "brown": "Brown", "gold": "Gold",
    "green": "Green", "grey": "Grey", "gray": "Grey", "pink": "Pink",
    "purple": "Purple", "red": "Red", "silver": "Silver", "orange": "Orange",
    "white": "White", "yellow": "Yellow", "charcoal": "Charcoal", "tan": "Tan",
    "beige": "Beige", "burgundy": "Burgundy", "turquoise": "Turquoise",
    "navy": "Blue", "dark blue": "Blue", "light blue": "Blue", "royal blue": "Blue",
    "sky blue": "Blue", "teal": "Turquoise", "aqua": "Turquoise", "cyan": "Turquoise",
    "lime": "Green", "forest green": "Green", "dark green": "Green", "olive": "Green",
    "maroon": "Burgundy", "crimson": "Red", "scarlet": "Red", "rose": "Pink",
    "magenta": "Pink", "violet": "Purple", "indigo": "Purple", "lavender": "Purple",
    "bronze": "Brown", "copper": "Brown", "rust": "Brown", "mahogany": "Brown",
    "cream": "White", "ivory": "White", "pearl": "White", "off white": "White",
    "off-white": "White", "platinum": "Silver", "chrome": "Silver", "metallic": "Silver",
    "gunmetal": "Charcoal", "slate": "Grey", "ash": "Grey", "smoke": "Grey",
    "stone": "Grey", "khaki": "Tan", "sand": "Tan", "camel": "Tan",
    "wheat": "Beige", "champagne": "Beige", "almond": "Beige",
}

COLOR_FAMILIES = [
    (("blue",), "Blue"), (("red",), "Red"), (("green",), "Green"),
    (("yellow",), "Yellow"), (("orange",), "Orange"), (("purple", "violet"), "Purple"),
    (("pink",), "Pink"), (("brown",), "Brown"), (("black",), "Black"),
    (("white",), "White"), (("silver", "metal"), "Silver"), (("gold",), "Gold"),
    (("grey", "gray"), "Grey"), (("tan",), "Tan"), (("beige",), "Beige"),
]
DEFAULT_COLOR = "Grey"

YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
SIZE_RE = re.compile(r"\b(\d+(?:\.\d+)?)\s*[xX]\s*(\d+(?:\.\d+)?)\b")
CONDITION_PREFIX_RE = re.compile(r"^(new|used|pre-owned|preowned)\s+", re.IGNORECASE)
RECENT_YEAR_RE = re.compile(r"\b20(?:2[4-9]|3\d)\b")


def _text(*parts: Optional[str]) -> str:
    return " ".join(p for p in parts if p)


def extract_year(text: Optional[str]) -> Optional[int]:
    match = YEAR_RE.search(text or "")
    return int(match.group(0)) if match else None


def parse_price(value: Optional[str]) -> float:
    """'$12,499.00' -> 12499.0; rien d'exploitable -> 0.0"""
    digits = re.sub(r"[^\d.]", "", value or "")
    if not digits:
        return 0.0
    try:
        return float(digits)
    except ValueError:
        # Plusieurs points ("1.299.00"): on garde la partie entière
        return float(digits.split(".")[0] or 0)


def parse_title(title: Optional[str]) -> Dict[str, Any]:
    """
    Décompose un titre d'annonce.

    Returns:
        {"year": int|None, "make": str (majuscules), "model": str}
    """
    if not title:
        return {"year": None, "make": "", "model": ""}

    clean = CONDITION_PREFIX_RE.sub("", title.strip()).strip()

    year = extract_year(clean)
    if year:
        clean = clean.replace(str(year), "", 1).strip()

    make = ""
    model = clean
    for manufacturer in MANUFACTURERS:
        pattern = re.compile(rf"\b{re.escape(manufacturer)}\b", re.IGNORECASE)
        if pattern.search(clean):
            make = manufacturer
            model = pattern.sub("", clean, count=1).strip()
            break

    if not make:
        words = clean.split()
        if words:
            make = words[0]
            model = " ".join(words[1:]) or clean

    return {
        "year": year,
        "make": make.upper(),
        "model": re.sub(r"\s+", " ", model).strip(),
    }


def determine_trailer_type(title: Optional[str], description: Optional[str] = None) -> str:
    text = _text(title, description).lower()
    for pattern, label in TRAILER_TYPE_RULES:
        if re.search(pattern, text):
            return label

    match = re.search(r"(\w+)\s+trailer", title or "", re.IGNORECASE)
    if match:
        return f"{match.group(1).capitalize()} Trailer"
    return DEFAULT_TRAILER_TYPE


def determine_condition(title: Optional[str], description: Optional[str] = None) -> str:
    """new | used | refurbished"""
    text = _text(title, description).lower()
    has_used = bool(re.search(r"\b(used|pre-owned|preowned)\b", text))

    if re.search(r"\b(brand new|factory new|new)\b", text) and not has_used:
        return "new"
    if has_used:
        return "used"
    if re.search(r"\b(refurbished|rebuilt|restored)\b", text):
        return "refurbished"
    if RECENT_YEAR_RE.search(text):
        return "new"
    return "used"


def map_marketplace_color(color: Optional[str]) -> str:
    if not color:
        return ""
    value = color.strip().lower()

    if value in MARKETPLACE_COLORS:
        return MARKETPLACE_COLORS[value]

    for key, mapped in MARKETPLACE_COLORS.items():
        if key in value or value in key:
            return mapped

    for needles, mapped in COLOR_FAMILIES:
        if any(n in value for n in needles):
            return mapped

    return DEFAULT_COLOR


def extract_color(title: Optional[str], description: Optional[str] = None) -> str:
    text = _text(title, description).lower()
    for color in COLORS:
        if re.search(rf"\b{color}\b", text):
            return map_marketplace_color(color)
    return ""


def extract_size(title: Optional[str], description: Optional[str] = None) -> Optional[str]:
    match = SIZE_RE.search(_text(title, description))
    if match:
        return f"{match.group(1)}x{match.group(2)}"
    return None


def _split_features(value: Any) -> list:
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    if isinstance(value, str) and value.strip():
        return [part.strip() for part in re.split(r"[\n;]+", value) if part.strip()]
    return []


def normalize_record(record: ExtractedRecord, details: Optional[Dict[str, Any]] = None) -> DetailRecord:
    """
    Fusionne une ligne de liste et (optionnellement) les champs de la page détail.

    Les champs de la page détail priment; la liste sert de repli.
    """
    details = details or {}
    parsed = parse_title(record.title or details.get("title"))
    description = details.get("description") or record.description

    year = extract_year(str(details.get("year") or "")) or parsed["year"] or extract_year(record.title)
    make = details.get("brand") or details.get("manufacturer") or parsed["make"]
    color_source = details.get("exterior_color") or details.get("color")
    color = map_marketplace_color(color_source) if color_source else extract_color(record.title, record.description)

    images = list(details.get("images") or [])
    if record.image and record.image not in images:
        images.insert(0, record.image)

    known = {
        "title", "description", "features", "price", "stock_number", "condition",
        "brand", "manufacturer", "model", "year", "type", "category",
        "color", "exterior_color", "location", "images",
    }
    specs = {k: v for k, v in details.items() if k not in known and v not in (None, "", [])}

    return DetailRecord(
        title=record.title or details.get("title") or "",
        make=str(make or "").upper(),
        model=str(details.get("model") or parsed["model"] or ""),
        year=year,
        price=parse_price(record.price or str(details.get("price") or "")),
        condition=str(details.get("condition") or determine_condition(record.title, record.description)).lower(),
        trailer_type=str(details.get("category") or details.get("type") or determine_trailer_type(record.title, record.description)),
        color=color or DEFAULT_COLOR,
        size=extract_size(record.title, record.description) or details.get("dimensions"),
        stock_number=record.stock or str(details.get("stock_number") or ""),
        description=str(description or ""),
        link=record.link,
        images=images,
        location=str(details["location"]) if details.get("location") else None,
        features=_split_features(details.get("features")),
        specs=specs,
    )

