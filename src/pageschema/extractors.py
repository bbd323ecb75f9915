"""
Type-specific field extraction.

Every routine reads a ParsedPage and returns a JSON-LD dict. Fields the page
does not provide are left out; nothing is filled with placeholder values.
"""
from __future__ import annotations
import logging
import re
from datetime import datetime, time
from typing import Any, Callable, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from .analyzer import MONTHS
from .models import SCHEMA_CONTEXT, ParsedPage, compact

logger = logging.getLogger(__name__)

MAX_IMAGES = 5

CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}

_PRICE_PATTERNS = (
    re.compile(r"([$€£])\s?(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)"),
    re.compile(r"(\d+(?:\.\d{2})?)\s*(USD|EUR|GBP)\b", re.IGNORECASE),
    re.compile(r"price[:\s]+\$?(\d+(?:\.\d{2})?)", re.IGNORECASE),
)

_DATE_PATTERNS = (
    re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})?"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(rf"(?:{MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}", re.IGNORECASE),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
)

# Formats tried after ISO parsing fails; output is date-only for these
_DATE_FORMATS = (
    "%m/%d/%Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%Y/%m/%d",
)
_YEAR_RE = re.compile(r"\b\d{4}\b")

_PHONE_PATTERNS = (
    re.compile(r"\(\d{3}\)\s*\d{3}[-.\s]\d{4}"),
    re.compile(r"\b\d{3}[-.]\d{3}[-.]\d{4}\b"),
    re.compile(r"\+1[\s.-]?\d{3}[\s.-]?\d{3}[\s.-]?\d{4}\b"),
)

_STREET_RE = re.compile(
    r"\b(\d+\s+(?:[A-Z][a-z]+\s+){1,3}(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|court|ct)\b\.?)",
    re.IGNORECASE,
)
_LOCALITY_RE = re.compile(r"([A-Z][a-zA-Z]+(?:\s[A-Z][a-zA-Z]+)*),\s*([A-Z]{2})\s+(\d{5}(?:-\d{4})?)\b")
_ZIP_RE = re.compile(r"\b(\d{5}(?:-\d{4})?)\b")
_STATE_ZIP_RE = re.compile(r"\b([A-Z]{2})\s+\d{5}\b")

_DAY_CODES = {"mon": "Mo", "tue": "Tu", "wed": "We", "thu": "Th", "fri": "Fr", "sat": "Sa", "sun": "Su"}
_HOURS_RE = re.compile(
    r"\b(mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?(?:\s*(?:-|to)\s*(mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?)?[:\s]+"
    r"(\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?)\s*(?:-|to)\s*(\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?)",
    re.IGNORECASE,
)

_UNITS = r"cups?|tablespoons?|teaspoons?|tbsp|tsp|oz|ounces?|lbs?|pounds?|grams?|kg|ml|liters?|pinch|cloves?"
_INGREDIENT_RE = re.compile(
    rf"\b(\d+(?:[./]\d+)?\s*(?:{_UNITS})\b\.?\s+[A-Za-z][A-Za-z\- ]{{0,40}}?)"
    r"(?=\s+\d|\s*[,.;:]|\s+(?:instructions?|directions|method|steps?)\b|$)",
    re.IGNORECASE,
)
_INSTRUCTIONS_RE = re.compile(r"(?:instructions?|directions|method)[:\s]+(.{20,500})", re.IGNORECASE | re.DOTALL)
_STEP_SPLIT_RE = re.compile(r"(?:^|\s)(?:step\s+\d+[:.]?|\d{1,2}[.)])\s+", re.IGNORECASE)


# ------------------ shared helpers ------------------

def truncate(text: str, max_length: int) -> str:
    """Single-line summary of `text`; paragraph breaks become spaces."""
    if not text:
        return text
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    return text[:max_length].rstrip() + "..."


def first_meta(page: ParsedPage, *keys: str) -> str:
    for key in keys:
        value = page.meta_tags.get(key)
        if value:
            return value
    return ""


def parse_price(text: str, meta: Optional[Dict[str, str]] = None) -> Optional[Tuple[str, str]]:
    """Return (amount, currency) from price meta tags or the first price-looking text."""
    meta = meta or {}
    for prefix in ("product:price", "og:price"):
        amount = meta.get(f"{prefix}:amount")
        if amount:
            return amount.replace(",", ""), (meta.get(f"{prefix}:currency") or "USD").upper()

    symbol_re, code_re, label_re = _PRICE_PATTERNS
    match = symbol_re.search(text)
    if match:
        return match.group(2).replace(",", ""), CURRENCY_SYMBOLS[match.group(1)]
    match = code_re.search(text)
    if match:
        return match.group(1), match.group(2).upper()
    match = label_re.search(text)
    if match:
        return match.group(1), "USD"
    return None


def normalize_date(value: str) -> str:
    """ISO-8601 form of `value`; returned unchanged when no known format applies."""
    value = (value or "").strip()
    if not value:
        return value

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed.date().isoformat() if len(value) == 10 else parsed.isoformat()
    except ValueError:
        pass

    cleaned = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", value.replace(",", " "))
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue

    # dateutil fills missing parts from today; require an explicit year
    if not _YEAR_RE.search(value):
        return value
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return value
    if parsed.tzinfo is None and parsed.time() == time(0, 0):
        return parsed.date().isoformat()
    return parsed.isoformat()


def find_date(text: str) -> Optional[str]:
    for pattern in _DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return normalize_date(match.group(0))
    return None


def parse_phone(text: str) -> Optional[str]:
    for pattern in _PHONE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def parse_address(text: str) -> Optional[Dict[str, str]]:
    address = {}

    street = _STREET_RE.search(text)
    if street:
        address["streetAddress"] = street.group(1).strip()

    locality = _LOCALITY_RE.search(text)
    if locality:
        address["addressLocality"] = locality.group(1)
        address["addressRegion"] = locality.group(2)
        address["postalCode"] = locality.group(3)
    else:
        zip_match = _ZIP_RE.search(text)
        if zip_match:
            address["postalCode"] = zip_match.group(1)
        state = _STATE_ZIP_RE.search(text)
        if state:
            address["addressRegion"] = state.group(1)

    if not address:
        return None
    return {"@type": "PostalAddress", **address}


def infer_availability(text: str, meta: Optional[Dict[str, str]] = None) -> Optional[str]:
    meta_value = (meta or {}).get("product:availability") or (meta or {}).get("og:availability") or ""
    haystack = f"{meta_value} {text}".lower()
    if re.search(r"out\s+of\s+stock|outofstock|sold\s+out", haystack):
        return f"{SCHEMA_CONTEXT}/OutOfStock"
    if re.search(r"pre-?order", haystack):
        return f"{SCHEMA_CONTEXT}/PreOrder"
    if re.search(r"in\s+stock|instock", haystack):
        return f"{SCHEMA_CONTEXT}/InStock"
    return None


def parse_rating(text: str) -> Optional[Dict[str, Any]]:
    rating = (re.search(r"(?:rating|rated)[:\s]*(\d+(?:\.\d+)?)", text, re.IGNORECASE)
              or re.search(r"(\d+(?:\.\d+)?)\s*(?:out\s+of\s+5|stars?)", text, re.IGNORECASE))
    if not rating:
        return None

    result = {"@type": "AggregateRating", "ratingValue": float(rating.group(1))}
    reviews = re.search(r"(\d[\d,]*)\s*reviews?", text, re.IGNORECASE)
    if reviews:
        result["reviewCount"] = int(reviews.group(1).replace(",", ""))
    return result


def parse_sku(text: str) -> Optional[str]:
    match = re.search(r"\b(?i:sku)\b[:\s#]+([A-Za-z0-9][A-Za-z0-9\-]+)", text)
    return match.group(1) if match else None


def parse_brand(text: str, meta: Dict[str, str]) -> Optional[str]:
    for key in ("product:brand", "og:brand", "brand"):
        if meta.get(key):
            return meta[key]
    match = re.search(r"\b(?i:brand)[:\s]+([A-Z][\w&\-]*(?:\s+(?!SKU\b)[A-Z][\w&\-]*){0,2})", text)
    return match.group(1).strip() if match else None


def parse_duration(text: str, label: str) -> Optional[str]:
    """ISO-8601 duration for phrases like "Cook time: 1 hour 30 minutes"."""
    match = re.search(
        rf"{label}[:\s]+(?:(\d+)\s*(?:hours?|hrs?|h)\b\s*)?(?:(\d+)\s*(?:minutes?|mins?|m)\b)?",
        text, re.IGNORECASE,
    )
    if not match or not (match.group(1) or match.group(2)):
        return None
    hours, minutes = match.group(1), match.group(2)
    return "PT" + (f"{int(hours)}H" if hours else "") + (f"{int(minutes)}M" if minutes else "")


def seconds_to_duration(value: str) -> Optional[str]:
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        return None
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    parts = (f"{hours}H" if hours else "") + (f"{minutes}M" if minutes else "") + (f"{seconds}S" if seconds else "")
    return "PT" + (parts or "0S")


def _to_24h(value: str) -> str:
    match = re.match(r"(\d{1,2})(?::(\d{2}))?\s*([ap])", value.strip().lower())
    if not match:
        return value.strip()
    hour, minute, half = int(match.group(1)) % 12, match.group(2) or "00", match.group(3)
    if half == "p":
        hour += 12
    return f"{hour:02d}:{minute}"


def parse_opening_hours(text: str) -> List[str]:
    hours = []
    for match in _HOURS_RE.finditer(text):
        start_day = _DAY_CODES[match.group(1).lower()[:3]]
        end_day = _DAY_CODES[match.group(2).lower()[:3]] if match.group(2) else None
        days = f"{start_day}-{end_day}" if end_day else start_day
        entry = f"{days} {_to_24h(match.group(3))}-{_to_24h(match.group(4))}"
        if entry not in hours:
            hours.append(entry)
    return hours


def parse_geo(meta: Dict[str, str]) -> Optional[Dict[str, Any]]:
    lat = meta.get("latitude") or meta.get("place:location:latitude")
    lon = meta.get("longitude") or meta.get("place:location:longitude")
    if not (lat and lon) and meta.get("geo.position"):
        parts = re.split(r"[;,]", meta["geo.position"])
        if len(parts) == 2:
            lat, lon = parts
    if not (lat and lon):
        return None
    try:
        return {"@type": "GeoCoordinates", "latitude": float(lat), "longitude": float(lon)}
    except ValueError:
        return None


def parse_ingredients(text: str) -> List[str]:
    ingredients = []
    for match in _INGREDIENT_RE.finditer(text):
        item = re.sub(r"\s+", " ", match.group(1)).strip()
        if item not in ingredients:
            ingredients.append(item)
    return ingredients


def parse_instructions(text: str) -> Any:
    """A HowToStep list when the steps are numbered, otherwise the instruction text."""
    match = _INSTRUCTIONS_RE.search(text)
    if not match:
        return None
    block = match.group(1).strip()
    steps = [s.strip() for s in _STEP_SPLIT_RE.split(block) if s.strip()]
    if len(steps) >= 2:
        return [{"@type": "HowToStep", "text": step} for step in steps]
    return block


def _images(page: ParsedPage) -> List[str]:
    return page.images[:MAX_IMAGES]


def _not_a_url(value: str) -> str:
    return "" if value.startswith(("http://", "https://")) else value


# ------------------ per-type routines ------------------

def extract_product(page: ParsedPage) -> Dict[str, Any]:
    text = page.combined_text()
    schema = {
        "name": page.open_graph.get("title") or page.title,
        "description": page.description or truncate(page.body_text, 300),
        "image": _images(page),
        "sku": parse_sku(text),
        "aggregateRating": parse_rating(text),
    }

    price = parse_price(text, page.meta_tags)
    if price:
        amount, currency = price
        schema["offers"] = {
            "@type": "Offer",
            "price": amount,
            "priceCurrency": currency,
            "availability": infer_availability(text, page.meta_tags),
            "url": page.url,
        }

    brand = parse_brand(text, page.meta_tags)
    if brand:
        schema["brand"] = {"@type": "Brand", "name": brand}
    return schema


def extract_article(page: ParsedPage) -> Dict[str, Any]:
    text = page.combined_text()
    schema = {
        "headline": page.open_graph.get("title") or page.title,
        "description": page.description or truncate(page.body_text, 200),
        "image": _images(page),
        "url": page.url,
    }

    author = _not_a_url(first_meta(page, "author", "article:author"))
    if not author:
        match = (re.search(r"(?:written|posted)\s+by\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)", text)
                 or re.search(r"\b[Bb]y\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)", text))
        author = match.group(1) if match else ""
    if author:
        schema["author"] = {"@type": "Person", "name": author}

    published = first_meta(page, "article:published_time", "datepublished", "date", "pubdate")
    schema["datePublished"] = normalize_date(published) if published else find_date(text)
    modified = first_meta(page, "article:modified_time", "datemodified", "og:updated_time")
    if modified:
        schema["dateModified"] = normalize_date(modified)

    publisher = first_meta(page, "og:site_name", "publisher", "article:publisher")
    if publisher and not publisher.startswith(("http://", "https://")):
        schema["publisher"] = {"@type": "Organization", "name": publisher}

    keywords = first_meta(page, "keywords", "news_keywords")
    if keywords:
        schema["keywords"] = ", ".join(k.strip() for k in keywords.split(",") if k.strip())
    return schema


def extract_local_business(page: ParsedPage) -> Dict[str, Any]:
    text = page.combined_text()
    return {
        "name": page.open_graph.get("site_name") or page.title,
        "description": page.description,
        "image": _images(page),
        "url": page.url,
        "address": parse_address(text),
        "telephone": parse_phone(text),
        "openingHours": parse_opening_hours(text),
        "geo": parse_geo(page.meta_tags),
    }


def extract_event(page: ParsedPage) -> Dict[str, Any]:
    text = page.combined_text()
    start = first_meta(page, "event:start_time", "startdate")
    end = first_meta(page, "event:end_time", "enddate")
    schema = {
        "name": page.open_graph.get("title") or page.title,
        "description": page.description,
        "image": _images(page),
        "url": page.url,
        "startDate": normalize_date(start) if start else find_date(text),
        "endDate": normalize_date(end) if end else None,
    }

    location = re.search(r"(?:location|venue|where)[:\s]+([A-Z][A-Za-z0-9\s,'&\-]{2,80}?)(?=[.;!]|\s+(?:when|date|time|tickets?)\b|$)",
                         text, re.IGNORECASE)
    if not location:
        location = re.search(r"\bat\s+the\s+([A-Z][A-Za-z\s]{2,60}?)(?=[.,;!]|$)", text)
    if location:
        place = {"@type": "Place", "name": location.group(1).strip(" ,"), "address": parse_address(text)}
        schema["location"] = place

    organizer = first_meta(page, "organizer")
    if not organizer:
        match = re.search(r"(?:organizer|organized\s+by|hosted\s+by)[:\s]+([A-Z][A-Za-z\s&]{1,60}?)(?=[,.;!]|$)",
                          text, re.IGNORECASE)
        organizer = match.group(1).strip() if match else ""
    if organizer:
        schema["organizer"] = {"@type": "Organization", "name": organizer}

    price = parse_price(text, page.meta_tags)
    if price:
        schema["offers"] = {"@type": "Offer", "price": price[0], "priceCurrency": price[1], "url": page.url}
    return schema


def extract_recipe(page: ParsedPage) -> Dict[str, Any]:
    text = page.body_text
    schema = {
        "name": page.open_graph.get("title") or page.title,
        "description": page.description or truncate(text, 200),
        "image": _images(page),
        "recipeIngredient": parse_ingredients(text),
        "recipeInstructions": parse_instructions(text),
        "prepTime": parse_duration(text, r"prep(?:aration)?\s+time"),
        "cookTime": parse_duration(text, r"cook(?:ing)?\s+time"),
        "totalTime": parse_duration(text, r"total\s+time"),
    }

    servings = re.search(r"(?:serves|servings|yield)[:\s]+(\d+(?:\s+(?:people|persons|servings|portions|pieces)\b)?)",
                         text, re.IGNORECASE)
    if servings:
        schema["recipeYield"] = servings.group(1)

    author = _not_a_url(first_meta(page, "author"))
    if author:
        schema["author"] = {"@type": "Person", "name": author}
    return schema


def extract_video(page: ParsedPage) -> Dict[str, Any]:
    duration = first_meta(page, "video:duration", "og:video:duration")
    upload = first_meta(page, "video:release_date", "og:video:release_date", "uploaddate")
    return {
        "name": page.open_graph.get("title") or page.title,
        "description": page.description,
        "thumbnailUrl": page.open_graph.get("image") or (page.images[0] if page.images else ""),
        "uploadDate": normalize_date(upload) if upload else None,
        "duration": seconds_to_duration(duration) if duration else None,
        "contentUrl": first_meta(page, "og:video:url", "og:video", "og:video:secure_url"),
        "url": page.url,
    }


def extract_web_page(page: ParsedPage) -> Dict[str, Any]:
    return {
        "name": page.title,
        "description": page.description,
        "url": page.url,
        "image": page.images[0] if page.images else None,
    }


class FieldExtractor:
    """Dispatch table from schema type to its extraction routine."""

    def __init__(self):
        self.routines: Dict[str, Callable[[ParsedPage], Dict[str, Any]]] = {
            "Product": extract_product,
            "Article": extract_article,
            "LocalBusiness": extract_local_business,
            "Event": extract_event,
            "Recipe": extract_recipe,
            "VideoObject": extract_video,
            "WebPage": extract_web_page,
        }

    def supported_types(self) -> List[str]:
        return list(self.routines)

    def extract(self, schema_type: str, page: ParsedPage) -> Dict[str, Any]:
        # Types without a routine get the generic page fields under their own @type
        routine = self.routines.get(schema_type, extract_web_page)
        if schema_type not in self.routines:
            logger.debug("No extractor for %s, using generic page fields", schema_type)

        fields = routine(page)
        return compact({"@context": SCHEMA_CONTEXT, "@type": schema_type, **fields})
