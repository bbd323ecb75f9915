"""
Schema type detection.

Each supported type owns a table of weighted indicators. A page's score for a
type is the sum of the weights of the indicators that fire, clamped to 1.0.
Adding a type or an indicator is a matter of extending the tables below.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .analyzer import ContentAnalysis, MONTHS
from .config import DetectionConfig
from .models import DetectionCandidate, ParsedPage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Signals:
    """What an indicator gets to look at: the page plus its text in the rule's scope."""
    page: ParsedPage
    text: str
    lower: str
    content_type: str = ""


@dataclass(frozen=True)
class Indicator:
    label: str
    weight: float
    check: Callable[[Signals], bool]


@dataclass(frozen=True)
class TypeRule:
    type: str
    # "full" = title + description + body, "title_body" = title + body, "body" = body only
    scope: str
    indicators: Tuple[Indicator, ...]


def og_type(weight: float, *values: str) -> Indicator:
    wanted = {v.lower() for v in values}
    return Indicator(f"og:type={values[0]}", weight,
                     lambda s: s.page.open_graph.get("type", "").strip().lower() in wanted)


def meta_present(label: str, weight: float, *keys: str) -> Indicator:
    return Indicator(label, weight, lambda s: any(s.page.meta_tags.get(k) for k in keys))


def pattern(label: str, weight: float, regex: str, flags: int = 0) -> Indicator:
    compiled = re.compile(regex, flags)
    return Indicator(label, weight, lambda s: compiled.search(s.text) is not None)


def keywords(weight: float, words: Iterable[str]) -> List[Indicator]:
    return [Indicator(f"keyword: {w}", weight, lambda s, w=w: w in s.lower) for w in words]


def existing_json_ld(schema_type: str, weight: float = 0.3) -> Indicator:
    return Indicator(f"existing {schema_type} JSON-LD", weight,
                     lambda s: schema_type in s.page.existing_types())


def content_type_agrees(content_type: str, weight: float = 0.1) -> Indicator:
    return Indicator(f"content type: {content_type}", weight, lambda s: s.content_type == content_type)


# Declaration order breaks confidence ties
DEFAULT_RULES: Tuple[TypeRule, ...] = (
    TypeRule("Product", "full", (
        og_type(0.4, "product"),
        pattern("price detected ($)", 0.3, r"\$\s?\d+(?:\.\d+)?"),
        pattern("price detected (currency code)", 0.15, r"\d+\s*(?:USD|EUR|GBP)\b", re.IGNORECASE),
        pattern("price label", 0.15, r"price[:\s]+\$?\d+", re.IGNORECASE),
        pattern("decimal amount", 0.1, r"\d+\.\d{2}\b"),
        *keywords(0.05, [
            "add to cart", "buy now", "purchase", "in stock", "out of stock",
            "product details", "product description", "sku", "brand",
            "shipping", "delivery", "availability", "add to bag",
        ]),
        meta_present("product meta tags", 0.2, "product:price:amount", "product:price", "og:price:amount"),
        pattern("rating found", 0.1, r"\d+(?:\.\d+)?\s*(?:stars?|rating)", re.IGNORECASE),
        pattern("reviews found", 0.1, r"\d+\s*reviews?", re.IGNORECASE),
        existing_json_ld("Product"),
        content_type_agrees("product"),
    )),
    TypeRule("Article", "full", (
        og_type(0.4, "article"),
        meta_present("article meta tags", 0.3, "article:published_time", "article:author"),
        pattern("published label", 0.1, r"published[:\s]+", re.IGNORECASE),
        pattern("publication date (US)", 0.1, r"\d{1,2}/\d{1,2}/\d{4}"),
        pattern("publication date (ISO)", 0.1, r"\d{4}-\d{2}-\d{2}"),
        pattern("publication date (long form)", 0.1, rf"(?:{MONTHS})\s+\d{{1,2}},?\s+\d{{4}}", re.IGNORECASE),
        pattern("author name pattern", 0.1, r"\b[Bb]y\s+[A-Z][a-z]+\s+[A-Z][a-z]+"),
        meta_present("author meta tag", 0.15, "author", "og:author"),
        *keywords(0.05, [
            "read more", "continue reading", "share this article",
            "related articles", "tags:", "category:", "posted in",
        ]),
        Indicator("substantial content length", 0.1, lambda s: len(s.page.body_text) > 1000),
        existing_json_ld("Article"),
        content_type_agrees("article"),
    )),
    TypeRule("LocalBusiness", "full", (
        pattern("street address", 0.15, r"\d+\s+[A-Z][a-z]+\s+(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr)\b",
                re.IGNORECASE),
        pattern("zip code", 0.15, r"\b\d{5}(?:-\d{4})?\b"),
        pattern("state and zip", 0.15, r"\b[A-Z]{2}\s+\d{5}\b"),
        pattern("phone number found", 0.15,
                r"\(\d{3}\)\s*\d{3}-\d{4}|\b\d{3}-\d{3}-\d{4}\b|\+\d{1,3}\s*\d{3}\s*\d{3}\s*\d{4}"),
        pattern("business hours found", 0.15, r"hours?[:\s]+(?:mon|tue|wed|thu|fri|sat|sun)", re.IGNORECASE),
        pattern("time format found", 0.1, r"\d{1,2}:\d{2}\s*(?:am|pm)", re.IGNORECASE),
        *keywords(0.05, [
            "visit us", "our location", "directions", "contact us",
            "call us", "email us", "get in touch", "store hours",
            "open now", "closed", "reservations", "book now",
        ]),
        meta_present("geo coordinates in meta", 0.2, "geo.position", "latitude", "longitude"),
        existing_json_ld("LocalBusiness"),
        content_type_agrees("business"),
    )),
    TypeRule("Event", "title_body", (
        og_type(0.4, "event"),
        meta_present("event meta tags", 0.3, "event:start_time", "event:end_time"),
        *keywords(0.08, [
            "register now", "rsvp", "buy tickets", "get tickets",
            "event details", "venue", "location:", "when:", "where:",
            "join us", "attend", "conference", "workshop", "seminar",
        ]),
        pattern("event date pattern", 0.1, rf"(?:{MONTHS})\s+\d{{1,2}}", re.IGNORECASE),
        existing_json_ld("Event"),
        content_type_agrees("event"),
    )),
    TypeRule("VideoObject", "body", (
        og_type(0.5, "video", "video.other", "video.movie", "video.episode"),
        meta_present("video meta tags", 0.3, "og:video", "og:video:url", "video:duration"),
        Indicator("video platform detected", 0.2, lambda s: "youtube" in s.lower or "vimeo" in s.lower),
        pattern("duration format found", 0.1, r"\b\d+:\d{2}\b"),
        existing_json_ld("VideoObject"),
    )),
    TypeRule("Recipe", "title_body", (
        *keywords(0.1, [
            "ingredients", "instructions", "directions", "recipe",
            "prep time", "cook time", "servings", "yield",
            "calories", "nutrition", "bake", "mix", "stir",
        ]),
        pattern("measurement units found", 0.15, r"\d+\s*(?:cups?|tbsp|tsp|oz|lbs?|grams?|ml)\b", re.IGNORECASE),
        existing_json_ld("Recipe"),
        content_type_agrees("recipe"),
    )),
)


def scope_text(page: ParsedPage, scope: str) -> str:
    if scope == "body":
        return page.body_text
    return page.combined_text(include_description=(scope == "full"))


def score_rule(rule: TypeRule, page: ParsedPage, content_type: str = "") -> DetectionCandidate:
    """Score one type in isolation. Pure; safe to run for all rules concurrently."""
    text = scope_text(page, rule.scope)
    signals = Signals(page=page, text=text, lower=text.lower(), content_type=content_type)

    score = 0.0
    indicators = []
    for indicator in rule.indicators:
        if indicator.check(signals):
            score += indicator.weight
            indicators.append(indicator.label)

    return DetectionCandidate(type=rule.type, confidence=round(min(1.0, score), 4), indicators=indicators)


class TypeDetector:
    def __init__(self, config: Optional[DetectionConfig] = None, rules: Sequence[TypeRule] = DEFAULT_RULES):
        self.config = config or DetectionConfig()
        self.rules = tuple(rules)

    def detect(self, page: ParsedPage, analysis: Optional[ContentAnalysis] = None,
               target_types: Iterable[str] = ()) -> List[DetectionCandidate]:
        """Rank candidate types for `page`, best first. Never returns an empty list."""
        if not isinstance(page, ParsedPage):
            raise TypeError(f"detect() expects a ParsedPage, got {type(page).__name__}")

        content_type = analysis.content_type if analysis is not None else ""
        candidates = [score_rule(rule, page, content_type) for rule in self.rules]
        candidates = [c for c in candidates if c.confidence > 0]

        hints = set(target_types or ())
        if hints:
            for candidate in candidates:
                if candidate.type in hints:
                    candidate.confidence = round(min(1.0, candidate.confidence * self.config.hint_boost), 4)
                    candidate.indicators.append("target type hint")

        # Stable sort keeps declaration order among equal scores
        candidates.sort(key=lambda c: c.confidence, reverse=True)

        if not candidates or candidates[0].confidence < self.config.fallback_threshold:
            candidates.insert(0, DetectionCandidate(
                type="WebPage",
                confidence=self.config.fallback_confidence,
                indicators=["default fallback"],
            ))

        logger.debug("Detected %s for %s", [(c.type, c.confidence) for c in candidates[:3]], page.url)
        return candidates
