"""
Lexical content analysis: keywords, named entities, content type and readability.

Everything here is pattern based. Keyword weighting uses static word tables in
place of a real corpus IDF, and entities come from independent regex families.
"""
from __future__ import annotations
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Pattern, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

MONTHS = (
    "january|february|march|april|may|june|july|august|"
    "september|october|november|december"
)

STOP_WORDS = frozenset([
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'from', 'as', 'is', 'was', 'are', 'were', 'been',
    'be', 'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would',
    'could', 'should', 'may', 'might', 'can', 'this', 'that', 'these',
    'those', 'i', 'you', 'he', 'she', 'it', 'we', 'they', 'them', 'their',
    'its', 'his', 'her', 'our', 'us', 'me', 'my', 'if', 'so', 'no', 'yes',
])

VERY_COMMON_WORDS = frozenset([
    'about', 'also', 'any', 'because', 'both', 'each', 'even', 'every',
    'how', 'into', 'just', 'like', 'make', 'many', 'more', 'most', 'much',
    'new', 'not', 'now', 'only', 'other', 'our', 'out', 'over', 'some',
    'such', 'than', 'then', 'there', 'through', 'time', 'very', 'way',
    'what', 'when', 'where', 'which', 'who', 'why', 'your', 'all',
])

COMMON_WORDS = frozenset([
    'after', 'best', 'between', 'come', 'day', 'different', 'down',
    'find', 'first', 'get', 'give', 'good', 'great', 'help', 'here', 'know',
    'last', 'life', 'long', 'look', 'man', 'need', 'never', 'next', 'old',
    'people', 'place', 'right', 'same', 'say', 'see', 'take', 'tell',
    'think', 'too', 'two', 'under', 'use', 'want', 'well', 'work', 'world',
    'year', 'read', 'click', 'page', 'home', 'view',
])

# Capitalized bigrams that look like names but are not entities
COMMON_PHRASES = frozenset([
    'The Best', 'The New', 'The Old', 'New York', 'Los Angeles',
    'San Francisco', 'United States', 'North America', 'South America',
    'Read More', 'Learn More', 'Privacy Policy', 'Terms Of', 'All Rights',
    'Contact Us', 'About Us', 'Sign In', 'Log In', 'Add To', 'Buy Now',
    'Shop Now', 'Free Shipping', 'Customer Reviews', 'Home Page',
])

ENTITY_LIMIT = 10

_PEOPLE_RE = re.compile(r"\b([A-Z][a-z]+)\s+([A-Z][a-z]+)\b")
_ORG_RE = re.compile(r"\b([A-Z][A-Za-z&]*(?:\s+[A-Z][A-Za-z&]*)*\s+(?:Inc|LLC|Corp|Company|Corporation|Ltd|Limited)\.?)")
_LOCATION_RE = re.compile(r"\b(?:in|at|from|to)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?(?:,\s*[A-Z]{2}\b)?)")
_PRODUCT_RE = re.compile(r"\b([A-Z][a-z]+)\s+([A-Z0-9][A-Za-z0-9\-]*\d[A-Za-z0-9\-]*)\b")
_PRICE_RES = (
    re.compile(r"\$\s?\d{1,3}(?:,\d{3})*(?:\.\d{2})?|\$\s?\d+(?:\.\d{2})?"),
    re.compile(r"\b\d+(?:\.\d{2})?\s?(?:USD|EUR|GBP)\b", re.IGNORECASE),
    re.compile(r"(?:€|£)\s?\d+(?:[.,]\d{2})?"),
)
_DATE_RES = (
    re.compile(r"\b\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})?)?\b"),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
    re.compile(rf"\b(?:{MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}\s+(?:{MONTHS})\s+\d{{4}}\b", re.IGNORECASE),
)
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE_RE = re.compile(r"(?:\+1[\s.-]?)?(?:\(\d{3}\)\s*|\b\d{3}[\s.-])\d{3}[\s.-]\d{4}\b")
_URL_RE = re.compile(r"\bhttps?://[^\s<>\"')]+")

# A check is either a regex searched in the text or a predicate over it
Check = Union[Pattern, Callable[[str], bool]]


def _faq_question_count(text: str) -> bool:
    return text.count("?") >= 3


def _long_form(text: str) -> bool:
    return len(text) > 1000


def _has_paragraph_breaks(text: str) -> bool:
    return len(re.findall(r"\n\n", text)) > 3


# Ordered: FAQ and recipe go first so they win over article/product
CONTENT_TYPE_RULES: List[Tuple[str, List[Check]]] = [
    ("faq", [
        re.compile(r"\bfaq\b|frequently asked|common questions", re.IGNORECASE),
        _faq_question_count,
        re.compile(r"\bQ:|\bA:", re.IGNORECASE),
    ]),
    ("recipe", [
        re.compile(r"ingredients?:", re.IGNORECASE),
        re.compile(r"instructions?:|directions:", re.IGNORECASE),
        re.compile(r"\d+\s*(?:cups?|tbsp|tsp|oz|lbs?|grams?|ml)\b", re.IGNORECASE),
        re.compile(r"\b(?:bake|cook|stir|mix|blend|preheat)\b", re.IGNORECASE),
        re.compile(r"prep time|cook time|servings", re.IGNORECASE),
    ]),
    ("product", [
        re.compile(r"\$\d+"),
        re.compile(r"\b(?:price|cost|buy|purchase|order)\b", re.IGNORECASE),
        re.compile(r"in stock|out of stock|\bavailable\b", re.IGNORECASE),
        re.compile(r"\b(?:brand|model|sku)\b", re.IGNORECASE),
        re.compile(r"add to cart|buy now|add to bag", re.IGNORECASE),
    ]),
    ("event", [
        re.compile(r"\d{1,2}:\d{2}\s*(?:am|pm)", re.IGNORECASE),
        re.compile(rf"(?:{MONTHS})\s+\d{{1,2}}", re.IGNORECASE),
        re.compile(r"\b(?:tickets?|registration|rsvp)\b", re.IGNORECASE),
        re.compile(r"\b(?:venue|location|address)\b", re.IGNORECASE),
        re.compile(r"\b(?:starts?|begins?|ends?)\b", re.IGNORECASE),
    ]),
    ("business", [
        re.compile(r"\d{3}[-.]?\d{3}[-.]?\d{4}"),
        re.compile(r"\d+\s+\w+\s+(?:street|st|avenue|ave|road|rd|drive|dr)\b", re.IGNORECASE),
        re.compile(r"hours?:|\bopen\b|\bclosed\b", re.IGNORECASE),
        re.compile(r"monday|tuesday|wednesday|thursday|friday|saturday|sunday", re.IGNORECASE),
        re.compile(r"\b(?:restaurant|store|shop|business|company)\b", re.IGNORECASE),
    ]),
    ("article", [
        re.compile(r"\bby\s+[A-Z][a-z]+\s+[A-Z][a-z]+"),
        re.compile(rf"(?:{MONTHS})\s+\d{{1,2}},?\s+\d{{4}}", re.IGNORECASE),
        _long_form,
        _has_paragraph_breaks,
    ]),
    ("howto", [
        re.compile(r"how to", re.IGNORECASE),
        re.compile(r"step \d+", re.IGNORECASE),
        re.compile(r"first,|second,|third,|finally,", re.IGNORECASE),
        re.compile(r"you will need|materials|tools", re.IGNORECASE),
    ]),
]


@dataclass
class Readability:
    flesch_score: float = 0.0
    grade_level: float = 0.0
    difficulty: str = "unknown"


@dataclass
class ContentAnalysis:
    keywords: List[str] = field(default_factory=list)
    phrases: List[str] = field(default_factory=list)
    entities: Dict[str, List[str]] = field(default_factory=lambda: empty_entities())
    relationships: List[Dict[str, object]] = field(default_factory=list)
    content_type: str = "unknown"
    readability: Readability = field(default_factory=Readability)
    metadata: Dict[str, float] = field(default_factory=dict)


def empty_entities() -> Dict[str, List[str]]:
    return {
        "people": [],
        "organizations": [],
        "locations": [],
        "products": [],
        "prices": [],
        "dates": [],
        "emails": [],
        "phones": [],
        "urls": [],
    }


def _unique(values, limit: int = ENTITY_LIMIT) -> List[str]:
    seen = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.append(value)
        if len(seen) >= limit:
            break
    return seen


class ContentAnalyzer:
    """Analyze page text. Instances are stateless and safe to share between workers."""

    def __init__(self, min_type_matches: int = 2, max_keywords: int = 10):
        self.min_type_matches = min_type_matches
        self.max_keywords = max_keywords

    def analyze(self, text: str, extract_keywords: bool = True, extract_entities: bool = True,
                include_phrases: bool = False, detect_relationships: bool = True) -> ContentAnalysis:
        analysis = ContentAnalysis()
        if not text or not isinstance(text, str):
            return analysis

        if extract_keywords:
            analysis.keywords = self.extract_keywords(text, self.max_keywords)
            if include_phrases:
                analysis.phrases = self.extract_phrases(text)
        if extract_entities:
            analysis.entities = self.extract_entities(text)
        if detect_relationships:
            analysis.relationships = self.detect_relationships(text, analysis.entities)

        analysis.content_type = self.detect_content_type(text)
        analysis.readability = self.calculate_readability(text)
        analysis.metadata = {
            "word_count": count_words(text),
            "sentence_count": count_sentences(text),
            "paragraph_count": count_paragraphs(text),
            "average_word_length": average_word_length(text),
        }
        logger.debug("Analyzed %d words, content type %s", analysis.metadata["word_count"], analysis.content_type)
        return analysis

    # ------------------ keywords ------------------

    @staticmethod
    def tokenize(text: str) -> List[str]:
        words = re.sub(r"[^\w\s]", " ", text.lower()).split()
        return [w for w in words if len(w) > 2 and w not in STOP_WORDS and not w.isdigit()]

    @staticmethod
    def word_weight(word: str) -> float:
        """Stand-in for IDF: penalize words that carry little topical signal."""
        if word in VERY_COMMON_WORDS:
            return 0.1
        if word in COMMON_WORDS:
            return 0.5
        return 1.0

    def extract_keywords(self, text: str, max_keywords: int = 10) -> List[str]:
        words = self.tokenize(text)
        if not words:
            return []

        total = len(words)
        scores = {term: (count / total) * self.word_weight(term) for term, count in Counter(words).items()}
        # sorted() is stable, so ties keep first-appearance order
        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        return [term for term, _score in ranked[:max_keywords]]

    def extract_phrases(self, text: str, max_phrases: int = 5) -> List[str]:
        """Repeated 2-3 word phrases made of content words."""
        counts: Counter = Counter()
        for sentence in re.split(r"[.!?\n]+", text.lower()):
            words = re.sub(r"[^\w\s]", " ", sentence).split()
            for size in (2, 3):
                for i in range(len(words) - size + 1):
                    window = words[i:i + size]
                    if any(w in STOP_WORDS or len(w) <= 2 or w in VERY_COMMON_WORDS for w in window):
                        continue
                    counts[" ".join(window)] += 1

        repeated = [(phrase, n * len(phrase.split())) for phrase, n in counts.items() if n >= 2]
        repeated.sort(key=lambda item: item[1], reverse=True)
        return [phrase for phrase, _score in repeated[:max_phrases]]

    # ------------------ entities ------------------

    def extract_entities(self, text: str) -> Dict[str, List[str]]:
        entities = empty_entities()

        people = (f"{m.group(1)} {m.group(2)}" for m in _PEOPLE_RE.finditer(text))
        entities["people"] = _unique(p for p in people if p not in COMMON_PHRASES)

        entities["organizations"] = _unique(m.group(1) for m in _ORG_RE.finditer(text))

        locations = (m.group(1) for m in _LOCATION_RE.finditer(text))
        entities["locations"] = _unique(loc for loc in locations if loc not in COMMON_PHRASES)

        entities["products"] = _unique(f"{m.group(1)} {m.group(2)}" for m in _PRODUCT_RE.finditer(text))

        prices = []
        for pattern in _PRICE_RES:
            prices.extend(m.group(0) for m in pattern.finditer(text))
        entities["prices"] = _unique(prices)

        dates = []
        for pattern in _DATE_RES:
            dates.extend(m.group(0) for m in pattern.finditer(text))
        entities["dates"] = _unique(dates)

        entities["emails"] = _unique(m.group(0) for m in _EMAIL_RE.finditer(text))
        entities["phones"] = _unique(m.group(0) for m in _PHONE_RE.finditer(text))
        entities["urls"] = _unique(m.group(0).rstrip(".,;") for m in _URL_RE.finditer(text))
        return entities

    def detect_relationships(self, text: str, entities: Dict[str, List[str]]) -> List[Dict[str, object]]:
        relationships = []

        def _near(a: str, b: str, distance: int) -> bool:
            ia, ib = text.find(a), text.find(b)
            return ia >= 0 and ib >= 0 and abs(ia - ib) < distance

        for org in entities.get("organizations", []):
            for person in entities.get("people", []):
                if person not in org and _near(person, org, 200):
                    relationships.append({"type": "worksFor", "subject": person, "object": org, "confidence": 0.7})
            for product in entities.get("products", []):
                if _near(product, org, 150):
                    relationships.append({"type": "manufacturer", "subject": product, "object": org, "confidence": 0.6})
        return relationships

    # ------------------ classification ------------------

    @staticmethod
    def _check_matches(check: Check, text: str) -> bool:
        if hasattr(check, "search"):
            return check.search(text) is not None
        return bool(check(text))

    def detect_content_type(self, text: str, rules: Sequence[Tuple[str, List[Check]]] = CONTENT_TYPE_RULES) -> str:
        for content_type, checks in rules:
            matched = sum(1 for check in checks if self._check_matches(check, text))
            if matched >= self.min_type_matches:
                return content_type
        return "general"

    # ------------------ readability ------------------

    def calculate_readability(self, text: str) -> Readability:
        words = count_words(text)
        sentences = count_sentences(text)
        if words == 0 or sentences == 0:
            return Readability(flesch_score=0.0, grade_level=0.0, difficulty=difficulty_level(0.0))

        syllables = count_syllables(text)
        words_per_sentence = words / sentences
        syllables_per_word = syllables / words

        flesch = 206.835 - 1.015 * words_per_sentence - 84.6 * syllables_per_word
        grade = 0.39 * words_per_sentence + 11.8 * syllables_per_word - 15.59

        flesch = max(0.0, min(100.0, flesch))
        return Readability(
            flesch_score=round(flesch, 2),
            grade_level=round(max(0.0, grade), 2),
            difficulty=difficulty_level(flesch),
        )


def count_words(text: str) -> int:
    return len(text.split())


def count_sentences(text: str) -> int:
    return len(re.findall(r"[.!?]+", text))


def count_paragraphs(text: str) -> int:
    return len(re.findall(r"\n\n+", text)) + 1


def average_word_length(text: str) -> float:
    words = text.split()
    if not words:
        return 0.0
    return round(sum(len(w) for w in words) / len(words), 2)


def count_syllables(text: str) -> int:
    # Vowel groups approximate syllables well enough for Flesch scoring
    return sum(len(re.findall(r"[aeiouy]+", word)) for word in text.lower().split())


def difficulty_level(score: float) -> str:
    if score >= 90:
        return "very easy"
    if score >= 80:
        return "easy"
    if score >= 70:
        return "fairly easy"
    if score >= 60:
        return "standard"
    if score >= 50:
        return "fairly difficult"
    if score >= 30:
        return "difficult"
    return "very difficult"
