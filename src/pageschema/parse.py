from __future__ import annotations
import logging
import re
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit, urlparse, parse_qs, urlencode

import idna
from bs4 import BeautifulSoup, Tag
from defusedxml import ElementTree as SafeET

from .errors import ParseError
from .models import ParsedPage
from .schema import extract_json_ld, extract_microdata_hints

logger = logging.getLogger(__name__)

# Bounds downstream analysis cost
MAX_BODY_TEXT = 5000

BLOCK_TAGS = [
    "p", "div", "section", "article", "main", "header", "footer", "aside", "nav",
    "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "li", "dl", "dt", "dd",
    "table", "tr", "blockquote", "pre", "figure", "br", "hr",
]
# U+2029 PARAGRAPH SEPARATOR marks block boundaries until whitespace is collapsed
_BLOCK_BREAK = "\u2029"

UTM_PARAMS = {
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term',
    'utm_content', 'utm_id', 'utm_source_platform',
    'utm_creative_format', 'utm_marketing_tactic'
}

# ------------------ URL helpers ------------------

def normalize_url(base: str, href: str) -> str:
    u = urljoin(base, href)
    parts = list(urlsplit(u))
    # keep query; drop fragment
    parts[4] = ""
    return urlunsplit(parts)


@lru_cache(maxsize=10000)
def normalize_url_hardened(url: str) -> str:
    """
    URL normalization used for cache keys:
    - Punycode normalization
    - Default port stripping
    - UTM parameter stripping and parameter sorting
    - Fragment removal
    """
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()

    try:
        domain = idna.encode(parsed.netloc.lower()).decode('ascii')
    except (idna.IDNAError, UnicodeError):
        domain = parsed.netloc.lower()

    try:
        port = parsed.port
    except ValueError:
        port = None
    if port:
        default_ports = {'http': 80, 'https': 443}
        if port == default_ports.get(scheme):
            domain = domain.rsplit(':', 1)[0]

    # Trailing slashes are significant for server routing, keep the path as-is
    path = parsed.path or "/"

    query = parsed.query
    if query:
        params = parse_qs(query, keep_blank_values=True)
        filtered_params = {k: v for k, v in params.items() if k.lower() not in UTM_PARAMS}
        query = urlencode(sorted(filtered_params.items()), doseq=True) if filtered_params else ""

    return urlunsplit((scheme, domain, path, query, ""))


def resolve_url(url: str, base_url: str) -> str:
    """Resolve an image/link reference to an absolute URL."""
    url = (url or "").strip()
    if not url:
        return ""
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        scheme = urlsplit(base_url).scheme if base_url else ""
        return f"{scheme if scheme in ('http', 'https') else 'https'}:{url}"
    if not base_url:
        return url
    return urljoin(base_url, url)


def get_domain(url: str) -> str:
    """Host part of a URL, lower-cased; used as the rate-limit and circuit key."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""

# ------------------ page parsing ------------------

def _clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.replace("\xa0", " ")).strip()


def _meta_key(tag: Tag) -> str:
    return (tag.get("property") or tag.get("name") or "").strip().lower()


def _extract_meta_tags(soup: BeautifulSoup) -> Dict[str, str]:
    meta = {}
    for tag in soup.find_all("meta"):
        key = _meta_key(tag)
        content = tag.get("content")
        if key and content is not None:
            meta[key] = content.strip()
    return meta


def _extract_prefixed(meta: Dict[str, str], prefix: str) -> Dict[str, str]:
    return {key[len(prefix):]: value for key, value in meta.items() if key.startswith(prefix)}


def _extract_title(soup: BeautifulSoup, meta: Dict[str, str]) -> str:
    title_tag = soup.find("title")
    if title_tag:
        title = _clean_text(title_tag.get_text())
        if title:
            return title

    if meta.get("og:title"):
        return _clean_text(meta["og:title"])

    h1 = soup.find("h1")
    if h1:
        return _clean_text(h1.get_text(" "))

    return ""


def _extract_description(meta: Dict[str, str]) -> str:
    return _clean_text(meta.get("description") or meta.get("og:description") or "")


def _extract_images(soup: BeautifulSoup, meta: Dict[str, str], base_url: str) -> List[str]:
    candidates = []
    if meta.get("og:image"):
        candidates.append(meta["og:image"])
    for img in soup.find_all("img"):
        src = img.get("src")
        if src:
            candidates.append(src)

    images = []
    seen = set()
    for src in candidates:
        resolved = resolve_url(src, base_url)
        if resolved and not resolved.startswith("data:") and resolved not in seen:
            seen.add(resolved)
            images.append(resolved)
    return images


def _find_content_container(soup: BeautifulSoup) -> Optional[Tag]:
    for name in ("main", "article"):
        container = soup.find(name)
        if container:
            return container
    return soup.find("div", class_=lambda c: bool(c) and "content" in " ".join(c if isinstance(c, list) else [c]).lower())


def _extract_body_text(soup: BeautifulSoup) -> str:
    """Visible text with block elements separated by blank lines.

    `<head>` is left in place: html.parser nests `<body>` inside it when
    `</head>` is omitted, and its other children carry no text.
    """
    # Mutates the tree; run last
    for tag in soup.find_all(["script", "style", "noscript", "template", "title"]):
        tag.decompose()
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert_before(_BLOCK_BREAK)
        tag.insert_after(_BLOCK_BREAK)

    container = _find_content_container(soup) or soup
    blocks = (_clean_text(part) for part in container.get_text(separator=" ").split(_BLOCK_BREAK))
    text = "\n\n".join(block for block in blocks if block)
    return text[:MAX_BODY_TEXT]


def parse_page(html: str, base_url: str = "") -> ParsedPage:
    """Extract structural facts from raw HTML.

    Every sub-step is best-effort: missing or malformed fields come back empty.
    """
    if not isinstance(html, str):
        raise ParseError(f"Expected HTML text, got {type(html).__name__}")

    soup = BeautifulSoup(html, "html.parser")
    meta = _extract_meta_tags(soup)

    return ParsedPage(
        url=base_url,
        title=_extract_title(soup, meta),
        description=_extract_description(meta),
        images=_extract_images(soup, meta, base_url),
        meta_tags=meta,
        open_graph=_extract_prefixed(meta, "og:"),
        twitter_card=_extract_prefixed(meta, "twitter:"),
        existing_schemas=extract_json_ld(soup),
        microdata=extract_microdata_hints(soup),
        body_text=_extract_body_text(soup),
    )

# ------------------ sitemaps ------------------

def sniff_sitemap_kind(xml_text: str) -> str:
    try:
        root = SafeET.fromstring(xml_text.encode("utf-8"))
        tag = root.tag.lower()
        if tag.endswith("sitemapindex"):
            return "sitemap_index"
    except (SafeET.ParseError, ValueError):
        pass
    return "sitemap"


def extract_from_sitemap(xml_text: str) -> Tuple[str, List[str]]:
    """Return (kind, locs) for a sitemap or sitemap index document."""
    kind = sniff_sitemap_kind(xml_text)
    try:
        root = SafeET.fromstring(xml_text.encode("utf-8"))
    except (SafeET.ParseError, ValueError) as e:
        logger.warning("Could not parse sitemap XML: %s", e)
        return kind, []

    ns = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}
    path = ".//sm:sitemap/sm:loc" if kind == "sitemap_index" else ".//sm:url/sm:loc"
    locs = [e.text.strip() for e in root.findall(path, ns) if e.text and e.text.strip()]
    if not locs:
        # Sitemaps served without the namespace declaration
        bare = ".//sitemap/loc" if kind == "sitemap_index" else ".//url/loc"
        locs = [e.text.strip() for e in root.findall(bare) if e.text and e.text.strip()]
    return kind, locs


def filter_urls(urls: Iterable[str], pattern: Optional[str]) -> List[str]:
    """Keep URLs matching a wildcard pattern (`*` any run, `?` one character)."""
    if not pattern:
        return list(urls)
    regex = re.compile(re.escape(pattern).replace(r"\*", ".*").replace(r"\?", "."))
    return [u for u in urls if regex.search(u)]
