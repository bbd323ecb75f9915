"""
Companion schemas for a generated record.

Besides the primary entity a page usually implies a few others: the
breadcrumb trail of its URL, the WebSite it belongs to, the author or
publisher of an article, the brand of a product, the venue of an event.
`detect_related` derives those from the primary schema and the page;
`build_relationships` links the primary schema to them by `@id`.
"""
from __future__ import annotations
import copy
import logging
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from .analyzer import ContentAnalysis
from .models import SCHEMA_CONTEXT, ParsedPage, compact

logger = logging.getLogger(__name__)

ARTICLE_TYPES = ("Article", "BlogPosting", "NewsArticle")

_TITLE_SEPARATORS = re.compile(r"\s[|\-\u2013\u2014]\s")

RelatedRoutine = Callable[[Dict[str, Any], ParsedPage, Optional[ContentAnalysis]], List[Dict[str, Any]]]


def site_origin(url: str) -> str:
    """`scheme://host[:port]` of an absolute http(s) URL, or "" for anything else."""
    try:
        parts = urlsplit(url or "")
    except ValueError:
        return ""
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


def _node(schema_type: str, **fields: Any) -> Dict[str, Any]:
    return compact({"@context": SCHEMA_CONTEXT, "@type": schema_type, **fields})


def _name_of(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("name") or "")
    if isinstance(value, str):
        return value
    return ""


def breadcrumb_name(segment: str) -> str:
    words = segment.replace("-", " ").replace("_", " ").split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


def generate_breadcrumb(url: str) -> Optional[Dict[str, Any]]:
    """BreadcrumbList from the URL path; None for the home page."""
    origin = site_origin(url)
    if not origin:
        return None
    segments = [s for s in urlsplit(url).path.split("/") if s]
    if not segments:
        return None

    items = [{"@type": "ListItem", "position": 1, "name": "Home", "item": f"{origin}/"}]
    path = ""
    for position, segment in enumerate(segments, start=2):
        path += f"/{segment}"
        items.append({
            "@type": "ListItem",
            "position": position,
            "name": breadcrumb_name(segment),
            "item": f"{origin}{path}",
        })
    return _node("BreadcrumbList", itemListElement=items)


def site_name(page: ParsedPage) -> str:
    if page.open_graph.get("site_name"):
        return page.open_graph["site_name"]
    if page.title:
        parts = _TITLE_SEPARATORS.split(page.title)
        if len(parts) > 1 and parts[-1].strip():
            return parts[-1].strip()
    host = urlsplit(page.url).hostname or ""
    return re.sub(r"^www\.", "", host) or "Website"


def generate_website(page: ParsedPage) -> Optional[Dict[str, Any]]:
    origin = site_origin(page.url)
    if not origin:
        return None
    site_url = f"{origin}/"
    return _node(
        "WebSite",
        **{
            "@id": site_url,
            "url": site_url,
            "name": site_name(page),
            "potentialAction": {
                "@type": "SearchAction",
                "target": {"@type": "EntryPoint", "urlTemplate": f"{site_url}search?q={{search_term_string}}"},
                "query-input": "required name=search_term_string",
            },
        },
    )


# ------------------ per-type companions ------------------

def article_related(schema: Dict[str, Any], page: ParsedPage,
                    analysis: Optional[ContentAnalysis] = None) -> List[Dict[str, Any]]:
    related = []
    author = _name_of(schema.get("author"))
    if author:
        related.append(_node("Person", name=author))

    publisher = schema.get("publisher")
    if _name_of(publisher):
        logo = publisher.get("logo") if isinstance(publisher, dict) else None
        related.append(_node("Organization", name=_name_of(publisher), logo=logo, url=site_origin(page.url)))

    if site_origin(page.url):
        image = {"@type": "ImageObject", "url": page.images[0]} if page.images else None
        related.append(_node(
            "WebPage",
            **{
                "@id": page.url,
                "url": page.url,
                "name": page.title or schema.get("headline"),
                "description": page.description,
                "isPartOf": {"@type": "WebSite", "@id": f"{site_origin(page.url)}/"},
                "primaryImageOfPage": image,
            },
        ))
    return related


def product_related(schema: Dict[str, Any], page: ParsedPage,
                    analysis: Optional[ContentAnalysis] = None) -> List[Dict[str, Any]]:
    related = []
    organizations = analysis.entities.get("organizations", []) if analysis is not None else []

    brand = _name_of(schema.get("brand"))
    if brand:
        # A brand that also reads as a company name is published as one
        is_company = any(brand in org for org in organizations)
        related.append(_node("Organization" if is_company else "Brand", name=brand))

    if organizations:
        related.append(_node("Organization", name=organizations[0], url=site_origin(page.url)))
    return related


def business_related(schema: Dict[str, Any], page: ParsedPage,
                     analysis: Optional[ContentAnalysis] = None) -> List[Dict[str, Any]]:
    address = schema.get("address")
    if not address:
        return []
    related = [_node("Place", name=schema.get("name"), address=address, geo=schema.get("geo"))]
    if isinstance(address, dict):
        fields = {k: v for k, v in address.items() if k not in ("@context", "@type")}
        related.append(_node("PostalAddress", **fields))
    return related


def event_related(schema: Dict[str, Any], page: ParsedPage,
                  analysis: Optional[ContentAnalysis] = None) -> List[Dict[str, Any]]:
    related = []
    location = schema.get("location")
    if isinstance(location, dict):
        related.append(_node(
            "Place",
            name=location.get("name") or "Event Location",
            address=location.get("address"),
            geo=location.get("geo"),
        ))

    organizer = schema.get("organizer")
    if _name_of(organizer):
        url = organizer.get("url") if isinstance(organizer, dict) else None
        related.append(_node("Organization", name=_name_of(organizer), url=url))

    performer = _name_of(schema.get("performer"))
    if performer:
        related.append(_node("Person", name=performer))
    return related


class RelatedSchemaDetector:
    """Derive companion schemas from a primary schema. Stateless."""

    def __init__(self):
        self.routines: Dict[str, RelatedRoutine] = {
            "Product": product_related,
            "LocalBusiness": business_related,
            "Event": event_related,
        }
        for schema_type in ARTICLE_TYPES:
            self.routines[schema_type] = article_related

    def detect_related(self, schema: Optional[Dict[str, Any]], page: ParsedPage,
                       analysis: Optional[ContentAnalysis] = None) -> List[Dict[str, Any]]:
        """Breadcrumb first, then type-specific companions, then the WebSite."""
        if not isinstance(schema, dict) or not schema.get("@type"):
            return []

        related = []
        breadcrumb = generate_breadcrumb(page.url)
        if breadcrumb:
            related.append(breadcrumb)

        routine = self.routines.get(schema["@type"])
        if routine is not None:
            related.extend(routine(schema, page, analysis))

        website = generate_website(page)
        if website:
            related.append(website)

        logger.debug("Derived %d related schemas for %s", len(related), page.url)
        return related

    @staticmethod
    def build_relationships(schema: Dict[str, Any], related: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Primary schema (a copy, with references to `related` filled in) followed by `related`.

        Only fields the primary schema leaves unset are linked.
        """
        enhanced = copy.deepcopy(schema)
        primary_type = enhanced.get("@type")

        for node in related:
            ref = {"@id": node.get("@id") or node.get("name")}
            node_type = node.get("@type")
            if node_type == "Person" and primary_type == "Article":
                enhanced.setdefault("author", ref)
            elif node_type == "Organization" and primary_type == "Article":
                enhanced.setdefault("publisher", ref)
            elif node_type == "Organization" and primary_type == "Product":
                enhanced.setdefault("manufacturer", ref)
            elif node_type == "Place" and primary_type == "Event":
                enhanced.setdefault("location", ref)
            elif node_type == "WebPage" and node.get("@id"):
                enhanced.setdefault("isPartOf", {"@id": node["@id"]})

        return [enhanced] + list(related)
