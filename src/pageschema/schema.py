"""
Structured data already present on a page.

This module handles extraction of:
- JSON-LD (application/ld+json), including arrays and @graph containers
- Microdata hints (itemscope + itemtype)
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, List

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


def clean_schema_type(schema_type: Any) -> str:
    """Strip the schema.org prefix from a type; for multi-typed nodes use the first one."""
    if isinstance(schema_type, list):
        schema_type = schema_type[0] if schema_type else ""
    if not schema_type:
        return ""
    return str(schema_type).replace("https://schema.org/", "").replace("http://schema.org/", "")


def extract_json_ld(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """Extract JSON-LD objects from script tags. Invalid JSON blocks are skipped."""
    schemas = []

    for position, script in enumerate(soup.find_all("script", type="application/ld+json")):
        json_content = script.string.strip() if script.string else ""
        if not json_content:
            continue

        try:
            data = json.loads(json_content)
        except json.JSONDecodeError as e:
            logger.debug("Skipping invalid JSON-LD block %d: %s", position, e)
            continue

        # Handle both single objects and arrays
        items = data if isinstance(data, list) else [data]
        for item in items:
            schemas.extend(_flatten_json_ld_item(item))

    return schemas


def _flatten_json_ld_item(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        return []

    # Handle @graph structure (array of schema objects)
    if "@graph" in data and isinstance(data["@graph"], list):
        return [node for node in data["@graph"] if isinstance(node, dict)]

    return [data]


def extract_microdata_hints(soup: BeautifulSoup) -> List[Dict[str, str]]:
    """Return the declared itemtypes of microdata items; properties are not resolved."""
    hints = []
    for item in soup.find_all(attrs={"itemscope": True}):
        itemtype = item.get("itemtype", "")
        if not itemtype:
            continue
        hints.append({
            "format": "microdata",
            "type": clean_schema_type(itemtype.split()[0]),
        })
    return hints
