"""
Cache keys and content fingerprints.
"""
from __future__ import annotations
import hashlib
import json
from typing import Any, Dict, Iterable, Optional

from .parse import normalize_url_hardened

# Fields that vary between renderings of the same entity without changing what it is
VOLATILE_FIELDS = (
    '@id',
    'url',
    'mainEntityOfPage',
    'isPartOf',
    'dateModified',
    'position',
)


def normalize_for_hashing(data: Any) -> Any:
    """Normalize schema data for consistent hashing by removing variable fields."""
    if isinstance(data, list):
        return [normalize_for_hashing(item) for item in data]
    if not isinstance(data, dict):
        return data

    return {
        key: normalize_for_hashing(value)
        for key, value in data.items()
        if key not in VOLATILE_FIELDS
    }


def schema_fingerprint(schema: Dict[str, Any]) -> str:
    """SHA256 over the normalized schema, stable across key order."""
    normalized = normalize_for_hashing(schema)
    content = json.dumps(normalized, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def url_cache_key(url: str, target_types: Optional[Iterable[str]] = None,
                  optimize_for: Optional[Iterable[str]] = None, include_related: bool = True) -> str:
    """Key for a generation result: normalized URL plus the options that change the output."""
    data = json.dumps({
        'url': normalize_url_hardened(url),
        'targetTypes': sorted(target_types or []),
        'optimizeFor': sorted(optimize_for or []),
        'includeRelated': include_related,
    }, sort_keys=True)
    return hashlib.md5(data.encode('utf-8')).hexdigest()
