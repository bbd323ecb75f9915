"""
Data records passed between the pipeline stages.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

SCHEMA_CONTEXT = "https://schema.org"


def compact(data: Any) -> Any:
    """Drop unset fields (None, empty strings, empty lists/dicts) recursively."""
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            value = compact(value)
            if value is None or value == "" or value == [] or value == {}:
                continue
            result[key] = value
        return result
    if isinstance(data, list):
        items = [compact(item) for item in data]
        return [item for item in items if item is not None and item != "" and item != {}]
    return data


@dataclass(frozen=True)
class ParsedPage:
    url: str
    title: str = ""
    description: str = ""
    body_text: str = ""
    images: List[str] = field(default_factory=list)
    meta_tags: Dict[str, str] = field(default_factory=dict)
    open_graph: Dict[str, str] = field(default_factory=dict)
    twitter_card: Dict[str, str] = field(default_factory=dict)
    existing_schemas: List[Dict[str, Any]] = field(default_factory=list)
    microdata: List[Dict[str, str]] = field(default_factory=list)

    def combined_text(self, include_description: bool = True) -> str:
        parts = [self.title]
        if include_description:
            parts.append(self.description)
        parts.append(self.body_text)
        return " ".join(p for p in parts if p)

    def existing_types(self) -> List[str]:
        types = []
        for item in self.existing_schemas:
            schema_type = item.get("@type")
            if isinstance(schema_type, list):
                types.extend(str(t) for t in schema_type)
            elif schema_type:
                types.append(str(schema_type))
        return types


@dataclass
class DetectionCandidate:
    type: str
    confidence: float
    indicators: List[str] = field(default_factory=list)


@dataclass
class Fix:
    field: str
    value: Any
    reason: str


@dataclass
class ValidationResult:
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    fixes: List[Fix] = field(default_factory=list)
    score: int = 100

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationResult":
        fixes = [Fix(**f) for f in data.get("fixes", [])]
        return cls(
            valid=data.get("valid", True),
            errors=list(data.get("errors", [])),
            warnings=list(data.get("warnings", [])),
            suggestions=list(data.get("suggestions", [])),
            fixes=fixes,
            score=data.get("score", 100),
        )


@dataclass
class GenerationResult:
    """Outcome of running one URL through the pipeline. Always produced, even on failure."""
    url: str
    success: bool
    detected_type: Optional[str] = None
    confidence: float = 0.0
    schema: Optional[Dict[str, Any]] = None
    validation: Optional[ValidationResult] = None
    error: Optional[str] = None
    from_cache: bool = False
    candidates: List[DetectionCandidate] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    applied_fixes: List[Fix] = field(default_factory=list)
    related: List[Dict[str, Any]] = field(default_factory=list)
    cache_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationResult":
        validation = data.get("validation")
        return cls(
            url=data["url"],
            success=data["success"],
            detected_type=data.get("detected_type"),
            confidence=data.get("confidence", 0.0),
            schema=data.get("schema"),
            validation=ValidationResult.from_dict(validation) if validation else None,
            error=data.get("error"),
            from_cache=data.get("from_cache", False),
            candidates=[DetectionCandidate(**c) for c in data.get("candidates", [])],
            suggestions=list(data.get("suggestions", [])),
            metadata=dict(data.get("metadata", {})),
            applied_fixes=[Fix(**f) for f in data.get("applied_fixes", [])],
            related=[dict(r) for r in data.get("related", [])],
            cache_key=data.get("cache_key"),
        )

    @classmethod
    def failure(cls, url: str, error: str) -> "GenerationResult":
        return cls(url=url, success=False, error=error)


@dataclass
class BatchOutcome:
    index: int
    item: Any
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None
