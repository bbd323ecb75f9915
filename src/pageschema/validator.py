"""
Schema validation: structure, per-type fields, search guidelines and auto-fixes.

Problems are reported as data on a ValidationResult; nothing here raises for
an invalid schema.
"""
from __future__ import annotations
import copy
import re
from typing import Any, Callable, Dict, Iterable, List, Union

from .models import SCHEMA_CONTEXT, Fix, ValidationResult

_DECIMAL_PRICE = re.compile(r"^\d+(\.\d{1,2})?$")


def _is_structured(value: Any) -> bool:
    return isinstance(value, dict)


class SchemaValidator:
    def __init__(self):
        self.type_checks: Dict[str, Callable[[Dict[str, Any], ValidationResult, bool], None]] = {
            "Product": self._validate_product,
            "Article": self._validate_article,
            "BlogPosting": self._validate_article,
            "NewsArticle": self._validate_article,
            "LocalBusiness": self._validate_business,
            "Restaurant": self._validate_business,
            "Store": self._validate_business,
            "Event": self._validate_event,
            "Recipe": self._validate_recipe,
            "VideoObject": self._validate_video,
        }

    def validate(self, schema: Any, strict: bool = False, check_guidelines: bool = True,
                 suggest_fixes: bool = True) -> ValidationResult:
        result = ValidationResult()

        if not isinstance(schema, dict):
            result.valid = False
            result.errors.append("Schema must be a valid object")
            result.score = 0
            return result

        self._validate_structure(schema, result, strict)

        check = self.type_checks.get(schema.get("@type"))
        if check:
            check(schema, result, strict)

        if check_guidelines:
            self._validate_guidelines(schema, result)

        if suggest_fixes:
            result.fixes = self.generate_fixes(schema)

        result.score = self.calculate_score(result)
        result.valid = not result.errors
        return result

    @staticmethod
    def calculate_score(result: ValidationResult) -> int:
        score = 100 - 20 * len(result.errors) - 10 * len(result.warnings) - 2 * len(result.suggestions)
        return max(0, score)

    # ------------------ structural ------------------

    def _validate_structure(self, schema: Dict[str, Any], result: ValidationResult, strict: bool) -> None:
        context = schema.get("@context")
        if not context:
            result.errors.append("Missing required @context field")
        elif context != SCHEMA_CONTEXT:
            result.warnings.append(f'@context should be "{SCHEMA_CONTEXT}"')

        if not schema.get("@type"):
            result.errors.append("Missing required @type field")

        if not schema.get("name") and not schema.get("headline"):
            result.warnings.append("Missing name or headline - important for identification")

        if strict and not schema.get("description"):
            result.warnings.append("Missing description - recommended for better visibility")

    # ------------------ per type ------------------

    def _validate_product(self, schema, result, strict):
        offers = schema.get("offers")
        if not offers:
            result.errors.append("Product: Missing required offers field")
        elif isinstance(offers, dict):
            if not offers.get("price"):
                result.warnings.append("Product: Missing price in offers")
            if not offers.get("priceCurrency"):
                result.warnings.append("Product: Missing priceCurrency in offers")
            if not offers.get("availability"):
                result.suggestions.append("Product: Add availability status for better user experience")

        if not schema.get("image"):
            result.warnings.append("Product: Missing image - highly recommended")
        if not schema.get("brand"):
            result.suggestions.append("Product: Add brand information")
        if not schema.get("aggregateRating") and not schema.get("review"):
            result.suggestions.append("Product: Consider adding customer ratings or reviews")

    def _validate_article(self, schema, result, strict):
        if not schema.get("headline") and not schema.get("name"):
            result.errors.append("Article: Missing required headline or name")
        if not schema.get("image"):
            result.warnings.append("Article: Missing image - required for rich results")
        if not schema.get("datePublished"):
            result.warnings.append("Article: Missing datePublished - important for search results")
        if not schema.get("author"):
            result.warnings.append("Article: Missing author information")

        publisher = schema.get("publisher")
        if not publisher:
            result.warnings.append("Article: Missing publisher - required for rich results")
        elif _is_structured(publisher) and not publisher.get("logo"):
            result.suggestions.append("Article: Add publisher logo for better visibility")

    def _validate_business(self, schema, result, strict):
        address = schema.get("address")
        if not address:
            result.errors.append("LocalBusiness: Missing required address")
        elif _is_structured(address):
            if not address.get("streetAddress"):
                result.warnings.append("LocalBusiness: Missing street address")
            if not address.get("addressLocality"):
                result.warnings.append("LocalBusiness: Missing city (addressLocality)")
            if not address.get("addressRegion"):
                result.suggestions.append("LocalBusiness: Add state/region")
            if not address.get("postalCode"):
                result.suggestions.append("LocalBusiness: Add postal code")

        if not schema.get("telephone"):
            result.warnings.append("LocalBusiness: Add telephone number")
        if not schema.get("openingHoursSpecification") and not schema.get("openingHours"):
            result.suggestions.append("LocalBusiness: Add opening hours")
        if not schema.get("geo"):
            result.suggestions.append("LocalBusiness: Add geographic coordinates (latitude/longitude)")

    def _validate_event(self, schema, result, strict):
        if not schema.get("startDate"):
            result.errors.append("Event: Missing required startDate")

        location = schema.get("location")
        if not location:
            result.errors.append("Event: Missing required location")
        elif _is_structured(location) and not location.get("name") and not location.get("address"):
            result.warnings.append("Event: Location should have name or address")

        if not schema.get("offers"):
            result.suggestions.append("Event: Add ticket/pricing information if applicable")
        if not schema.get("eventStatus"):
            result.suggestions.append("Event: Add eventStatus (scheduled, cancelled, etc.)")

    def _validate_recipe(self, schema, result, strict):
        if not schema.get("image"):
            result.warnings.append("Recipe: Missing image - highly recommended")
        if not schema.get("recipeIngredient"):
            result.errors.append("Recipe: Missing required ingredients list")
        if not schema.get("recipeInstructions"):
            result.errors.append("Recipe: Missing required instructions")
        if not schema.get("prepTime") and not schema.get("totalTime"):
            result.suggestions.append("Recipe: Add preparation/cooking time")
        if not schema.get("nutrition"):
            result.suggestions.append("Recipe: Add nutrition information if available")

    def _validate_video(self, schema, result, strict):
        if not schema.get("thumbnailUrl"):
            result.warnings.append("VideoObject: Missing thumbnail URL")
        if not schema.get("uploadDate"):
            result.warnings.append("VideoObject: Missing upload date")
        if not schema.get("description"):
            result.warnings.append("VideoObject: Missing description")
        if not schema.get("contentUrl") and not schema.get("embedUrl"):
            result.suggestions.append("VideoObject: Add contentUrl or embedUrl")
        if not schema.get("duration"):
            result.suggestions.append("VideoObject: Add video duration in ISO 8601 format")

    # ------------------ guidelines ------------------

    def _validate_guidelines(self, schema: Dict[str, Any], result: ValidationResult) -> None:
        """Search-engine presentation rules. These never produce errors."""
        schema_type = schema.get("@type")

        if not schema.get("url"):
            result.suggestions.append("Guidelines: Add canonical URL for this content")

        if schema_type == "Product":
            offers = schema.get("offers")
            if _is_structured(offers) and offers.get("price"):
                if not _DECIMAL_PRICE.match(str(offers["price"])):
                    result.warnings.append('Guidelines: Price should be in decimal format (e.g., "99.99")')

        elif schema_type in ("Article", "BlogPosting"):
            if isinstance(schema.get("image"), str):
                result.suggestions.append("Guidelines: Image should be structured as ImageObject for best results")
            publisher = schema.get("publisher")
            if _is_structured(publisher) and not publisher.get("@type"):
                result.warnings.append('Guidelines: Publisher should have @type: "Organization"')

        elif schema_type == "Recipe":
            instructions = schema.get("recipeInstructions")
            if isinstance(instructions, list) and not any(_is_structured(i) and i.get("@type") for i in instructions):
                result.suggestions.append("Guidelines: Use structured HowToStep for recipe instructions")

    # ------------------ fixes ------------------

    def generate_fixes(self, schema: Dict[str, Any]) -> List[Fix]:
        fixes = []
        schema_type = schema.get("@type")

        if not schema.get("@context"):
            fixes.append(Fix("@context", SCHEMA_CONTEXT, "Required field missing"))

        description = schema.get("description")
        if not schema.get("name") and not schema.get("headline") and isinstance(description, str) and description:
            fixes.append(Fix("name", description[:50], "Use truncated description as name"))

        offers = schema.get("offers")
        if schema_type == "Product" and _is_structured(offers) and not offers.get("@type"):
            fixes.append(Fix("offers.@type", "Offer", 'Offers should have @type: "Offer"'))

        publisher = schema.get("publisher")
        if schema_type in ("Article", "BlogPosting", "NewsArticle") and _is_structured(publisher) \
                and not publisher.get("@type"):
            fixes.append(Fix("publisher.@type", "Organization", "Publisher should be an Organization"))
        if schema_type in ("Article", "BlogPosting", "NewsArticle") and isinstance(publisher, str) and publisher:
            fixes.append(Fix("publisher", {"@type": "Organization", "name": publisher},
                             "Convert publisher string to structured Organization"))

        address = schema.get("address")
        if schema_type == "LocalBusiness" and isinstance(address, str) and address:
            fixes.append(Fix("address", {"@type": "PostalAddress", "streetAddress": address},
                             "Convert address string to structured PostalAddress"))
        return fixes

    @staticmethod
    def apply_fixes(schema: Dict[str, Any], fixes: Iterable[Union[Fix, Dict[str, Any]]]) -> Dict[str, Any]:
        """Return a deep copy of `schema` with every fix applied. `schema` is left untouched."""
        fixed = copy.deepcopy(schema)

        for fix in fixes:
            field_path, value = (fix.field, fix.value) if isinstance(fix, Fix) else (fix["field"], fix["value"])
            parts = field_path.split(".")
            current = fixed
            for part in parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]
            current[parts[-1]] = copy.deepcopy(value)

        return fixed

    @staticmethod
    def get_summary(result: ValidationResult) -> str:
        lines = ["Schema is valid" if result.valid else "Schema has validation issues",
                 f"Score: {result.score}/100"]
        if result.errors:
            lines.append(f"Errors: {len(result.errors)}")
        if result.warnings:
            lines.append(f"Warnings: {len(result.warnings)}")
        if result.suggestions:
            lines.append(f"Suggestions: {len(result.suggestions)}")
        if result.fixes:
            lines.append(f"Auto-fixes available: {len(result.fixes)}")
        return "\n".join(lines)
