import pytest
import copy
from pageschema.models import Fix, ValidationResult
from pageschema.validator import SchemaValidator


@pytest.fixture
def validator():
    return SchemaValidator()


def complete_product():
    return {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": "Widget",
        "description": "A widget",
        "url": "https://shop.example.com/widget",
        "image": ["https://shop.example.com/widget.jpg"],
        "offers": {
            "@type": "Offer",
            "price": "19.99",
            "priceCurrency": "USD",
            "availability": "https://schema.org/InStock",
        },
        "brand": {"@type": "Brand", "name": "Acme"},
        "aggregateRating": {"@type": "AggregateRating", "ratingValue": 4.5},
    }


class TestSchemaValidator:
    def test_complete_product(self, validator):
        result = validator.validate(complete_product())
        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []
        assert result.score == 100
        assert result.fixes == []

    def test_non_object(self, validator):
        for value in (None, "schema", [1, 2]):
            result = validator.validate(value)
            assert result.valid is False
            assert result.score == 0
            assert result.errors == ["Schema must be a valid object"]

    def test_missing_offers_is_error(self, validator):
        schema = complete_product()
        del schema["offers"]
        result = validator.validate(schema)
        assert result.valid is False
        assert result.errors == ["Product: Missing required offers field"]
        assert result.score == 80

    def test_structure(self, validator):
        result = validator.validate({"@context": "http://schema.org", "description": "x"})
        assert "Missing required @type field" in result.errors
        assert '@context should be "https://schema.org"' in result.warnings
        assert "Missing name or headline - important for identification" in result.warnings

    def test_strict_requires_description(self, validator):
        schema = complete_product()
        del schema["description"]
        assert validator.validate(schema).warnings == []
        assert validator.validate(schema, strict=True).warnings == [
            "Missing description - recommended for better visibility"
        ]

    def test_price_guideline(self, validator):
        schema = complete_product()
        schema["offers"]["price"] = "$19.99"
        result = validator.validate(schema)
        assert 'Guidelines: Price should be in decimal format (e.g., "99.99")' in result.warnings
        assert validator.validate(schema, check_guidelines=False).warnings == []

    def test_event_requirements(self, validator):
        result = validator.validate({"@context": "https://schema.org", "@type": "Event", "name": "Conf"})
        assert "Event: Missing required startDate" in result.errors
        assert "Event: Missing required location" in result.errors

    def test_recipe_instructions_guideline(self, validator):
        schema = {
            "@context": "https://schema.org", "@type": "Recipe", "name": "Pancakes",
            "recipeIngredient": ["flour"], "recipeInstructions": ["Mix", "Cook"],
        }
        result = validator.validate(schema)
        assert result.valid is True
        assert "Guidelines: Use structured HowToStep for recipe instructions" in result.suggestions

    def test_score_formula(self):
        result = ValidationResult(errors=["e"], warnings=["w"], suggestions=["s1", "s2"])
        assert SchemaValidator.calculate_score(result) == 66
        assert SchemaValidator.calculate_score(ValidationResult(errors=["e"] * 6)) == 0


class TestFixes:
    def test_generate_fixes(self, validator):
        schema = {"@type": "Product", "description": "D" * 80, "offers": {"price": "5.00"}}
        fixes = validator.generate_fixes(schema)
        assert [f.field for f in fixes] == ["@context", "name", "offers.@type"]
        assert fixes[1].value == "D" * 50

    def test_publisher_and_address_fixes(self, validator):
        article = validator.generate_fixes({"@context": "https://schema.org", "@type": "Article",
                                            "headline": "H", "publisher": "Daily Planet"})
        assert article == [Fix("publisher", {"@type": "Organization", "name": "Daily Planet"},
                               "Convert publisher string to structured Organization")]

        business = validator.generate_fixes({"@context": "https://schema.org", "@type": "LocalBusiness",
                                             "name": "Joe's", "address": "123 Main St"})
        assert business[0].value == {"@type": "PostalAddress", "streetAddress": "123 Main St"}

    def test_apply_fixes_does_not_mutate(self, validator):
        schema = {"@type": "Product", "name": "W", "offers": {"price": "5.00"}}
        original = copy.deepcopy(schema)

        fixed = validator.apply_fixes(schema, validator.generate_fixes(schema))

        assert schema == original
        assert fixed["@context"] == "https://schema.org"
        assert fixed["offers"] == {"price": "5.00", "@type": "Offer"}

    def test_apply_fixes_accepts_dicts_and_creates_paths(self):
        fixed = SchemaValidator.apply_fixes({}, [{"field": "a.b.c", "value": 1}])
        assert fixed == {"a": {"b": {"c": 1}}}

    def test_fixes_can_be_disabled(self, validator):
        assert validator.validate({"@type": "Product"}, suggest_fixes=False).fixes == []


class TestSummary:
    def test_summary(self, validator):
        assert SchemaValidator.get_summary(validator.validate(complete_product())) == "Schema is valid\nScore: 100/100"

        summary = SchemaValidator.get_summary(validator.validate({"@type": "Product"}))
        assert summary.startswith("Schema has validation issues\nScore: ")
        assert "Errors: 2" in summary
        assert "Auto-fixes available: 1" in summary
