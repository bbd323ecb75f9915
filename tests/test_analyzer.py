import pytest
from pageschema.analyzer import (
    ContentAnalyzer, count_paragraphs, count_sentences, count_words, difficulty_level,
)
from pageschema.parse import parse_page


@pytest.fixture
def analyzer():
    return ContentAnalyzer()


class TestKeywords:
    def test_frequency_ranking(self, analyzer):
        text = "Widget widget widget. Gadget gadget. Time for the widget."
        keywords = analyzer.extract_keywords(text)
        assert keywords[:2] == ["widget", "gadget"]
        assert "the" not in keywords
        assert "for" not in keywords

    def test_common_words_rank_lower(self, analyzer):
        # Same frequency, but "time" carries little topical signal
        keywords = analyzer.extract_keywords("time time telescope telescope")
        assert keywords == ["telescope", "time"]

    def test_limit_and_digits(self, analyzer):
        text = " ".join(f"word{i}" for i in range(30)) + " 2024 2024 2024"
        keywords = analyzer.extract_keywords(text, max_keywords=5)
        assert len(keywords) == 5
        assert "2024" not in keywords

    def test_phrases(self, analyzer):
        text = "Machine learning models. Machine learning is great. We love machine learning."
        analysis = analyzer.analyze(text, include_phrases=True)
        assert analysis.phrases[0] == "machine learning"


class TestEntities:
    def test_people_organizations_locations(self, analyzer):
        entities = analyzer.extract_entities("John Smith works at Acme Corp. in Boston.")
        assert "John Smith" in entities["people"]
        assert entities["organizations"] == ["Acme Corp."]
        assert "Boston" in entities["locations"]

    def test_common_phrases_are_not_people(self, analyzer):
        entities = analyzer.extract_entities("Read More about our Privacy Policy.")
        assert entities["people"] == []

    def test_prices_dates_contacts(self, analyzer):
        text = (
            "Now only $1,299.99 or 50 EUR. Sale ends 2024-03-05, or March 5, 2024 at the latest. "
            "Email info@example.com, call (555) 123-4567 or visit https://example.com/shop."
        )
        entities = analyzer.extract_entities(text)
        assert "$1,299.99" in entities["prices"]
        assert "50 EUR" in entities["prices"]
        assert "2024-03-05" in entities["dates"]
        assert "March 5, 2024" in entities["dates"]
        assert entities["emails"] == ["info@example.com"]
        assert entities["phones"] == ["(555) 123-4567"]
        assert entities["urls"] == ["https://example.com/shop"]

    def test_entity_lists_deduplicated(self, analyzer):
        entities = analyzer.extract_entities("Call $5 now. Only $5!")
        assert entities["prices"] == ["$5"]

    def test_works_for_relationship(self, analyzer):
        analysis = analyzer.analyze("John Smith works at Acme Corp. in Boston.")
        assert {"type": "worksFor", "subject": "John Smith", "object": "Acme Corp.", "confidence": 0.7} \
            in analysis.relationships


class TestContentType:
    def test_recipe(self, analyzer):
        assert analyzer.detect_content_type("Ingredients: 2 cups flour. Instructions: mix and bake.") == "recipe"

    def test_product(self, analyzer):
        assert analyzer.detect_content_type("Price $20. Add to cart now.") == "product"

    def test_faq(self, analyzer):
        assert analyzer.detect_content_type("FAQ. What is it? How does it work? Why?") == "faq"

    def test_general_fallback(self, analyzer):
        assert analyzer.detect_content_type("Hello world.") == "general"

    def test_min_matches_configurable(self):
        strict = ContentAnalyzer(min_type_matches=3)
        assert strict.detect_content_type("Price $20. Add to cart now.") == "product"
        assert strict.detect_content_type("Ingredients: 2 cups flour.") != "recipe"


class TestAnalyze:
    def test_empty_text(self, analyzer):
        analysis = analyzer.analyze("")
        assert analysis.keywords == []
        assert analysis.content_type == "unknown"
        assert analysis.entities["people"] == []

    def test_metadata_and_readability(self, analyzer):
        analysis = analyzer.analyze("The cat sat. The dog ran.")
        assert analysis.metadata["word_count"] == 6
        assert analysis.metadata["sentence_count"] == 2
        assert analysis.readability.flesch_score == 100.0
        assert analysis.readability.grade_level == 0.0
        assert analysis.readability.difficulty == "very easy"

    def test_optional_steps_skipped(self, analyzer):
        analysis = analyzer.analyze("John Smith works at Acme Corp.", extract_keywords=False,
                                    extract_entities=False, detect_relationships=False)
        assert analysis.keywords == []
        assert analysis.entities["people"] == []
        assert analysis.relationships == []


class TestTextStats:
    def test_counts(self):
        assert count_words("one two  three") == 3
        assert count_sentences("One. Two! Three?") == 3
        assert count_paragraphs("a\n\nb\n\n\nc") == 3

    def test_parsed_page_paragraphs(self, analyzer):
        page = parse_page(
            "<html><body><p>Written by Jane Smith</p><p>The river was calm that morning.</p>"
            "<p>Birds gathered near the bank.</p><p>Nobody spoke for a while.</p>"
            "<p>Then the rain came.</p></body></html>"
        )
        analysis = analyzer.analyze(page.body_text)
        assert analysis.metadata["paragraph_count"] == 5
        assert analysis.content_type == "article"

    @pytest.mark.parametrize("score,label", [
        (95, "very easy"),
        (85, "easy"),
        (72, "fairly easy"),
        (65, "standard"),
        (55, "fairly difficult"),
        (35, "difficult"),
        (10, "very difficult"),
    ])
    def test_difficulty_level(self, score, label):
        assert difficulty_level(score) == label
