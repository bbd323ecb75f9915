import pytest
from pageschema.hashing import normalize_for_hashing, schema_fingerprint, url_cache_key

class TestHashing:
    def test_normalize_drops_volatile_fields(self):
        schema = {
            "@type": "Product",
            "@id": "#product",
            "url": "https://example.com/p/1",
            "offers": {"price": "10.00", "url": "https://example.com/buy"},
            "itemListElement": [{"position": 1, "name": "A"}],
        }
        normalized = normalize_for_hashing(schema)
        assert normalized == {
            "@type": "Product",
            "offers": {"price": "10.00"},
            "itemListElement": [{"name": "A"}],
        }

    def test_fingerprint_stable_across_key_order(self):
        a = {"@type": "Product", "name": "Widget", "brand": {"@type": "Brand", "name": "Acme"}}
        b = {"brand": {"name": "Acme", "@type": "Brand"}, "name": "Widget", "@type": "Product"}
        assert schema_fingerprint(a) == schema_fingerprint(b)
        assert len(schema_fingerprint(a)) == 64

    def test_fingerprint_ignores_urls(self):
        a = {"@type": "Article", "headline": "Hi", "url": "https://a.example/1"}
        b = {"@type": "Article", "headline": "Hi", "url": "https://b.example/2"}
        assert schema_fingerprint(a) == schema_fingerprint(b)
        assert schema_fingerprint(a) != schema_fingerprint({"@type": "Article", "headline": "Bye"})

    def test_url_cache_key(self):
        key = url_cache_key("https://example.com/page")
        assert key == url_cache_key("https://EXAMPLE.com/page")
        assert len(key) == 32

        # Options that change the generated schema change the key
        assert key != url_cache_key("https://example.com/page", target_types=["Product"])
        assert url_cache_key("https://example.com/page", ["Product", "Article"]) == \
            url_cache_key("https://example.com/page", ["Article", "Product"])
        assert key != url_cache_key("https://example.com/page", optimize_for=["google"])
        assert key != url_cache_key("https://example.com/page", include_related=False)
