import pytest
import asyncio
import os
import sys

# Add src to python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from pageschema.config import AppConfig, CacheConfig, HttpConfig, RateLimitConfig, ResilienceConfig
from pageschema.errors import NetworkError


class FakeClock:
    """Manually advanced clock for TTL and breaker timing."""
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFetcher:
    """Async fetcher serving canned pages; exceptions in `pages` are raised instead."""
    def __init__(self, pages=None, delay: float = 0.0):
        self.pages = dict(pages or {})
        self.delay = delay
        self.calls = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        page = self.pages.get(url)
        if page is None:
            raise NetworkError(f"HTTP 404 while fetching {url}", url=url, status=404, retryable=False)
        if isinstance(page, BaseException):
            raise page
        if callable(page):
            return page()
        return page


PRODUCT_HTML = """
<html>
  <head>
    <title>Widget Pro 3000</title>
    <meta name="description" content="The best widget for everyday tasks.">
    <meta property="og:type" content="product">
    <meta property="og:image" content="/images/widget.jpg">
  </head>
  <body>
    <main>
      <h1>Widget Pro 3000</h1>
      <p>Price: $19.99. In stock and ready to ship.</p>
      <p>Brand: Acme</p>
      <p>SKU: WP-3000</p>
      <p>Rated 4.5 stars from 120 reviews.</p>
      <button>Add to cart</button>
    </main>
  </body>
</html>
"""

ARTICLE_HTML = """
<html>
  <head>
    <title>How Cities Are Rethinking Transit</title>
    <meta name="description" content="A look at new approaches to urban transit.">
    <meta property="og:type" content="article">
    <meta property="og:site_name" content="Daily Planet">
    <meta property="article:published_time" content="2024-03-05T09:30:00Z">
    <meta name="author" content="Jane Smith">
    <meta name="keywords" content="transit, cities, planning">
  </head>
  <body>
    <article>
      <h1>How Cities Are Rethinking Transit</h1>
      <p>By Jane Smith. Published March 5, 2024.</p>
      <p>Cities around the world are changing how people move. Read more below.</p>
    </article>
    <img src="https://cdn.example.com/transit.jpg">
  </body>
</html>
"""

RECIPE_HTML = """
<html>
  <head><title>Simple Pancakes</title></head>
  <body>
    <main>
      <h1>Simple Pancakes Recipe</h1>
      <p>Prep time: 10 minutes. Cook time: 15 minutes. Servings: 4</p>
      <p>Ingredients: 2 cups flour, 1 tsp salt, 2 tbsp sugar.</p>
      <p>Instructions: 1. Mix the flour, salt and sugar together. 2. Stir in milk and eggs. 3. Cook on a hot griddle.</p>
    </main>
  </body>
</html>
"""

BUSINESS_HTML = """
<html>
  <head>
    <title>Joe's Coffee Shop</title>
    <meta name="description" content="Neighborhood coffee since 1999.">
    <meta name="geo.position" content="37.7749;-122.4194">
  </head>
  <body>
    <div class="page-content">
      <p>Visit us at 123 Main Street, Springfield, IL 62701.</p>
      <p>Call us: (555) 123-4567</p>
      <p>Hours: Mon-Fri 7:00am - 6:00pm. Closed Sunday.</p>
    </div>
  </body>
</html>
"""

EVENT_HTML = """
<html>
  <head>
    <title>Python Data Conference 2024</title>
    <meta property="og:type" content="event">
  </head>
  <body>
    <main>
      <p>Join us for the annual conference on June 12, 2024.</p>
      <p>Venue: Moscone Center. Get tickets now, RSVP today.</p>
      <p>Organizer: Data Society.</p>
    </main>
  </body>
</html>
"""

PLAIN_HTML = """
<html>
  <head><title>About</title></head>
  <body><p>Hello there.</p></body>
</html>
"""


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def http_config():
    return HttpConfig(
        user_agent="TestBot/1.0",
        timeout=5,
        http_backend="httpx",
        enable_http2=False,
    )


@pytest.fixture
def app_config(tmp_path):
    """Config for pipeline tests: no waiting, no retries sleeping for real."""
    return AppConfig(
        cache=CacheConfig(enabled=True, ttl=3600, max_size=50, storage="memory", cache_dir=str(tmp_path)),
        rate_limiting=RateLimitConfig(enabled=True, max_requests=100, window=60),
        resilience=ResilienceConfig(base_delay=0.0, max_delay=0.0, jitter=False,
                                    circuit_breaker_threshold=5, circuit_breaker_timeout=60.0),
    )
