"""
URL-to-schema pipeline: single pages, URL batches and sitemaps.

SchemaGenerator owns no global state. Every collaborator (cache, rate
limiter, breakers, analyzers) is passed in or built from the AppConfig, so
separate generators never share counters.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlsplit

from .analyzer import ContentAnalyzer
from .cache import ResultCache
from .circuit_breaker import CircuitBreakerRegistry
from .config import AppConfig
from .detect import TypeDetector
from .errors import NetworkError, PageSchemaError
from .extractors import FieldExtractor
from .fetch import Fetcher, make_fetcher
from .hashing import schema_fingerprint, url_cache_key
from .models import GenerationResult, ParsedPage
from .parse import extract_from_sitemap, filter_urls, get_domain, parse_page
from .rate_limiter import DomainRateLimiter
from .related import RelatedSchemaDetector
from .resilience import ResilienceController
from .validator import SchemaValidator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]
Optimizer = Callable[[Dict[str, Any], List[str]], Dict[str, Any]]

CANCELLED = "cancelled"
MAX_SUGGESTIONS = 5


@dataclass
class GenerationOptions:
    concurrency: int = 3
    target_types: List[str] = field(default_factory=list)
    use_cache: bool = True
    optimize_for: List[str] = field(default_factory=list)
    progress_callback: Optional[ProgressCallback] = None
    timeout: Optional[float] = None  # seconds for a whole batch
    cache_ttl: Optional[float] = None
    include_related: bool = True
    cancel_event: Optional[asyncio.Event] = None

    def validate(self) -> None:
        if not isinstance(self.concurrency, int) or self.concurrency < 1:
            raise ValueError("concurrency must be a positive integer")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.cache_ttl is not None and self.cache_ttl < 0:
            raise ValueError("cache_ttl must not be negative")
        for name in ("target_types", "optimize_for"):
            value = getattr(self, name)
            if isinstance(value, str) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"{name} must be a list of strings")


def validate_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise ValueError("Invalid URL provided")
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Invalid URL provided: {url!r}")
    return url


def generate_suggestions(schema: Dict[str, Any], page: ParsedPage) -> List[str]:
    """Improvement hints for the generated schema, capped at MAX_SUGGESTIONS."""
    suggestions = []
    schema_type = schema.get("@type")

    if schema_type == "WebPage":
        suggestions.append("Consider adding more specific schema type (Product, Article, LocalBusiness, etc.)")
    if not schema.get("image") and page.images:
        suggestions.append("Add images from page to improve schema visibility")
    if not schema.get("description") and page.description:
        suggestions.append("Add description to improve search result appearance")

    if schema_type == "Product":
        offers = schema.get("offers") or {}
        if not offers.get("price"):
            suggestions.append("Product schema: Add price information for better visibility")
        if not schema.get("brand"):
            suggestions.append("Product schema: Add brand information")
        if not schema.get("aggregateRating"):
            suggestions.append("Product schema: Consider adding customer ratings")
    elif schema_type in ("Article", "BlogPosting"):
        if not schema.get("author"):
            suggestions.append("Article schema: Add author information")
        if not schema.get("datePublished"):
            suggestions.append("Article schema: Add publication date")
        if not schema.get("publisher"):
            suggestions.append("Article schema: Add publisher information")
    elif schema_type == "LocalBusiness":
        if not schema.get("address"):
            suggestions.append("Business schema: Add complete address")
        if not schema.get("telephone"):
            suggestions.append("Business schema: Add phone number")
        if not schema.get("openingHours"):
            suggestions.append("Business schema: Add opening hours")
    elif schema_type == "Event":
        if not schema.get("location"):
            suggestions.append("Event schema: Add event location")
        if not schema.get("startDate"):
            suggestions.append("Event schema: Add start date/time")
        if not schema.get("offers"):
            suggestions.append("Event schema: Consider adding ticket information")

    return suggestions[:MAX_SUGGESTIONS]


class SchemaGenerator:
    def __init__(self, config: Optional[AppConfig] = None, *,
                 cache: Optional[ResultCache] = None,
                 rate_limiter: Optional[DomainRateLimiter] = None,
                 breakers: Optional[CircuitBreakerRegistry] = None,
                 resilience: Optional[ResilienceController] = None,
                 analyzer: Optional[ContentAnalyzer] = None,
                 detector: Optional[TypeDetector] = None,
                 extractor: Optional[FieldExtractor] = None,
                 validator: Optional[SchemaValidator] = None,
                 related: Optional[RelatedSchemaDetector] = None,
                 fetcher: Optional[Fetcher] = None,
                 optimizer: Optional[Optimizer] = None):
        self.config = config or AppConfig()
        cfg = self.config

        if cache is None and cfg.cache.enabled:
            cache = ResultCache.from_config(cfg.cache)
        self.cache = cache
        self.rate_limiter = rate_limiter or DomainRateLimiter.from_config(cfg.rate_limiting)

        max_retries = cfg.generation.max_retries if cfg.generation.retry_on_fail else 0
        self.resilience = resilience or ResilienceController.from_config(
            cfg.resilience, max_retries=max_retries, breakers=breakers,
        )
        self.breakers = self.resilience.breakers

        self.analyzer = analyzer or ContentAnalyzer(min_type_matches=cfg.detection.content_type_min_matches)
        self.detector = detector or TypeDetector(cfg.detection)
        self.extractor = extractor or FieldExtractor()
        self.validator = validator or SchemaValidator()
        self.related = related or RelatedSchemaDetector()
        self.fetcher = fetcher or make_fetcher(cfg.http)
        self.optimizer = optimizer

    def default_options(self) -> GenerationOptions:
        """Options used when a call passes none: the configured concurrency and cache use."""
        generation = self.config.generation
        return GenerationOptions(concurrency=generation.concurrency, use_cache=generation.use_cache)

    # ------------------ acquisition ------------------

    async def fetch(self, url: str) -> str:
        """Rate-limited, retried and circuit-broken fetch of one document."""
        domain = get_domain(url)

        async def _attempt() -> str:
            await self.rate_limiter.acquire(domain)
            html = await self.fetcher(url)
            if not html or not html.strip():
                raise NetworkError(f"Empty response received from {url}", url=url, retryable=False)
            return html

        return await self.resilience.run(domain, _attempt)

    # ------------------ single URL ------------------

    async def generate_from_url(self, url: str, options: Optional[GenerationOptions] = None) -> GenerationResult:
        """Generate a schema for one URL.

        Invalid arguments raise ValueError. Any failure while processing the
        page is reported on the returned result instead.
        """
        url = validate_url(url)
        options = options or self.default_options()
        options.validate()

        cache_key = url_cache_key(url, options.target_types, options.optimize_for, options.include_related)
        use_cache = self.cache is not None and options.use_cache and self.config.generation.use_cache

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Cache hit for %s", url)
                result = GenerationResult.from_dict(cached)
                result.from_cache = True
                result.cache_key = cache_key
                return result

        try:
            result = await self._generate(url, options, cache_key)
        except PageSchemaError as e:
            logger.info("Schema generation failed for %s: %s", url, e)
            return GenerationResult(url=url, success=False, error=str(e), cache_key=cache_key)
        except Exception as e:
            logger.exception("Unexpected error generating schema for %s", url)
            return GenerationResult(url=url, success=False, error=f"{type(e).__name__}: {e}", cache_key=cache_key)

        if use_cache and self.cache.should_cache(result.schema):
            self.cache.put(cache_key, result.to_dict(), ttl=options.cache_ttl)
        return result

    async def _generate(self, url: str, options: GenerationOptions, cache_key: str) -> GenerationResult:
        html = await self.fetch(url)
        page = parse_page(html, url)

        analysis = self.analyzer.analyze(page.combined_text())
        candidates = self.detector.detect(page, analysis, options.target_types)
        top = candidates[0]

        schema = self.extractor.extract(top.type, page)
        if options.optimize_for and self.optimizer is not None:
            schema = self._optimize(schema, options.optimize_for)

        validation = self.validator.validate(schema)
        applied_fixes = []
        if validation.fixes:
            applied_fixes = list(validation.fixes)
            schema = self.validator.apply_fixes(schema, applied_fixes)
            validation = self.validator.validate(schema)

        related = self.related.detect_related(schema, page, analysis) if options.include_related else []

        return GenerationResult(
            url=url,
            success=True,
            detected_type=top.type,
            confidence=top.confidence,
            schema=schema,
            validation=validation,
            candidates=candidates,
            suggestions=generate_suggestions(schema, page),
            metadata={
                "title": page.title,
                "description": page.description,
                "images": page.images,
                "existing_schemas": page.existing_schemas,
                "content_type": analysis.content_type,
                "keywords": analysis.keywords,
                "fingerprint": schema_fingerprint(schema),
            },
            applied_fixes=applied_fixes,
            related=related,
            cache_key=cache_key,
        )

    def _optimize(self, schema: Dict[str, Any], targets: List[str]) -> Dict[str, Any]:
        try:
            return self.optimizer(schema, list(targets))
        except Exception as e:
            logger.warning("Schema optimizer failed, keeping unoptimized schema: %s", e)
            return schema

    # ------------------ batches ------------------

    async def generate_from_urls(self, urls: Sequence[str],
                                 options: Optional[GenerationOptions] = None) -> List[GenerationResult]:
        """Process `urls` with a bounded worker pool; one result per input URL, in input order."""
        if isinstance(urls, str) or urls is None:
            raise ValueError("urls must be a list of URL strings")
        urls = list(urls)
        options = options or self.default_options()
        options.validate()
        if not urls:
            return []

        total = len(urls)
        results: List[Optional[GenerationResult]] = [None] * total
        queue: asyncio.Queue = asyncio.Queue()
        for index in range(total):
            queue.put_nowait(index)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + options.timeout if options.timeout else None
        completed = 0

        def _stopped() -> bool:
            if options.cancel_event is not None and options.cancel_event.is_set():
                return True
            return deadline is not None and loop.time() >= deadline

        async def worker():
            nonlocal completed
            while not _stopped():
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                url = urls[index]
                try:
                    result = await self.generate_from_url(url, options)
                except ValueError as e:
                    result = GenerationResult.failure(str(url), str(e))
                results[index] = result
                completed += 1
                self._report_progress(options.progress_callback, str(url), completed, total)

        workers = [asyncio.create_task(worker()) for _ in range(min(options.concurrency, total))]
        await asyncio.gather(*workers)

        final = [r if r is not None else GenerationResult.failure(str(urls[i]), CANCELLED)
                 for i, r in enumerate(results)]
        succeeded = sum(1 for r in final if r.success)
        cancelled = sum(1 for r in final if r.error == CANCELLED)
        logger.info("Batch finished: %d/%d succeeded, %d cancelled", succeeded, total, cancelled)
        return final

    @staticmethod
    def _report_progress(callback: Optional[ProgressCallback], url: str, completed: int, total: int) -> None:
        if callback is None:
            return
        try:
            callback(url, completed, total)
        except Exception as e:
            logger.warning("Progress callback raised: %s", e)

    async def generate_from_sitemap(self, sitemap_url: str, options: Optional[GenerationOptions] = None,
                                    pattern: Optional[str] = None) -> List[GenerationResult]:
        """Generate schemas for every page listed in a sitemap (index sitemaps are followed one level)."""
        sitemap_url = validate_url(sitemap_url)
        urls = await self.collect_sitemap_urls(sitemap_url)
        urls = filter_urls(urls, pattern)
        logger.info("Sitemap %s: %d URLs to process", sitemap_url, len(urls))
        return await self.generate_from_urls(urls, options)

    async def collect_sitemap_urls(self, sitemap_url: str) -> List[str]:
        kind, locs = extract_from_sitemap(await self.fetch(sitemap_url))
        if kind != "sitemap_index":
            return list(dict.fromkeys(locs))

        urls = []
        for child in locs:
            try:
                _child_kind, child_locs = extract_from_sitemap(await self.fetch(child))
            except PageSchemaError as e:
                logger.warning("Skipping child sitemap %s: %s", child, e)
                continue
            urls.extend(child_locs)
        return list(dict.fromkeys(urls))

    def stats(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.stats() if self.cache is not None else None,
            "rate_limiter": self.rate_limiter.stats(),
            "resilience": self.resilience.stats(),
        }
