from __future__ import annotations
import json
import logging
import os
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".pageschemarc.json"

# User agent strings for different scenarios
USER_AGENTS = {
    "default": "PageSchema/0.1 (+https://github.com/pageschema/pageschema; schema generator)",
    "chrome": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "firefox": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "safari": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "mobile": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
}


def get_user_agent(ua_type: str = "default") -> str:
    """Get a user agent string by type or return a random one if 'random' is specified."""
    if ua_type == "random":
        return random.choice(list(USER_AGENTS.values()))
    return USER_AGENTS.get(ua_type, USER_AGENTS["default"])


@dataclass
class HttpConfig:
    user_agent: str = os.getenv("PAGESCHEMA_UA", USER_AGENTS["default"])
    timeout: float = float(os.getenv("PAGESCHEMA_TIMEOUT", "10"))
    http_backend: str = os.getenv("PAGESCHEMA_HTTP_BACKEND", "auto")
    # HTTP/2 and compression configuration
    enable_http2: bool = os.getenv("PAGESCHEMA_HTTP2", "1") == "1"
    enable_brotli: bool = os.getenv("PAGESCHEMA_BROTLI", "1") == "1"
    max_redirects: int = int(os.getenv("PAGESCHEMA_MAX_REDIRECTS", "10"))

    def __post_init__(self):
        self.http_backend = (self.http_backend or "auto").lower()


@dataclass
class CacheConfig:
    enabled: bool = os.getenv("PAGESCHEMA_CACHE", "1") == "1"
    ttl: float = float(os.getenv("PAGESCHEMA_CACHE_TTL", "3600"))  # seconds
    max_size: int = int(os.getenv("PAGESCHEMA_CACHE_SIZE", "100"))
    storage: str = os.getenv("PAGESCHEMA_CACHE_STORAGE", "memory")  # "memory" or "file"
    cache_dir: str = os.getenv("PAGESCHEMA_CACHE_DIR", os.path.abspath("./.cache/pageschema"))
    reusable_types: List[str] = field(default_factory=lambda: [
        "Product", "Article", "LocalBusiness", "Event", "Recipe", "VideoObject"
    ])


@dataclass
class RateLimitConfig:
    enabled: bool = os.getenv("PAGESCHEMA_RATE_LIMIT", "1") == "1"
    max_requests: int = int(os.getenv("PAGESCHEMA_RATE_MAX_REQUESTS", "10"))
    window: float = float(os.getenv("PAGESCHEMA_RATE_WINDOW", "60"))  # seconds
    backoff: str = "exponential"  # "exponential" or "linear"
    max_retries: int = 3


@dataclass
class ResilienceConfig:
    # Retry configuration
    base_delay: float = float(os.getenv("PAGESCHEMA_RETRY_DELAY", "1.0"))
    max_delay: float = float(os.getenv("PAGESCHEMA_RETRY_MAX_DELAY", "30.0"))
    jitter: bool = os.getenv("PAGESCHEMA_RETRY_JITTER", "1") == "1"
    # Circuit Breaker configuration
    circuit_breaker_threshold: int = int(os.getenv("PAGESCHEMA_CB_THRESHOLD", "5"))
    circuit_breaker_timeout: float = float(os.getenv("PAGESCHEMA_CB_TIMEOUT", "60.0"))


@dataclass
class GenerationConfig:
    concurrency: int = int(os.getenv("PAGESCHEMA_CONCURRENCY", "3"))
    retry_on_fail: bool = os.getenv("PAGESCHEMA_RETRY", "1") == "1"
    max_retries: int = int(os.getenv("PAGESCHEMA_MAX_RETRIES", "3"))
    use_cache: bool = os.getenv("PAGESCHEMA_USE_CACHE", "1") == "1"


@dataclass
class DetectionConfig:
    # Heuristic knobs; tune per corpus rather than treating them as fixed
    hint_boost: float = 1.2
    fallback_threshold: float = 0.3
    fallback_confidence: float = 0.5
    content_type_min_matches: int = 2


@dataclass
class AppConfig:
    http: HttpConfig = field(default_factory=HttpConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limiting: RateLimitConfig = field(default_factory=RateLimitConfig)
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)


# JSON section -> (AppConfig attribute, {json key: (dataclass attribute, converter)})
_MS = lambda v: float(v) / 1000.0

_SECTION_KEYS = {
    "cache": ("cache", {
        "enabled": ("enabled", bool),
        "ttl": ("ttl", _MS),
        "maxSize": ("max_size", int),
        "storage": ("storage", str),
        "cacheDir": ("cache_dir", str),
    }),
    "rateLimiting": ("rate_limiting", {
        "enabled": ("enabled", bool),
        "maxRequests": ("max_requests", int),
        "windowMs": ("window", _MS),
    }),
    "generation": ("generation", {
        "concurrency": ("concurrency", int),
        "retryOnFail": ("retry_on_fail", bool),
        "maxRetries": ("max_retries", int),
        "useCache": ("use_cache", bool),
    }),
    "http": ("http", {
        "timeout": ("timeout", _MS),
        "userAgent": ("user_agent", str),
        "backend": ("http_backend", str),
    }),
}


def find_config_file(search_paths: Optional[List[str]] = None) -> Optional[str]:
    """Look for the config file in the working directory, then the home directory."""
    paths = search_paths or [os.getcwd(), str(Path.home())]
    for base in paths:
        candidate = os.path.join(base, CONFIG_FILE_NAME)
        if os.path.isfile(candidate):
            return candidate
    return None


def merge_config(config: AppConfig, data: Dict[str, Any]) -> AppConfig:
    """Overlay a parsed JSON document on top of `config`. Unknown keys are ignored."""
    for section_name, section_data in data.items():
        if section_name not in _SECTION_KEYS or not isinstance(section_data, dict):
            continue
        attr, keys = _SECTION_KEYS[section_name]
        target = getattr(config, attr)
        for key, value in section_data.items():
            if key not in keys or value is None:
                continue
            field_name, convert = keys[key]
            try:
                setattr(target, field_name, convert(value))
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid config value %s.%s=%r", section_name, key, value)
    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load the JSON config (if any) and merge it over the built-in defaults."""
    config = AppConfig()
    config_path = path or find_config_file()
    if not config_path:
        return config

    with open(config_path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a JSON object")

    logger.debug("Loaded config from %s", config_path)
    return merge_config(config, data)


def validate_config(config: AppConfig) -> List[str]:
    """Return a list of problems; empty when the configuration is usable."""
    errors = []
    if config.cache.ttl < 0:
        errors.append("cache.ttl must be a positive number")
    if config.cache.max_size < 1:
        errors.append("cache.maxSize must be at least 1")
    if config.cache.storage not in ("memory", "file"):
        errors.append('cache.storage must be "memory" or "file"')
    if config.rate_limiting.max_requests < 1:
        errors.append("rateLimiting.maxRequests must be a positive number")
    if config.rate_limiting.window <= 0:
        errors.append("rateLimiting.windowMs must be a positive number")
    if config.generation.concurrency < 1:
        errors.append("generation.concurrency must be a positive number")
    if config.generation.max_retries < 0:
        errors.append("generation.maxRetries must not be negative")
    if config.http.http_backend not in ("auto", "httpx", "aiohttp"):
        errors.append('http.backend must be "auto", "httpx" or "aiohttp"')
    return errors
