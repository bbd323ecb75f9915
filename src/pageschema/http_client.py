"""
HTTP/2 client for page acquisition, with Brotli-aware content negotiation.
"""
from __future__ import annotations
import logging
from typing import Dict, Optional, Tuple

import httpx

from .config import HttpConfig
from .errors import NetworkError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


def _get_compression_headers(cfg: HttpConfig) -> Dict[str, str]:
    """Get headers for compression support."""
    encodings = "gzip, deflate, br" if cfg.enable_brotli else "gzip, deflate"  # br = Brotli
    return {
        "Accept-Encoding": encodings,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }


def _build_headers(cfg: HttpConfig, extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {
        "User-Agent": cfg.user_agent,
        **_get_compression_headers(cfg),
    }
    if extra_headers:
        headers.update(extra_headers)
    return headers


def check_status(url: str, status: int) -> None:
    """Turn an HTTP error status into a NetworkError; 4xx other than throttling is not retried."""
    if status < 400:
        return
    raise NetworkError(
        f"HTTP {status} while fetching {url}",
        url=url,
        status=status,
        retryable=status in RETRYABLE_STATUS or status >= 500,
    )


async def fetch(url: str, cfg: HttpConfig, extra_headers: Optional[Dict[str, str]] = None,
                transport: Optional[httpx.AsyncBaseTransport] = None) -> Tuple[int, str, Dict[str, str], str]:
    """Return (status, final_url, headers, text) for a single GET with HTTP/2 and Brotli support.

    Transport failures and timeouts are raised as retryable NetworkError; status codes
    are returned untouched so callers decide what counts as failure.
    """
    timeout = httpx.Timeout(cfg.timeout)

    async with httpx.AsyncClient(
        http2=cfg.enable_http2 and transport is None,
        timeout=timeout,
        headers=_build_headers(cfg, extra_headers),
        follow_redirects=True,
        max_redirects=cfg.max_redirects,
        transport=transport,
    ) as client:
        try:
            response = await client.get(url)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timeout after {cfg.timeout}s: {url}", url=url) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Error fetching {url}: {e}", url=url) from e

        # httpx decodes gzip/deflate/br transparently
        text = response.text
        logger.debug("Fetched %s -> %s (%d bytes)", url, response.status_code, len(text))
        return response.status_code, str(response.url), dict(response.headers), text


async def fetch_html(url: str, cfg: HttpConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    """Fetch a page and return its body, raising NetworkError on HTTP errors."""
    status, final_url, _headers, text = await fetch(url, cfg, transport=transport)
    check_status(url, status)
    return text
