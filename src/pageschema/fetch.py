from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable

import aiohttp

from .config import HttpConfig
from .errors import NetworkError
from .http_client import check_status, fetch_html as http2_fetch_html

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[str]]


def _resolve_backend(cfg: HttpConfig) -> str:
    backend = (cfg.http_backend or "auto").lower()
    if backend == "auto":
        return "httpx" if cfg.enable_http2 else "aiohttp"
    return backend


async def _fetch_aiohttp(url: str, cfg: HttpConfig) -> str:
    timeout = aiohttp.ClientTimeout(total=cfg.timeout)
    headers = {"User-Agent": cfg.user_agent}

    async with aiohttp.ClientSession(headers=headers, timeout=timeout) as session:
        try:
            async with session.get(url, allow_redirects=True, max_redirects=cfg.max_redirects) as resp:
                check_status(url, resp.status)
                return await resp.text(errors="ignore")
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request timeout after {cfg.timeout}s: {url}", url=url) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Error fetching {url}: {e}", url=url) from e


async def fetch_html(url: str, cfg: HttpConfig) -> str:
    """Return the body of `url` using the configured backend."""
    backend = _resolve_backend(cfg)
    if backend == "aiohttp":
        return await _fetch_aiohttp(url, cfg)
    return await http2_fetch_html(url, cfg)


def make_fetcher(cfg: HttpConfig) -> Fetcher:
    """Bind a config into the single-argument fetcher the pipeline expects."""
    async def _fetcher(url: str) -> str:
        return await fetch_html(url, cfg)
    return _fetcher
