import pytest
import httpx
from unittest.mock import AsyncMock, patch
from pageschema.config import HttpConfig
from pageschema.errors import NetworkError
from pageschema.fetch import _resolve_backend, make_fetcher
from pageschema.http_client import check_status, fetch, fetch_html


def transport_for(status=200, text="<html><title>Hi</title></html>", headers=None):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(status, text=text, headers=headers)

    transport = httpx.MockTransport(handler)
    transport.seen = seen
    return transport


class TestCheckStatus:
    def test_success_passes(self):
        check_status("https://example.com", 200)
        check_status("https://example.com", 304)

    @pytest.mark.parametrize("status,retryable", [
        (404, False),
        (403, False),
        (410, False),
        (429, True),
        (408, True),
        (500, True),
        (503, True),
    ])
    def test_error_statuses(self, status, retryable):
        with pytest.raises(NetworkError) as exc_info:
            check_status("https://example.com/x", status)
        assert exc_info.value.status == status
        assert exc_info.value.retryable is retryable
        assert exc_info.value.url == "https://example.com/x"


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_returns_status_and_text(self, http_config):
        transport = transport_for(text="<html>ok</html>", headers={"Content-Type": "text/html"})
        status, final_url, headers, text = await fetch("https://example.com/", http_config, transport=transport)

        assert status == 200
        assert final_url == "https://example.com/"
        assert headers["content-type"] == "text/html"
        assert text == "<html>ok</html>"

        request = transport.seen[0]
        assert request.headers["User-Agent"] == "TestBot/1.0"
        assert "br" in request.headers["Accept-Encoding"]

    @pytest.mark.asyncio
    async def test_brotli_can_be_disabled(self):
        cfg = HttpConfig(user_agent="TestBot/1.0", enable_http2=False, enable_brotli=False)
        transport = transport_for()
        await fetch("https://example.com/", cfg, transport=transport)
        assert transport.seen[0].headers["Accept-Encoding"] == "gzip, deflate"

    @pytest.mark.asyncio
    async def test_extra_headers(self, http_config):
        transport = transport_for()
        await fetch("https://example.com/", http_config, extra_headers={"X-Test": "1"}, transport=transport)
        assert transport.seen[0].headers["X-Test"] == "1"

    @pytest.mark.asyncio
    async def test_fetch_html_raises_on_error_status(self, http_config):
        with pytest.raises(NetworkError) as exc_info:
            await fetch_html("https://example.com/missing", http_config, transport=transport_for(status=404))
        assert exc_info.value.retryable is False

        assert await fetch_html("https://example.com/", http_config, transport=transport_for(text="body")) == "body"

    @pytest.mark.asyncio
    async def test_connection_errors_are_retryable(self, http_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await fetch("https://example.com/", http_config, transport=httpx.MockTransport(handler))
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeouts_are_retryable(self, http_config):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await fetch("https://example.com/", http_config, transport=httpx.MockTransport(handler))
        assert "timeout" in str(exc_info.value).lower()
        assert exc_info.value.retryable is True


class TestBackendSelection:
    def test_resolve_backend(self):
        assert _resolve_backend(HttpConfig(http_backend="auto", enable_http2=True)) == "httpx"
        assert _resolve_backend(HttpConfig(http_backend="auto", enable_http2=False)) == "aiohttp"
        assert _resolve_backend(HttpConfig(http_backend="AIOHTTP")) == "aiohttp"

    @pytest.mark.asyncio
    async def test_make_fetcher_uses_httpx_backend(self, http_config):
        with patch("pageschema.fetch.http2_fetch_html", new=AsyncMock(return_value="<html></html>")) as mock_fetch:
            fetcher = make_fetcher(http_config)
            assert await fetcher("https://example.com/") == "<html></html>"
            mock_fetch.assert_awaited_once_with("https://example.com/", http_config)

    @pytest.mark.asyncio
    async def test_make_fetcher_uses_aiohttp_backend(self):
        cfg = HttpConfig(http_backend="aiohttp")
        with patch("pageschema.fetch._fetch_aiohttp", new=AsyncMock(return_value="<p>hi</p>")) as mock_fetch:
            assert await make_fetcher(cfg)("https://example.com/") == "<p>hi</p>"
            mock_fetch.assert_awaited_once_with("https://example.com/", cfg)
