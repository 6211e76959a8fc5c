"""
Unit tests for the HTTP fetcher (served from httpx.MockTransport).
"""

import httpx
import pytest

from core.errors import BlockedError, FetchError
from core.net import USER_AGENTS, HTTPClient, looks_like_challenge

URL = "https://jobs.example.com/postings/12"


def client_for(handler) -> HTTPClient:
    return HTTPClient(transport=httpx.MockTransport(handler))


class TestFetch:

    @pytest.mark.asyncio
    async def test_success(self):
        client = client_for(lambda request: httpx.Response(200, html="<html><body>Job</body></html>"))

        response = await client.fetch(URL)

        assert response.status_code == 200
        assert response.body == "<html><body>Job</body></html>"
        assert response.final_url == URL

    @pytest.mark.asyncio
    async def test_redirect_followed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": URL})
            return httpx.Response(200, text="moved here")

        response = await client_for(handler).fetch("https://jobs.example.com/old")
        assert response.final_url == URL

    @pytest.mark.asyncio
    async def test_browser_headers_and_rotation(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["User-Agent"])
            assert request.headers["Accept-Language"] == "en-US,en;q=0.9"
            return httpx.Response(200, text="ok")

        client = client_for(handler)
        await client.fetch(URL)
        await client.fetch(URL)

        assert seen == USER_AGENTS[:2]

    @pytest.mark.asyncio
    async def test_custom_headers_override_defaults(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=request.headers["Accept"])

        response = await client_for(handler).fetch(URL, headers={"Accept": "application/json"})
        assert response.body == "application/json"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [403, 429, 999])
    async def test_blocked_statuses(self, status):
        client = client_for(lambda request: httpx.Response(status, text="denied"))

        with pytest.raises(BlockedError) as exc_info:
            await client.fetch(URL)

        assert exc_info.value.status_code == status
        assert not exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        client = client_for(lambda request: httpx.Response(503, text="try later"))

        with pytest.raises(FetchError) as exc_info:
            await client.fetch(URL)

        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "try later"
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_not_found_is_not_transient(self):
        client = client_for(lambda request: httpx.Response(404, text="gone"))

        with pytest.raises(FetchError) as exc_info:
            await client.fetch(URL)

        assert not isinstance(exc_info.value, BlockedError)
        assert not exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_challenge_page_with_200(self):
        body = "<html><head><title>Just a moment...</title></head><body>Checking your browser</body></html>"
        client = client_for(lambda request: httpx.Response(200, html=body))

        with pytest.raises(BlockedError) as exc_info:
            await client.fetch(URL)
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_cloudflare_beacon_script_is_not_a_challenge(self):
        body = (
            '<html><head><title>Backend Engineer | Acme</title>'
            '<script type="application/ld+json">{"@type": "JobPosting", "title": "Backend Engineer"}</script>'
            '</head><body><h1>Backend Engineer</h1><p>Join the platform team.</p>'
            '<script src="/cdn-cgi/challenge-platform/scripts/jsd/main.js"></script>'
            '</body></html>'
        )
        client = client_for(lambda request: httpx.Response(200, html=body))

        response = await client.fetch(URL)

        assert response.status_code == 200
        assert "JobPosting" in response.body

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Name or service not known", request=request)

        with pytest.raises(FetchError) as exc_info:
            await client_for(handler).fetch(URL)

        assert exc_info.value.status_code is None
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(FetchError) as exc_info:
            await client_for(handler).fetch(URL, timeout=2.0)

        assert exc_info.value.timed_out
        assert "2.0s" in str(exc_info.value)


def test_looks_like_challenge():
    assert looks_like_challenge("<div id='px-captcha'></div>")
    assert not looks_like_challenge("<p>A normal job page</p>")
    assert looks_like_challenge("<script>window._cf_chl_opt = {cvId: '3'};</script>")
    assert not looks_like_challenge('<script src="/cdn-cgi/challenge-platform/scripts/jsd/main.js"></script>')
    assert not looks_like_challenge(None)
    assert not looks_like_challenge("verify you are human" + " " * 200_000)
