"""
HTTP fetcher for job posting pages.

Single-shot GET with browser-like headers, a rotating user-agent pool, redirect
following and a per-call timeout. Non-2xx responses, network errors, timeouts
and bot-challenge pages surface as FetchError/BlockedError carrying the status
and body for diagnostics. Retrying is left to core.proxy.
"""
import time
import logging
import itertools
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from core.errors import BlockedError, FetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
]

# 999 is LinkedIn's "request denied" status
BLOCKED_STATUS_CODES = {403, 429, 999}

# Markers of anti-bot interstitials served with a 200
CHALLENGE_MARKERS = [
    'cf-browser-verification',
    'cf_chl_opt',
    '<title>just a moment...</title>',
    'attention required! | cloudflare',
    'px-captcha',
    '_incapsula_resource',
    'captcha-delivery.com',
    'please verify you are a human',
    'verify you are human',
    'unusual traffic from your computer',
]
CHALLENGE_MAX_BYTES = 150_000


def looks_like_challenge(body: Optional[str]) -> bool:
    """Check whether a page body is a bot-challenge interstitial."""
    if not body or len(body) > CHALLENGE_MAX_BYTES:
        return False
    lowered = body.lower()
    return any(marker in lowered for marker in CHALLENGE_MARKERS)


@dataclass
class FetchResponse:
    """Successful (2xx) fetch."""
    status_code: int
    body: str
    final_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed_ms: int = 0


class HTTPClient:
    """HTTP client that looks like a regular browser."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        user_agents: Optional[list] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            timeout: Default per-request timeout in seconds
            user_agents: User-agent pool to rotate through
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout
        self._user_agents = itertools.cycle(user_agents or USER_AGENTS)
        self._transport = transport

    def next_user_agent(self) -> str:
        return next(self._user_agents)

    def _get_headers(self, custom_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Build browser-like request headers with the next user agent."""
        headers = {
            "User-Agent": self.next_user_agent(),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "gzip, deflate",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "DNT": "1",
            "Upgrade-Insecure-Requests": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Sec-Fetch-User": "?1",
            "Connection": "keep-alive",
        }

        # Add custom headers (override defaults)
        if custom_headers:
            headers.update(custom_headers)

        return headers

    async def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        proxy: Optional[str] = None,
    ) -> FetchResponse:
        """
        Fetch URL once.

        Args:
            url: URL to fetch
            headers: Extra headers overriding the defaults
            timeout: Timeout in seconds (defaults to client timeout)
            proxy: Optional proxy URL to route the request through

        Returns:
            FetchResponse for 2xx responses

        Raises:
            BlockedError: 403/429/999 response or bot-challenge page
            FetchError: network error, timeout or other non-2xx response
        """
        request_headers = self._get_headers(headers)
        request_timeout = httpx.Timeout(timeout or self.timeout)
        via = " via proxy" if proxy else ""

        start_time = time.time()
        try:
            async with httpx.AsyncClient(
                timeout=request_timeout,
                follow_redirects=True,
                proxy=proxy,
                transport=self._transport,
            ) as client:
                response = await client.get(url, headers=request_headers)
        except httpx.TimeoutException as e:
            logger.error(f"[net] Timeout fetching {url}{via}: {e}")
            raise FetchError(url, f"Timed out after {timeout or self.timeout}s", timed_out=True) from e
        except httpx.HTTPError as e:
            logger.error(f"[net] Connection error fetching {url}{via}: {e}")
            raise FetchError(url, f"Network error: {e.__class__.__name__}: {e}") from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        body = response.text
        logger.info(f"[net] GET {response.status_code} {url}{via} ({len(response.content)} bytes, {elapsed_ms}ms)")

        if response.status_code in BLOCKED_STATUS_CODES:
            raise BlockedError(
                url,
                f"HTTP {response.status_code}: access denied",
                status_code=response.status_code,
                body=body,
            )
        if not 200 <= response.status_code < 300:
            raise FetchError(
                url,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                body=body,
            )
        if looks_like_challenge(body):
            logger.warning(f"[net] Bot challenge page served for {url}")
            raise BlockedError(
                url,
                "Bot challenge page detected",
                status_code=response.status_code,
                body=body,
            )

        return FetchResponse(
            status_code=response.status_code,
            body=body,
            final_url=str(response.url),
            headers=dict(response.headers),
            elapsed_ms=elapsed_ms,
        )
