"""
Retry and proxy layer around the HTTP fetcher.

1. Short politeness delay before the first request
2. Direct fetch, retried with exponential backoff on transient failures
   (network errors, timeouts, 5xx); 4xx and challenge pages are not retried
3. First attempt uses the short timeout, retries escalate to the longer one
4. If the direct path fails and unblocking-proxy credentials are configured,
   one more fetch goes through the proxy
"""
import asyncio
import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from core.errors import FetchError
from core.net import FetchResponse, HTTPClient
from core.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.is_transient


class RetryingFetcher:
    """Fetch raw HTML with backoff and an optional unblocking proxy."""

    def __init__(
        self,
        config: PipelineConfig,
        client: Optional[HTTPClient] = None,
        backoff_min: float = 1.0,
        backoff_max: float = 4.0,
    ):
        self.config = config
        self.client = client or HTTPClient(timeout=config.fetch_timeout_seconds)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    def _timeout_for(self, attempt_number: int) -> float:
        if attempt_number <= 1:
            return self.config.fetch_timeout_seconds
        return self.config.escalated_timeout_seconds

    async def _fetch_direct(self, url: str) -> FetchResponse:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.config.max_fetch_attempts)),
            wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    logger.info(f"[retry] Attempt {attempt_number}/{self.config.max_fetch_attempts} for {url}")
                return await self.client.fetch(url, timeout=self._timeout_for(attempt_number))
        raise FetchError(url, "No fetch attempt was made")

    async def fetch_html(self, url: str) -> FetchResponse:
        """
        Fetch a page, falling back to the unblocking proxy when configured.

        Raises:
            FetchError/BlockedError from the direct path if every route fails
        """
        if self.config.initial_delay_seconds > 0:
            await asyncio.sleep(self.config.initial_delay_seconds)

        try:
            return await self._fetch_direct(url)
        except FetchError as direct_error:
            proxy_url = self.config.proxy_url
            if not proxy_url:
                raise

            logger.info(f"[retry] Direct fetch failed ({direct_error}), trying unblocking proxy for {url}")
            try:
                return await self.client.fetch(
                    url,
                    timeout=self.config.escalated_timeout_seconds,
                    proxy=proxy_url,
                )
            except FetchError as proxy_error:
                logger.warning(f"[retry] Proxy fetch failed for {url}: {proxy_error}")
                raise direct_error from proxy_error
