"""
Main extraction orchestrator.

Runs a cascade of increasingly expensive strategies and stops at the first
result that clears the acceptance threshold:
1. Site profile selectors (known job boards / ATS platforms)
2. Embedded data (JSON-LD, microdata, script state, hydration payloads)
3. Generic heuristics
4. AI-assisted extraction
5. Headless render (last resort)

Accepted results are written through to the cache. When every strategy fails
the failure analyzer classifies the cause and an ExtractionError is raised.
"""

import re
import asyncio
import logging
from typing import Any, List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from core.cache import ExtractionCache
from core.errors import FetchError, PipelineError, StrategyUnavailableError
from core.net import HTTPClient
from core.pipeline_config import PipelineConfig
from core.proxy import RetryingFetcher
from crawler.browser_crawler import BrowserCrawler
from .ai_fallback import AIFallbackExtractor
from .embedded import EmbeddedDataMiner
from .failure import FailureAnalyzer
from .heuristics import HeuristicExtractor
from .models import (
    CASCADE_ORDER,
    OUTCOME_ACCEPTED,
    OUTCOME_FAILED,
    OUTCOME_INSUFFICIENT,
    OUTCOME_MINIMAL_SUMMARY,
    OUTCOME_SKIPPED,
    ExtractionError,
    ExtractionRequest,
    ExtractionResult,
    FailureAnalysis,
    ReasonCode,
    SiteProfile,
    Strategy,
    StrategyAttempt,
)
from .render import HeadlessRenderExtractor, RenderedPageExtractor
from .site_profiles import SiteProfileExtractor, SiteProfileRegistry

logger = logging.getLogger(__name__)

# Templated stubs assembled from the URL rather than read from the page
MINIMAL_SUMMARY_PATTERNS = [
    re.compile(r'\bthis is an? .{1,80}? (?:position|role|job|opening) (?:at|with)\b', re.IGNORECASE),
    re.compile(r'please visit the original (?:url|page|posting|link|site)', re.IGNORECASE),
    re.compile(r'for (?:complete|full|more) (?:job )?details,? (?:please )?(?:visit|see|click)', re.IGNORECASE),
    re.compile(r'\bview (?:the )?full (?:job )?description on\b', re.IGNORECASE),
]
HEADER_LINE_RE = re.compile(r'^\s*[A-Z][\w /]{1,30}:\s*\S.{0,100}$')

HTML_STRATEGIES = {
    Strategy.SITE_PROFILE,
    Strategy.EMBEDDED_DATA,
    Strategy.HEURISTIC,
    Strategy.AI_ASSISTED,
}


def is_minimal_summary(text: str, max_length: int = 200) -> bool:
    """
    True for low-information boilerplate such as
    "This is a Software Engineer position at Acme. Please visit the original URL".

    A stub that also carries a templated "Label: value" header block is still
    minimal as long as nothing else of substance is left.
    """
    stripped = (text or '').strip()
    if not stripped:
        return False
    if not any(p.search(stripped) for p in MINIMAL_SUMMARY_PATTERNS):
        return False
    if len(stripped) < max_length:
        return True

    remainder = [
        line for line in stripped.split('\n')
        if line.strip()
        and not HEADER_LINE_RE.match(line)
        and not any(p.search(line) for p in MINIMAL_SUMMARY_PATTERNS)
    ]
    return len(' '.join(remainder)) < max_length


def resolve_strategies(
    url: str,
    config: PipelineConfig,
    registry: SiteProfileRegistry,
    site_hint: Optional[str] = None,
) -> List[Strategy]:
    """
    Ordered strategy list for a URL.

    Pure function of its inputs: the site profile step is included only when
    a profile matches, and disabled strategies are left out.
    """
    profile = registry.detect(url, site_hint=site_hint)
    plan = []
    for strategy in CASCADE_ORDER:
        if not config.is_enabled(strategy.value):
            continue
        if strategy == Strategy.SITE_PROFILE and profile is None:
            continue
        plan.append(strategy)
    return plan


def _elapsed_ms(loop: asyncio.AbstractEventLoop, started: float) -> int:
    return int((loop.time() - started) * 1000)


class Extractor:
    """Main extraction orchestrator."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        fetcher: Optional[Any] = None,
        cache: Optional[ExtractionCache] = None,
        registry: Optional[SiteProfileRegistry] = None,
        renderer: Optional[RenderedPageExtractor] = None,
        ai_extractor: Optional[AIFallbackExtractor] = None,
    ):
        self.config = config or PipelineConfig.from_env()

        self.http_client = HTTPClient(timeout=self.config.fetch_timeout_seconds)
        self.fetcher = fetcher or RetryingFetcher(self.config, client=self.http_client)
        self.cache = cache or ExtractionCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
        )
        self.registry = registry or SiteProfileRegistry.from_config()

        self.site_extractor = SiteProfileExtractor()
        self.embedded_miner = EmbeddedDataMiner()
        self.heuristic_extractor = HeuristicExtractor(min_length=self.config.min_content_length)
        self.ai_extractor = ai_extractor or AIFallbackExtractor(self.config)
        if renderer is None and self.config.headless_enabled:
            renderer = BrowserCrawler(self.config)
        self.render_extractor = HeadlessRenderExtractor(renderer, self.config)
        self.failure_analyzer = FailureAnalyzer()

        self._slots = asyncio.Semaphore(max(1, self.config.max_concurrent_extractions))

        logger.info(
            f"Extractor initialized (strategies: {','.join(self.config.enabled_strategies)}, "
            f"AI: {self.ai_extractor.is_available()}, Headless: {self.render_extractor.is_available()}, "
            f"Profiles: {len(self.registry.profiles)})"
        )

    async def extract_job_posting(
        self,
        url: str,
        context_user_id: Optional[str] = None,
        raw_html: Optional[str] = None,
        site_hint: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract job posting text from a URL.

        Args:
            url: Job posting URL
            context_user_id: Caller identity, used for logging only
            raw_html: Pre-fetched HTML; skips the network fetch when given
            site_hint: Site profile id to use instead of host detection

        Returns:
            Accepted ExtractionResult (possibly from cache)

        Raises:
            ExtractionError: every strategy failed
        """
        request = ExtractionRequest(
            url=url.strip(),
            raw_html=raw_html,
            site_hint=site_hint,
            context_user_id=context_user_id,
        )
        self._validate_url(request.url)

        cached = self.cache.get(request.url)
        if cached is not None:
            logger.info(f"[extractor] Cache hit for {request.url} (strategy={cached.strategy.value})")
            return cached

        return await self.cache.single_flight(request.url, lambda: self._run(request))

    def _validate_url(self, url: str):
        parsed = urlparse(url)
        if parsed.scheme in ('http', 'https') and parsed.netloc:
            return
        analysis = FailureAnalysis(
            reason_code=ReasonCode.UNREACHABLE,
            guidance=f"'{url}' is not a valid http(s) URL.",
            suggestions=("Check the link and try again", "Paste the job description text instead"),
        )
        raise ExtractionError.from_analysis(analysis, [])

    async def _run(self, request: ExtractionRequest) -> ExtractionResult:
        async with self._slots:
            # Another request may have filled the cache while this one queued
            cached = self.cache.get(request.url)
            if cached is not None:
                return cached

            who = f" for user {request.context_user_id}" if request.context_user_id else ""
            logger.info(f"[extractor] Extracting {request.url}{who}")
            result = await self._cascade(request)

        self.cache.set(request.url, result)
        return result

    async def _cascade(self, request: ExtractionRequest) -> ExtractionResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.request_deadline_seconds
        attempts: List[StrategyAttempt] = []

        plan = resolve_strategies(request.url, self.config, self.registry, request.site_hint)
        profile = self.registry.detect(request.url, site_hint=request.site_hint)
        for strategy in CASCADE_ORDER:
            if strategy not in plan:
                reason = "no site profile matched" if (
                    strategy == Strategy.SITE_PROFILE and self.config.is_enabled(strategy.value)
                ) else "disabled by configuration"
                attempts.append(StrategyAttempt(strategy.value, OUTCOME_SKIPPED, reason=reason))

        html, fetch_error = request.raw_html, None
        if html is None and any(s in HTML_STRATEGIES for s in plan):
            html, fetch_error = await self._fetch(request.url, deadline, attempts)

        soup = BeautifulSoup(html, 'lxml') if html else None

        for strategy in plan:
            remaining = deadline - loop.time()
            if remaining <= 0:
                attempts.append(StrategyAttempt(strategy.value, OUTCOME_SKIPPED, reason="request deadline exceeded"))
                logger.warning(f"[extractor] Deadline exceeded, skipping {strategy.value} for {request.url}")
                continue
            if strategy in HTML_STRATEGIES and not html:
                attempts.append(StrategyAttempt(strategy.value, OUTCOME_SKIPPED, reason="no HTML available"))
                continue

            started = loop.time()
            try:
                result = await asyncio.wait_for(
                    self._run_strategy(strategy, request.url, html, soup, profile),
                    timeout=remaining,
                )
            except asyncio.TimeoutError:
                attempts.append(StrategyAttempt(
                    strategy.value, OUTCOME_FAILED,
                    reason=f"timed out after {remaining:.1f}s",
                    error_type="TimeoutError",
                    elapsed_ms=_elapsed_ms(loop, started),
                ))
                logger.warning(f"[extractor] {strategy.value} timed out for {request.url}")
                continue
            except PipelineError as e:
                outcome = OUTCOME_SKIPPED if isinstance(e, StrategyUnavailableError) else OUTCOME_FAILED
                attempts.append(StrategyAttempt(
                    strategy.value, outcome,
                    reason=str(e),
                    error_type=type(e).__name__,
                    elapsed_ms=_elapsed_ms(loop, started),
                    status_code=getattr(e, 'status_code', None),
                ))
                logger.info(f"[extractor] {strategy.value} {outcome} for {request.url}: {e}")
                continue
            except Exception as e:
                attempts.append(StrategyAttempt(
                    strategy.value, OUTCOME_FAILED,
                    reason=f"unexpected error: {e}",
                    error_type=type(e).__name__,
                    elapsed_ms=_elapsed_ms(loop, started),
                ))
                logger.error(f"[extractor] {strategy.value} crashed for {request.url}: {e}", exc_info=True)
                continue

            elapsed = _elapsed_ms(loop, started)
            if result is None:
                attempts.append(StrategyAttempt(
                    strategy.value, OUTCOME_INSUFFICIENT, reason="no content found", elapsed_ms=elapsed,
                ))
                continue

            length = result.text_length
            if length < self.config.min_content_length:
                attempts.append(StrategyAttempt(
                    strategy.value, OUTCOME_INSUFFICIENT,
                    reason=f"{length} chars is below the {self.config.min_content_length} char threshold",
                    method=result.method, text_length=length, elapsed_ms=elapsed,
                ))
                logger.info(f"[extractor] {strategy.value} produced only {length} chars for {request.url}")
                continue
            if is_minimal_summary(result.text, self.config.minimal_summary_max_length):
                attempts.append(StrategyAttempt(
                    strategy.value, OUTCOME_MINIMAL_SUMMARY,
                    reason="templated summary without job content",
                    method=result.method, text_length=length, elapsed_ms=elapsed,
                ))
                logger.info(f"[extractor] {strategy.value} produced a minimal summary for {request.url}, continuing")
                continue

            attempts.append(StrategyAttempt(
                strategy.value, OUTCOME_ACCEPTED,
                method=result.method, text_length=length, elapsed_ms=elapsed,
            ))
            logger.info(
                f"[extractor] Accepted {strategy.value} ({result.method}) for {request.url}: "
                f"{length} chars, confidence {result.confidence:.2f}"
            )
            return result.with_attempts(attempts)

        analysis = self.failure_analyzer.analyze(request.url, html, attempts, fetch_error=fetch_error)
        logger.warning(f"[extractor] All strategies failed for {request.url}: {analysis.reason_code.value}")
        raise ExtractionError.from_analysis(analysis, attempts)

    async def _fetch(
        self, url: str, deadline: float, attempts: List[StrategyAttempt]
    ) -> Tuple[Optional[str], Optional[FetchError]]:
        """Fetch the page once for every HTML-based strategy; failures land on the trail."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            response = await asyncio.wait_for(
                self.fetcher.fetch_html(url), timeout=max(0.0, deadline - loop.time())
            )
        except asyncio.TimeoutError:
            error = FetchError(url, "Fetch exceeded the request deadline", timed_out=True)
        except FetchError as e:
            error = e
        else:
            attempts.append(StrategyAttempt(
                "fetch", OUTCOME_ACCEPTED,
                text_length=len(response.body),
                elapsed_ms=_elapsed_ms(loop, started),
                status_code=response.status_code,
            ))
            return response.body, None

        attempts.append(StrategyAttempt(
            "fetch", OUTCOME_FAILED,
            reason=str(error),
            error_type=type(error).__name__,
            elapsed_ms=_elapsed_ms(loop, started),
            status_code=error.status_code,
        ))
        logger.warning(f"[extractor] Fetch failed for {url}: {error}")
        return None, error

    async def _run_strategy(
        self,
        strategy: Strategy,
        url: str,
        html: Optional[str],
        soup: Optional[BeautifulSoup],
        profile: Optional[SiteProfile],
    ) -> Optional[ExtractionResult]:
        if strategy == Strategy.SITE_PROFILE:
            return self.site_extractor.extract(soup, profile, url=url)

        if strategy == Strategy.EMBEDDED_DATA:
            return await self._mine_embedded(html, url, soup)

        if strategy == Strategy.HEURISTIC:
            return self.heuristic_extractor.extract(soup, url=url)

        if strategy == Strategy.AI_ASSISTED:
            return await self.ai_extractor.extract(html, url)

        if strategy == Strategy.HEADLESS_RENDER:
            return await self.render_extractor.extract(url)

        raise StrategyUnavailableError(f"Unknown strategy {strategy}", strategy=str(strategy))

    async def _mine_embedded(
        self, html: str, url: str, soup: Optional[BeautifulSoup]
    ) -> Optional[ExtractionResult]:
        min_length = self.config.min_content_length
        candidate = self.embedded_miner.mine(html, url, soup=soup, min_text_length=min_length)

        thin = candidate is None or len(candidate.text) < min_length
        if thin and self.config.follow_api_endpoints:
            endpoints = self.embedded_miner.discover_endpoints(html, url)
            if endpoints:
                followed = await self.embedded_miner.follow_endpoints(endpoints, self.http_client, url)
                if followed and len(followed.text) > len(candidate.text if candidate else ''):
                    candidate = followed

        if candidate is None:
            return None
        return self.embedded_miner.to_result(candidate, url)


_default_extractor: Optional[Extractor] = None


def get_extractor() -> Extractor:
    """Process-wide extractor built from environment configuration."""
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = Extractor()
    return _default_extractor


async def extract_job_posting(
    url: str,
    context_user_id: Optional[str] = None,
    raw_html: Optional[str] = None,
    site_hint: Optional[str] = None,
) -> ExtractionResult:
    """Extract a job posting with the default extractor (see Extractor.extract_job_posting)."""
    return await get_extractor().extract_job_posting(
        url, context_user_id=context_user_id, raw_html=raw_html, site_hint=site_hint
    )
