"""
Browser-based renderer using Playwright for JavaScript-heavy sites.
"""
import asyncio
import logging
from typing import Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from core.errors import FetchError, RenderTimeoutError, StrategyUnavailableError
from core.net import USER_AGENTS
from core.pipeline_config import PipelineConfig
from pipeline.render import SECTION_HEADINGS, RenderedPage

logger = logging.getLogger(__name__)

# Resolves once any section heading is visible in the body text
MARKER_SCRIPT = """
(markers) => {
    const text = (document.body && document.body.innerText || '').toLowerCase();
    return markers.some(m => text.includes(m));
}
"""

# Best-guess fields plus a heading scan collecting sibling text until the next heading
EXTRACT_SCRIPT = """
(headings) => {
    const pick = (selectors) => {
        for (const sel of selectors) {
            const el = document.querySelector(sel);
            if (el && el.innerText && el.innerText.trim()) return el.innerText.trim();
        }
        return null;
    };
    const meta = (name) => {
        const el = document.querySelector(`meta[property="${name}"], meta[name="${name}"]`);
        return el ? el.getAttribute('content') : null;
    };

    const sections = {};
    const nodes = document.querySelectorAll('h1, h2, h3, h4, h5, strong, b');
    for (const node of nodes) {
        const label = (node.innerText || '').trim().toLowerCase().replace(/[:\\s]+$/, '');
        if (!label || label.length > 60) continue;
        for (const [name, variants] of Object.entries(headings)) {
            if (sections[name] || !variants.some(v => label.startsWith(v))) continue;
            const parts = [];
            let sibling = node.nextElementSibling || (node.parentElement && node.parentElement.nextElementSibling);
            while (sibling && !/^H[1-5]$/.test(sibling.tagName)) {
                const text = (sibling.innerText || '').trim();
                if (text) parts.push(text);
                sibling = sibling.nextElementSibling;
            }
            if (parts.length) sections[name] = parts.join('\\n');
        }
    }

    return {
        title: pick(['h1', '[class*="job-title"]', '[class*="jobTitle"]', '[data-testid*="title"]']) || meta('og:title'),
        company: pick(['[class*="company"]', '[class*="employer"]', '[data-testid*="company"]']) || meta('og:site_name'),
        location: pick(['[class*="location"]', '[data-testid*="location"]']),
        sections: sections,
    };
}
"""


class BrowserCrawler:
    """Use headless browser for JavaScript-rendered pages"""

    def __init__(self, config: PipelineConfig):
        self.navigation_timeout_ms = int(config.render_timeout_seconds * 1000)
        self.settle_ms = config.render_settle_ms
        self.marker_timeout_ms = config.render_marker_timeout_ms
        self._slots = asyncio.Semaphore(max(1, config.max_browsers))

    async def render(self, url: str) -> RenderedPage:
        """
        Render a URL and read the final DOM.

        Args:
            url: URL to render

        Returns:
            RenderedPage with body text, page HTML and best-guess fields

        Raises:
            StrategyUnavailableError: browser could not be launched
            RenderTimeoutError: navigation did not finish in time
            FetchError: navigation failed (DNS, refused connection, aborted load)
        """
        async with self._slots:
            async with async_playwright() as p:
                try:
                    browser = await p.chromium.launch(headless=True)
                except PlaywrightError as e:
                    raise StrategyUnavailableError(
                        f"Browser launch failed: {e}", strategy="headless_render"
                    ) from e

                try:
                    page = await browser.new_page(user_agent=USER_AGENTS[0])
                    await page.set_extra_http_headers({
                        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                        'Accept-Language': 'en-US,en;q=0.9'
                    })

                    try:
                        await page.goto(url, wait_until='networkidle', timeout=self.navigation_timeout_ms)
                    except PlaywrightTimeoutError as e:
                        raise RenderTimeoutError(
                            f"Navigation to {url} timed out after {self.navigation_timeout_ms}ms",
                            strategy="headless_render",
                        ) from e
                    except PlaywrightError as e:
                        # DNS failure, refused connection, aborted navigation
                        raise FetchError(url, f"Navigation to {url} failed: {e.message}") from e

                    # Settle delay for late AJAX
                    await page.wait_for_timeout(self.settle_ms)
                    await self._wait_for_markers(page, url)

                    guess: Dict = await page.evaluate(EXTRACT_SCRIPT, {
                        name: list(variants) for name, variants in SECTION_HEADINGS.items()
                    })
                    body_text = await page.evaluate("() => document.body ? document.body.innerText : ''")
                    html = await page.content()
                    page_title = await page.title()
                finally:
                    await browser.close()

        logger.info(
            f"[render] Rendered {url}: {len(body_text or '')} chars body, "
            f"sections={sorted((guess or {}).get('sections') or {})}"
        )
        guess = guess or {}
        return RenderedPage(
            url=url,
            body_text=body_text or "",
            html=html or "",
            page_title=page_title or None,
            title=guess.get('title'),
            company=guess.get('company'),
            location=guess.get('location'),
            sections=guess.get('sections') or {},
        )

    async def _wait_for_markers(self, page, url: str) -> Optional[bool]:
        """Wait (bounded) for any known section heading to appear; a miss is not an error."""
        markers = [v for variants in SECTION_HEADINGS.values() for v in variants]
        try:
            await page.wait_for_function(MARKER_SCRIPT, arg=markers, timeout=self.marker_timeout_ms)
            return True
        except PlaywrightTimeoutError:
            logger.debug(f"[render] No section markers on {url} after {self.marker_timeout_ms}ms")
            return False
