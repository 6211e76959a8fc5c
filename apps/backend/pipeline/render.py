"""
Headless-render strategy.

The browser backend sits behind ``RenderedPageExtractor`` so the pipeline
never imports Playwright directly; ``crawler.browser_crawler.BrowserCrawler``
is the production implementation and tests pass a fake.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from core.errors import EmptyContentError, RenderTimeoutError, StrategyUnavailableError
from core.normalize import as_text_list, clean_text, collapse_whitespace, format_job_text
from core.pipeline_config import PipelineConfig
from .models import CONFIDENCE_SCORES, ExtractionResult, Strategy

logger = logging.getLogger(__name__)

# Section headings scanned in the rendered DOM, in display order
SECTION_HEADINGS = {
    'responsibilities': ('responsibilities', 'what you will do', "what you'll do", 'duties', 'the role'),
    'qualifications': ('qualifications', 'requirements', 'what you bring', 'who you are', 'skills'),
    'benefits': ('benefits', 'what we offer', 'perks'),
}


@dataclass
class RenderedPage:
    """Result of rendering one URL in a browser."""
    url: str
    body_text: str = ""
    html: str = ""
    page_title: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    sections: Dict[str, str] = field(default_factory=dict)


class RenderedPageExtractor(Protocol):
    """Anything that can execute a page's JavaScript and report the final DOM."""

    async def render(self, url: str) -> RenderedPage:
        ...


def structured_text(page: RenderedPage) -> str:
    """Render the structured guess of a page as job text (empty when nothing was found)."""
    fields = {}
    title = page.title or page.page_title
    if title:
        fields['title'] = clean_text(title)
    for name in ('company', 'location'):
        value = clean_text(getattr(page, name))
        if value:
            fields[name] = value
    for name, text in page.sections.items():
        items = as_text_list(text)
        if items:
            fields[name] = items
    if not any(name in fields for name in page.sections):
        return ""
    return format_job_text(fields)


class HeadlessRenderExtractor:
    """Runs the renderer and turns the rendered page into an ExtractionResult."""

    def __init__(self, renderer: Optional[RenderedPageExtractor], config: PipelineConfig):
        self.renderer = renderer
        self.enabled = config.headless_enabled
        self.timeout = config.render_timeout_seconds
        self.min_length = config.min_content_length

    def is_available(self) -> bool:
        return self.enabled and self.renderer is not None

    async def extract(self, url: str) -> ExtractionResult:
        """
        Render the URL and extract job text.

        Raises:
            StrategyUnavailableError: headless rendering disabled or no backend
            RenderTimeoutError: render exceeded its timeout
            EmptyContentError: rendered page has no text
        """
        if not self.enabled:
            raise StrategyUnavailableError("Headless rendering is disabled", strategy="headless_render")
        if self.renderer is None:
            raise StrategyUnavailableError("No browser backend configured", strategy="headless_render")

        try:
            page = await asyncio.wait_for(self.renderer.render(url), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise RenderTimeoutError(
                f"Render of {url} exceeded {self.timeout}s", strategy="headless_render"
            ) from e

        text = structured_text(page)
        method = "headless_render:sections"
        if len(text) < self.min_length:
            body = collapse_whitespace(page.body_text or '')
            if len(body) > len(text):
                logger.info(f"[render] Structured text too short ({len(text)} chars), using body text")
                text = body
                method = "headless_render:body"

        if not text:
            raise EmptyContentError(f"Rendered page {url} has no text", strategy="headless_render")

        fields = {
            name: value for name, value in (
                ('title', page.title or page.page_title),
                ('company', page.company),
                ('location', page.location),
            ) if value
        }
        fields.update({name: value for name, value in page.sections.items() if value})

        logger.info(f"[render] Extracted {len(text)} chars from {url} ({method})")
        return ExtractionResult(
            text=text,
            structured_fields=fields or None,
            strategy=Strategy.HEADLESS_RENDER,
            confidence=CONFIDENCE_SCORES['headless_render'],
            method=method,
            url=url,
        )
