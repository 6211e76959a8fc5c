"""
Unit tests for the headless-render strategy, using a fake browser backend.
"""

import asyncio

import pytest

from core.errors import EmptyContentError, RenderTimeoutError, StrategyUnavailableError
from core.pipeline_config import PipelineConfig
from pipeline.models import Strategy
from pipeline.render import HeadlessRenderExtractor, RenderedPage, structured_text

URL = "https://careers.example.com/job/123"


class FakeRenderer:
    def __init__(self, page: RenderedPage, delay: float = 0.0):
        self.page = page
        self.delay = delay
        self.calls = []

    async def render(self, url: str) -> RenderedPage:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.page


SECTIONED_PAGE = RenderedPage(
    url=URL,
    body_text="Menu\nSenior Designer\nAcme\nLots of other page text",
    page_title="Senior Designer | Acme Careers",
    title="Senior Designer",
    company="Acme",
    location="Lisbon, Portugal",
    sections={
        "responsibilities": "• Lead design for the checkout experience\n• Run research sessions with customers",
        "qualifications": "• Five years of product design experience\n• A portfolio of shipped work",
    },
)


def make_extractor(renderer, **overrides):
    settings = {"headless_enabled": True}
    settings.update(overrides)
    return HeadlessRenderExtractor(renderer, PipelineConfig(**settings))


class TestStructuredText:

    def test_sections_rendered_as_lists(self):
        text = structured_text(SECTIONED_PAGE)

        assert text.startswith("Job Title: Senior Designer\nCompany: Acme\nLocation: Lisbon, Portugal")
        assert "- Lead design for the checkout experience" in text
        assert "- A portfolio of shipped work" in text

    def test_title_alone_is_not_enough(self):
        assert structured_text(RenderedPage(url=URL, title="Senior Designer")) == ""


class TestHeadlessRenderExtractor:

    @pytest.mark.asyncio
    async def test_sections_result(self):
        renderer = FakeRenderer(SECTIONED_PAGE)
        result = await make_extractor(renderer).extract(URL)

        assert renderer.calls == [URL]
        assert result.strategy == Strategy.HEADLESS_RENDER
        assert result.method == "headless_render:sections"
        assert result.confidence == 0.70
        assert result.structured_fields["company"] == "Acme"
        assert "responsibilities" in result.structured_fields

    @pytest.mark.asyncio
    async def test_body_text_used_when_sections_missing(self):
        body = "Data Scientist\n" + "Build forecasting models for our supply chain and present results. " * 3
        renderer = FakeRenderer(RenderedPage(url=URL, body_text=body, page_title="Data Scientist"))

        result = await make_extractor(renderer).extract(URL)

        assert result.method == "headless_render:body"
        assert result.text.startswith("Data Scientist\nBuild forecasting models")
        assert result.structured_fields == {"title": "Data Scientist"}

    @pytest.mark.asyncio
    async def test_empty_render_raises(self):
        renderer = FakeRenderer(RenderedPage(url=URL))

        with pytest.raises(EmptyContentError):
            await make_extractor(renderer).extract(URL)

    @pytest.mark.asyncio
    async def test_timeout(self):
        renderer = FakeRenderer(SECTIONED_PAGE, delay=1.0)

        with pytest.raises(RenderTimeoutError):
            await make_extractor(renderer, render_timeout_seconds=0.05).extract(URL)

    @pytest.mark.asyncio
    async def test_disabled(self):
        renderer = FakeRenderer(SECTIONED_PAGE)
        extractor = make_extractor(renderer, headless_enabled=False)

        assert not extractor.is_available()
        with pytest.raises(StrategyUnavailableError):
            await extractor.extract(URL)
        assert renderer.calls == []

    @pytest.mark.asyncio
    async def test_no_backend(self):
        extractor = make_extractor(None)

        assert not extractor.is_available()
        with pytest.raises(StrategyUnavailableError):
            await extractor.extract(URL)
