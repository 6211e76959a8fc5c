"""
AI fallback extractor.

Sends pre-cleaned page text to an OpenAI-compatible chat-completions provider
(OpenRouter by default) and asks for a fixed JSON schema. Replies are repaired
(code fences stripped, truncated JSON balanced) and validated before use; a
reply that still does not yield a job description after every attempt raises
ParseError rather than returning partial data.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from bs4 import BeautifulSoup

from core.data_repair import parse_json_lenient
from core.errors import EmptyContentError, FetchError, ParseError, StrategyUnavailableError
from core.normalize import as_text_list, clean_text, format_job_text, html_to_text, text_from_value
from core.pipeline_config import PipelineConfig
from .models import CONFIDENCE_SCORES, ExtractionResult, Strategy

logger = logging.getLogger(__name__)

PROVIDER_ENDPOINTS = {
    'openrouter': 'https://openrouter.ai/api/v1/chat/completions',
    'openai': 'https://api.openai.com/v1/chat/completions',
    'requesty': 'https://router.requesty.ai/v1/chat/completions',
}

SYSTEM_PROMPT = (
    "You are a job posting extraction assistant. You read the text of a job "
    "posting page and return ONLY a valid JSON object, with no commentary and "
    "no markdown."
)

STRING_FIELDS = ('title', 'company', 'location', 'salary', 'employment_type', 'description')
LIST_FIELDS = ('responsibilities', 'qualifications', 'requirements', 'benefits', 'skills')

# Below this much page text there is nothing worth sending
MIN_INPUT_CHARS = 50


class AIFallbackExtractor:
    """AI-powered extraction used when structural strategies fall short."""

    def __init__(self, config: PipelineConfig):
        self.api_key = config.ai_api_key
        self.provider = config.ai_provider
        self.model = config.ai_model
        self.endpoint = PROVIDER_ENDPOINTS.get(self.provider, PROVIDER_ENDPOINTS['openrouter'])
        self.timeout = config.ai_timeout_seconds
        self.max_input_chars = config.ai_max_input_chars
        self.max_attempts = max(1, config.ai_max_attempts)
        self.max_calls = config.ai_max_calls
        self.call_count = 0

    def is_available(self) -> bool:
        return bool(self.api_key) and self.call_count < self.max_calls

    def page_text(self, html: str) -> str:
        """Visible page text, truncated to the provider input budget."""
        soup = BeautifulSoup(html or '', 'lxml')
        body = soup.body or soup
        text = html_to_text(body)
        return text[:self.max_input_chars]

    async def extract(self, html: str, url: str) -> ExtractionResult:
        """
        Extract job fields with the language model.

        Raises:
            StrategyUnavailableError: no API key, or call budget exhausted
            EmptyContentError: the page has no text worth sending
            FetchError: provider request failed
            ParseError: no attempt produced a usable JSON reply
        """
        if not self.api_key:
            raise StrategyUnavailableError("AI extraction disabled: no API key configured", strategy="ai_assisted")
        if self.call_count >= self.max_calls:
            raise StrategyUnavailableError(f"AI extraction limit reached ({self.max_calls} calls)", strategy="ai_assisted")

        text = self.page_text(html)
        if len(text) < MIN_INPUT_CHARS:
            raise EmptyContentError(f"Only {len(text)} chars of page text, nothing to send", strategy="ai_assisted")

        last_error: Optional[ParseError] = None
        for attempt in range(1, self.max_attempts + 1):
            prompt = self._build_prompt(text, url, retry=attempt > 1)
            content = await self._call_ai(prompt)
            self.call_count += 1
            try:
                data = parse_json_lenient(content)
                fields, reported_confidence = self._validate(data)
            except ParseError as e:
                last_error = e
                logger.warning(f"[ai] Attempt {attempt}/{self.max_attempts} unusable reply for {url}: {e}")
                continue

            confidence = CONFIDENCE_SCORES['ai']
            if reported_confidence > 0.8:
                confidence = min(0.9, CONFIDENCE_SCORES['ai'] + 0.2)

            logger.info(f"[ai] Extracted {sorted(fields)} from {url} (model={self.model})")
            return ExtractionResult(
                text=format_job_text(fields),
                structured_fields=fields,
                strategy=Strategy.AI_ASSISTED,
                confidence=confidence,
                method=f"ai:{self.provider}",
                url=url,
            )

        raise ParseError(
            f"AI reply unusable after {self.max_attempts} attempts: {last_error}",
            strategy="ai_assisted",
        )

    def _build_prompt(self, text: str, url: str, retry: bool = False) -> str:
        """Build extraction prompt for the page text."""
        reminder = ""
        if retry:
            reminder = (
                "\nYour previous reply was not valid JSON. Reply with the JSON "
                "object only, starting with { and ending with }.\n"
            )

        return f"""Extract the job posting from the page text below.

URL: {url}

Page text:
{text}

Return ONLY valid JSON in this exact format:
{{
  "title": "string or null",
  "company": "string or null",
  "location": "string or null",
  "salary": "string or null",
  "employment_type": "string or null",
  "description": "full job description, string or null",
  "responsibilities": ["string"],
  "qualifications": ["string"],
  "requirements": ["string"],
  "benefits": ["string"],
  "skills": ["string"],
  "confidence": 0.0-1.0
}}

Use null or [] for anything the page does not state. Do not invent details.
{reminder}"""

    async def _call_ai(self, prompt: str) -> str:
        """Call the chat-completions endpoint and return the raw reply text."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.1,
            "max_tokens": 2000,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                self.endpoint,
                f"AI provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                body=e.response.text[:500],
            ) from e
        except httpx.TimeoutException as e:
            raise FetchError(self.endpoint, f"AI provider timed out after {self.timeout}s", timed_out=True) from e
        except (httpx.HTTPError, ValueError) as e:
            raise FetchError(self.endpoint, f"AI provider request failed: {e}") from e

        try:
            return data['choices'][0]['message']['content'] or ''
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError(f"Unexpected provider response shape: {e}", strategy="ai_assisted") from e

    def _validate(self, data: Any):
        """
        Keep only well-typed fields from the model reply.

        Returns:
            (fields, model-reported confidence)

        Raises:
            ParseError: reply is not an object or has no job content
        """
        if not isinstance(data, dict):
            raise ParseError(f"Expected a JSON object, got {type(data).__name__}")

        fields: Dict[str, Any] = {}
        for name in STRING_FIELDS:
            value = data.get(name)
            if isinstance(value, str) and value.strip() and value.strip().lower() != 'null':
                fields[name] = text_from_value(value) if name == 'description' else clean_text(value)
        for name in LIST_FIELDS:
            items = as_text_list(data.get(name))
            if items:
                fields[name] = items

        if not any(fields.get(name) for name in ('description', 'responsibilities', 'qualifications', 'requirements')):
            raise ParseError("Reply has no description, responsibilities or qualifications")

        try:
            reported = float(data.get('confidence') or 0.0)
        except (TypeError, ValueError):
            reported = 0.0
        return fields, reported
