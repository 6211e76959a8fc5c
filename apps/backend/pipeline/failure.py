"""
Failure analysis.

Runs once every strategy has failed. Classifies the most likely cause from the
fetch error, the attempt trail and the fetched HTML, and produces guidance an
end user can act on (usually: open the page and paste the text instead).
"""

import re
import logging
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from core.errors import BlockedError, FetchError
from core.net import looks_like_challenge
from .models import (
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
    FailureAnalysis,
    ReasonCode,
    Strategy,
    StrategyAttempt,
)

logger = logging.getLogger(__name__)

PASTE_SUGGESTION = 'Copy and paste the job description text directly using the "Paste Text" option'

GENERIC_SUGGESTIONS = [
    PASTE_SUGGESTION,
    'Make sure the URL is publicly accessible (not behind a login)',
    'Try opening the URL in a private/incognito browser window first',
]

# host suffix -> (reason, guidance, leading suggestion)
DOMAIN_GUIDANCE = {
    'linkedin.com': (
        ReasonCode.REQUIRES_AUTH,
        'LinkedIn only shows full job postings to signed-in members.',
        'LinkedIn jobs often require login - copy the job description text from the page and paste it instead',
    ),
    'indeed.com': (
        ReasonCode.BOT_BLOCKED,
        'Indeed blocks automated access to its job pages.',
        'Indeed may be blocking automated access - copy the job text manually and paste it instead',
    ),
    'glassdoor.com': (
        ReasonCode.REQUIRES_AUTH,
        'Glassdoor asks visitors to sign in before showing job details.',
        'Glassdoor requires an account - copy the job description text and paste it instead',
    ),
    'myworkdayjobs.com': (
        ReasonCode.DYNAMIC_CONTENT_ONLY,
        'Workday career sites load the job description with JavaScript.',
        'Wait for the Workday page to fully load, then copy and paste the job description',
    ),
    'eplus.com': (
        ReasonCode.DYNAMIC_CONTENT_ONLY,
        'ePlus careers uses a dynamic application that requires JavaScript.',
        'ePlus careers page loads content dynamically - copy the full job description text once the page has loaded',
    ),
}

LOGIN_MARKERS = [
    re.compile(r'<input[^>]+type=["\']?password', re.IGNORECASE),
    re.compile(r'authwall', re.IGNORECASE),
    re.compile(r'sign in to (?:view|see|continue|apply)', re.IGNORECASE),
    re.compile(r'join now to see', re.IGNORECASE),
    re.compile(r'log in to (?:view|see|continue)', re.IGNORECASE),
    re.compile(r'you must be logged in', re.IGNORECASE),
]

# marker substring -> framework name
FRAMEWORK_MARKERS = [
    ('__NEXT_DATA__', 'Next.js'),
    ('data-reactroot', 'React'),
    ('__REACT', 'React'),
    ('_reactListening', 'React'),
    ('__NUXT__', 'Nuxt'),
    ('data-v-app', 'Vue.js'),
    ('ng-version', 'Angular'),
    ('ng-app', 'Angular'),
    ('__remixContext', 'Remix'),
    ('id="root"></div>', 'React'),
    ('id="app"></div>', 'Vue.js'),
]

GUIDANCE = {
    ReasonCode.BOT_BLOCKED: 'The site blocked our automated request.',
    ReasonCode.REQUIRES_AUTH: 'The job posting is behind a login.',
    ReasonCode.DYNAMIC_CONTENT_ONLY: (
        'This is a JavaScript-heavy application that loads content dynamically. '
        'Please open the page in your browser, wait for it to fully load, then copy and paste the job description.'
    ),
    ReasonCode.UNREACHABLE: 'The page could not be reached.',
    ReasonCode.UNKNOWN: (
        'Unable to extract job content from this page. '
        'Please copy and paste the job description directly from the webpage.'
    ),
}

LARGE_HTML_BYTES = 500_000
SCRIPT_HEAVY_RATIO = 0.7
THIN_TEXT_CHARS = 500


class PageSignals:
    """Measurements of a fetched page used for classification and technical details."""

    def __init__(self, html: Optional[str]):
        self.html = html or ''
        self.html_size = len(self.html)
        self.script_ratio = 0.0
        self.framework: Optional[str] = None
        self.has_iframes = False
        self.has_shadow_dom = False
        self.visible_text_length = 0
        if self.html:
            self._measure()

    def _measure(self):
        soup = BeautifulSoup(self.html, 'lxml')
        script_chars = sum(len(s.get_text()) for s in soup.find_all('script'))
        self.script_ratio = script_chars / self.html_size if self.html_size else 0.0
        self.framework = next((name for marker, name in FRAMEWORK_MARKERS if marker in self.html), None)
        self.has_iframes = soup.find('iframe') is not None
        self.has_shadow_dom = 'shadowRoot' in self.html or 'shadowrootmode' in self.html or 'shadow-root' in self.html

        for tag in soup(['script', 'style', 'noscript', 'template']):
            tag.decompose()
        body = soup.body or soup
        self.visible_text_length = len(body.get_text(' ', strip=True))

    @property
    def looks_dynamic(self) -> bool:
        if not self.html:
            return False
        if self.visible_text_length >= 1000:
            return False
        return self.script_ratio > SCRIPT_HEAVY_RATIO or self.framework is not None or self.visible_text_length < 100

    def technical_details(self) -> List[str]:
        details = []
        if self.html_size > LARGE_HTML_BYTES:
            details.append(f"Large HTML file ({round(self.html_size / 1024)}KB)")
        if self.script_ratio > SCRIPT_HEAVY_RATIO:
            details.append(f"{round(self.script_ratio * 100)}% of content is JavaScript")
        if self.framework:
            details.append(f"{self.framework} application detected")
        if self.has_iframes:
            details.append("Content may be inside iframes")
        if self.has_shadow_dom:
            details.append("Uses Shadow DOM (content hidden from scraping)")
        if self.html and self.visible_text_length < THIN_TEXT_CHARS:
            details.append(f"Very little visible text ({self.visible_text_length} characters)")
        return details


def _domain_entry(url: str) -> Optional[Tuple[ReasonCode, str, str]]:
    host = (urlparse(url).hostname or '').lower()
    for suffix, entry in DOMAIN_GUIDANCE.items():
        if host == suffix or host.endswith('.' + suffix):
            return entry
    return None


class FailureAnalyzer:
    """Turns a failed cascade into a FailureAnalysis."""

    def analyze(
        self,
        url: str,
        html: Optional[str],
        attempts: List[StrategyAttempt],
        fetch_error: Optional[FetchError] = None,
    ) -> FailureAnalysis:
        signals = PageSignals(html)
        domain = _domain_entry(url)

        reason = self._classify(html, signals, attempts, fetch_error, domain)

        guidance_parts = []
        if domain and domain[0] == reason:
            guidance_parts.append(domain[1])
        guidance_parts.append(GUIDANCE[reason])
        guidance = ' '.join(guidance_parts)

        details = signals.technical_details()
        if fetch_error is not None:
            details.insert(0, f"Fetch failed: {fetch_error}")
        failed = [a.strategy for a in attempts if a.outcome == OUTCOME_FAILED]
        if failed:
            details.append(f"Strategies failed: {', '.join(failed)}")
        if details:
            guidance += '\n\nTechnical details:\n' + '\n'.join(f'• {d}' for d in details)

        suggestions = list(GENERIC_SUGGESTIONS)
        if domain:
            suggestions.insert(0, domain[2])

        logger.info(f"[failure] {url} classified as {reason.value} ({len(attempts)} attempts)")
        return FailureAnalysis(
            reason_code=reason,
            guidance=guidance,
            suggestions=tuple(suggestions),
            technical_details=tuple(details),
        )

    def _classify(
        self,
        html: Optional[str],
        signals: PageSignals,
        attempts: List[StrategyAttempt],
        fetch_error: Optional[FetchError],
        domain: Optional[Tuple[ReasonCode, str, str]],
    ) -> ReasonCode:
        if fetch_error is not None:
            if isinstance(fetch_error, BlockedError):
                # LinkedIn answers anonymous clients with 999 rather than a login page
                if domain and domain[0] == ReasonCode.REQUIRES_AUTH:
                    return ReasonCode.REQUIRES_AUTH
                return ReasonCode.BOT_BLOCKED
            if fetch_error.status_code in (401, 407):
                return ReasonCode.REQUIRES_AUTH
            return ReasonCode.UNREACHABLE

        if html:
            if any(marker.search(html) for marker in LOGIN_MARKERS):
                return ReasonCode.REQUIRES_AUTH
            if looks_like_challenge(html):
                return ReasonCode.BOT_BLOCKED

        if domain:
            return domain[0]

        if signals.looks_dynamic:
            return ReasonCode.DYNAMIC_CONTENT_ONLY

        render_attempt = next((a for a in attempts if a.strategy == Strategy.HEADLESS_RENDER.value), None)
        if render_attempt and render_attempt.outcome in (OUTCOME_FAILED, OUTCOME_SKIPPED) and signals.script_ratio > 0.5:
            return ReasonCode.DYNAMIC_CONTENT_ONLY

        return ReasonCode.UNKNOWN
