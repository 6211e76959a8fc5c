"""
Heuristic extractor.

Generic extraction for unknown sites: strips non-content elements, scores
containers whose class/id mentions job-ish keywords, and falls back through
content roots, paragraph text and finally the whole body. Label heuristics
and a regex rule table fill in a few structured fields on the side.
"""

import re
import logging
from collections import namedtuple
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser

from core.normalize import clean_text, collapse_whitespace, html_to_text
from .models import CONFIDENCE_SCORES, ExtractionResult, Strategy

logger = logging.getLogger(__name__)

NOISE_TAGS = [
    'script', 'style', 'noscript', 'iframe', 'svg', 'template', 'nav', 'header',
    'footer', 'aside', 'form', 'button', 'select', 'input',
]
NOISE_TOKENS = {
    'cookie', 'cookies', 'consent', 'gdpr', 'banner', 'ad', 'ads', 'advert',
    'advertisement', 'sponsored', 'sidebar', 'navbar', 'nav', 'navigation',
    'breadcrumb', 'breadcrumbs', 'social', 'share', 'sharing', 'newsletter',
    'popup', 'modal', 'subscribe', 'menu', 'footer',
}
PROTECTED_TAGS = {'html', 'body', 'main', 'article'}

# class/id keyword -> weight applied to the container's text length
CONTENT_KEYWORDS = {
    'job': 1.0,
    'description': 1.0,
    'posting': 1.0,
    'vacancy': 1.0,
    'requisition': 0.9,
    'position': 0.9,
    'career': 0.8,
    'details': 0.8,
    'content': 0.6,
}
CONTAINER_TAGS = ['div', 'section', 'article', 'main', 'td']
CONTENT_ROOTS = ['main', 'article', '[role="main"]', '#content', '.content']

# A nested candidate replaces its ancestor when it holds this share of the text
NESTED_SHARE = 0.8

# Fallback level -> confidence
LEVEL_CONFIDENCE = {
    'job_container': CONFIDENCE_SCORES['heuristic'],
    'content_root': 0.45,
    'paragraphs': 0.40,
    'body': 0.30,
}

FieldRule = namedtuple('FieldRule', ['pattern', 'field', 'confidence'])

# Best-effort supplements matched against the extracted text; first match per field wins
SUPPLEMENT_RULES = [
    FieldRule(
        re.compile(
            r'\$[\d,]+(?:\.\d+)?[kK]?(?:\s*(?:-|–|to)\s*\$?[\d,]+(?:\.\d+)?[kK]?)?'
            r'(?:\s*(?:per|/|an?)\s*(?:year|yr|annum|hour|hr|month))?',
            re.IGNORECASE,
        ),
        'salary',
        0.6,
    ),
    FieldRule(
        re.compile(
            r'[£€][\d,]+(?:\.\d+)?[kK]?(?:\s*(?:-|–|to)\s*[£€]?[\d,]+(?:\.\d+)?[kK]?)?'
            r'(?:\s*(?:per|/|an?)\s*(?:year|annum|hour|month))?',
            re.IGNORECASE,
        ),
        'salary',
        0.55,
    ),
    FieldRule(
        re.compile(r'\b(?:full[- ]?time|part[- ]?time|contract|temporary|freelance|internship)\b', re.IGNORECASE),
        'employment_type',
        0.5,
    ),
    FieldRule(
        re.compile(r'\b(?:remote|hybrid|on[- ]?site)\b', re.IGNORECASE),
        'work_arrangement',
        0.5,
    ),
]


def apply_supplement_rules(text: str, rules: List[FieldRule] = SUPPLEMENT_RULES) -> Dict[str, str]:
    """Run the rule table over text; returns {field: matched text}."""
    found: Dict[str, Tuple[str, float]] = {}
    for rule in rules:
        match = rule.pattern.search(text or '')
        if not match:
            continue
        current = found.get(rule.field)
        if current is None or rule.confidence > current[1]:
            found[rule.field] = (match.group(0).strip(), rule.confidence)
    return {name: value for name, (value, _) in found.items()}


def _attr_tokens(element: Tag) -> List[str]:
    attrs = ' '.join(element.get('class') or []) + ' ' + (element.get('id') or '')
    return [t for t in re.split(r'[\s_\-]+', attrs.lower()) if t]


def _keyword_weight(element: Tag) -> float:
    attrs = (' '.join(element.get('class') or []) + ' ' + (element.get('id') or '')).lower()
    return max((w for kw, w in CONTENT_KEYWORDS.items() if kw in attrs), default=0.0)


class HeuristicExtractor:
    """Extracts job text from arbitrary pages using layout heuristics."""

    def __init__(self, min_length: int = 100):
        self.min_length = min_length

    def strip_noise(self, soup: BeautifulSoup) -> BeautifulSoup:
        """Return a copy of the page without navigation, ads, banners and scripts."""
        clean = BeautifulSoup(str(soup), 'lxml')
        for tag in clean(NOISE_TAGS):
            tag.decompose()
        for element in clean.find_all(True):
            if element.decomposed or element.name in PROTECTED_TAGS:
                continue
            if element.get('aria-hidden') == 'true' or 'display:none' in (element.get('style') or '').replace(' ', ''):
                element.decompose()
                continue
            if NOISE_TOKENS.intersection(_attr_tokens(element)):
                element.decompose()
        return clean

    def extract(self, soup: BeautifulSoup, url: Optional[str] = None) -> Optional[ExtractionResult]:
        """
        Extract the main job text.

        Returns:
            ExtractionResult from the first fallback level producing enough
            text, else from the longest level that produced any text, else None
        """
        clean = self.strip_noise(soup)

        levels = [
            ('job_container', self._from_job_container),
            ('content_root', self._from_content_roots),
            ('paragraphs', self._from_paragraphs),
            ('body', self._from_body),
        ]
        best: Optional[Tuple[str, str]] = None
        for level, finder in levels:
            text = finder(clean)
            if not text:
                continue
            logger.debug(f"[heuristics] {level}: {len(text)} chars")
            if len(text) >= self.min_length:
                best = (level, text)
                break
            if best is None or len(text) > len(best[1]):
                best = (level, text)

        if not best:
            return None

        level, text = best
        fields = self._structured_fields(soup, text)
        logger.info(f"[heuristics] Selected {level} ({len(text)} chars) fields={sorted(fields)}")
        return ExtractionResult(
            text=text,
            structured_fields=fields or None,
            strategy=Strategy.HEURISTIC,
            confidence=LEVEL_CONFIDENCE[level],
            method=f"heuristic:{level}",
            url=url,
        )

    def _from_job_container(self, soup: BeautifulSoup) -> Optional[str]:
        candidates: List[Tuple[Tag, int, float]] = []
        for element in soup.find_all(CONTAINER_TAGS):
            weight = _keyword_weight(element)
            if not weight:
                continue
            length = len(element.get_text(' ', strip=True))
            if length:
                candidates.append((element, length, length * weight))
        if not candidates:
            return None

        best, best_length, _ = max(candidates, key=lambda c: c[2])
        # Prefer a tighter nested container holding most of the same text
        while True:
            nested = [
                c for c in candidates
                if c[0] is not best
                and c[1] >= best_length * NESTED_SHARE
                and any(parent is best for parent in c[0].parents)
            ]
            if not nested:
                break
            best, best_length, _ = max(nested, key=lambda c: c[2])

        return html_to_text(best)

    def _from_content_roots(self, soup: BeautifulSoup) -> Optional[str]:
        texts = []
        for selector in CONTENT_ROOTS:
            for element in soup.select(selector):
                text = html_to_text(element)
                if text:
                    texts.append(text)
        return max(texts, key=len) if texts else None

    def _from_paragraphs(self, soup: BeautifulSoup) -> Optional[str]:
        parts = []
        for element in soup.find_all(['p', 'li']):
            text = clean_text(element.get_text(' ', strip=True))
            if not text:
                continue
            parts.append(f'• {text}' if element.name == 'li' else text)
        return collapse_whitespace('\n'.join(parts)) if parts else None

    def _from_body(self, soup: BeautifulSoup) -> Optional[str]:
        body = soup.body or soup
        return html_to_text(body) or None

    def _structured_fields(self, soup: BeautifulSoup, text: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        title = self._extract_title(soup)
        if title:
            fields['title'] = title

        site_name = soup.find('meta', attrs={'property': 'og:site_name'})
        if site_name and site_name.get('content'):
            fields['company'] = clean_text(site_name['content'])

        location = self._extract_location(soup)
        if location:
            fields['location'] = location

        deadline = self._extract_deadline(soup)
        if deadline:
            fields['deadline'] = deadline

        requirements = self._extract_requirements(soup)
        if requirements:
            fields['requirements'] = requirements

        for name, value in apply_supplement_rules(text).items():
            fields.setdefault(name, value)

        return fields

    def _extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        h1 = soup.find('h1')
        if h1 and clean_text(h1.get_text(' ', strip=True)):
            return clean_text(h1.get_text(' ', strip=True))
        og_title = soup.find('meta', attrs={'property': 'og:title'})
        if og_title and og_title.get('content'):
            return clean_text(og_title['content'])
        if soup.title and soup.title.string:
            return clean_text(soup.title.string)
        return None

    def _labelled_value(self, soup: BeautifulSoup, label_pattern: str) -> Optional[str]:
        """Value following a label element (dt/th/label/span) matching the pattern."""
        labels = soup.find_all(['dt', 'th', 'label', 'span', 'strong'], string=re.compile(label_pattern, re.I))
        for label in labels:
            value_elem = label.find_next_sibling(['dd', 'td', 'div', 'span'])
            if value_elem:
                value = clean_text(value_elem.get_text(' ', strip=True))
                if value and 2 < len(value) < 120:
                    return value
        return None

    def _extract_location(self, soup: BeautifulSoup) -> Optional[str]:
        return self._labelled_value(soup, r'^\s*(?:job\s+)?location|duty station|work location')

    def _extract_deadline(self, soup: BeautifulSoup) -> Optional[str]:
        value = self._labelled_value(soup, r'deadline|closing date|apply by')
        if not value:
            return None
        try:
            return date_parser.parse(value, fuzzy=True).strftime('%Y-%m-%d')
        except (ValueError, OverflowError):
            logger.debug(f"[heuristics] Unparseable deadline '{value}'")
            return None

    def _extract_requirements(self, soup: BeautifulSoup) -> List[str]:
        """List items under the first requirements/qualifications heading."""
        headings = soup.find_all(['h2', 'h3', 'h4', 'strong'],
                                 string=re.compile(r'requirement|qualification|skill', re.I))
        for heading in headings:
            current = heading.find_next_sibling()
            while current and current.name not in ['h1', 'h2', 'h3', 'h4']:
                if current.name in ['ul', 'ol']:
                    items = [clean_text(li.get_text(' ', strip=True)) for li in current.find_all('li')]
                    items = [item for item in items if item]
                    if items:
                        return items
                    break
                current = current.find_next_sibling()
        return []
