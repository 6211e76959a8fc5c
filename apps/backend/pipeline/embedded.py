"""
Embedded-data miner.

Recovers job data that is present in a page's markup or scripts but not
necessarily rendered as visible text. Sub-strategies run in order of
decreasing reliability, each with a fixed confidence:

    json_ld            0.95  <script type="application/ld+json"> JobPosting
    microdata          0.90  itemtype=".../JobPosting"
    script_assignment  0.80  var X = {...} / window.X = {...} in scripts
    base64             0.70  base64 JSON in data: URIs
    comment            0.60  JSON inside HTML comments
    hydration          0.85  __NEXT_DATA__, __INITIAL_STATE__, Remix context, ...
    api_endpoint       0.50  API URLs referenced in scripts (no text of its own)
    meta               0.40  job-related meta tags and data-* attributes

The best candidate is the highest-confidence one whose rendered text is long
enough; failing that, the highest-confidence non-empty one.
"""

import re
import json
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Comment

from core.data_repair import extract_json, parse_json_lenient
from core.errors import FetchError, ParseError
from core.net import HTTPClient
from core.normalize import as_text_list, clean_text, format_job_text, text_from_value
from .jsonld import JSONLDExtractor, MicrodataExtractor, format_location, format_salary
from .models import CONFIDENCE_SCORES, ExtractionResult, Strategy

logger = logging.getLogger(__name__)

JOB_KEYWORDS = [
    'job', 'position', 'career', 'posting', 'vacancy', 'role', 'title',
    'company', 'employer', 'responsibilities', 'qualifications',
    'requirements', 'skills', 'experience', 'salary', 'location',
]

# Canonical field -> keys seen in the wild, in preference order
FIELD_ALIASES = {
    'title': ['title', 'jobTitle', 'job_title', 'positionTitle', 'postingTitle', 'position'],
    'company': ['company', 'companyName', 'company_name', 'hiringOrganization',
                'employer', 'employerName', 'organization', 'organizationName'],
    'location': ['location', 'jobLocation', 'locationName', 'formattedLocation',
                 'primaryLocation', 'locations', 'city'],
    'salary': ['salary', 'salaryRange', 'salary_range', 'compensation', 'baseSalary', 'payRange'],
    'employment_type': ['employmentType', 'employment_type', 'jobType', 'job_type', 'timeType', 'workType'],
    'description': ['description', 'jobDescription', 'job_description', 'descriptionHtml',
                    'descriptionPlain', 'jobSummary', 'summary', 'content', 'body', 'details'],
    'responsibilities': ['responsibilities', 'duties', 'yourImpact'],
    'requirements': ['requirements', 'experienceRequirements', 'minimumQualifications'],
    'qualifications': ['qualifications', 'preferredQualifications', 'educationRequirements'],
    'benefits': ['benefits', 'jobBenefits', 'perks'],
    'skills': ['skills', 'skillsRequired'],
}
TITLE_KEYS = {k.lower() for k in FIELD_ALIASES['title']}
DETAIL_KEYS = {
    k.lower()
    for name in ('company', 'location', 'description', 'responsibilities', 'requirements', 'qualifications')
    for k in FIELD_ALIASES[name]
}

HYDRATION_GLOBALS = [
    '__INITIAL_STATE__', '__PRELOADED_STATE__', '__APP_STATE__', '__APOLLO_STATE__',
    '__remixContext', '__NUXT__', '__data', 'pageData', 'jobData',
]

ASSIGNMENT_RE = re.compile(
    r'(?:\b(?:var|let|const)\s+([A-Za-z_$][\w$]*)'
    r'|\bwindow\.([A-Za-z_$][\w$]*)'
    r'|\bwindow\[\s*["\']([^"\']+)["\']\s*\])'
    r'\s*=\s*(?=[\[{])'
)
BASE64_RE = re.compile(
    r'(?:data:|content:)\s*(?:application/json)?(?:;charset=[\w-]+)?;?base64,([A-Za-z0-9+/=]{16,})'
)
API_URL_PATTERNS = [
    re.compile(r'["\']([^"\'\s]*/api/[^"\'\s]+)["\']'),
    re.compile(r'fetch\(\s*["\']([^"\']+)["\']'),
    re.compile(r'axios\.[a-z]+\(\s*["\']([^"\']+)["\']'),
    re.compile(r'url\s*:\s*["\']([^"\']+)["\']'),
]
API_KEYWORDS = ('job', 'position', 'career', 'posting', 'requisition', 'opening', 'vacanc')
GRAPHQL_QUERY_RE = re.compile(r'query\s+\w+[^{]{0,200}\{[^}]{0,500}\bjob', re.IGNORECASE)
JOB_ID_RE = re.compile(r'(?:jobs?|positions?|postings?|careers?)[/\-](\d+)', re.IGNORECASE)
GUESSED_API_PATHS = [
    '/api/jobs/{id}',
    '/api/v1/jobs/{id}',
    '/api/v2/jobs/{id}',
    '/api/positions/{id}',
    '/api/postings/{id}',
    '/api/job-postings/{id}',
    '/api/careers/jobs/{id}',
    '/careers/api/jobs/{id}',
    '/jobs/{id}.json',
]
MAX_SEARCH_DEPTH = 30


@dataclass
class EmbeddedCandidate:
    """Output of one sub-strategy."""
    method: str
    confidence: float
    fields: Dict[str, Any] = field(default_factory=dict)
    endpoints: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return format_job_text(self.fields) if self.fields else ""


def is_job_related(data: Any, minimum: int = 2) -> bool:
    """Check that a parsed JSON value mentions at least ``minimum`` job keywords."""
    try:
        blob = json.dumps(data, default=str).lower()
    except (TypeError, ValueError):
        return False
    return sum(1 for kw in JOB_KEYWORDS if kw in blob) >= minimum


def find_job_data(data: Any, depth: int = 0) -> Optional[Dict[str, Any]]:
    """
    Recursively search parsed JSON for the first object that looks like a job:
    a title-like key plus at least one detail key (description, company, ...).
    """
    if depth > MAX_SEARCH_DEPTH:
        return None
    if isinstance(data, dict):
        keys = {str(k).lower() for k in data}
        title_keys = keys & TITLE_KEYS
        has_title = any(isinstance(data.get(k), str) and data.get(k).strip()
                        for k in data if str(k).lower() in title_keys)
        if has_title and keys & DETAIL_KEYS:
            return data
        for value in data.values():
            found = find_job_data(value, depth + 1)
            if found:
                return found
    elif isinstance(data, list):
        for item in data:
            found = find_job_data(item, depth + 1)
            if found:
                return found
    return None


def _lookup(data: Dict[str, Any], aliases: List[str]) -> Any:
    lowered = {str(k).lower(): v for k, v in data.items()}
    for alias in aliases:
        value = lowered.get(alias.lower())
        if value not in (None, '', [], {}):
            return value
    return None


def coerce_job_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map an arbitrary job-like object onto canonical job fields."""
    fields: Dict[str, Any] = {}

    title = _lookup(data, FIELD_ALIASES['title'])
    if isinstance(title, str):
        fields['title'] = clean_text(title)

    company = _lookup(data, FIELD_ALIASES['company'])
    if isinstance(company, dict):
        company = company.get('name') or company.get('legalName')
    if isinstance(company, str):
        fields['company'] = clean_text(company)

    location = _lookup(data, FIELD_ALIASES['location'])
    if location is not None:
        fields['location'] = format_location(location)

    salary = _lookup(data, FIELD_ALIASES['salary'])
    if salary is not None:
        fields['salary'] = format_salary(salary)

    employment_type = _lookup(data, FIELD_ALIASES['employment_type'])
    if isinstance(employment_type, list):
        employment_type = ', '.join(str(t) for t in employment_type)
    if isinstance(employment_type, str):
        fields['employment_type'] = clean_text(employment_type.replace('_', ' '))

    description = _lookup(data, FIELD_ALIASES['description'])
    if isinstance(description, (str, list)):
        fields['description'] = text_from_value(description)

    for name in ('responsibilities', 'requirements', 'qualifications', 'benefits', 'skills'):
        items = as_text_list(_lookup(data, FIELD_ALIASES[name]))
        if items:
            fields[name] = items

    return {k: v for k, v in fields.items() if v}


class EmbeddedDataMiner:
    """Runs the embedded-data sub-strategies and picks the best candidate."""

    def __init__(self):
        self.jsonld = JSONLDExtractor()
        self.microdata = MicrodataExtractor()
        # (method, extractor) in cascade order
        self.sub_strategies: List[Tuple[str, Callable[[BeautifulSoup, str, str], Optional[EmbeddedCandidate]]]] = [
            ('json_ld', self._from_json_ld),
            ('microdata', self._from_microdata),
            ('script_assignment', self._from_script_assignments),
            ('base64', self._from_base64),
            ('comment', self._from_comments),
            ('hydration', self._from_hydration),
            ('api_endpoint', self._from_api_endpoints),
            ('meta', self._from_meta),
        ]

    def mine(
        self,
        html: str,
        url: str,
        soup: Optional[BeautifulSoup] = None,
        min_text_length: int = 0,
    ) -> Optional[EmbeddedCandidate]:
        """
        Run every sub-strategy and return the best candidate.

        Args:
            html: Raw page HTML
            url: Page URL (used to resolve API endpoints)
            soup: Pre-parsed page, parsed here if omitted
            min_text_length: Candidates with at least this much rendered text
                are preferred over higher-confidence but thinner ones

        Returns:
            Best EmbeddedCandidate or None if nothing was found
        """
        soup = soup or BeautifulSoup(html, 'lxml')
        candidates: List[EmbeddedCandidate] = []
        best_full: Optional[EmbeddedCandidate] = None

        for method, extractor in self.sub_strategies:
            confidence = CONFIDENCE_SCORES[method]
            if best_full and confidence <= best_full.confidence:
                continue
            try:
                candidate = extractor(soup, html, url)
            except (ValueError, TypeError, RecursionError) as e:
                logger.warning(f"[embedded] {method} failed on {url}: {e}")
                continue
            if not candidate or not (candidate.fields or candidate.endpoints):
                continue

            logger.info(
                f"[embedded] {method}: {len(candidate.text)} chars, "
                f"{len(candidate.endpoints)} endpoints (confidence {confidence})"
            )
            candidates.append(candidate)
            if len(candidate.text) >= min_text_length and candidate.fields:
                if not best_full or candidate.confidence > best_full.confidence:
                    best_full = candidate

        if best_full:
            return best_full
        if not candidates:
            return None
        # Stable: earlier sub-strategy wins a tie
        return max(candidates, key=lambda c: c.confidence)

    def to_result(self, candidate: EmbeddedCandidate, url: Optional[str] = None) -> Optional[ExtractionResult]:
        """Render a candidate as an ExtractionResult (None for endpoint-only candidates)."""
        text = candidate.text
        if not text:
            return None
        return ExtractionResult(
            text=text,
            structured_fields=dict(candidate.fields),
            strategy=Strategy.EMBEDDED_DATA,
            confidence=candidate.confidence,
            method=candidate.method,
            url=url,
        )

    def _candidate(self, method: str, job: Dict[str, Any]) -> Optional[EmbeddedCandidate]:
        fields = coerce_job_fields(job)
        if not fields:
            return None
        return EmbeddedCandidate(method=method, confidence=CONFIDENCE_SCORES[method], fields=fields)

    def _from_json_ld(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        fields = self.jsonld.extract(soup)
        if not fields:
            return None
        return EmbeddedCandidate('json_ld', CONFIDENCE_SCORES['json_ld'], fields=fields)

    def _from_microdata(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        fields = self.microdata.extract(soup)
        if not fields:
            return None
        return EmbeddedCandidate('microdata', CONFIDENCE_SCORES['microdata'], fields=fields)

    def _script_bodies(self, soup: BeautifulSoup) -> List[str]:
        bodies = []
        for script in soup.find_all('script'):
            if script.get('type') == 'application/ld+json' or script.get('src'):
                continue
            body = script.string or script.get_text()
            if body and body.strip():
                bodies.append(body)
        return bodies

    def _from_script_assignments(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        for body in self._script_bodies(soup):
            if not is_job_related(body, minimum=2):
                continue
            for match in ASSIGNMENT_RE.finditer(body):
                value = extract_json(body, match.end())
                if value is None or not is_job_related(value):
                    continue
                job = find_job_data(value)
                if job:
                    name = match.group(1) or match.group(2) or match.group(3)
                    logger.debug(f"[embedded] Job data found in script variable {name}")
                    candidate = self._candidate('script_assignment', job)
                    if candidate:
                        return candidate
        return None

    def _from_base64(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        for match in BASE64_RE.finditer(html):
            payload = match.group(1)
            try:
                decoded = base64.b64decode(payload + '=' * (-len(payload) % 4)).decode('utf-8')
            except (binascii.Error, UnicodeDecodeError, ValueError):
                continue
            value = extract_json(decoded)
            if value is None or not is_job_related(value):
                continue
            job = find_job_data(value)
            if job:
                return self._candidate('base64', job)
        return None

    def _from_comments(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            if '{' not in comment:
                continue
            value = extract_json(str(comment))
            if value is None or not is_job_related(value):
                continue
            job = find_job_data(value)
            if job:
                return self._candidate('comment', job)
        return None

    def _from_hydration(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        payloads: List[Any] = []

        next_data = soup.find('script', id='__NEXT_DATA__')
        if next_data and next_data.string:
            try:
                payloads.append(parse_json_lenient(next_data.string))
            except ParseError as e:
                logger.debug(f"[embedded] Unreadable __NEXT_DATA__: {e}")

        for name in HYDRATION_GLOBALS:
            pattern = re.compile(
                r'window(?:\.' + re.escape(name) + r'|\[\s*["\']' + re.escape(name) + r'["\']\s*\])\s*=\s*'
            )
            for body in self._script_bodies(soup):
                match = pattern.search(body)
                if not match:
                    continue
                value = extract_json(body, match.end())
                if value is not None:
                    payloads.append(value)

        for payload in payloads:
            job = find_job_data(payload)
            if job:
                return self._candidate('hydration', job)
        return None

    def discover_endpoints(self, html: str, url: str) -> List[str]:
        """API endpoints referenced in the page, plus guesses derived from a job id in the URL."""
        endpoints: List[str] = []
        for pattern in API_URL_PATTERNS:
            for match in pattern.finditer(html):
                candidate = match.group(1)
                if any(kw in candidate.lower() for kw in API_KEYWORDS):
                    endpoints.append(urljoin(url, candidate))

        if GRAPHQL_QUERY_RE.search(html):
            endpoints.append(urljoin(url, '/graphql'))

        job_id = JOB_ID_RE.search(urlparse(url).path)
        if job_id:
            for path in GUESSED_API_PATHS:
                endpoints.append(urljoin(url, path.format(id=job_id.group(1))))

        return list(dict.fromkeys(e for e in endpoints if e.startswith(('http://', 'https://'))))

    def _from_api_endpoints(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        endpoints = self.discover_endpoints(html, url)
        if not endpoints:
            return None
        return EmbeddedCandidate('api_endpoint', CONFIDENCE_SCORES['api_endpoint'], endpoints=endpoints)

    def _from_meta(self, soup: BeautifulSoup, html: str, url: str) -> Optional[EmbeddedCandidate]:
        data: Dict[str, Any] = {}
        for meta in soup.find_all('meta'):
            prop = (meta.get('property') or meta.get('name') or '').lower()
            content = meta.get('content')
            if not content:
                continue
            if prop in ('og:title', 'twitter:title', 'title'):
                data.setdefault('title', content)
            elif prop in ('og:description', 'description', 'twitter:description'):
                data.setdefault('description', content)
            elif prop == 'og:site_name':
                data.setdefault('company', content)
            elif 'job' in prop:
                data.setdefault(prop.split(':')[-1], content)

        for element in soup.select('[data-job-title], [data-company], [data-position], [data-job-id]'):
            for key, value in element.attrs.items():
                if key.startswith('data-') and isinstance(value, str) and value:
                    data.setdefault(key[5:].replace('-', '_'), value)
        if 'job_title' in data:
            data.setdefault('title', data['job_title'])

        if 'description' not in data:
            return None
        return self._candidate('meta', data)

    async def follow_endpoints(
        self,
        endpoints: List[str],
        client: HTTPClient,
        page_url: str,
        limit: int = 3,
        timeout: float = 5.0,
    ) -> Optional[EmbeddedCandidate]:
        """
        Fetch same-origin API endpoints and mine job data from their JSON.

        Returns:
            Candidate built from the first endpoint that returns job data
        """
        origin = urlparse(page_url).netloc.lower()
        same_origin = [e for e in endpoints if urlparse(e).netloc.lower() == origin]
        for endpoint in same_origin[:limit]:
            try:
                response = await client.fetch(
                    endpoint,
                    headers={'Accept': 'application/json, text/plain, */*', 'Referer': page_url},
                    timeout=timeout,
                )
                value = parse_json_lenient(response.body)
            except (FetchError, ParseError) as e:
                logger.info(f"[embedded] API endpoint {endpoint} gave nothing: {e}")
                continue
            job = find_job_data(value)
            if job:
                logger.info(f"[embedded] Job data found at API endpoint {endpoint}")
                return self._candidate('api_endpoint', job)
        return None
