"""
Schema.org JobPosting extraction.

Reads job fields from JSON-LD blocks and from microdata markup. Malformed
JSON-LD (trailing garbage, truncated blocks, several objects in one script)
is recovered by bracket-balance scanning instead of being discarded.
"""

import json
import logging
from typing import Dict, List, Optional, Any

from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser

from core.data_repair import parse_json_lenient
from core.errors import ParseError
from core.normalize import as_text_list, clean_text, html_to_text, text_from_value

logger = logging.getLogger(__name__)

LIST_PROPERTIES = {
    'responsibilities': 'responsibilities',
    'qualifications': 'qualifications',
    'skills': 'skills',
    'experienceRequirements': 'requirements',
    'educationRequirements': 'requirements',
    'jobBenefits': 'benefits',
}


def _parse_date(value: Any) -> Optional[str]:
    if not value:
        return None
    try:
        return date_parser.parse(str(value)).strftime('%Y-%m-%d')
    except (ValueError, OverflowError):
        return None


def format_location(loc: Any) -> Optional[str]:
    """Render a JobPosting jobLocation (dict, string or list) as text."""
    if isinstance(loc, list):
        parts = [format_location(item) for item in loc]
        unique = list(dict.fromkeys(p for p in parts if p))
        return '; '.join(unique) if unique else None
    if isinstance(loc, str):
        return clean_text(loc)
    if not isinstance(loc, dict):
        return None

    addr = loc.get('address')
    if isinstance(addr, dict):
        parts = []
        for key in ('addressLocality', 'addressRegion', 'addressCountry'):
            value = addr.get(key)
            if isinstance(value, dict):
                value = value.get('name')
            if value:
                parts.append(str(value).strip())
        if parts:
            return ', '.join(parts)
    elif isinstance(addr, str):
        return clean_text(addr)
    return clean_text(loc.get('name'))


def format_salary(salary: Any) -> Optional[str]:
    """Render a MonetaryAmount baseSalary as e.g. 'USD 100,000 - 150,000 per year'."""
    if isinstance(salary, (str, int, float)):
        return clean_text(salary)
    if not isinstance(salary, dict):
        return None

    currency = salary.get('currency') or ''
    value = salary.get('value', {})
    unit = ''
    if isinstance(value, dict):
        unit = str(value.get('unitText') or '').lower()
        low, high = value.get('minValue'), value.get('maxValue')
        single = value.get('value')
    else:
        low, high, single = None, None, value

    def fmt(amount: Any) -> str:
        try:
            return f"{float(amount):,.0f}"
        except (TypeError, ValueError):
            return str(amount)

    if low is not None and high is not None:
        amount = f"{fmt(low)} - {fmt(high)}"
    elif single is not None:
        amount = fmt(single)
    elif low is not None or high is not None:
        amount = fmt(low if low is not None else high)
    else:
        return None

    text = f"{currency} {amount}".strip()
    if unit:
        text += f" per {unit}"
    return text


class JSONLDExtractor:
    """Extracts job data from JSON-LD structured data."""

    def extract(self, soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
        """
        Extract job fields from the best JobPosting in the page.

        Returns:
            Dict of canonical job fields, or None if no JobPosting was found
        """
        postings: List[Dict[str, Any]] = []

        for script in soup.find_all('script', type='application/ld+json'):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except ValueError:
                try:
                    data = parse_json_lenient(raw)
                except ParseError as e:
                    logger.debug(f"[embedded] Unrecoverable JSON-LD block: {e}")
                    continue

            for item in self._flatten_jsonld(data):
                if self._is_job_posting(item):
                    postings.append(self._extract_job_posting(item))

        if not postings:
            return None

        # Prefer the posting that carries the most description text
        return max(postings, key=lambda f: len(f.get('description') or ''))

    def _flatten_jsonld(self, data: Any) -> List[Dict]:
        """Flatten JSON-LD structure to list of items."""
        items = []

        if isinstance(data, dict):
            if self._is_job_posting(data):
                items.append(data)
            elif isinstance(data.get('@graph'), list):
                items.extend(self._flatten_jsonld(data['@graph']))
            elif isinstance(data.get('itemListElement'), list):
                for element in data['itemListElement']:
                    if isinstance(element, dict) and isinstance(element.get('item'), dict):
                        items.append(element['item'])
            elif isinstance(data.get('mainEntity'), dict):
                items.append(data['mainEntity'])
        elif isinstance(data, list):
            for item in data:
                items.extend(self._flatten_jsonld(item))

        return items

    def _is_job_posting(self, item: Dict) -> bool:
        """Check if JSON-LD item is a JobPosting."""
        item_type = item.get('@type', '')
        if isinstance(item_type, str):
            return 'JobPosting' in item_type
        elif isinstance(item_type, list):
            return any('JobPosting' in str(t) for t in item_type)
        return False

    def _extract_job_posting(self, job_data: Dict) -> Dict[str, Any]:
        """Extract canonical fields from a JobPosting object."""
        fields: Dict[str, Any] = {}

        title = clean_text(job_data.get('title') or job_data.get('name'))
        if title:
            fields['title'] = title

        org = job_data.get('hiringOrganization') or job_data.get('employer')
        if isinstance(org, dict):
            org = org.get('name') or org.get('legalName')
        company = clean_text(org) if isinstance(org, str) else None
        if company:
            fields['company'] = company

        location = format_location(job_data.get('jobLocation'))
        if not location and job_data.get('jobLocationType') == 'TELECOMMUTE':
            location = 'Remote'
        if location:
            fields['location'] = location

        salary = format_salary(job_data.get('baseSalary') or job_data.get('estimatedSalary'))
        if salary:
            fields['salary'] = salary

        employment_type = job_data.get('employmentType')
        if isinstance(employment_type, list):
            employment_type = ', '.join(str(t) for t in employment_type)
        if employment_type:
            fields['employment_type'] = clean_text(str(employment_type).replace('_', ' ').title())

        posted = _parse_date(job_data.get('datePosted'))
        if posted:
            fields['posted_date'] = posted
        deadline = _parse_date(job_data.get('validThrough') or job_data.get('applicationDeadline'))
        if deadline:
            fields['deadline'] = deadline

        description = text_from_value(job_data.get('description'))
        if description:
            fields['description'] = description

        for prop, field_name in LIST_PROPERTIES.items():
            items = as_text_list(job_data.get(prop))
            if items:
                fields.setdefault(field_name, [])
                fields[field_name].extend(items)

        if isinstance(job_data.get('url'), str):
            fields['application_url'] = job_data['url'].strip()

        return fields


class MicrodataExtractor:
    """Extracts job data from itemtype=".../JobPosting" microdata."""

    def extract(self, soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
        scope = soup.find(attrs={'itemtype': lambda v: bool(v) and 'JobPosting' in v})
        if not scope:
            return None

        fields: Dict[str, Any] = {}
        for element in scope.find_all(attrs={'itemprop': True}):
            if not self._belongs_to(element, scope):
                continue
            prop = element.get('itemprop')
            if prop == 'title':
                fields.setdefault('title', self._value(element))
            elif prop in ('hiringOrganization', 'employer'):
                name = element.find(attrs={'itemprop': 'name'}) if element.has_attr('itemscope') else None
                fields.setdefault('company', self._value(name or element))
            elif prop == 'jobLocation':
                fields.setdefault('location', clean_text(element.get_text(' ', strip=True)))
            elif prop in ('baseSalary', 'estimatedSalary'):
                fields.setdefault('salary', clean_text(element.get_text(' ', strip=True)) or self._value(element))
            elif prop == 'employmentType':
                fields.setdefault('employment_type', self._value(element))
            elif prop == 'datePosted':
                fields.setdefault('posted_date', _parse_date(self._value(element)))
            elif prop == 'validThrough':
                fields.setdefault('deadline', _parse_date(self._value(element)))
            elif prop == 'description':
                fields.setdefault('description', html_to_text(element))
            elif prop in LIST_PROPERTIES:
                items = as_text_list(html_to_text(element))
                if items:
                    fields.setdefault(LIST_PROPERTIES[prop], []).extend(items)

        fields = {k: v for k, v in fields.items() if v}
        return fields or None

    def _belongs_to(self, element: Tag, scope: Tag) -> bool:
        """True when the nearest enclosing itemscope of element is scope."""
        for parent in element.parents:
            if parent is scope:
                return True
            if parent.has_attr('itemscope'):
                return False
        return False

    def _value(self, element: Tag) -> Optional[str]:
        if element.name == 'meta':
            return clean_text(element.get('content'))
        if element.name == 'time' and element.get('datetime'):
            return clean_text(element.get('datetime'))
        return clean_text(element.get('content') or element.get_text(' ', strip=True))
