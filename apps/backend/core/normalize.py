"""
Text normalization for extracted job content.

Turns HTML fragments into readable plain text and renders extracted job fields
into the labelled text format handed to downstream parsers:
- List items become bullet lines
- Headings become section breaks
- Table cells become pipe-delimited fragments
- HTML entities are decoded and whitespace is collapsed
"""

import re
import html
from typing import Any, Dict, List, Optional, Union

from bs4 import BeautifulSoup, Tag

BLOCK_TAGS = [
    'div', 'section', 'article', 'main', 'header', 'footer', 'aside',
    'ul', 'ol', 'dl', 'dt', 'dd', 'table', 'blockquote', 'pre', 'form',
]
HEADING_TAGS = ['h1', 'h2', 'h3', 'h4', 'h5', 'h6']
STRIP_TAGS = ['script', 'style', 'noscript', 'template', 'svg']

ZERO_WIDTH_RE = re.compile('[\u200b\u200c\u200d\u2060\ufeff]')
HTML_TAG_RE = re.compile(r'<\s*(?:p|div|br|li|ul|ol|span|strong|b|h[1-6]|table|a)\b[^>]*>', re.IGNORECASE)

# UTF-8 text decoded as cp1252 by upstream servers
MOJIBAKE = {
    'â€™': "'",
    'â€˜': "'",
    'â€œ': '"',
    'â€\u009d': '"',
    'â€“': '-',
    'â€”': '-',
    'â€¢': '•',
    'Â ': ' ',
}

HEADER_FIELDS = [
    ('title', 'Job Title'),
    ('company', 'Company'),
    ('location', 'Location'),
    ('salary', 'Salary'),
    ('employment_type', 'Employment Type'),
]

SECTION_FIELDS = [
    ('responsibilities', 'Responsibilities'),
    ('requirements', 'Requirements'),
    ('qualifications', 'Qualifications'),
    ('skills', 'Skills'),
    ('benefits', 'Benefits'),
]


def fix_mojibake(text: str) -> str:
    for broken, fixed in MOJIBAKE.items():
        if broken in text:
            text = text.replace(broken, fixed)
    return text


def collapse_whitespace(text: str) -> str:
    """
    Collapse runs of spaces, trim lines and allow at most one blank line
    between paragraphs.
    """
    if not text:
        return ""
    text = fix_mojibake(text).replace('\xa0', ' ').replace('\r\n', '\n').replace('\r', '\n')
    text = ZERO_WIDTH_RE.sub('', text)

    lines: List[str] = []
    pending_bullet = False
    for raw_line in text.split('\n'):
        line = re.sub(r'[ \t\f\v]+', ' ', raw_line).strip()
        line = re.sub(r'(?:\s*\|)+$', '', line).strip()
        if line == '•':
            pending_bullet = True
            continue
        if pending_bullet and line:
            line = f'• {line}'
            pending_bullet = False
        lines.append(line)

    collapsed = '\n'.join(lines)
    collapsed = re.sub(r'\n{3,}', '\n\n', collapsed)
    return collapsed.strip()


def clean_text(value: Any) -> Optional[str]:
    """Normalize a single-line field value (title, company, location)."""
    if value is None:
        return None
    text = html.unescape(fix_mojibake(str(value)))
    text = ZERO_WIDTH_RE.sub('', text)
    text = re.sub(r'\s+', ' ', text).strip()
    return text or None


def looks_like_html(text: str) -> bool:
    return bool(text and HTML_TAG_RE.search(text))


def html_to_text(markup: Union[str, Tag, None]) -> str:
    """
    Convert an HTML fragment (string or parsed element) to readable text.

    The input element is not modified.
    """
    if markup is None:
        return ""
    soup = BeautifulSoup(str(markup), 'lxml')

    for tag in soup(STRIP_TAGS):
        tag.decompose()

    for br in soup.find_all('br'):
        br.replace_with('\n')
    for li in soup.find_all('li'):
        li.insert_before('\n• ')
    for heading in soup.find_all(HEADING_TAGS):
        heading.insert_before('\n\n')
        heading.insert_after('\n')
    for cell in soup.find_all(['td', 'th']):
        cell.insert_after(' | ')
    for row in soup.find_all('tr'):
        row.insert_after('\n')
    for para in soup.find_all('p'):
        para.insert_before('\n')
        para.insert_after('\n\n')
    for block in soup.find_all(BLOCK_TAGS):
        block.insert_before('\n')
        block.insert_after('\n')

    return collapse_whitespace(soup.get_text())


def text_from_value(value: Any) -> str:
    """Plain text from a string that may or may not contain HTML markup."""
    if value is None:
        return ""
    if isinstance(value, list):
        return '\n'.join(f'• {item}' for item in as_text_list(value))
    text = str(value)
    if looks_like_html(text):
        return html_to_text(text)
    return collapse_whitespace(html.unescape(text))


def as_text_list(value: Any) -> List[str]:
    """Coerce a string or list (of strings or dicts) into a list of clean strings."""
    if value is None:
        return []
    if isinstance(value, str):
        text = text_from_value(value)
        items = [re.sub(r'^[•\-\*·]\s*', '', line).strip() for line in text.split('\n')]
        return [item for item in items if item]
    if isinstance(value, dict):
        for key in ('name', 'value', 'text', 'description'):
            if isinstance(value.get(key), str):
                return as_text_list(value[key])
        return []
    if isinstance(value, (list, tuple)):
        items: List[str] = []
        for item in value:
            items.extend(as_text_list(item))
        return items
    return [str(value)]


def format_job_text(fields: Dict[str, Any]) -> str:
    """
    Render extracted fields as labelled plain text.

    Example:
        Job Title: Backend Engineer
        Company: Acme

        Description:
        ...

        Responsibilities:
        - Build APIs
    """
    blocks: List[str] = []

    header = []
    for key, label in HEADER_FIELDS:
        value = clean_text(fields.get(key))
        if value:
            header.append(f'{label}: {value}')
    if header:
        blocks.append('\n'.join(header))

    description = text_from_value(fields.get('description'))
    if description:
        blocks.append(f'Description:\n{description}')

    for key, label in SECTION_FIELDS:
        items = as_text_list(fields.get(key))
        if items:
            blocks.append(f'{label}:\n' + '\n'.join(f'- {item}' for item in items))

    return '\n\n'.join(blocks)
