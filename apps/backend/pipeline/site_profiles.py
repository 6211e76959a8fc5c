"""
Site profile registry and selector-driven extractor.

Known job boards and ATS platforms are described declaratively in
config/site_profiles.yaml. ``detect`` resolves a URL to at most one profile
(exact host, then most specific host suffix, then URL pattern); ``extract``
applies that profile's selector table to the parsed page.
"""

import re
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from core.domain_config import load_site_profile_config
from core.normalize import as_text_list, clean_text, format_job_text, html_to_text
from .models import CONFIDENCE_SCORES, ExtractionResult, SiteProfile, Strategy

logger = logging.getLogger(__name__)

HEADER_FIELDS = ('title', 'company', 'location', 'salary')

# Shortest description text that is not considered a teaser
DESCRIPTION_FLOOR = 50


def _host_of(url: str) -> str:
    host = (urlparse(url).hostname or '').lower()
    if host.startswith('www.'):
        host = host[4:]
    return host


class SiteProfileRegistry:
    """Static table of site profiles resolved by host."""

    def __init__(self, profiles: Optional[List[SiteProfile]] = None):
        self._profiles: List[SiteProfile] = []
        self._profiles_by_id: Dict[str, SiteProfile] = {}
        for profile in profiles or []:
            self.register(profile)

    @classmethod
    def from_config(cls, path: Optional[Union[str, Path]] = None) -> 'SiteProfileRegistry':
        """Build registry from the YAML profile table."""
        config = load_site_profile_config(path)
        profiles = []
        for raw in config.get('profiles') or []:
            profile_id = raw.get('id')
            domains = raw.get('domains') or []
            if not profile_id or not (domains or raw.get('url_patterns')):
                logger.warning(f"[profiles] Skipping profile without id/domains: {raw!r}")
                continue
            selectors = {
                field_name: tuple(values or [])
                for field_name, values in (raw.get('selectors') or {}).items()
            }
            profiles.append(SiteProfile(
                id=profile_id,
                name=raw.get('name'),
                domain_matchers=tuple(d.lower() for d in domains),
                url_patterns=tuple(raw.get('url_patterns') or []),
                selectors=selectors,
            ))
        registry = cls(profiles)
        logger.info(f"[profiles] {len(profiles)} site profiles registered")
        return registry

    def register(self, profile: SiteProfile):
        if profile.id in self._profiles_by_id:
            logger.warning(f"[profiles] Profile {profile.id} already registered, replacing")
            self._profiles = [p for p in self._profiles if p.id != profile.id]
        self._profiles_by_id[profile.id] = profile
        self._profiles.append(profile)

    def get(self, profile_id: str) -> Optional[SiteProfile]:
        return self._profiles_by_id.get(profile_id)

    @property
    def profiles(self) -> List[SiteProfile]:
        return list(self._profiles)

    def detect(self, url: str, site_hint: Optional[str] = None) -> Optional[SiteProfile]:
        """
        Resolve URL to a site profile.

        Exact host matches win over suffix matches, longer (more specific)
        suffixes win over shorter ones, and URL patterns are only consulted
        when no host matched. Substring matches are never used, so
        ``notlinkedin.com`` does not resolve to LinkedIn.

        Args:
            url: Page URL
            site_hint: Optional profile id supplied by the caller

        Returns:
            Matching profile or None
        """
        if site_hint:
            hinted = self._profiles_by_id.get(site_hint.lower())
            if hinted:
                return hinted
            logger.debug(f"[profiles] Unknown site hint: {site_hint}")

        host = _host_of(url)
        if host:
            best: Optional[SiteProfile] = None
            best_rank = (-1, -1)
            for profile in self._profiles:
                for domain in profile.domain_matchers:
                    if host == domain:
                        rank = (1, len(domain))
                    elif host.endswith('.' + domain):
                        rank = (0, len(domain))
                    else:
                        continue
                    if rank > best_rank:
                        best, best_rank = profile, rank
            if best:
                return best

        for profile in self._profiles:
            for pattern in profile.url_patterns:
                if re.search(pattern, url):
                    return profile

        return None


class SiteProfileExtractor:
    """Apply a profile's selector table to a parsed page."""

    def __init__(self, description_floor: int = DESCRIPTION_FLOOR):
        self.description_floor = description_floor

    def _select(self, soup: BeautifulSoup, selector: str) -> List[Tag]:
        try:
            elements = soup.select(selector)
        except Exception as e:
            logger.warning(f"[profiles] Bad selector {selector!r}: {e}")
            return []
        # Drop elements nested inside an earlier match
        top_level: List[Tag] = []
        for element in elements:
            ancestors = {id(parent) for parent in element.parents}
            if any(id(kept) in ancestors for kept in top_level):
                continue
            top_level.append(element)
        return top_level

    def _element_text(self, element: Tag) -> Optional[str]:
        text = clean_text(element.get_text(' ', strip=True))
        if not text:
            text = clean_text(element.get('alt') or element.get('content'))
        return text

    def _first_text(self, soup: BeautifulSoup, selectors) -> Optional[str]:
        for selector in selectors:
            for element in self._select(soup, selector):
                text = self._element_text(element)
                if text:
                    return text
        return None

    def _description(self, soup: BeautifulSoup, selectors) -> Optional[str]:
        candidates = []
        for selector in selectors:
            parts = [html_to_text(el) for el in self._select(soup, selector)]
            joined = '\n\n'.join(p for p in parts if p)
            if joined:
                candidates.append(joined)

        if not candidates:
            return None
        full_length = [c for c in candidates if len(c) >= self.description_floor]
        if full_length:
            return max(full_length, key=len)
        return candidates[0]

    def _requirements(self, soup: BeautifulSoup, selectors) -> List[str]:
        for selector in selectors:
            items: List[str] = []
            for element in self._select(soup, selector):
                bullets = element.find_all('li')
                if bullets:
                    items.extend(clean_text(li.get_text(' ', strip=True)) for li in bullets)
                else:
                    items.extend(as_text_list(html_to_text(element)))
            items = [item for item in items if item]
            if items:
                return items
        return []

    def extract(self, soup: BeautifulSoup, profile: SiteProfile, url: Optional[str] = None) -> Optional[ExtractionResult]:
        """
        Extract a partial result using the profile's selectors.

        Returns:
            ExtractionResult, or None when neither a description nor
            requirements were found
        """
        fields: Dict[str, object] = {}
        for field_name in HEADER_FIELDS:
            value = self._first_text(soup, profile.selectors_for(field_name))
            if value:
                fields[field_name] = value

        description = self._description(soup, profile.selectors_for('description'))
        if description:
            fields['description'] = description

        requirements = self._requirements(soup, profile.selectors_for('requirements'))
        if requirements:
            fields['requirements'] = requirements

        logger.info(
            f"[profiles] {profile.id}: fields={sorted(fields)} "
            f"description={len(description or '')} chars"
        )

        if not description and not requirements:
            return None

        fields['site'] = profile.id
        return ExtractionResult(
            text=format_job_text(fields),
            structured_fields=fields,
            strategy=Strategy.SITE_PROFILE,
            confidence=CONFIDENCE_SCORES['site_profile'],
            method=f"site_profile:{profile.id}",
            url=url,
        )
