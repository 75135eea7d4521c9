"""
Listing classification.

Decides whether a listing's website is a real business site, a social
profile or a directory/platform page, pulls social handles out of the
website link, and scores how well a listing matches the searched keyword.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import yaml

from ..constants import (
    RELEVANCE_CATEGORY_MATCH,
    RELEVANCE_EXCLUDED_PENALTY,
    RELEVANCE_NAME_MATCH,
    RELEVANCE_NO_MATCH_FLOOR,
    RELEVANCE_SYNONYM_CATEGORY_MATCH,
    RELEVANCE_SYNONYM_NAME_MATCH,
)
from ..models import ScrapedListing
from ..utils.text import normalize_text, phrase_pattern

logger = logging.getLogger(__name__)

DEFAULT_CLASSIFICATION_PATH = Path(__file__).resolve().parent.parent / "data" / "classification.yaml"

WHATSAPP_NUMBER_PATTERN = re.compile(r"\+?\d{6,}")


@dataclass
class ClassificationTables:
    """Domain lists and keyword tables used by ListingClassifier."""
    social_media_domains: list[str] = field(default_factory=list)
    directory_domains: list[str] = field(default_factory=list)
    category_synonyms: dict[str, list[str]] = field(default_factory=dict)
    excluded_categories: list[str] = field(default_factory=list)
    known_franchises: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassificationTables":
        return cls(
            social_media_domains=[d.lower() for d in data.get("social_media_domains", [])],
            directory_domains=[d.lower() for d in data.get("directory_domains", [])],
            category_synonyms={
                normalize_text(k): [normalize_text(s) for s in v]
                for k, v in data.get("category_synonyms", {}).items()
            },
            excluded_categories=[normalize_text(c) for c in data.get("excluded_categories", [])],
            known_franchises=[normalize_text(f) for f in data.get("known_franchises", [])],
        )


def load_classification(path: Optional[Path] = None) -> ClassificationTables:
    """Load classification tables from YAML (bundled file by default)."""
    if path is None:
        return _load_default_classification()
    with open(path, encoding="utf-8") as f:
        return ClassificationTables.from_dict(yaml.safe_load(f))


@lru_cache(maxsize=1)
def _load_default_classification() -> ClassificationTables:
    with open(DEFAULT_CLASSIFICATION_PATH, encoding="utf-8") as f:
        return ClassificationTables.from_dict(yaml.safe_load(f))


def website_host(url: str) -> str:
    """Lower-case host of a URL without a leading ``www.``."""
    if not url:
        return ""
    if "://" not in url:
        url = f"http://{url}"
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def host_in(host: str, domains: list[str]) -> bool:
    """Whether host equals, or is a subdomain of, any listed domain."""
    return any(host == d or host.endswith(f".{d}") for d in domains)


@dataclass
class WebsiteClassification:
    """How a listing's website link should be treated."""
    has_real_website: bool = False
    is_social_media: bool = False
    is_directory: bool = False


class ListingClassifier:
    """
    Website classification, social handle extraction and relevance scoring.

    Usage:
        classifier = ListingClassifier()
        classifier.apply(listing, keyword="dentista")
    """

    def __init__(self, tables: Optional[ClassificationTables] = None):
        self.tables = tables or load_classification()
        self._excluded = [phrase_pattern(c) for c in self.tables.excluded_categories]
        self._franchises = [phrase_pattern(f) for f in self.tables.known_franchises]

    def classify_website(self, url: Optional[str]) -> WebsiteClassification:
        host = website_host(url or "")
        if not host:
            return WebsiteClassification()
        if host_in(host, self.tables.social_media_domains):
            return WebsiteClassification(is_social_media=True)
        if host_in(host, self.tables.directory_domains):
            return WebsiteClassification(is_directory=True)
        return WebsiteClassification(has_real_website=True)

    def extract_social_handles(self, url: Optional[str]) -> dict[str, str]:
        """Instagram/Facebook profile or WhatsApp number behind a website link."""
        host = website_host(url or "")
        if not host:
            return {}
        if host_in(host, ["instagram.com"]):
            return {"instagram_url": url}
        if host_in(host, ["facebook.com", "fb.com"]):
            return {"facebook_url": url}
        if host_in(host, ["wa.me", "whatsapp.com"]):
            parsed = urlparse(url)
            match = WHATSAPP_NUMBER_PATTERN.search(f"{parsed.path}?{parsed.query}")
            if match:
                return {"whatsapp_number": match.group(0)}
        return {}

    def relevance_score(self, name: str, category: str, keyword: str) -> int:
        """
        Score a listing against the searched keyword.

        +100 when the name contains the keyword, +80 when the category does,
        then the first synonym hit adds +60 (category) or +40 (name). A
        listing with no hit at all gets a floor of 20. Excluded categories
        lose 100 points; the result never drops below 0.
        """
        kw = normalize_text(keyword)
        norm_name = normalize_text(name)
        norm_category = normalize_text(category)
        score = 0

        if kw and kw in norm_name:
            score += RELEVANCE_NAME_MATCH
        if kw and kw in norm_category:
            score += RELEVANCE_CATEGORY_MATCH

        for synonym in self.tables.category_synonyms.get(kw, [kw]):
            if not synonym:
                continue
            if synonym in norm_category:
                score += RELEVANCE_SYNONYM_CATEGORY_MATCH
                break
            if synonym in norm_name:
                score += RELEVANCE_SYNONYM_NAME_MATCH
                break

        if score == 0:
            score = RELEVANCE_NO_MATCH_FLOOR

        if self.is_excluded_category(category):
            score -= RELEVANCE_EXCLUDED_PENALTY

        return max(0, score)

    def is_excluded_category(self, category: str) -> bool:
        norm_category = normalize_text(category)
        return any(p.search(norm_category) for p in self._excluded)

    def is_franchise(self, name: str) -> bool:
        norm_name = normalize_text(name)
        return any(p.search(norm_name) for p in self._franchises)

    def apply(self, listing: ScrapedListing, keyword: str) -> ScrapedListing:
        """Fill in classification flags, social handles and relevance."""
        website = self.classify_website(listing.website)
        listing.has_real_website = website.has_real_website
        listing.is_social_media = website.is_social_media
        listing.is_directory = website.is_directory
        listing.social_media_url = listing.website if website.is_social_media else None

        for attr, value in self.extract_social_handles(listing.website).items():
            setattr(listing, attr, value)

        listing.relevance_score = self.relevance_score(listing.name, listing.category, keyword)
        return listing
