"""
Post-processing of raw crawl results.

Raw listings are deduplicated, scored for lead quality, tagged as
franchises, filtered by the request's toggles, sorted best-first and cut
to the requested size.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .constants import MAX_QUALITY_SCORE, MIN_PHONE_DIGITS_FOR_DEDUPE, STRICT_RELEVANCE_THRESHOLD
from .intelligence.classification import ListingClassifier
from .models import ScrapedListing, ScrapeOptions
from .utils.text import digits_only, normalize_text

logger = logging.getLogger(__name__)


class QualityScorer(ABC):
    """Scores how promising a listing is as a sales lead."""

    @abstractmethod
    def score(self, listing: ScrapedListing) -> int:
        """Return a score between 0 and 100."""


class Categorizer(ABC):
    """Business categorization applied after scoring."""

    @abstractmethod
    def is_franchise(self, listing: ScrapedListing) -> bool:
        pass


class DefaultQualityScorer(QualityScorer):
    """
    Lead quality from website status, reachability and reputation.

    Listings without a real website are the best prospects; a social
    profile in place of a website, a phone number, good ratings, review
    volume and keyword relevance add to the score.
    """

    def score(self, listing: ScrapedListing) -> int:
        score = 0

        if not listing.has_real_website:
            score += 35
            if listing.social_media_url:
                score += 20

        if listing.phone:
            score += 15

        if listing.rating is not None and listing.rating >= 4.0:
            score += 10

        if listing.review_count >= 50:
            score += 10
        elif listing.review_count >= 20:
            score += 5

        if listing.relevance_score >= 80:
            score += 10
        elif listing.relevance_score >= 40:
            score += 5

        return min(MAX_QUALITY_SCORE, score)


class FranchiseCategorizer(Categorizer):
    """Flags listings whose name matches a known chain."""

    def __init__(self, classifier: Optional[ListingClassifier] = None):
        self.classifier = classifier or ListingClassifier()

    def is_franchise(self, listing: ScrapedListing) -> bool:
        return self.classifier.is_franchise(listing.name)


def dedupe_listings(listings: list[ScrapedListing]) -> list[ScrapedListing]:
    """
    Drop duplicate listings, keeping the first occurrence.

    Two listings are duplicates when they share an identifier, a phone
    number with enough digits to be unambiguous, or the same normalized
    name and address.
    """
    seen_ids: set[str] = set()
    seen_phones: set[str] = set()
    seen_name_address: set[tuple[str, str]] = set()
    unique = []

    for listing in listings:
        phone = digits_only(listing.phone or "")
        if len(phone) < MIN_PHONE_DIGITS_FOR_DEDUPE:
            phone = ""
        name_address = (normalize_text(listing.name), normalize_text(listing.address))
        if not all(name_address):
            name_address = None

        if listing.place_id and listing.place_id in seen_ids:
            continue
        if phone and phone in seen_phones:
            continue
        if name_address and name_address in seen_name_address:
            continue

        if listing.place_id:
            seen_ids.add(listing.place_id)
        if phone:
            seen_phones.add(phone)
        if name_address:
            seen_name_address.add(name_address)
        unique.append(listing)

    if len(unique) < len(listings):
        logger.debug(f"Removed {len(listings) - len(unique)} duplicate listings")
    return unique


class PostProcessor:
    """
    Turns a raw result set into the final ranked list.

    Usage:
        processor = PostProcessor(DefaultQualityScorer(), FranchiseCategorizer())
        final = processor.process(raw_listings, options)
    """

    def __init__(self, scorer: QualityScorer, categorizer: Categorizer):
        self.scorer = scorer
        self.categorizer = categorizer

    def process(self, listings: list[ScrapedListing], options: ScrapeOptions) -> list[ScrapedListing]:
        unique = dedupe_listings(listings)

        for listing in unique:
            listing.quality_score = self.scorer.score(listing)
            listing.is_franchise = self.categorizer.is_franchise(listing)

        min_relevance = options.min_relevance
        if options.strict_match:
            min_relevance = max(min_relevance, STRICT_RELEVANCE_THRESHOLD)

        kept = [
            listing for listing in unique
            if listing.relevance_score >= min_relevance
            and listing.quality_score >= options.min_quality
            and not (options.exclude_franchises and listing.is_franchise)
        ]
        if len(kept) < len(unique):
            logger.info(f"Filtered {len(unique)} -> {len(kept)} listings")

        kept.sort(key=lambda listing: listing.quality_score, reverse=True)
        return kept[:options.max_results]
