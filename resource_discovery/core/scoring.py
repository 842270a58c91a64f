"""Confidence scoring and auto-approval rules for discovered resources."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from urllib.parse import urlparse

from resource_discovery.core.enums import ConfidenceTier
from resource_discovery.core.schema import CandidateResource

# Field completeness (max 40)
FIELD_WEIGHTS: dict[str, int] = {
    "phone": 8,
    "website": 8,
    "hours": 12,
    "services": 6,
    "description": 6,
}

# Source authority (max 30)
GOVERNMENT_SOURCE_POINTS = 30
KNOWN_AUTHORITY_POINTS = 25
NONPROFIT_SOURCE_POINTS = 15
EDUCATION_SOURCE_POINTS = 10
OTHER_SOURCE_POINTS = 5

KNOWN_AUTHORITY_DOMAINS: tuple[str, ...] = (
    "feedingamerica.org",
    "211.org",
    "fns.usda.gov",
)

# Data freshness (max 10)
FRESHNESS_POINTS: tuple[tuple[timedelta, int], ...] = (
    (timedelta(days=30), 10),
    (timedelta(days=180), 5),
)

# Multi-source corroboration (max 20)
CORROBORATION_POINTS: tuple[tuple[int, int], ...] = (
    (3, 20),
    (2, 15),
    (1, 10),
)

MAX_CONFIDENCE_SCORE = 100
DEFAULT_AUTO_APPROVE_THRESHOLD = 90

HIGH_TIER_THRESHOLD = 80
MEDIUM_TIER_THRESHOLD = 50


@dataclass
class ScoringContext:
    """Signals about a candidate that are not part of the record itself."""

    discovery_date: datetime | None = None
    confirming_sources: list[str] = field(default_factory=list)


@dataclass
class ConfidenceResult:
    """A candidate's confidence score with its breakdown."""

    score: int
    tier: ConfidenceTier
    factors: dict[str, int] = field(default_factory=dict)


def _host(url: str | None) -> str | None:
    """Lower-cased hostname of a URL, or None if it cannot be parsed."""
    if not url:
        return None
    parsed = urlparse(url.strip())
    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed.hostname.lower()


def _matches_domain(host: str, domains: Iterable[str]) -> bool:
    """True if host equals one of the domains or is a subdomain of one."""
    return any(host == d or host.endswith(f".{d}") for d in domains)


def score_field_completeness(candidate: CandidateResource) -> int:
    """Points for the optional contact and detail fields a candidate carries."""
    points = 0
    if candidate.phone:
        points += FIELD_WEIGHTS["phone"]
    if candidate.website:
        points += FIELD_WEIGHTS["website"]
    if candidate.hours:
        points += FIELD_WEIGHTS["hours"]
    if len(candidate.services) > 0:
        points += FIELD_WEIGHTS["services"]
    if candidate.description:
        points += FIELD_WEIGHTS["description"]
    return points


def score_source_authority(source_url: str | None) -> int:
    """
    Points for how authoritative the source domain is.

    Args:
        source_url: Page the resource was discovered on.

    Returns:
        0-30, where government domains score highest.
    """
    host = _host(source_url)
    if host is None:
        return 0

    if host.endswith(".gov"):
        return GOVERNMENT_SOURCE_POINTS
    if _matches_domain(host, KNOWN_AUTHORITY_DOMAINS):
        return KNOWN_AUTHORITY_POINTS
    if host.endswith(".org"):
        return NONPROFIT_SOURCE_POINTS
    if host.endswith(".edu"):
        return EDUCATION_SOURCE_POINTS
    return OTHER_SOURCE_POINTS


def score_freshness(discovery_date: datetime | None, now: datetime | None = None) -> int:
    """Points for how recently the data was discovered."""
    now = now or datetime.now(UTC)
    if discovery_date is None:
        discovery_date = now
    if discovery_date.tzinfo is None:
        discovery_date = discovery_date.replace(tzinfo=UTC)

    age = now - discovery_date
    for max_age, points in FRESHNESS_POINTS:
        if age <= max_age:
            return points
    return 0


def score_corroboration(confirming_sources: Sequence[str]) -> int:
    """Points for independent sources confirming the same resource."""
    count = len(set(confirming_sources))
    for min_count, points in CORROBORATION_POINTS:
        if count >= min_count:
            return points
    return 0


def get_confidence_tier(score: float) -> ConfidenceTier:
    """
    Band a confidence score.

    Args:
        score: Confidence score (0-100).

    Returns:
        HIGH at 80+, MEDIUM at 50+, LOW otherwise.
    """
    if score >= HIGH_TIER_THRESHOLD:
        return ConfidenceTier.HIGH
    if score >= MEDIUM_TIER_THRESHOLD:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def calculate_confidence(
    candidate: CandidateResource,
    context: ScoringContext | None = None,
    now: datetime | None = None,
) -> ConfidenceResult:
    """
    Calculate a 0-100 confidence score for a candidate.

    The score is the sum of four factors:
    - Field completeness: 0-40
    - Source authority: 0-30
    - Data freshness: 0-10
    - Multi-source corroboration: 0-20

    Pure: reads only its arguments.

    Args:
        candidate: The normalized candidate.
        context: Discovery date and confirming sources.
        now: Reference time for freshness (defaults to current UTC time).

    Returns:
        ConfidenceResult with total, tier and per-factor points.
    """
    context = context or ScoringContext()
    factors = {
        "field_completeness": score_field_completeness(candidate),
        "source_authority": score_source_authority(candidate.source_url),
        "freshness": score_freshness(context.discovery_date, now),
        "corroboration": score_corroboration(context.confirming_sources),
    }
    score = max(0, min(MAX_CONFIDENCE_SCORE, round(sum(factors.values()))))
    return ConfidenceResult(score=score, tier=get_confidence_tier(score), factors=factors)


def is_trusted_source(
    source_url: str | None,
    trusted_domains: Iterable[str] = KNOWN_AUTHORITY_DOMAINS,
) -> bool:
    """True for .gov hosts and allow-listed domains (or their subdomains)."""
    host = _host(source_url)
    if host is None:
        return False
    if host.endswith(".gov"):
        return True
    return _matches_domain(host, trusted_domains)


def should_auto_approve(
    score: float,
    source_url: str | None,
    is_potential_duplicate: bool,
    threshold: float = DEFAULT_AUTO_APPROVE_THRESHOLD,
    require_trusted_source: bool = True,
    trusted_domains: Iterable[str] = KNOWN_AUTHORITY_DOMAINS,
) -> bool:
    """
    Decide whether a candidate can be published without manual review.

    A potential duplicate is never auto-approved, whatever its score.
    """
    if is_potential_duplicate:
        return False
    if score < threshold:
        return False
    if require_trusted_source:
        return is_trusted_source(source_url, trusted_domains)
    return True
