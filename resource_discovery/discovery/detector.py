"""
Duplicate Detector Module
=========================

Multi-strategy duplicate detection with scoring. Catches duplicates
through exact address matching and geo proximity combined with fuzzy
name/address and contact matching.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from resource_discovery.core.enums import DuplicateConfidence
from resource_discovery.core.geo import (
    DEFAULT_BBOX_DELTA,
    address_fingerprint,
    bounding_box,
    distance_meters,
    normalize_address,
    string_similarity,
)
from resource_discovery.core.schema import (
    CandidateResource,
    DuplicateMatch,
    ExistingResource,
    MatchedResource,
    MatchFactors,
)
from resource_discovery.db.repositories import ResourceRepository

if TYPE_CHECKING:
    from resource_discovery.discovery.settings import DuplicateConfig

logger = logging.getLogger(__name__)

SEARCH_RADIUS_METERS = 200.0

# Weighted scoring: address 30, name 20, distance 10, phone 20, website 20
ADDRESS_WEIGHT = 30
NAME_WEIGHT = 20
DISTANCE_WEIGHT = 10
PHONE_WEIGHT = 20
WEBSITE_WEIGHT = 20

HIGH_CONFIDENCE_SCORE = 80
MEDIUM_CONFIDENCE_SCORE = 50


def _same_contact(a: str | None, b: str | None) -> bool:
    """Contact fields match only when both are present and equal."""
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def weighted_score(
    address_similarity: float,
    name_similarity: float,
    distance: float,
    phone_match: bool,
    website_match: bool,
    radius: float = SEARCH_RADIUS_METERS,
) -> float:
    """
    Combine geo-strategy factors into a 0-100 score.

    Args:
        address_similarity: Normalized address similarity (0.0 - 1.0)
        name_similarity: Name similarity (0.0 - 1.0)
        distance: Distance in meters
        phone_match: Both phones present and equal
        website_match: Both websites present and equal
        radius: Distance at which the proximity factor reaches zero

    Returns:
        Weighted score
    """
    score = address_similarity * ADDRESS_WEIGHT
    score += name_similarity * NAME_WEIGHT
    score += ((radius - min(distance, radius)) / radius) * DISTANCE_WEIGHT
    score += PHONE_WEIGHT if phone_match else 0
    score += WEBSITE_WEIGHT if website_match else 0
    return score


def band_score(score: float) -> DuplicateConfidence:
    """Band a duplicate score: >80 high, >50 medium, otherwise low."""
    if score > HIGH_CONFIDENCE_SCORE:
        return DuplicateConfidence.HIGH
    if score > MEDIUM_CONFIDENCE_SCORE:
        return DuplicateConfidence.MEDIUM
    return DuplicateConfidence.LOW


def has_high_confidence_match(matches: Iterable[DuplicateMatch]) -> bool:
    """True if any match is high confidence, i.e. the candidate is a potential duplicate."""
    return any(m.confidence == DuplicateConfidence.HIGH for m in matches)


class RunIndex:
    """
    Resources inserted earlier in the current scan.

    Searched alongside the store so a candidate repeated within one batch is
    caught even when the store does not expose fresh inserts to later reads.
    """

    def __init__(self) -> None:
        self._resources: dict[str, ExistingResource] = {}

    def add(self, resource: ExistingResource) -> None:
        self._resources[resource.id] = resource

    def __iter__(self) -> Iterator[ExistingResource]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._resources

    def find_exact_address_matches(
        self, address: str, city: str, state: str
    ) -> list[ExistingResource]:
        key = (address.strip().lower(), city.strip().lower(), state.strip().lower())
        return [
            r
            for r in self
            if (r.address.strip().lower(), r.city.strip().lower(), r.state.strip().lower()) == key
        ]

    def find_nearby(
        self, min_lat: float, max_lat: float, min_lon: float, max_lon: float
    ) -> list[ExistingResource]:
        return [
            r
            for r in self
            if min_lat <= r.latitude <= max_lat and min_lon <= r.longitude <= max_lon
        ]

    def find_in_area(self, city: str, state: str) -> list[ExistingResource]:
        key = (city.strip().lower(), state.strip().lower())
        return [r for r in self if (r.city.strip().lower(), r.state.strip().lower()) == key]

    def find_by_address_fingerprint(
        self, fingerprint: str, city: str, state: str
    ) -> list[ExistingResource]:
        return [
            r
            for r in self.find_in_area(city, state)
            if address_fingerprint(r.address) == fingerprint
        ]


class DuplicateDetector:
    """
    Finds existing resources a candidate may duplicate.

    Strategies:
    1. Exact address match (address, city, state; case-insensitive) -> score 100
    2. Bounding-box pre-filter, haversine cutoff, then weighted fuzzy score
    """

    def __init__(
        self,
        session: Session,
        bbox_delta: float = DEFAULT_BBOX_DELTA,
        max_distance_meters: float = SEARCH_RADIUS_METERS,
        nearby_limit: int | None = 10,
    ) -> None:
        """
        Initialize the detector.

        Args:
            session: SQLAlchemy database session
            bbox_delta: Half-width of the nearby pre-filter in degrees
            max_distance_meters: Geo matches farther than this are discarded
            nearby_limit: Maximum stored resources considered per candidate
        """
        self.repository = ResourceRepository(session)
        self.bbox_delta = bbox_delta
        self.max_distance_meters = max_distance_meters
        self.nearby_limit = nearby_limit

    @classmethod
    def from_config(cls, session: Session, config: DuplicateConfig) -> DuplicateDetector:
        """Create detector from configuration."""
        return cls(
            session=session,
            bbox_delta=config.bbox_delta,
            max_distance_meters=config.max_distance_meters,
            nearby_limit=config.nearby_limit,
        )

    def detect_duplicates(
        self,
        candidate: CandidateResource,
        exclude_id: str | None = None,
        run_index: RunIndex | None = None,
    ) -> list[DuplicateMatch]:
        """
        Detect potential duplicates for a candidate.

        Args:
            candidate: Normalized candidate resource
            exclude_id: Id of the candidate's own record, when re-checking
                an existing resource
            run_index: Resources inserted earlier in the current scan

        Returns:
            Matches sorted by score, highest first (may be empty)
        """
        matches: dict[str, DuplicateMatch] = {}

        exact = self.repository.find_exact_address_matches(
            candidate.address, candidate.city, candidate.state
        )
        if run_index is not None:
            exact += run_index.find_exact_address_matches(
                candidate.address, candidate.city, candidate.state
            )

        for resource in exact:
            if resource.id == exclude_id or resource.id in matches:
                continue
            matches[resource.id] = self._exact_match(candidate, resource)

        if candidate.has_placeholder_coordinates:
            logger.debug(f"Skipping geo strategy for '{candidate.name}': no coordinates")
        else:
            box = bounding_box(candidate.latitude, candidate.longitude, self.bbox_delta)
            nearby = self.repository.find_nearby(*box, limit=self.nearby_limit)
            if run_index is not None:
                nearby += run_index.find_nearby(*box)

            for resource in nearby:
                if resource.id == exclude_id or resource.id in matches:
                    continue
                match = self._geo_match(candidate, resource)
                if match is not None:
                    matches[resource.id] = match

        return sorted(matches.values(), key=lambda m: m.score, reverse=True)

    def _exact_match(
        self, candidate: CandidateResource, resource: ExistingResource
    ) -> DuplicateMatch:
        return DuplicateMatch(
            score=100,
            factors=MatchFactors(
                address_similarity=100,
                name_similarity=string_similarity(candidate.name, resource.name) * 100,
                distance_meters=0,
                phone_match=_same_contact(candidate.phone, resource.phone),
                website_match=_same_contact(candidate.website, resource.website),
            ),
            confidence=DuplicateConfidence.HIGH,
            matched_resource=MatchedResource(
                id=resource.id, name=resource.name, address=resource.address
            ),
        )

    def _geo_match(
        self, candidate: CandidateResource, resource: ExistingResource
    ) -> DuplicateMatch | None:
        """Score a nearby resource; None if too far or below medium confidence."""
        distance = distance_meters(
            candidate.latitude, candidate.longitude, resource.latitude, resource.longitude
        )
        if distance > self.max_distance_meters:
            return None

        name_sim = string_similarity(candidate.name, resource.name)
        address_sim = string_similarity(
            normalize_address(candidate.address), normalize_address(resource.address)
        )
        phone_match = _same_contact(candidate.phone, resource.phone)
        website_match = _same_contact(candidate.website, resource.website)

        score = weighted_score(
            address_sim,
            name_sim,
            distance,
            phone_match,
            website_match,
            radius=self.max_distance_meters,
        )
        confidence = band_score(score)
        if confidence == DuplicateConfidence.LOW:
            return None

        return DuplicateMatch(
            score=score,
            factors=MatchFactors(
                address_similarity=address_sim * 100,
                name_similarity=name_sim * 100,
                distance_meters=distance,
                phone_match=phone_match,
                website_match=website_match,
            ),
            confidence=confidence,
            matched_resource=MatchedResource(
                id=resource.id, name=resource.name, address=resource.address
            ),
        )
