"""
Duplicate Guard Module
======================

Cheap pre-check run before the duplicate detector. Skips candidates that
are on the block list or already known under the same normalized address
and name.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from sqlalchemy.orm import Session

from resource_discovery.core.enums import GuardType
from resource_discovery.core.geo import address_fingerprint, string_similarity
from resource_discovery.core.schema import CandidateResource, ExistingResource, GuardResult
from resource_discovery.db.repositories import ResourceRepository, TombstoneRepository
from resource_discovery.discovery.detector import RunIndex

logger = logging.getLogger(__name__)

NAME_SIMILARITY_THRESHOLD = 0.8


def _domain_candidates(url: str | None) -> list[str]:
    """The URL's host and each parent domain, e.g. a.b.org -> [a.b.org, b.org]."""
    if not url:
        return []
    try:
        host = urlparse(url).hostname
    except ValueError:
        return []
    if not host:
        return []

    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    parts = host.split(".")
    return [".".join(parts[i:]) for i in range(len(parts) - 1)]


class DuplicateGuard:
    """
    Fast path for hard duplicates and policy blocks.

    Never looks at detector scores: a medium or low detector match does not
    stop a candidate here.
    """

    def __init__(
        self,
        session: Session,
        name_similarity_threshold: float = NAME_SIMILARITY_THRESHOLD,
    ) -> None:
        self.resources = ResourceRepository(session)
        self.tombstones = TombstoneRepository(session)
        self.name_similarity_threshold = name_similarity_threshold

    def is_duplicate_or_blocked(
        self,
        candidate: CandidateResource,
        run_index: RunIndex | None = None,
    ) -> GuardResult:
        """
        Check a candidate against the block list and known resources.

        Args:
            candidate: Normalized candidate resource
            run_index: Resources inserted earlier in the current scan

        Returns:
            GuardResult with type BLOCKED, HARD or NONE
        """
        tombstone = self.tombstones.find_address(candidate.address)
        if tombstone is not None:
            return GuardResult(
                is_duplicate=True,
                type=GuardType.BLOCKED,
                reason=f"Tombstoned: {tombstone.reason}",
            )

        tombstone = self.tombstones.find_sources(_domain_candidates(candidate.source_url))
        if tombstone is not None:
            return GuardResult(
                is_duplicate=True,
                type=GuardType.BLOCKED,
                reason=f"Blocked source {tombstone.value}: {tombstone.reason}",
            )

        known = self._find_known(candidate, run_index)
        if known is not None:
            return GuardResult(
                is_duplicate=True,
                type=GuardType.HARD,
                duplicate_id=known.id,
                reason=f"Duplicate of {known.name} at {known.address}",
            )

        return GuardResult(is_duplicate=False, type=GuardType.NONE)

    def _find_known(
        self, candidate: CandidateResource, run_index: RunIndex | None
    ) -> ExistingResource | None:
        """An existing resource with the same address fingerprint and a similar name."""
        fingerprint = address_fingerprint(candidate.address)
        if fingerprint is None:
            return None

        pool = self.resources.find_by_address_fingerprint(
            fingerprint, candidate.city, candidate.state
        )
        if run_index is not None:
            pool += run_index.find_by_address_fingerprint(
                fingerprint, candidate.city, candidate.state
            )

        for resource in pool:
            similarity = string_similarity(candidate.name, resource.name)
            if similarity >= self.name_similarity_threshold:
                logger.debug(
                    f"Guard: '{candidate.name}' matches {resource.id} "
                    f"(name similarity {similarity:.2f})"
                )
                return resource
        return None
