"""
Resource Discovery Pipeline
===========================

This package turns raw search results for an area into deduplicated,
scored resource records.

Pipeline Stages:
1. Gate - The eligibility gate rate limits scans per area
2. Search - A provider returns raw candidates for the area
3. Normalize - Validate fields, format phones, websites, services and hours
4. Enrich - Geocode candidates that arrived without coordinates
5. Guard - Skip known duplicates and tombstoned addresses or sources
6. Detect - Flag likely duplicates with a weighted match score
7. Score - Compute confidence and decide on auto-approval
8. Persist - Insert the resource and stream progress to the caller
"""

from resource_discovery.discovery.settings import (
    DiscoverySettings,
    EligibilityConfig,
    DuplicateConfig,
    ApprovalConfig,
    get_default_settings,
)
from resource_discovery.discovery.circuit_breaker import (
    EligibilityGate,
    ClaimResult,
    DISCOVERY_COOLDOWN,
)
from resource_discovery.discovery.normalizer import ResourceNormalizer
from resource_discovery.discovery.geocoder import (
    MapboxGeocoder,
    GeocodeResult,
    get_geocoder,
)
from resource_discovery.discovery.guard import DuplicateGuard
from resource_discovery.discovery.detector import (
    DuplicateDetector,
    RunIndex,
    has_high_confidence_match,
)
from resource_discovery.discovery.orchestrator import (
    DiscoveryOrchestrator,
    CandidateOutcome,
    ScanRun,
    encode_event,
    collect,
)

__all__ = [
    # Settings
    "DiscoverySettings",
    "EligibilityConfig",
    "DuplicateConfig",
    "ApprovalConfig",
    "get_default_settings",
    # Eligibility
    "EligibilityGate",
    "ClaimResult",
    "DISCOVERY_COOLDOWN",
    # Normalizer
    "ResourceNormalizer",
    # Geocoder
    "MapboxGeocoder",
    "GeocodeResult",
    "get_geocoder",
    # Guard and detector
    "DuplicateGuard",
    "DuplicateDetector",
    "RunIndex",
    "has_high_confidence_match",
    # Orchestrator
    "DiscoveryOrchestrator",
    "CandidateOutcome",
    "ScanRun",
    "encode_event",
    "collect",
]
