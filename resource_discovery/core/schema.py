"""Pydantic v2 models for discovered resources and pipeline results."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from resource_discovery.core.enums import (
    DuplicateConfidence,
    GuardType,
    ProgressStage,
    VerificationStatus,
)


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class CandidateResource(BaseModel):
    """
    A normalized, not-yet-persisted resource proposed by discovery.

    Immutable once constructed. Coordinates of (0.0, 0.0) are a placeholder
    meaning the location is unknown.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    city: str
    state: str
    zip_code: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    phone: str | None = None
    website: str | None = None
    description: str | None = None
    services: tuple[str, ...] = ()
    hours: dict[str, Any] | None = None
    source_url: str | None = None
    raw_confidence: float | None = None

    @property
    def has_placeholder_coordinates(self) -> bool:
        """True if the candidate has no real location yet."""
        return self.latitude == 0.0 and self.longitude == 0.0


class ExistingResource(BaseModel):
    """A persisted resource, as read by the pipeline for comparison."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    address: str
    city: str
    state: str
    zip_code: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    phone: str | None = None
    website: str | None = None
    description: str | None = None
    services: tuple[str, ...] = ()
    hours: dict[str, Any] | None = None
    source_url: str | None = None
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    confidence_score: int | None = None
    potential_duplicate_ids: tuple[str, ...] = ()
    import_source: str | None = None
    auto_discovered_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)

    def to_sample(self) -> dict[str, Any]:
        """Short representation used in completion events."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "verificationStatus": self.verification_status.value,
            "confidenceScore": self.confidence_score,
        }


class MatchFactors(BaseModel):
    """Individual signals behind a duplicate match score."""

    address_similarity: float
    name_similarity: float
    distance_meters: float
    phone_match: bool
    website_match: bool


class MatchedResource(BaseModel):
    """Reference to the existing record a candidate matched."""

    id: str
    name: str
    address: str


class DuplicateMatch(BaseModel):
    """A scored potential duplicate of a candidate."""

    score: float = Field(ge=0, le=100)
    factors: MatchFactors
    confidence: DuplicateConfidence
    matched_resource: MatchedResource | None = None


class GuardResult(BaseModel):
    """Result of the duplicate guard pre-check."""

    is_duplicate: bool
    type: GuardType = GuardType.NONE
    duplicate_id: str | None = None
    reason: str | None = None


class EligibilityResult(BaseModel):
    """Whether a discovery scan may run for an area."""

    should_search: bool
    reason: str | None = None
    last_scan_at: datetime | None = None


class ResourceDecision(BaseModel):
    """How a candidate is persisted."""

    verification_status: VerificationStatus
    confidence_score: int
    potential_duplicate_ids: list[str] = Field(default_factory=list)
    import_source: str
    auto_discovered_at: datetime = Field(default_factory=_utc_now)


class TriggerRequest(BaseModel):
    """Input for starting a discovery run for an area."""

    model_config = ConfigDict(populate_by_name=True)

    city: str
    state: str
    force: bool = False
    is_test: bool = Field(default=False, alias="isTest")

    @field_validator("city")
    @classmethod
    def validate_city(cls, v: str) -> str:
        """City must be non-empty after trimming."""
        v = v.strip()
        if not v:
            raise ValueError("City is required")
        return v

    @field_validator("state")
    @classmethod
    def validate_state(cls, v: str) -> str:
        """State must be at least two characters after trimming."""
        v = v.strip()
        if len(v) < 2:
            raise ValueError("State must be at least 2 characters")
        return v


class ProgressEvent(BaseModel):
    """A progress line in the discovery event stream."""

    stage: ProgressStage
    message: str
    current: int | None = None
    total: int | None = None

    def to_wire(self) -> dict[str, Any]:
        """Render as the NDJSON payload."""
        event: dict[str, Any] = {
            "type": "progress",
            "stage": self.stage.value,
            "message": self.message,
        }
        if self.current is not None:
            event["current"] = self.current
        if self.total is not None:
            event["total"] = self.total
        return event
