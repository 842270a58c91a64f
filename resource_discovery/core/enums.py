"""Enums for discovery pipeline fields."""

from enum import Enum


class VerificationStatus(str, Enum):
    """Publication state of a resource."""

    UNVERIFIED = "unverified"
    COMMUNITY_VERIFIED = "community_verified"
    OFFICIAL = "official"
    REJECTED = "rejected"


class DuplicateConfidence(str, Enum):
    """Banding of a duplicate match score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConfidenceTier(str, Enum):
    """Banding of a candidate's confidence score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class GuardType(str, Enum):
    """Outcome of the duplicate guard pre-check."""

    HARD = "hard"  # Already known - skip insertion
    BLOCKED = "blocked"  # Policy block (tombstoned address or source)
    NONE = "none"  # Proceed to the detector


class TombstoneKind(str, Enum):
    """What a block-list entry applies to."""

    ADDRESS = "address"
    SOURCE = "source"


class ScanStatus(str, Enum):
    """Status of a logged discovery scan."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NO_RESULTS = "no_results"
    FAILED = "failed"


class TerminalState(str, Enum):
    """Lifecycle state of an in-memory scan run."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class ProgressStage(str, Enum):
    """Pipeline stages, in the order they are reported."""

    INIT = "init"
    SEARCHING = "searching"
    PROCESSING = "processing"
    DEDUPLICATING = "deduplicating"
    SAVING = "saving"

    @property
    def order(self) -> int:
        return list(ProgressStage).index(self)


class OutcomeStatus(str, Enum):
    """Per-candidate result of a scan."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    BLOCKED = "blocked"
    INVALID = "invalid"
    FAILED = "failed"
