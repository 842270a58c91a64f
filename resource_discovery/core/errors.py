"""Exception hierarchy for the discovery pipeline."""


class DiscoveryError(Exception):
    """Base class for discovery pipeline errors."""


class ConfigurationError(DiscoveryError):
    """Required credentials or configuration are missing. Fatal for the run."""


class ScanTimeoutError(DiscoveryError, TimeoutError):
    """The wall-clock budget for a scan elapsed."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Discovery timed out after {timeout_seconds:g} seconds.")


class TransientFetchError(DiscoveryError):
    """A recoverable failure talking to an enrichment provider (e.g. geocoding)."""


class PersistenceError(DiscoveryError):
    """Writing a discovered resource to the store failed."""

    def __init__(self, message: str, candidate_name: str | None = None) -> None:
        self.candidate_name = candidate_name
        super().__init__(message)


class CandidateValidationError(DiscoveryError, ValueError):
    """Raw provider output could not be turned into a CandidateResource."""


class ScanCancelledError(DiscoveryError):
    """The caller asked a running scan to stop."""

    def __init__(self) -> None:
        super().__init__("Discovery cancelled.")
