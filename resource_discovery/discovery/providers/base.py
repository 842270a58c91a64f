"""
Search Provider Base Module
===========================

Defines the abstract base class for discovery search providers.
Providers are responsible for:
1. Searching for food resources in a city/state
2. Returning raw, loosely-typed candidate records for the normalizer
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from resource_discovery.core.enums import ProgressStage
from resource_discovery.core.schema import ProgressEvent

# Callback used to report provider progress to the orchestrator
ProgressCallback = Callable[[ProgressEvent], None]


def _noop_progress(event: ProgressEvent) -> None:
    return None


class BaseSearchProvider(ABC):
    """
    Abstract base class for search providers.

    Subclasses must implement ``search``. Provider progress is reported
    through ``on_progress`` and re-emitted by the orchestrator.
    """

    PROVIDER_NAME: str = "base"
    PROVIDER_VERSION: str = "0.0.0"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        """
        Initialize the provider.

        Args:
            config: Optional provider-specific configuration
        """
        self.config = config or {}

    @abstractmethod
    async def search(
        self,
        city: str,
        state: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        """
        Search for resources in an area.

        Args:
            city: City name
            state: State code
            on_progress: Optional progress callback

        Returns:
            Raw candidate records
        """
        ...

    @staticmethod
    def report(
        on_progress: ProgressCallback | None,
        stage: ProgressStage,
        message: str,
        current: int | None = None,
        total: int | None = None,
    ) -> None:
        """Send a progress event if a callback was given."""
        (on_progress or _noop_progress)(
            ProgressEvent(stage=stage, message=message, current=current, total=total)
        )

    @staticmethod
    def dedupe_key(record: dict[str, Any]) -> str:
        """
        Key used to drop repeats within one provider batch.

        Lower-cased name plus the leading street number of the address.
        """
        name = str(record.get("name") or "").strip().lower()
        address = str(record.get("address") or "").strip()
        match = re.match(r"\d+", address)
        street_number = match.group(0) if match else address.lower()
        return f"{name}|{street_number}"

    def dedupe(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Keep the first record for each dedupe key, preserving order."""
        seen: set[str] = set()
        unique = []
        for record in records:
            key = self.dedupe_key(record)
            if key in seen:
                continue
            seen.add(key)
            unique.append(record)
        return unique
