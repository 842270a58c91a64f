"""
File Search Provider Module
===========================

Replays raw candidates from a JSON file, e.g. an export of an earlier
provider run.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from resource_discovery.core.enums import ProgressStage
from resource_discovery.core.errors import ConfigurationError
from resource_discovery.discovery.providers.base import BaseSearchProvider, ProgressCallback

logger = logging.getLogger(__name__)


class FileSearchProvider(BaseSearchProvider):
    """
    Search provider backed by a JSON file.

    The file holds a list of raw records or an object with a "results" list.
    Records whose city/state differ from the requested area are skipped.

    Config options:
        path: Path to the JSON file (required)
    """

    PROVIDER_NAME = "file"
    PROVIDER_VERSION = "1.0.0"

    def _load(self) -> list[dict[str, Any]]:
        raw_path = self.config.get("path")
        if not raw_path:
            raise ConfigurationError("File search provider requires a 'path' setting")

        path = Path(raw_path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Search results file not found: {path}")

        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Search results file is not valid JSON: {e}") from e

        if isinstance(data, dict):
            data = data.get("results", [])
        if not isinstance(data, list):
            raise ConfigurationError("Search results file must contain a list of records")
        return [r for r in data if isinstance(r, dict)]

    async def search(
        self,
        city: str,
        state: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        """Load records for the requested area from the file."""
        self.report(on_progress, ProgressStage.SEARCHING, f"Loading saved results for {city}, {state}...")
        records = self._load()

        city_key, state_key = city.strip().lower(), state.strip().lower()
        matching = []
        for record in records:
            record_city = str(record.get("city") or city).strip().lower()
            record_state = str(record.get("state") or state).strip().lower()
            if record_city == city_key and record_state == state_key:
                matching.append(
                    {**record, "city": record.get("city") or city, "state": record.get("state") or state}
                )

        logger.info(f"Loaded {len(matching)} of {len(records)} saved results for {city}, {state}")
        self.report(on_progress, ProgressStage.DEDUPLICATING, "Removing duplicate results...")
        return self.dedupe(matching)
