"""
Fixture Search Provider Module
==============================

Mock provider for pipeline validation without network access.
Provides synthetic Sacramento food resources for the full discovery flow.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from resource_discovery.core.enums import ProgressStage
from resource_discovery.discovery.providers.base import BaseSearchProvider, ProgressCallback

# Synthetic results covering various scenarios
FIXTURE_RESOURCES: list[dict[str, Any]] = [
    {
        "name": "Midtown Food Pantry",
        "address": "1500 Q St",
        "city": "Sacramento",
        "state": "CA",
        "zipCode": "95811",
        "latitude": 38.5723,
        "longitude": -121.4838,
        "phone": "(916) 264-5000",
        "website": "www.midtownpantry.org",
        "description": "Weekly grocery distribution for Midtown residents.",
        "services": ["food pantry", "distribution"],
        "hours": {
            "Tuesday": {"open": "9:00 AM", "close": "12:00 PM"},
            "Thursday": {"open": "13:00", "close": "16:00"},
        },
        "sourceUrl": "https://www.midtownpantry.org/visit",
        "confidence": 0.8,
    },
    {
        "name": "Loaves & Fishes",
        "address": "1351 North C Street",
        "city": "Sacramento",
        "state": "CA",
        "zipCode": "95811",
        "latitude": 38.5936,
        "longitude": -121.4781,
        "phone": "916-446-0874",
        "website": "https://www.sacloaves.org",
        "description": "Daily hot meals and hospitality services.",
        "services": ["hot meals", "soup kitchen"],
        "hours": {"Monday": {"open": "7:00 AM", "close": "2:30 PM"}},
        "sourceUrl": "https://www.sacloaves.org/programs",
        "confidence": 0.8,
    },
    {
        "name": "Sacramento County Senior Nutrition",
        "address": "2101 Arena Blvd",
        "city": "Sacramento",
        "state": "CA",
        "zipCode": "95834",
        "latitude": 0.0,
        "longitude": 0.0,
        "services": ["community meal"],
        "sourceUrl": "https://dhs.saccounty.gov/senior-nutrition",
        "confidence": 0.8,
    },
    {
        "name": "Oak Park Community Fridge",
        "address": "3301 Broadway",
        "city": "Sacramento",
        "state": "CA",
        "latitude": 38.5433,
        "longitude": -121.4666,
        "description": "24/7 community fridge.",
        "sourceUrl": "https://instagram.com/oakparkfridge",
        "confidence": 0.8,
    },
    {
        # Repeat of the first record with a different source; dropped by batch dedupe
        "name": "Midtown Food Pantry",
        "address": "1500 Q Street",
        "city": "Sacramento",
        "state": "CA",
        "latitude": 38.5723,
        "longitude": -121.4838,
        "sourceUrl": "https://www.feedingamerica.org/find-your-local-foodbank",
        "confidence": 0.8,
    },
]


class FixtureSearchProvider(BaseSearchProvider):
    """
    Search provider returning synthetic resources.

    Config options:
        results: Replace the built-in records
        delay_seconds: Sleep before returning (simulates a slow provider)
    """

    PROVIDER_NAME = "fixture"
    PROVIDER_VERSION = "1.0.0"

    async def search(
        self,
        city: str,
        state: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        """Return the fixture records, filling in city/state where missing."""
        self.report(on_progress, ProgressStage.SEARCHING, f"Searching for resources in {city}, {state}...")

        delay = float(self.config.get("delay_seconds", 0))
        if delay > 0:
            await asyncio.sleep(delay)

        source = self.config.get("results", FIXTURE_RESOURCES)
        records = []
        total = len(source)
        for index, record in enumerate(source, start=1):
            record = copy.deepcopy(record)
            record.setdefault("city", city)
            record.setdefault("state", state)
            records.append(record)
            self.report(
                on_progress,
                ProgressStage.PROCESSING,
                f"Processed result {index} of {total}",
                current=index,
                total=total,
            )

        self.report(on_progress, ProgressStage.DEDUPLICATING, "Removing duplicate results...")
        return self.dedupe(records)
