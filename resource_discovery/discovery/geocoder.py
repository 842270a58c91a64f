"""
Geocoder Module
===============

Fallback geocoding for candidates that arrive without coordinates.
Failures are recoverable: the orchestrator keeps the placeholder and
moves on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx

from resource_discovery.core.errors import TransientFetchError

if TYPE_CHECKING:
    from resource_discovery.discovery.settings import DiscoverySettings

logger = logging.getLogger(__name__)

MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"


@dataclass
class GeocodeResult:
    """Coordinates for an address."""

    latitude: float
    longitude: float


class MapboxGeocoder:
    """
    Forward geocoder backed by the Mapbox Places API.

    Features:
    - Retries with exponential backoff on timeouts and HTTP errors
    - Returns None when the address has no match
    """

    def __init__(
        self,
        access_token: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        user_agent: str = "ResourceDiscovery/0.1",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_token = access_token
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.user_agent = user_agent
        self._transport = transport

    async def geocode(self, address: str, city: str, state: str) -> GeocodeResult | None:
        """
        Look up coordinates for an address.

        Args:
            address: Street address
            city: City name
            state: State code

        Returns:
            GeocodeResult, or None if nothing matched

        Raises:
            TransientFetchError: If every attempt failed
        """
        query = quote(f"{address}, {city}, {state}", safe="")
        url = MAPBOX_GEOCODING_URL.format(query=query)
        params = {"access_token": self.access_token, "limit": "1"}

        last_error: str | None = None
        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.get(
                        url, params=params, headers={"User-Agent": self.user_agent}
                    )
                    response.raise_for_status()
                    data = response.json()

                features = data.get("features") or []
                if not features:
                    logger.info(f"No geocoding match for '{address}, {city}, {state}'")
                    return None

                lng, lat = features[0]["center"][:2]
                return GeocodeResult(latitude=float(lat), longitude=float(lng))

            except httpx.TimeoutException:
                last_error = f"Timeout after {self.timeout}s"
                logger.warning(
                    f"Timeout geocoding '{address}' (attempt {attempt + 1}/{self.max_retries})"
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(
                    f"HTTP error geocoding '{address}': {e} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            except (KeyError, IndexError, TypeError, ValueError) as e:
                # Malformed payload; retrying will not help
                raise TransientFetchError(f"Unexpected geocoding response: {e}") from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(2**attempt)

        raise TransientFetchError(f"Geocoding failed for '{address}': {last_error}")


def get_geocoder(settings: DiscoverySettings) -> MapboxGeocoder | None:
    """
    Build the geocoder from settings.

    Returns:
        MapboxGeocoder, or None when no token is configured
    """
    token = settings.mapbox_token
    if not token:
        logger.warning("MAPBOX_TOKEN not set; geocoding fallback disabled")
        return None
    return MapboxGeocoder(
        access_token=token,
        timeout=settings.global_config.request_timeout,
        max_retries=settings.global_config.max_retries,
        user_agent=settings.global_config.user_agent,
    )
