"""
Resource Normalizer Module
==========================

Validation boundary between loosely-typed provider output and the
pipeline. Raw search results are cleaned and parsed into an immutable
CandidateResource exactly once; nothing untyped travels further.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

import phonenumbers

from resource_discovery.core.errors import CandidateValidationError
from resource_discovery.core.schema import CandidateResource

logger = logging.getLogger(__name__)

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_TIME_FORMATS = ("%I:%M %p", "%I:%M%p", "%I %p", "%I%p")


class ResourceNormalizer:
    """
    Normalizes raw provider records into CandidateResource objects.

    Handles:
    - camelCase or snake_case keys from different providers
    - Phone numbers to E.164 (e.g., "(916) 555-0100" -> "+19165550100")
    - Websites to https without "www."
    - Service name synonyms (e.g., "soup kitchen" -> "Hot Meal")
    - Weekly hours to 24h HH:MM
    """

    SERVICE_ALIASES: dict[str, str] = {
        "pantry": "Pantry",
        "food pantry": "Pantry",
        "food bank": "Pantry",
        "distribution": "Food Distribution",
        "food distribution": "Food Distribution",
        "hot meal": "Hot Meal",
        "hot meals": "Hot Meal",
        "soup kitchen": "Hot Meal",
        "community meal": "Hot Meal",
        "free meal": "Hot Meal",
    }

    # Raw key aliases: canonical field -> accepted keys, in lookup order
    FIELD_KEYS: dict[str, tuple[str, ...]] = {
        "zip_code": ("zip_code", "zipCode", "zip", "postal_code"),
        "latitude": ("latitude", "lat"),
        "longitude": ("longitude", "lng", "lon"),
        "source_url": ("source_url", "sourceUrl", "url"),
        "raw_confidence": ("raw_confidence", "confidence"),
    }

    def __init__(self, default_region: str = "US") -> None:
        self.default_region = default_region

    def normalize(self, raw: dict[str, Any]) -> CandidateResource:
        """
        Parse a raw provider record.

        Args:
            raw: Loosely-typed record from a search provider

        Returns:
            Immutable CandidateResource

        Raises:
            CandidateValidationError: If required fields are missing
        """
        if not isinstance(raw, dict):
            raise CandidateValidationError(f"Expected a mapping, got {type(raw).__name__}")

        required = {}
        for key in ("name", "address", "city", "state"):
            value = self._clean_string(raw.get(key))
            if value is None:
                raise CandidateValidationError(f"Missing required field '{key}'")
            required[key] = value

        latitude = self._parse_coordinate(self._get(raw, "latitude"), limit=90)
        longitude = self._parse_coordinate(self._get(raw, "longitude"), limit=180)
        if latitude is None or longitude is None:
            latitude, longitude = 0.0, 0.0

        return CandidateResource(
            name=required["name"],
            address=required["address"],
            city=required["city"],
            state=required["state"],
            zip_code=self._clean_string(self._get(raw, "zip_code")) or "",
            latitude=latitude,
            longitude=longitude,
            phone=self.normalize_phone(raw.get("phone")),
            website=self.normalize_website(raw.get("website")),
            description=self._clean_string(raw.get("description")),
            services=tuple(self.normalize_services(raw.get("services"))),
            hours=self.normalize_hours(raw.get("hours")),
            source_url=self._clean_string(self._get(raw, "source_url")),
            raw_confidence=self._parse_float(self._get(raw, "raw_confidence")),
        )

    def _get(self, raw: dict[str, Any], field_name: str) -> Any:
        """Look up a field under any of its accepted keys."""
        for key in self.FIELD_KEYS[field_name]:
            if raw.get(key) is not None:
                return raw[key]
        return None

    def _clean_string(self, value: Any) -> str | None:
        """Clean and normalize a string value."""
        if value is None:
            return None
        s = str(value).strip()
        s = re.sub(r"\s+", " ", s)
        return s if s else None

    def _parse_float(self, value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def _parse_coordinate(self, value: Any, limit: float) -> float | None:
        """Parse a latitude/longitude, rejecting out-of-range values."""
        parsed = self._parse_float(value)
        if parsed is None or not -limit <= parsed <= limit:
            return None
        return parsed

    def normalize_phone(self, phone: Any) -> str | None:
        """
        Normalize a phone number to E.164.

        Args:
            phone: Raw phone string

        Returns:
            E.164 string, or None if missing or invalid
        """
        cleaned = self._clean_string(phone)
        if cleaned is None:
            return None

        try:
            parsed = phonenumbers.parse(cleaned, self.default_region)
        except phonenumbers.NumberParseException:
            logger.debug(f"Unparseable phone number: {cleaned!r}")
            return None

        if not phonenumbers.is_valid_number(parsed):
            return None
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)

    def normalize_website(self, website: Any) -> str | None:
        """
        Normalize a website URL.

        Adds https:// when the scheme is missing, strips "www." and
        forces https. A host without a dot is rejected.
        """
        cleaned = self._clean_string(website)
        if cleaned is None:
            return None

        url = cleaned if re.match(r"^https?://", cleaned, re.I) else f"https://{cleaned}"
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError:
            return None

        if not hostname or "." not in hostname:
            return None

        hostname = re.sub(r"^www\.", "", hostname, flags=re.I)
        normalized = f"https://{hostname}{parsed.path}"
        if parsed.query:
            normalized += f"?{parsed.query}"
        return normalized

    def normalize_services(self, services: Any) -> list[str]:
        """
        Normalize service names.

        Args:
            services: List of service names, comma-separated string, or None

        Returns:
            Sorted, de-duplicated canonical service names
        """
        if services is None:
            return []

        if isinstance(services, str):
            service_list = services.split(",")
        elif isinstance(services, (list, tuple)):
            service_list = services
        else:
            return []

        normalized = set()
        for service in service_list:
            if not isinstance(service, str):
                continue
            cleaned = self._clean_string(service)
            if cleaned:
                canonical = self.SERVICE_ALIASES.get(cleaned.lower())
                normalized.add(canonical if canonical else cleaned)

        return sorted(normalized)

    def normalize_hours(self, hours: Any) -> dict[str, Any] | None:
        """
        Normalize weekly opening hours.

        Each weekday maps to {"open": "HH:MM", "close": "HH:MM"}, to
        {"open": "00:00", "close": "00:00", "closed": True}, or to None when
        the day is missing or unparseable.

        Returns:
            Per-day hours, or None if no day could be parsed
        """
        if not isinstance(hours, dict):
            return None

        lowered = {str(k).strip().lower(): v for k, v in hours.items()}
        result: dict[str, Any] = {}

        for day in WEEKDAYS:
            raw_day = lowered.get(day)
            if not isinstance(raw_day, dict):
                result[day] = None
                continue

            if raw_day.get("closed") is True:
                result[day] = {"open": "00:00", "close": "00:00", "closed": True}
                continue

            open_time = self.to_24_hour(raw_day.get("open"))
            close_time = self.to_24_hour(raw_day.get("close"))
            if open_time is None or close_time is None:
                result[day] = None
                continue

            result[day] = {"open": open_time, "close": close_time}

        if all(v is None for v in result.values()):
            return None
        return result

    def to_24_hour(self, value: Any) -> str | None:
        """
        Convert a time string to 24h HH:MM.

        Args:
            value: "HH:MM", "h:mm AM" or "9am" style string

        Returns:
            "HH:MM", or None if unparseable
        """
        if not isinstance(value, str):
            return None
        trimmed = value.strip()
        if not trimmed:
            return None

        match = re.fullmatch(r"(\d{1,2}):(\d{2})", trimmed)
        if match:
            hour, minute = int(match.group(1)), int(match.group(2))
            if 0 <= hour < 24 and 0 <= minute < 60:
                return f"{hour:02d}:{minute:02d}"
            return None

        for fmt in _TIME_FORMATS:
            try:
                parsed = datetime.strptime(trimmed.upper(), fmt)
            except ValueError:
                continue
            return parsed.strftime("%H:%M")

        return None
