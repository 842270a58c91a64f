"""
Geometry & Text Utilities
=========================

Pure helpers shared by the duplicate guard and detector: great-circle
distance, Levenshtein-based string similarity and address normalization.
"""

from __future__ import annotations

import math
import re

EARTH_RADIUS_METERS = 6_371_000

# Degrees of latitude/longitude for the nearby pre-filter (~555 m)
DEFAULT_BBOX_DELTA = 0.005

_STREET_SUFFIXES = (
    "street", "st", "avenue", "ave", "boulevard", "blvd", "road", "rd",
    "drive", "dr", "lane", "ln", "court", "ct",
)
_SUFFIX_PATTERN = re.compile(r"\b(" + "|".join(_STREET_SUFFIXES) + r")\b")
_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Whole-word abbreviations used for address fingerprints
FINGERPRINT_ABBREVIATIONS: dict[str, str] = {
    "street": "st",
    "avenue": "ave",
    "boulevard": "blvd",
    "road": "rd",
    "drive": "dr",
    "lane": "ln",
    "court": "ct",
    "circle": "cir",
    "highway": "hwy",
    "suite": "ste",
    "apartment": "apt",
    "building": "bldg",
    "floor": "fl",
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
}


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points using the haversine formula.

    Args:
        lat1: Latitude of the first point (degrees)
        lon1: Longitude of the first point (degrees)
        lat2: Latitude of the second point (degrees)
        lon2: Longitude of the second point (degrees)

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Clamp against floating point drift past 1.0
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def levenshtein_distance(s1: str, s2: str) -> int:
    """
    Calculate the Levenshtein distance between two strings.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Edit distance
    """
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def string_similarity(a: str | None, b: str | None) -> float:
    """
    Normalized similarity of two strings, case-insensitive and trimmed.

    Returns 1.0 for an exact match, 0.0 if only one side is empty, otherwise
    ``1 - levenshtein / max(len)``.
    """
    s1 = (a or "").lower().strip()
    s2 = (b or "").lower().strip()

    if s1 == s2:
        return 1.0

    if not s1 or not s2:
        return 0.0

    distance = levenshtein_distance(s1, s2)
    max_len = max(len(s1), len(s2))

    return 1.0 - (distance / max_len)


def normalize_address(address: str | None) -> str:
    """
    Reduce an address to a comparison key.

    Lower-cases, trims, drops street-suffix tokens and strips every
    non-alphanumeric character. Only used for similarity, never stored.
    """
    normalized = (address or "").lower().strip()
    normalized = _SUFFIX_PATTERN.sub("", normalized)
    return _NON_ALNUM.sub("", normalized)


def address_fingerprint(address: str | None) -> str | None:
    """
    Create a normalized fingerprint for an address.

    E.g. "123 Main Street, Suite 4" -> "123mainstste4"
    """
    if not address:
        return None

    normalized = address.lower().strip()
    for full, abbr in FINGERPRINT_ABBREVIATIONS.items():
        normalized = re.sub(rf"\b{full}\b", abbr, normalized)

    return _NON_ALNUM.sub("", normalized) or None


def bounding_box(
    latitude: float, longitude: float, delta: float = DEFAULT_BBOX_DELTA
) -> tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lon, max_lon) around a point."""
    return (latitude - delta, latitude + delta, longitude - delta, longitude + delta)


def make_area_key(city: str, state: str) -> str:
    """
    Build the eligibility key for an area.

    Args:
        city: City name
        state: State code or name

    Returns:
        "city-state", lower-cased and trimmed

    Raises:
        ValueError: If either part is empty
    """
    city_part = (city or "").strip().lower()
    state_part = (state or "").strip().lower()
    if not city_part or not state_part:
        raise ValueError("City and state are required to build an area key")
    return f"{city_part}-{state_part}"
