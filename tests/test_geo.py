"""Tests for the geometry and text utilities."""

import pytest

from resource_discovery.core.geo import (
    address_fingerprint,
    bounding_box,
    distance_meters,
    levenshtein_distance,
    make_area_key,
    normalize_address,
    string_similarity,
)


class TestDistance:
    """Tests for haversine distance."""

    def test_same_point_is_zero(self) -> None:
        """Test distance from a point to itself."""
        assert distance_meters(38.5723, -121.4838, 38.5723, -121.4838) == 0.0

    def test_one_degree_of_longitude_at_equator(self) -> None:
        """Test a known distance along the equator."""
        assert distance_meters(0.0, 0.0, 0.0, 1.0) == pytest.approx(111_195, abs=1)

    def test_symmetric(self) -> None:
        """Test distance does not depend on argument order."""
        a = distance_meters(38.5723, -121.4838, 38.5936, -121.4781)
        b = distance_meters(38.5936, -121.4781, 38.5723, -121.4838)
        assert a == pytest.approx(b)

    def test_small_latitude_offset(self) -> None:
        """Test 0.00225 degrees of latitude is roughly 250 meters."""
        d = distance_meters(38.5723, -121.4838, 38.5723 + 0.00225, -121.4838)
        assert 245 < d < 255

    def test_antipodal_points(self) -> None:
        """Test antipodal points are half the circumference apart."""
        d = distance_meters(0.0, 0.0, 0.0, 180.0)
        assert d == pytest.approx(20_015_087, rel=1e-4)


class TestLevenshtein:
    """Tests for edit distance."""

    def test_identical(self) -> None:
        """Test identical strings have zero distance."""
        assert levenshtein_distance("pantry", "pantry") == 0

    def test_classic_example(self) -> None:
        """Test the kitten/sitting example."""
        assert levenshtein_distance("kitten", "sitting") == 3

    def test_empty(self) -> None:
        """Test distance to the empty string is the length."""
        assert levenshtein_distance("pantry", "") == 6
        assert levenshtein_distance("", "pantry") == 6


class TestStringSimilarity:
    """Tests for normalized string similarity."""

    def test_case_and_whitespace_insensitive(self) -> None:
        """Test similarity ignores case and surrounding whitespace."""
        assert string_similarity("Midtown Food Pantry", "  midtown food pantry ") == 1.0

    def test_one_side_empty(self) -> None:
        """Test one empty side scores zero."""
        assert string_similarity("Midtown", "") == 0.0
        assert string_similarity(None, "Midtown") == 0.0

    def test_both_empty(self) -> None:
        """Test two empty strings are equal."""
        assert string_similarity("", None) == 1.0

    def test_bounded(self) -> None:
        """Test similarity stays within [0, 1]."""
        for a, b in [("a", "zzzzzz"), ("Loaves & Fishes", "Midtown Food Pantry"), ("x", "x")]:
            score = string_similarity(a, b)
            assert 0.0 <= score <= 1.0

    def test_symmetric(self) -> None:
        """Test similarity does not depend on argument order."""
        assert string_similarity("Oak Park Fridge", "Oak Park Community Fridge") == pytest.approx(
            string_similarity("Oak Park Community Fridge", "Oak Park Fridge")
        )

    def test_one_edit(self) -> None:
        """Test a single substitution."""
        assert string_similarity("pantry", "pantri") == pytest.approx(1 - 1 / 6)


class TestAddressNormalization:
    """Tests for address comparison keys."""

    def test_suffix_variants_match(self) -> None:
        """Test "St" and "Street" normalize to the same key."""
        assert normalize_address("1500 Q Street") == normalize_address("1500 Q St")
        assert normalize_address("1500 Q St") == "1500q"

    def test_punctuation_removed(self) -> None:
        """Test punctuation is stripped."""
        assert normalize_address("12 Elm Ave., #3") == "12elm3"

    def test_suffix_inside_word_kept(self) -> None:
        """Test suffixes are only removed as whole words."""
        assert normalize_address("10 Stanford Dr") == "10stanford"

    def test_none(self) -> None:
        """Test a missing address normalizes to an empty key."""
        assert normalize_address(None) == ""

    def test_fingerprint_abbreviates(self) -> None:
        """Test fingerprints abbreviate common words."""
        assert address_fingerprint("123 Main Street, Suite 4") == "123mainstste4"
        assert address_fingerprint("1351 North C Street") == address_fingerprint("1351 N C St")

    def test_fingerprint_empty(self) -> None:
        """Test empty addresses have no fingerprint."""
        assert address_fingerprint("") is None
        assert address_fingerprint(None) is None
        assert address_fingerprint(" ,. ") is None


class TestBoundingBox:
    """Tests for the nearby pre-filter box."""

    def test_default_delta(self) -> None:
        """Test the box extends the default delta in each direction."""
        min_lat, max_lat, min_lon, max_lon = bounding_box(38.5, -121.4)
        assert min_lat == pytest.approx(38.495)
        assert max_lat == pytest.approx(38.505)
        assert min_lon == pytest.approx(-121.405)
        assert max_lon == pytest.approx(-121.395)


class TestAreaKey:
    """Tests for area keys."""

    def test_lowercase_and_trimmed(self) -> None:
        """Test keys are lower-cased and trimmed."""
        assert make_area_key("  Sacramento ", "CA") == "sacramento-ca"

    def test_same_area_same_key(self) -> None:
        """Test differently formatted inputs share a key."""
        assert make_area_key("SACRAMENTO", " ca") == make_area_key("sacramento", "CA")

    def test_empty_part_rejected(self) -> None:
        """Test an empty city or state is rejected."""
        with pytest.raises(ValueError):
            make_area_key("", "CA")
        with pytest.raises(ValueError):
            make_area_key("Sacramento", "  ")
