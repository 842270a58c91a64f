"""Tests for the resource normalizer."""

import pytest

from resource_discovery.core.errors import CandidateValidationError
from resource_discovery.discovery.normalizer import ResourceNormalizer


@pytest.fixture
def normalizer() -> ResourceNormalizer:
    return ResourceNormalizer()


class TestNormalize:
    """Tests for ResourceNormalizer.normalize."""

    def test_full_record(self, normalizer: ResourceNormalizer) -> None:
        """Test a provider record with camelCase keys."""
        candidate = normalizer.normalize(
            {
                "name": "  Midtown   Food Pantry ",
                "address": "1500 Q St",
                "city": "Sacramento",
                "state": "CA",
                "zipCode": "95811",
                "lat": "38.5723",
                "lng": -121.4838,
                "phone": "(650) 253-0000",
                "website": "www.midtownpantry.org",
                "services": ["food pantry"],
                "sourceUrl": "https://www.midtownpantry.org/visit",
                "confidence": 0.8,
            }
        )
        assert candidate.name == "Midtown Food Pantry"
        assert candidate.zip_code == "95811"
        assert candidate.latitude == 38.5723
        assert candidate.longitude == -121.4838
        assert candidate.phone == "+16502530000"
        assert candidate.website == "https://midtownpantry.org"
        assert candidate.services == ("Pantry",)
        assert candidate.source_url == "https://www.midtownpantry.org/visit"
        assert candidate.raw_confidence == 0.8

    def test_missing_required_field(self, normalizer: ResourceNormalizer) -> None:
        """Test a record without an address is rejected."""
        with pytest.raises(CandidateValidationError, match="address"):
            normalizer.normalize({"name": "Pantry", "city": "Sacramento", "state": "CA"})

    def test_blank_required_field(self, normalizer: ResourceNormalizer) -> None:
        """Test whitespace does not satisfy a required field."""
        with pytest.raises(CandidateValidationError, match="name"):
            normalizer.normalize(
                {"name": "   ", "address": "1 Main St", "city": "Sacramento", "state": "CA"}
            )

    def test_not_a_mapping(self, normalizer: ResourceNormalizer) -> None:
        """Test non-dict input is rejected."""
        with pytest.raises(CandidateValidationError):
            normalizer.normalize(["Midtown Food Pantry"])  # type: ignore[arg-type]

    def test_missing_coordinates_become_placeholder(self, normalizer: ResourceNormalizer) -> None:
        """Test missing coordinates use the 0,0 placeholder."""
        candidate = normalizer.normalize(
            {"name": "Pantry", "address": "1 Main St", "city": "Sacramento", "state": "CA"}
        )
        assert candidate.has_placeholder_coordinates

    def test_out_of_range_coordinates(self, normalizer: ResourceNormalizer) -> None:
        """Test an out-of-range latitude discards both coordinates."""
        candidate = normalizer.normalize(
            {
                "name": "Pantry",
                "address": "1 Main St",
                "city": "Sacramento",
                "state": "CA",
                "latitude": 95,
                "longitude": -121.4,
            }
        )
        assert candidate.latitude == 0.0
        assert candidate.longitude == 0.0

    def test_candidate_is_immutable(self, normalizer: ResourceNormalizer) -> None:
        """Test normalized candidates cannot be modified."""
        candidate = normalizer.normalize(
            {"name": "Pantry", "address": "1 Main St", "city": "Sacramento", "state": "CA"}
        )
        with pytest.raises(Exception):
            candidate.name = "Other"  # type: ignore[misc]


class TestPhone:
    """Tests for phone normalization."""

    def test_us_number_to_e164(self, normalizer: ResourceNormalizer) -> None:
        """Test a formatted US number."""
        assert normalizer.normalize_phone("(650) 253-0000") == "+16502530000"
        assert normalizer.normalize_phone("650.253.0000") == "+16502530000"

    def test_invalid(self, normalizer: ResourceNormalizer) -> None:
        """Test invalid numbers are dropped."""
        assert normalizer.normalize_phone("123") is None
        assert normalizer.normalize_phone("call us") is None
        assert normalizer.normalize_phone(None) is None


class TestWebsite:
    """Tests for website normalization."""

    def test_adds_https_and_strips_www(self, normalizer: ResourceNormalizer) -> None:
        """Test scheme and www handling."""
        assert normalizer.normalize_website("www.Example.org/path") == "https://example.org/path"
        assert normalizer.normalize_website("http://www.sacloaves.org") == "https://sacloaves.org"

    def test_keeps_query(self, normalizer: ResourceNormalizer) -> None:
        """Test the query string is preserved."""
        assert normalizer.normalize_website("https://a.org/p?id=3") == "https://a.org/p?id=3"

    def test_rejects_host_without_dot(self, normalizer: ResourceNormalizer) -> None:
        """Test bare hostnames are rejected."""
        assert normalizer.normalize_website("localhost") is None
        assert normalizer.normalize_website("") is None


class TestServices:
    """Tests for service normalization."""

    def test_aliases_sorted_and_deduplicated(self, normalizer: ResourceNormalizer) -> None:
        """Test synonyms collapse to canonical names."""
        result = normalizer.normalize_services(["food pantry", "Soup Kitchen", "Pantry", "Diapers"])
        assert result == ["Diapers", "Hot Meal", "Pantry"]

    def test_comma_separated(self, normalizer: ResourceNormalizer) -> None:
        """Test a comma-separated string."""
        assert normalizer.normalize_services("pantry, hot meals") == ["Hot Meal", "Pantry"]

    def test_invalid_input(self, normalizer: ResourceNormalizer) -> None:
        """Test unsupported input yields no services."""
        assert normalizer.normalize_services(None) == []
        assert normalizer.normalize_services(42) == []


class TestHours:
    """Tests for opening hours normalization."""

    def test_mixed_days(self, normalizer: ResourceNormalizer) -> None:
        """Test parsed, closed and unparseable days."""
        hours = normalizer.normalize_hours(
            {
                "Tuesday": {"open": "9:00 AM", "close": "12:00 PM"},
                "Sunday": {"closed": True},
                "Monday": {"open": "late", "close": "5pm"},
            }
        )
        assert hours is not None
        assert hours["tuesday"] == {"open": "09:00", "close": "12:00"}
        assert hours["sunday"] == {"open": "00:00", "close": "00:00", "closed": True}
        assert hours["monday"] is None
        assert hours["friday"] is None
        assert set(hours) == {
            "monday",
            "tuesday",
            "wednesday",
            "thursday",
            "friday",
            "saturday",
            "sunday",
        }

    def test_nothing_parseable(self, normalizer: ResourceNormalizer) -> None:
        """Test hours with no usable day are dropped."""
        assert normalizer.normalize_hours({"Monday": "sometimes"}) is None
        assert normalizer.normalize_hours("9-5") is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("13:00", "13:00"),
            ("7:05", "07:05"),
            ("9am", "09:00"),
            ("9 pm", "21:00"),
            ("12:30 AM", "00:30"),
            ("2:30PM", "14:30"),
            ("25:00", None),
            ("noon", None),
            (None, None),
        ],
    )
    def test_to_24_hour(self, normalizer: ResourceNormalizer, value, expected) -> None:
        """Test time string conversion."""
        assert normalizer.to_24_hour(value) == expected
