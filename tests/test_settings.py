"""Tests for discovery settings."""

from datetime import timedelta
from pathlib import Path

import pytest

from resource_discovery.core.scoring import DEFAULT_AUTO_APPROVE_THRESHOLD
from resource_discovery.discovery.settings import (
    ApprovalConfig,
    DiscoverySettings,
    DuplicateConfig,
    EligibilityConfig,
    GlobalConfig,
    get_default_settings,
    reset_default_settings,
)


class TestConfigDataclasses:
    """Tests for the configuration dataclasses."""

    def test_defaults(self) -> None:
        """Test defaults when a section is missing."""
        assert GlobalConfig.from_dict(None) == GlobalConfig()
        assert EligibilityConfig.from_dict(None).cooldown == timedelta(days=30)
        assert DuplicateConfig.from_dict(None).max_distance_meters == 200.0
        assert ApprovalConfig.from_dict(None).threshold == DEFAULT_AUTO_APPROVE_THRESHOLD

    def test_cooldown_days(self) -> None:
        """Test the cooldown can be given in days."""
        assert EligibilityConfig.from_dict({"cooldown_days": 7}).cooldown == timedelta(days=7)

    def test_cooldown_hours_wins(self) -> None:
        """Test hours take precedence over days."""
        config = EligibilityConfig.from_dict({"cooldown_days": 7, "cooldown_hours": 12})
        assert config.cooldown == timedelta(hours=12)

    def test_release_on_failure(self) -> None:
        """Test failed scans hold the cooldown unless configured otherwise."""
        assert EligibilityConfig.from_dict(None).release_on_failure is False
        assert EligibilityConfig.from_dict({"cooldown_days": 7}).release_on_failure is False
        config = EligibilityConfig.from_dict({"cooldown_hours": 1, "release_on_failure": True})
        assert config.release_on_failure is True
        assert config.cooldown == timedelta(hours=1)

    def test_global_values(self) -> None:
        """Test global values are coerced."""
        config = GlobalConfig.from_dict(
            {"scan_timeout_seconds": "30", "fail_fast_on_persistence_error": True}
        )
        assert config.scan_timeout_seconds == 30.0
        assert config.fail_fast_on_persistence_error is True
        assert config.default_provider == "fixture"


class TestDiscoverySettings:
    """Tests for DiscoverySettings."""

    def test_load_config(self, tmp_path: Path) -> None:
        """Test loading every section from YAML."""
        path = tmp_path / "discovery.yaml"
        path.write_text(
            "global:\n"
            "  scan_timeout_seconds: 120\n"
            "eligibility:\n"
            "  cooldown_days: 1\n"
            "duplicates:\n"
            "  max_distance_meters: 150\n"
            "approval:\n"
            "  threshold: 85\n"
            "  trusted_domains: [211.org]\n"
            "providers:\n"
            "  - name: fixture\n"
            "    description: Offline data\n"
        )
        settings = DiscoverySettings()
        settings.load_config(path)

        assert settings.config_path == path.resolve()
        assert settings.global_config.scan_timeout_seconds == 120
        assert settings.eligibility.cooldown == timedelta(days=1)
        assert settings.duplicates.max_distance_meters == 150
        assert settings.approval.threshold == 85
        assert settings.approval.trusted_domains == ["211.org"]
        assert settings.get_provider("fixture").description == "Offline data"
        assert settings.get_provider("missing") is None
        assert [p.name for p in settings.list_providers()] == ["fixture"]

    def test_empty_file(self, tmp_path: Path) -> None:
        """Test an empty file leaves the defaults."""
        path = tmp_path / "discovery.yaml"
        path.write_text("")
        settings = DiscoverySettings()
        settings.load_config(path)
        assert settings.global_config == GlobalConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises."""
        with pytest.raises(FileNotFoundError):
            DiscoverySettings().load_config(tmp_path / "nope.yaml")

    def test_admin_ids(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test admin ids are parsed from the environment."""
        monkeypatch.setenv("ADMIN_USER_IDS", "alice, bob,,")
        settings = DiscoverySettings()

        assert settings.admin_user_ids == {"alice", "bob"}
        assert settings.is_admin("bob") is True
        assert settings.is_admin("mallory") is False
        assert settings.is_admin(None) is False

    def test_no_admins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test nobody may force a scan when no admins are configured."""
        monkeypatch.delenv("ADMIN_USER_IDS", raising=False)
        monkeypatch.delenv("ADMIN_USER_ID", raising=False)
        assert DiscoverySettings().is_admin("") is False

    def test_mapbox_token_preference(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the server token is preferred over the public one."""
        monkeypatch.setenv("MAPBOX_TOKEN", "pk.public")
        monkeypatch.setenv("MAPBOX_SERVER_TOKEN", "sk.server")
        assert DiscoverySettings().mapbox_token == "sk.server"


class TestDefaultSettings:
    """Tests for the shared settings instance."""

    def test_env_path_and_reset(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test DISCOVERY_CONFIG_PATH is honored and reset clears the cache."""
        path = tmp_path / "discovery.yaml"
        path.write_text("global:\n  samples_limit: 2\n")
        monkeypatch.setenv("DISCOVERY_CONFIG_PATH", str(path))
        reset_default_settings()
        try:
            settings = get_default_settings()
            assert settings.global_config.samples_limit == 2
            assert get_default_settings() is settings
        finally:
            reset_default_settings()

        monkeypatch.delenv("DISCOVERY_CONFIG_PATH")
        assert get_default_settings() is not settings
        reset_default_settings()
