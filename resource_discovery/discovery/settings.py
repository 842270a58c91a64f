"""
Discovery Settings Module
=========================

Loads pipeline configuration from a YAML file: cooldown window, duplicate
matching limits, auto-approval policy, search providers and the scan
timeout. Credentials come from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from resource_discovery.core.scoring import (
    DEFAULT_AUTO_APPROVE_THRESHOLD,
    KNOWN_AUTHORITY_DOMAINS,
)


@dataclass
class EligibilityConfig:
    """Cooldown configuration for the eligibility gate."""

    cooldown_hours: float = 30 * 24
    release_on_failure: bool = False

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EligibilityConfig:
        """Create from dictionary. Accepts cooldown_days or cooldown_hours."""
        if data is None:
            return cls()
        if "cooldown_hours" in data:
            hours = float(data["cooldown_hours"])
        else:
            hours = float(data.get("cooldown_days", 30)) * 24
        return cls(
            cooldown_hours=hours,
            release_on_failure=bool(data.get("release_on_failure", False)),
        )


@dataclass
class DuplicateConfig:
    """Limits for the duplicate guard and detector."""

    bbox_delta: float = 0.005
    max_distance_meters: float = 200.0
    nearby_limit: int = 10
    guard_name_similarity: float = 0.8

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DuplicateConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            bbox_delta=float(data.get("bbox_delta", 0.005)),
            max_distance_meters=float(data.get("max_distance_meters", 200.0)),
            nearby_limit=int(data.get("nearby_limit", 10)),
            guard_name_similarity=float(data.get("guard_name_similarity", 0.8)),
        )


@dataclass
class ApprovalConfig:
    """Auto-approval policy."""

    threshold: float = DEFAULT_AUTO_APPROVE_THRESHOLD
    require_trusted_source: bool = True
    trusted_domains: list[str] = field(default_factory=lambda: list(KNOWN_AUTHORITY_DOMAINS))

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ApprovalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            threshold=float(data.get("threshold", DEFAULT_AUTO_APPROVE_THRESHOLD)),
            require_trusted_source=bool(data.get("require_trusted_source", True)),
            trusted_domains=list(data.get("trusted_domains", KNOWN_AUTHORITY_DOMAINS)),
        )


@dataclass
class ProviderConfig:
    """Configuration for a single search provider."""

    name: str
    enabled: bool = True
    description: str = ""
    custom_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            enabled=data.get("enabled", True),
            description=data.get("description", ""),
            custom_config=data.get("custom_config", {}),
        )


@dataclass
class GlobalConfig:
    """Global configuration settings."""

    default_provider: str = "fixture"
    scan_timeout_seconds: float = 600.0
    samples_limit: int = 5
    fail_fast_on_persistence_error: bool = False
    user_agent: str = "ResourceDiscovery/0.1"
    request_timeout: int = 10
    max_retries: int = 2

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            default_provider=data.get("default_provider", "fixture"),
            scan_timeout_seconds=float(data.get("scan_timeout_seconds", 600.0)),
            samples_limit=int(data.get("samples_limit", 5)),
            fail_fast_on_persistence_error=bool(
                data.get("fail_fast_on_persistence_error", False)
            ),
            user_agent=data.get("user_agent", "ResourceDiscovery/0.1"),
            request_timeout=int(data.get("request_timeout", 10)),
            max_retries=int(data.get("max_retries", 2)),
        )


class DiscoverySettings:
    """
    Settings for the discovery pipeline.

    Loads configuration from a YAML file; anything missing falls back to
    the dataclass defaults.
    """

    def __init__(self) -> None:
        self._global_config: GlobalConfig = GlobalConfig()
        self._eligibility: EligibilityConfig = EligibilityConfig()
        self._duplicates: DuplicateConfig = DuplicateConfig()
        self._approval: ApprovalConfig = ApprovalConfig()
        self._providers: dict[str, ProviderConfig] = {}
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def eligibility(self) -> EligibilityConfig:
        """Get eligibility gate configuration."""
        return self._eligibility

    @property
    def duplicates(self) -> DuplicateConfig:
        """Get duplicate matching configuration."""
        return self._duplicates

    @property
    def approval(self) -> ApprovalConfig:
        """Get auto-approval configuration."""
        return self._approval

    @property
    def config_path(self) -> Path | None:
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the discovery.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._eligibility = EligibilityConfig.from_dict(data.get("eligibility"))
        self._duplicates = DuplicateConfig.from_dict(data.get("duplicates"))
        self._approval = ApprovalConfig.from_dict(data.get("approval"))

        self._providers.clear()
        for provider_data in data.get("providers", []):
            provider = ProviderConfig.from_dict(provider_data)
            self._providers[provider.name] = provider

    def get_provider(self, name: str) -> ProviderConfig | None:
        """
        Get a provider configuration by name.

        Args:
            name: Provider name

        Returns:
            ProviderConfig if found, None otherwise
        """
        return self._providers.get(name)

    def list_providers(self) -> list[ProviderConfig]:
        """Get all configured providers."""
        return list(self._providers.values())

    @property
    def admin_user_ids(self) -> set[str]:
        """User ids allowed to force a scan, from ADMIN_USER_IDS (comma separated)."""
        raw = os.environ.get("ADMIN_USER_IDS") or os.environ.get("ADMIN_USER_ID", "")
        return {part.strip() for part in raw.split(",") if part.strip()}

    def is_admin(self, user_id: str | None) -> bool:
        """Authorization check for the force override."""
        return bool(user_id) and user_id in self.admin_user_ids

    @property
    def mapbox_token(self) -> str | None:
        """Mapbox token from MAPBOX_SERVER_TOKEN or MAPBOX_TOKEN."""
        return os.environ.get("MAPBOX_SERVER_TOKEN") or os.environ.get("MAPBOX_TOKEN") or None


# Global settings instance
_default_settings: DiscoverySettings | None = None


def get_default_settings() -> DiscoverySettings:
    """
    Get the default settings instance.

    Loads configuration from the path specified in DISCOVERY_CONFIG_PATH
    environment variable, or falls back to config/discovery.yaml.

    Returns:
        The global DiscoverySettings instance
    """
    global _default_settings

    if _default_settings is None:
        _default_settings = DiscoverySettings()

        config_path = os.environ.get("DISCOVERY_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            # Default to config/discovery.yaml relative to project root
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "discovery.yaml"

        if path.exists():
            _default_settings.load_config(path)

    return _default_settings


def reset_default_settings() -> None:
    """Reset the default settings (useful for testing)."""
    global _default_settings
    _default_settings = None
