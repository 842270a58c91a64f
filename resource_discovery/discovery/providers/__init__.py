"""
Search Provider Registry Module
===============================

Central registry for discovery search providers.
Provides factory functions for creating providers by name.
"""

from __future__ import annotations

from typing import Any, Type

from resource_discovery.core.errors import ConfigurationError
from resource_discovery.discovery.providers.base import BaseSearchProvider, ProgressCallback
from resource_discovery.discovery.providers.file import FileSearchProvider
from resource_discovery.discovery.providers.fixture import FIXTURE_RESOURCES, FixtureSearchProvider
from resource_discovery.discovery.settings import DiscoverySettings

# Registry mapping provider names to their classes
PROVIDER_REGISTRY: dict[str, Type[BaseSearchProvider]] = {
    "fixture": FixtureSearchProvider,
    "file": FileSearchProvider,
}


def get_search_provider(
    name: str,
    config: dict[str, Any] | None = None,
) -> BaseSearchProvider:
    """
    Get a provider instance by name.

    Args:
        name: Name of the provider (e.g., "fixture")
        config: Optional provider configuration

    Returns:
        Provider instance

    Raises:
        ConfigurationError: If no provider is registered under the name
    """
    provider_class = PROVIDER_REGISTRY.get(name)
    if provider_class is None:
        available = ", ".join(sorted(PROVIDER_REGISTRY))
        raise ConfigurationError(f"Unknown search provider '{name}' (available: {available})")
    return provider_class(config)


def provider_from_settings(
    settings: DiscoverySettings,
    name: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> BaseSearchProvider:
    """
    Build a provider from its YAML configuration.

    Args:
        settings: Loaded discovery settings
        name: Provider name (defaults to global.default_provider)
        overrides: Values merged over the provider's custom_config

    Returns:
        Provider instance

    Raises:
        ConfigurationError: If the provider is disabled or unknown
    """
    name = name or settings.global_config.default_provider
    provider_config = settings.get_provider(name)
    if provider_config is not None and not provider_config.enabled:
        raise ConfigurationError(f"Search provider '{name}' is disabled")

    config = dict(provider_config.custom_config) if provider_config else {}
    config.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return get_search_provider(name, config)


def register_provider(name: str, provider_class: Type[BaseSearchProvider]) -> None:
    """
    Register a new provider type.

    Args:
        name: Name to register the provider under
        provider_class: Provider class (must inherit from BaseSearchProvider)
    """
    if not issubclass(provider_class, BaseSearchProvider):
        raise TypeError(f"{provider_class} must inherit from BaseSearchProvider")
    PROVIDER_REGISTRY[name] = provider_class


def list_providers() -> list[str]:
    """List all registered provider names."""
    return list(PROVIDER_REGISTRY.keys())


__all__ = [
    "get_search_provider",
    "provider_from_settings",
    "register_provider",
    "list_providers",
    "PROVIDER_REGISTRY",
    "BaseSearchProvider",
    "ProgressCallback",
    "FileSearchProvider",
    "FixtureSearchProvider",
    "FIXTURE_RESOURCES",
]
