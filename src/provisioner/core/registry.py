"""
Provider registry for dynamic provider lookup.

Providers register themselves when their package is imported:

    # In providers/azure/__init__.py
    from provisioner.core.registry import ProviderRegistry
    from .provider import AzureProvider
    ProviderRegistry.register("azure", AzureProvider)

Importing ``provisioner.providers`` triggers registration of every
bundled provider. The session config then selects one by name.
"""

from typing import Dict, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from .protocols import CloudProvider

from .exceptions import ProviderNotFoundError


class ProviderRegistry:
    """
    Central registry for cloud provider implementations.

    Class-level state: providers register at import time, before any
    instances exist. Lookups are read-only.

    Example Usage:
        ProviderRegistry.register("azure", AzureProvider)
        provider = ProviderRegistry.get("azure")
        provider.initialize_clients(credentials, region)
    """

    _providers: Dict[str, Type['CloudProvider']] = {}

    @classmethod
    def register(cls, name: str, provider_class: Type['CloudProvider']) -> None:
        """
        Register a provider class under a name.

        Registering the same class twice is allowed; a different class
        under an existing name raises.

        Raises:
            ValueError: If name is already registered with a different class
        """
        if name in cls._providers:
            existing_class = cls._providers[name]
            if existing_class is not provider_class:
                raise ValueError(
                    f"Provider '{name}' is already registered with {existing_class.__name__}. "
                    f"Cannot re-register with {provider_class.__name__}."
                )
            return

        cls._providers[name] = provider_class

    @classmethod
    def get(cls, name: str) -> 'CloudProvider':
        """
        Get a new instance of the named provider.

        Providers are not singletons; each session gets its own clients.

        Raises:
            ProviderNotFoundError: If no provider is registered with that name.
        """
        if name not in cls._providers:
            raise ProviderNotFoundError(name, list(cls._providers.keys()))

        return cls._providers[name]()

    @classmethod
    def list_providers(cls) -> list[str]:
        """List all registered provider names, sorted alphabetically."""
        return sorted(cls._providers.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._providers

    @classmethod
    def clear(cls) -> None:
        """
        Clear all registered providers.

        Used by tests to reset state between cases.
        """
        cls._providers.clear()
