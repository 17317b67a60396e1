"""
Protocol definitions for the provisioning orchestrator.

This module defines the abstract interface (Protocol) that every cloud
provider must implement. Using Python's Protocol (structural subtyping)
allows duck-typed providers (including test fakes) while still providing
IDE support and type checking.

The orchestrator core treats every call as an opaque async operation that
blocks until the provider reports a terminal state (the long-running
operation has either succeeded or failed).

Error contract:
    - Raise TransientProviderError for timeouts, throttling and 5xx errors
    - Raise ProviderError for everything that retrying will not fix
"""

from typing import Protocol, runtime_checkable

from .models import ResourceKind, ResourceSpec


@runtime_checkable
class CloudProvider(Protocol):
    """
    Protocol defining the interface for a cloud provider.

    Responsibilities:
        - Initialize and own SDK clients (credentials arrive already configured)
        - Map ResourceKinds to the right SDK operations
        - Translate SDK errors into TransientProviderError / ProviderError

    Example Implementation:
        class MyProvider:
            name = "mine"

            def initialize_clients(self, credentials, region):
                self._client = SDKClient(credentials)

            async def create_or_update(self, spec):
                result = await self._client.put(spec.id, spec.properties)
                return result.id
            ...
    """

    @property
    def name(self) -> str:
        """Provider identifier used for logging and registry lookup."""
        ...

    def initialize_clients(self, credentials: dict, region: str) -> None:
        """
        Create authenticated SDK clients.

        Args:
            credentials: Provider-specific credential dictionary
            region: Default region for resources

        Raises:
            ConfigurationError: If credentials are invalid or incomplete
        """
        ...

    async def create_or_update(self, spec: ResourceSpec) -> str:
        """
        Create or update the resource and wait for the terminal state.

        Must be idempotent: calling it twice with the same spec yields the
        same resource. ${ref} placeholders are already resolved.

        Returns:
            The provider handle of the resource
        """
        ...

    async def delete(self, kind: ResourceKind, handle: str) -> None:
        """Delete the resource and wait; deleting a missing resource succeeds."""
        ...

    async def power_off(self, kind: ResourceKind, handle: str) -> None:
        """Stop (power off) the resource and wait."""
        ...

    async def start(self, kind: ResourceKind, handle: str) -> None:
        """Start the resource and wait."""
        ...

    async def restart(self, kind: ResourceKind, handle: str) -> None:
        """Restart the resource and wait."""
        ...

    async def resize(self, spec: ResourceSpec, handle: str) -> str:
        """
        Apply a new capacity carried in spec.properties and wait.

        Returns:
            The provider handle (unchanged for in-place updates)
        """
        ...

    async def close(self) -> None:
        """Release SDK clients and credentials."""
        ...
