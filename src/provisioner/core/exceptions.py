"""
Custom exceptions for the provisioning orchestrator.

This module defines a hierarchy of exceptions used throughout the
orchestrator to provide clear, actionable error messages. Every
resource-level error carries the resource id and kind it belongs to.

Exception Hierarchy:
    ProvisionerError (base)
    ├── ConfigurationError - Invalid or missing configuration / resource specs
    ├── ProviderNotFoundError - Unknown provider name requested
    ├── CycleDetected - Resource dependency graph contains a cycle
    ├── ProviderError - A provider call failed permanently
    │   └── TransientProviderError - Timeout/throttling, safe to retry
    ├── ProvisioningFailed - One or more resources ended Failed
    ├── LifecycleError - Lifecycle operation misuse
    │   ├── UnknownResource - Resource id not in the ledger
    │   ├── NotReady - Resource is not Ready
    │   └── UnsupportedOperation - Kind has no such operation
    └── TeardownResidual - Resources could not be deleted
"""

from typing import Iterable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ProvisioningResult, TeardownResult


class ProvisionerError(Exception):
    """
    Base exception for all orchestrator errors.

    Attributes:
        message: Human-readable error description
        resource_id: Optional id of the resource the error belongs to
        kind: Optional resource kind (e.g. "LoadBalancer")
    """

    def __init__(
        self,
        message: str,
        resource_id: Optional[str] = None,
        kind: Optional[str] = None
    ):
        self.message = message
        self.resource_id = resource_id
        self.kind = kind

        details = []
        if resource_id:
            details.append(f"resource={resource_id}")
        if kind:
            details.append(f"kind={kind}")

        if details:
            full_message = f"{message} [{', '.join(details)}]"
        else:
            full_message = message

        super().__init__(full_message)


class ConfigurationError(ProvisionerError):
    """
    Raised when configuration or resource specs are invalid.

    This typically occurs when:
    - Required config file is missing or has invalid JSON
    - A resource spec depends on an id that does not exist
    - A ${ref} placeholder names a resource not listed in depends_on
    - Two specs share the same id
    """

    def __init__(
        self,
        message: str,
        config_file: Optional[str] = None,
        resource_id: Optional[str] = None
    ):
        self.config_file = config_file
        if config_file:
            message = f"{message} (file: {config_file})"
        super().__init__(message, resource_id=resource_id)


class ProviderNotFoundError(ProvisionerError):
    """
    Raised when an unknown provider name is requested.

    Example:
        >>> ProviderRegistry.get("unknown")
        ProviderNotFoundError: Provider 'unknown' not found. Available: ['azure', 'simulated']
    """

    def __init__(self, provider_name: str, available_providers: list[str]):
        self.provider_name = provider_name
        self.available_providers = available_providers
        super().__init__(
            f"Provider '{provider_name}' not found. Available: {available_providers}"
        )


class CycleDetected(ProvisionerError):
    """
    Raised when the resource dependency graph is not acyclic.

    Attributes:
        ids: Sorted ids of the resources that could not be layered
    """

    def __init__(self, ids: Iterable[str]):
        self.ids = sorted(ids)
        super().__init__(f"Dependency cycle detected among resources: {self.ids}")


class ProviderError(ProvisionerError):
    """
    Raised when a provider call fails and retrying will not help.

    Wraps cloud SDK errors with the resource the call was made for.

    Attributes:
        operation: Provider operation name (e.g. "create_or_update")
        original_error: The underlying SDK exception
        session_fatal: True when the whole session is unusable (e.g.
            credentials rejected); the engine then aborts remaining layers
    """

    def __init__(
        self,
        message: str,
        resource_id: Optional[str] = None,
        kind: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        session_fatal: bool = False
    ):
        self.operation = operation
        self.original_error = original_error
        self.session_fatal = session_fatal
        if operation:
            message = f"{operation} failed: {message}"
        super().__init__(message, resource_id=resource_id, kind=kind)


class TransientProviderError(ProviderError):
    """
    Raised for timeouts, throttling and server-side errors.

    The engine retries these with exponential backoff up to a bounded
    number of attempts before escalating to ProvisioningFailed.
    """


class ProvisioningFailed(ProvisionerError):
    """
    Raised when one or more requested resources ended in Failed.

    Attributes:
        result: The ProvisioningResult with succeeded and failed ids
    """

    def __init__(self, result: 'ProvisioningResult'):
        self.result = result
        super().__init__(
            f"Provisioning failed for {sorted(result.failed)} "
            f"(succeeded: {sorted(result.succeeded)})"
        )


class LifecycleError(ProvisionerError):
    """Base class for lifecycle operation misuse. Fatal to that call only."""


class UnknownResource(LifecycleError):
    """Raised when a lifecycle operation targets an id that is not in the ledger."""

    def __init__(self, resource_id: str):
        super().__init__("Unknown resource", resource_id=resource_id)


class NotReady(LifecycleError):
    """Raised when a lifecycle operation targets a resource that is not Ready."""

    def __init__(self, resource_id: str, kind: str, status: str):
        self.status = status
        super().__init__(
            f"Resource is not Ready (status: {status})",
            resource_id=resource_id,
            kind=kind
        )


class UnsupportedOperation(LifecycleError):
    """Raised when a resource kind has no such lifecycle operation."""

    def __init__(self, operation: str, resource_id: str, kind: str):
        self.operation = operation
        super().__init__(
            f"Operation '{operation}' is not supported",
            resource_id=resource_id,
            kind=kind
        )


class TeardownResidual(ProvisionerError):
    """
    Raised when teardown could not remove every resource.

    Never swallowed: the caller is expected to alert on leaked resources.

    Attributes:
        result: The TeardownResult with deleted and residual ids
    """

    def __init__(self, result: 'TeardownResult'):
        self.result = result
        super().__init__(
            f"Teardown left residual resources: {sorted(result.residual)}"
        )
