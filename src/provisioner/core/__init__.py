"""
Core abstractions for the provisioning orchestrator.

Modules:
    models: ResourceSpec, statuses, results, lifecycle operations
    graph: DependencyGraph builder (topological layers)
    ledger: ProvisioningLedger (per-resource status, persistence)
    engine: ProvisioningEngine (layered create-or-update)
    lifecycle: LifecycleController (stop/start/resize/restart)
    teardown: TeardownCoordinator (reverse-order deletion)
    session: ProvisioningSession (scoped teardown)
    protocols: CloudProvider interface
    registry: ProviderRegistry for provider lookup
    context / config_loader / factory: session configuration
    exceptions: Error taxonomy

Usage:
    from provisioner.core import ProvisioningSession, create_context

    context = create_context("template")
    async with ProvisioningSession(context) as session:
        await session.provision()
"""

from .context import SessionConfig, SessionContext
from .engine import ProvisioningEngine
from .exceptions import (
    ConfigurationError,
    CycleDetected,
    LifecycleError,
    NotReady,
    ProviderError,
    ProviderNotFoundError,
    ProvisionerError,
    ProvisioningFailed,
    TeardownResidual,
    TransientProviderError,
    UnknownResource,
    UnsupportedOperation,
)
from .factory import create_context
from .graph import DependencyGraph
from .ledger import LedgerEntry, ProvisioningLedger
from .lifecycle import LifecycleController
from .models import (
    ErrorKind,
    LifecycleOperation,
    LifecycleResult,
    OperationType,
    ProvisioningResult,
    ResourceKind,
    ResourceSpec,
    ResourceStatus,
    SessionResult,
    TeardownResult,
)
from .protocols import CloudProvider
from .registry import ProviderRegistry
from .retry import RetryPolicy
from .session import ProvisioningSession, TeardownPolicy
from .teardown import TeardownCoordinator

__all__ = [
    # Models
    "ResourceSpec",
    "ResourceKind",
    "ResourceStatus",
    "ErrorKind",
    "LifecycleOperation",
    "OperationType",
    "ProvisioningResult",
    "TeardownResult",
    "SessionResult",
    "LifecycleResult",
    # Components
    "DependencyGraph",
    "ProvisioningLedger",
    "LedgerEntry",
    "ProvisioningEngine",
    "LifecycleController",
    "TeardownCoordinator",
    "ProvisioningSession",
    "TeardownPolicy",
    "RetryPolicy",
    # Providers
    "CloudProvider",
    "ProviderRegistry",
    # Context
    "SessionConfig",
    "SessionContext",
    "create_context",
    # Exceptions
    "ProvisionerError",
    "ConfigurationError",
    "ProviderNotFoundError",
    "CycleDetected",
    "ProviderError",
    "TransientProviderError",
    "ProvisioningFailed",
    "LifecycleError",
    "NotReady",
    "UnknownResource",
    "UnsupportedOperation",
    "TeardownResidual",
]
