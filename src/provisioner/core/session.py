"""
Provisioning session: scoped acquisition around a set of cloud resources.

The session owns the ledger for one SessionContext and wires the engine,
lifecycle controller and teardown coordinator to it. Used as an async
context manager it guarantees teardown on every exit path: normal
return, exception, KeyboardInterrupt and task cancellation.

Usage:
    async with ProvisioningSession(context) as session:
        await session.provision()
        await session.operate("vmss", "stop")
        await session.operate("vmss", "resize:6")
    print(session.result().to_dict())
"""

import logging
from enum import Enum
from typing import Iterable, Optional, Union

from .engine import ProvisioningEngine
from .exceptions import TeardownResidual
from .graph import DependencyGraph
from .ledger import ProvisioningLedger
from .lifecycle import LifecycleController
from .models import (
    LifecycleOperation,
    LifecycleResult,
    ProvisioningResult,
    ResourceSpec,
    SessionResult,
    TeardownResult,
)
from .context import SessionContext
from .teardown import TeardownCoordinator

logger = logging.getLogger(__name__)


class TeardownPolicy(str, Enum):
    """When the session tears resources down on exit."""

    ALWAYS = "always"
    ON_ERROR = "on_error"


class ProvisioningSession:
    """
    One provisioning session over a SessionContext.

    Attributes:
        context: The SessionContext the session was created for
        ledger: The session's ProvisioningLedger
        teardown_policy: ALWAYS tears down on exit, ON_ERROR only when the
            block raised (used by the CLI 'provision' command, which keeps
            resources for a later 'teardown')
        provisioning_result: Result of the last provision() call
        teardown_result: Result of the last teardown() call
    """

    def __init__(
        self,
        context: SessionContext,
        ledger: Optional[ProvisioningLedger] = None,
        teardown_policy: TeardownPolicy = TeardownPolicy.ALWAYS
    ):
        if context.provider is None:
            raise ValueError("SessionContext has no initialized provider")
        self.context = context
        self.ledger = ledger if ledger is not None else ProvisioningLedger()
        self.teardown_policy = TeardownPolicy(teardown_policy)
        self.engine = ProvisioningEngine.from_context(context)
        self.lifecycle = LifecycleController.from_context(context)
        self.coordinator = TeardownCoordinator.from_context(context)
        self.provisioning_result: Optional[ProvisioningResult] = None
        self.teardown_result: Optional[TeardownResult] = None

    async def __aenter__(self) -> "ProvisioningSession":
        logger.info(
            f"Session '{self.context.config.session_name}' started "
            f"(provider: {self.context.provider.name})"
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None and self.teardown_policy is TeardownPolicy.ON_ERROR:
            logger.info("Session finished; keeping resources (teardown on error only)")
            return False

        if exc_type is not None:
            logger.error(f"Session aborted by {exc_type.__name__}: {exc}. Tearing down...")

        try:
            result = await self.teardown()
        except Exception:
            if exc_type is None:
                raise
            logger.exception("Teardown failed while handling an earlier error")
            return False

        if result.residual:
            if exc_type is None:
                raise TeardownResidual(result)
            logger.error(f"Residual resources after aborted session: {sorted(result.residual)}")
        return False

    async def provision(self, specs: Optional[Iterable[ResourceSpec]] = None) -> ProvisioningResult:
        """
        Build the graph and provision it.

        Raises:
            CycleDetected / ConfigurationError: Before any provider call
            ProvisioningFailed: If any requested resource ended Failed
        """
        specs = list(specs) if specs is not None else list(self.context.specs)
        graph = DependencyGraph.build(specs)
        self.provisioning_result = await self.engine.provision(graph, specs, self.ledger)
        self.provisioning_result.raise_for_failure()
        return self.provisioning_result

    async def operate(
        self,
        resource_id: str,
        op: Union[LifecycleOperation, str]
    ) -> LifecycleResult:
        """Run a lifecycle operation (object or CLI form such as 'resize:6')."""
        if isinstance(op, str):
            op = LifecycleOperation.parse(op)
        return await self.lifecycle.operate(self.ledger, resource_id, op)

    async def teardown(self) -> TeardownResult:
        self.teardown_result = await self.coordinator.teardown(self.ledger)
        return self.teardown_result

    def result(self) -> SessionResult:
        """Aggregate succeeded, failed and residual sets."""
        provisioning = self.provisioning_result or ProvisioningResult()
        residual = self.teardown_result.residual if self.teardown_result else frozenset()
        return SessionResult(
            succeeded=provisioning.succeeded,
            failed=provisioning.failed,
            residual=residual,
        )
