"""
Teardown coordinator: deterministic reverse-order deletion.

Walks the dependency layers backwards. A resource is deleted only after
every resource depending on it is Deleted or was never created. Delete
failures are reported per resource and never abort independent branches;
everything that could not be removed comes back as ``residual`` so the
caller can alert on leaked resources.

Residual resources:
    - Delete failed (after transient retries)
    - Blocked: a dependent could not be deleted
    - Uncertain: the create call was interrupted or a crashed session left
      the entry InProgress, so the provider may hold a resource we have no
      handle for
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, TYPE_CHECKING

from .graph import DependencyGraph
from .ledger import ProvisioningLedger
from .models import ErrorKind, TeardownResult
from .retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from .context import SessionContext
    from .protocols import CloudProvider

logger = logging.getLogger(__name__)


class _Outcome(Enum):
    DELETED = "deleted"
    RESIDUAL = "residual"
    SKIPPED = "skipped"


class TeardownCoordinator:
    """
    Deletes every created ledger entry in reverse dependency order.

    Example Usage:
        coordinator = TeardownCoordinator(provider)
        result = await coordinator.teardown(ledger)
        if result.residual:
            alert(result.residual)
    """

    def __init__(
        self,
        provider: 'CloudProvider',
        retry_policy: Optional[RetryPolicy] = None,
        max_concurrency: int = 8
    ):
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_concurrency = max(1, max_concurrency)

    @classmethod
    def from_context(cls, context: 'SessionContext') -> "TeardownCoordinator":
        return cls(
            provider=context.provider,
            retry_policy=context.config.retry_policy(),
            max_concurrency=context.config.max_concurrency,
        )

    async def teardown(self, ledger: ProvisioningLedger) -> TeardownResult:
        """Delete everything the ledger holds a handle for; never raises per resource."""
        if len(ledger) == 0:
            logger.info("Nothing was provisioned. No clean up is necessary")
            return TeardownResult()

        graph = DependencyGraph.build(ledger.specs())
        semaphore = asyncio.Semaphore(self.max_concurrency)
        deleted: set[str] = set()
        residual: set[str] = set()

        for layer in graph.reverse_layers():
            outcomes = await asyncio.gather(*(
                self._teardown_one(graph, ledger, resource_id, semaphore)
                for resource_id in layer
            ))
            for resource_id, outcome in zip(layer, outcomes):
                if outcome is _Outcome.DELETED:
                    deleted.add(resource_id)
                elif outcome is _Outcome.RESIDUAL:
                    residual.add(resource_id)

        result = TeardownResult(deleted=frozenset(deleted), residual=frozenset(residual))
        if residual:
            logger.error(f"Teardown left residual resources: {sorted(residual)}")
        elif deleted:
            logger.info(f"✓ Deleted {len(deleted)} resources")
        else:
            logger.info("No resources needed deletion")
        return result

    async def _teardown_one(
        self,
        graph: DependencyGraph,
        ledger: ProvisioningLedger,
        resource_id: str,
        semaphore: asyncio.Semaphore
    ) -> _Outcome:
        entry = ledger.get(resource_id)
        label = f"{entry.spec.kind.value} '{resource_id}'"

        if entry.uncertain:
            logger.warning(f"  {label} may exist but has no handle (status {entry.status.value}); reporting as residual")
            return _Outcome.RESIDUAL
        if not entry.created:
            return _Outcome.SKIPPED

        blocked = sorted(
            dependent for dependent in graph.dependents(resource_id)
            if ledger.get(dependent).created or ledger.get(dependent).uncertain
        )
        if blocked:
            logger.warning(f"  Not deleting {label}: dependents still present {blocked}")
            return _Outcome.RESIDUAL

        async with semaphore:
            logger.info(f"Deleting {label}: {entry.handle}")
            try:
                await call_with_retry(
                    self.retry_policy,
                    self.provider.delete,
                    entry.spec.kind,
                    entry.handle,
                    description=f"delete {label}",
                )
            except Exception as e:
                logger.error(f"  ✗ Failed to delete {label}: {type(e).__name__}: {e}")
                await ledger.mark_failed(resource_id, ErrorKind.DELETE_FAILED, str(e))
                return _Outcome.RESIDUAL

            await ledger.mark_deleted(resource_id)
            logger.info(f"  ✓ Deleted {label}")
            return _Outcome.DELETED
