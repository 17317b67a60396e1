"""
Lifecycle controller: post-creation operations on provisioned resources.

Operations:
    - Stop: power off
    - Start: power on
    - Restart: restart in place
    - Resize(N): set sku.capacity to N and re-apply the resource

Only Ready resources of a kind that supports power operations (scale
sets) can be targeted. Calls on the same resource are serialized; calls
on unrelated resources may run concurrently.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, Optional, TYPE_CHECKING

from .exceptions import NotReady, UnknownResource, UnsupportedOperation
from .ledger import ProvisioningLedger
from .models import (
    LIFECYCLE_KINDS,
    LifecycleOperation,
    LifecycleResult,
    OperationType,
    ResourceStatus,
    resolve_references,
)
from .retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from .context import SessionContext
    from .protocols import CloudProvider

logger = logging.getLogger(__name__)


def with_capacity(properties: Dict[str, Any], capacity: int) -> Dict[str, Any]:
    """Return a deep copy of properties with sku.capacity set to capacity."""
    updated = copy.deepcopy(properties)
    sku = updated.setdefault("sku", {})
    sku["capacity"] = capacity
    return updated


class LifecycleController:
    """
    Runs stop/start/restart/resize against Ready ledger entries.

    Example Usage:
        controller = LifecycleController(provider)
        await controller.operate(ledger, "vmss", LifecycleOperation.parse("stop"))
        await controller.operate(ledger, "vmss", LifecycleOperation.parse("resize:6"))
    """

    def __init__(self, provider: 'CloudProvider', retry_policy: Optional[RetryPolicy] = None):
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self._locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_context(cls, context: 'SessionContext') -> "LifecycleController":
        return cls(provider=context.provider, retry_policy=context.config.retry_policy())

    async def operate(
        self,
        ledger: ProvisioningLedger,
        resource_id: str,
        op: LifecycleOperation
    ) -> LifecycleResult:
        """
        Run op against resource_id and wait for the terminal state.

        Raises:
            UnknownResource: resource_id is not in the ledger
            NotReady: the resource is not Ready
            UnsupportedOperation: the kind has no lifecycle operations
            ProviderError: the provider call failed
        """
        lock = self._locks.setdefault(resource_id, asyncio.Lock())
        async with lock:
            if resource_id not in ledger:
                raise UnknownResource(resource_id)

            entry = ledger.get(resource_id)
            kind = entry.spec.kind
            if entry.status is not ResourceStatus.READY:
                raise NotReady(resource_id, kind.value, entry.status.value)
            if kind not in LIFECYCLE_KINDS:
                raise UnsupportedOperation(str(op), resource_id, kind.value)

            label = f"{kind.value} '{resource_id}'"
            handle = entry.handle

            if op.type is OperationType.RESIZE:
                properties = with_capacity(entry.properties, op.capacity)
                handles = ledger.handles()
                for dep in sorted(entry.spec.depends_on):
                    if dep not in handles:
                        raise NotReady(dep, ledger.get(dep).spec.kind.value, ledger.status(dep).value)
                spec = entry.spec.with_properties(resolve_references(properties, handles))
                logger.info(f"Resizing {label} to capacity {op.capacity}...")
                handle = await call_with_retry(
                    self.retry_policy, self.provider.resize, spec, handle,
                    description=f"resize {label}",
                )
                await ledger.update_properties(resource_id, properties)
                logger.info(f"✓ Resized {label} to capacity {op.capacity}")
            else:
                action = {
                    OperationType.STOP: self.provider.power_off,
                    OperationType.START: self.provider.start,
                    OperationType.RESTART: self.provider.restart,
                }[op.type]
                logger.info(f"Running '{op}' on {label}...")
                await call_with_retry(
                    self.retry_policy, action, kind, handle,
                    description=f"{op} {label}",
                )
                logger.info(f"✓ '{op}' completed on {label}")

            return LifecycleResult(
                resource_id=resource_id,
                operation=op,
                handle=handle,
                properties=copy.deepcopy(ledger.get(resource_id).properties),
            )
