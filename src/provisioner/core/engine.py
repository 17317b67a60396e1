"""
Provisioning engine: layered DAG scheduler.

Walks the dependency graph layer by layer. All members of a layer are
created concurrently (bounded by max_concurrency); the next layer starts
only after every member of the current one has resolved to Ready or
Failed.

Per-resource outcome:
    - Ready: create_or_update returned a handle
    - Failed/ProvisioningFailed: transient errors exhausted the retry bound
    - Failed/ProviderError: non-transient provider error
    - Failed/UpstreamDependencyFailed: a (transitive) dependency failed,
      no provider call was issued
    - Failed/Cancelled: session cancelled (or aborted by a session-fatal
      provider error in an earlier layer) before the resource started
    - Failed/Interrupted: session cancelled while the call was in flight

A session-fatal provider error (e.g. rejected credentials) lets the rest
of its layer finish and skips every later layer. Only the external cancel
event interrupts calls that are already in flight.
"""

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Optional, TYPE_CHECKING

from .exceptions import ConfigurationError, ProviderError, TransientProviderError
from .graph import DependencyGraph
from .ledger import ProvisioningLedger
from .models import (
    ErrorKind,
    ProvisioningResult,
    ResourceSpec,
    ResourceStatus,
    resolve_references,
)
from .retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from .context import SessionContext
    from .protocols import CloudProvider

logger = logging.getLogger(__name__)


class OperationInterrupted(Exception):
    """Raised internally when the cancel event fires during a provider wait."""


async def wait_unless_cancelled(awaitable: Awaitable[Any], cancel_event: asyncio.Event) -> Any:
    """
    Await awaitable, aborting it as soon as cancel_event is set.

    Raises:
        OperationInterrupted: If the cancel event won the race
    """
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task.cancelled():
        raise OperationInterrupted()
    return task.result()


class ProvisioningEngine:
    """
    Issues create-or-update operations in dependency order.

    Example Usage:
        engine = ProvisioningEngine(provider, RetryPolicy(max_attempts=3))
        graph = DependencyGraph.build(specs)
        result = await engine.provision(graph, specs, ledger)
        result.raise_for_failure()
    """

    def __init__(
        self,
        provider: 'CloudProvider',
        retry_policy: Optional[RetryPolicy] = None,
        max_concurrency: int = 8,
        cancel_event: Optional[asyncio.Event] = None
    ):
        if max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_concurrency = max_concurrency
        self.cancel_event = cancel_event if cancel_event is not None else asyncio.Event()
        self._aborted = False

    @classmethod
    def from_context(cls, context: 'SessionContext') -> "ProvisioningEngine":
        return cls(
            provider=context.provider,
            retry_policy=context.config.retry_policy(),
            max_concurrency=context.config.max_concurrency,
            cancel_event=context.cancel_event,
        )

    async def provision(
        self,
        graph: DependencyGraph,
        specs: Iterable[ResourceSpec],
        ledger: ProvisioningLedger
    ) -> ProvisioningResult:
        """
        Provision every spec in graph order and report the outcome.

        Never raises for per-resource failures; inspect the result or call
        result.raise_for_failure().
        """
        specs_by_id = {spec.id: spec for spec in specs}
        if set(specs_by_id) != {rid for layer in graph.layers for rid in layer}:
            raise ConfigurationError("Resource specs do not match the dependency graph")

        for resource_id in sorted(specs_by_id):
            ledger.register(specs_by_id[resource_id])

        self._aborted = False
        semaphore = asyncio.Semaphore(self.max_concurrency)
        total = len(graph.layers)

        for index, layer in enumerate(graph.layers, start=1):
            logger.info(f"Provisioning layer {index}/{total}: {', '.join(layer)}")
            await asyncio.gather(*(
                self._provision_one(graph, specs_by_id[resource_id], ledger, semaphore)
                for resource_id in layer
            ))

        succeeded = ledger.ids_with_status(ResourceStatus.READY) & specs_by_id.keys()
        failed = frozenset(specs_by_id) - succeeded
        result = ProvisioningResult(succeeded=frozenset(succeeded), failed=failed)

        if result.ok:
            logger.info(f"✓ Provisioned {len(succeeded)} resources")
        else:
            logger.error(
                f"Provisioning finished with failures: failed={sorted(failed)}, "
                f"succeeded={sorted(succeeded)}"
            )
        return result

    async def _provision_one(
        self,
        graph: DependencyGraph,
        spec: ResourceSpec,
        ledger: ProvisioningLedger,
        semaphore: asyncio.Semaphore
    ) -> None:
        if ledger.status(spec.id) is ResourceStatus.FAILED:
            # Already skipped because an upstream resource failed
            return

        if await self._skip_if_stopped(spec, ledger):
            return

        not_ready = sorted(
            dep for dep in spec.depends_on if ledger.status(dep) is not ResourceStatus.READY
        )
        if not_ready:
            await ledger.mark_failed(
                spec.id,
                ErrorKind.UPSTREAM_DEPENDENCY_FAILED,
                f"Dependencies not Ready: {not_ready}"
            )
            return

        async with semaphore:
            if await self._skip_if_stopped(spec, ledger):
                return

            await ledger.mark_in_progress(spec.id)
            handles = {dep: ledger.get(dep).handle for dep in spec.depends_on}
            resolved = spec.with_properties(resolve_references(spec.properties, handles))
            label = f"{spec.kind.value} '{spec.id}'"
            logger.info(f"Creating {label} in {spec.region}...")

            try:
                handle = await wait_unless_cancelled(
                    call_with_retry(
                        self.retry_policy,
                        self.provider.create_or_update,
                        resolved,
                        description=f"create {label}",
                    ),
                    self.cancel_event,
                )
            except OperationInterrupted:
                logger.warning(f"Interrupted while creating {label}; provider state unknown")
                await ledger.mark_failed(
                    spec.id, ErrorKind.INTERRUPTED, "Cancelled while waiting for provider"
                )
                return
            except asyncio.CancelledError:
                await ledger.mark_failed(
                    spec.id, ErrorKind.INTERRUPTED, "Task cancelled while waiting for provider"
                )
                raise
            except TransientProviderError as e:
                logger.error(
                    f"Failed to create {label} after {self.retry_policy.max_attempts} attempts: {e}"
                )
                await ledger.mark_failed(spec.id, ErrorKind.PROVISIONING_FAILED, str(e))
                await self._fail_dependents(graph, ledger, spec.id)
                return
            except Exception as e:
                logger.error(f"Failed to create {label}: {type(e).__name__}: {e}")
                await ledger.mark_failed(spec.id, ErrorKind.PROVIDER_ERROR, str(e))
                await self._fail_dependents(graph, ledger, spec.id)
                if isinstance(e, ProviderError) and e.session_fatal:
                    logger.error("Session-level provider failure, aborting remaining layers")
                    self._aborted = True
                return

            await ledger.mark_ready(spec.id, handle)
            logger.info(f"✓ {label} ready: {handle}")

    async def _skip_if_stopped(self, spec: ResourceSpec, ledger: ProvisioningLedger) -> bool:
        """Mark spec Cancelled if the session was cancelled or aborted; True if skipped."""
        if self.cancel_event.is_set():
            message = "Session cancelled before start"
        elif self._aborted:
            message = "Session aborted by a session-fatal provider error"
        else:
            return False
        await ledger.mark_failed(spec.id, ErrorKind.CANCELLED, message)
        return True

    async def _fail_dependents(
        self,
        graph: DependencyGraph,
        ledger: ProvisioningLedger,
        resource_id: str
    ) -> None:
        for dependent in sorted(graph.descendants(resource_id)):
            if ledger.status(dependent) is ResourceStatus.PENDING:
                logger.warning(f"  Skipping '{dependent}': upstream dependency '{resource_id}' failed")
                await ledger.mark_failed(
                    dependent,
                    ErrorKind.UPSTREAM_DEPENDENCY_FAILED,
                    f"Upstream dependency '{resource_id}' failed"
                )
