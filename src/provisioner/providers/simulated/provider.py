"""
In-memory CloudProvider for dry runs and tests.

Behaves like the Azure provider without touching a cloud: handles are
deterministic ARM-style ids, resources live in a dictionary, and every
call is appended to a call log so tests can assert ordering.

Fault injection (constructor arguments or credentials["faults"]):
    - fail_create: ids whose create raises ProviderError
    - fatal_create: ids whose create raises a session-fatal ProviderError
    - transient_create: {id: n} - the first n creates raise TransientProviderError
    - fail_delete: ids whose delete raises ProviderError
    - transient_delete: {id: n} - the first n deletes raise TransientProviderError
    - latency_seconds: delay applied to every call

Example config_credentials_simulated.json:
    {"faults": {"transient_create": {"lb": 2}, "latency_seconds": 0.1}}
"""

import asyncio
import copy
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ...core.exceptions import ProviderError, TransientProviderError
from ...core.models import ResourceKind, ResourceSpec
from ..azure.naming import ARM_RESOURCE_TYPES, resource_group_of, split_handle
from ..base import BaseProvider

logger = logging.getLogger(__name__)

SIMULATED_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"

# Used for specs that carry no resource_group property
DEFAULT_RESOURCE_GROUP = "simulated-rg"


class SimulatedProvider(BaseProvider):
    """
    CloudProvider that keeps resources in memory.

    Attributes:
        resources: Live resources by handle
        calls: Log of (operation, resource name) in call order
    """

    name: str = "simulated"

    def __init__(
        self,
        fail_create: Iterable[str] = (),
        fatal_create: Iterable[str] = (),
        transient_create: Optional[Mapping[str, int]] = None,
        fail_delete: Iterable[str] = (),
        transient_delete: Optional[Mapping[str, int]] = None,
        latency_seconds: float = 0.0
    ):
        super().__init__()
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.configure_faults(
            fail_create=fail_create,
            fatal_create=fatal_create,
            transient_create=transient_create,
            fail_delete=fail_delete,
            transient_delete=transient_delete,
            latency_seconds=latency_seconds,
        )

    def configure_faults(
        self,
        fail_create: Iterable[str] = (),
        fatal_create: Iterable[str] = (),
        transient_create: Optional[Mapping[str, int]] = None,
        fail_delete: Iterable[str] = (),
        transient_delete: Optional[Mapping[str, int]] = None,
        latency_seconds: float = 0.0
    ) -> None:
        self.fail_create = set(fail_create)
        self.fatal_create = set(fatal_create)
        self.transient_create = dict(transient_create or {})
        self.fail_delete = set(fail_delete)
        self.transient_delete = dict(transient_delete or {})
        self.latency_seconds = float(latency_seconds)

    def initialize_clients(self, credentials: dict, region: str) -> None:
        self._region = region
        faults = credentials.get("faults")
        if faults:
            self.configure_faults(**faults)
        self._initialized = True

    # ==========================================
    # Helpers
    # ==========================================

    def handle_for(self, spec: ResourceSpec) -> str:
        """Deterministic ARM-style id for a spec."""
        prefix = f"/subscriptions/{SIMULATED_SUBSCRIPTION_ID}/resourceGroups"
        if spec.kind is ResourceKind.RESOURCE_GROUP:
            return f"{prefix}/{spec.id}"
        group = resource_group_of(spec.properties.get("resource_group") or DEFAULT_RESOURCE_GROUP)
        return f"{prefix}/{group}/providers/{ARM_RESOURCE_TYPES[spec.kind]}/{spec.id}"

    def call_count(self, operation: str, resource_id: Optional[str] = None) -> int:
        """Number of logged calls of operation (optionally for one resource)."""
        return sum(
            1 for op, rid in self.calls
            if op == operation and (resource_id is None or rid == resource_id)
        )

    def exists(self, resource_id: str) -> bool:
        return any(item["id"] == resource_id for item in self.resources.values())

    async def _simulate(self, operation: str, resource_id: str) -> None:
        self.calls.append((operation, resource_id))
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

    @staticmethod
    def _consume(remaining_faults: Dict[str, int], resource_id: str) -> bool:
        """Use up one injected transient failure; True if one was left."""
        remaining = remaining_faults.get(resource_id, 0)
        if remaining > 0:
            remaining_faults[resource_id] = remaining - 1
            return True
        return False

    def _require(self, kind: ResourceKind, handle: str, operation: str) -> Dict[str, Any]:
        resource = self.resources.get(handle)
        if resource is None:
            _, name = split_handle(handle)
            raise ProviderError(
                "Resource not found", resource_id=name, kind=kind.value, operation=operation
            )
        if kind is not ResourceKind.SCALE_SET:
            raise ProviderError(
                f"{kind.value} does not support {operation}",
                resource_id=resource["id"], kind=kind.value, operation=operation
            )
        return resource

    # ==========================================
    # CloudProvider operations
    # ==========================================

    async def create_or_update(self, spec: ResourceSpec) -> str:
        await self._simulate("create_or_update", spec.id)

        if spec.id in self.fatal_create:
            raise ProviderError(
                "Credentials rejected", resource_id=spec.id, kind=spec.kind.value,
                operation="create_or_update", session_fatal=True
            )
        if spec.id in self.fail_create:
            raise ProviderError(
                "Injected failure", resource_id=spec.id, kind=spec.kind.value,
                operation="create_or_update"
            )
        if self._consume(self.transient_create, spec.id):
            raise TransientProviderError(
                "Injected throttling (429)", resource_id=spec.id, kind=spec.kind.value,
                operation="create_or_update"
            )

        handle = self.handle_for(spec)
        self._log_resource_creation(spec.kind.value, spec.id)
        existing = self.resources.get(handle, {})
        self.resources[handle] = {
            "id": spec.id,
            "kind": spec.kind,
            "region": spec.region,
            "properties": copy.deepcopy(spec.properties),
            "power_state": existing.get("power_state", "running"),
        }
        return handle

    async def delete(self, kind: ResourceKind, handle: str) -> None:
        _, name = split_handle(handle)
        await self._simulate("delete", name)

        if name in self.fail_delete:
            raise ProviderError(
                "Injected failure", resource_id=name, kind=kind.value, operation="delete"
            )
        if self._consume(self.transient_delete, name):
            raise TransientProviderError(
                "Injected throttling (429)", resource_id=name, kind=kind.value, operation="delete"
            )

        if self.resources.pop(handle, None) is None:
            self._log_resource_not_found(kind.value, name)
        else:
            self._log_resource_deletion(kind.value, name)

    async def power_off(self, kind: ResourceKind, handle: str) -> None:
        resource = self._require(kind, handle, "power_off")
        await self._simulate("power_off", resource["id"])
        resource["power_state"] = "stopped"

    async def start(self, kind: ResourceKind, handle: str) -> None:
        resource = self._require(kind, handle, "start")
        await self._simulate("start", resource["id"])
        resource["power_state"] = "running"

    async def restart(self, kind: ResourceKind, handle: str) -> None:
        resource = self._require(kind, handle, "restart")
        await self._simulate("restart", resource["id"])
        resource["power_state"] = "running"

    async def resize(self, spec: ResourceSpec, handle: str) -> str:
        resource = self._require(spec.kind, handle, "resize")
        await self._simulate("resize", spec.id)
        resource["properties"] = copy.deepcopy(spec.properties)
        return handle
