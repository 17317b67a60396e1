"""
Value types shared by every component of the orchestrator.

Contents:
    - ResourceKind / ResourceStatus / ErrorKind enums
    - ResourceSpec: immutable description of one cloud resource
    - LifecycleOperation: stop/start/restart/resize request
    - ProvisioningResult / TeardownResult / SessionResult / LifecycleResult
    - ${id} reference helpers used to wire resources to each other

References:
    Any string inside ResourceSpec.properties may embed ``${other-id}``.
    Before the create call the engine replaces the placeholder with the
    provider handle of ``other-id``. For Azure this is the ARM id, so a
    scale set can point at ``${vnet}/subnets/Front-end``.
"""

import copy
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from .exceptions import ConfigurationError, ProvisioningFailed


REFERENCE_PATTERN = re.compile(r"\$\{([A-Za-z0-9_.-]+)\}")


class ResourceKind(str, Enum):
    """Kinds of cloud resources the orchestrator knows how to manage."""

    RESOURCE_GROUP = "ResourceGroup"
    NETWORK = "Network"
    PUBLIC_IP = "PublicIP"
    LOAD_BALANCER = "LoadBalancer"
    SCALE_SET = "ScaleSet"


class ResourceStatus(str, Enum):
    """Provisioning status of a ledger entry."""

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    READY = "Ready"
    FAILED = "Failed"
    DELETED = "Deleted"


class ErrorKind(str, Enum):
    """Reason recorded on a ledger entry that ended Failed."""

    PROVISIONING_FAILED = "ProvisioningFailed"
    PROVIDER_ERROR = "ProviderError"
    UPSTREAM_DEPENDENCY_FAILED = "UpstreamDependencyFailed"
    CANCELLED = "Cancelled"
    INTERRUPTED = "Interrupted"
    DELETE_FAILED = "DeleteFailed"


# Kinds that expose power and capacity operations
LIFECYCLE_KINDS = frozenset({ResourceKind.SCALE_SET})


def find_references(value: Any) -> set[str]:
    """Return every id referenced via ${id} anywhere inside value."""
    found: set[str] = set()
    if isinstance(value, str):
        found.update(REFERENCE_PATTERN.findall(value))
    elif isinstance(value, Mapping):
        for item in value.values():
            found |= find_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            found |= find_references(item)
    return found


def resolve_references(value: Any, handles: Mapping[str, str]) -> Any:
    """
    Return a copy of value with every ${id} replaced by handles[id].

    Raises:
        KeyError: If a referenced id has no handle
    """
    if isinstance(value, str):
        return REFERENCE_PATTERN.sub(lambda m: handles[m.group(1)], value)
    if isinstance(value, Mapping):
        return {key: resolve_references(item, handles) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_references(item, handles) for item in value]
    return value


@dataclass(frozen=True)
class ResourceSpec:
    """
    Typed description of a single cloud resource.

    Immutable once created: properties are deep-copied on construction
    and depends_on is normalized to a frozenset.

    Attributes:
        id: Unique id; also used as the resource name at the provider
        kind: ResourceKind of the resource
        region: Provider region (e.g. "eastus")
        properties: Provider-specific body, opaque to the orchestrator
        depends_on: Ids that must be Ready before this resource is created
    """

    id: str
    kind: ResourceKind
    region: str
    properties: Dict[str, Any] = field(default_factory=dict, hash=False, compare=True)
    depends_on: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if not self.id:
            raise ConfigurationError("Resource id must not be empty")
        object.__setattr__(self, "kind", ResourceKind(self.kind))
        object.__setattr__(self, "properties", copy.deepcopy(dict(self.properties)))
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))

    def references(self) -> set[str]:
        """Ids referenced via ${id} placeholders in properties."""
        return find_references(self.properties)

    def with_properties(self, properties: Mapping[str, Any]) -> "ResourceSpec":
        """Return a copy of this spec with different properties."""
        return ResourceSpec(
            id=self.id,
            kind=self.kind,
            region=self.region,
            properties=properties,
            depends_on=self.depends_on,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "region": self.region,
            "properties": copy.deepcopy(self.properties),
            "depends_on": sorted(self.depends_on),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceSpec":
        """Create from a dictionary produced by to_dict()."""
        return cls(
            id=data["id"],
            kind=ResourceKind(data["kind"]),
            region=data["region"],
            properties=data.get("properties", {}),
            depends_on=frozenset(data.get("depends_on", ())),
        )


class OperationType(str, Enum):
    """Lifecycle operations available on Ready resources."""

    STOP = "stop"
    START = "start"
    RESTART = "restart"
    RESIZE = "resize"


@dataclass(frozen=True)
class LifecycleOperation:
    """
    A lifecycle request against a provisioned resource.

    Example:
        >>> LifecycleOperation.parse("resize:6")
        LifecycleOperation(type=<OperationType.RESIZE: 'resize'>, capacity=6)
    """

    type: OperationType
    capacity: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "type", OperationType(self.type))
        if self.type is OperationType.RESIZE:
            if self.capacity is None or self.capacity < 0:
                raise ConfigurationError(
                    f"Resize requires a non-negative capacity, got {self.capacity!r}"
                )
        elif self.capacity is not None:
            raise ConfigurationError(f"Operation '{self.type.value}' takes no capacity")

    @classmethod
    def parse(cls, text: str) -> "LifecycleOperation":
        """Parse the CLI form: stop | start | restart | resize:N."""
        name, _, argument = text.strip().lower().partition(":")
        try:
            op_type = OperationType(name)
        except ValueError:
            raise ConfigurationError(
                f"Unknown operation '{text}'. Valid: stop, start, restart, resize:N"
            )
        if op_type is OperationType.RESIZE:
            if not argument.isdigit():
                raise ConfigurationError(f"Resize needs a capacity, e.g. 'resize:6', got '{text}'")
            return cls(op_type, int(argument))
        if argument:
            raise ConfigurationError(f"Operation '{name}' takes no argument")
        return cls(op_type)

    def __str__(self) -> str:
        if self.type is OperationType.RESIZE:
            return f"resize:{self.capacity}"
        return self.type.value


def _sorted(ids: Iterable[str]) -> list[str]:
    return sorted(ids)


@dataclass(frozen=True)
class ProvisioningResult:
    """Outcome of a provisioning run."""

    succeeded: FrozenSet[str] = frozenset()
    failed: FrozenSet[str] = frozenset()

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failure(self) -> None:
        """Raise ProvisioningFailed if any requested resource failed."""
        if self.failed:
            raise ProvisioningFailed(self)

    def to_dict(self) -> Dict[str, Any]:
        return {"succeeded": _sorted(self.succeeded), "failed": _sorted(self.failed)}


@dataclass(frozen=True)
class TeardownResult:
    """Outcome of a teardown run."""

    deleted: FrozenSet[str] = frozenset()
    residual: FrozenSet[str] = frozenset()

    @property
    def ok(self) -> bool:
        return not self.residual

    def to_dict(self) -> Dict[str, Any]:
        return {"deleted": _sorted(self.deleted), "residual": _sorted(self.residual)}


@dataclass(frozen=True)
class SessionResult:
    """Aggregate session outcome: never a single pass/fail flag."""

    succeeded: FrozenSet[str] = frozenset()
    failed: FrozenSet[str] = frozenset()
    residual: FrozenSet[str] = frozenset()

    @property
    def ok(self) -> bool:
        return not self.failed and not self.residual

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": _sorted(self.succeeded),
            "failed": _sorted(self.failed),
            "residual": _sorted(self.residual),
        }


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of a single lifecycle operation."""

    resource_id: str
    operation: LifecycleOperation
    handle: str
    properties: Dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "operation": str(self.operation),
            "handle": self.handle,
            "properties": copy.deepcopy(self.properties),
        }
