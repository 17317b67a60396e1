"""
Provisioning ledger: the authoritative per-resource status record.

The ledger is the single shared mutable structure of a session. The
engine, the lifecycle controller (resize) and the teardown coordinator
write to it; every write happens under the entry's own asyncio lock so
concurrent layer workers never lose updates.

When a state file is attached, every mutation is persisted atomically
(temp file + replace) so a crashed session can resume teardown:

    ledger = ProvisioningLedger.load(Path("upload/template/state.json"))
    await TeardownCoordinator(provider).teardown(ledger)
"""

import asyncio
import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .exceptions import ConfigurationError
from .models import ErrorKind, ResourceSpec, ResourceStatus

logger = logging.getLogger(__name__)

LEDGER_FORMAT_VERSION = 1


@dataclass
class LedgerEntry:
    """
    Ledger record for one resource.

    Attributes:
        spec: The ResourceSpec as submitted
        status: Current ResourceStatus
        handle: Provider-assigned identifier once created
        last_error: ErrorKind of the last failure, if any
        error_message: Human-readable detail of the last failure
        properties: The ledger's own copy of the spec properties (resize updates it)
    """

    spec: ResourceSpec
    status: ResourceStatus = ResourceStatus.PENDING
    handle: Optional[str] = None
    last_error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def resource_id(self) -> str:
        return self.spec.id

    @property
    def created(self) -> bool:
        """True if the provider reported the resource as created and it is not deleted yet."""
        return self.handle is not None and self.status is not ResourceStatus.DELETED

    @property
    def uncertain(self) -> bool:
        """True if the resource may exist at the provider but we hold no handle for it."""
        if self.handle is not None:
            return False
        if self.status is ResourceStatus.IN_PROGRESS:
            return True
        return self.status is ResourceStatus.FAILED and self.last_error is ErrorKind.INTERRUPTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spec": self.spec.to_dict(),
            "status": self.status.value,
            "handle": self.handle,
            "last_error": self.last_error.value if self.last_error else None,
            "error_message": self.error_message,
            "properties": copy.deepcopy(self.properties),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            spec=ResourceSpec.from_dict(data["spec"]),
            status=ResourceStatus(data["status"]),
            handle=data.get("handle"),
            last_error=ErrorKind(data["last_error"]) if data.get("last_error") else None,
            error_message=data.get("error_message"),
            properties=copy.deepcopy(data.get("properties", {})),
        )


class ProvisioningLedger:
    """
    Mapping of resource id to LedgerEntry with per-entry write locks.

    Readers (lifecycle controller, reports) use get()/entries(); all
    writers go through the async mark_* / update_properties methods.
    """

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = Path(state_file) if state_file else None
        self._entries: Dict[str, LedgerEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ==========================================
    # Read access
    # ==========================================

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, resource_id: str) -> LedgerEntry:
        """Return the entry for resource_id (KeyError if absent)."""
        return self._entries[resource_id]

    def entries(self) -> list[LedgerEntry]:
        """All entries sorted by id."""
        return [self._entries[key] for key in sorted(self._entries)]

    def specs(self) -> list[ResourceSpec]:
        return [entry.spec for entry in self.entries()]

    def status(self, resource_id: str) -> ResourceStatus:
        return self._entries[resource_id].status

    def ids_with_status(self, status: ResourceStatus) -> frozenset[str]:
        return frozenset(key for key, entry in self._entries.items() if entry.status is status)

    def handles(self) -> Dict[str, str]:
        """Handles of every entry that currently has one."""
        return {
            key: entry.handle for key, entry in self._entries.items()
            if entry.handle is not None
        }

    # ==========================================
    # Writes
    # ==========================================

    def register(self, spec: ResourceSpec) -> LedgerEntry:
        """
        Add a spec as Pending (before any layer worker runs).

        Re-registering an id resets it to Pending but keeps its handle, so a
        second provisioning run over the same ledger stays idempotent.
        """
        existing = self._entries.get(spec.id)
        handle = existing.handle if existing and existing.created else None
        entry = LedgerEntry(spec=spec, handle=handle, properties=copy.deepcopy(spec.properties))
        self._entries[spec.id] = entry
        self._locks.setdefault(spec.id, asyncio.Lock())
        self._persist()
        return entry

    async def mark_in_progress(self, resource_id: str) -> None:
        async with self._lock(resource_id):
            entry = self._entries[resource_id]
            entry.status = ResourceStatus.IN_PROGRESS
            entry.last_error = None
            entry.error_message = None
            self._persist()

    async def mark_ready(self, resource_id: str, handle: str) -> None:
        """
        Record a successful create/update.

        Raises:
            RuntimeError: If a dependency of the resource is not Ready
        """
        async with self._lock(resource_id):
            entry = self._entries[resource_id]
            not_ready = sorted(
                dep for dep in entry.spec.depends_on
                if dep not in self._entries or self._entries[dep].status is not ResourceStatus.READY
            )
            if not_ready:
                raise RuntimeError(
                    f"Cannot mark '{resource_id}' Ready while dependencies are not Ready: {not_ready}"
                )
            entry.status = ResourceStatus.READY
            entry.handle = handle
            entry.last_error = None
            entry.error_message = None
            self._persist()

    async def mark_failed(
        self,
        resource_id: str,
        error: ErrorKind,
        message: Optional[str] = None
    ) -> None:
        async with self._lock(resource_id):
            entry = self._entries[resource_id]
            entry.status = ResourceStatus.FAILED
            entry.last_error = error
            entry.error_message = message
            self._persist()

    async def mark_deleted(self, resource_id: str) -> None:
        async with self._lock(resource_id):
            entry = self._entries[resource_id]
            entry.status = ResourceStatus.DELETED
            entry.handle = None
            entry.last_error = None
            entry.error_message = None
            self._persist()

    async def update_properties(self, resource_id: str, properties: Dict[str, Any]) -> None:
        async with self._lock(resource_id):
            self._entries[resource_id].properties = copy.deepcopy(properties)
            self._persist()

    def _lock(self, resource_id: str) -> asyncio.Lock:
        if resource_id not in self._entries:
            raise KeyError(resource_id)
        return self._locks.setdefault(resource_id, asyncio.Lock())

    # ==========================================
    # Persistence
    # ==========================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": LEDGER_FORMAT_VERSION,
            "entries": {key: entry.to_dict() for key, entry in sorted(self._entries.items())},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], state_file: Optional[Path] = None) -> "ProvisioningLedger":
        version = data.get("version")
        if version != LEDGER_FORMAT_VERSION:
            raise ConfigurationError(f"Unsupported ledger format version: {version!r}")

        ledger = cls()
        for key, raw in data.get("entries", {}).items():
            entry = LedgerEntry.from_dict(raw)
            if entry.resource_id != key:
                raise ConfigurationError(f"Ledger key '{key}' does not match entry id '{entry.resource_id}'")
            ledger._entries[key] = entry
            ledger._locks[key] = asyncio.Lock()
        ledger.state_file = Path(state_file) if state_file else None
        return ledger

    @classmethod
    def load(cls, state_file: Path) -> "ProvisioningLedger":
        """
        Load a persisted ledger and keep persisting to the same file.

        A missing file yields an empty ledger.
        """
        state_file = Path(state_file)
        if not state_file.exists():
            logger.info(f"No ledger state file at {state_file}, starting empty")
            return cls(state_file=state_file)

        try:
            with open(state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Corrupted ledger state file: {e}", config_file=str(state_file))

        ledger = cls.from_dict(data, state_file=state_file)
        logger.info(f"Loaded {len(ledger)} ledger entries from {state_file}")
        return ledger

    def save(self, state_file: Optional[Path] = None) -> None:
        """Write the ledger atomically to state_file (or the attached file)."""
        target = Path(state_file) if state_file else self.state_file
        if target is None:
            raise ValueError("No state file given and none attached to the ledger")

        target.parent.mkdir(parents=True, exist_ok=True)
        temp_file = target.with_suffix(target.suffix + ".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        os.replace(temp_file, target)

    def _persist(self) -> None:
        if self.state_file is not None:
            self.save()
