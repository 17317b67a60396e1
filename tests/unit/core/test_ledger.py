"""
Tests for the provisioning ledger and its JSON persistence.
"""

import json

import pytest

from provisioner.core.exceptions import ConfigurationError
from provisioner.core.ledger import LedgerEntry, ProvisioningLedger
from provisioner.core.models import ErrorKind, ResourceStatus


class TestTransitions:

    @pytest.mark.asyncio
    async def test_register_then_ready(self, specs):
        ledger = ProvisioningLedger()
        ledger.register(specs[0])

        assert ledger.status("rg") is ResourceStatus.PENDING

        await ledger.mark_in_progress("rg")
        await ledger.mark_ready("rg", "/subscriptions/x/resourceGroups/rg")

        entry = ledger.get("rg")
        assert entry.status is ResourceStatus.READY
        assert entry.created
        assert ledger.handles() == {"rg": "/subscriptions/x/resourceGroups/rg"}

    @pytest.mark.asyncio
    async def test_ready_requires_ready_dependencies(self, specs):
        ledger = ProvisioningLedger()
        for spec in specs:
            ledger.register(spec)

        with pytest.raises(RuntimeError, match="not Ready"):
            await ledger.mark_ready("vnet", "handle")

    @pytest.mark.asyncio
    async def test_failed_entry_keeps_error(self, specs):
        ledger = ProvisioningLedger()
        ledger.register(specs[0])

        await ledger.mark_failed("rg", ErrorKind.PROVIDER_ERROR, "boom")

        entry = ledger.get("rg")
        assert entry.status is ResourceStatus.FAILED
        assert entry.last_error is ErrorKind.PROVIDER_ERROR
        assert entry.error_message == "boom"
        assert not entry.created
        assert not entry.uncertain

    @pytest.mark.asyncio
    async def test_deleted_clears_handle(self, specs):
        ledger = ProvisioningLedger()
        ledger.register(specs[0])
        await ledger.mark_ready("rg", "h")

        await ledger.mark_deleted("rg")

        assert ledger.status("rg") is ResourceStatus.DELETED
        assert ledger.get("rg").handle is None
        assert not ledger.get("rg").created

    @pytest.mark.asyncio
    async def test_reregister_keeps_handle_of_created_resource(self, specs):
        ledger = ProvisioningLedger()
        ledger.register(specs[0])
        await ledger.mark_ready("rg", "h")

        ledger.register(specs[0])

        assert ledger.status("rg") is ResourceStatus.PENDING
        assert ledger.get("rg").handle == "h"

    def test_in_progress_without_handle_is_uncertain(self, specs):
        entry = LedgerEntry(spec=specs[0], status=ResourceStatus.IN_PROGRESS)

        assert entry.uncertain

    @pytest.mark.asyncio
    async def test_unknown_id_raises_key_error(self):
        with pytest.raises(KeyError):
            await ProvisioningLedger().mark_in_progress("ghost")

    @pytest.mark.asyncio
    async def test_update_properties_does_not_touch_spec(self, specs):
        ledger = ProvisioningLedger()
        ledger.register(specs[4])

        await ledger.update_properties("vmss", {"sku": {"capacity": 6}})

        assert ledger.get("vmss").properties == {"sku": {"capacity": 6}}
        assert ledger.get("vmss").spec.properties["sku"]["capacity"] == 3


class TestPersistence:

    @pytest.mark.asyncio
    async def test_round_trip_is_lossless(self, specs):
        ledger = ProvisioningLedger()
        for spec in specs:
            ledger.register(spec)
        await ledger.mark_ready("rg", "/subscriptions/x/resourceGroups/rg")
        await ledger.mark_failed("vnet", ErrorKind.PROVISIONING_FAILED, "throttled")
        await ledger.update_properties("vmss", {"sku": {"capacity": 6}})

        restored = ProvisioningLedger.from_dict(json.loads(json.dumps(ledger.to_dict())))

        assert restored.to_dict() == ledger.to_dict()
        assert restored.get("vnet").last_error is ErrorKind.PROVISIONING_FAILED
        assert restored.get("vmss").spec == ledger.get("vmss").spec

    @pytest.mark.asyncio
    async def test_every_write_is_persisted(self, tmp_path, specs):
        state_file = tmp_path / "state.json"
        ledger = ProvisioningLedger(state_file=state_file)
        ledger.register(specs[0])
        await ledger.mark_ready("rg", "h")

        data = json.loads(state_file.read_text())

        assert data["version"] == 1
        assert data["entries"]["rg"]["status"] == "Ready"
        assert data["entries"]["rg"]["handle"] == "h"
        assert not (tmp_path / "state.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_load_resumes_persisting(self, tmp_path, specs):
        state_file = tmp_path / "state.json"
        ledger = ProvisioningLedger(state_file=state_file)
        ledger.register(specs[0])
        await ledger.mark_ready("rg", "h")

        loaded = ProvisioningLedger.load(state_file)
        await loaded.mark_deleted("rg")

        assert json.loads(state_file.read_text())["entries"]["rg"]["status"] == "Deleted"

    def test_load_missing_file_gives_empty_ledger(self, tmp_path):
        ledger = ProvisioningLedger.load(tmp_path / "nope.json")

        assert len(ledger) == 0
        assert ledger.state_file == tmp_path / "nope.json"

    def test_load_corrupt_file_raises(self, tmp_path):
        state_file = tmp_path / "state.json"
        state_file.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Corrupted"):
            ProvisioningLedger.load(state_file)

    def test_unsupported_version_raises(self):
        with pytest.raises(ConfigurationError, match="version"):
            ProvisioningLedger.from_dict({"version": 99, "entries": {}})

    def test_save_without_target_raises(self):
        with pytest.raises(ValueError):
            ProvisioningLedger().save()
