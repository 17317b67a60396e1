"""
Tests for the lifecycle controller.
"""

import asyncio

import pytest

from provisioner.core.engine import ProvisioningEngine
from provisioner.core.exceptions import (
    ConfigurationError,
    NotReady,
    ProviderError,
    UnknownResource,
    UnsupportedOperation,
)
from provisioner.core.graph import DependencyGraph
from provisioner.core.ledger import ProvisioningLedger
from provisioner.core.lifecycle import LifecycleController, with_capacity
from provisioner.core.models import LifecycleOperation, OperationType


@pytest.fixture
def controller(provider, fast_retry):
    return LifecycleController(provider, fast_retry)


async def _provisioned_ledger(provider, specs, retry_policy):
    ledger = ProvisioningLedger()
    engine = ProvisioningEngine(provider, retry_policy)
    await engine.provision(DependencyGraph.build(specs), specs, ledger)
    return ledger


class TestPowerOperations:

    @pytest.mark.asyncio
    async def test_stop_then_start(self, provider, specs, fast_retry, controller):
        ledger = await _provisioned_ledger(provider, specs, fast_retry)
        handle = ledger.get("vmss").handle

        await controller.operate(ledger, "vmss", LifecycleOperation.parse("stop"))
        assert provider.resources[handle]["power_state"] == "stopped"

        result = await controller.operate(ledger, "vmss", LifecycleOperation.parse("start"))
        assert provider.resources[handle]["power_state"] == "running"
        assert result.handle == handle
        assert str(result.operation) == "start"

    @pytest.mark.asyncio
    async def test_restart(self, provider, specs, fast_retry, controller):
        ledger = await _provisioned_ledger(provider, specs, fast_retry)

        await controller.operate(ledger, "vmss", LifecycleOperation(OperationType.RESTART))

        assert provider.call_count("restart", "vmss") == 1


class TestResize:

    @pytest.mark.asyncio
    async def test_resize_updates_capacity_in_ledger_and_provider(self, provider, specs, fast_retry, controller):
        ledger = await _provisioned_ledger(provider, specs, fast_retry)

        result = await controller.operate(ledger, "vmss", LifecycleOperation.parse("resize:6"))

        assert result.properties["sku"]["capacity"] == 6
        assert ledger.get("vmss").properties["sku"]["capacity"] == 6
        live = provider.resources[ledger.get("vmss").handle]["properties"]
        assert live["sku"]["capacity"] == 6
        # References are resolved for the provider, kept symbolic in the ledger
        assert live["subnet"]["id"].startswith("/subscriptions/")
        assert ledger.get("vmss").properties["subnet"]["id"] == "${vnet}/subnets/Front-end"

    @pytest.mark.asyncio
    async def test_concurrent_calls_on_one_resource_are_serialized(self, provider, specs, fast_retry, controller):
        ledger = await _provisioned_ledger(provider, specs, fast_retry)
        in_flight = 0
        peak = 0
        original = provider.resize

        async def tracking_resize(spec, handle):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return await original(spec, handle)

        provider.resize = tracking_resize

        await asyncio.gather(
            controller.operate(ledger, "vmss", LifecycleOperation.parse("resize:4")),
            controller.operate(ledger, "vmss", LifecycleOperation.parse("resize:8")),
        )

        assert peak == 1
        assert provider.call_count("resize", "vmss") == 2
        assert ledger.get("vmss").properties["sku"]["capacity"] == 8

    def test_with_capacity_copies(self):
        original = {"sku": {"name": "Standard_DS3_v2", "capacity": 3}}

        updated = with_capacity(original, 6)

        assert updated["sku"] == {"name": "Standard_DS3_v2", "capacity": 6}
        assert original["sku"]["capacity"] == 3


class TestPreconditions:

    @pytest.mark.asyncio
    async def test_unknown_resource(self, controller):
        with pytest.raises(UnknownResource):
            await controller.operate(ProvisioningLedger(), "ghost", LifecycleOperation.parse("stop"))

    @pytest.mark.asyncio
    async def test_not_ready_resource(self, provider, specs, fast_retry, controller):
        provider.configure_faults(fail_create={"vnet"})
        ledger = await _provisioned_ledger(provider, specs, fast_retry)

        with pytest.raises(NotReady) as exc_info:
            await controller.operate(ledger, "vmss", LifecycleOperation.parse("stop"))

        assert exc_info.value.status == "Failed"
        assert provider.call_count("power_off") == 0

    @pytest.mark.asyncio
    async def test_unsupported_kind(self, provider, specs, fast_retry, controller):
        ledger = await _provisioned_ledger(provider, specs, fast_retry)

        with pytest.raises(UnsupportedOperation):
            await controller.operate(ledger, "vnet", LifecycleOperation.parse("stop"))

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self, provider, specs, fast_retry, controller):
        ledger = await _provisioned_ledger(provider, specs, fast_retry)
        provider.resources.clear()

        with pytest.raises(ProviderError, match="not found"):
            await controller.operate(ledger, "vmss", LifecycleOperation.parse("restart"))


class TestOperationParsing:

    @pytest.mark.parametrize("text, expected", [
        ("stop", LifecycleOperation(OperationType.STOP)),
        ("START", LifecycleOperation(OperationType.START)),
        ("resize:6", LifecycleOperation(OperationType.RESIZE, 6)),
        ("resize:0", LifecycleOperation(OperationType.RESIZE, 0)),
    ])
    def test_valid(self, text, expected):
        assert LifecycleOperation.parse(text) == expected

    @pytest.mark.parametrize("text", ["explode", "resize", "resize:-1", "resize:x", "stop:3"])
    def test_invalid(self, text):
        with pytest.raises(ConfigurationError):
            LifecycleOperation.parse(text)

    def test_capacity_only_for_resize(self):
        with pytest.raises(ConfigurationError):
            LifecycleOperation(OperationType.STOP, 3)
