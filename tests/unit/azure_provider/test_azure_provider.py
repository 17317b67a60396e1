"""
Unit tests for the Azure provider.

SDK clients are replaced with MagicMock/AsyncMock so no Azure calls are made.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
)

from provisioner.core.exceptions import ConfigurationError, ProviderError, TransientProviderError
from provisioner.core.models import ResourceKind, ResourceSpec
from provisioner.providers.azure.provider import AzureProvider, build_request_body, is_transient

RG_ID = "/subscriptions/sub/resourceGroups/demo-rg"
VMSS_ID = f"{RG_ID}/providers/Microsoft.Compute/virtualMachineScaleSets/vmss-demo"


def _poller(result_id=None, error=None):
    poller = MagicMock()
    if error is not None:
        poller.result = AsyncMock(side_effect=error)
    else:
        poller.result = AsyncMock(return_value=MagicMock(id=result_id))
    return poller


def _http_error(status_code):
    error = HttpResponseError(message=f"HTTP {status_code}")
    error.status_code = status_code
    return error


@pytest.fixture
def azure_provider():
    """AzureProvider with mocked resource/network/compute clients."""
    provider = AzureProvider()
    provider._clients = {"resource": MagicMock(), "network": MagicMock(), "compute": MagicMock()}
    provider._region = "eastus"
    provider._initialized = True
    return provider


def _vmss_spec(**properties):
    properties.setdefault("resource_group", RG_ID)
    properties.setdefault("sku", {"name": "Standard_DS3_v2", "capacity": 3})
    return ResourceSpec(id="vmss-demo", kind=ResourceKind.SCALE_SET, region="eastus", properties=properties)


class TestInitialization:

    def test_missing_subscription_raises(self):
        with pytest.raises(ConfigurationError, match="azure_subscription_id"):
            AzureProvider().initialize_clients({}, "eastus")

    def test_service_principal_credential(self):
        credentials = {
            "azure_subscription_id": "sub",
            "azure_tenant_id": "tenant",
            "azure_client_id": "client",
            "azure_client_secret": "secret",
        }
        with patch("azure.identity.aio.ClientSecretCredential") as secret_cred, \
                patch("azure.identity.aio.DefaultAzureCredential") as default_cred, \
                patch("azure.mgmt.resource.resources.aio.ResourceManagementClient") as resource_client, \
                patch("azure.mgmt.network.aio.NetworkManagementClient"), \
                patch("azure.mgmt.compute.aio.ComputeManagementClient"):
            provider = AzureProvider()
            provider.initialize_clients(credentials, "westeurope")

        secret_cred.assert_called_once_with(tenant_id="tenant", client_id="client", client_secret="secret")
        default_cred.assert_not_called()
        resource_client.assert_called_once_with(credential=secret_cred.return_value, subscription_id="sub")
        assert set(provider.clients) == {"resource", "network", "compute"}
        assert provider.region == "westeurope"

    def test_default_credential_without_service_principal(self):
        with patch("azure.identity.aio.DefaultAzureCredential") as default_cred, \
                patch("azure.mgmt.resource.resources.aio.ResourceManagementClient"), \
                patch("azure.mgmt.network.aio.NetworkManagementClient"), \
                patch("azure.mgmt.compute.aio.ComputeManagementClient"):
            AzureProvider().initialize_clients({"azure_subscription_id": "sub"}, "eastus")

        default_cred.assert_called_once_with()

    def test_clients_require_initialization(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = AzureProvider().clients

    @pytest.mark.asyncio
    async def test_close_closes_clients_and_credential(self, azure_provider):
        clients = dict(azure_provider._clients)
        for client in clients.values():
            client.close = AsyncMock()
        credential = MagicMock(close=AsyncMock())
        azure_provider._credential = credential

        await azure_provider.close()

        for client in clients.values():
            client.close.assert_awaited_once()
        credential.close.assert_awaited_once()


class TestCreateOrUpdate:

    @pytest.mark.asyncio
    async def test_resource_group(self, azure_provider):
        groups = azure_provider.clients["resource"].resource_groups
        groups.create_or_update = AsyncMock(return_value=MagicMock(id=RG_ID))
        spec = ResourceSpec(id="demo-rg", kind=ResourceKind.RESOURCE_GROUP, region="eastus")

        handle = await azure_provider.create_or_update(spec)

        assert handle == RG_ID
        groups.create_or_update.assert_awaited_once_with("demo-rg", {"location": "eastus"})

    @pytest.mark.asyncio
    async def test_network_uses_group_from_reference(self, azure_provider):
        networks = azure_provider.clients["network"].virtual_networks
        vnet_id = f"{RG_ID}/providers/Microsoft.Network/virtualNetworks/vnet"
        networks.begin_create_or_update = AsyncMock(return_value=_poller(vnet_id))
        spec = ResourceSpec(
            id="vnet", kind=ResourceKind.NETWORK, region="eastus",
            properties={"resource_group": RG_ID, "address_space": {"address_prefixes": ["10.10.0.0/16"]}},
        )

        handle = await azure_provider.create_or_update(spec)

        assert handle == vnet_id
        networks.begin_create_or_update.assert_awaited_once_with(
            "demo-rg", "vnet",
            {"address_space": {"address_prefixes": ["10.10.0.0/16"]}, "location": "eastus"},
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind, client, group", [
        (ResourceKind.PUBLIC_IP, "network", "public_ip_addresses"),
        (ResourceKind.LOAD_BALANCER, "network", "load_balancers"),
        (ResourceKind.SCALE_SET, "compute", "virtual_machine_scale_sets"),
    ])
    async def test_kind_mapping(self, azure_provider, kind, client, group):
        operations = getattr(azure_provider.clients[client], group)
        operations.begin_create_or_update = AsyncMock(return_value=_poller("id"))
        spec = ResourceSpec(id="res1", kind=kind, region="eastus", properties={"resource_group": "demo-rg"})

        assert await azure_provider.create_or_update(spec) == "id"
        operations.begin_create_or_update.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_name_rejected_before_call(self, azure_provider):
        operations = azure_provider.clients["network"].virtual_networks
        operations.begin_create_or_update = AsyncMock()
        spec = ResourceSpec(id="-bad", kind=ResourceKind.NETWORK, region="eastus",
                            properties={"resource_group": "demo-rg"})

        with pytest.raises(ConfigurationError):
            await azure_provider.create_or_update(spec)
        operations.begin_create_or_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_throttling_is_transient(self, azure_provider):
        operations = azure_provider.clients["compute"].virtual_machine_scale_sets
        operations.begin_create_or_update = AsyncMock(side_effect=_http_error(429))

        with pytest.raises(TransientProviderError) as exc_info:
            await azure_provider.create_or_update(_vmss_spec())

        assert exc_info.value.resource_id == "vmss-demo"
        assert exc_info.value.kind == "ScaleSet"
        assert exc_info.value.operation == "create_or_update"

    @pytest.mark.asyncio
    async def test_bad_request_is_permanent(self, azure_provider):
        operations = azure_provider.clients["compute"].virtual_machine_scale_sets
        operations.begin_create_or_update = AsyncMock(return_value=_poller(error=_http_error(400)))

        with pytest.raises(ProviderError) as exc_info:
            await azure_provider.create_or_update(_vmss_spec())

        assert not isinstance(exc_info.value, TransientProviderError)
        assert not exc_info.value.session_fatal

    @pytest.mark.asyncio
    async def test_authentication_failure_is_session_fatal(self, azure_provider):
        groups = azure_provider.clients["resource"].resource_groups
        groups.create_or_update = AsyncMock(side_effect=ClientAuthenticationError(message="denied"))
        spec = ResourceSpec(id="demo-rg", kind=ResourceKind.RESOURCE_GROUP, region="eastus")

        with pytest.raises(ProviderError) as exc_info:
            await azure_provider.create_or_update(spec)

        assert exc_info.value.session_fatal

    @pytest.mark.asyncio
    async def test_operation_timeout_is_transient(self, azure_provider):
        async def never_finishes():
            await asyncio.sleep(10)

        poller = MagicMock()
        poller.result = never_finishes
        operations = azure_provider.clients["compute"].virtual_machine_scale_sets
        operations.begin_create_or_update = AsyncMock(return_value=poller)
        azure_provider.operation_timeout = 0.01

        with pytest.raises(TransientProviderError, match="Timed out"):
            await azure_provider.create_or_update(_vmss_spec())


class TestDeleteAndLifecycle:

    @pytest.mark.asyncio
    async def test_delete_resource_group(self, azure_provider):
        groups = azure_provider.clients["resource"].resource_groups
        groups.begin_delete = AsyncMock(return_value=_poller())

        await azure_provider.delete(ResourceKind.RESOURCE_GROUP, RG_ID)

        groups.begin_delete.assert_awaited_once_with("demo-rg")

    @pytest.mark.asyncio
    async def test_delete_missing_resource_succeeds(self, azure_provider):
        operations = azure_provider.clients["compute"].virtual_machine_scale_sets
        operations.begin_delete = AsyncMock(side_effect=ResourceNotFoundError(message="gone"))

        await azure_provider.delete(ResourceKind.SCALE_SET, VMSS_ID)

        operations.begin_delete.assert_awaited_once_with("demo-rg", "vmss-demo")

    @pytest.mark.asyncio
    async def test_delete_server_error_is_transient(self, azure_provider):
        operations = azure_provider.clients["compute"].virtual_machine_scale_sets
        operations.begin_delete = AsyncMock(return_value=_poller(error=_http_error(503)))

        with pytest.raises(TransientProviderError):
            await azure_provider.delete(ResourceKind.SCALE_SET, VMSS_ID)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, sdk_method", [
        ("power_off", "begin_power_off"),
        ("start", "begin_start"),
        ("restart", "begin_restart"),
    ])
    async def test_power_operations(self, azure_provider, method, sdk_method):
        operations = azure_provider.clients["compute"].virtual_machine_scale_sets
        setattr(operations, sdk_method, AsyncMock(return_value=_poller()))

        await getattr(azure_provider, method)(ResourceKind.SCALE_SET, VMSS_ID)

        getattr(operations, sdk_method).assert_awaited_once_with("demo-rg", "vmss-demo")

    @pytest.mark.asyncio
    async def test_power_operation_on_network_rejected(self, azure_provider):
        vnet_id = f"{RG_ID}/providers/Microsoft.Network/virtualNetworks/vnet"

        with pytest.raises(ProviderError, match="does not support"):
            await azure_provider.power_off(ResourceKind.NETWORK, vnet_id)

    @pytest.mark.asyncio
    async def test_resize_patches_sku(self, azure_provider):
        operations = azure_provider.clients["compute"].virtual_machine_scale_sets
        operations.begin_update = AsyncMock(return_value=_poller(VMSS_ID))
        spec = _vmss_spec(sku={"name": "Standard_DS3_v2", "capacity": 6})

        handle = await azure_provider.resize(spec, VMSS_ID)

        assert handle == VMSS_ID
        operations.begin_update.assert_awaited_once_with(
            "demo-rg", "vmss-demo", {"sku": {"name": "Standard_DS3_v2", "capacity": 6}}
        )


class TestHelpers:

    def test_request_body_drops_reserved_keys(self):
        spec = ResourceSpec(
            id="pip", kind=ResourceKind.PUBLIC_IP, region="eastus",
            properties={"resource_group": "rg", "name": "x", "sku": {"name": "Standard"}},
        )

        assert build_request_body(spec) == {"sku": {"name": "Standard"}, "location": "eastus"}

    def test_explicit_location_kept(self):
        spec = ResourceSpec(id="pip", kind=ResourceKind.PUBLIC_IP, region="eastus",
                            properties={"location": "westus"})

        assert build_request_body(spec)["location"] == "westus"

    @pytest.mark.parametrize("error, expected", [
        (_http_error(408), True),
        (_http_error(429), True),
        (_http_error(500), True),
        (_http_error(409), False),
        (ServiceRequestError(message="connection reset"), True),
        (ClientAuthenticationError(message="denied"), False),
        (asyncio.TimeoutError(), True),
        (ValueError("boom"), False),
    ])
    def test_is_transient(self, error, expected):
        assert is_transient(error) is expected
