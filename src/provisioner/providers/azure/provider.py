"""
Azure CloudProvider implementation.

Maps every ResourceKind to the matching Azure management SDK operation
and waits for the long-running operation to reach a terminal state.

SDK Clients Initialized (async, azure.mgmt.*.aio):
    - ResourceManagementClient: Resource Groups
    - NetworkManagementClient: Virtual Networks, Public IPs, Load Balancers
    - ComputeManagementClient: Virtual Machine Scale Sets

Handles are ARM ids. The Azure name of a resource is its spec id; the
resource group of a non-group resource comes from its ``resource_group``
property (see naming.py).

Usage:
    from provisioner.providers.azure.provider import AzureProvider

    provider = AzureProvider()
    provider.initialize_clients(credentials, "eastus")
    handle = await provider.create_or_update(spec)
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)

from ...core.exceptions import ConfigurationError, ProviderError, TransientProviderError
from ...core.models import ResourceKind, ResourceSpec
from ..base import BaseProvider
from .naming import resource_group_of, split_handle, validate_name

logger = logging.getLogger(__name__)

# Properties consumed by the provider, never sent to Azure
RESERVED_PROPERTIES = ("resource_group", "name")

# Request timeout, throttling and server-side failures
TRANSIENT_STATUS_CODES = frozenset({408, 429})

DEFAULT_OPERATION_TIMEOUT_SECONDS = 1800


def build_request_body(spec: ResourceSpec) -> Dict[str, Any]:
    """Request body for create_or_update: properties minus reserved keys, plus location."""
    body = {key: value for key, value in spec.properties.items() if key not in RESERVED_PROPERTIES}
    body.setdefault("location", spec.region)
    return body


def is_transient(error: BaseException) -> bool:
    """True for errors a retry can fix."""
    if isinstance(error, (asyncio.TimeoutError, ServiceRequestError, ServiceResponseError)):
        return True
    if isinstance(error, ClientAuthenticationError):
        return False
    if isinstance(error, HttpResponseError):
        status = error.status_code or 0
        return status in TRANSIENT_STATUS_CODES or status >= 500
    return False


class AzureProvider(BaseProvider):
    """
    Azure implementation of the CloudProvider protocol.

    Attributes:
        name: Provider identifier ("azure")
        clients: Dictionary of initialized async Azure SDK clients
        operation_timeout: Seconds to wait for a long-running operation
    """

    name: str = "azure"

    def __init__(self):
        """Initialize Azure provider."""
        super().__init__()
        self._subscription_id: str = ""
        self._credential: Optional[Any] = None
        self.operation_timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS

    @property
    def subscription_id(self) -> str:
        """Get the Azure subscription ID."""
        return self._subscription_id

    def initialize_clients(self, credentials: dict, region: str) -> None:
        """
        Initialize async Azure SDK clients.

        Args:
            credentials: Azure credentials dictionary with:
                - azure_subscription_id: Azure subscription ID (REQUIRED)
                - azure_tenant_id: Azure AD tenant ID (optional)
                - azure_client_id: Service principal client ID (optional)
                - azure_client_secret: Service principal secret (optional)
                - operation_timeout_seconds: LRO wait limit (optional)
            region: Default Azure region

        Raises:
            ConfigurationError: If the subscription id is missing
        """
        if not credentials.get("azure_subscription_id"):
            raise ConfigurationError(
                "Missing required credential 'azure_subscription_id'. "
                "Set it in config_credentials_azure.json or AZURE_SUBSCRIPTION_ID."
            )
        self._subscription_id = credentials["azure_subscription_id"]
        self._region = region
        if credentials.get("operation_timeout_seconds"):
            self.operation_timeout = float(credentials["operation_timeout_seconds"])

        self._credential = self._get_credential(credentials)
        self._initialize_sdk_clients(self._credential)
        self._initialized = True

    def _get_credential(self, credentials: dict) -> Any:
        """Service principal when fully configured, else the default credential chain."""
        from azure.identity.aio import ClientSecretCredential, DefaultAzureCredential

        client_id = credentials.get("azure_client_id")
        client_secret = credentials.get("azure_client_secret")
        tenant_id = credentials.get("azure_tenant_id")

        if client_id and client_secret and tenant_id:
            return ClientSecretCredential(
                tenant_id=tenant_id,
                client_id=client_id,
                client_secret=client_secret
            )
        return DefaultAzureCredential()

    def _initialize_sdk_clients(self, credential: Any) -> None:
        from azure.mgmt.compute.aio import ComputeManagementClient
        from azure.mgmt.network.aio import NetworkManagementClient
        from azure.mgmt.resource.resources.aio import ResourceManagementClient

        subscription_id = self._subscription_id

        self._clients["resource"] = ResourceManagementClient(credential=credential, subscription_id=subscription_id)
        self._clients["network"] = NetworkManagementClient(credential=credential, subscription_id=subscription_id)
        self._clients["compute"] = ComputeManagementClient(credential=credential, subscription_id=subscription_id)

    async def close(self) -> None:
        """Close SDK clients and the credential."""
        for client in self._clients.values():
            await client.close()
        if self._credential is not None:
            await self._credential.close()
            self._credential = None
        await super().close()

    # ==========================================
    # Operations
    # ==========================================

    def _operations(self, kind: ResourceKind) -> Any:
        """SDK operation group for a non-group resource kind."""
        if kind is ResourceKind.NETWORK:
            return self.clients["network"].virtual_networks
        if kind is ResourceKind.PUBLIC_IP:
            return self.clients["network"].public_ip_addresses
        if kind is ResourceKind.LOAD_BALANCER:
            return self.clients["network"].load_balancers
        if kind is ResourceKind.SCALE_SET:
            return self.clients["compute"].virtual_machine_scale_sets
        raise ProviderError(f"No Azure operations for kind {kind.value}", kind=kind.value)

    async def _wait(self, poller: Any) -> Any:
        return await asyncio.wait_for(poller.result(), timeout=self.operation_timeout)

    def _translate_error(
        self,
        error: Exception,
        resource_id: str,
        kind: ResourceKind,
        operation: str
    ) -> ProviderError:
        """Wrap an SDK error into TransientProviderError or ProviderError."""
        if isinstance(error, asyncio.TimeoutError):
            message = f"Timed out after {self.operation_timeout:.0f}s"
        else:
            message = f"{type(error).__name__}: {error}"

        if is_transient(error):
            return TransientProviderError(
                message, resource_id=resource_id, kind=kind.value,
                operation=operation, original_error=error
            )
        return ProviderError(
            message, resource_id=resource_id, kind=kind.value,
            operation=operation, original_error=error,
            session_fatal=isinstance(error, ClientAuthenticationError)
        )

    async def create_or_update(self, spec: ResourceSpec) -> str:
        validate_name(spec.kind, spec.id)
        body = build_request_body(spec)
        self._log_resource_creation(spec.kind.value, spec.id)

        try:
            if spec.kind is ResourceKind.RESOURCE_GROUP:
                result = await asyncio.wait_for(
                    self.clients["resource"].resource_groups.create_or_update(spec.id, body),
                    timeout=self.operation_timeout
                )
            else:
                group = resource_group_of(spec.properties.get("resource_group", ""))
                poller = await self._operations(spec.kind).begin_create_or_update(group, spec.id, body)
                result = await self._wait(poller)
        except (AzureError, asyncio.TimeoutError) as e:
            raise self._translate_error(e, spec.id, spec.kind, "create_or_update") from e

        logger.debug(f"Azure returned id {result.id} for '{spec.id}'")
        return result.id

    async def delete(self, kind: ResourceKind, handle: str) -> None:
        group, name = split_handle(handle)
        self._log_resource_deletion(kind.value, name)

        try:
            if kind is ResourceKind.RESOURCE_GROUP:
                poller = await self.clients["resource"].resource_groups.begin_delete(group)
            else:
                poller = await self._operations(kind).begin_delete(group, name)
            await self._wait(poller)
        except ResourceNotFoundError:
            self._log_resource_not_found(kind.value, name)
        except (AzureError, asyncio.TimeoutError) as e:
            raise self._translate_error(e, name, kind, "delete") from e

    async def _scale_set_operation(self, operation: str, kind: ResourceKind, handle: str) -> None:
        group, name = split_handle(handle)
        if kind is not ResourceKind.SCALE_SET:
            raise ProviderError(
                f"{kind.value} does not support {operation}",
                resource_id=name, kind=kind.value, operation=operation
            )
        self._log_operation(operation, kind.value, name)

        begin = getattr(self._operations(kind), f"begin_{operation}")
        try:
            poller = await begin(group, name)
            await self._wait(poller)
        except (AzureError, asyncio.TimeoutError) as e:
            raise self._translate_error(e, name, kind, operation) from e

    async def power_off(self, kind: ResourceKind, handle: str) -> None:
        await self._scale_set_operation("power_off", kind, handle)

    async def start(self, kind: ResourceKind, handle: str) -> None:
        await self._scale_set_operation("start", kind, handle)

    async def restart(self, kind: ResourceKind, handle: str) -> None:
        await self._scale_set_operation("restart", kind, handle)

    async def resize(self, spec: ResourceSpec, handle: str) -> str:
        """Patch the scale set SKU capacity in place."""
        group, name = split_handle(handle)
        if spec.kind is not ResourceKind.SCALE_SET:
            raise ProviderError(
                f"{spec.kind.value} does not support resize",
                resource_id=spec.id, kind=spec.kind.value, operation="resize"
            )
        sku = spec.properties.get("sku", {})
        self._log_operation(f"Resizing to {sku.get('capacity')}", spec.kind.value, name)

        try:
            poller = await self._operations(spec.kind).begin_update(group, name, {"sku": sku})
            result = await self._wait(poller)
        except (AzureError, asyncio.TimeoutError) as e:
            raise self._translate_error(e, spec.id, spec.kind, "resize") from e
        return result.id or handle
