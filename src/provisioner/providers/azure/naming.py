"""
Azure resource naming rules and ARM id helpers.

The Azure resource name of every resource is its spec id, so ids must
satisfy the naming restrictions of the target resource type:
    - Resource Group: 1-90 chars, alphanumeric, underscores, hyphens,
      periods and parentheses; must not end with a period
    - Virtual Network / Public IP / Load Balancer: 2-80 chars, starts with
      alphanumeric, ends with alphanumeric or underscore
    - Scale Set: 1-64 chars, alphanumeric, hyphens, underscores and periods
      (Linux computer name prefixes are derived from it by Azure)

Non-group resources find their resource group through the
``resource_group`` property, which normally holds ``${rg-id}`` and is
therefore resolved to the group's ARM id before the provider sees it.

Usage:
    from provisioner.providers.azure.naming import validate_name, resource_group_of

    validate_name(ResourceKind.NETWORK, "vnet-main")
    resource_group_of("/subscriptions/.../resourceGroups/demo-rg")  # "demo-rg"
"""

import re

from azure.mgmt.core.tools import parse_resource_id

from ...core.exceptions import ConfigurationError
from ...core.models import ResourceKind


ARM_RESOURCE_TYPES = {
    ResourceKind.NETWORK: "Microsoft.Network/virtualNetworks",
    ResourceKind.PUBLIC_IP: "Microsoft.Network/publicIPAddresses",
    ResourceKind.LOAD_BALANCER: "Microsoft.Network/loadBalancers",
    ResourceKind.SCALE_SET: "Microsoft.Compute/virtualMachineScaleSets",
}

_NAME_RULES = {
    ResourceKind.RESOURCE_GROUP: re.compile(r"^[-\w.()]{0,89}[-\w()]$"),
    ResourceKind.NETWORK: re.compile(r"^[A-Za-z0-9][-\w.]{0,78}\w$"),
    ResourceKind.PUBLIC_IP: re.compile(r"^[A-Za-z0-9][-\w.]{0,78}\w$"),
    ResourceKind.LOAD_BALANCER: re.compile(r"^[A-Za-z0-9][-\w.]{0,78}\w$"),
    ResourceKind.SCALE_SET: re.compile(r"^[A-Za-z0-9][-\w.]{0,62}[A-Za-z0-9_]$|^[A-Za-z0-9]$"),
}


def validate_name(kind: ResourceKind, name: str) -> str:
    """
    Check that name is a valid Azure name for kind.

    Raises:
        ConfigurationError: If the name violates the Azure rules
    """
    rule = _NAME_RULES[ResourceKind(kind)]
    if not rule.match(name):
        raise ConfigurationError(
            f"'{name}' is not a valid Azure name for {ResourceKind(kind).value}",
            resource_id=name
        )
    return name


def resource_group_of(value: str) -> str:
    """
    Return the resource group name carried by value.

    Accepts an ARM id (of the group itself or of any resource inside it)
    or a plain resource group name.

    Raises:
        ConfigurationError: If value is empty or an ARM id without a group
    """
    if not value:
        raise ConfigurationError("Missing 'resource_group' property")
    if not value.startswith("/"):
        return value
    group = parse_resource_id(value).get("resource_group")
    if not group:
        raise ConfigurationError(f"ARM id has no resource group: '{value}'")
    return group


def split_handle(handle: str) -> tuple[str, str]:
    """
    Split an ARM id into (resource_group, name).

    For a resource group id both parts are the group name.
    """
    parts = parse_resource_id(handle)
    group = parts.get("resource_group")
    if not group:
        raise ConfigurationError(f"Invalid resource handle: '{handle}'")
    return group, parts.get("name") or group
