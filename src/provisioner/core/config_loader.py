"""
Configuration loading utilities.

A project is a directory (normally ``upload/<project>/``) containing:
    1. config.json - Session settings (name, mode, provider, retries, ...)
    2. config_resources.json - Resource specs to provision
    3. config_credentials_<provider>.json - Provider credentials (optional)

Usage:
    from provisioner.core.config_loader import load_session_config, load_resource_specs

    config = load_session_config(Path("upload/template"))
    specs = load_resource_specs(Path("upload/template/config_resources.json"), config.region)
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .. import constants as CONSTANTS
from .context import SessionConfig
from .exceptions import ConfigurationError
from .models import ResourceKind, ResourceSpec


class ResourceSpecModel(BaseModel):
    """Schema of one entry in config_resources.json."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique resource id, also the provider resource name")
    kind: ResourceKind = Field(..., description="ResourceGroup, Network, PublicIP, LoadBalancer or ScaleSet")
    region: Optional[str] = Field(None, description="Region; defaults to the session region")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Provider-specific body")
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")


class ResourceFileModel(BaseModel):
    """Schema of config_resources.json."""

    model_config = ConfigDict(extra="forbid")

    resources: List[ResourceSpecModel]


def _load_json_file(file_path: Path, required: bool = True) -> Any:
    """
    Load a JSON file.

    Args:
        file_path: Path to the JSON file
        required: If True, raise error when file is missing. If False, return empty dict.

    Raises:
        ConfigurationError: If file is missing (when required) or has invalid JSON
    """
    if not file_path.exists():
        if required:
            raise ConfigurationError(
                f"Required configuration file not found: {file_path.name}",
                config_file=str(file_path)
            )
        return {}

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in configuration file: {e}",
            config_file=str(file_path)
        )


def load_session_config(project_path: Path) -> SessionConfig:
    """
    Load config.json of a project.

    Raises:
        ConfigurationError: If the file is missing, invalid, lacks a
            required field or has a field of the wrong type
    """
    config_file = project_path / CONSTANTS.CONFIG_FILE
    raw = _load_json_file(config_file, required=True)
    if not isinstance(raw, dict):
        raise ConfigurationError("config.json must contain a JSON object", config_file=str(config_file))

    for field_name in CONSTANTS.CONFIG_REQUIRED_FIELDS:
        if not raw.get(field_name):
            raise ConfigurationError(
                f"Missing required field '{field_name}' in {CONSTANTS.CONFIG_FILE}",
                config_file=str(config_file)
            )

    try:
        config = SessionConfig(
            session_name=str(raw["session_name"]),
            mode=str(raw.get("mode", "PRODUCTION")),
            provider=str(raw.get("provider", CONSTANTS.DEFAULT_PROVIDER)),
            region=str(raw.get("region", CONSTANTS.DEFAULT_REGION)),
            max_attempts=int(raw.get("max_attempts", CONSTANTS.DEFAULT_MAX_ATTEMPTS)),
            backoff_base_seconds=float(raw.get("backoff_base_seconds", CONSTANTS.DEFAULT_BACKOFF_BASE_SECONDS)),
            backoff_max_seconds=float(raw.get("backoff_max_seconds", CONSTANTS.DEFAULT_BACKOFF_MAX_SECONDS)),
            max_concurrency=int(raw.get("max_concurrency", CONSTANTS.DEFAULT_MAX_CONCURRENCY)),
            state_file=str(raw.get("state_file", CONSTANTS.DEFAULT_STATE_FILE_NAME)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value in {CONSTANTS.CONFIG_FILE}: {e}", config_file=str(config_file))

    if config.max_attempts < 1:
        raise ConfigurationError("'max_attempts' must be >= 1", config_file=str(config_file))
    if config.max_concurrency < 1:
        raise ConfigurationError("'max_concurrency' must be >= 1", config_file=str(config_file))
    return config


def load_resource_specs(spec_file: Path, default_region: str) -> List[ResourceSpec]:
    """
    Load and validate a resource spec file.

    Accepts either {"resources": [...]} or a bare list of specs. Each spec
    is validated with pydantic; graph-level checks (unknown dependencies,
    cycles) happen later in DependencyGraph.build().

    Raises:
        ConfigurationError: If the file is missing, invalid or fails validation
    """
    raw = _load_json_file(Path(spec_file), required=True)
    if isinstance(raw, list):
        raw = {"resources": raw}

    try:
        document = ResourceFileModel.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid resource specs: {e}", config_file=str(spec_file))

    return [
        ResourceSpec(
            id=item.id,
            kind=item.kind,
            region=item.region or default_region,
            properties=item.properties,
            depends_on=frozenset(item.depends_on),
        )
        for item in document.resources
    ]


def load_credentials(project_path: Path, provider_name: str) -> Dict[str, dict]:
    """
    Load credentials for a provider.

    Credentials live in config_credentials_<provider>.json; the file is
    optional. For Azure, missing keys fall back to the AZURE_* environment
    variables, and DefaultAzureCredential covers the remaining cases.

    Returns:
        Dictionary mapping the provider name to its credentials
    """
    file_name = CONSTANTS.CONFIG_CREDENTIALS_FILE_TEMPLATE.format(provider=provider_name)
    credentials = _load_json_file(project_path / file_name, required=False)
    if not isinstance(credentials, dict):
        raise ConfigurationError("Credentials file must contain a JSON object", config_file=file_name)

    if provider_name == "azure":
        for key, env_var in CONSTANTS.AZURE_ENV_VARS.items():
            if not credentials.get(key) and os.environ.get(env_var):
                credentials[key] = os.environ[env_var]

    return {provider_name: credentials}
