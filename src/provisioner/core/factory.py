"""
Context Factory - Creates SessionContexts.

Entry point for both CLI and REST API to establish a session: loads the
project configuration and resource specs, then creates and initializes
the configured provider.
"""

import os
from pathlib import Path
from typing import Optional

from .. import constants as CONSTANTS
from .config_loader import load_credentials, load_resource_specs, load_session_config
from .context import SessionContext
from .exceptions import ConfigurationError
from .registry import ProviderRegistry


def get_project_root() -> Path:
    """Directory containing upload/: $PROVISIONER_HOME, else the working directory."""
    return Path(os.environ.get(CONSTANTS.PROJECT_HOME_ENV_VAR) or Path.cwd())


def get_upload_path(project_name: str) -> Path:
    """
    Get the directory of a project.

    Raises:
        ConfigurationError: If the name is empty or tries to escape upload/
    """
    if not project_name or project_name in (".", "..") or os.path.basename(project_name) != project_name:
        raise ConfigurationError(f"Invalid project name: '{project_name}'")
    return get_project_root() / CONSTANTS.PROJECT_UPLOAD_DIR_NAME / project_name


def create_context(
    project_name: str = CONSTANTS.DEFAULT_PROJECT_NAME,
    spec_file: Optional[Path] = None,
    state_file: Optional[Path] = None,
    provider_name: Optional[str] = None,
    load_specs: bool = True
) -> SessionContext:
    """
    Create a SessionContext with an initialized provider.

    Args:
        project_name: Project directory under upload/
        spec_file: Resource spec file; defaults to the project's config_resources.json
        state_file: Ledger state file; defaults to config.state_file in the project
        provider_name: Overrides config.provider
        load_specs: False for commands that only need the persisted ledger

    Raises:
        ConfigurationError: On invalid project, config or specs
        ProviderNotFoundError: If the provider is not registered
    """
    # Registers the bundled providers
    from .. import providers  # noqa: F401

    project_path = get_upload_path(project_name)
    if not project_path.is_dir():
        raise ConfigurationError(f"Project '{project_name}' does not exist at {project_path}")

    config = load_session_config(project_path)
    if provider_name:
        config.provider = provider_name

    specs = []
    if load_specs:
        specs = load_resource_specs(
            Path(spec_file) if spec_file else project_path / CONSTANTS.CONFIG_RESOURCES_FILE,
            config.region,
        )

    credentials = load_credentials(project_path, config.provider)
    provider = ProviderRegistry.get(config.provider)
    provider.initialize_clients(credentials[config.provider], config.region)

    return SessionContext(
        project_name=project_name,
        project_path=project_path,
        config=config,
        provider=provider,
        specs=specs,
        credentials=credentials,
        state_file=Path(state_file) if state_file else None,
    )
