"""
API Dependencies - Shared utilities for API endpoints.

Project state is cached for the lifetime of the app: the context (so the
provider and its SDK clients outlive a single request), the one ledger
every request of the project shares, the lifecycle controller that
serializes operations per resource, and a lock that keeps provision and
teardown of the same project from overlapping.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict

from fastapi import HTTPException

from ..core.context import SessionContext
from ..core.exceptions import (
    ConfigurationError,
    CycleDetected,
    NotReady,
    ProviderNotFoundError,
    ProvisionerError,
    UnknownResource,
    UnsupportedOperation,
)
from ..core.factory import create_context
from ..core.ledger import ProvisioningLedger
from ..core.lifecycle import LifecycleController
from ..logger import logger, print_stack_trace


@dataclass
class ProjectState:
    """Per-project objects shared by every request."""

    context: SessionContext
    ledger: ProvisioningLedger
    lifecycle: LifecycleController
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


_projects: Dict[str, ProjectState] = {}


def get_project(project_name: str) -> ProjectState:
    """Return the cached state of a project, creating it on first use."""
    if project_name not in _projects:
        context = create_context(project_name)
        _projects[project_name] = ProjectState(
            context=context,
            ledger=ProvisioningLedger.load(context.get_state_file()),
            lifecycle=LifecycleController.from_context(context),
        )
    return _projects[project_name]


async def close_projects() -> None:
    """Close every cached provider (app shutdown)."""
    for project in _projects.values():
        if project.context.provider is not None:
            await project.context.provider.close()
    _projects.clear()


def to_http_error(error: Exception) -> HTTPException:
    """
    Map an orchestrator error to an HTTPException.

    404 UnknownResource, 409 NotReady, 400 configuration and unsupported
    operations, 500 for everything else.
    """
    if isinstance(error, UnknownResource):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, NotReady):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (ConfigurationError, CycleDetected, ProviderNotFoundError, UnsupportedOperation)):
        return HTTPException(status_code=400, detail=str(error))

    print_stack_trace()
    if isinstance(error, ProvisionerError):
        logger.error(str(error))
    else:
        logger.error(f"Unexpected error: {type(error).__name__}: {error}")
    return HTTPException(status_code=500, detail=str(error))
