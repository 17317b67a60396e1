"""
Provisioning API - ledger, provisioning, lifecycle and teardown endpoints.

All endpoints take an explicit ``project_name`` query parameter.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from .. import constants as CONSTANTS
from ..core.exceptions import ProvisionerError, ProvisioningFailed
from ..core.graph import DependencyGraph
from ..core.models import LifecycleOperation
from ..core.session import ProvisioningSession, TeardownPolicy
from ..core.teardown import TeardownCoordinator
from .dependencies import get_project, to_http_error

router = APIRouter()

PROJECT_QUERY = Query(CONSTANTS.DEFAULT_PROJECT_NAME, description="Project directory under upload/")


class OperationRequest(BaseModel):
    """Request body for a lifecycle operation."""
    op: str = Field(..., description="stop | start | restart | resize:N", examples=["resize:6"])


class SessionResultResponse(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    residual: List[str] = Field(default_factory=list)


class TeardownResponse(BaseModel):
    deleted: List[str] = Field(..., description="Ids deleted by this call")
    residual: List[str] = Field(..., description="Ids that could not be deleted")


class LifecycleResponse(BaseModel):
    resource_id: str
    operation: str
    handle: str
    properties: Dict[str, Any]


@router.get("/ledger", tags=["Ledger"])
async def get_ledger(project_name: str = PROJECT_QUERY) -> Dict[str, Any]:
    """Return the ledger of the project."""
    try:
        return get_project(project_name).ledger.to_dict()
    except ProvisionerError as e:
        raise to_http_error(e)


@router.post("/provision", tags=["Provisioning"], response_model=SessionResultResponse)
async def provision(project_name: str = PROJECT_QUERY):
    """
    Provision every resource of the project.

    On failure the session tears down what it created and the response
    is a 500 carrying the succeeded/failed/residual sets.
    """
    try:
        project = get_project(project_name)
        DependencyGraph.build(project.context.specs)
    except ProvisionerError as e:
        raise to_http_error(e)

    async with project.lock:
        session = ProvisioningSession(
            project.context, project.ledger, teardown_policy=TeardownPolicy.ON_ERROR
        )
        try:
            async with session:
                await session.provision()
        except ProvisioningFailed as e:
            raise HTTPException(
                status_code=500,
                detail={"message": str(e), "result": session.result().to_dict()}
            )
        except Exception as e:
            raise to_http_error(e)
    return session.result().to_dict()


@router.post("/resources/{resource_id}/operations", tags=["Lifecycle"], response_model=LifecycleResponse)
async def operate(resource_id: str, request: OperationRequest, project_name: str = PROJECT_QUERY):
    """Run stop, start, restart or resize:N on a Ready resource."""
    try:
        op = LifecycleOperation.parse(request.op)
        project = get_project(project_name)
        result = await project.lifecycle.operate(project.ledger, resource_id, op)
    except Exception as e:
        raise to_http_error(e)
    return result.to_dict()


@router.post("/teardown", tags=["Provisioning"], response_model=TeardownResponse)
async def teardown(project_name: str = PROJECT_QUERY):
    """Delete every resource in the ledger in reverse dependency order."""
    try:
        project = get_project(project_name)
        async with project.lock:
            result = await TeardownCoordinator.from_context(project.context).teardown(project.ledger)
    except Exception as e:
        raise to_http_error(e)

    if result.residual:
        raise HTTPException(
            status_code=500,
            detail={"message": "Teardown left residual resources", "result": result.to_dict()}
        )
    return result.to_dict()
