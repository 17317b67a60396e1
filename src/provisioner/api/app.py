"""
Provisioner REST API.

FastAPI application entry point:
    Serve "provisioner.api.app:app" with an ASGI server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .. import __version__
from ..logger import logger
from . import routes
from .dependencies import close_projects


# --------- Lifespan context manager ----------
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Provisioner API startup")
    yield
    # Shutdown
    await close_projects()


# --------- Initialize FastAPI app ----------
app = FastAPI(
    title="Provisioner API",
    version=__version__,
    description="Provision, operate and tear down dependency graphs of cloud resources.",
    openapi_tags=[
        {"name": "Ledger", "description": "Persisted per-resource provisioning status."},
        {"name": "Provisioning", "description": "Layered provisioning and reverse-order teardown."},
        {"name": "Lifecycle", "description": "Stop, start, restart and resize Ready resources."},
    ],
    lifespan=lifespan
)

app.include_router(routes.router)
