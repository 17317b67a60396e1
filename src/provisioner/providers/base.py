"""
Shared base class for provider implementations.

Contents:
    - BaseProvider: initialization state, region and logging helpers
"""

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


class BaseProvider:
    """
    Optional base class for cloud provider implementations.

    Providers are only required to implement the CloudProvider protocol.
    Inheriting from BaseProvider gives them the client dictionary, the
    initialization guard and consistent log messages.
    """

    name: str = "base"

    def __init__(self):
        """Initialize base provider state."""
        self._clients: Dict[str, Any] = {}
        self._region: str = ""
        self._initialized: bool = False

    @property
    def region(self) -> str:
        """Default region passed to initialize_clients()."""
        return self._region

    @property
    def clients(self) -> Dict[str, Any]:
        """Return initialized SDK clients."""
        if not self._initialized:
            raise RuntimeError(
                "Provider not initialized. Call initialize_clients() first."
            )
        return self._clients

    async def close(self) -> None:
        self._clients = {}
        self._initialized = False

    def _log_resource_creation(self, resource_type: str, resource_name: str) -> None:
        logger.info(f"[{self.name}] Creating {resource_type}: {resource_name}")

    def _log_resource_deletion(self, resource_type: str, resource_name: str) -> None:
        logger.info(f"[{self.name}] Deleting {resource_type}: {resource_name}")

    def _log_resource_not_found(self, resource_type: str, resource_name: str) -> None:
        """Log that a resource was not found (during deletion)."""
        logger.info(f"[{self.name}] {resource_type} not found (already deleted?): {resource_name}")

    def _log_operation(self, operation: str, resource_type: str, resource_name: str) -> None:
        logger.info(f"[{self.name}] {operation} {resource_type}: {resource_name}")
