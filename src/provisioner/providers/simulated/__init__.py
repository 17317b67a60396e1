"""
Simulated Provider package.

In-memory CloudProvider used for dry runs, the REST API demo project and
tests. Auto-registers with ProviderRegistry on import.
"""

from ...core.registry import ProviderRegistry
from .provider import SimulatedProvider

# Auto-register this provider
ProviderRegistry.register("simulated", SimulatedProvider)

__all__ = ["SimulatedProvider"]
