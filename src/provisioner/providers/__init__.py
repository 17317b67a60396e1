"""
Provider implementations package.

Each provider is a self-contained package implementing the CloudProvider
protocol from core.protocols.

Auto-Registration:
    Importing this package registers every provider with the
    ProviderRegistry, because each provider's __init__.py calls
    ProviderRegistry.register() when imported.

Package Structure:
    providers/
    ├── __init__.py         # This file - imports all providers
    ├── base.py             # Shared BaseProvider
    ├── azure/              # Azure implementation (async mgmt SDK)
    │   ├── provider.py     # AzureProvider class
    │   └── naming.py       # Naming rules and ARM id helpers
    └── simulated/          # In-memory implementation
        └── provider.py     # SimulatedProvider class
"""

# Import provider modules to trigger auto-registration
from . import azure
from . import simulated
