"""
Declarative multi-resource provisioning orchestrator.

Provisions a dependency graph of cloud resources (resource groups,
networks, public IPs, load balancers, scale sets) in layers, runs
lifecycle operations on them and guarantees reverse-order teardown.
"""

__version__ = "1.0.0"
