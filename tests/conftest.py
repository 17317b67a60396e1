import json
import os
import sys

import pytest

# Make the src layout importable without an editable install
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from provisioner.core.context import SessionConfig, SessionContext
from provisioner.core.models import ResourceKind, ResourceSpec
from provisioner.core.retry import RetryPolicy
from provisioner.providers.simulated import SimulatedProvider


def make_spec(resource_id, kind=ResourceKind.NETWORK, depends_on=(), region="eastus", **properties):
    """Build a ResourceSpec with terse test syntax."""
    return ResourceSpec(
        id=resource_id,
        kind=kind,
        region=region,
        properties=properties,
        depends_on=frozenset(depends_on),
    )


def demo_specs():
    """Resource group, network, public IP, load balancer and scale set wired via ${refs}."""
    return [
        make_spec("rg", ResourceKind.RESOURCE_GROUP),
        make_spec("vnet", ResourceKind.NETWORK, ["rg"], resource_group="${rg}",
                  address_space={"address_prefixes": ["10.10.0.0/16"]}),
        make_spec("pip", ResourceKind.PUBLIC_IP, ["rg"], resource_group="${rg}",
                  public_ip_allocation_method="Static"),
        make_spec("lb", ResourceKind.LOAD_BALANCER, ["rg", "pip"], resource_group="${rg}",
                  frontend_ip_configurations=[{"name": "fe", "public_ip_address": {"id": "${pip}"}}]),
        make_spec("vmss", ResourceKind.SCALE_SET, ["rg", "vnet", "lb"], resource_group="${rg}",
                  sku={"name": "Standard_DS3_v2", "capacity": 3},
                  subnet={"id": "${vnet}/subnets/Front-end"},
                  pools=[{"id": "${lb}/backendAddressPools/bap1"}]),
    ]


@pytest.fixture
def spec_factory():
    return make_spec


@pytest.fixture
def specs():
    return demo_specs()


@pytest.fixture
def provider():
    simulated = SimulatedProvider()
    simulated.initialize_clients({}, "eastus")
    return simulated


@pytest.fixture
def fast_retry():
    """Three attempts without backoff waits."""
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0)


@pytest.fixture
def session_config():
    return SessionConfig(
        session_name="test-session",
        provider="simulated",
        max_attempts=3,
        backoff_base_seconds=0,
        backoff_max_seconds=0,
        max_concurrency=4,
    )


@pytest.fixture
def session_context(tmp_path, provider, session_config, specs):
    return SessionContext(
        project_name="test",
        project_path=tmp_path,
        config=session_config,
        provider=provider,
        specs=specs,
    )


def write_project(root, name="demo", config=None, resources=None, credentials=None):
    """Create upload/<name>/ with config files and return its path."""
    project = root / "upload" / name
    project.mkdir(parents=True, exist_ok=True)

    base_config = {
        "session_name": f"{name}-session",
        "mode": "PRODUCTION",
        "provider": "simulated",
        "region": "eastus",
        "max_attempts": 3,
        "backoff_base_seconds": 0,
        "backoff_max_seconds": 0,
        "max_concurrency": 4,
    }
    base_config.update(config or {})
    (project / "config.json").write_text(json.dumps(base_config))

    if resources is None:
        resources = [spec.to_dict() for spec in demo_specs()]
    (project / "config_resources.json").write_text(json.dumps({"resources": resources}))

    if credentials is not None:
        provider_name = base_config["provider"]
        (project / f"config_credentials_{provider_name}.json").write_text(json.dumps(credentials))
    return project


@pytest.fixture
def project_home(tmp_path, monkeypatch):
    """Point PROVISIONER_HOME at a temp dir holding upload/demo (simulated provider)."""
    monkeypatch.setenv("PROVISIONER_HOME", str(tmp_path))
    write_project(tmp_path)
    return tmp_path


@pytest.fixture
def project_writer():
    return write_project
