"""
Test fixtures and configuration for pytest
"""
import pytest
import yaml

from karpwiz.catalog.preset_catalog import PresetCatalog
from karpwiz.clients.pricing.pricing_client import BUILTIN_PRICING_PATH
from karpwiz.config.settings import SpotPolicySettings
from karpwiz.models.inventory import NodeInfo, NodeInventorySnapshot
from karpwiz.models.pricing import InstancePrice, PricingSnapshot


def make_node(name, instance_type="m5.large", is_spot=False, zone="us-east-1a", **overrides):
    """NodeInfo with sensible defaults; tests override only what they check."""
    shapes = {
        "m5.large": (2, 8.0),
        "m5.xlarge": (4, 16.0),
        "t3.large": (2, 8.0),
        "t3.xlarge": (4, 16.0),
        "c6g.xlarge": (4, 8.0),
    }
    cpu, memory = shapes.get(instance_type, (2, 4.0))
    fields = dict(
        name=name,
        instance_type=instance_type,
        region=zone[:-1],
        zone=zone,
        is_spot=is_spot,
        state="Ready",
        cpu_cores=cpu,
        memory_gb=memory,
    )
    fields.update(overrides)
    return NodeInfo(**fields)


def make_inventory(*nodes):
    return NodeInventorySnapshot.from_nodes(list(nodes))


@pytest.fixture
def catalog():
    """Built-in preset catalog"""
    return PresetCatalog()


@pytest.fixture
def policy():
    return SpotPolicySettings()


@pytest.fixture
def pricing():
    """Round-number prices: m5.large costs $73.00/month on-demand, $21.90 on spot."""
    return PricingSnapshot(
        currency="USD",
        source="test",
        regions={
            "us-east-1": {
                "m5.large": InstancePrice(on_demand=0.1, spot=0.03, vcpu=2, memory_gb=8),
                "m5.xlarge": InstancePrice(on_demand=0.2, spot=0.06, vcpu=4, memory_gb=16),
                "t3.large": InstancePrice(on_demand=0.08, spot=None, vcpu=2, memory_gb=8),
            },
        },
    )


@pytest.fixture
def replacement_pricing():
    """m5.xlarge has a cheaper same-shape alternative (t3.xlarge) and a Graviton one."""
    return PricingSnapshot(
        regions={
            "us-east-1": {
                "m5.large": InstancePrice(on_demand=0.1, spot=0.03, vcpu=2, memory_gb=8),
                "m5.xlarge": InstancePrice(on_demand=0.2, spot=0.06, vcpu=4, memory_gb=16),
                "t3.xlarge": InstancePrice(on_demand=0.15, spot=0.045, vcpu=4, memory_gb=16),
                "c6g.xlarge": InstancePrice(on_demand=0.12, spot=0.036, vcpu=4, memory_gb=8),
            },
        },
    )


@pytest.fixture
def builtin_pricing():
    """The pricing table shipped with the package."""
    return PricingSnapshot.model_validate(yaml.safe_load(BUILTIN_PRICING_PATH.read_text()))


@pytest.fixture
def four_on_demand():
    return make_inventory(*(make_node(f"node-{i}") for i in range(1, 5)))


@pytest.fixture
def pricing_file(tmp_path, pricing):
    path = tmp_path / "pricing.yaml"
    path.write_text(yaml.safe_dump(pricing.to_api()))
    return path


@pytest.fixture
def inventory_file(tmp_path, four_on_demand):
    path = tmp_path / "inventory.yaml"
    data = {
        "nodes": [node.to_api() for node in four_on_demand.nodes],
        "pods": [
            {"name": "web-1", "namespace": "default", "nodeName": "node-1",
             "status": "Running", "cpuRequest": 250, "memoryRequest": 536870912},
            {"name": "job-1", "namespace": "batch", "nodeName": "node-2",
             "status": "Succeeded", "cpuRequest": 1000, "memoryRequest": 1073741824},
        ],
    }
    path.write_text(yaml.safe_dump(data))
    return path
