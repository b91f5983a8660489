"""
Tests for mapping Kubernetes objects to inventory models
"""
import pytest
from kubernetes.client import (
    V1Container,
    V1Node,
    V1NodeCondition,
    V1NodeStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodSpec,
    V1PodStatus,
    V1ResourceRequirements,
)

from karpwiz.mappers.node_mapper import NodeDataMapper, region_from_zone


def make_v1_node(name="ip-10-0-1-1", labels=None, cpu="2", memory="8Gi", ready="True"):
    return V1Node(
        metadata=V1ObjectMeta(name=name, labels=labels if labels is not None else {
            "node.kubernetes.io/instance-type": "m5.large",
            "topology.kubernetes.io/region": "us-east-1",
            "topology.kubernetes.io/zone": "us-east-1a",
        }),
        status=V1NodeStatus(
            capacity={"cpu": cpu, "memory": memory},
            conditions=[
                V1NodeCondition(type="MemoryPressure", status="False"),
                V1NodeCondition(type="Ready", status=ready),
            ],
        ),
    )


def make_v1_pod(name, node_name, cpu="250m", memory="512Mi", phase="Running", namespace="default"):
    return V1Pod(
        metadata=V1ObjectMeta(name=name, namespace=namespace),
        spec=V1PodSpec(
            node_name=node_name,
            containers=[
                V1Container(name="app", resources=V1ResourceRequirements(requests={"cpu": cpu, "memory": memory})),
                V1Container(name="sidecar", resources=V1ResourceRequirements(requests={"cpu": "50m"})),
            ],
        ),
        status=V1PodStatus(phase=phase),
    )


@pytest.fixture
def mapper():
    return NodeDataMapper()


class TestMapNode:
    """V1Node -> NodeInfo"""

    def test_labels_and_capacity(self, mapper):
        node = mapper.map_node(make_v1_node())
        assert node.name == "ip-10-0-1-1"
        assert node.instance_type == "m5.large"
        assert node.region == "us-east-1"
        assert node.zone == "us-east-1a"
        assert node.cpu_cores == 2
        assert node.memory_gb == 8.0
        assert node.state == "Ready"
        assert node.is_spot is False

    def test_kibibyte_memory(self, mapper):
        node = mapper.map_node(make_v1_node(memory="7934464Ki"))
        assert node.memory_gb == pytest.approx(7.57)

    def test_region_derived_from_zone(self, mapper):
        node = mapper.map_node(make_v1_node(labels={"topology.kubernetes.io/zone": "eu-west-1b"}))
        assert node.region == "eu-west-1"
        assert node.instance_type == "unknown"

    def test_legacy_labels(self, mapper):
        node = mapper.map_node(make_v1_node(labels={
            "beta.kubernetes.io/instance-type": "t3.large",
            "failure-domain.beta.kubernetes.io/zone": "us-west-2c",
        }))
        assert node.instance_type == "t3.large"
        assert node.zone == "us-west-2c"
        assert node.region == "us-west-2"

    def test_missing_labels(self, mapper):
        node = mapper.map_node(make_v1_node(labels={}))
        assert (node.instance_type, node.region, node.zone) == ("unknown", "unknown", "unknown")

    def test_not_ready(self, mapper):
        assert mapper.map_node(make_v1_node(ready="False")).state == "NotReady"

    @pytest.mark.parametrize("label,value", [
        ("karpenter.sh/capacity-type", "spot"),
        ("eks.amazonaws.com/capacityType", "SPOT"),
        ("node.kubernetes.io/instance-type-price-type", "spot"),
        ("spot.amazonaws.com/cn", "spot"),
    ])
    def test_spot_labels(self, mapper, label, value):
        node = mapper.map_node(make_v1_node(labels={label: value}))
        assert node.is_spot is True

    def test_on_demand_capacity_type(self, mapper):
        node = mapper.map_node(make_v1_node(labels={"karpenter.sh/capacity-type": "on-demand"}))
        assert node.is_spot is False


class TestMapPods:
    """V1Pod -> PodInfo and request attachment"""

    def test_container_requests_are_summed(self, mapper):
        pod = mapper.map_pod(make_v1_pod("web-1", "node-a"))
        assert pod.cpu_request == 300
        assert pod.memory_request == 512 * 1024 ** 2
        assert pod.node_name == "node-a"
        assert pod.status == "Running"

    def test_attach_requests_skips_finished_pods(self, mapper):
        nodes = [mapper.map_node(make_v1_node(name="node-a")), mapper.map_node(make_v1_node(name="node-b"))]
        pods = [
            mapper.map_pod(make_v1_pod("web-1", "node-a", cpu="1", memory="1Gi")),
            mapper.map_pod(make_v1_pod("web-2", "node-a", cpu="500m", memory="1Gi")),
            mapper.map_pod(make_v1_pod("job-1", "node-b", phase="Succeeded")),
            mapper.map_pod(make_v1_pod("pending", None, phase="Pending")),
        ]

        attached = mapper.attach_requests(nodes, pods)

        assert attached[0].cpu_requested_cores == pytest.approx(1.6)
        assert attached[0].memory_requested_gb == pytest.approx(2.0)
        assert attached[1].cpu_requested_cores == 0
        assert attached[1].has_utilization
        # Originals untouched
        assert nodes[0].cpu_requested_cores is None


def test_region_from_zone():
    assert region_from_zone("ap-southeast-2a") == "ap-southeast-2"
    assert region_from_zone("unknown") is None
    assert region_from_zone("") is None
