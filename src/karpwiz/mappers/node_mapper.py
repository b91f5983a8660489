"""Kubernetes node and pod mapping utilities."""

import re
from typing import Any, Dict, Iterable, List, Optional

import structlog

from karpwiz.core.utils import parse_resource_string
from karpwiz.models.inventory import NodeInfo, PodInfo

logger = structlog.get_logger(__name__)

GIB = 1024 ** 3

INSTANCE_TYPE_LABELS = ("node.kubernetes.io/instance-type", "beta.kubernetes.io/instance-type")
REGION_LABELS = ("topology.kubernetes.io/region", "failure-domain.beta.kubernetes.io/region")
ZONE_LABELS = ("topology.kubernetes.io/zone", "failure-domain.beta.kubernetes.io/zone")

# A node is spot when any of these labels says so (values compared case-insensitively)
SPOT_LABELS = (
    "karpenter.sh/capacity-type",
    "eks.amazonaws.com/capacityType",
    "node.kubernetes.io/instance-type-price-type",
    "spot.amazonaws.com/cn",
)

# Pods in these phases no longer hold their requests on the node
FINISHED_PHASES = {"Succeeded", "Failed"}

_ZONE_SUFFIX = re.compile(r"^(.+\d)[a-z]$")


def _first_label(labels: Dict[str, str], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = labels.get(key)
        if value:
            return value
    return None


def region_from_zone(zone: str) -> Optional[str]:
    """'us-east-1a' -> 'us-east-1'."""
    match = _ZONE_SUFFIX.match(zone or "")
    return match.group(1) if match else None


class NodeDataMapper:
    """Maps kubernetes client objects to inventory models."""

    def map_node(self, node: Any) -> NodeInfo:
        """Map a V1Node to NodeInfo."""
        labels = node.metadata.labels or {}
        capacity = (node.status.capacity or {}) if node.status else {}

        zone = _first_label(labels, ZONE_LABELS) or "unknown"
        region = _first_label(labels, REGION_LABELS) or region_from_zone(zone) or "unknown"

        cpu_millicores = parse_resource_string(capacity.get("cpu", "0"), "cpu")
        memory_bytes = parse_resource_string(capacity.get("memory", "0"), "memory")

        return NodeInfo(
            name=node.metadata.name,
            instance_type=_first_label(labels, INSTANCE_TYPE_LABELS) or "unknown",
            region=region,
            zone=zone,
            is_spot=self.is_spot(labels),
            state=self._node_state(node),
            cpu_cores=int(cpu_millicores // 1000),
            memory_gb=round(memory_bytes / GIB, 2),
        )

    def map_pod(self, pod: Any) -> PodInfo:
        """Map a V1Pod to PodInfo, summing container requests."""
        cpu = 0.0
        memory = 0.0
        for container in (pod.spec.containers or []):
            requests = (container.resources.requests or {}) if container.resources else {}
            cpu += parse_resource_string(requests.get("cpu", "0"), "cpu")
            memory += parse_resource_string(requests.get("memory", "0"), "memory")

        return PodInfo(
            name=pod.metadata.name,
            namespace=pod.metadata.namespace,
            node_name=pod.spec.node_name,
            status=pod.status.phase if pod.status and pod.status.phase else "Unknown",
            cpu_request=int(cpu),
            memory_request=int(memory),
        )

    def attach_requests(self, nodes: List[NodeInfo], pods: List[PodInfo]) -> List[NodeInfo]:
        """Return copies of `nodes` carrying the summed requests of their running pods."""
        cpu: Dict[str, int] = {}
        memory: Dict[str, int] = {}
        for pod in pods:
            if not pod.node_name or pod.status in FINISHED_PHASES:
                continue
            cpu[pod.node_name] = cpu.get(pod.node_name, 0) + pod.cpu_request
            memory[pod.node_name] = memory.get(pod.node_name, 0) + pod.memory_request

        return [
            node.model_copy(update={
                "cpu_requested_cores": round(cpu.get(node.name, 0) / 1000, 3),
                "memory_requested_gb": round(memory.get(node.name, 0) / GIB, 3),
            })
            for node in nodes
        ]

    @staticmethod
    def is_spot(labels: Dict[str, str]) -> bool:
        return any((labels.get(key) or "").lower() == "spot" for key in SPOT_LABELS)

    @staticmethod
    def _node_state(node: Any) -> str:
        """Determine node state from the Ready condition."""
        conditions = (node.status.conditions or []) if node.status else []
        for condition in conditions:
            if condition.type == "Ready":
                return "Ready" if condition.status == "True" else "NotReady"
        return "Unknown"
