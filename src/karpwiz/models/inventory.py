"""Cluster inventory models."""

import math
from pydantic import Field, model_validator
from typing import List, Optional

from .base_models import KarpWizBaseModel


class NodeInfo(KarpWizBaseModel):
    """A cluster node as seen by the inventory provider. Read-only to the engine."""

    name: str
    instance_type: str = "unknown"
    region: str = "unknown"
    zone: str = "unknown"
    is_spot: bool = False
    state: str = "Unknown"
    cpu_cores: int = Field(0, ge=0)
    memory_gb: float = Field(0.0, ge=0)
    cpu_requested_cores: Optional[float] = Field(None, ge=0, description="Sum of pod CPU requests (advisory)")
    memory_requested_gb: Optional[float] = Field(None, ge=0, description="Sum of pod memory requests (advisory)")

    @property
    def has_utilization(self) -> bool:
        return self.cpu_requested_cores is not None and self.memory_requested_gb is not None

    @property
    def instance_family(self) -> str:
        return self.instance_type.split(".", 1)[0]


class NodeInventorySnapshot(KarpWizBaseModel):
    """Point-in-time node inventory. Totals always agree with `nodes`."""

    total_nodes: int = Field(0, ge=0)
    spot_nodes: int = Field(0, ge=0)
    on_demand_nodes: int = Field(0, ge=0)
    total_cpu: int = Field(0, ge=0)
    total_memory: float = Field(0.0, ge=0, description="GiB")
    nodes: List[NodeInfo] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_totals(self) -> "NodeInventorySnapshot":
        # Totals left out by the caller are derived; supplied ones must agree
        derived = {
            "total_nodes": len(self.nodes),
            "spot_nodes": sum(1 for node in self.nodes if node.is_spot),
            "on_demand_nodes": sum(1 for node in self.nodes if not node.is_spot),
            "total_cpu": sum(node.cpu_cores for node in self.nodes),
            "total_memory": sum(node.memory_gb for node in self.nodes),
        }
        for field_name, value in derived.items():
            if field_name not in self.model_fields_set:
                setattr(self, field_name, value)

        if self.total_nodes != self.spot_nodes + self.on_demand_nodes:
            raise ValueError(
                f"totalNodes ({self.total_nodes}) != spotNodes ({self.spot_nodes}) "
                f"+ onDemandNodes ({self.on_demand_nodes})"
            )
        if self.total_nodes != len(self.nodes):
            raise ValueError(f"totalNodes ({self.total_nodes}) != number of nodes ({len(self.nodes)})")
        spot = sum(1 for node in self.nodes if node.is_spot)
        if spot != self.spot_nodes:
            raise ValueError(f"spotNodes ({self.spot_nodes}) != spot nodes listed ({spot})")
        if self.total_cpu != sum(node.cpu_cores for node in self.nodes):
            raise ValueError("totalCpu does not match the sum of node cpuCores")
        if not math.isclose(self.total_memory, sum(node.memory_gb for node in self.nodes), abs_tol=1e-6):
            raise ValueError("totalMemory does not match the sum of node memoryGb")
        return self

    @classmethod
    def from_nodes(cls, nodes: List[NodeInfo]) -> "NodeInventorySnapshot":
        nodes = list(nodes)
        spot = sum(1 for node in nodes if node.is_spot)
        return cls(
            total_nodes=len(nodes),
            spot_nodes=spot,
            on_demand_nodes=len(nodes) - spot,
            total_cpu=sum(node.cpu_cores for node in nodes),
            total_memory=sum(node.memory_gb for node in nodes),
            nodes=nodes,
        )


class PodInfo(KarpWizBaseModel):
    name: str
    namespace: str
    node_name: Optional[str] = None
    status: str = "Unknown"
    cpu_request: int = Field(0, ge=0, description="millicores")
    memory_request: int = Field(0, ge=0, description="bytes")


class PodInventorySnapshot(KarpWizBaseModel):
    total_pods: int = 0
    total_cpu: int = Field(0, description="millicores")
    total_memory: int = Field(0, description="bytes")
    pods: List[PodInfo] = Field(default_factory=list)

    @classmethod
    def from_pods(cls, pods: List[PodInfo]) -> "PodInventorySnapshot":
        pods = list(pods)
        return cls(
            total_pods=len(pods),
            total_cpu=sum(pod.cpu_request for pod in pods),
            total_memory=sum(pod.memory_request for pod in pods),
            pods=pods,
        )
