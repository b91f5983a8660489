# src/karpwiz/clients/kubernetes/k8s_client.py
"""Kubernetes inventory client: nodes and pods of the live cluster."""

from typing import Any, Dict, List, Optional
import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from karpwiz.core.base_client import BaseClient
from karpwiz.core.exceptions import UpstreamUnavailableException
from karpwiz.core.utils import retry_with_backoff
from karpwiz.mappers.node_mapper import NodeDataMapper
from karpwiz.models.inventory import NodeInfo, NodeInventorySnapshot, PodInventorySnapshot

logger = structlog.get_logger(__name__)


class KubernetesClient(BaseClient):
    """Read-only cluster inventory from the Kubernetes API."""

    provider = "Kubernetes"

    def __init__(self,
                 config_dict: Dict[str, Any],
                 kubeconfig_path: Optional[str] = None,
                 context: Optional[str] = None,
                 in_cluster: bool = True):
        super().__init__(config_dict, "KubernetesClient")
        self.kubeconfig_path = kubeconfig_path
        self.context = context
        self.in_cluster = in_cluster
        self.mapper = NodeDataMapper()

        self.v1 = None

    async def connect(self) -> None:
        """Load in-cluster config when available, else kubeconfig."""
        try:
            loaded = False
            if self.in_cluster:
                try:
                    config.load_incluster_config()
                    self.logger.info("Loaded in-cluster config")
                    loaded = True
                except config.ConfigException:
                    self.logger.debug("Not running in a cluster, falling back to kubeconfig")

            if not loaded:
                config.load_kube_config(config_file=self.kubeconfig_path, context=self.context)
                self.logger.info("Loaded kubeconfig", path=self.kubeconfig_path or "default", context=self.context)

            self.v1 = client.CoreV1Api()
            self._connected = True

        except Exception as e:
            raise UpstreamUnavailableException(self.provider, f"Connection failed: {e}")

    async def disconnect(self) -> None:
        self._connected = False
        self.v1 = None
        self.logger.info("Kubernetes client disconnected")

    async def health_check(self) -> bool:
        try:
            if not self._connected or not self.v1:
                return False
            self.v1.get_api_resources()
            return True
        except Exception as e:
            self.logger.warning("Kubernetes health check failed", error=str(e))
            return False

    async def fetch_nodes(self) -> List[NodeInfo]:
        self._require_connection()
        try:
            items = await self._list_nodes()
        except ApiException as e:
            raise UpstreamUnavailableException(self.provider, f"Failed to list nodes: {e.reason}", {"status": e.status})
        except Exception as e:
            raise UpstreamUnavailableException(self.provider, f"Failed to list nodes: {e}")

        nodes = sorted((self.mapper.map_node(item) for item in items), key=lambda n: n.name)
        self.logger.info(f"Fetched {len(nodes)} nodes")
        return nodes

    async def fetch_pods(self) -> PodInventorySnapshot:
        self._require_connection()
        try:
            items = await self._list_pods()
        except ApiException as e:
            raise UpstreamUnavailableException(self.provider, f"Failed to list pods: {e.reason}", {"status": e.status})
        except Exception as e:
            raise UpstreamUnavailableException(self.provider, f"Failed to list pods: {e}")

        pods = sorted((self.mapper.map_pod(item) for item in items), key=lambda p: (p.namespace, p.name))
        self.logger.info(f"Fetched {len(pods)} pods")
        return PodInventorySnapshot.from_pods(pods)

    async def fetch_inventory(self) -> NodeInventorySnapshot:
        """Nodes with the summed pod requests attached as utilization data."""
        nodes = await self.fetch_nodes()
        pods = await self.fetch_pods()
        nodes = self.mapper.attach_requests(nodes, pods.pods)

        snapshot = NodeInventorySnapshot.from_nodes(nodes)
        self.logger.info(
            "Fetched node inventory",
            total_nodes=snapshot.total_nodes,
            spot_nodes=snapshot.spot_nodes,
            on_demand_nodes=snapshot.on_demand_nodes,
        )
        return snapshot

    @retry_with_backoff(max_retries=3)
    async def _list_nodes(self) -> List[Any]:
        return self.v1.list_node().items

    @retry_with_backoff(max_retries=3)
    async def _list_pods(self) -> List[Any]:
        return self.v1.list_pod_for_all_namespaces().items
