from .client_factory import InventoryClient, KubernetesClientFactory
from .file_client import FileInventoryClient
from .k8s_client import KubernetesClient

__all__ = ["InventoryClient", "KubernetesClientFactory", "FileInventoryClient", "KubernetesClient"]
