# src/karpwiz/clients/kubernetes/client_factory.py
"""Inventory client factory."""

from typing import Union
import structlog

from karpwiz.config.settings import InventorySource, KubernetesSettings
from karpwiz.core.exceptions import ConfigurationException
from .file_client import FileInventoryClient
from .k8s_client import KubernetesClient

logger = structlog.get_logger(__name__)

InventoryClient = Union[KubernetesClient, FileInventoryClient]


class KubernetesClientFactory:
    """Creates the inventory client selected by `K8S_INVENTORY_SOURCE`."""

    def __init__(self, settings: KubernetesSettings):
        self.settings = settings
        self.config = settings.model_dump()
        self.logger = logger.bind(factory="kubernetes")

    def create_client(self) -> InventoryClient:
        source = InventorySource(self.settings.inventory_source)

        if source == InventorySource.FILE:
            if not self.settings.inventory_file:
                raise ConfigurationException("K8S_INVENTORY_FILE is required when K8S_INVENTORY_SOURCE=file")
            self.logger.info("Using file inventory", path=self.settings.inventory_file)
            return FileInventoryClient(self.config, path=self.settings.inventory_file)

        self.logger.info("Using Kubernetes inventory", context=self.settings.context)
        return KubernetesClient(
            config_dict=self.config,
            kubeconfig_path=self.settings.kubeconfig_path,
            context=self.settings.context,
            in_cluster=self.settings.in_cluster,
        )
