from .kubernetes.client_factory import InventoryClient, KubernetesClientFactory
from .pricing.pricing_client import PricingClient

__all__ = ["InventoryClient", "KubernetesClientFactory", "PricingClient"]
