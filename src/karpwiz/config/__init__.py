from .settings import (
    Settings,
    KubernetesSettings,
    PricingSettings,
    CatalogSettings,
    SpotPolicySettings,
    APISettings,
    RefreshCadence,
    InventorySource,
)

__all__ = [
    "Settings",
    "KubernetesSettings",
    "PricingSettings",
    "CatalogSettings",
    "SpotPolicySettings",
    "APISettings",
    "RefreshCadence",
    "InventorySource",
]
