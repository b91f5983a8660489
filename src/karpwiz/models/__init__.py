from .base_models import *
from .catalog import *
from .configuration import *
from .inventory import *
from .pricing import *
from .cost import *
from .rebalancing import *
from .validation import *

__all__ = [
    "KarpWizBaseModel",
    "FrozenModel",
    "Taint",
    "FeatureFlag",
    "Preset",
    "CatalogSnapshot",
    "ConfigRequest",
    "ConfigSummary",
    "GeneratedConfiguration",
    "NodeInfo",
    "NodeInventorySnapshot",
    "PodInfo",
    "PodInventorySnapshot",
    "InstancePrice",
    "PricingSnapshot",
    "CostBreakdown",
    "CostSavings",
    "CostSnapshot",
    "ActionKind",
    "RebalancingStrategy",
    "RebalancingAction",
    "EstimatedSavings",
    "RebalancingRecommendations",
    "SimulationSavings",
    "SimulationResult",
    "instance_architecture",
    "validate_inventory_snapshot",
    "validate_pricing_snapshot",
]
