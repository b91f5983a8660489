# src/karpwiz/analytics/__init__.py
"""
Analytics Module - cost analysis and rebalancing simulation
"""

from .cost_model import (
    HOURS_PER_MONTH,
    PricedInventory,
    PricedNode,
    SpotPlan,
    max_spot_fraction,
    max_spot_savings,
    plan_spot_conversions,
    price_inventory,
)
from .cost_analyzer import CostAnalyzer
from .rebalancing import ACTION_MINUTES, RebalancingSimulator

__all__ = [
    "HOURS_PER_MONTH",
    "PricedInventory",
    "PricedNode",
    "SpotPlan",
    "max_spot_fraction",
    "max_spot_savings",
    "plan_spot_conversions",
    "price_inventory",
    "CostAnalyzer",
    "RebalancingSimulator",
    "ACTION_MINUTES",
]
