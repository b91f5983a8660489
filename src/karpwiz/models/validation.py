"""Validation utilities for inventory and pricing snapshots."""

from collections import Counter
from typing import List

from .inventory import NodeInventorySnapshot
from .pricing import PricingSnapshot


def validate_inventory_snapshot(inventory: NodeInventorySnapshot) -> List[str]:
    """Validate an inventory snapshot and return validation errors."""
    errors = []

    duplicates = sorted(name for name, count in Counter(n.name for n in inventory.nodes).items() if count > 1)
    if duplicates:
        errors.append(f"Duplicate node names: {', '.join(duplicates)}")

    for node in inventory.nodes:
        if node.zone != "unknown" and node.region != "unknown" and not node.zone.startswith(node.region):
            errors.append(f"Node {node.name} zone {node.zone} is outside region {node.region}")

    return errors


def validate_pricing_snapshot(pricing: PricingSnapshot) -> List[str]:
    """Validate a pricing snapshot and return validation errors."""
    errors = []

    if not pricing.regions:
        errors.append("Pricing snapshot has no regions")

    for region, prices in pricing.regions.items():
        for instance_type, price in prices.items():
            if price.spot is not None and price.spot > price.on_demand:
                errors.append(f"{region}/{instance_type}: spot price above on-demand price")
            if price.spot_zones is not None and any(not z.startswith(region) for z in price.spot_zones):
                errors.append(f"{region}/{instance_type}: spot zone outside region")

    return errors
