"""
Cost Model - monthly pricing of a node inventory.

Shared by CostAnalyzer and RebalancingSimulator so the dashboard figures and
the simulation deltas are always computed the same way from the same
PricingSnapshot.

A node is priced at its capacity type's hourly rate x HOURS_PER_MONTH. Nodes
whose (region, instance type) has no price, and spot nodes whose type has no
spot price, are reported as unpriced and left out of every sum.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from karpwiz.core.exceptions import IncompletePricingDataException
from karpwiz.models.catalog import Preset
from karpwiz.models.cost import CostBreakdown
from karpwiz.models.inventory import NodeInfo, NodeInventorySnapshot
from karpwiz.models.pricing import InstancePrice, PricingSnapshot, instance_architecture

HOURS_PER_MONTH = 730


@dataclass
class PricedNode:
    node: NodeInfo
    price: InstancePrice

    @property
    def hourly(self) -> float:
        return self.price.spot if self.node.is_spot else self.price.on_demand

    @property
    def monthly(self) -> float:
        return self.hourly * HOURS_PER_MONTH

    @property
    def spot_saving(self) -> Optional[float]:
        """Monthly saving from moving this node to spot; None when not eligible."""
        if self.node.is_spot or not self.price.spot_available_in(self.node.zone):
            return None
        if self.price.spot >= self.price.on_demand:
            return None
        return (self.price.on_demand - self.price.spot) * HOURS_PER_MONTH


@dataclass
class PricedInventory:
    priced: List[PricedNode] = field(default_factory=list)
    unpriced: List[NodeInfo] = field(default_factory=list)

    def breakdown(self, convert_to_spot: Optional[Set[str]] = None) -> CostBreakdown:
        """Monthly cost, optionally with the named on-demand nodes billed as spot."""
        convert_to_spot = convert_to_spot or set()
        ondemand = 0.0
        spot = 0.0
        for item in self.priced:
            if item.node.is_spot:
                spot += item.price.spot * HOURS_PER_MONTH
            elif item.node.name in convert_to_spot:
                spot += item.price.spot * HOURS_PER_MONTH
            else:
                ondemand += item.price.on_demand * HOURS_PER_MONTH
        ondemand = round(ondemand, 2)
        spot = round(spot, 2)
        return CostBreakdown(total=round(ondemand + spot, 2), ondemand=ondemand, spot=spot)


@dataclass
class SpotPlan:
    """Which on-demand nodes the optimized mix moves to spot."""
    ceiling: int
    conversions: List[PricedNode] = field(default_factory=list)
    blocked: List[PricedNode] = field(default_factory=list)

    @property
    def converted_names(self) -> Set[str]:
        return {item.node.name for item in self.conversions}


def price_inventory(nodes: Iterable[NodeInfo], pricing: PricingSnapshot) -> PricedInventory:
    result = PricedInventory()
    for node in nodes:
        try:
            price = pricing.require(node.region, node.instance_type)
        except IncompletePricingDataException:
            result.unpriced.append(node)
            continue
        if node.is_spot and price.spot is None:
            result.unpriced.append(node)
            continue
        result.priced.append(PricedNode(node=node, price=price))
    return result


def max_spot_fraction(preset: Optional[Preset], default_percentage: int) -> float:
    """Spot ceiling: the preset's spotRatio when given, otherwise the policy default."""
    if preset is not None:
        return preset.max_spot_fraction
    return default_percentage / 100.0


def plan_spot_conversions(priced: List[PricedNode], fraction: float) -> SpotPlan:
    """Pick the on-demand nodes to bill as spot without exceeding the ceiling.

    The ceiling is floor(fraction x priced nodes) spot nodes in total. Eligible
    nodes are taken by largest saving first, ties broken by node name.
    """
    ceiling = math.floor(fraction * len(priced) + 1e-9)
    already_spot = sum(1 for item in priced if item.node.is_spot)
    budget = max(0, ceiling - already_spot)

    eligible = [item for item in priced if item.spot_saving is not None]
    eligible.sort(key=lambda item: (-item.spot_saving, item.node.name))
    return SpotPlan(ceiling=ceiling, conversions=eligible[:budget], blocked=eligible[budget:])


def savings_percentage(amount: float, current_total: float) -> float:
    if current_total <= 0:
        return 0.0
    return round(100.0 * amount / current_total, 1)


def cheapest_monthly_rate(item: PricedNode, pricing: PricingSnapshot) -> float:
    """Lowest monthly rate the node could bill at without consolidation.

    Candidates are its own type and every priced same-architecture type in its
    region with at least its shape, at on-demand or, where offered in the
    node's zone, spot prices.
    """
    node = item.node
    vcpu = item.price.vcpu if item.price.has_shape else node.cpu_cores
    memory = item.price.memory_gb if item.price.has_shape else node.memory_gb
    arch = instance_architecture(node.instance_type)

    rates = [item.hourly]
    if item.price.spot_available_in(node.zone):
        rates.append(item.price.spot)
    for instance_type in pricing.instance_types(node.region):
        candidate = pricing.lookup(node.region, instance_type)
        if not candidate.has_shape or instance_architecture(instance_type) != arch:
            continue
        if candidate.vcpu < vcpu or candidate.memory_gb < memory:
            continue
        rates.append(candidate.on_demand)
        if candidate.spot_available_in(node.zone):
            rates.append(candidate.spot)
    return min(rates) * HOURS_PER_MONTH


def max_spot_savings(inventory: NodeInventorySnapshot, pricing: PricingSnapshot) -> float:
    """Upper bound on rebalancing savings when no node is removed.

    Every priced node, spot or on-demand, billed at its cheapest monthly rate.
    Covers spot conversion, instance-type replacement and both combined.
    """
    priced = price_inventory(inventory.nodes, pricing).priced
    return round(sum(max(0.0, item.monthly - cheapest_monthly_rate(item, pricing)) for item in priced), 2)


def group_by_instance_type(items: Iterable[PricedNode]) -> Dict[str, List[PricedNode]]:
    groups: Dict[str, List[PricedNode]] = {}
    for item in sorted(items, key=lambda i: (i.node.instance_type, i.node.name)):
        groups.setdefault(item.node.instance_type, []).append(item)
    return groups
