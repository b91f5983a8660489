# src/karpwiz/analytics/rebalancing.py
"""
Rebalancing Simulator - plans and dry-runs node mix changes

recommend() builds a plan of consolidation, instance-type replacement and
spot conversion actions; simulate() applies a plan to a copy of the inventory
and re-prices it with the shared cost model. Nothing here talks to the
cluster, and the caller's inventory is never modified.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import structlog

from karpwiz.analytics.cost_model import (
    HOURS_PER_MONTH,
    PricedNode,
    group_by_instance_type,
    max_spot_fraction,
    plan_spot_conversions,
    price_inventory,
    savings_percentage,
)
from karpwiz.config.settings import SpotPolicySettings
from karpwiz.core.exceptions import DataValidationException
from karpwiz.core.utils import format_currency, format_duration
from karpwiz.models.catalog import Preset
from karpwiz.models.cost import CostBreakdown
from karpwiz.models.inventory import NodeInfo, NodeInventorySnapshot
from karpwiz.models.pricing import InstancePrice, PricingSnapshot, instance_architecture
from karpwiz.models.rebalancing import (
    ActionKind,
    EstimatedSavings,
    RebalancingAction,
    RebalancingRecommendations,
    RebalancingStrategy,
    SimulationResult,
    SimulationSavings,
)
from karpwiz.models.validation import validate_inventory_snapshot

logger = structlog.get_logger(__name__)

# Minutes per node for each action type (drain + replace/terminate)
ACTION_MINUTES: Dict[str, int] = {
    ActionKind.CONSOLIDATE.value: 8,
    ActionKind.REPLACE_INSTANCE_TYPE.value: 12,
    ActionKind.CONVERT_TO_SPOT.value: 10,
}

MIN_SPOT_FAMILIES = 3


def _nodes(count: int) -> str:
    return "node" if count == 1 else "nodes"


def _spot_description(count: int, instance_types: str, saving: float) -> str:
    return (
        f"Move {count} on-demand {instance_types} {_nodes(count)} to spot, "
        f"saving {format_currency(saving)}/month"
    )


@dataclass
class SimulationOutcome:
    current: CostBreakdown
    projected: CostBreakdown
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    minutes: int = 0

    @property
    def savings(self) -> float:
        return round(self.current.total - self.projected.total, 2)


class RebalancingSimulator:
    """Rebalancing recommendations and dry-run simulation"""

    def __init__(self, policy: Optional[SpotPolicySettings] = None):
        self.policy = policy or SpotPolicySettings()
        self.logger = logger.bind(analytics="rebalancing")

    # ── recommend ─────────────────────────────────────────────────────────────

    def recommend(
        self,
        inventory: NodeInventorySnapshot,
        pricing: PricingSnapshot,
        preset: Optional[Preset] = None,
    ) -> RebalancingRecommendations:
        self._check_inventory(inventory)

        # Planning copy; later steps see the effect of earlier ones
        working: Dict[str, NodeInfo] = {node.name: node.model_copy(deep=True) for node in inventory.nodes}
        recommendations = RebalancingRecommendations()

        self._plan_consolidation(working, pricing, recommendations)
        self._plan_instance_types(working, pricing, recommendations)
        self._plan_spot(working, pricing, preset, recommendations)

        outcome = self._apply(inventory, pricing, recommendations.actions)
        recommendations.estimated_savings = EstimatedSavings(
            monthly=format_currency(outcome.savings, pricing.currency),
            percentage=savings_percentage(outcome.savings, outcome.current.total),
        )

        self.logger.info(
            "Rebalancing recommendations generated",
            nodes=inventory.total_nodes,
            actions=len(recommendations.actions),
            estimated_monthly_savings=outcome.savings,
        )
        return recommendations

    def _plan_consolidation(
        self,
        working: Dict[str, NodeInfo],
        pricing: PricingSnapshot,
        recommendations: RebalancingRecommendations,
    ) -> None:
        target = self.policy.target_utilization
        without_data = []

        for (instance_type, region), nodes in self._region_groups(working.values()).items():
            if not all(node.has_utilization for node in nodes):
                if instance_type not in without_data:
                    without_data.append(instance_type)
                continue
            if len(nodes) < 2:
                continue

            cpu_per_node = min(node.cpu_cores for node in nodes)
            memory_per_node = min(node.memory_gb for node in nodes)
            if cpu_per_node <= 0 or memory_per_node <= 0:
                if instance_type not in without_data:
                    without_data.append(instance_type)
                continue

            cpu_requested = sum(node.cpu_requested_cores for node in nodes)
            memory_requested = sum(node.memory_requested_gb for node in nodes)
            required = max(
                1,
                math.ceil(cpu_requested / (cpu_per_node * target) - 1e-9),
                math.ceil(memory_requested / (memory_per_node * target) - 1e-9),
            )
            surplus = len(nodes) - required
            if surplus <= 0:
                continue

            # Remove the most expensive nodes first; unpriced ones last
            def removal_order(node: NodeInfo) -> Tuple[float, str]:
                priced = price_inventory([node], pricing).priced
                return (-priced[0].monthly if priced else 0.0, node.name)

            removed = sorted(nodes, key=removal_order)[:surplus]
            saving = sum(item.monthly for item in price_inventory(removed, pricing).priced)
            names = sorted(node.name for node in removed)
            description = (
                f"Consolidate {surplus} of {len(nodes)} {instance_type} nodes in {region}: pod requests "
                f"({cpu_requested:.1f} vCPU, {memory_requested:.1f} GiB) fit on {required} "
                f"{_nodes(required)} at {target:.0%} utilization, saving {format_currency(saving)}/month"
            )
            recommendations.actions.append(RebalancingAction(
                kind=ActionKind.CONSOLIDATE,
                instance_type=instance_type,
                node_names=names,
                description=description,
                monthly_savings=round(saving, 2),
            ))
            recommendations.consolidation.append(description)
            for name in names:
                del working[name]

        if without_data:
            recommendations.consolidation.append(
                f"No utilization data for {', '.join(without_data)}; enable Karpenter consolidation "
                f"so underutilized nodes are removed automatically"
            )

    def _plan_instance_types(
        self,
        working: Dict[str, NodeInfo],
        pricing: PricingSnapshot,
        recommendations: RebalancingRecommendations,
    ) -> None:
        for (instance_type, region), nodes in self._region_groups(working.values()).items():
            current = pricing.lookup(region, instance_type)
            if current is None:
                continue
            vcpu = current.vcpu if current.has_shape else max(node.cpu_cores for node in nodes)
            memory = current.memory_gb if current.has_shape else max(node.memory_gb for node in nodes)
            arch = instance_architecture(instance_type)

            same_arch = self._cheapest_fit(pricing, region, current, vcpu, memory, arch)
            if same_arch is not None:
                target_type, target = same_arch
                replaced = []
                saving = 0.0
                for node in nodes:
                    delta = self._replacement_saving(node, current, target)
                    if delta is not None and delta > 0:
                        replaced.append(node)
                        saving += delta
                if replaced and saving >= self.policy.min_monthly_savings:
                    names = sorted(node.name for node in replaced)
                    description = (
                        f"Replace {len(names)} {instance_type} {_nodes(len(names))} in {region} with "
                        f"{target_type} ({target.vcpu} vCPU, {target.memory_gb:g} GiB), "
                        f"saving {format_currency(saving)}/month"
                    )
                    recommendations.actions.append(RebalancingAction(
                        kind=ActionKind.REPLACE_INSTANCE_TYPE,
                        instance_type=instance_type,
                        target_instance_type=target_type,
                        node_names=names,
                        description=description,
                        monthly_savings=round(saving, 2),
                    ))
                    recommendations.instance_type_optimization.append(description)
                    for node in replaced:
                        self._replace(node, target_type, target)
                    continue

            if arch == "amd64":
                graviton = self._cheapest_fit(pricing, region, current, vcpu, memory, "arm64")
                if graviton is not None:
                    target_type, target = graviton
                    on_demand = [node for node in nodes if not node.is_spot]
                    saving = (current.on_demand - target.on_demand) * HOURS_PER_MONTH * len(on_demand)
                    if on_demand and saving >= self.policy.min_monthly_savings:
                        recommendations.instance_type_optimization.append(
                            f"{instance_type} workloads that support arm64 could run on {target_type} "
                            f"(Graviton) for {format_currency(saving)}/month less"
                        )

    def _plan_spot(
        self,
        working: Dict[str, NodeInfo],
        pricing: PricingSnapshot,
        preset: Optional[Preset],
        recommendations: RebalancingRecommendations,
    ) -> None:
        fraction = max_spot_fraction(preset, self.policy.default_max_spot_percentage)
        priced = price_inventory(working.values(), pricing)
        plan = plan_spot_conversions(priced.priced, fraction)

        converted: List[PricedNode] = []
        for instance_type, items in group_by_instance_type(plan.conversions).items():
            saving = sum(item.spot_saving for item in items)
            if saving < self.policy.min_monthly_savings:
                continue
            names = [item.node.name for item in items]
            description = _spot_description(len(names), instance_type, saving)
            recommendations.actions.append(RebalancingAction(
                kind=ActionKind.CONVERT_TO_SPOT,
                instance_type=instance_type,
                node_names=names,
                description=description,
                monthly_savings=round(saving, 2),
            ))
            recommendations.spot_instance_strategy.append(description)
            converted.extend(items)

        if plan.blocked:
            recommendations.spot_instance_strategy.append(
                f"Keep {len(plan.blocked)} spot-eligible {_nodes(len(plan.blocked))} on-demand: "
                f"the spot share is capped at {round(fraction * 100)}%"
            )

        spot_families = sorted(
            {item.node.instance_family for item in priced.priced if item.node.is_spot}
            | {item.node.instance_family for item in converted}
        )
        spot_count = sum(1 for item in priced.priced if item.node.is_spot) + len(converted)
        if spot_count >= 2 and len(spot_families) < MIN_SPOT_FAMILIES:
            recommendations.spot_instance_strategy.append(
                f"Spot capacity sits in {len(spot_families)} instance "
                f"{'family' if len(spot_families) == 1 else 'families'} ({', '.join(spot_families)}); "
                f"allow at least {MIN_SPOT_FAMILIES} families in the provisioner to reduce interruption risk"
            )

    # ── simulate ──────────────────────────────────────────────────────────────

    def simulate(
        self,
        inventory: NodeInventorySnapshot,
        pricing: PricingSnapshot,
        recommendations: RebalancingRecommendations,
        strategy: Union[RebalancingStrategy, str] = RebalancingStrategy.ALL,
    ) -> SimulationResult:
        """Dry-run the recommended actions selected by `strategy`."""
        self._check_inventory(inventory)
        strategy = RebalancingStrategy(strategy)
        actions = [action for action in recommendations.actions if action.kind in strategy.kinds]

        outcome = self._apply(inventory, pricing, actions)

        self.logger.info(
            "Rebalancing simulated",
            strategy=strategy.value,
            applied=len(outcome.applied),
            skipped=len(outcome.skipped),
            savings=outcome.savings,
            minutes=outcome.minutes,
        )

        return SimulationResult(
            savings=SimulationSavings(
                amount=format_currency(outcome.savings, pricing.currency),
                percentage=savings_percentage(outcome.savings, outcome.current.total),
            ),
            actions=outcome.applied,
            estimated_time=format_duration(outcome.minutes),
            current=outcome.current,
            projected=outcome.projected,
            skipped_actions=outcome.skipped,
        )

    def _apply(
        self,
        inventory: NodeInventorySnapshot,
        pricing: PricingSnapshot,
        actions: List[RebalancingAction],
    ) -> SimulationOutcome:
        nodes: Dict[str, NodeInfo] = {node.name: node.model_copy(deep=True) for node in inventory.nodes}
        outcome = SimulationOutcome(
            current=price_inventory(inventory.nodes, pricing).breakdown(),
            projected=CostBreakdown(),
        )
        parallel = self.policy.max_parallel_disruptions

        for action in actions:
            present = [name for name in action.node_names if name in nodes]
            affected = []
            description = action.description

            if action.kind == ActionKind.CONSOLIDATE:
                for name in present:
                    del nodes[name]
                affected = present

            elif action.kind == ActionKind.REPLACE_INSTANCE_TYPE:
                for name in present:
                    node = nodes[name]
                    target = pricing.lookup(node.region, action.target_instance_type)
                    if node.instance_type == action.instance_type and target is not None and target.has_shape:
                        self._replace(node, action.target_instance_type, target)
                        affected.append(name)

            elif action.kind == ActionKind.CONVERT_TO_SPOT:
                saving = 0.0
                for name in present:
                    node = nodes[name]
                    price = pricing.lookup(node.region, node.instance_type)
                    if not node.is_spot and price is not None and price.spot_available_in(node.zone):
                        node.is_spot = True
                        affected.append(name)
                        saving += (price.on_demand - price.spot) * HOURS_PER_MONTH

                # Planned against replaced types; reword when the replacement did not run
                converted_types = sorted({nodes[name].instance_type for name in affected})
                if affected and converted_types != [action.instance_type]:
                    description = _spot_description(len(affected), ", ".join(converted_types), saving)

            if not affected:
                outcome.skipped.append(f"{description} (no applicable nodes)")
                continue

            if len(affected) == len(action.node_names):
                outcome.applied.append(description)
            else:
                outcome.applied.append(f"{description} ({len(affected)} of {len(action.node_names)} nodes)")
            outcome.minutes += ACTION_MINUTES[ActionKind(action.kind).value] * math.ceil(len(affected) / parallel)

        outcome.projected = price_inventory(nodes.values(), pricing).breakdown()
        return outcome

    # ── helpers ───────────────────────────────────────────────────────────────

    def _check_inventory(self, inventory: NodeInventorySnapshot) -> None:
        errors = validate_inventory_snapshot(inventory)
        if errors:
            raise DataValidationException("inventory", inventory.total_nodes, "; ".join(errors))

    @staticmethod
    def _region_groups(nodes) -> Dict[Tuple[str, str], List[NodeInfo]]:
        groups: Dict[Tuple[str, str], List[NodeInfo]] = {}
        for node in sorted(nodes, key=lambda n: (n.instance_type, n.region, n.name)):
            groups.setdefault((node.instance_type, node.region), []).append(node)
        return groups

    @staticmethod
    def _cheapest_fit(
        pricing: PricingSnapshot,
        region: str,
        current: InstancePrice,
        vcpu: float,
        memory: float,
        arch: str,
    ) -> Optional[Tuple[str, InstancePrice]]:
        """Cheapest priced type with at least the given shape and a lower on-demand price."""
        candidates = []
        for instance_type in pricing.instance_types(region):
            price = pricing.lookup(region, instance_type)
            if not price.has_shape or instance_architecture(instance_type) != arch:
                continue
            if price.vcpu >= vcpu and price.memory_gb >= memory and price.on_demand < current.on_demand:
                candidates.append((price.on_demand, instance_type, price))
        if not candidates:
            return None
        _, instance_type, price = min(candidates, key=lambda c: (c[0], c[1]))
        return instance_type, price

    @staticmethod
    def _replacement_saving(node: NodeInfo, current: InstancePrice, target: InstancePrice) -> Optional[float]:
        if not node.is_spot:
            return (current.on_demand - target.on_demand) * HOURS_PER_MONTH
        if current.spot is None or not target.spot_available_in(node.zone):
            return None
        return (current.spot - target.spot) * HOURS_PER_MONTH

    @staticmethod
    def _replace(node: NodeInfo, instance_type: str, target: InstancePrice) -> None:
        node.instance_type = instance_type
        node.cpu_cores = target.vcpu
        node.memory_gb = target.memory_gb
