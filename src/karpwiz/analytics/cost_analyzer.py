# src/karpwiz/analytics/cost_analyzer.py
"""
Cost Analyzer - current vs. potential spend of a node inventory
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

import structlog

from karpwiz.analytics.cost_model import (
    PricedInventory,
    SpotPlan,
    group_by_instance_type,
    max_spot_fraction,
    plan_spot_conversions,
    price_inventory,
    savings_percentage,
)
from karpwiz.config.settings import SpotPolicySettings
from karpwiz.core.utils import format_currency
from karpwiz.models.catalog import Preset
from karpwiz.models.cost import CostSavings, CostSnapshot
from karpwiz.models.inventory import NodeInventorySnapshot
from karpwiz.models.pricing import PricingSnapshot
from karpwiz.models.validation import validate_inventory_snapshot

logger = structlog.get_logger(__name__)


def _nodes(count: int) -> str:
    return "node" if count == 1 else "nodes"


@dataclass
class RuleContext:
    inventory: NodeInventorySnapshot
    priced: PricedInventory
    plan: SpotPlan
    fraction: float


class CostAnalyzer:
    """Computes the CostSnapshot shown on the cost dashboard"""

    def __init__(self, policy: Optional[SpotPolicySettings] = None):
        self.policy = policy or SpotPolicySettings()
        self.logger = logger.bind(analytics="cost")

        # Evaluated in this order; each rule emits at most one string
        self.rules: List[Callable[[RuleContext], List[str]]] = [
            self._incomplete_pricing_rule,
            self._spot_migration_rule,
            self._spot_ceiling_rule,
            self._no_spot_offering_rule,
        ]

    def analyze(
        self,
        inventory: NodeInventorySnapshot,
        pricing: PricingSnapshot,
        preset: Optional[Preset] = None,
    ) -> CostSnapshot:
        """Price the inventory as it runs today and under the optimized spot mix."""

        for error in validate_inventory_snapshot(inventory):
            self.logger.warning("Inventory validation issue", error=error)

        fraction = max_spot_fraction(preset, self.policy.default_max_spot_percentage)
        priced = price_inventory(inventory.nodes, pricing)
        plan = plan_spot_conversions(priced.priced, fraction)

        current = priced.breakdown()
        potential = priced.breakdown(convert_to_spot=plan.converted_names)
        amount = round(current.total - potential.total, 2)

        context = RuleContext(inventory=inventory, priced=priced, plan=plan, fraction=fraction)
        recommendations: List[str] = []
        for rule in self.rules:
            recommendations.extend(rule(context))

        snapshot = CostSnapshot(
            current=current,
            potential=potential,
            savings=CostSavings(amount=amount, percentage=savings_percentage(amount, current.total)),
            recommendations=recommendations,
            unpriced_nodes=sorted(node.name for node in priced.unpriced),
            max_spot_percentage=round(fraction * 100),
        )

        self.logger.info(
            "Cost analysis completed",
            nodes=inventory.total_nodes,
            unpriced=len(priced.unpriced),
            current_total=current.total,
            potential_total=potential.total,
            savings=amount,
            preset=preset.id if preset else None,
        )
        return snapshot

    # ── Rules ─────────────────────────────────────────────────────────────────

    def _incomplete_pricing_rule(self, context: RuleContext) -> List[str]:
        unpriced = context.priced.unpriced
        if not unpriced:
            return []
        keys = sorted({f"{node.instance_type} in {node.region}" for node in unpriced})
        return [
            f"Pricing data missing for {len(unpriced)} {_nodes(len(unpriced))} "
            f"({', '.join(keys)}); excluded from cost totals"
        ]

    def _spot_migration_rule(self, context: RuleContext) -> List[str]:
        # One instance of the rule per instance type, largest saving first
        candidates = []
        for instance_type, items in group_by_instance_type(context.plan.conversions).items():
            saving = sum(item.spot_saving for item in items)
            if saving >= self.policy.min_monthly_savings:
                candidates.append((saving, instance_type, len(items)))

        candidates.sort(key=lambda c: (-c[0], c[1]))
        return [
            f"{count} on-demand {_nodes(count)} of type {instance_type} could move to spot, "
            f"saving {format_currency(saving)}/month"
            for saving, instance_type, count in candidates
        ]

    def _spot_ceiling_rule(self, context: RuleContext) -> List[str]:
        blocked = context.plan.blocked
        if not blocked:
            return []
        return [
            f"Spot share is capped at {round(context.fraction * 100)}%: {len(blocked)} more on-demand "
            f"{_nodes(len(blocked))} could use cheaper spot capacity but would exceed the ceiling"
        ]

    def _no_spot_offering_rule(self, context: RuleContext) -> List[str]:
        stuck = [
            item for item in context.priced.priced
            if not item.node.is_spot and not item.price.spot_available_in(item.node.zone)
        ]
        if not stuck:
            return []
        types = sorted({item.node.instance_type for item in stuck})
        return [
            f"{len(stuck)} on-demand {_nodes(len(stuck))} ({', '.join(types)}) cannot move to spot: "
            f"no spot offering in their zone; consider a spot-capable instance family"
        ]
