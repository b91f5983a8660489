"""
Tests for rebalancing recommendations and simulation
"""
import pytest

from conftest import make_inventory, make_node
from karpwiz.analytics.cost_model import max_spot_savings
from karpwiz.analytics.rebalancing import RebalancingSimulator
from karpwiz.config.settings import SpotPolicySettings
from karpwiz.core.exceptions import DataValidationException
from karpwiz.models.pricing import InstancePrice, PricingSnapshot
from karpwiz.models.rebalancing import ActionKind, RebalancingStrategy


@pytest.fixture
def simulator(policy):
    return RebalancingSimulator(policy)


@pytest.fixture
def m5_only_pricing():
    """A single priced type, so only spot conversions can apply."""
    return PricingSnapshot(regions={
        "us-east-1": {"m5.large": InstancePrice(on_demand=0.1, spot=0.03, vcpu=2, memory_gb=8)},
    })


@pytest.fixture
def busy_nodes():
    """Four m5.large nodes whose pods would fit on one."""
    return make_inventory(*(
        make_node(f"node-{i}", cpu_requested_cores=0.3, memory_requested_gb=1.0)
        for i in range(1, 5)
    ))


class TestSpotStrategy:
    """Spot conversions under the ceiling"""

    def test_recommendations(self, simulator, four_on_demand, m5_only_pricing):
        recommendations = simulator.recommend(four_on_demand, m5_only_pricing)

        assert recommendations.spot_instance_strategy == [
            "Move 2 on-demand m5.large nodes to spot, saving $102.20/month",
            "Keep 2 spot-eligible nodes on-demand: the spot share is capped at 70%",
            "Spot capacity sits in 1 instance family (m5); allow at least 3 families in the "
            "provisioner to reduce interruption risk",
        ]
        assert recommendations.instance_type_optimization == []
        assert recommendations.estimated_savings.monthly == "$102.20"
        assert recommendations.estimated_savings.percentage == pytest.approx(35.0)

    def test_no_utilization_data_gives_text_only(self, simulator, four_on_demand, m5_only_pricing):
        recommendations = simulator.recommend(four_on_demand, m5_only_pricing)
        assert len(recommendations.consolidation) == 1
        assert recommendations.consolidation[0].startswith("No utilization data for m5.large")
        assert not any(char.isdigit() for char in recommendations.consolidation[0].replace("m5.large", ""))
        assert all(action.kind != ActionKind.CONSOLIDATE for action in recommendations.actions)

    def test_simulate(self, simulator, four_on_demand, m5_only_pricing):
        recommendations = simulator.recommend(four_on_demand, m5_only_pricing)
        result = simulator.simulate(four_on_demand, m5_only_pricing, recommendations)

        assert result.savings.amount == "$102.20"
        assert result.savings.percentage == pytest.approx(35.0)
        assert result.actions == ["Move 2 on-demand m5.large nodes to spot, saving $102.20/month"]
        assert result.estimated_time == "20 minutes"
        assert result.current.total == pytest.approx(292.0)
        assert result.projected.total == pytest.approx(189.8)

    def test_simulated_savings_within_theoretical_bound(self, simulator, four_on_demand, m5_only_pricing):
        recommendations = simulator.recommend(four_on_demand, m5_only_pricing)
        result = simulator.simulate(four_on_demand, m5_only_pricing, recommendations)
        simulated = result.current.total - result.projected.total
        assert simulated <= max_spot_savings(four_on_demand, m5_only_pricing) + 1e-9

    def test_spot_only_run_describes_original_types(self, simulator, replacement_pricing):
        inventory = make_inventory(
            make_node("node-1", instance_type="m5.xlarge"),
            make_node("node-2", instance_type="m5.xlarge"),
        )
        recommendations = simulator.recommend(inventory, replacement_pricing)
        assert recommendations.spot_instance_strategy[0].startswith("Move 1 on-demand t3.xlarge node")

        result = simulator.simulate(inventory, replacement_pricing, recommendations, "spot")

        # The replacement did not run, so node-1 goes to spot as an m5.xlarge
        assert result.actions == ["Move 1 on-demand m5.xlarge node to spot, saving $102.20/month"]
        assert result.savings.amount == "$102.20"
        assert result.projected.total == pytest.approx(189.8)

    def test_parallel_disruptions_shorten_estimate(self, four_on_demand, m5_only_pricing):
        simulator = RebalancingSimulator(SpotPolicySettings(max_parallel_disruptions=2))
        recommendations = simulator.recommend(four_on_demand, m5_only_pricing)
        result = simulator.simulate(four_on_demand, m5_only_pricing, recommendations)
        assert result.estimated_time == "10 minutes"

    def test_conversion_without_spot_price_is_skipped(self, simulator, four_on_demand, m5_only_pricing):
        recommendations = simulator.recommend(four_on_demand, m5_only_pricing)
        no_spot = PricingSnapshot(regions={
            "us-east-1": {"m5.large": InstancePrice(on_demand=0.1, spot=None, vcpu=2, memory_gb=8)},
        })
        result = simulator.simulate(four_on_demand, no_spot, recommendations)
        assert result.actions == []
        assert len(result.skipped_actions) == 1
        assert result.savings.amount == "$0.00"

    def test_preset_caps_conversions(self, simulator, four_on_demand, m5_only_pricing, catalog):
        recommendations = simulator.recommend(four_on_demand, m5_only_pricing, catalog.resolve("performance"))
        assert [a for a in recommendations.actions if a.kind == ActionKind.CONVERT_TO_SPOT] == []
        assert recommendations.estimated_savings.monthly == "$0.00"


class TestConsolidation:
    """Packing nodes by their pods' requests"""

    def test_surplus_nodes_removed(self, simulator, busy_nodes, m5_only_pricing):
        recommendations = simulator.recommend(busy_nodes, m5_only_pricing)
        consolidate = [a for a in recommendations.actions if a.kind == ActionKind.CONSOLIDATE]

        assert len(consolidate) == 1
        assert consolidate[0].node_names == ["node-1", "node-2", "node-3"]
        assert consolidate[0].monthly_savings == pytest.approx(219.0)
        assert recommendations.consolidation == [
            "Consolidate 3 of 4 m5.large nodes in us-east-1: pod requests (1.2 vCPU, 4.0 GiB) fit on 1 node "
            "at 75% utilization, saving $219.00/month"
        ]
        assert recommendations.estimated_savings.percentage == pytest.approx(75.0)

    def test_remaining_node_considered_for_spot(self, simulator, busy_nodes, m5_only_pricing):
        recommendations = simulator.recommend(busy_nodes, m5_only_pricing)
        # One node left: a 70% ceiling allows no spot node
        assert recommendations.spot_instance_strategy == [
            "Keep 1 spot-eligible node on-demand: the spot share is capped at 70%"
        ]

    def test_simulate_consolidation(self, simulator, busy_nodes, m5_only_pricing):
        recommendations = simulator.recommend(busy_nodes, m5_only_pricing)
        result = simulator.simulate(busy_nodes, m5_only_pricing, recommendations, "consolidation")
        assert result.savings.amount == "$219.00"
        assert result.projected.total == pytest.approx(73.0)
        assert result.estimated_time == "24 minutes"

    def test_nodes_are_packed_within_their_region(self, simulator):
        price = InstancePrice(on_demand=0.1, spot=0.03, vcpu=2, memory_gb=8)
        pricing = PricingSnapshot(regions={"us-east-1": {"m5.large": price}, "us-west-2": {"m5.large": price}})
        inventory = make_inventory(
            make_node("east-1", cpu_requested_cores=0.3, memory_requested_gb=1.0),
            make_node("east-2", cpu_requested_cores=0.3, memory_requested_gb=1.0),
            make_node("west-1", zone="us-west-2a", cpu_requested_cores=0.3, memory_requested_gb=1.0),
            make_node("west-2", zone="us-west-2a", cpu_requested_cores=0.3, memory_requested_gb=1.0),
        )
        recommendations = simulator.recommend(inventory, pricing)
        consolidate = [a for a in recommendations.actions if a.kind == ActionKind.CONSOLIDATE]

        assert [a.node_names for a in consolidate] == [["east-1"], ["west-1"]]
        assert recommendations.consolidation[0].startswith("Consolidate 1 of 2 m5.large nodes in us-east-1")
        assert recommendations.consolidation[1].startswith("Consolidate 1 of 2 m5.large nodes in us-west-2")

    def test_fully_used_nodes_are_kept(self, simulator, m5_only_pricing):
        inventory = make_inventory(*(
            make_node(f"node-{i}", cpu_requested_cores=1.4, memory_requested_gb=2.0) for i in range(1, 4)
        ))
        recommendations = simulator.recommend(inventory, m5_only_pricing)
        assert recommendations.consolidation == []

    def test_missing_nodes_are_skipped(self, simulator, busy_nodes, m5_only_pricing):
        recommendations = simulator.recommend(busy_nodes, m5_only_pricing)
        remaining = make_inventory(make_node("node-4", cpu_requested_cores=0.3, memory_requested_gb=1.0))
        result = simulator.simulate(remaining, m5_only_pricing, recommendations, RebalancingStrategy.CONSOLIDATION)
        assert result.actions == []
        assert result.skipped_actions[0].endswith("(no applicable nodes)")
        assert result.estimated_time == "0 minutes"

    def test_partially_applicable_action(self, simulator, busy_nodes, m5_only_pricing):
        recommendations = simulator.recommend(busy_nodes, m5_only_pricing)
        remaining = make_inventory(*(
            make_node(name, cpu_requested_cores=0.3, memory_requested_gb=1.0) for name in ("node-1", "node-4")
        ))
        result = simulator.simulate(remaining, m5_only_pricing, recommendations, "consolidation")
        assert result.actions[0].endswith("(1 of 3 nodes)")
        assert result.estimated_time == "8 minutes"


class TestInstanceTypeOptimization:
    """Cheaper instance types with at least the same shape"""

    def test_cheaper_same_shape_type(self, simulator, four_on_demand, pricing):
        recommendations = simulator.recommend(four_on_demand, pricing)
        assert recommendations.instance_type_optimization == [
            "Replace 4 m5.large nodes in us-east-1 with t3.large (2 vCPU, 8 GiB), saving $58.40/month"
        ]
        result = simulator.simulate(four_on_demand, pricing, recommendations, "instance-type")
        assert result.savings.amount == "$58.40"
        assert result.estimated_time == "48 minutes"

    def test_replacement_then_spot(self, simulator, replacement_pricing):
        inventory = make_inventory(
            make_node("node-1", instance_type="m5.xlarge"),
            make_node("node-2", instance_type="m5.xlarge"),
        )
        recommendations = simulator.recommend(inventory, replacement_pricing)

        kinds = [action.kind for action in recommendations.actions]
        assert kinds == [ActionKind.REPLACE_INSTANCE_TYPE, ActionKind.CONVERT_TO_SPOT]
        assert recommendations.spot_instance_strategy[0] == (
            "Move 1 on-demand t3.xlarge node to spot, saving $76.65/month"
        )

        result = simulator.simulate(inventory, replacement_pricing, recommendations)
        assert result.estimated_time == "34 minutes"
        assert result.projected.total == pytest.approx(142.35)
        assert recommendations.estimated_savings.monthly == result.savings.amount

    def test_graviton_advice(self, simulator):
        pricing = PricingSnapshot(regions={
            "us-east-1": {
                "m5.large": InstancePrice(on_demand=0.1, spot=0.03, vcpu=2, memory_gb=8),
                "m6g.large": InstancePrice(on_demand=0.077, spot=0.023, vcpu=2, memory_gb=8),
            },
        })
        inventory = make_inventory(make_node("node-1"), make_node("node-2"))
        recommendations = simulator.recommend(inventory, pricing)
        assert recommendations.instance_type_optimization == [
            "m5.large workloads that support arm64 could run on m6g.large (Graviton) for $33.58/month less"
        ]
        assert all(action.kind != ActionKind.REPLACE_INSTANCE_TYPE for action in recommendations.actions)


class TestContract:
    """Determinism, immutability and input validation"""

    def test_inputs_not_mutated(self, simulator, busy_nodes, pricing):
        before = busy_nodes.model_dump()
        recommendations = simulator.recommend(busy_nodes, pricing)
        simulator.simulate(busy_nodes, pricing, recommendations)
        assert busy_nodes.model_dump() == before

    def test_deterministic(self, simulator, busy_nodes, replacement_pricing):
        first = simulator.recommend(busy_nodes, replacement_pricing)
        second = simulator.recommend(busy_nodes, replacement_pricing)
        assert first.to_api() == second.to_api()
        assert first.actions == second.actions
        assert (
            simulator.simulate(busy_nodes, replacement_pricing, first).to_api()
            == simulator.simulate(busy_nodes, replacement_pricing, second).to_api()
        )

    def test_duplicate_node_names_rejected(self, simulator, pricing):
        inventory = make_inventory(make_node("dup"), make_node("dup"))
        with pytest.raises(DataValidationException):
            simulator.recommend(inventory, pricing)

    def test_actions_are_not_serialized(self, simulator, four_on_demand, pricing):
        data = simulator.recommend(four_on_demand, pricing).to_api()
        assert set(data) == {
            "instanceTypeOptimization", "spotInstanceStrategy", "consolidation", "estimatedSavings",
        }

    def test_empty_inventory(self, simulator, pricing):
        recommendations = simulator.recommend(make_inventory(), pricing)
        result = simulator.simulate(make_inventory(), pricing, recommendations)
        assert result.savings.amount == "$0.00"
        assert result.estimated_time == "0 minutes"


class TestSavingsBound:
    """Simulated savings never exceed max_spot_savings when no node is removed"""

    def test_replacing_spot_nodes(self, simulator, builtin_pricing):
        inventory = make_inventory(*(make_node(f"node-{i}", is_spot=True) for i in range(10)))
        recommendations = simulator.recommend(inventory, builtin_pricing)
        result = simulator.simulate(inventory, builtin_pricing, recommendations)

        assert recommendations.instance_type_optimization[0].startswith("Replace 10 m5.large nodes")
        assert result.savings.amount == "$28.03"
        assert max_spot_savings(inventory, builtin_pricing) == pytest.approx(28.03)

    @pytest.mark.parametrize("nodes", [
        [("od", "m5.large", False)] * 4,
        [("sp", "m5.large", True)] * 3 + [("od", "m5.xlarge", False)] * 2,
        [("od", "c5.xlarge", False)] * 2 + [("od", "t3.medium", False), ("sp", "c6g.large", True)],
    ])
    @pytest.mark.parametrize("strategy", ["all", "instance-type", "spot"])
    def test_bound_holds(self, simulator, builtin_pricing, nodes, strategy):
        inventory = make_inventory(*(
            make_node(f"{prefix}-{i}", instance_type=instance_type, is_spot=is_spot)
            for i, (prefix, instance_type, is_spot) in enumerate(nodes)
        ))
        recommendations = simulator.recommend(inventory, builtin_pricing)
        result = simulator.simulate(inventory, builtin_pricing, recommendations, strategy)
        simulated = result.current.total - result.projected.total
        # Totals are rounded to cents on both sides
        assert simulated <= max_spot_savings(inventory, builtin_pricing) + 0.01
