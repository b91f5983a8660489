"""Rebalancing recommendation and simulation models."""

from enum import Enum
from pydantic import Field
from typing import List, Optional, Tuple

from .base_models import KarpWizBaseModel
from .cost import CostBreakdown


class ActionKind(str, Enum):
    CONSOLIDATE = "consolidate"
    REPLACE_INSTANCE_TYPE = "replace-instance-type"
    CONVERT_TO_SPOT = "convert-to-spot"


class RebalancingStrategy(str, Enum):
    """Which recommended actions a simulation applies."""
    ALL = "all"
    CONSOLIDATION = "consolidation"
    INSTANCE_TYPE = "instance-type"
    SPOT = "spot"

    @property
    def kinds(self) -> Tuple[ActionKind, ...]:
        return {
            RebalancingStrategy.ALL: tuple(ActionKind),
            RebalancingStrategy.CONSOLIDATION: (ActionKind.CONSOLIDATE,),
            RebalancingStrategy.INSTANCE_TYPE: (ActionKind.REPLACE_INSTANCE_TYPE,),
            RebalancingStrategy.SPOT: (ActionKind.CONVERT_TO_SPOT,),
        }[self]


class RebalancingAction(KarpWizBaseModel):
    """One planned change to a group of nodes of the same instance type."""

    kind: ActionKind
    instance_type: str
    target_instance_type: Optional[str] = None
    node_names: List[str] = Field(default_factory=list)
    description: str
    monthly_savings: float = 0.0


class EstimatedSavings(KarpWizBaseModel):
    monthly: str = "$0.00"
    percentage: float = 0.0


class RebalancingRecommendations(KarpWizBaseModel):
    instance_type_optimization: List[str] = Field(default_factory=list)
    spot_instance_strategy: List[str] = Field(default_factory=list)
    consolidation: List[str] = Field(default_factory=list)
    estimated_savings: EstimatedSavings = Field(default_factory=EstimatedSavings)
    # Structured plan behind the text; not part of the wire format
    actions: List[RebalancingAction] = Field(default_factory=list, exclude=True)


class SimulationSavings(KarpWizBaseModel):
    amount: str = "$0.00"
    percentage: float = 0.0


class SimulationResult(KarpWizBaseModel):
    """Dry-run outcome of applying recommendations to a copy of the inventory."""

    savings: SimulationSavings = Field(default_factory=SimulationSavings)
    actions: List[str] = Field(default_factory=list)
    estimated_time: str = "0 minutes"
    current: CostBreakdown = Field(default_factory=CostBreakdown)
    projected: CostBreakdown = Field(default_factory=CostBreakdown)
    skipped_actions: List[str] = Field(default_factory=list)
