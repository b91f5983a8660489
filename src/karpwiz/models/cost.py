"""Cost analysis result models."""

from pydantic import Field
from typing import List

from .base_models import KarpWizBaseModel


class CostBreakdown(KarpWizBaseModel):
    """Monthly cost split by capacity type."""

    total: float = 0.0
    ondemand: float = 0.0
    spot: float = 0.0


class CostSavings(KarpWizBaseModel):
    amount: float = 0.0
    percentage: float = 0.0


class CostSnapshot(KarpWizBaseModel):
    """Current vs. potential monthly spend of the cluster."""

    current: CostBreakdown = Field(default_factory=CostBreakdown)
    potential: CostBreakdown = Field(default_factory=CostBreakdown)
    savings: CostSavings = Field(default_factory=CostSavings)
    recommendations: List[str] = Field(default_factory=list)
    unpriced_nodes: List[str] = Field(default_factory=list, description="Nodes excluded for lack of pricing")
    max_spot_percentage: int = Field(0, ge=0, le=100, description="Spot ceiling used for the potential mix")
