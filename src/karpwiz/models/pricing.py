"""Pricing snapshot models."""

import re
from datetime import datetime
from pydantic import Field
from typing import Dict, List, Optional

from karpwiz.core.exceptions import IncompletePricingDataException
from .base_models import KarpWizBaseModel

# Graviton families carry a 'g' after the generation digit (c6g, m7g, r6gd)
_GRAVITON_FAMILY = re.compile(r"^[a-z]+\d+g")


def instance_architecture(instance_type: str) -> str:
    """CPU architecture of an EC2 instance type."""
    family = instance_type.split(".", 1)[0]
    return "arm64" if _GRAVITON_FAMILY.match(family) else "amd64"


class InstancePrice(KarpWizBaseModel):
    """Hourly prices and shape of one instance type in one region."""

    on_demand: float = Field(..., ge=0, description="USD/hour")
    spot: Optional[float] = Field(None, ge=0, description="USD/hour; None when no spot offering")
    vcpu: Optional[int] = Field(None, ge=0)
    memory_gb: Optional[float] = Field(None, ge=0)
    spot_zones: Optional[List[str]] = Field(None, description="Zones with spot capacity; None means all")

    def spot_available_in(self, zone: str) -> bool:
        if self.spot is None:
            return False
        if self.spot_zones is None:
            return True
        return zone in self.spot_zones

    @property
    def has_shape(self) -> bool:
        return self.vcpu is not None and self.memory_gb is not None


class PricingSnapshot(KarpWizBaseModel):
    """Prices keyed by (region, instance type)."""

    currency: str = "USD"
    source: str = "static"
    captured_at: Optional[datetime] = None
    regions: Dict[str, Dict[str, InstancePrice]] = Field(default_factory=dict)

    def lookup(self, region: str, instance_type: str) -> Optional[InstancePrice]:
        return self.regions.get(region, {}).get(instance_type)

    def require(self, region: str, instance_type: str) -> InstancePrice:
        price = self.lookup(region, instance_type)
        if price is None:
            raise IncompletePricingDataException(region, instance_type)
        return price

    def instance_types(self, region: str) -> List[str]:
        return sorted(self.regions.get(region, {}))
