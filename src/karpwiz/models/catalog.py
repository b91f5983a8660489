"""Preset catalog models."""

from pydantic import Field, computed_field
from typing import Dict, Optional, Tuple

from .base_models import FrozenModel


class Taint(FrozenModel):
    """Kubernetes node taint."""

    key: str
    value: str = ""
    effect: str = Field("NoSchedule", pattern="^(NoSchedule|PreferNoSchedule|NoExecute)$")


class FeatureFlag(FrozenModel):
    """Toggleable provisioner feature."""

    id: str
    description: str
    default_enabled: bool = False
    node_labels: Dict[str, str] = Field(default_factory=dict, description="Labels added to nodes when enabled")
    node_taints: Tuple[Taint, ...] = Field(default_factory=tuple, description="Taints added to nodes when enabled")
    instructions: Tuple[str, ...] = Field(default_factory=tuple, description="Apply steps when enabled")

    @computed_field
    @property
    def default(self) -> bool:
        # The wizard reads `features.<id>.default`
        return self.default_enabled


class Preset(FrozenModel):
    """Published provisioner preset. Immutable once loaded."""

    id: str
    name: str
    description: str
    features: Tuple[str, ...] = Field(default_factory=tuple, description="Feature ids the preset enables")
    spot_ratio: int = Field(..., ge=0, le=100, description="Target spot share in percent")
    disabled_features: Tuple[str, ...] = Field(default_factory=tuple, description="Feature ids the preset forces off")
    highlights: Tuple[str, ...] = Field(default_factory=tuple)
    instance_families: Tuple[str, ...] = Field(default_factory=tuple)
    instance_types: Tuple[str, ...] = Field(default_factory=tuple, description="Instance-type allow-list")
    cpu_limit: str = "1000"
    memory_limit: str = "1000Gi"
    weight: int = Field(50, ge=0, le=100)

    @property
    def capacity_types(self) -> Tuple[str, ...]:
        if self.spot_ratio == 0:
            return ("on-demand",)
        if self.spot_ratio == 100:
            return ("spot",)
        return ("spot", "on-demand")

    @property
    def max_spot_fraction(self) -> float:
        return self.spot_ratio / 100.0


class CatalogSnapshot(FrozenModel):
    """One published version of the catalog. Readers hold a whole snapshot."""

    version: str
    presets: Tuple[Preset, ...]
    features: Dict[str, FeatureFlag]
    regions: Tuple[str, ...]

    def preset(self, preset_id: str) -> Optional[Preset]:
        for preset in self.presets:
            if preset.id == preset_id:
                return preset
        return None
