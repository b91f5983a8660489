"""Config wizard request/response models."""

from pydantic import AliasChoices, Field
from typing import Any, Dict, List
import yaml

from .base_models import KarpWizBaseModel


class ConfigRequest(KarpWizBaseModel):
    """Wizard input: a preset plus the user's placement and feature choices."""

    preset_id: str = Field(
        "",
        validation_alias=AliasChoices("presetId", "preset", "preset_id"),
        description="Catalog preset id",
    )
    region: str = ""
    zone: str = Field("", description="Availability zone; empty means every zone of the region")
    features: Dict[str, bool] = Field(default_factory=dict)
    customizations: Dict[str, Any] = Field(default_factory=dict)


class ConfigSummary(KarpWizBaseModel):
    preset: str
    region: str
    zone: str
    features: Dict[str, bool]
    catalog_version: str
    instructions: List[str]


class GeneratedConfiguration(KarpWizBaseModel):
    """Provisioner and node-template manifests. Never applied by this engine."""

    provisioner: Dict[str, Any]
    node_template: Dict[str, Any]
    summary: ConfigSummary

    def to_yaml(self) -> str:
        """Render both manifests as one multi-document YAML stream."""
        return yaml.safe_dump_all(
            [self.provisioner, self.node_template],
            sort_keys=False,
            default_flow_style=False,
        )
