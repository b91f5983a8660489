"""Base models for common karpwiz data structures."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Dict


class KarpWizBaseModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_api(self) -> Dict[str, Any]:
        """Serialize with the field names the dashboard client expects."""
        return self.model_dump(by_alias=True, mode="json")


class FrozenModel(KarpWizBaseModel):
    """Immutable variant for catalog data shared across requests."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        frozen=True,
    )
