"""Versioned registry of provisioner presets and feature flags."""

import threading
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog
import yaml
from pydantic import ValidationError

from karpwiz.core.exceptions import CatalogIntegrityException, ConfigurationException, NotFoundException
from karpwiz.models.catalog import CatalogSnapshot, FeatureFlag, Preset

logger = structlog.get_logger(__name__)

BUILTIN_CATALOG_PATH = Path(__file__).parent / "data" / "catalog.yaml"


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


def build_catalog_snapshot(raw: Dict[str, Any]) -> CatalogSnapshot:
    """Validate raw catalog data and freeze it into a snapshot.

    All integrity problems are collected and raised together as a
    CatalogIntegrityException, so a bad catalog never reaches a request.
    """
    errors: List[str] = []

    features: Dict[str, FeatureFlag] = {}
    for index, entry in enumerate(raw.get("features") or []):
        try:
            feature = FeatureFlag.model_validate(entry)
        except ValidationError as e:
            errors.append(f"feature #{index}: {_describe(e)}")
            continue
        if feature.id in features:
            errors.append(f"duplicate feature id '{feature.id}'")
        features[feature.id] = feature

    presets: List[Preset] = []
    for index, entry in enumerate(raw.get("presets") or []):
        try:
            presets.append(Preset.model_validate(entry))
        except ValidationError as e:
            errors.append(f"preset #{index}: {_describe(e)}")

    for preset_id, count in Counter(p.id for p in presets).items():
        if count > 1:
            errors.append(f"duplicate preset id '{preset_id}'")

    for preset in presets:
        for feature_id in preset.features + preset.disabled_features:
            if feature_id not in features:
                errors.append(f"preset '{preset.id}' references unknown feature '{feature_id}'")
        conflicts = sorted(set(preset.features) & set(preset.disabled_features))
        if conflicts:
            errors.append(f"preset '{preset.id}' both enables and disables {', '.join(conflicts)}")

    regions: Tuple[str, ...] = tuple(raw.get("regions") or ())
    if not regions:
        errors.append("catalog lists no regions")
    if len(set(regions)) != len(regions):
        errors.append("catalog lists duplicate regions")

    if not presets:
        errors.append("catalog has no presets")

    if errors:
        raise CatalogIntegrityException(errors)

    return CatalogSnapshot(
        version=str(raw.get("version", "unversioned")),
        presets=tuple(presets),
        features=features,
        regions=regions,
    )


def load_catalog(path: Union[str, Path]) -> CatalogSnapshot:
    """Load and validate a catalog YAML file."""
    path = Path(path)
    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationException(f"Cannot read preset catalog {path}: {e}")

    if not isinstance(raw, dict):
        raise CatalogIntegrityException([f"{path}: top level must be a mapping"])

    return build_catalog_snapshot(raw)


class PresetCatalog:
    """Read-mostly preset registry.

    Readers take the current CatalogSnapshot reference and work on it; reload()
    validates a complete new snapshot before swapping the reference, so
    in-flight requests never see a partially loaded catalog.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, snapshot: Optional[CatalogSnapshot] = None):
        self.logger = logger.bind(component="preset_catalog")
        self._path = Path(path) if path else BUILTIN_CATALOG_PATH
        self._lock = threading.Lock()
        self._snapshot = snapshot if snapshot is not None else load_catalog(self._path)
        self.logger.info(
            "Preset catalog loaded",
            version=self._snapshot.version,
            presets=len(self._snapshot.presets),
            features=len(self._snapshot.features),
        )

    @classmethod
    def from_settings(cls, settings) -> "PresetCatalog":
        return cls(path=settings.catalog.path)

    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    @property
    def version(self) -> str:
        return self._snapshot.version

    def list_presets(self) -> Tuple[Preset, ...]:
        return self._snapshot.presets

    def list_features(self) -> Dict[str, FeatureFlag]:
        return dict(self._snapshot.features)

    def list_regions(self) -> Tuple[str, ...]:
        return self._snapshot.regions

    def resolve(self, preset_id: str) -> Preset:
        preset = self._snapshot.preset(preset_id)
        if preset is None:
            raise NotFoundException("preset", preset_id)
        return preset

    def reload(self, path: Optional[Union[str, Path]] = None) -> CatalogSnapshot:
        """Load a new catalog version; on failure the current one stays active."""
        target = Path(path) if path else self._path
        with self._lock:
            try:
                snapshot = load_catalog(target)
            except ConfigurationException as e:
                self.logger.error("Catalog reload rejected", path=str(target), error=str(e))
                raise
            previous = self._snapshot.version
            self._snapshot = snapshot
            self._path = target

        self.logger.info("Preset catalog reloaded", previous_version=previous, version=snapshot.version)
        return snapshot
