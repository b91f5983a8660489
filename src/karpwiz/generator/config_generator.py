"""
Config Generator - Provisioner and node template manifests from a preset.

generate() is a pure function of (ConfigRequest, catalog snapshot): no clock,
no randomness, no cluster access. The same inputs always produce the same
manifests, which makes generated configs cacheable and diffable.
"""

from typing import Any, Callable, Dict, List

import structlog

from karpwiz.catalog.preset_catalog import PresetCatalog
from karpwiz.core.exceptions import InvalidRequestException
from karpwiz.models.catalog import CatalogSnapshot, FeatureFlag, Preset
from karpwiz.models.configuration import ConfigRequest, ConfigSummary, GeneratedConfiguration
from karpwiz.models.pricing import instance_architecture

logger = structlog.get_logger(__name__)

PROVISIONER_API_VERSION = "karpenter.sh/v1alpha5"
NODE_TEMPLATE_API_VERSION = "karpenter.k8s.aws/v1alpha1"

SPOT_RATIO_ANNOTATION = "karpwiz.io/spot-ratio-target"
CATALOG_VERSION_ANNOTATION = "karpwiz.io/catalog-version"
PRESET_LABEL = "karpwiz.io/preset"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"

ARCH_KEY = "kubernetes.io/arch"
REGION_KEY = "topology.kubernetes.io/region"
ZONE_KEY = "topology.kubernetes.io/zone"
CAPACITY_TYPE_KEY = "karpenter.sh/capacity-type"
INSTANCE_TYPE_KEY = "node.kubernetes.io/instance-type"
DISCOVERY_KEY = "karpenter.sh/discovery"

DEFAULT_CLUSTER_NAME = "default"
DEFAULT_INSTANCE_PROFILE = "KarpenterNodeInstanceProfile"
DEFAULT_AMI_FAMILY = "AL2"
AMI_FAMILIES = ("AL2", "Bottlerocket", "Ubuntu", "Windows2019", "Windows2022", "Custom")


# ── Feature overlay ───────────────────────────────────────────────────────────

def resolve_features(
    catalog_features: Dict[str, FeatureFlag],
    preset: Preset,
    overrides: Dict[str, bool],
) -> Dict[str, bool]:
    """Resolve the effective feature toggles.

    Layers are applied lowest precedence first:
      1. catalog default (FeatureFlag.default_enabled)
      2. preset (Preset.features switch on, Preset.disabled_features switch off)
      3. explicit request overrides
    The result is keyed in catalog order.
    """
    resolved = {feature_id: feature.default_enabled for feature_id, feature in catalog_features.items()}
    for feature_id in preset.features:
        resolved[feature_id] = True
    for feature_id in preset.disabled_features:
        resolved[feature_id] = False
    for feature_id in resolved:
        if feature_id in overrides:
            resolved[feature_id] = bool(overrides[feature_id])
    return resolved


# ── Customization validators ──────────────────────────────────────────────────

def _non_negative_int(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0 or int(value) != value:
        raise InvalidRequestException(field, "must be a non-negative integer")
    return int(value)


def _weight(field: str, value: Any) -> int:
    weight = _non_negative_int(field, value)
    if weight > 100:
        raise InvalidRequestException(field, "must be between 0 and 100")
    return weight


def _quantity(field: str, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)) or str(value).strip() == "":
        raise InvalidRequestException(field, "must be a resource quantity such as '1000' or '1900Gi'")
    return str(value).strip()


def _string(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestException(field, "must be a non-empty string")
    return value.strip()


def _ami_family(field: str, value: Any) -> str:
    family = _string(field, value)
    if family not in AMI_FAMILIES:
        raise InvalidRequestException(field, f"must be one of {', '.join(AMI_FAMILIES)}")
    return family


def _string_list(field: str, value: Any) -> List[str]:
    if not isinstance(value, list) or not value or not all(isinstance(v, str) and v for v in value):
        raise InvalidRequestException(field, "must be a non-empty list of strings")
    # Keep first occurrence order, drop repeats
    return list(dict.fromkeys(value))


def _string_map(field: str, value: Any) -> Dict[str, str]:
    if not isinstance(value, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise InvalidRequestException(field, "must be a mapping of strings to strings")
    return {key: value[key] for key in sorted(value)}


CUSTOMIZATIONS: Dict[str, Callable[[str, Any], Any]] = {
    "ttlSecondsAfterEmpty": _non_negative_int,
    "ttlSecondsUntilExpired": _non_negative_int,
    "weight": _weight,
    "cpuLimit": _quantity,
    "memoryLimit": _quantity,
    "instanceTypes": _string_list,
    "labels": _string_map,
    "instanceProfile": _string,
    "amiFamily": _ami_family,
    "clusterName": _string,
}


# ── Requirement helpers ───────────────────────────────────────────────────────

def _requirement(key: str, values: List[str]) -> Dict[str, Any]:
    return {"key": key, "operator": "In", "values": list(values)}


def _set_requirement(requirements: List[Dict[str, Any]], key: str, values: List[str]) -> None:
    for requirement in requirements:
        if requirement["key"] == key:
            requirement["values"] = list(values)
            return
    requirements.append(_requirement(key, values))


def architectures_for(instance_types: List[str]) -> List[str]:
    """CPU architectures needed to run the given instance types."""
    arches = {instance_architecture(instance_type) for instance_type in instance_types}
    return [arch for arch in ("amd64", "arm64") if arch in arches] or ["amd64"]


def apply_customizations(
    provisioner: Dict[str, Any],
    node_template: Dict[str, Any],
    customizations: Dict[str, Any],
) -> None:
    """Overlay validated customizations onto the manifests, in key order."""
    spec = provisioner["spec"]
    template_spec = node_template["spec"]

    for key in sorted(customizations):
        value = customizations[key]
        if key in ("ttlSecondsAfterEmpty", "ttlSecondsUntilExpired", "weight"):
            spec[key] = value
        elif key == "cpuLimit":
            spec["limits"]["resources"]["cpu"] = value
        elif key == "memoryLimit":
            spec["limits"]["resources"]["memory"] = value
        elif key == "instanceTypes":
            _set_requirement(spec["requirements"], INSTANCE_TYPE_KEY, value)
            _set_requirement(spec["requirements"], ARCH_KEY, architectures_for(value))
        elif key == "labels":
            spec["labels"].update(value)
            template_spec["template"]["metadata"]["labels"].update(value)
        elif key == "instanceProfile":
            template_spec["instanceProfile"] = value
        elif key == "amiFamily":
            template_spec["amiFamily"] = value
        elif key == "clusterName":
            template_spec["subnetSelector"] = {DISCOVERY_KEY: value}
            template_spec["securityGroupSelector"] = {DISCOVERY_KEY: value}
            template_spec["tags"]["karpenter.sh/cluster"] = value


class ConfigGenerator:
    """Turns a ConfigRequest into provisioner and node template manifests."""

    def __init__(self, catalog: PresetCatalog):
        self.catalog = catalog
        self.logger = logger.bind(component="config_generator")

    def generate(self, request: ConfigRequest) -> GeneratedConfiguration:
        # One snapshot for the whole call: a concurrent reload cannot mix versions
        snapshot = self.catalog.snapshot()

        preset = self._validate_request(request, snapshot)
        features = resolve_features(snapshot.features, preset, request.features)
        customizations = self._validate_customizations(request.customizations, features)

        provisioner = self._build_provisioner(request, preset, features, snapshot)
        node_template = self._build_node_template(request, preset, features, snapshot)
        apply_customizations(provisioner, node_template, customizations)

        summary = ConfigSummary(
            preset=preset.id,
            region=request.region,
            zone=request.zone,
            features=features,
            catalog_version=snapshot.version,
            instructions=self._build_instructions(features, snapshot),
        )

        self.logger.info(
            "Configuration generated",
            preset=preset.id,
            region=request.region,
            zone=request.zone or "*",
            enabled_features=[f for f, on in features.items() if on],
            catalog_version=snapshot.version,
        )

        return GeneratedConfiguration(provisioner=provisioner, node_template=node_template, summary=summary)

    # ── Validation ────────────────────────────────────────────────────────────

    def _validate_request(self, request: ConfigRequest, snapshot: CatalogSnapshot) -> Preset:
        region = request.region.strip()
        if not region:
            raise InvalidRequestException("region", "must not be empty")
        if region != request.region:
            raise InvalidRequestException("region", "must not contain surrounding whitespace")
        if region not in snapshot.regions:
            self.logger.warning("Region not in catalog region list", region=region)

        if request.zone:
            suffix = request.zone[len(region):]
            if not request.zone.startswith(region) or len(suffix) != 1 or not ("a" <= suffix <= "z"):
                raise InvalidRequestException(
                    "zone", f"'{request.zone}' is not a zone of region '{region}'"
                )

        if not request.preset_id:
            raise InvalidRequestException("presetId", "must not be empty")
        preset = snapshot.preset(request.preset_id)
        if preset is None:
            raise InvalidRequestException("presetId", f"unknown preset '{request.preset_id}'")

        for feature_id in sorted(request.features):
            if feature_id not in snapshot.features:
                raise InvalidRequestException(f"features.{feature_id}", "unknown feature")

        return preset

    def _validate_customizations(self, customizations: Dict[str, Any], features: Dict[str, bool]) -> Dict[str, Any]:
        validated = {}
        for key in sorted(customizations):
            field = f"customizations.{key}"
            validator = CUSTOMIZATIONS.get(key)
            if validator is None:
                raise InvalidRequestException(field, "unknown customization")
            validated[key] = validator(field, customizations[key])

        # Karpenter rejects emptiness TTL together with consolidation
        if "ttlSecondsAfterEmpty" in validated and features.get("consolidation"):
            raise InvalidRequestException(
                "customizations.ttlSecondsAfterEmpty", "cannot be combined with consolidation"
            )
        return validated

    # ── Manifest builders ─────────────────────────────────────────────────────

    def _feature_labels(self, features: Dict[str, bool], snapshot: CatalogSnapshot) -> Dict[str, str]:
        labels: Dict[str, str] = {}
        for feature_id, enabled in features.items():
            if enabled:
                labels.update(snapshot.features[feature_id].node_labels)
        return labels

    def _feature_taints(self, features: Dict[str, bool], snapshot: CatalogSnapshot) -> List[Dict[str, str]]:
        taints = []
        for feature_id, enabled in features.items():
            if enabled:
                taints.extend(taint.model_dump() for taint in snapshot.features[feature_id].node_taints)
        return taints

    def _build_provisioner(
        self,
        request: ConfigRequest,
        preset: Preset,
        features: Dict[str, bool],
        snapshot: CatalogSnapshot,
    ) -> Dict[str, Any]:
        instance_types = list(preset.instance_types)

        requirements = [
            _requirement(ARCH_KEY, architectures_for(instance_types)),
            _requirement(REGION_KEY, [request.region]),
        ]
        if request.zone:
            requirements.append(_requirement(ZONE_KEY, [request.zone]))
        requirements.append(_requirement(CAPACITY_TYPE_KEY, list(preset.capacity_types)))
        if instance_types:
            requirements.append(_requirement(INSTANCE_TYPE_KEY, instance_types))

        labels = {PRESET_LABEL: preset.id}
        labels.update(self._feature_labels(features, snapshot))

        spec: Dict[str, Any] = {
            "providerRef": {"name": f"{preset.id}-nodetemplate"},
            "requirements": requirements,
            "labels": labels,
        }
        taints = self._feature_taints(features, snapshot)
        if taints:
            spec["taints"] = taints
        spec["limits"] = {"resources": {"cpu": preset.cpu_limit, "memory": preset.memory_limit}}
        spec["consolidation"] = {"enabled": bool(features.get("consolidation", False))}
        spec["weight"] = preset.weight

        return {
            "apiVersion": PROVISIONER_API_VERSION,
            "kind": "Provisioner",
            "metadata": {
                "name": f"{preset.id}-provisioner",
                "labels": {MANAGED_BY_LABEL: "karpwiz", PRESET_LABEL: preset.id},
                "annotations": {
                    SPOT_RATIO_ANNOTATION: str(preset.spot_ratio),
                    CATALOG_VERSION_ANNOTATION: snapshot.version,
                },
            },
            "spec": spec,
        }

    def _build_node_template(
        self,
        request: ConfigRequest,
        preset: Preset,
        features: Dict[str, bool],
        snapshot: CatalogSnapshot,
    ) -> Dict[str, Any]:
        placement = {"region": request.region}
        requirements = [_requirement(REGION_KEY, [request.region])]
        if request.zone:
            placement["zone"] = request.zone
            requirements.append(_requirement(ZONE_KEY, [request.zone]))

        labels = {PRESET_LABEL: preset.id}
        labels.update(self._feature_labels(features, snapshot))
        template: Dict[str, Any] = {"metadata": {"labels": labels}, "spec": {}}
        taints = self._feature_taints(features, snapshot)
        if taints:
            template["spec"]["taints"] = taints

        return {
            "apiVersion": NODE_TEMPLATE_API_VERSION,
            "kind": "AWSNodeTemplate",
            "metadata": {
                "name": f"{preset.id}-nodetemplate",
                "labels": {MANAGED_BY_LABEL: "karpwiz", PRESET_LABEL: preset.id},
            },
            "spec": {
                "placement": placement,
                "requirements": requirements,
                "template": template,
                "subnetSelector": {DISCOVERY_KEY: DEFAULT_CLUSTER_NAME},
                "securityGroupSelector": {DISCOVERY_KEY: DEFAULT_CLUSTER_NAME},
                "instanceProfile": DEFAULT_INSTANCE_PROFILE,
                "amiFamily": DEFAULT_AMI_FAMILY,
                "metadataOptions": {
                    "httpEndpoint": "enabled",
                    "httpProtocolIPv6": "disabled",
                    "httpPutResponseHopLimit": 2,
                    "httpTokens": "required",
                },
                "tags": {
                    "karpenter.sh/cluster": DEFAULT_CLUSTER_NAME,
                    PRESET_LABEL: preset.id,
                },
            },
        }

    def _build_instructions(self, features: Dict[str, bool], snapshot: CatalogSnapshot) -> List[str]:
        steps = [
            "Apply the provisioner configuration: kubectl apply -f provisioner.yaml",
            "Apply the node template: kubectl apply -f node-template.yaml",
        ]
        for feature_id, enabled in features.items():
            if enabled:
                steps.extend(snapshot.features[feature_id].instructions)
        steps.append("Monitor node provisioning: kubectl get nodes -w")
        return [f"{number}. {step}" for number, step in enumerate(steps, start=1)]
