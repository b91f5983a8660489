"""Custom exceptions for the karpwiz engine."""

from typing import Optional, Dict, Any


class KarpWizException(Exception):
    """Base exception for the karpwiz engine."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(KarpWizException):
    """Raised when a preset, feature or price lookup has no entry."""

    def __init__(self, kind: str, identifier: str, details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"Unknown {kind}: {identifier}", details)


class InvalidRequestException(KarpWizException):
    """Raised when a ConfigRequest is malformed or inconsistent."""

    def __init__(self, field: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.field = field
        super().__init__(f"Invalid {field}: {message}", details)


class DataValidationException(KarpWizException):
    """Raised when snapshot data violates its invariants."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        super().__init__(f"Validation failed for {field}: {message}")


class IncompletePricingDataException(KarpWizException):
    """Raised when a pricing snapshot has no entry for a node.

    Non-fatal: the cost model records the node as unpriced and keeps going.
    """

    def __init__(self, region: str, instance_type: str):
        self.region = region
        self.instance_type = instance_type
        super().__init__(f"No price for {instance_type} in {region}")


class UpstreamUnavailableException(KarpWizException):
    """Raised when the inventory or pricing provider cannot deliver data."""

    def __init__(self, provider: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.provider = provider
        super().__init__(f"{provider} unavailable: {message}", details)


class ConfigurationException(KarpWizException):
    """Raised when configuration is invalid."""
    pass


class CatalogIntegrityException(ConfigurationException):
    """Raised when the preset catalog fails its load-time checks."""

    def __init__(self, errors: list):
        self.errors = list(errors)
        super().__init__(
            f"Preset catalog failed integrity checks: {'; '.join(self.errors)}",
            {"errors": self.errors},
        )
