from .exceptions import *
from .base_client import BaseClient
from .utils import *

__all__ = [
    "BaseClient",
    "KarpWizException",
    "NotFoundException",
    "InvalidRequestException",
    "DataValidationException",
    "IncompletePricingDataException",
    "UpstreamUnavailableException",
    "ConfigurationException",
    "CatalogIntegrityException",
    "retry_with_backoff",
    "setup_logging",
    "format_currency",
    "format_duration",
]
