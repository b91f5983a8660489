from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List
from datetime import timedelta
from enum import Enum
from dotenv import load_dotenv

# Load .env file explicitly
load_dotenv()


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class InventorySource(str, Enum):
    KUBERNETES = "kubernetes"
    FILE = "file"


class RefreshCadence(str, Enum):
    """Pricing refresh cadence, mirrored by the settings screen."""
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MANUAL = "manual"

    @property
    def interval(self) -> Optional[timedelta]:
        """Maximum snapshot age, or None when only manual refreshes apply."""
        return {
            RefreshCadence.HOURLY: timedelta(hours=1),
            RefreshCadence.DAILY: timedelta(days=1),
            RefreshCadence.WEEKLY: timedelta(weeks=1),
            RefreshCadence.MANUAL: None,
        }[self]


class KubernetesSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="K8S_")

    kubeconfig_path: Optional[str] = Field(None, description="Path to kubeconfig file")
    context: Optional[str] = Field(None, description="Kubernetes context to use")
    in_cluster: bool = Field(True, description="Try in-cluster service account config first")
    inventory_source: InventorySource = Field(InventorySource.KUBERNETES, description="Where node inventory comes from")
    inventory_file: Optional[str] = Field(None, description="JSON/YAML inventory file when inventory_source=file")


class PricingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PRICING_")

    source_file: Optional[str] = Field(None, description="Pricing table file; built-in table when unset")
    refresh: RefreshCadence = Field(RefreshCadence.DAILY, description="Pricing refresh cadence")
    currency: str = Field("USD", description="Currency of the pricing table")


class CatalogSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CATALOG_")

    path: Optional[str] = Field(None, description="Preset catalog file; built-in catalog when unset")


class SpotPolicySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SPOT_POLICY_")

    default_max_spot_percentage: int = Field(70, ge=0, le=100, description="Spot ceiling when no preset is given")
    min_monthly_savings: float = Field(10.0, ge=0, description="Smallest saving (USD/month) worth a recommendation")
    target_utilization: float = Field(0.75, gt=0, le=1, description="Packing target used for consolidation")
    max_parallel_disruptions: int = Field(1, ge=1, description="Nodes drained concurrently during rebalancing")


class APISettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field("0.0.0.0", description="API host")
    port: int = Field(8080, description="API port")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        description="Frontend origins allowed by CORS",
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    environment: Environment = Field(Environment.DEVELOPMENT, description="Environment")
    debug: bool = Field(False, description="Debug mode")
    log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
    log_format: str = Field("text", description="Log format (json or text)")

    kubernetes: KubernetesSettings = Field(default_factory=lambda: KubernetesSettings())
    pricing: PricingSettings = Field(default_factory=lambda: PricingSettings())
    catalog: CatalogSettings = Field(default_factory=lambda: CatalogSettings())
    spot_policy: SpotPolicySettings = Field(default_factory=lambda: SpotPolicySettings())
    api: APISettings = Field(default_factory=lambda: APISettings())

    @field_validator('environment', mode='before')
    @classmethod
    def validate_environment(cls, v):
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @classmethod
    def create_from_env(cls) -> "Settings":
        """Create settings instance from environment variables."""
        return cls()
