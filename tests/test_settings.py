"""
Tests for environment-driven settings
"""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from karpwiz.config.settings import (
    Environment,
    InventorySource,
    LogLevel,
    RefreshCadence,
    Settings,
    SpotPolicySettings,
)


def test_defaults():
    settings = Settings()
    assert settings.spot_policy.default_max_spot_percentage == 70
    assert settings.spot_policy.max_parallel_disruptions == 1
    assert settings.pricing.refresh == RefreshCadence.DAILY
    assert settings.api.port == 8080
    assert "http://localhost:3000" in settings.api.cors_origins


def test_section_env_prefixes(monkeypatch):
    monkeypatch.setenv("SPOT_POLICY_DEFAULT_MAX_SPOT_PERCENTAGE", "40")
    monkeypatch.setenv("PRICING_REFRESH", "hourly")
    monkeypatch.setenv("K8S_INVENTORY_SOURCE", "file")
    monkeypatch.setenv("K8S_INVENTORY_FILE", "/tmp/inventory.yaml")

    settings = Settings.create_from_env()

    assert settings.spot_policy.default_max_spot_percentage == 40
    assert settings.pricing.refresh == RefreshCadence.HOURLY
    assert settings.kubernetes.inventory_source == InventorySource.FILE
    assert settings.kubernetes.inventory_file == "/tmp/inventory.yaml"


def test_case_insensitive_enums(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "PRODUCTION")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = Settings()
    assert settings.environment == Environment.PRODUCTION
    assert settings.log_level == LogLevel.DEBUG


def test_spot_percentage_bounds():
    with pytest.raises(ValidationError):
        SpotPolicySettings(default_max_spot_percentage=120)


@pytest.mark.parametrize("cadence,interval", [
    (RefreshCadence.HOURLY, timedelta(hours=1)),
    (RefreshCadence.DAILY, timedelta(days=1)),
    (RefreshCadence.WEEKLY, timedelta(weeks=1)),
    (RefreshCadence.MANUAL, None),
])
def test_refresh_interval(cadence, interval):
    assert cadence.interval == interval
