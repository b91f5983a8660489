# src/karpwiz/clients/pricing/pricing_client.py
"""Pricing client: cached PricingSnapshot with a refresh cadence."""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from karpwiz.config.settings import PricingSettings, RefreshCadence
from karpwiz.core.base_client import BaseClient
from karpwiz.core.exceptions import UpstreamUnavailableException
from karpwiz.core.utils import retry_with_backoff
from karpwiz.models.pricing import InstancePrice, PricingSnapshot
from karpwiz.models.validation import validate_pricing_snapshot

BUILTIN_PRICING_PATH = Path(__file__).parent / "data" / "default_pricing.yaml"


class PricingClient(BaseClient):
    """Serves the current PricingSnapshot.

    The snapshot is loaded on connect() and reloaded by get_snapshot() once it
    is older than the cadence interval. With the manual cadence only refresh()
    replaces it. A failed reload keeps serving the previous snapshot; with no
    snapshot at all every read raises UpstreamUnavailableException.
    """

    provider = "pricing"

    def __init__(self,
                 config_dict: Dict[str, Any],
                 source_file: Optional[Union[str, Path]] = None,
                 refresh: RefreshCadence = RefreshCadence.DAILY,
                 currency: str = "USD",
                 clock: Optional[Callable[[], datetime]] = None):
        super().__init__(config_dict, "PricingClient")
        self.source = Path(source_file) if source_file else BUILTIN_PRICING_PATH
        self.cadence = RefreshCadence(refresh)
        self.currency = currency
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.Lock()
        self._snapshot: Optional[PricingSnapshot] = None
        self._loaded_at: Optional[datetime] = None

    @classmethod
    def from_settings(cls, settings: PricingSettings) -> "PricingClient":
        return cls(
            settings.model_dump(),
            source_file=settings.source_file,
            refresh=settings.refresh,
            currency=settings.currency,
        )

    async def connect(self) -> None:
        await self.refresh()
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False
        self.logger.info("Pricing client disconnected")

    async def health_check(self) -> bool:
        return self._snapshot is not None

    @property
    def loaded_at(self) -> Optional[datetime]:
        return self._loaded_at

    def is_stale(self) -> bool:
        if self._snapshot is None:
            return True
        interval = self.cadence.interval
        if interval is None:
            return False
        return self.clock() - self._loaded_at >= interval

    async def refresh(self) -> PricingSnapshot:
        """Reload the pricing table and swap it in."""
        try:
            snapshot = self._load()
        except UpstreamUnavailableException as e:
            self.logger.error("Pricing refresh failed", source=str(self.source), error=e.message)
            raise

        with self._lock:
            self._snapshot = snapshot
            self._loaded_at = self.clock()

        self.logger.info(
            "Pricing snapshot loaded",
            source=snapshot.source,
            regions=len(snapshot.regions),
            instance_types=sum(len(prices) for prices in snapshot.regions.values()),
            cadence=self.cadence.value,
        )
        return snapshot

    async def get_snapshot(self) -> PricingSnapshot:
        if self.is_stale():
            try:
                return await self.refresh()
            except UpstreamUnavailableException:
                if self._snapshot is None:
                    raise
                self.logger.warning("Serving stale pricing snapshot", loaded_at=self._loaded_at.isoformat())

        if self._snapshot is None:
            raise UpstreamUnavailableException(self.provider, "No pricing data loaded yet")
        return self._snapshot

    async def get_price(self, region: str, instance_type: str) -> Optional[InstancePrice]:
        snapshot = await self.get_snapshot()
        return snapshot.lookup(region, instance_type)

    def _load(self) -> PricingSnapshot:
        try:
            raw = self._read_table()
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise UpstreamUnavailableException(self.provider, f"Cannot read {self.source}: {e}")

        if not isinstance(raw, dict):
            raise UpstreamUnavailableException(self.provider, f"{self.source} must contain a mapping")
        raw.setdefault("currency", self.currency)

        try:
            snapshot = PricingSnapshot.model_validate(raw)
        except ValidationError as e:
            raise UpstreamUnavailableException(self.provider, f"Invalid pricing table {self.source}: {e}")

        errors = validate_pricing_snapshot(snapshot)
        if errors:
            raise UpstreamUnavailableException(self.provider, "; ".join(errors), {"errors": errors})
        return snapshot

    @retry_with_backoff(max_retries=3, backoff_factor=0.5, max_wait=5.0)
    def _read_table(self) -> Any:
        text = self.source.read_text(encoding="utf-8")
        if self.source.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
