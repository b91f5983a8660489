# src/karpwiz/api/app.py
"""
REST API for the config wizard, cost dashboard and rebalancer views

All JSON bodies use the camelCase field names of the models. Errors are
returned as {"error": message, "field": field-or-null}.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from flask import Flask, jsonify, request
from pydantic import ValidationError

from karpwiz.analytics.cost_analyzer import CostAnalyzer
from karpwiz.analytics.cost_model import HOURS_PER_MONTH
from karpwiz.analytics.rebalancing import RebalancingSimulator
from karpwiz.catalog.preset_catalog import PresetCatalog
from karpwiz.clients.kubernetes.client_factory import InventoryClient, KubernetesClientFactory
from karpwiz.clients.pricing.pricing_client import PricingClient
from karpwiz.config.settings import Settings
from karpwiz.core.exceptions import (
    ConfigurationException,
    DataValidationException,
    InvalidRequestException,
    KarpWizException,
    NotFoundException,
    UpstreamUnavailableException,
)
from karpwiz.generator.config_generator import ConfigGenerator
from karpwiz.models.catalog import Preset
from karpwiz.models.configuration import ConfigRequest
from karpwiz.models.rebalancing import RebalancingStrategy

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


class Services:
    """Long-lived components shared by every request."""

    def __init__(self,
                 settings: Settings,
                 catalog: PresetCatalog,
                 inventory_client: InventoryClient,
                 pricing_client: PricingClient):
        self.settings = settings
        self.catalog = catalog
        self.inventory_client = inventory_client
        self.pricing_client = pricing_client
        self.generator = ConfigGenerator(catalog)
        self.cost_analyzer = CostAnalyzer(settings.spot_policy)
        self.simulator = RebalancingSimulator(settings.spot_policy)

    async def inventory(self):
        await self.inventory_client.ensure_connected()
        return await self.inventory_client.fetch_inventory()

    async def pods(self):
        await self.inventory_client.ensure_connected()
        return await self.inventory_client.fetch_pods()

    async def pricing(self):
        await self.pricing_client.ensure_connected()
        return await self.pricing_client.get_snapshot()

    async def inventory_and_pricing(self):
        return await asyncio.gather(self.inventory(), self.pricing())


def _error(exc: KarpWizException, status: int, field: Optional[str] = None):
    body: Dict[str, Any] = {"error": exc.message, "field": field}
    if exc.details:
        body["details"] = exc.details
    return jsonify(body), status


def _json_body() -> Dict[str, Any]:
    """Request body as a mapping; an empty body is an empty mapping."""
    if not request.get_data():
        return {}
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidRequestException("body", "expected a JSON object")
    return body


def _preset_arg(services: Services, preset_id: Optional[str]) -> Optional[Preset]:
    if not preset_id:
        return None
    return services.catalog.resolve(preset_id)


def create_app(settings: Optional[Settings] = None,
               catalog: Optional[PresetCatalog] = None,
               inventory_client: Optional[InventoryClient] = None,
               pricing_client: Optional[PricingClient] = None) -> Flask:
    """Build the Flask app; components not passed in are created from settings."""
    settings = settings or Settings.create_from_env()
    services = Services(
        settings=settings,
        catalog=catalog or PresetCatalog.from_settings(settings),
        inventory_client=inventory_client or KubernetesClientFactory(settings.kubernetes).create_client(),
        pricing_client=pricing_client or PricingClient.from_settings(settings.pricing),
    )

    app = Flask(__name__)
    app.json.sort_keys = False
    app.extensions["karpwiz"] = services

    # ── Error handlers ────────────────────────────────────────────────────────

    @app.errorhandler(InvalidRequestException)
    def handle_invalid_request(exc):
        return _error(exc, 400, exc.field)

    @app.errorhandler(DataValidationException)
    def handle_data_validation(exc):
        return _error(exc, 400, exc.field)

    @app.errorhandler(NotFoundException)
    def handle_not_found(exc):
        return _error(exc, 404)

    @app.errorhandler(UpstreamUnavailableException)
    def handle_upstream(exc):
        logger.warning("Upstream unavailable", provider=exc.provider, error=exc.message)
        return _error(exc, 503)

    @app.errorhandler(ConfigurationException)
    def handle_configuration(exc):
        logger.error("Configuration error", error=exc.message)
        return _error(exc, 500)

    # ── CORS ──────────────────────────────────────────────────────────────────

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in settings.api.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Vary"] = "Origin"
        return response

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.route("/health")
    def health():
        """Liveness probe"""
        return jsonify({
            "status": "healthy",
            "catalogVersion": services.catalog.version,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        })

    @app.route(f"{API_PREFIX}/presets")
    def list_presets():
        snapshot = services.catalog.snapshot()
        return jsonify({
            "presets": {preset.id: preset.to_api() for preset in snapshot.presets},
            "regions": list(snapshot.regions),
            "features": {fid: flag.to_api() for fid, flag in snapshot.features.items()},
            "version": snapshot.version,
        })

    @app.route(f"{API_PREFIX}/presets/reload", methods=["POST"])
    def reload_presets():
        snapshot = services.catalog.reload()
        return jsonify({"version": snapshot.version, "presets": len(snapshot.presets)})

    @app.route(f"{API_PREFIX}/generate-config", methods=["POST"])
    def generate_config():
        body = _json_body()
        try:
            config_request = ConfigRequest.model_validate(body)
        except ValidationError as e:
            raise InvalidRequestException(_first_error_field(e), "malformed value")
        generated = services.generator.generate(config_request)
        return jsonify(generated.to_api())

    @app.route(f"{API_PREFIX}/cluster/nodes")
    async def cluster_nodes():
        inventory = await services.inventory()
        return jsonify(inventory.to_api())

    @app.route(f"{API_PREFIX}/cluster/pods")
    async def cluster_pods():
        pods = await services.pods()
        return jsonify(pods.to_api())

    @app.route(f"{API_PREFIX}/cluster/cost")
    async def cluster_cost():
        preset = _preset_arg(services, request.args.get("preset"))
        inventory, pricing = await services.inventory_and_pricing()
        snapshot = services.cost_analyzer.analyze(inventory, pricing, preset)
        return jsonify(snapshot.to_api())

    @app.route(f"{API_PREFIX}/pricing/<region>/<instance_type>")
    async def instance_pricing(region, instance_type):
        pricing = await services.pricing()
        price = pricing.lookup(region, instance_type)
        if price is None:
            raise NotFoundException("price", f"{instance_type} in {region}")

        def rates(hourly):
            if hourly is None:
                return None
            return {"hourly": hourly, "monthly": round(hourly * HOURS_PER_MONTH, 2)}

        return jsonify({
            "region": region,
            "instanceType": instance_type,
            "currency": pricing.currency,
            "onDemand": rates(price.on_demand),
            "spot": rates(price.spot),
        })

    @app.route(f"{API_PREFIX}/recommendations/rebalancing")
    async def rebalancing_recommendations():
        preset = _preset_arg(services, request.args.get("preset"))
        inventory, pricing = await services.inventory_and_pricing()
        recommendations = services.simulator.recommend(inventory, pricing, preset)
        return jsonify(recommendations.to_api())

    @app.route(f"{API_PREFIX}/simulate/rebalancing", methods=["POST"])
    async def simulate_rebalancing():
        body = _json_body()
        try:
            strategy = RebalancingStrategy(body.get("strategy") or RebalancingStrategy.ALL.value)
        except ValueError:
            raise InvalidRequestException(
                "strategy", f"must be one of {', '.join(s.value for s in RebalancingStrategy)}"
            )
        preset = _preset_arg(services, body.get("preset"))

        inventory, pricing = await services.inventory_and_pricing()
        recommendations = services.simulator.recommend(inventory, pricing, preset)
        result = services.simulator.simulate(inventory, pricing, recommendations, strategy)
        return jsonify(result.to_api())

    logger.info(
        "API initialized",
        catalog_version=services.catalog.version,
        inventory_client=services.inventory_client.name,
        cors_origins=settings.api.cors_origins,
    )
    return app


def _first_error_field(error: ValidationError) -> str:
    """Dotted location of the first pydantic validation error."""
    details = error.errors()
    if not details:
        return "body"
    return ".".join(str(part) for part in details[0]["loc"]) or "body"
