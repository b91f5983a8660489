# src/karpwiz/cli.py
"""karpwiz CLI - config wizard, cost analysis and rebalancing from the terminal."""

import asyncio
import json
import sys
from pathlib import Path

import click
import structlog
import yaml

from karpwiz.analytics.cost_analyzer import CostAnalyzer
from karpwiz.analytics.rebalancing import RebalancingSimulator
from karpwiz.catalog.preset_catalog import PresetCatalog
from karpwiz.clients.kubernetes.client_factory import KubernetesClientFactory
from karpwiz.clients.pricing.pricing_client import PricingClient
from karpwiz.config.settings import InventorySource, Settings
from karpwiz.core.exceptions import KarpWizException
from karpwiz.core.utils import format_currency, setup_logging
from karpwiz.generator.config_generator import ConfigGenerator
from karpwiz.models.configuration import ConfigRequest
from karpwiz.models.rebalancing import RebalancingStrategy

logger = structlog.get_logger(__name__)


def _parse_pairs(pairs, what):
    """KEY=VALUE options to a dict; values are parsed as YAML scalars/lists."""
    result = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint=what)
        result[key.strip()] = yaml.safe_load(value)
    return result


async def _load_cluster_data(settings: Settings):
    inventory_client = KubernetesClientFactory(settings.kubernetes).create_client()
    pricing_client = PricingClient.from_settings(settings.pricing)
    async with inventory_client, pricing_client:
        return await asyncio.gather(
            inventory_client.fetch_inventory(),
            pricing_client.get_snapshot(),
        )


def _fail(exc: KarpWizException, debug: bool):
    click.echo(f"❌ {exc.message}", err=True)
    if debug and exc.details:
        click.echo(json.dumps(exc.details, indent=2, default=str), err=True)
    sys.exit(1)


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--inventory-file', type=click.Path(exists=True, dir_okay=False),
              help='Read nodes and pods from a JSON/YAML file instead of the cluster')
@click.pass_context
def cli(ctx, debug, inventory_file):
    """Karpenter configuration wizard and cost optimizer."""
    settings = Settings.create_from_env()
    if debug:
        settings.debug = True
        settings.log_level = "DEBUG"
    if inventory_file:
        settings.kubernetes.inventory_source = InventorySource.FILE
        settings.kubernetes.inventory_file = inventory_file

    setup_logging(log_level="DEBUG" if debug else str(settings.log_level.value), log_format=settings.log_format)
    ctx.obj = {"settings": settings, "debug": debug}


@cli.command()
@click.option('--host', default=None, help='Bind address (default: API_HOST)')
@click.option('--port', default=None, type=int, help='Port (default: API_PORT)')
@click.pass_context
def serve(ctx, host, port):
    """Run the REST API."""
    from karpwiz.api.app import create_app

    settings = ctx.obj["settings"]
    try:
        app = create_app(settings)
    except KarpWizException as e:
        _fail(e, ctx.obj["debug"])

    host = host or settings.api.host
    port = port or settings.api.port
    click.echo(f"🚀 karpwiz API listening on http://{host}:{port}")
    app.run(host=host, port=port, debug=settings.debug)


@cli.command()
@click.pass_context
def presets(ctx):
    """List presets, features and regions of the catalog."""
    try:
        catalog = PresetCatalog.from_settings(ctx.obj["settings"])
    except KarpWizException as e:
        _fail(e, ctx.obj["debug"])

    click.echo(f"📚 Preset catalog {catalog.version}")
    for preset in catalog.list_presets():
        click.echo(f"\n🔧 {preset.id} - {preset.name} (spot {preset.spot_ratio}%)")
        click.echo(f"   {preset.description}")
        for highlight in preset.highlights:
            click.echo(f"   • {highlight}")
        if preset.features:
            click.echo(f"   Features: {', '.join(preset.features)}")

    click.echo("\n🚩 Features:")
    for feature_id, flag in catalog.list_features().items():
        state = "on" if flag.default_enabled else "off"
        click.echo(f"   {feature_id} (default {state}): {flag.description}")

    click.echo(f"\n🌍 Regions: {', '.join(catalog.list_regions())}")


@cli.command()
@click.option('--preset', '-p', required=True, help='Preset id')
@click.option('--region', '-r', required=True, help='AWS region')
@click.option('--zone', '-z', default='', help='Availability zone (default: every zone)')
@click.option('--feature', '-f', multiple=True, metavar='NAME=BOOL', help='Feature override, repeatable')
@click.option('--set', 'customizations', multiple=True, metavar='KEY=VALUE', help='Customization, repeatable')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write manifests to this file')
@click.pass_context
def generate(ctx, preset, region, zone, feature, customizations, output):
    """Generate provisioner and node template manifests."""
    try:
        catalog = PresetCatalog.from_settings(ctx.obj["settings"])
        request = ConfigRequest(
            preset_id=preset,
            region=region,
            zone=zone,
            features=_parse_pairs(feature, "--feature"),
            customizations=_parse_pairs(customizations, "--set"),
        )
        generated = ConfigGenerator(catalog).generate(request)
    except KarpWizException as e:
        _fail(e, ctx.obj["debug"])

    manifests = generated.to_yaml()
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(manifests)
        click.echo(f"✅ Manifests written to {output_path}", err=True)
    else:
        click.echo(manifests)

    click.echo("📋 Next steps:", err=True)
    for instruction in generated.summary.instructions:
        click.echo(f"   {instruction}", err=True)


@cli.command()
@click.option('--preset', '-p', default=None, help='Preset whose spot ratio caps the optimized mix')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw CostSnapshot')
@click.pass_context
def analyze(ctx, preset, as_json):
    """Current vs. potential monthly cost of the cluster."""
    settings = ctx.obj["settings"]
    try:
        selected = PresetCatalog.from_settings(settings).resolve(preset) if preset else None
        inventory, pricing = asyncio.run(_load_cluster_data(settings))
        snapshot = CostAnalyzer(settings.spot_policy).analyze(inventory, pricing, selected)
    except KarpWizException as e:
        _fail(e, ctx.obj["debug"])

    if as_json:
        click.echo(json.dumps(snapshot.to_api(), indent=2))
        return

    click.echo(f"💰 Cost analysis ({inventory.total_nodes} nodes, {inventory.spot_nodes} spot)")
    click.echo(f"   Current:   {format_currency(snapshot.current.total, pricing.currency)}/month "
               f"(on-demand {format_currency(snapshot.current.ondemand)}, spot {format_currency(snapshot.current.spot)})")
    click.echo(f"   Potential: {format_currency(snapshot.potential.total, pricing.currency)}/month "
               f"at up to {snapshot.max_spot_percentage}% spot")
    click.echo(f"   Savings:   {format_currency(snapshot.savings.amount, pricing.currency)}/month "
               f"({snapshot.savings.percentage}%)")
    if snapshot.recommendations:
        click.echo("💡 Recommendations:")
        for recommendation in snapshot.recommendations:
            click.echo(f"   • {recommendation}")


@cli.command()
@click.option('--preset', '-p', default=None, help='Preset whose spot ratio caps spot conversions')
@click.option('--simulate', is_flag=True, help='Dry-run the recommendations')
@click.option('--strategy', type=click.Choice([s.value for s in RebalancingStrategy]),
              default=RebalancingStrategy.ALL.value, show_default=True, help='Actions to simulate')
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON')
@click.pass_context
def rebalance(ctx, preset, simulate, strategy, as_json):
    """Rebalancing recommendations, optionally simulated."""
    settings = ctx.obj["settings"]
    simulator = RebalancingSimulator(settings.spot_policy)
    try:
        selected = PresetCatalog.from_settings(settings).resolve(preset) if preset else None
        inventory, pricing = asyncio.run(_load_cluster_data(settings))
        recommendations = simulator.recommend(inventory, pricing, selected)
        result = simulator.simulate(inventory, pricing, recommendations, strategy) if simulate else None
    except KarpWizException as e:
        _fail(e, ctx.obj["debug"])

    if as_json:
        payload = {"recommendations": recommendations.to_api()}
        if result is not None:
            payload["simulation"] = result.to_api()
        click.echo(json.dumps(payload, indent=2))
        return

    sections = [
        ("🔄 Instance type optimization", recommendations.instance_type_optimization),
        ("💸 Spot instance strategy", recommendations.spot_instance_strategy),
        ("📦 Consolidation", recommendations.consolidation),
    ]
    for title, lines in sections:
        click.echo(title)
        for line in lines or ["No changes suggested"]:
            click.echo(f"   • {line}")
    click.echo(f"📈 Estimated savings: {recommendations.estimated_savings.monthly}/month "
               f"({recommendations.estimated_savings.percentage}%)")

    if result is not None:
        click.echo(f"\n🧪 Simulation ({strategy})")
        for action in result.actions:
            click.echo(f"   ✅ {action}")
        for skipped in result.skipped_actions:
            click.echo(f"   ⏭️  {skipped}")
        click.echo(f"   Savings: {result.savings.amount}/month ({result.savings.percentage}%)")
        click.echo(f"   Estimated time: {result.estimated_time}")


if __name__ == '__main__':
    cli()
