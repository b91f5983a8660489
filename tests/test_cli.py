"""
Tests for the karpwiz command line
"""
import pytest
from click.testing import CliRunner

from karpwiz.cli import cli


@pytest.fixture
def runner(monkeypatch, pricing_file):
    monkeypatch.setenv("PRICING_SOURCE_FILE", str(pricing_file))
    return CliRunner()


def test_presets(runner):
    result = runner.invoke(cli, ["presets"])
    assert result.exit_code == 0
    assert "Preset catalog 2024.1" in result.output
    assert "cost-optimized" in result.output


def test_generate_to_stdout(runner):
    result = runner.invoke(cli, [
        "generate", "-p", "balanced", "-r", "us-east-1", "-f", "consolidation=true",
    ])
    assert result.exit_code == 0
    assert "kind: Provisioner" in result.output
    assert "kind: AWSNodeTemplate" in result.output


def test_generate_to_file(runner, tmp_path):
    output = tmp_path / "out" / "karpenter.yaml"
    result = runner.invoke(cli, ["generate", "-p", "performance", "-r", "us-west-2", "-o", str(output)])
    assert result.exit_code == 0
    assert "kind: Provisioner" in output.read_text()


def test_generate_rejects_bad_region(runner):
    result = runner.invoke(cli, ["generate", "-p", "balanced", "-r", ""])
    assert result.exit_code == 1
    assert "Invalid region" in result.output


def test_generate_rejects_malformed_pairs(runner):
    result = runner.invoke(cli, ["generate", "-p", "balanced", "-r", "us-east-1", "-f", "consolidation"])
    assert result.exit_code == 2


def test_analyze(runner, inventory_file):
    result = runner.invoke(cli, ["--inventory-file", str(inventory_file), "analyze"])
    assert result.exit_code == 0
    assert "Savings:   $102.20/month" in result.output


def test_rebalance_simulation(runner, inventory_file):
    result = runner.invoke(cli, [
        "--inventory-file", str(inventory_file), "rebalance", "--simulate", "--strategy", "instance-type",
    ])
    assert result.exit_code == 0
    assert "Replace 4 m5.large nodes in us-east-1 with t3.large" in result.output
    assert "Estimated time: 48 minutes" in result.output
