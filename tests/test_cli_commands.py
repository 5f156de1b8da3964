import json

import pytest
from typer.testing import CliRunner

from expo_mcp import __version__
from expo_mcp.cli import commands
from expo_mcp.config import loader
from expo_mcp.config.schema import Config

runner = CliRunner()


@pytest.fixture
def offline_config(monkeypatch, tmp_path):
    config = Config()
    config.maestro.enabled = False
    config.devices.download_dir = str(tmp_path / "downloads")
    monkeypatch.setattr(loader, "get_config", lambda **kwargs: config)
    monkeypatch.setattr(commands, "configure_stderr_logging", lambda verbose=False: None)
    return config


def test_version_flag():
    result = runner.invoke(commands.app, ["--version"])
    assert result.exit_code == 0
    assert f"expo-mcp v{__version__}" in result.output


def test_call_rejects_malformed_args(offline_config):
    result = runner.invoke(commands.app, ["call", "app_status", "--args", "{oops"])
    assert result.exit_code == 2
    assert "Invalid --args JSON" in result.output


def test_call_rejects_non_object_args(offline_config):
    result = runner.invoke(commands.app, ["call", "app_status", "--args", "[1]"])
    assert result.exit_code == 2


def test_call_unknown_operation_prints_failure_envelope(offline_config):
    result = runner.invoke(commands.app, ["call", "maestro_tap_on"])
    assert result.exit_code == 1
    envelope = json.loads(result.stdout)
    assert envelope == {"success": False, "error": "no such operation: maestro_tap_on"}
