"""Tests for the config CLI commands.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from x402_policy.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "x402_policy_config.json"


class TestConfigShow:
    """Tests for config show."""

    def test_defaults_when_no_file(self, runner, config_path):
        # Act
        with patch("x402_policy.cli.commands.config.get_config_path", return_value=config_path):
            result = runner.invoke(cli, ["config", "show"])

        # Assert
        assert result.exit_code == 0
        assert "# Source: defaults (no config file)" in result.output
        body = json.loads(result.output.split("\n", 1)[1])
        assert body["codegen"]["default_framework"] == "express"

    def test_shows_file_values(self, runner, config_path):
        # Arrange
        config_path.write_text(json.dumps({"logging": {"log_level": "DEBUG"}}))

        # Act
        with patch("x402_policy.cli.commands.config.get_config_path", return_value=config_path):
            result = runner.invoke(cli, ["config", "show"])

        # Assert
        assert result.exit_code == 0
        assert f"# Source: {config_path}" in result.output
        assert '"log_level": "DEBUG"' in result.output

    def test_invalid_file_exit_1(self, runner, config_path):
        # Arrange
        config_path.write_text("{not json")

        # Act
        with patch("x402_policy.cli.commands.config.get_config_path", return_value=config_path):
            result = runner.invoke(cli, ["config", "show"])

        # Assert
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output


class TestConfigPath:
    """Tests for config path."""

    def test_prints_path(self, runner, config_path):
        # Act
        with patch("x402_policy.cli.commands.config.get_config_path", return_value=config_path):
            result = runner.invoke(cli, ["config", "path"])

        # Assert
        assert result.exit_code == 0
        assert str(config_path) in result.output
