"""
Tests for the click command line.

Commands are invoked in-process with CliRunner. Nothing here connects to a
node: `impact` and `config` only read settings, and `run-live` is stopped
at its confirmation prompt.
"""

from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from comp_trader import __version__, cli as cli_module
from comp_trader.cli import cli
from comp_trader.config import BotConfig, DecisionConfig, PromptConfig, TradingConfig


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def settings(monkeypatch):
    config = BotConfig(
        trading=TradingConfig(impact_percentages=(1.0, 10.0)),
        decision=DecisionConfig(gemini_api_key="", prompt_source="prompt.txt"),
    )
    monkeypatch.setattr(cli_module, "BotConfig", lambda: config)
    return config


# =============================================================================
# Test: impact
# =============================================================================


class TestImpactCommand:

    def test_prints_table(self, runner, settings):
        result = runner.invoke(cli, [
            "impact", "--pool-base", "10000", "--pool-token", "10000",
            "--stable-balance", "1000",
        ])

        assert result.exit_code == 0, result.output
        assert "Estimated Price Impact" in result.output
        assert "1%" in result.output
        assert "10%" in result.output
        # 10% of 1000 USDM into a 10000/10000 pool, net of the 0.3% fee
        assert "1.02003940" in result.output

    def test_zero_balance_not_computable(self, runner, settings):
        result = runner.invoke(cli, [
            "impact", "--pool-base", "10000", "--pool-token", "10000",
            "--stable-balance", "1000",
        ])

        # No token balance, so every sell row has no estimate
        assert result.output.count("not computable") == 2

    def test_reserves_required(self, runner, settings):
        result = runner.invoke(cli, ["impact", "--pool-base", "10000"])
        assert result.exit_code != 0
        assert "--pool-token" in result.output


# =============================================================================
# Test: config / run-live / version
# =============================================================================


class TestOtherCommands:

    def test_config_shows_multiplier(self, runner, settings, monkeypatch):
        monkeypatch.setattr(cli_module, "load_prompt_config",
                            lambda source: PromptConfig(multiplier=0.5))

        result = runner.invoke(cli, ["config"])

        assert result.exit_code == 0, result.output
        assert "Multiplier: 0.5" in result.output
        assert "no key, fallback only" in result.output

    def test_run_live_needs_confirmation(self, runner, monkeypatch):
        run = MagicMock()
        monkeypatch.setattr(cli_module, "_run", run)

        result = runner.invoke(cli, ["run-live"], input="n\n")

        assert result.exit_code != 0
        run.assert_not_called()

    def test_run_is_simulation(self, runner, monkeypatch):
        run = MagicMock()
        monkeypatch.setattr(cli_module, "_run", run)

        result = runner.invoke(cli, ["run", "--cycle-interval", "3"])

        assert result.exit_code == 0, result.output
        run.assert_called_once_with(live_mode=False, cycle_interval=3.0)

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert __version__ in result.output
