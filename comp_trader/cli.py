"""
CLI Entry Point for comp-trader.

Commands:
  run       - Trade the competition in simulation mode (no transactions sent)
  run-live  - Trade the competition with real transactions
  status    - Show the current round and market state once
  impact    - Print the price-impact table for given pool reserves
  config    - Show current configuration
"""

import logging
import sys

import click
from rich.panel import Panel
from rich.table import Table

from comp_trader import __version__
from comp_trader.agent import RoundTrader
from comp_trader.config import BotConfig, load_prompt_config
from comp_trader.errors import TraderError
from comp_trader.log import console, setup_logging
from comp_trader.markets.chain import ChainContext
from comp_trader.markets.competition import build_round_query
from comp_trader.notifications import DiscordNotifier
from comp_trader.strategies.decision import (
    GeminiDecisionProvider,
    RandomDecisionProvider,
    ResilientDecisionProvider,
)
from comp_trader.strategies.price_impact import estimate_impact
from comp_trader.trading.executor import TradeExecutor

logger = logging.getLogger("comp_trader.cli")


def build_trader(config: BotConfig, live_mode: bool) -> RoundTrader:
    """Wire the chain context, query, decision source and executor together."""
    chain = ChainContext.connect(config)
    primary = None
    if config.decision.gemini_api_key:
        primary = GeminiDecisionProvider(config.decision)
    else:
        logger.warning("No GEMINI_API_KEY set, every decision comes from the random fallback")
    decisions = ResilientDecisionProvider(
        primary,
        RandomDecisionProvider(config.trading.fallback_min_pct, config.trading.fallback_max_pct),
    )
    executor = TradeExecutor(chain, config.trading, live_mode=live_mode)

    # USDM stays approved for the whole run; round tokens are approved per round
    if live_mode:
        executor.ensure_allowance(chain.stable.address)

    return RoundTrader(
        config,
        build_round_query(chain, config.competition.round_query),
        decisions,
        executor,
        notifier=DiscordNotifier(config.notifications),
    )


def _run(live_mode: bool, cycle_interval):
    config = BotConfig()
    setup_logging(config.log_level)
    if cycle_interval is not None:
        config.trading.cycle_interval = cycle_interval

    try:
        trader = build_trader(config, live_mode)
        trader.start()
    except TraderError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    except Exception:
        logger.exception("comp-trader stopped on an unexpected error")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="comp-trader")
def cli():
    """comp-trader - automated trading for on-chain trading competition rounds."""
    pass


@cli.command()
@click.option("--cycle-interval", type=float, default=None,
              help="Seconds between trading decisions (default from CYCLE_INTERVAL)")
def run(cycle_interval):
    """Trade in SIMULATION mode. Reads the chain, never sends a transaction."""
    _run(live_mode=False, cycle_interval=cycle_interval)


@cli.command("run-live")
@click.option("--cycle-interval", type=float, default=None,
              help="Seconds between trading decisions (default from CYCLE_INTERVAL)")
@click.confirmation_option(prompt="This will send REAL transactions. Are you sure?")
def run_live(cycle_interval):
    """Trade in LIVE mode. Swaps, approvals and round closes are sent on-chain."""
    _run(live_mode=True, cycle_interval=cycle_interval)


@cli.command()
def status():
    """Show the current round token and market state."""
    config = BotConfig()
    setup_logging(config.log_level)
    try:
        chain = ChainContext.connect(config)
        query = build_round_query(chain, config.competition.round_query)
        token = query.active_token()
        if token is None:
            console.print("[yellow]No round is running.[/yellow]")
            return
        market = query.market_state(token)
    except TraderError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    price = f"{market.price:.8f}" if market.price is not None else "n/a"
    console.print(Panel(
        f"Token: [cyan]{token}[/cyan]\n"
        f"Price: [bold green]{price}[/bold green] USDM\n"
        f"USDM balance: {market.stable_balance:.6f}\n"
        f"Token balance: {market.token_balance:.6f}\n"
        f"Pool: {market.stable_reserve:.6f} USDM / {market.token_reserve:.6f} token",
        title="[bold]Round Status[/bold]",
    ))


@cli.command()
@click.option("--pool-base", type=float, required=True, help="USDM reserve of the pool")
@click.option("--pool-token", type=float, required=True, help="Token reserve of the pool")
@click.option("--stable-balance", type=float, default=0.0, help="Your USDM balance")
@click.option("--token-balance", type=float, default=0.0, help="Your token balance")
def impact(pool_base, pool_token, stable_balance, token_balance):
    """Estimate post-trade prices for the configured candidate sizes."""
    config = BotConfig()
    trading = config.trading

    table = Table(title="Estimated Price Impact (constant product)")
    table.add_column("Size", justify="right")
    table.add_column("Buy", style="green")
    table.add_column("Sell", style="red")

    for pct in trading.impact_percentages:
        buy = estimate_impact(pool_base, pool_token, stable_balance, pct, True,
                              trading.pool_fee_multiplier)
        sell = estimate_impact(pool_base, pool_token, token_balance, pct, False,
                               trading.pool_fee_multiplier)
        table.add_row(
            f"{pct:g}%",
            f"{buy:.8f}" if buy is not None else "not computable",
            f"{sell:.8f}" if sell is not None else "not computable",
        )

    console.print(table)


@cli.command()
def config():
    """Show current configuration."""
    cfg = BotConfig()
    prompt = load_prompt_config(cfg.decision.prompt_source)

    console.print(Panel(
        f"RPC: {cfg.rpc.rpc_url}\n"
        f"Wallet: {'Configured' if cfg.wallet.private_key else 'Not set'}\n"
        f"Competition: {cfg.competition.competition_address or 'Not set'}\n"
        f"Router: {cfg.competition.router_address}\n"
        f"Round query: {cfg.competition.round_query}\n"
        f"Close round on end: {cfg.competition.close_round_on_end}\n"
        f"Cycle interval: {cfg.trading.cycle_interval:g}s\n"
        f"Dust threshold: {cfg.trading.dust_threshold}\n"
        f"Max slippage: {cfg.trading.max_slippage_bps} bps\n"
        f"Decision model: {cfg.decision.model} "
        f"({'key set' if cfg.decision.gemini_api_key else 'no key, fallback only'})\n"
        f"Prompt source: {cfg.decision.prompt_source}\n"
        f"Multiplier: {prompt.multiplier:g}\n"
        f"Discord: {'Configured' if cfg.notifications.webhook_url else 'Not set'}",
        title="[bold]comp-trader Configuration[/bold]",
    ))


def main():
    cli()


if __name__ == "__main__":
    main()
