"""
The round trader - the loop that plays the competition.

State machine:
1. WAITING_FOR_ROUND: poll the competition until a round token shows up
2. ROUND_ACTIVE: every cycle, snapshot the market, decide, maybe swap
3. ENDING_ROUND: the token changed or vanished; optionally close the round,
   drop the round's history, go back to waiting

There is no terminal state. The loop runs until the process is told to stop.
"""

import logging
import signal
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from rich.panel import Panel
from rich.table import Table

from comp_trader.config import BotConfig, PromptConfig, load_prompt_config
from comp_trader.errors import ChainQueryError, ExecutionError
from comp_trader.log import console
from comp_trader.markets.competition import MarketState, RoundQuery
from comp_trader.notifications import DiscordNotifier
from comp_trader.strategies.decision import DecisionProvider, compute_trade_amount
from comp_trader.strategies.snapshot import (
    MarketSnapshot,
    RoundHistory,
    TradeRecord,
    build_snapshot,
)
from comp_trader.trading.executor import TradeExecutor

logger = logging.getLogger(__name__)


class RoundState(Enum):
    WAITING_FOR_ROUND = "waiting_for_round"
    ROUND_ACTIVE = "round_active"
    ENDING_ROUND = "ending_round"


class RoundTrader:
    """Tracks competition rounds and trades each one until it ends."""

    def __init__(self, config: BotConfig, round_query: RoundQuery,
                 decision_provider: DecisionProvider, executor: TradeExecutor,
                 notifier: Optional[DiscordNotifier] = None,
                 prompt_loader: Optional[Callable[[], PromptConfig]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.round_query = round_query
        self.decision_provider = decision_provider
        self.executor = executor
        self.notifier = notifier
        self.prompt_loader = prompt_loader or (
            lambda: load_prompt_config(config.decision.prompt_source)
        )
        self.sleep = sleep

        self.state = RoundState.WAITING_FOR_ROUND
        self.round: Optional[RoundHistory] = None
        self.prompt = PromptConfig()
        self.running = False
        self.cycle_count = 0
        self.rounds_seen = 0
        self._waiting_logged = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        trading = self.config.trading
        mode_text = ("[bold red]LIVE MODE[/bold red]" if self.executor.live_mode
                     else "[bold yellow]SIMULATION MODE[/bold yellow]")
        console.print(Panel(
            f"Mode: {mode_text}\n"
            f"Decision source: [cyan]{self.decision_provider.name}[/cyan]\n"
            f"Round query: [cyan]{self.config.competition.round_query}[/cyan]\n"
            f"Cycle interval: [yellow]{trading.cycle_interval:g}s[/yellow]\n"
            f"Close rounds on end: {self.config.competition.close_round_on_end}\n"
            f"Max slippage: {trading.max_slippage_bps} bps"
            f"{' (any output accepted)' if trading.max_slippage_bps <= 0 else ''}",
            title="[bold]comp-trader[/bold]",
        ))

        signal.signal(signal.SIGINT, self._shutdown_handler)
        signal.signal(signal.SIGTERM, self._shutdown_handler)

        self.running = True
        self._main_loop()

    def _main_loop(self):
        while self.running:
            try:
                self.step()
            except ChainQueryError as e:
                logger.warning("Chain query failed, retrying in %gs: %s",
                               self.config.trading.retry_delay, e)
                self.sleep(self.config.trading.retry_delay)
        self._shutdown()

    def step(self):
        """Advance the state machine by one poll or one trading cycle."""
        if self.state is RoundState.WAITING_FOR_ROUND:
            self.wait_for_round()
        else:
            self.run_cycle()

    # ------------------------------------------------------------------
    # Round transitions
    # ------------------------------------------------------------------

    def wait_for_round(self) -> bool:
        token = self.round_query.active_token()
        if token is None:
            if not self._waiting_logged:
                logger.info("Waiting for round to start...")
                self._waiting_logged = True
            self.sleep(self.config.trading.round_poll_interval)
            return False

        self._start_round(token)
        return True

    def _start_round(self, token: str):
        self._waiting_logged = False
        self.round = RoundHistory(token=token, symbol=self.round_query.token_symbol(token))
        self.rounds_seen += 1
        self.prompt = self.prompt_loader()
        self.state = RoundState.ROUND_ACTIVE
        logger.info("Round %d started, token %s (%s, multiplier %g)",
                    self.rounds_seen, token, self.round.symbol, self.prompt.multiplier)

        try:
            self.executor.ensure_allowance(token)
        except ExecutionError as e:
            logger.error("Could not approve router for %s: %s", token, e)

        self._notify(f"New round started! Trading token `{token}`")

    def _end_round(self, new_token: Optional[str]):
        self.state = RoundState.ENDING_ROUND
        ended = self.round
        logger.info("Round for %s ended (now %s) after %d decisions, %d executed",
                    ended.token, new_token or "no token", len(ended.trades), ended.executed_count)

        if self.config.competition.close_round_on_end:
            try:
                tx_hash = self.executor.close_round()
                if tx_hash:
                    logger.info("Closed round: %s", tx_hash)
            except ExecutionError as e:
                logger.error("Failed to close round: %s", e)

        self._notify(
            f"Round for `{ended.token}` is over: {len(ended.trades)} decisions, "
            f"{ended.executed_count} trades executed."
        )
        self.round = None
        self.state = RoundState.WAITING_FOR_ROUND

    # ------------------------------------------------------------------
    # Trading cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> Optional[TradeRecord]:
        """One decision cycle. Returns the recorded decision, None if the cycle was skipped."""
        token = self.round.token
        current = self.round_query.active_token()
        if current != token:
            self._end_round(current)
            return None

        trading = self.config.trading
        market = self.round_query.market_state(token)
        snapshot = build_snapshot(
            market,
            self.round,
            window=trading.history_window,
            percentages=trading.impact_percentages,
            fee_multiplier=trading.pool_fee_multiplier,
            token_symbol=self.round.symbol,
        )
        if snapshot is None:
            logger.warning("Pool for %s has no usable reserves (%s / %s), skipping cycle",
                           token, market.stable_reserve, market.token_reserve)
            self.sleep(trading.cycle_interval)
            return None

        self.cycle_count += 1
        console.rule(f"[bold cyan]Cycle #{self.cycle_count}[/bold cyan] - "
                     f"{datetime.now().strftime('%H:%M:%S')}")

        decision = self.decision_provider.decide(snapshot, self.prompt)
        record = self.round.record_decision(decision)

        amount = compute_trade_amount(decision, market.stable_balance,
                                      market.token_balance, self.prompt.multiplier)
        if decision.percentage == 0 or amount < trading.dust_threshold:
            logger.info("Decided %s %g%% (%s), amount %.8f below dust, not trading",
                        decision.action.value, decision.percentage, decision.source, amount)
        else:
            self._execute(record, token, amount)

        self._display_cycle(market, snapshot, record)
        self.sleep(trading.cycle_interval)
        return record

    def _execute(self, record: TradeRecord, token: str, amount: float):
        decision = record.decision
        asset = "USDM" if decision.is_buy else "token"
        logger.info("Decided %s %g%% (%s): swapping %.8f %s",
                    decision.action.value, decision.percentage, decision.source, amount, asset)

        outcome = self.executor.swap(decision.action, token, amount)
        record.outcome = outcome
        if outcome.success:
            received = f"{outcome.amount_out:.8f}" if outcome.amount_out is not None else "?"
            logger.info("%s ok [%s]: %.8f %s in, %s out, tx %s", decision.action.value,
                        outcome.mode, amount, asset, received, outcome.tx_hash)
            self._notify(f"{decision.action.value.upper()}: swapped {amount:.6f} {asset} "
                         f"({decision.percentage:g}%)")
        else:
            logger.error("%s of %.8f %s failed: %s", decision.action.value, amount, asset,
                         outcome.error)

    def _notify(self, message: str):
        if self.notifier is not None:
            self.notifier.send(message)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def _display_cycle(self, market: MarketState, snapshot: MarketSnapshot,
                       record: TradeRecord):
        table = Table(show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Price", f"{snapshot.price:.8f}")
        table.add_row("USDM balance", f"{market.stable_balance:.6f}")
        table.add_row("Token balance", f"{market.token_balance:.6f}")
        table.add_row("Pool", f"{market.stable_reserve:.2f} / {market.token_reserve:.2f}")
        table.add_row("Decision", f"{record.describe()} [{record.decision.source}]")
        table.add_row("Round decisions", f"{len(self.round.trades)} "
                                         f"({self.round.executed_count} executed)")
        console.print(table)

    def _shutdown_handler(self, signum, frame):
        console.print("\n[yellow]Shutdown signal received...[/yellow]")
        self.running = False

    def _shutdown(self):
        console.print("\n[yellow]Shutting down comp-trader...[/yellow]")
        if self.round is not None:
            console.print(f"[dim]Round {self.round.token}: {len(self.round.trades)} decisions, "
                          f"{self.round.executed_count} executed[/dim]")
        console.print(f"[dim]Rounds seen: {self.rounds_seen}, cycles: {self.cycle_count}[/dim]")
