"""
Per-round history and the market snapshot handed to the decision source.

The snapshot is rebuilt every cycle. Its summary is what the AI reads, so it
is plain text with stable labels: history entries keep their position in the
round ("Hour 14") even after the window drops older ones.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from comp_trader.strategies.decision import TradeDecision
from comp_trader.strategies.price_impact import DEFAULT_FEE_MULTIPLIER, estimate_impact

DEFAULT_IMPACT_PERCENTAGES = (0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10)
DEFAULT_WINDOW = 10


@dataclass
class TradeRecord:
    decision: TradeDecision
    outcome: Optional[object] = None  # TradeOutcome once execution was attempted
    timestamp: float = field(default_factory=time.time)

    @property
    def executed(self) -> bool:
        return self.outcome is not None and self.outcome.success

    def describe(self) -> str:
        text = f"{self.decision.action.value} {self.decision.percentage:g}%"
        if self.outcome is None:
            return f"{text} (not executed)"
        return f"{text} ({'ok' if self.outcome.success else 'failed'})"


@dataclass
class RoundHistory:
    """Everything remembered about the current round. Thrown away when it ends."""
    token: str
    prices: list[float] = field(default_factory=list)
    trades: list[TradeRecord] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    symbol: str = "TOKEN"  # ERC20 symbol(), read once at round start

    def record_decision(self, decision: TradeDecision) -> TradeRecord:
        record = TradeRecord(decision=decision)
        self.trades.append(record)
        return record

    @property
    def executed_count(self) -> int:
        return sum(1 for t in self.trades if t.executed)


def trailing_window(items: list, size: int) -> list[tuple[int, object]]:
    """Last ``size`` items paired with their 1-based position in the full list."""
    start = max(len(items) - size, 0)
    return [(i + 1, item) for i, item in enumerate(items[start:], start=start)]


@dataclass
class ImpactEstimate:
    percentage: float
    is_buy: bool
    price: Optional[float]


@dataclass
class MarketSnapshot:
    state: object  # MarketState
    price: float
    price_window: list[tuple[int, float]]
    trade_window: list[tuple[int, TradeRecord]]
    impacts: list[ImpactEstimate]
    stable_symbol: str = "USDM"
    token_symbol: str = "TOKEN"

    @property
    def summary(self) -> str:
        s = self.state
        lines = [
            f"Wallet: {s.stable_balance:.6f} {self.stable_symbol}, "
            f"{s.token_balance:.6f} {self.token_symbol}",
            f"Pool reserves: {s.stable_reserve:.6f} {self.stable_symbol}, "
            f"{s.token_reserve:.6f} {self.token_symbol}",
            f"Current price: {self.price:.8f} {self.stable_symbol} per {self.token_symbol}",
            "",
            f"Price history (last {len(self.price_window)}):",
        ]
        lines += [f"  Hour {i}: {p:.8f}" for i, p in self.price_window]

        lines += ["", f"Trade history (last {len(self.trade_window)}):"]
        if self.trade_window:
            lines += [f"  Hour {i}: {r.describe()}" for i, r in self.trade_window]
        else:
            lines.append("  none yet")

        lines += ["", "Estimated price after trade (constant-product approximation):"]
        for est in self.impacts:
            side = "Buy with" if est.is_buy else "Sell"
            asset = self.stable_symbol if est.is_buy else self.token_symbol
            result = f"{est.price:.8f}" if est.price is not None else "not computable"
            lines.append(f"  {side} {est.percentage:g}% of {asset} balance -> {result}")
        return "\n".join(lines)


def build_snapshot(state, history: RoundHistory, window: int = DEFAULT_WINDOW,
                   percentages=DEFAULT_IMPACT_PERCENTAGES,
                   fee_multiplier: float = DEFAULT_FEE_MULTIPLIER,
                   stable_symbol: str = "USDM",
                   token_symbol: str = "TOKEN") -> Optional[MarketSnapshot]:
    """
    Price the pool, extend the price history and assemble the snapshot.

    Returns None, leaving the history untouched, when either reserve is not
    positive; the caller skips the cycle.
    """
    if state.stable_reserve <= 0 or state.token_reserve <= 0:
        return None

    price = state.stable_reserve / state.token_reserve
    history.prices.append(price)

    impacts = []
    for pct in percentages:
        impacts.append(ImpactEstimate(pct, True, estimate_impact(
            state.stable_reserve, state.token_reserve, state.stable_balance,
            pct, True, fee_multiplier)))
        impacts.append(ImpactEstimate(pct, False, estimate_impact(
            state.stable_reserve, state.token_reserve, state.token_balance,
            pct, False, fee_multiplier)))

    return MarketSnapshot(
        state=state,
        price=price,
        price_window=trailing_window(history.prices, window),
        trade_window=trailing_window(history.trades, window),
        impacts=impacts,
        stable_symbol=stable_symbol,
        token_symbol=token_symbol,
    )
