"""
Trade Executor - turns decisions into router swaps.

Handles:
- swapExactTokensForTokens through the competition's V2 router
- Router allowances for USDM and each round token
- Closing a finished round with endRound()

Two modes:
- Simulation: reads the chain (quotes, balances) but never sends a transaction
- Live: signs and sends with the configured account and waits for the receipt
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from comp_trader.config import TradingConfig
from comp_trader.errors import ExecutionError
from comp_trader.markets.chain import MAX_UINT256, ChainContext, from_units, to_units
from comp_trader.strategies.decision import Action

logger = logging.getLogger(__name__)

# Re-approve once the remaining allowance has been spent down this far
ALLOWANCE_FLOOR = MAX_UINT256 // 2


@dataclass
class TradeOutcome:
    success: bool
    action: Action
    amount_in: float
    amount_out: Optional[float] = None
    min_amount_out: float = 0.0
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    mode: str = "simulation"  # "simulation" or "live"


class TradeExecutor:
    """Submits swaps, approvals and round closes for one account."""

    def __init__(self, chain: Optional[ChainContext], config: TradingConfig,
                 live_mode: bool = False):
        if live_mode and chain is None:
            raise ValueError("Live trading requires a chain context")
        self.chain = chain
        self.config = config
        self.live_mode = live_mode

    @property
    def mode(self) -> str:
        return "live" if self.live_mode else "simulation"

    def _path(self, action: Action, token: str) -> list[str]:
        stable = self.chain.stable.address
        return [stable, token] if action is Action.BUY else [token, stable]

    def _quote(self, amount_raw: int, path: list[str]) -> int:
        return self.chain.router.functions.getAmountsOut(amount_raw, path).call()[-1]

    def min_amount_out(self, amount_raw: int, path: list[str]) -> int:
        """0 unless a slippage tolerance is configured, else the quote less the tolerance."""
        bps = self.config.max_slippage_bps
        if bps <= 0:
            return 0
        return self._quote(amount_raw, path) * (10_000 - min(bps, 10_000)) // 10_000

    def swap(self, action: Action, token: str, amount_in: float) -> TradeOutcome:
        """
        Swap ``amount_in`` of the input asset (USDM for buys, the token for sells).

        Never raises: anything that goes wrong comes back as a failed outcome.
        """
        if amount_in <= 0:
            return TradeOutcome(False, action, amount_in, error="Nothing to swap", mode=self.mode)
        if not self.live_mode:
            return self._simulate_swap(action, token, amount_in)

        try:
            path = self._path(action, token)
            amount_raw = to_units(amount_in)
            min_out = self.min_amount_out(amount_raw, path)
            deadline = int(time.time()) + self.config.deadline_seconds
            recipient = self.chain.address

            out_token = self.chain.token(path[1])
            balance_before = out_token.functions.balanceOf(recipient).call()

            receipt = self.chain.send_transaction(
                self.chain.router.functions.swapExactTokensForTokens(
                    amount_raw, min_out, path, recipient, deadline
                )
            )
            tx_hash = Web3.to_hex(receipt["transactionHash"])
            if receipt["status"] != 1:
                return TradeOutcome(
                    success=False,
                    action=action,
                    amount_in=amount_in,
                    min_amount_out=from_units(min_out),
                    tx_hash=tx_hash,
                    error="Swap transaction reverted",
                    mode=self.mode,
                )

            balance_after = out_token.functions.balanceOf(recipient).call()
            return TradeOutcome(
                success=True,
                action=action,
                amount_in=amount_in,
                amount_out=from_units(balance_after - balance_before),
                min_amount_out=from_units(min_out),
                tx_hash=tx_hash,
                mode=self.mode,
            )

        except Exception as e:
            return TradeOutcome(
                success=False,
                action=action,
                amount_in=amount_in,
                error=f"Swap error: {e}",
                mode=self.mode,
            )

    def _simulate_swap(self, action: Action, token: str, amount_in: float) -> TradeOutcome:
        """Quote the swap on the router when we can, send nothing."""
        amount_out = None
        if self.chain is not None:
            try:
                amount_out = from_units(self._quote(to_units(amount_in), self._path(action, token)))
            except Exception as e:
                logger.debug("Simulation quote failed: %s", e)

        return TradeOutcome(
            success=True,
            action=action,
            amount_in=amount_in,
            amount_out=amount_out,
            tx_hash=f"0xSIM_{uuid.uuid4().hex[:16]}",
            mode=self.mode,
        )

    def ensure_allowance(self, token_address: str) -> bool:
        """
        Approve the router for ``token_address`` if the allowance runs low.

        Returns True when an approval was sent. Raises ExecutionError on failure.
        """
        if not self.live_mode:
            return False

        token = self.chain.token(token_address)
        router = self.chain.router.address
        try:
            allowance = token.functions.allowance(self.chain.address, router).call()
            if allowance >= ALLOWANCE_FLOOR:
                return False
            receipt = self.chain.send_transaction(token.functions.approve(router, MAX_UINT256))
        except Exception as e:
            raise ExecutionError(f"Approval of {token_address} failed: {e}") from e

        if receipt["status"] != 1:
            raise ExecutionError(f"Approval of {token_address} reverted")
        logger.info("Approved router for %s", token_address)
        return True

    def close_round(self) -> Optional[str]:
        """Call competition.endRound(). Returns the tx hash, None in simulation."""
        if not self.live_mode:
            logger.info("[simulation] Would call endRound()")
            return None

        try:
            receipt = self.chain.send_transaction(self.chain.competition.functions.endRound())
        except Exception as e:
            raise ExecutionError(f"endRound() failed: {e}") from e

        tx_hash = Web3.to_hex(receipt["transactionHash"])
        if receipt["status"] != 1:
            raise ExecutionError(f"endRound() reverted: {tx_hash}")
        return tx_hash
