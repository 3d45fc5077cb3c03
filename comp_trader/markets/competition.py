"""
Round and pool queries against the trading competition.

The competition has been deployed with two read surfaces over time:
- competition.currentToken(), with balances and pool reserves read separately
- periphery.mmInfo(account, competition), returning all of it in one call

Both are exposed through the same RoundQuery interface so the trading loop
does not care which one it talks to.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from comp_trader.errors import ChainQueryError
from comp_trader.markets.chain import ChainContext, from_units, normalize_token

logger = logging.getLogger(__name__)

# Label used in the snapshot when the token has no readable symbol
DEFAULT_TOKEN_SYMBOL = "TOKEN"


@dataclass
class MarketState:
    token: str
    stable_balance: float
    token_balance: float
    stable_reserve: float
    token_reserve: float

    @property
    def has_liquidity(self) -> bool:
        return self.stable_reserve > 0 and self.token_reserve > 0

    @property
    def price(self) -> Optional[float]:
        """Stable per token; None when the pool can't be priced."""
        if not self.has_liquidity:
            return None
        return self.stable_reserve / self.token_reserve


class RoundQuery:
    """Read-only view of the competition for one trading account."""

    def active_token(self) -> Optional[str]:
        """Token of the running round, None between rounds."""
        raise NotImplementedError

    def market_state(self, token: str) -> MarketState:
        raise NotImplementedError

    def token_symbol(self, token: str) -> str:
        return DEFAULT_TOKEN_SYMBOL


def read_token_symbol(chain: ChainContext, token: str) -> str:
    """ERC20 symbol() of the round token, the generic label when it can't be read."""
    try:
        symbol = chain.token(token).functions.symbol().call()
    except Exception as e:
        logger.warning("Could not read symbol() of %s: %s", token, e)
        return DEFAULT_TOKEN_SYMBOL
    return symbol.strip() if isinstance(symbol, str) and symbol.strip() else DEFAULT_TOKEN_SYMBOL


class CurrentTokenQuery(RoundQuery):
    """currentToken() plus separate balanceOf and pair reserve reads."""

    def __init__(self, chain: ChainContext):
        self.chain = chain

    def active_token(self) -> Optional[str]:
        try:
            return normalize_token(self.chain.competition.functions.currentToken().call())
        except Exception as e:
            raise ChainQueryError(f"currentToken() failed: {e}") from e

    def token_symbol(self, token: str) -> str:
        return read_token_symbol(self.chain, token)

    def _reserves(self, token: str) -> tuple[float, float]:
        pair = self.chain.pair(token)
        if pair is None:
            return 0.0, 0.0
        reserve0, reserve1, _ = pair.functions.getReserves().call()
        token0 = pair.functions.token0().call()
        if Web3.to_checksum_address(token0) == self.chain.stable.address:
            return from_units(reserve0), from_units(reserve1)
        return from_units(reserve1), from_units(reserve0)

    def market_state(self, token: str) -> MarketState:
        owner = self.chain.address
        token_contract = self.chain.token(token)
        # Independent reads, joined before the cycle continues
        try:
            with ThreadPoolExecutor(max_workers=3) as pool:
                stable_future = pool.submit(self.chain.stable.functions.balanceOf(owner).call)
                token_future = pool.submit(token_contract.functions.balanceOf(owner).call)
                reserves_future = pool.submit(self._reserves, token)
                stable_balance = from_units(stable_future.result())
                token_balance = from_units(token_future.result())
                stable_reserve, token_reserve = reserves_future.result()
        except Exception as e:
            raise ChainQueryError(f"Market state query for {token} failed: {e}") from e

        return MarketState(
            token=token,
            stable_balance=stable_balance,
            token_balance=token_balance,
            stable_reserve=stable_reserve,
            token_reserve=token_reserve,
        )


class MarketMakerInfoQuery(RoundQuery):
    """Everything from one periphery.mmInfo(account, competition) call."""

    def __init__(self, chain: ChainContext):
        if chain.periphery is None:
            raise ValueError("MarketMakerInfoQuery needs a periphery contract")
        self.chain = chain

    def _mm_info(self) -> tuple:
        try:
            return self.chain.periphery.functions.mmInfo(
                self.chain.address, self.chain.competition.address
            ).call()
        except Exception as e:
            raise ChainQueryError(f"mmInfo() failed: {e}") from e

    def active_token(self) -> Optional[str]:
        return normalize_token(self._mm_info()[0])

    def token_symbol(self, token: str) -> str:
        return read_token_symbol(self.chain, token)

    def market_state(self, token: str) -> MarketState:
        reported, stable_balance, token_balance, stable_lp, token_lp = self._mm_info()
        reported = normalize_token(reported)
        if reported != token:
            raise ChainQueryError(f"mmInfo reports token {reported}, expected {token}")
        return MarketState(
            token=token,
            stable_balance=from_units(stable_balance),
            token_balance=from_units(token_balance),
            stable_reserve=from_units(stable_lp),
            token_reserve=from_units(token_lp),
        )


def build_round_query(chain: ChainContext, kind: str) -> RoundQuery:
    if kind == "mm_info":
        return MarketMakerInfoQuery(chain)
    if kind == "token":
        return CurrentTokenQuery(chain)
    raise ValueError(f"Unknown round query kind: {kind!r}")
