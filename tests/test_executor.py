"""
Tests for the trade executor.

IMPORTANT: the chain context is a MagicMock. No transactions are built
against a real node.
"""

from unittest.mock import MagicMock

import pytest

from comp_trader.config import TradingConfig
from comp_trader.errors import ExecutionError
from comp_trader.markets.chain import MAX_UINT256
from comp_trader.strategies.decision import Action
from comp_trader.trading.executor import TradeExecutor

STABLE = "0x5555555555555555555555555555555555555555"
TOKEN = "0x1111111111111111111111111111111111111111"
ME = "0x9999999999999999999999999999999999999999"
ROUTER = "0x4A7b5Da61326A6379179b40d00F57E5bbDC962c2"
ONE = 10**18


def _receipt(status=1):
    return {"status": status, "transactionHash": bytes.fromhex("ab" * 32)}


@pytest.fixture
def output_token():
    token = MagicMock()
    token.functions.balanceOf.return_value.call.side_effect = [5 * ONE, 7 * ONE]
    token.functions.allowance.return_value.call.return_value = 0
    return token


@pytest.fixture
def chain(output_token):
    c = MagicMock()
    c.address = ME
    c.stable.address = STABLE
    c.router.address = ROUTER
    c.router.functions.getAmountsOut.return_value.call.return_value = [10 * ONE, 4 * ONE]
    c.token.return_value = output_token
    c.send_transaction.return_value = _receipt()
    return c


def make_executor(chain, live=True, **trading):
    return TradeExecutor(chain, TradingConfig(**trading), live_mode=live)


class TestSwap:

    def test_live_buy_path_and_guard(self, chain):
        executor = make_executor(chain, deadline_seconds=600)

        outcome = executor.swap(Action.BUY, TOKEN, 10.0)

        assert outcome.success
        assert outcome.mode == "live"
        assert outcome.amount_out == pytest.approx(2.0)
        assert outcome.tx_hash == "0x" + "ab" * 32
        amount, min_out, path, recipient, deadline = (
            chain.router.functions.swapExactTokensForTokens.call_args.args
        )
        assert amount == 10 * ONE
        assert min_out == 0
        assert path == [STABLE, TOKEN]
        assert recipient == ME
        assert deadline > 0
        chain.token.assert_called_with(TOKEN)

    def test_sell_path(self, chain):
        make_executor(chain).swap(Action.SELL, TOKEN, 1.5)
        path = chain.router.functions.swapExactTokensForTokens.call_args.args[2]
        assert path == [TOKEN, STABLE]

    def test_slippage_guard_from_quote(self, chain):
        make_executor(chain, max_slippage_bps=100).swap(Action.BUY, TOKEN, 10.0)
        min_out = chain.router.functions.swapExactTokensForTokens.call_args.args[1]
        assert min_out == 4 * ONE * 99 // 100

    def test_reverted_swap(self, chain):
        chain.send_transaction.return_value = _receipt(status=0)
        outcome = make_executor(chain).swap(Action.BUY, TOKEN, 10.0)
        assert not outcome.success
        assert "reverted" in outcome.error
        assert outcome.tx_hash == "0x" + "ab" * 32

    def test_exception_becomes_failed_outcome(self, chain):
        chain.send_transaction.side_effect = ValueError("insufficient funds for gas")
        outcome = make_executor(chain).swap(Action.SELL, TOKEN, 1.0)
        assert not outcome.success
        assert "insufficient funds" in outcome.error
        assert outcome.amount_in == 1.0

    def test_non_positive_amount(self, chain):
        outcome = make_executor(chain).swap(Action.BUY, TOKEN, 0.0)
        assert not outcome.success
        chain.send_transaction.assert_not_called()

    def test_simulation_quotes_but_never_sends(self, chain):
        outcome = make_executor(chain, live=False).swap(Action.BUY, TOKEN, 10.0)

        assert outcome.success
        assert outcome.mode == "simulation"
        assert outcome.amount_out == pytest.approx(4.0)
        assert outcome.tx_hash.startswith("0xSIM_")
        chain.send_transaction.assert_not_called()

    def test_simulation_without_chain(self):
        outcome = TradeExecutor(None, TradingConfig()).swap(Action.SELL, TOKEN, 1.0)
        assert outcome.success
        assert outcome.amount_out is None

    def test_live_requires_chain(self):
        with pytest.raises(ValueError):
            TradeExecutor(None, TradingConfig(), live_mode=True)


class TestAllowance:

    def test_approves_when_low(self, chain, output_token):
        assert make_executor(chain).ensure_allowance(TOKEN) is True
        output_token.functions.approve.assert_called_once_with(ROUTER, MAX_UINT256)

    def test_skips_when_high(self, chain, output_token):
        output_token.functions.allowance.return_value.call.return_value = MAX_UINT256
        assert make_executor(chain).ensure_allowance(TOKEN) is False
        chain.send_transaction.assert_not_called()

    def test_failure_raises(self, chain):
        chain.send_transaction.return_value = _receipt(status=0)
        with pytest.raises(ExecutionError):
            make_executor(chain).ensure_allowance(TOKEN)

    def test_simulation_never_approves(self, chain):
        assert make_executor(chain, live=False).ensure_allowance(TOKEN) is False
        chain.send_transaction.assert_not_called()


class TestCloseRound:

    def test_tx_hash_is_0x_prefixed(self, chain):
        chain.send_transaction.return_value = {"status": 1, "transactionHash": bytes(range(32))}
        tx_hash = make_executor(chain).close_round()
        assert tx_hash.startswith("0x")
        assert len(tx_hash) == 66

    def test_live_close(self, chain):
        assert make_executor(chain).close_round() == "0x" + "ab" * 32
        chain.competition.functions.endRound.assert_called_once()

    def test_close_error(self, chain):
        chain.send_transaction.side_effect = RuntimeError("execution reverted: round active")
        with pytest.raises(ExecutionError):
            make_executor(chain).close_round()

    def test_simulation_close(self, chain):
        assert make_executor(chain, live=False).close_round() is None
        chain.send_transaction.assert_not_called()
