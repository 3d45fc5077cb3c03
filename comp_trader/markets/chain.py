"""
Chain handles shared by the round queries and the trade executor.

One ChainContext is built at start-up and passed down, so there is exactly
one provider, one signing account and one set of contract objects per run.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from eth_account import Account
from web3 import Web3

from comp_trader.config import BotConfig
from comp_trader.errors import ConfigError
from comp_trader.markets.abi import (
    COMPETITION_ABI,
    ERC20_ABI,
    FACTORY_ABI,
    PAIR_ABI,
    PERIPHERY_ABI,
    ROUTER_ABI,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2**256 - 1
TOKEN_DECIMALS = 18  # USDM and every round token


def normalize_token(address: Optional[str]) -> Optional[str]:
    """Checksummed address, or None for the empty/zero "no round" sentinel."""
    if not address or int(address, 16) == 0:
        return None
    return Web3.to_checksum_address(address)


def from_units(raw: int) -> float:
    return float(Decimal(raw) / Decimal(10**TOKEN_DECIMALS))


def to_units(amount: float) -> int:
    return int(Decimal(str(amount)) * Decimal(10**TOKEN_DECIMALS))


@dataclass
class ChainContext:
    w3: Web3
    account: object
    competition: object
    router: object
    stable: object
    periphery: Optional[object] = None
    gas_limit: int = 500_000
    _pairs: dict = field(default_factory=dict)

    @classmethod
    def connect(cls, config: BotConfig) -> "ChainContext":
        config.validate_for_chain()
        w3 = Web3(Web3.HTTPProvider(config.rpc.rpc_url))
        if not w3.is_connected():
            raise ConfigError(f"Cannot connect to RPC at {config.rpc.rpc_url}")

        account = Account.from_key(config.wallet.private_key)
        competition = w3.eth.contract(
            address=Web3.to_checksum_address(config.competition.competition_address),
            abi=COMPETITION_ABI,
        )
        router = w3.eth.contract(
            address=Web3.to_checksum_address(config.competition.router_address),
            abi=ROUTER_ABI,
        )
        stable = w3.eth.contract(
            address=Web3.to_checksum_address(competition.functions.USDM().call()),
            abi=ERC20_ABI,
        )
        periphery = None
        if config.competition.periphery_address:
            periphery = w3.eth.contract(
                address=Web3.to_checksum_address(config.competition.periphery_address),
                abi=PERIPHERY_ABI,
            )

        logger.info("Connected to chain %d as %s", w3.eth.chain_id, account.address)
        return cls(
            w3=w3,
            account=account,
            competition=competition,
            router=router,
            stable=stable,
            periphery=periphery,
            gas_limit=config.rpc.gas_limit,
        )

    @property
    def address(self) -> str:
        return self.account.address

    def token(self, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)

    def pair(self, token_address: str):
        """The stable/token pair contract, resolved through the router's factory once per token."""
        token_address = Web3.to_checksum_address(token_address)
        if token_address not in self._pairs:
            factory = self.w3.eth.contract(
                address=self.router.functions.factory().call(), abi=FACTORY_ABI
            )
            pair_address = factory.functions.getPair(self.stable.address, token_address).call()
            if normalize_token(pair_address) is None:
                return None
            self._pairs[token_address] = self.w3.eth.contract(address=pair_address, abi=PAIR_ABI)
        return self._pairs[token_address]

    def send_transaction(self, fn) -> dict:
        """Build, sign and send a contract call, then block until it is mined."""
        tx = fn.build_transaction(
            {
                "from": self.address,
                "nonce": self.w3.eth.get_transaction_count(self.address),
                "gas": self.gas_limit,
                "gasPrice": self.w3.eth.gas_price,
            }
        )
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return self.w3.eth.wait_for_transaction_receipt(tx_hash)
