"""
Configuration for comp-trader.

Settings come from the environment (and a local .env file). The prompt and
trade-size multiplier live in a separate text resource so they can be tuned
between rounds without touching the bot's environment.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Separates the multiplier line from the prompt template in the prompt source
PROMPT_DELIMITER = "---"
MARKET_DATA_PLACEHOLDER = "{market_data}"

DEFAULT_MULTIPLIER = 1.0
DEFAULT_PROMPT = (
    "You are trading in an on-chain trading competition. The current market "
    "data is below. Decide whether to buy or sell the round token and what "
    "percentage of the relevant balance to trade. Reply with JSON containing "
    "\"action\" (buy or sell) and \"percentage\" (0-100).\n\n"
    + MARKET_DATA_PLACEHOLDER
)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_floats(name: str, default: str) -> tuple:
    return tuple(float(v) for v in os.getenv(name, default).split(",") if v.strip())


@dataclass
class WalletConfig:
    private_key: str = os.getenv("PRIVATE_KEY", "")


@dataclass
class RPCConfig:
    rpc_url: str = os.getenv("RPC_URL", "http://localhost:8545")
    gas_limit: int = int(os.getenv("GAS_LIMIT", "500000"))


@dataclass
class CompetitionConfig:
    competition_address: str = os.getenv("COMPETITION_ADDRESS", "")
    periphery_address: str = os.getenv("PERIPHERY_ADDRESS", "")
    router_address: str = os.getenv(
        "ROUTER_ADDRESS", "0x4A7b5Da61326A6379179b40d00F57E5bbDC962c2"
    )
    # "token": competition.currentToken(); "mm_info": periphery.mmInfo(...)
    round_query: str = os.getenv("ROUND_QUERY", "token")
    close_round_on_end: bool = _env_bool("CLOSE_ROUND_ON_END", "false")


@dataclass
class TradingConfig:
    cycle_interval: float = float(os.getenv("CYCLE_INTERVAL", "15"))
    round_poll_interval: float = float(os.getenv("ROUND_POLL_INTERVAL", "2"))
    retry_delay: float = float(os.getenv("RETRY_DELAY", "5"))
    dust_threshold: float = float(os.getenv("DUST_THRESHOLD", "0.0001"))
    deadline_seconds: int = int(os.getenv("DEADLINE_SECONDS", "600"))
    max_slippage_bps: int = int(os.getenv("MAX_SLIPPAGE_BPS", "0"))  # 0 = accept any output
    pool_fee_multiplier: float = 0.997  # 0.3% LP fee
    history_window: int = int(os.getenv("HISTORY_WINDOW", "10"))
    impact_percentages: tuple = _env_floats(
        "IMPACT_PERCENTAGES", "0.01,0.05,0.1,0.5,1,2,5,10"
    )
    fallback_min_pct: int = 1
    fallback_max_pct: int = 10


@dataclass
class DecisionConfig:
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    api_url: str = "https://generativelanguage.googleapis.com/v1beta"
    prompt_source: str = os.getenv("PROMPT_SOURCE", "prompt.txt")
    temperature: float = float(os.getenv("GEMINI_TEMPERATURE", "2"))
    request_timeout: float = float(os.getenv("DECISION_TIMEOUT", "60"))


@dataclass
class NotificationConfig:
    webhook_url: str = os.getenv("WEBHOOK_URL", "")
    username: str = os.getenv("WEBHOOK_USERNAME", "Trading Competition")
    avatar_url: str = os.getenv("WEBHOOK_AVATAR_URL", "")


@dataclass
class BotConfig:
    wallet: WalletConfig = field(default_factory=WalletConfig)
    rpc: RPCConfig = field(default_factory=RPCConfig)
    competition: CompetitionConfig = field(default_factory=CompetitionConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def validate_for_chain(self):
        """Raise ConfigError when the settings needed to talk to the chain are absent."""
        from comp_trader.errors import ConfigError

        missing = []
        if not self.wallet.private_key:
            missing.append("PRIVATE_KEY")
        if not self.competition.competition_address:
            missing.append("COMPETITION_ADDRESS")
        if self.competition.round_query == "mm_info" and not self.competition.periphery_address:
            missing.append("PERIPHERY_ADDRESS")
        if self.competition.round_query not in ("token", "mm_info"):
            raise ConfigError(
                f"ROUND_QUERY must be 'token' or 'mm_info', got {self.competition.round_query!r}"
            )
        if missing:
            raise ConfigError(f"Missing settings: {', '.join(missing)}")


@dataclass
class PromptConfig:
    """Trade-size multiplier and prompt template for the AI decision source."""
    multiplier: float = DEFAULT_MULTIPLIER
    template: str = DEFAULT_PROMPT

    def render(self, market_data: str) -> str:
        if MARKET_DATA_PLACEHOLDER in self.template:
            return self.template.replace(MARKET_DATA_PLACEHOLDER, market_data)
        return f"{self.template}\n\n{market_data}"


def _read_prompt_source(source: str, timeout: float = 15) -> Optional[str]:
    if source.startswith(("http://", "https://")):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
            return response.text
        except requests.RequestException as e:
            logger.warning("Could not fetch prompt source %s: %s", source, e)
            return None

    path = Path(source)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read prompt source %s: %s", path, e)
        return None


def parse_prompt_config(text: Optional[str]) -> PromptConfig:
    """
    Parse ``<multiplier>\\n---\\n<template>``.

    Each half falls back independently: a bad multiplier keeps the template,
    an empty template keeps the multiplier.
    """
    if not text or not text.strip():
        logger.warning("Prompt source is empty, using built-in prompt and multiplier %.1f",
                       DEFAULT_MULTIPLIER)
        return PromptConfig()

    head, sep, tail = text.partition(PROMPT_DELIMITER)
    if not sep:
        logger.warning("Prompt source has no '%s' delimiter, using defaults", PROMPT_DELIMITER)
        return PromptConfig()

    multiplier = DEFAULT_MULTIPLIER
    try:
        value = float(head.strip())
        if math.isfinite(value) and 0 < value <= 1:
            multiplier = value
        else:
            logger.warning("Multiplier %s outside (0, 1], using %.1f", value, DEFAULT_MULTIPLIER)
    except ValueError:
        logger.warning("Multiplier %r is not a number, using %.1f", head.strip(), DEFAULT_MULTIPLIER)

    template = tail.strip() or DEFAULT_PROMPT
    return PromptConfig(multiplier=multiplier, template=template)


def load_prompt_config(source: str) -> PromptConfig:
    """Load the multiplier/prompt pair from a file path or an http(s) URL."""
    return parse_prompt_config(_read_prompt_source(source))
