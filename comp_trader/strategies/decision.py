"""
Trade decisions: where the buy/sell call and its size come from.

Two sources:
1. GeminiDecisionProvider - asks a generative model for a structured
   ``{action, percentage}`` reply given the market snapshot
2. RandomDecisionProvider - coin-flip action, 1-10% size

ResilientDecisionProvider puts them together. Anything wrong with the AI
answer (no answer, unparseable answer, invalid answer) becomes a logged
decision-source failure and the fallback decides instead.
"""

import json
import logging
import math
import random
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import requests

from comp_trader.config import DecisionConfig, PromptConfig
from comp_trader.errors import DecisionSourceError

logger = logging.getLogger(__name__)

# Haircut on every computed amount against rounding and slippage
SAFETY_FACTOR = 0.999

GENERATION_CONFIG = {
    "topP": 0.95,
    "topK": 40,
    "maxOutputTokens": 8192,
    "responseMimeType": "application/json",
    "responseSchema": {
        "type": "OBJECT",
        "properties": {
            "action": {"type": "STRING"},
            "percentage": {"type": "INTEGER"},
        },
        "required": ["action", "percentage"],
    },
}

_TEXT_ACTION = re.compile(r"Action:\s*(\w+)", re.IGNORECASE)
_TEXT_PERCENTAGE = re.compile(r"Percentage:\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)


class Action(Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class TradeDecision:
    action: Action
    percentage: float  # 0-100, 0 means no trade
    source: str = "ai"  # "ai" or "fallback"

    @property
    def is_buy(self) -> bool:
        return self.action is Action.BUY


def validate_decision(raw, source: str = "ai") -> TradeDecision:
    """Turn a raw ``{action, percentage}`` mapping into a TradeDecision or raise."""
    if not isinstance(raw, dict):
        raise DecisionSourceError(f"Decision is not an object: {raw!r}")

    action = raw.get("action")
    if not isinstance(action, str):
        raise DecisionSourceError(f"Missing or non-string action: {action!r}")
    try:
        parsed_action = Action(action.strip().lower())
    except ValueError:
        raise DecisionSourceError(f"Unrecognised action: {action!r}") from None

    percentage = raw.get("percentage")
    if isinstance(percentage, bool) or not isinstance(percentage, (int, float)):
        raise DecisionSourceError(f"Non-numeric percentage: {percentage!r}")
    # Range first: huge JSON integers overflow float conversion in isfinite
    if not 0 <= percentage <= 100 or not math.isfinite(percentage):
        raise DecisionSourceError(f"Percentage out of range: {percentage!r}")

    return TradeDecision(action=parsed_action, percentage=float(percentage), source=source)


def parse_text_decision(text: str) -> Optional[dict]:
    """Read the ``Action: buy / Percentage: 5`` reply format some prompts produce."""
    action = _TEXT_ACTION.search(text)
    percentage = _TEXT_PERCENTAGE.search(text)
    if not action or not percentage:
        return None
    return {"action": action.group(1), "percentage": float(percentage.group(1))}


def compute_trade_amount(decision: TradeDecision, stable_balance: float,
                         token_balance: float, multiplier: float,
                         safety_factor: float = SAFETY_FACTOR) -> float:
    """Amount of the input asset to swap: stable for buys, token for sells."""
    balance = stable_balance if decision.is_buy else token_balance
    if balance <= 0 or decision.percentage <= 0:
        return 0.0
    return balance * decision.percentage / 100 * multiplier * safety_factor


class DecisionProvider:
    """Something that looks at a market snapshot and says buy or sell, and how much."""

    name = "base"

    def decide(self, snapshot, prompt: PromptConfig) -> TradeDecision:
        raise NotImplementedError


class RandomDecisionProvider(DecisionProvider):
    """Uniform random action, uniform integer percentage in [min_pct, max_pct]."""

    name = "fallback"

    def __init__(self, min_pct: int = 1, max_pct: int = 10,
                 rng: Optional[random.Random] = None):
        if not 0 <= min_pct <= max_pct <= 100:
            raise ValueError(f"Bad fallback range {min_pct}-{max_pct}")
        self.min_pct = min_pct
        self.max_pct = max_pct
        self.rng = rng or random.Random()

    def decide(self, snapshot=None, prompt: Optional[PromptConfig] = None) -> TradeDecision:
        action = self.rng.choice((Action.BUY, Action.SELL))
        percentage = self.rng.randint(self.min_pct, self.max_pct)
        return TradeDecision(action=action, percentage=float(percentage), source=self.name)


class GeminiDecisionProvider(DecisionProvider):
    """
    Asks Google's Generative Language API for a decision.

    The request pins the response to JSON with an ``action`` string and an
    integer ``percentage``. Every failure mode raises DecisionSourceError.
    """

    name = "ai"

    def __init__(self, config: DecisionConfig, session: Optional[requests.Session] = None):
        if not config.gemini_api_key:
            raise ValueError("GeminiDecisionProvider needs GEMINI_API_KEY")
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "x-goog-api-key": config.gemini_api_key,
        })

    @property
    def endpoint(self) -> str:
        return f"{self.config.api_url}/models/{self.config.model}:generateContent"

    def _request_text(self, prompt_text: str) -> str:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt_text}]}],
            "generationConfig": {**GENERATION_CONFIG, "temperature": self.config.temperature},
        }
        try:
            response = self.session.post(
                self.endpoint, json=payload, timeout=self.config.request_timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise DecisionSourceError(f"Decision request failed: {e}") from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise DecisionSourceError(f"Unexpected response shape: {data!r}") from e

    def decide(self, snapshot, prompt: PromptConfig) -> TradeDecision:
        prompt_text = prompt.render(snapshot.summary)
        logger.debug("Decision prompt:\n%s", prompt_text)
        text = self._request_text(prompt_text)

        try:
            raw = json.loads(text)
        except ValueError:
            raw = parse_text_decision(text)
            if raw is None:
                raise DecisionSourceError(f"Unparseable decision: {text[:200]!r}") from None

        return validate_decision(raw, source=self.name)


class ResilientDecisionProvider(DecisionProvider):
    """Primary source with a fallback for every decision-source failure."""

    def __init__(self, primary: Optional[DecisionProvider],
                 fallback: DecisionProvider):
        self.primary = primary
        self.fallback = fallback
        self.failures = 0

    @property
    def name(self) -> str:
        return self.primary.name if self.primary else self.fallback.name

    def decide(self, snapshot, prompt: PromptConfig) -> TradeDecision:
        if self.primary is None:
            return self.fallback.decide(snapshot, prompt)

        try:
            return self.primary.decide(snapshot, prompt)
        except DecisionSourceError as e:
            self.failures += 1
            logger.warning("Decision source failed (%d so far), using fallback: %s",
                           self.failures, e)
            return self.fallback.decide(snapshot, prompt)
