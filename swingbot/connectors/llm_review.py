"""Advisory LLM review of trade signals.

The reviewer can raise a warning or force manual review. It cannot approve,
reject or size a trade; the deterministic decision always stands.
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx
import orjson
import structlog
from openai import OpenAI, OpenAIError

from swingbot.config.settings import LLMConfig
from swingbot.models import Signal


_log = structlog.get_logger(__name__)

_FENCED_JSON = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_BARE_JSON = re.compile(r"\{.*\}", re.DOTALL)

MAX_ADJUSTMENT = 10
DEFAULT_NOTES = "LLM review unavailable - using deterministic decision"


class AdvisoryLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    BLOCK_AUTO = "block_auto"


@dataclass(frozen=True)
class ReviewContract:
    advisory_level: AdvisoryLevel = AdvisoryLevel.INFO
    confidence_adjustment: int = 0
    notes: str = ""

    def __post_init__(self) -> None:
        value = float(self.confidence_adjustment)
        if math.isnan(value):
            value = 0.0
        adjustment = int(max(-MAX_ADJUSTMENT, min(MAX_ADJUSTMENT, value)))
        object.__setattr__(self, "confidence_adjustment", adjustment)

    @property
    def blocks_auto(self) -> bool:
        return self.advisory_level is AdvisoryLevel.BLOCK_AUTO

    @classmethod
    def default(cls) -> "ReviewContract":
        return cls(AdvisoryLevel.INFO, 0, DEFAULT_NOTES)

    @classmethod
    def parse(cls, raw: str) -> "ReviewContract":
        """Parse a model reply; JSON may be fenced or embedded in prose."""
        match = _FENCED_JSON.search(raw) or _BARE_JSON.search(raw)
        if match is None:
            _log.warning("llm_review_unparseable", raw=raw[:200])
            return cls.default()
        text = match.group(1) if match.re is _FENCED_JSON else match.group(0)
        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError:
            _log.warning("llm_review_unparseable", raw=raw[:200])
            return cls.default()
        if not isinstance(data, dict):
            return cls.default()

        level_raw = str(data.get("advisory_level", AdvisoryLevel.INFO)).lower()
        try:
            level = AdvisoryLevel(level_raw)
        except ValueError:
            _log.warning("llm_review_invalid_level", advisory_level=level_raw)
            level = AdvisoryLevel.INFO
        try:
            adjustment = float(data.get("confidence_adjustment", 0))
        except (TypeError, ValueError):
            adjustment = 0.0
        if not math.isfinite(adjustment):
            _log.warning("llm_review_invalid_adjustment", confidence_adjustment=str(adjustment))
            adjustment = 0.0
        return cls(level, adjustment, str(data.get("notes", "")))

    def to_dict(self) -> dict[str, Any]:
        return {
            "advisory_level": self.advisory_level.value,
            "confidence_adjustment": self.confidence_adjustment,
            "notes": self.notes,
        }


def apply_review(requires_approval: bool, contract: ReviewContract | None) -> bool:
    """Return whether manual approval is needed after review; review only adds friction."""
    if contract is None:
        return requires_approval
    return requires_approval or contract.blocks_auto


class LLMReviewer:
    """Review signals against an OpenAI-compatible chat completions endpoint."""

    def __init__(self, config: LLMConfig, transport: httpx.BaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport
        self._client: OpenAI | None = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            # review() owns retries
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.request_timeout_sec,
                max_retries=0,
                http_client=httpx.Client(transport=self._transport) if self._transport else None,
            )
        return self._client

    def review(self, signal: Signal, reasoning: dict[str, Any] | None = None) -> ReviewContract:
        if not self.config.enabled or not self.config.api_key:
            return ReviewContract.default()
        retries = max(0, self.config.retry_attempts)
        backoff = self.config.retry_backoff_sec
        for attempt in range(retries + 1):
            try:
                contract = ReviewContract.parse(self._complete(self._prompt(signal, reasoning)))
                _log.info(
                    "llm_review_completed",
                    symbol=signal.instrument.symbol,
                    advisory_level=contract.advisory_level.value,
                    confidence_adjustment=contract.confidence_adjustment,
                )
                return contract
            except (OpenAIError, IndexError, AttributeError, TypeError, ValueError, OverflowError) as exc:
                _log.warning(
                    "llm_review_failed",
                    symbol=signal.instrument.symbol,
                    attempt=attempt + 1,
                    error=str(exc),
                )
                if attempt < retries:
                    time.sleep(backoff * (2**attempt))
        return ReviewContract.default()

    def _complete(self, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.config.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        return response.choices[0].message.content or ""

    def _prompt(self, signal: Signal, reasoning: dict[str, Any] | None) -> str:
        reasoning = reasoning or {}
        mtf = signal.metadata.get("multi_timeframe") or {}
        return (
            "You are reviewing a swing trading signal. Provide advisory feedback only.\n\n"
            "TRADE DETAILS:\n"
            f"- Symbol: {signal.instrument.symbol}\n"
            f"- Direction: {signal.direction.value.upper()}\n"
            f"- Entry: ₹{signal.entry_price:.2f}\n"
            f"- Stop Loss: ₹{signal.stop_loss:.2f}\n"
            f"- Take Profit: ₹{signal.take_profit:.2f}\n"
            f"- Quantity: {signal.quantity}\n"
            f"- Risk-Reward: {signal.risk_reward:.2f}:1\n"
            f"- Confidence: {signal.confidence:.1f}%\n"
            f"- Holding days: {signal.holding_days_estimate}\n\n"
            "DETERMINISTIC REASONING:\n"
            f"- Multi-timeframe score: {mtf.get('score', 'n/a')}\n"
            f"- Trend alignment: {mtf.get('trend_alignment', 'n/a')}\n"
            f"- Notes: {reasoning.get('notes', 'n/a')}\n\n"
            "Respond with strict JSON only:\n"
            "{\n"
            '  "advisory_level": "info|warning|block_auto",\n'
            '  "confidence_adjustment": 0,\n'
            '  "notes": "one or two sentences"\n'
            "}\n\n"
            "advisory_level: info = no concerns, warning = minor concerns, "
            "block_auto = force manual review.\n"
            f"confidence_adjustment: integer between -{MAX_ADJUSTMENT} and {MAX_ADJUSTMENT}.\n"
            "You CANNOT approve or reject the trade, change quantities or prices."
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
