"""
Advisory policy: delegates the decision to a remote service.

- The request carries price, RSI, volume, top of book and position
- The response must validate as {action: BUY|SELL|PASS, rationale}
- HTTP 429 is retried with exponential backoff plus jitter
- Every other failure (transport, timeout, non-2xx, bad payload) becomes
  a PASS decision whose rationale starts with "Advisory Error"
- Unit tests never touch the network; the aiohttp session is injected

Two wire formats are supported. ``json`` posts the request as-is and
expects the decision object back. ``gemini`` wraps the data in a
generateContent prompt with a response schema and reads the decision from
the first candidate's text.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import aiohttp
import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fxpilot.backoff import (
    BackoffConfig,
    BackoffState,
    RateLimitError,
    compute_backoff_delay,
    parse_retry_after,
)
from fxpilot.config import AdvisoryConfig
from fxpilot.errors import DecisionSourceUnavailable
from fxpilot.policy.base import Action, Decision

if TYPE_CHECKING:
    from fxpilot.market.models import MarketSnapshot, PriceLevel
    from fxpilot.metrics import LoopMetrics

logger = logging.getLogger(__name__)

NO_STRUCTURED_OUTPUT = "AI failed to generate structured output."


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class LevelPayload(_WireModel):
    """Top-of-book level as sent to the advisory service."""

    price: float
    size: int

    @classmethod
    def from_level(cls, level: PriceLevel) -> LevelPayload:
        return cls(price=float(level.price), size=level.size)


class AdvisoryRequest(_WireModel):
    """Market state sent to the advisory service (camelCase on the wire)."""

    ticker: str
    price: float
    rsi: float
    volume: int
    top_bid: LevelPayload
    top_ask: LevelPayload
    position_units: int = Field(ge=0)

    @classmethod
    def from_snapshot(
        cls, ticker: str, snapshot: MarketSnapshot, position_units: int
    ) -> AdvisoryRequest:
        return cls(
            ticker=ticker,
            price=float(snapshot.price),
            rsi=snapshot.rsi,
            volume=snapshot.daily_volume,
            top_bid=LevelPayload.from_level(snapshot.order_book.best_bid),
            top_ask=LevelPayload.from_level(snapshot.order_book.best_ask),
            position_units=position_units,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AdvisoryResponse(BaseModel):
    """Decision returned by the advisory service."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    action: Action
    rationale: str

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: object) -> object:
        """Accept surrounding whitespace and lower case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v


SYSTEM_PROMPT = """You are a high-frequency trading assistant for forex currency pairs.
Decide on the next action from the latest one-minute market data and order book imbalance.

The current position in {ticker} is {position_units} units.

Output ONLY a single JSON object, no text outside it.

Actions:
- BUY: enter a long position or add to the current long position.
- SELL: exit the current long position.
- PASS: take no action and wait for a clearer signal."""

USER_QUERY = """Analyze the current 1-minute data for {ticker}:
Current Price: {price:.5f}
RSI: {rsi}
Volume: {volume}

Order Book (Level 2):
Top Bid Price: {bid_price:.5f} (Size: {bid_size} units)
Top Ask Price: {ask_price:.5f} (Size: {ask_size} units)

Current Position: {position_units} units.

Provide the best trading decision (BUY, SELL, or PASS) and a one-sentence rationale."""

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "action": {"type": "STRING", "enum": [a.value for a in Action]},
        "rationale": {
            "type": "STRING",
            "description": "A single, concise, one-sentence reason for the action.",
        },
    },
    "required": ["action", "rationale"],
}


def _build_gemini_payload(request: AdvisoryRequest) -> dict[str, Any]:
    """generateContent body carrying the market data as a prompt."""
    system_prompt = SYSTEM_PROMPT.format(
        ticker=request.ticker, position_units=request.position_units
    )
    user_query = USER_QUERY.format(
        ticker=request.ticker,
        price=request.price,
        rsi=request.rsi,
        volume=request.volume,
        bid_price=request.top_bid.price,
        bid_size=request.top_bid.size,
        ask_price=request.top_ask.price,
        ask_size=request.top_ask.size,
        position_units=request.position_units,
    )
    return {
        "contents": [{"parts": [{"text": user_query}]}],
        "systemInstruction": {"parts": [{"text": system_prompt}]},
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        },
    }


def _strip_code_fence(text: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    return text.replace("```json", "").replace("```", "").strip()


def _extract_candidate_text(data: Any) -> str:
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise ValueError(NO_STRUCTURED_OUTPUT) from e
    if not isinstance(text, str) or not text.strip():
        raise ValueError(NO_STRUCTURED_OUTPUT)
    return text


def _parse_advisory_response(raw: bytes, wire_format: str) -> AdvisoryResponse:
    """
    Parse a response body into an AdvisoryResponse.

    Raises ValueError (pydantic's ValidationError included) on any problem.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in advisory response: {e}") from e

    if wire_format == "gemini":
        text = _strip_code_fence(_extract_candidate_text(data))
        try:
            data = orjson.loads(text.encode())
        except orjson.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in model output: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    return AdvisoryResponse.model_validate(data)


class AdvisoryPolicy:
    """Remote decision source that degrades to PASS on any failure."""

    def __init__(
        self,
        config: AdvisoryConfig | None = None,
        ticker: str = "EUR/USD",
        *,
        session: aiohttp.ClientSession | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: LoopMetrics | None = None,
    ) -> None:
        self.config = config or AdvisoryConfig()
        self.ticker = ticker
        self._session = session
        self._rng = rng
        self._sleep = sleep
        self._metrics = metrics
        self._backoff = BackoffConfig.from_seconds(
            self.config.retry_base_delay_s,
            self.config.retry_max_delay_s,
            self.config.retry_jitter_s,
            self.config.max_retries,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            if self.config.wire_format == "gemini":
                headers["x-goog-api-key"] = self.config.api_key
            else:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def decide(self, snapshot: MarketSnapshot, position_units: int) -> Decision:
        """Ask the advisory service; PASS on any failure."""
        if not self.config.url:
            return self._fallback("no advisory endpoint configured", snapshot)

        request = AdvisoryRequest.from_snapshot(self.ticker, snapshot, position_units)
        if self.config.wire_format == "gemini":
            payload = _build_gemini_payload(request)
        else:
            payload = request.to_wire()

        try:
            response = await self._call_with_retries(payload)
        except DecisionSourceUnavailable as e:
            return self._fallback(str(e), snapshot)

        logger.info(
            "Advisory decision",
            extra={
                "minute": snapshot.minute_index,
                "action": response.action.value,
                "wire_format": self.config.wire_format,
            },
        )
        return Decision(response.action, response.rationale)

    async def _call_with_retries(self, payload: dict[str, Any]) -> AdvisoryResponse:
        state = BackoffState()
        while True:
            try:
                raw = await asyncio.wait_for(self._post(payload), timeout=self.config.timeout_s)
            except RateLimitError as e:
                state.record_error()
                if state.exhausted(self._backoff):
                    raise DecisionSourceUnavailable(
                        f"rate limited (HTTP 429) after {self._backoff.max_retries} retries"
                    ) from e
                retry_after_ms = e.retry_after_ms
                if retry_after_ms is not None:
                    retry_after_ms = min(retry_after_ms, self._backoff.max_delay_ms)
                delay_ms = compute_backoff_delay(
                    self._backoff, state, retry_after_ms, rng=self._rng
                )
                logger.warning(
                    "Advisory rate limited, backing off",
                    extra={"attempt": state.attempt, "delay_ms": delay_ms},
                )
                await self._sleep(delay_ms / 1000)
                continue
            except TimeoutError as e:
                raise DecisionSourceUnavailable(
                    f"request timed out after {self.config.timeout_s}s"
                ) from e
            except aiohttp.ClientError as e:
                raise DecisionSourceUnavailable(f"connection error: {e}") from e
            except ValueError as e:
                raise DecisionSourceUnavailable(f"unreadable response: {str(e)[:200]}") from e

            try:
                return _parse_advisory_response(raw, self.config.wire_format)
            except ValueError as e:
                raise DecisionSourceUnavailable(f"invalid response: {str(e)[:200]}") from e

    async def _post(self, payload: dict[str, Any]) -> bytes:
        session = await self._get_session()
        async with session.post(self.config.url, json=payload, headers=self._headers()) as resp:
            status = resp.status
            if status == 429:
                raise RateLimitError(
                    "Advisory rate limited (429)",
                    retry_after_ms=parse_retry_after(resp.headers.get("Retry-After")),
                )
            if not 200 <= status < 300:
                error_text = await resp.text(errors="replace")
                raise DecisionSourceUnavailable(f"HTTP {status}: {error_text[:200]}")
            body: bytes = await resp.read()
            return body

    def _fallback(self, reason: str, snapshot: MarketSnapshot) -> Decision:
        logger.warning(
            "Advisory unavailable, falling back to PASS",
            extra={"minute": snapshot.minute_index, "reason": reason[:200]},
        )
        if self._metrics is not None:
            self._metrics.record_advisory_fallback()
        return Decision.pass_(f"Advisory Error: {reason}")

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
