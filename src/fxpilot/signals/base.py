"""
Signal contract and publisher interface.

A Signal is the JSON document an external consumer polls for. Publishers
store one document per identity (last write wins) and must never raise:
failures are logged and reported through PublishResult.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from fxpilot.policy.base import Action

if TYPE_CHECKING:
    from fxpilot.policy.base import Decision

SIGNAL_STATUS_NEW = "NEW_SIGNAL"


class Signal(BaseModel):
    """Published trading signal (camelCase on the wire, price as a 5dp number)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    timestamp: int = Field(ge=0, description="Epoch milliseconds")
    ticker: str = Field(min_length=1)
    action: Action
    price: Decimal
    trade_size: int = Field(gt=0)
    rationale: str = ""
    status: Literal["NEW_SIGNAL"] = SIGNAL_STATUS_NEW

    @field_validator("action")
    @classmethod
    def reject_pass(cls, v: Action) -> Action:
        """PASS decisions are never published."""
        if v is Action.PASS:
            raise ValueError("PASS decisions are not published as signals")
        return v

    @field_serializer("price")
    def serialize_price(self, value: Decimal) -> float:
        return round(float(value), 5)

    @classmethod
    def from_decision(
        cls,
        decision: Decision,
        *,
        ticker: str,
        price: Decimal,
        trade_size: int,
        timestamp_ms: int,
    ) -> Signal:
        return cls(
            timestamp=timestamp_ms,
            ticker=ticker,
            action=decision.action,
            price=price,
            trade_size=trade_size,
            rationale=decision.rationale,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class PublishResult:
    """Result of a publish attempt."""

    success: bool
    publisher_name: str
    identity_key: str | None = None
    error: str | None = None
    status_code: int | None = None


class SignalPublisher(ABC):
    """Abstract base class for signal sinks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this publisher."""
        ...

    @abstractmethod
    async def publish(self, signal: Signal, identity_key: str) -> PublishResult:
        """
        Store ``signal`` as the current signal for ``identity_key``.

        Replaces any previous signal for the same identity.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by this publisher."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
