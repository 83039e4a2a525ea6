"""
Configuration for the trading loop and its external collaborators.

LoopConfig is frozen and validated with pydantic. Collaborator configs
(advisory service, identity bootstrap, signal sink) are plain dataclasses
that fill missing endpoints and credentials from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_LOCAL_IDENTITY = "mock-user-id-12345"


class PolicyKind(str, Enum):
    """Which decision policy drives the loop."""

    THRESHOLD = "threshold"
    ADVISORY = "advisory"


def _parse_decimal(v: object) -> Decimal:
    if isinstance(v, Decimal):
        return v
    if isinstance(v, float):
        return Decimal(str(v))
    if isinstance(v, (int, str)):
        return Decimal(v)
    raise ValueError(f"Cannot convert {type(v).__name__} to Decimal")


class LoopConfig(BaseModel):
    """Trading loop configuration (frozen).

    Money and prices are Decimal. ``fee_rate`` is charged per unit traded,
    so a 10,000 unit trade at 0.00002 costs 0.20 in fees.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    symbol: str = Field(default="EUR/USD", min_length=1, description="Instrument symbol")
    trade_size: int = Field(default=10_000, gt=0, description="Units per BUY")
    fee_rate: Annotated[Decimal, Field(ge=0, description="Fee per unit traded")] = Field(
        default=Decimal("0.00002")
    )
    tick_interval_s: float = Field(default=3.0, gt=0, description="Seconds between ticks")
    starting_cash: Annotated[Decimal, Field(ge=0, description="Initial cash balance")] = Field(
        default=Decimal("10000.00")
    )
    price_floor: Annotated[Decimal, Field(gt=0)] = Field(default=Decimal("1.09000"))
    price_ceiling: Annotated[Decimal, Field(gt=0)] = Field(default=Decimal("1.12000"))
    initial_price: Annotated[Decimal, Field(gt=0)] = Field(default=Decimal("1.10550"))
    initial_rsi: float = Field(default=50.0, ge=20.0, le=80.0)
    policy: PolicyKind = Field(default=PolicyKind.THRESHOLD)

    @field_validator(
        "fee_rate",
        "starting_cash",
        "price_floor",
        "price_ceiling",
        "initial_price",
        mode="before",
    )
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return _parse_decimal(v)

    @model_validator(mode="after")
    def check_price_band(self) -> LoopConfig:
        """The band must be non-empty and contain the initial price."""
        if self.price_floor >= self.price_ceiling:
            raise ValueError(
                f"price_floor ({self.price_floor}) must be below "
                f"price_ceiling ({self.price_ceiling})"
            )
        if not self.price_floor <= self.initial_price <= self.price_ceiling:
            raise ValueError(f"initial_price {self.initial_price} outside price band")
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> LoopConfig:
        """Build a config from FXPILOT_* variables; keyword overrides win."""
        env = os.environ if environ is None else environ
        mapping = {
            "FXPILOT_SYMBOL": "symbol",
            "FXPILOT_TRADE_SIZE": "trade_size",
            "FXPILOT_FEE_RATE": "fee_rate",
            "FXPILOT_TICK_INTERVAL_S": "tick_interval_s",
            "FXPILOT_STARTING_CASH": "starting_cash",
            "FXPILOT_PRICE_FLOOR": "price_floor",
            "FXPILOT_PRICE_CEILING": "price_ceiling",
            "FXPILOT_POLICY": "policy",
        }
        values: dict[str, Any] = {
            field_name: env[var] for var, field_name in mapping.items() if env.get(var)
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class AdvisoryConfig:
    """Remote decision service configuration."""

    url: str = ""  # From FXPILOT_ADVISORY_URL
    api_key: str = ""  # From FXPILOT_ADVISORY_API_KEY
    wire_format: Literal["json", "gemini"] = "json"
    timeout_s: float = 10.0
    max_retries: int = 3  # Retries on HTTP 429 only
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 8.0
    retry_jitter_s: float = 0.5

    def __post_init__(self) -> None:
        if not self.url:
            self.url = os.environ.get("FXPILOT_ADVISORY_URL", "")
        if not self.api_key:
            self.api_key = os.environ.get("FXPILOT_ADVISORY_API_KEY", "")
        if self.wire_format not in ("json", "gemini"):
            raise ValueError(f"wire_format must be 'json' or 'gemini', got {self.wire_format!r}")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_base_delay_s <= 0:
            raise ValueError(f"retry_base_delay_s must be > 0, got {self.retry_base_delay_s}")


@dataclass
class IdentityConfig:
    """Identity bootstrap configuration.

    With no ``auth_url`` the bootstrap resolves to DEFAULT_LOCAL_IDENTITY.
    """

    app_id: str = ""  # From FXPILOT_APP_ID, falls back to "local-app-id"
    auth_url: str = ""  # From FXPILOT_AUTH_URL
    auth_token: str = ""  # From FXPILOT_AUTH_TOKEN; anonymous sign-in when empty
    timeout_s: float = 10.0
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 60.0

    def __post_init__(self) -> None:
        if not self.app_id:
            self.app_id = os.environ.get("FXPILOT_APP_ID", "local-app-id")
        if not self.auth_url:
            self.auth_url = os.environ.get("FXPILOT_AUTH_URL", "")
        if not self.auth_token:
            self.auth_token = os.environ.get("FXPILOT_AUTH_TOKEN", "")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")


@dataclass
class PublisherConfig:
    """HTTP signal sink configuration."""

    enabled: bool = False
    base_url: str = ""  # From FXPILOT_SIGNAL_URL
    api_key: str = ""  # From FXPILOT_SIGNAL_API_KEY
    timeout_s: float = 5.0

    def __post_init__(self) -> None:
        if self.enabled:
            if not self.base_url:
                self.base_url = os.environ.get("FXPILOT_SIGNAL_URL", "")
            if not self.api_key:
                self.api_key = os.environ.get("FXPILOT_SIGNAL_API_KEY", "")
            if not self.base_url:
                raise ValueError("FXPILOT_SIGNAL_URL required when signal publisher enabled")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")
