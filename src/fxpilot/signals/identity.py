"""
Caller identity used as the signal publish key.

The identity may not be known when the loop starts. Providers expose it
through ``current`` (None until resolved); the scheduler skips publishing
while it is None and keeps trading locally.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import aiohttp
import orjson

from fxpilot.backoff import BackoffConfig, BackoffState, compute_backoff_delay
from fxpilot.config import DEFAULT_LOCAL_IDENTITY, IdentityConfig

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Source of the publish key."""

    @property
    def current(self) -> str | None:
        """Resolved identity, or None while unavailable."""
        ...

    async def resolve(self) -> str | None:
        """Try once to obtain the identity."""
        ...

    def start(self) -> None:
        """Begin resolving in the background (called by the scheduler)."""
        ...

    async def close(self) -> None:
        """Stop background work and release resources."""
        ...


class StaticIdentity:
    """Fixed identity, always available."""

    def __init__(self, identity: str) -> None:
        if not identity:
            raise ValueError("identity must be non-empty")
        self._identity = identity

    @property
    def current(self) -> str | None:
        return self._identity

    async def resolve(self) -> str | None:
        return self._identity

    def start(self) -> None:
        return None

    async def close(self) -> None:
        return None


class IdentityBootstrap:
    """Obtains the identity from an auth endpoint.

    Without an endpoint the local identity is used. With one, the configured
    custom token is exchanged for a ``uid`` (anonymous sign-in when no token
    is set). ``start`` keeps retrying in the background with backoff until
    an identity is obtained.
    """

    def __init__(
        self,
        config: IdentityConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or IdentityConfig()
        self._session = session
        self._sleep = sleep
        self._rng = rng
        self._identity: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._backoff = BackoffConfig(
            base_delay_ms=int(self.config.retry_base_delay_s * 1000),
            max_delay_ms=int(self.config.retry_max_delay_s * 1000),
            jitter_ms=int(self.config.retry_base_delay_s * 500),
            max_retries=0,
        )

    @property
    def current(self) -> str | None:
        return self._identity

    @property
    def app_id(self) -> str:
        return self.config.app_id

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def resolve(self) -> str | None:
        if self._identity is not None:
            return self._identity

        if not self.config.auth_url:
            self._identity = DEFAULT_LOCAL_IDENTITY
            logger.info("No auth endpoint configured, using local identity")
            return self._identity

        try:
            self._identity = await self._sign_in()
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.warning(
                "Identity bootstrap failed",
                extra={"error_type": type(e).__name__, "reason": str(e)[:200]},
            )
            return None

        logger.info("Identity resolved", extra={"anonymous": not self.config.auth_token})
        return self._identity

    async def _sign_in(self) -> str:
        body: dict[str, Any]
        if self.config.auth_token:
            body = {"customToken": self.config.auth_token}
        else:
            body = {"anonymous": True}

        session = await self._get_session()
        async with session.post(self.config.auth_url, json=body) as resp:
            if not 200 <= resp.status < 300:
                error_text = await resp.text()
                raise ValueError(f"HTTP {resp.status}: {error_text[:200]}")
            raw: bytes = await resp.read()

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON from auth endpoint: {e}") from e
        uid = data.get("uid") if isinstance(data, dict) else None
        if not isinstance(uid, str) or not uid:
            raise ValueError("Auth response missing 'uid'")
        return uid

    def start(self) -> None:
        """Resolve in the background until an identity is available."""
        if self._identity is not None or (self._task is not None and not self._task.done()):
            return
        self._task = asyncio.get_running_loop().create_task(self._resolve_until_available())

    async def _resolve_until_available(self) -> None:
        state = BackoffState()
        while await self.resolve() is None:
            state.record_error()
            delay_ms = compute_backoff_delay(self._backoff, state, rng=self._rng)
            await self._sleep(delay_ms / 1000)

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
