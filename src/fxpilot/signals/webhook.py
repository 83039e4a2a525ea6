"""
HTTP signal publisher.

Writes each signal with ``PUT {base_url}/artifacts/{app_id}/public/data/
signals/{identity}``: one document per identity, replaced on every write.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

import aiohttp

from fxpilot.errors import PublishFailure
from fxpilot.signals.base import PublishResult, SignalPublisher

if TYPE_CHECKING:
    from fxpilot.config import PublisherConfig
    from fxpilot.signals.base import Signal

logger = logging.getLogger(__name__)


def signal_document_path(app_id: str, identity_key: str) -> str:
    """Document path of the signal owned by ``identity_key``."""
    return (
        f"artifacts/{quote(app_id, safe='')}/public/data/signals/{quote(identity_key, safe='')}"
    )


class WebhookSignalPublisher(SignalPublisher):
    """Publishes signals to an HTTP document store."""

    def __init__(
        self,
        config: PublisherConfig,
        app_id: str = "local-app-id",
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._app_id = app_id
        self._session = session

    @property
    def name(self) -> str:
        # Don't expose the sink URL in the name
        return "webhook:signals"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def url_for(self, identity_key: str) -> str:
        base_url = self._config.base_url.rstrip("/")
        return f"{base_url}/{signal_document_path(self._app_id, identity_key)}"

    async def publish(self, signal: Signal, identity_key: str) -> PublishResult:
        if not self._config.enabled:
            return PublishResult(
                success=False,
                publisher_name=self.name,
                identity_key=identity_key,
                error="Signal publisher not enabled",
            )

        try:
            status = await self._put(signal, identity_key)
        except PublishFailure as e:
            logger.error(
                "Signal publish failed",
                extra={"publisher": self.name, "status": e.status_code, "error": str(e)},
            )
            return PublishResult(
                success=False,
                publisher_name=self.name,
                identity_key=identity_key,
                error=str(e),
                status_code=e.status_code,
            )

        logger.info(
            "Signal published",
            extra={"publisher": self.name, "action": signal.action.value, "status": status},
        )
        return PublishResult(
            success=True,
            publisher_name=self.name,
            identity_key=identity_key,
            status_code=status,
        )

    async def _put(self, signal: Signal, identity_key: str) -> int:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        try:
            session = await self._get_session()
            async with session.put(
                self.url_for(identity_key), json=signal.to_wire(), headers=headers
            ) as resp:
                status = resp.status
                if 200 <= status < 300:
                    return status
                error_text = await resp.text(errors="replace")
                raise PublishFailure(f"HTTP {status}: {error_text[:200]}", status_code=status)
        except aiohttp.ClientError as e:
            raise PublishFailure(f"Connection error: {e}") from e
        except TimeoutError as e:
            raise PublishFailure(f"Timed out after {self._config.timeout_s}s") from e
        except ValueError as e:
            raise PublishFailure(f"Unreadable response: {str(e)[:200]}") from e

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
