"""Tests for identity resolution."""

from __future__ import annotations

import asyncio

import aiohttp
import orjson
import pytest

from fxpilot.config import DEFAULT_LOCAL_IDENTITY, IdentityConfig
from fxpilot.signals import IdentityBootstrap, StaticIdentity

AUTH_URL = "http://auth.test/signIn"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("FXPILOT_APP_ID", "FXPILOT_AUTH_URL", "FXPILOT_AUTH_TOKEN"):
        monkeypatch.delenv(var, raising=False)


def _uid_body(uid: str = "user-42") -> bytes:
    return orjson.dumps({"uid": uid})


class TestStaticIdentity:
    """Fixed identity."""

    @pytest.mark.asyncio
    async def test_always_available(self) -> None:
        identity = StaticIdentity("user-1")
        identity.start()

        assert identity.current == "user-1"
        assert await identity.resolve() == "user-1"
        await identity.close()

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError):
            StaticIdentity("")


class TestIdentityBootstrapResolve:
    """Single resolution attempts."""

    @pytest.mark.asyncio
    async def test_local_identity_without_auth_url(self) -> None:
        bootstrap = IdentityBootstrap(IdentityConfig())

        assert bootstrap.current is None
        assert await bootstrap.resolve() == DEFAULT_LOCAL_IDENTITY
        assert bootstrap.current == DEFAULT_LOCAL_IDENTITY
        assert bootstrap.app_id == "local-app-id"

    @pytest.mark.asyncio
    async def test_custom_token_exchanged(self, make_response, make_session) -> None:
        session = make_session(make_response(200, body=_uid_body()))
        config = IdentityConfig(auth_url=AUTH_URL, auth_token="custom-token")
        bootstrap = IdentityBootstrap(config, session=session)

        assert await bootstrap.resolve() == "user-42"
        call = session.post.call_args
        assert call.args[0] == AUTH_URL
        assert call.kwargs["json"] == {"customToken": "custom-token"}

    @pytest.mark.asyncio
    async def test_anonymous_sign_in(self, make_response, make_session) -> None:
        session = make_session(make_response(200, body=_uid_body("anon-1")))
        bootstrap = IdentityBootstrap(IdentityConfig(auth_url=AUTH_URL), session=session)

        assert await bootstrap.resolve() == "anon-1"
        assert session.post.call_args.kwargs["json"] == {"anonymous": True}

    @pytest.mark.asyncio
    async def test_resolved_identity_is_cached(self, make_response, make_session) -> None:
        session = make_session(make_response(200, body=_uid_body()))
        bootstrap = IdentityBootstrap(IdentityConfig(auth_url=AUTH_URL), session=session)

        await bootstrap.resolve()
        await bootstrap.resolve()

        assert session.post.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,body",
        [
            (401, b""),
            (200, b"not json"),
            (200, b'{"user": "x"}'),
            (200, b'{"uid": ""}'),
        ],
    )
    async def test_failure_leaves_identity_unset(
        self, make_response, make_session, status: int, body: bytes
    ) -> None:
        session = make_session(make_response(status, body=body, text="denied"))
        bootstrap = IdentityBootstrap(IdentityConfig(auth_url=AUTH_URL), session=session)

        assert await bootstrap.resolve() is None
        assert bootstrap.current is None

    @pytest.mark.asyncio
    async def test_connection_error(self, make_session) -> None:
        session = make_session(aiohttp.ClientConnectionError("refused"))
        bootstrap = IdentityBootstrap(IdentityConfig(auth_url=AUTH_URL), session=session)

        assert await bootstrap.resolve() is None


class TestIdentityBootstrapBackground:
    """Background resolution started by the scheduler."""

    @pytest.mark.asyncio
    async def test_retries_until_available(
        self, make_response, make_session, fake_sleep, sleeps
    ) -> None:
        session = make_session(
            make_response(503, text="unavailable"),
            make_response(503, text="unavailable"),
            make_response(200, body=_uid_body()),
        )
        bootstrap = IdentityBootstrap(
            IdentityConfig(auth_url=AUTH_URL), session=session, sleep=fake_sleep
        )

        bootstrap.start()
        for _ in range(50):
            if bootstrap.current is not None:
                break
            await asyncio.sleep(0)

        assert bootstrap.current == "user-42"
        assert len(sleeps) == 2
        assert sleeps[1] >= sleeps[0]
        await bootstrap.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_resolution(self, make_response, make_session) -> None:
        session = make_session(*[make_response(503) for _ in range(10)])
        bootstrap = IdentityBootstrap(
            IdentityConfig(auth_url=AUTH_URL, retry_base_delay_s=60), session=session
        )

        bootstrap.start()
        await asyncio.sleep(0)
        await bootstrap.close()

        assert bootstrap.current is None
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        bootstrap = IdentityBootstrap(IdentityConfig())

        bootstrap.start()
        bootstrap.start()
        await asyncio.sleep(0)

        assert bootstrap.current == DEFAULT_LOCAL_IDENTITY
        await bootstrap.close()
