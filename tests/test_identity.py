"""
Tests for session identity providers.
"""
import pytest
from aiohttp.test_utils import make_mocked_request

from mailbox_tokens.exceptions import NoSessionError
from mailbox_tokens.identity import (
    CallableSessionProvider,
    RequestSessionProvider,
    SessionIdentity,
)


class NavigatorLikeSession(dict):
    """Session mapping exposing its id as an attribute."""

    session_id = "5b2e0c8f9a"


class TestCallableSessionProvider:

    async def test_sync_callable(self, identity):
        provider = CallableSessionProvider(lambda: identity)
        assert await provider.require_identity() == identity

    async def test_async_callable(self, identity):
        async def getter():
            return identity
        provider = CallableSessionProvider(getter)
        assert await provider.get_current_session() == identity

    async def test_mapping_result(self):
        provider = CallableSessionProvider(
            lambda: {"user_id": "u1", "email": "a@b.com", "session_token": "t"}
        )
        identity = await provider.require_identity()
        assert identity == SessionIdentity(user_id="u1", email="a@b.com", session_token="t")

    async def test_none_raises(self):
        provider = CallableSessionProvider(lambda: None)
        assert await provider.get_current_session() is None
        with pytest.raises(NoSessionError):
            await provider.require_identity()

    async def test_invalid_mapping_raises(self):
        provider = CallableSessionProvider(lambda: {"email": "a@b.com"})
        with pytest.raises(NoSessionError):
            await provider.require_identity()

    async def test_provider_failure_is_no_session(self):
        def broken():
            raise ConnectionError("auth backend unreachable")
        provider = CallableSessionProvider(broken)
        with pytest.raises(NoSessionError) as exc:
            await provider.require_identity()
        assert isinstance(exc.value.__cause__, ConnectionError)


class TestRequestSessionProvider:

    async def test_reads_request_session(self):
        request = make_mocked_request("GET", "/")
        request["session"] = {
            "user_id": 42, "email": "a@b.com", "session_token": "tok",
        }
        identity = await RequestSessionProvider(request).require_identity()
        assert identity.user_id == "42"
        assert identity.email == "a@b.com"
        assert identity.session_token == "tok"

    async def test_falls_back_to_session_id(self):
        request = make_mocked_request("GET", "/")
        request["session"] = NavigatorLikeSession(user_id="u1", email="a@b.com")
        identity = await RequestSessionProvider(request).get_current_session()
        assert identity.session_token == "5b2e0c8f9a"

    async def test_missing_email_defaults_to_empty(self):
        request = make_mocked_request("GET", "/")
        request["session"] = {"user_id": "u1", "session_token": "tok"}
        identity = await RequestSessionProvider(request).get_current_session()
        assert identity.email == ""

    @pytest.mark.parametrize("session", [None, {}, {"email": "a@b.com", "session_token": "t"}])
    async def test_no_usable_session(self, session):
        request = make_mocked_request("GET", "/")
        if session is not None:
            request["session"] = session
        provider = RequestSessionProvider(request)
        assert await provider.get_current_session() is None
        with pytest.raises(NoSessionError):
            await provider.require_identity()

    async def test_custom_request_key(self):
        request = make_mocked_request("GET", "/")
        request["nav_session"] = {"user_id": "u1", "session_token": "tok"}
        provider = RequestSessionProvider(request, request_key="nav_session")
        assert (await provider.require_identity()).user_id == "u1"
