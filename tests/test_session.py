from __future__ import annotations

import httpx
import pytest

from hireloop.core.http_client import ApiClient
from hireloop.core.session import SessionError, SessionManager, parse_auth_response
from hireloop.protocol.errors import TerminalAuthError
from hireloop.protocol.messages import SessionUser, TokenPair
from hireloop.storage.cache import TTLCache, cache_keys
from hireloop.storage.session_store import USER_KEY

FLAT_LOGIN = {
    "accessToken": "a1",
    "refreshToken": "r1",
    "id": "u1",
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "role": "freelancer",
}


def _session(store, config, notifier, handler, cache=None):
    api = ApiClient(store, config=config, notifier=notifier, transport=httpx.MockTransport(handler))
    session = SessionManager(api, store, cache=cache if cache is not None else TTLCache())
    api.redirect = session.expire
    return session


class Listener:
    def __init__(self):
        self.seen = []

    async def __call__(self, user):
        self.seen.append(user)


def test_parse_flat_login_body():
    pair, user = parse_auth_response(FLAT_LOGIN)

    assert pair == TokenPair(access_token="a1", refresh_token="r1")
    assert set(pair.model_dump()) == {"access_token", "refresh_token"}
    assert user.id == "u1"
    assert user.role == "freelancer"


def test_parse_enveloped_login_body():
    body = {
        "success": True,
        "data": {
            "accessToken": "a1",
            "refreshToken": "r1",
            "user": {"_id": "u1", "firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"},
        },
    }

    pair, user = parse_auth_response(body)

    assert pair.refresh_token == "r1"
    assert user.name == "Ada Lovelace"
    assert user.role == "client"


@pytest.mark.parametrize("body", [{"message": "ok"}, {"accessToken": "a1", "refreshToken": "r1"}, ["not", "a", "dict"]])
def test_parse_rejects_incomplete_bodies(body):
    with pytest.raises(SessionError):
        parse_auth_response(body)


@pytest.mark.asyncio
async def test_login_persists_session_and_notifies(store, config, notifier):
    cache = TTLCache()

    def handler(request):
        assert request.url.path == "/auth/login"
        return httpx.Response(200, json=FLAT_LOGIN)

    session = _session(store, config, notifier, handler, cache)
    listener = Listener()
    session.add_listener(listener)

    user = await session.login("ada@example.com", "secret")

    assert session.is_authenticated
    assert store.get_access_token() == "a1"
    assert store.get_refresh_token() == "r1"
    assert store.get_user() == user
    assert cache.get(cache_keys.profile("u1")) == user
    assert listener.seen == [user]


@pytest.mark.asyncio
async def test_rejected_login_body_leaves_store_untouched(store, config, notifier):
    session = _session(store, config, notifier, lambda request: httpx.Response(200, json={"message": "ok"}))

    with pytest.raises(SessionError):
        await session.login("ada@example.com", "secret")

    assert store.get_access_token() is None
    assert session.user is None


@pytest.mark.asyncio
async def test_logout_clears_store_and_cache(store, config, notifier):
    cache = TTLCache()
    session = _session(store, config, notifier, lambda request: httpx.Response(200, json=FLAT_LOGIN), cache)
    await session.login("ada@example.com", "secret")
    cache.set(cache_keys.projects("u1"), ["p1"])
    listener = Listener()
    session.add_listener(listener)

    await session.logout()
    await session.logout()

    assert store.get_access_token() is None
    assert store.get_user() is None
    assert len(cache) == 0
    assert listener.seen == [None]


@pytest.mark.asyncio
async def test_restore_adopts_persisted_session(store, config, notifier):
    store.save_tokens(TokenPair(access_token="a1", refresh_token="r1"))
    store.save_user(SessionUser(id="u1", name="Ada"))
    session = _session(store, config, notifier, lambda request: httpx.Response(500))
    listener = Listener()
    session.add_listener(listener)

    user = await session.restore()

    assert user is not None and user.id == "u1"
    assert listener.seen == [user]


@pytest.mark.asyncio
async def test_restore_without_token_stays_anonymous(store, config, notifier):
    store.save_user(SessionUser(id="u1"))
    session = _session(store, config, notifier, lambda request: httpx.Response(500))

    assert await session.restore() is None


@pytest.mark.asyncio
async def test_restore_discards_corrupt_user(store, config, notifier):
    store.save_tokens(TokenPair(access_token="a1", refresh_token="r1"))
    store._set(USER_KEY, '{"name": "missing id"}')
    session = _session(store, config, notifier, lambda request: httpx.Response(500))

    assert await session.restore() is None
    assert store.get_access_token() is None


@pytest.mark.asyncio
async def test_refresh_user_updates_profile(store, config, notifier):
    def handler(request):
        if request.url.path == "/auth/login":
            return httpx.Response(200, json=FLAT_LOGIN)
        return httpx.Response(200, json={"id": "u1", "name": "Ada King", "email": "ada@example.com"})

    session = _session(store, config, notifier, handler)
    await session.login("ada@example.com", "secret")

    user = await session.refresh_user()

    assert user is not None and user.name == "Ada King"
    assert store.get_user().name == "Ada King"


@pytest.mark.asyncio
async def test_refresh_user_failure_logs_out(store, config, notifier):
    def handler(request):
        if request.url.path == "/auth/login":
            return httpx.Response(200, json=FLAT_LOGIN)
        return httpx.Response(404)

    session = _session(store, config, notifier, handler)
    await session.login("ada@example.com", "secret")

    assert await session.refresh_user() is None
    assert session.user is None
    assert store.get_access_token() is None


@pytest.mark.asyncio
async def test_terminal_auth_failure_expires_session(store, config, notifier):
    def handler(request):
        if request.url.path == "/auth/login":
            return httpx.Response(200, json=FLAT_LOGIN)
        return httpx.Response(401)

    cache = TTLCache()
    session = _session(store, config, notifier, handler, cache)
    await session.login("ada@example.com", "secret")
    cache.set(cache_keys.projects("u1"), ["secret project"])
    listener = Listener()
    session.add_listener(listener)

    with pytest.raises(TerminalAuthError):
        await session.api.get("/contracts")

    assert session.user is None
    assert store.get_user() is None
    assert listener.seen == [None]
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(store, config, notifier):
    session = _session(store, config, notifier, lambda request: httpx.Response(200, json=FLAT_LOGIN))
    listener = Listener()

    async def broken(user):
        raise RuntimeError("listener crashed")

    session.add_listener(broken)
    remove = session.add_listener(listener)

    await session.login("ada@example.com", "secret")
    remove()
    await session.logout()

    assert [user.id for user in listener.seen] == ["u1"]
