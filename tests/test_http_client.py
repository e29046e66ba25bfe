from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from hireloop.config import DEFAULT_CONFIG
from hireloop.core.http_client import ApiClient, RequestAttempt
from hireloop.protocol.errors import (
    ERROR_MESSAGES,
    ClientError,
    NetworkError,
    NotFoundError,
    RequestCancelled,
    ServerError,
    TerminalAuthError,
)
from hireloop.protocol.messages import TokenPair


class Recorder:
    def __init__(self):
        self.requests = []
        self.redirects = []

    def paths(self):
        return [request.url.path for request in self.requests]

    def refresh_calls(self):
        return [request for request in self.requests if request.url.path == "/auth/refresh"]

    async def redirect(self, target):
        self.redirects.append(target)


def _client(store, config, notifier, handler, recorder):
    def _recording(request):
        recorder.requests.append(request)
        return handler(request)

    return ApiClient(
        store,
        config=config,
        notifier=notifier,
        redirect=recorder.redirect,
        transport=httpx.MockTransport(_recording),
    )


def _login(store, access="old", refresh="r1"):
    store.save_tokens(TokenPair(access_token=access, refresh_token=refresh))


def test_retry_with_only_changes_auth_and_flag():
    attempt = RequestAttempt("GET", "/projects", params={"page": 1}, headers={"X-Trace": "1"})
    retried = attempt.retry_with("fresh")

    assert retried.retried is True
    assert attempt.retried is False
    assert retried.headers == {"X-Trace": "1", "Authorization": "Bearer fresh"}
    assert (retried.method, retried.url, retried.params) == ("GET", "/projects", {"page": 1})


@pytest.mark.asyncio
async def test_attaches_bearer_token(store, config, notifier):
    _login(store)
    recorder = Recorder()
    api = _client(store, config, notifier, lambda request: httpx.Response(200, json=[]), recorder)

    response = await api.get("/projects")

    assert response.status_code == 200
    assert recorder.requests[0].headers["Authorization"] == "Bearer old"
    assert recorder.requests[0].headers["Content-Type"] == "application/json"
    await api.aclose()


@pytest.mark.asyncio
async def test_no_token_means_no_authorization_header(store, config, notifier):
    recorder = Recorder()
    api = _client(store, config, notifier, lambda request: httpx.Response(200, json={}), recorder)

    await api.get("/categories")

    assert "Authorization" not in recorder.requests[0].headers
    await api.aclose()


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_once_and_request_retried(store, config, notifier):
    _login(store)
    recorder = Recorder()

    def handler(request):
        if request.url.path == "/auth/refresh":
            assert json.loads(request.content) == {"refreshToken": "r1"}
            return httpx.Response(200, json={"accessToken": "new", "refreshToken": "r2"})
        if request.headers.get("Authorization") == "Bearer new":
            return httpx.Response(200, json={"items": [1, 2]})
        return httpx.Response(401, json={"message": "jwt expired"})

    api = _client(store, config, notifier, handler, recorder)
    data = await api.get_json("/projects")

    assert data == {"items": [1, 2]}
    assert recorder.paths() == ["/projects", "/auth/refresh", "/projects"]
    assert "Authorization" not in recorder.requests[1].headers
    assert store.get_access_token() == "new"
    assert store.get_refresh_token() == "r2"
    assert notifier.toasts == []
    assert recorder.redirects == []
    await api.aclose()


@pytest.mark.asyncio
async def test_second_401_ends_session_without_another_refresh(store, config, notifier):
    _login(store)
    recorder = Recorder()

    def handler(request):
        if request.url.path == "/auth/refresh":
            return httpx.Response(200, json={"accessToken": "new", "refreshToken": "r2"})
        return httpx.Response(401, json={"message": "Account suspended"})

    api = _client(store, config, notifier, handler, recorder)
    with pytest.raises(TerminalAuthError):
        await api.get("/contracts")

    assert len(recorder.refresh_calls()) == 1
    assert recorder.paths().count("/contracts") == 2
    assert store.get_access_token() is None
    assert store.get_refresh_token() is None
    assert notifier.messages() == ["Account suspended"]
    assert recorder.redirects == ["/login"]
    await api.aclose()


@pytest.mark.asyncio
async def test_rejected_refresh_reports_session_expired(store, config, notifier):
    _login(store)
    recorder = Recorder()

    def handler(request):
        if request.url.path == "/auth/refresh":
            return httpx.Response(401, json={"message": "refresh token revoked"})
        return httpx.Response(401)

    api = _client(store, config, notifier, handler, recorder)
    with pytest.raises(TerminalAuthError) as excinfo:
        await api.get("/projects")

    assert excinfo.value.message == ERROR_MESSAGES["session_expired"]
    assert recorder.paths() == ["/projects", "/auth/refresh"]
    assert store.get_access_token() is None
    assert notifier.messages() == [ERROR_MESSAGES["session_expired"]]
    assert recorder.redirects == ["/login"]
    await api.aclose()


@pytest.mark.asyncio
async def test_missing_refresh_token_fails_without_exchange(store, config, notifier):
    recorder = Recorder()
    api = _client(store, config, notifier, lambda request: httpx.Response(401), recorder)

    with pytest.raises(TerminalAuthError):
        await api.get("/me")

    assert recorder.refresh_calls() == []
    assert notifier.messages() == [ERROR_MESSAGES["session_expired"]]
    assert recorder.redirects == ["/login"]
    await api.aclose()


@pytest.mark.asyncio
async def test_malformed_refresh_body_is_terminal(store, config, notifier):
    _login(store)
    recorder = Recorder()

    def handler(request):
        if request.url.path == "/auth/refresh":
            return httpx.Response(200, json={"accessToken": ""})
        return httpx.Response(401)

    api = _client(store, config, notifier, handler, recorder)
    with pytest.raises(TerminalAuthError):
        await api.get("/projects")

    assert store.get_access_token() is None
    await api.aclose()


@pytest.mark.asyncio
async def test_not_found_is_silent(store, config, notifier):
    recorder = Recorder()
    api = _client(store, config, notifier, lambda request: httpx.Response(404, json={"message": "nope"}), recorder)

    with pytest.raises(NotFoundError) as excinfo:
        await api.get("/projects/missing")

    assert excinfo.value.status == 404
    assert notifier.toasts == []
    await api.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, body, expected, error_type",
    [
        (400, {"message": "Budget must be positive"}, "Budget must be positive", ClientError),
        (400, None, ERROR_MESSAGES["validation"], ClientError),
        (403, None, ERROR_MESSAGES["forbidden"], ClientError),
        (422, {"message": "Unprocessable"}, "Unprocessable", ClientError),
        (500, {"message": "stack trace"}, ERROR_MESSAGES["server"], ServerError),
        (503, {"message": "Maintenance window"}, "Maintenance window", ServerError),
    ],
)
async def test_error_statuses_raise_and_notify(store, config, notifier, status, body, expected, error_type):
    recorder = Recorder()

    def handler(request):
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    api = _client(store, config, notifier, handler, recorder)
    with pytest.raises(error_type) as excinfo:
        await api.post("/projects", json={"budget": -1})

    assert excinfo.value.status == status
    assert notifier.messages() == [expected]
    assert recorder.redirects == []
    await api.aclose()


@pytest.mark.asyncio
async def test_network_failure_notifies(store, config, notifier):
    recorder = Recorder()

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    api = _client(store, config, notifier, handler, recorder)
    with pytest.raises(NetworkError) as excinfo:
        await api.get("/projects")

    assert excinfo.value.status is None
    assert notifier.messages() == [ERROR_MESSAGES["network"]]
    await api.aclose()


@pytest.mark.asyncio
async def test_dedupe_refresh_exchanges_once_for_concurrent_401s(store, config, notifier):
    _login(store)
    config["dedupe_refresh"] = True
    recorder = Recorder()

    def handler(request):
        if request.url.path == "/auth/refresh":
            return httpx.Response(200, json={"accessToken": "new", "refreshToken": "r2"})
        if request.headers.get("Authorization") == "Bearer new":
            return httpx.Response(200, json={"path": request.url.path})
        return httpx.Response(401)

    api = _client(store, config, notifier, handler, recorder)
    first, second = await asyncio.gather(api.get_json("/projects"), api.get_json("/contracts"))

    assert first == {"path": "/projects"}
    assert second == {"path": "/contracts"}
    assert len(recorder.refresh_calls()) == 1
    await api.aclose()


@pytest.mark.asyncio
async def test_newer_request_supersedes_older_with_same_key(store, config, notifier):
    recorder = Recorder()
    release = asyncio.Event()

    async def handler(request):
        recorder.requests.append(request)
        if request.url.params["q"] == "first":
            await release.wait()
        return httpx.Response(200, json={"q": request.url.params["q"]})

    api = ApiClient(store, config=config, notifier=notifier, transport=httpx.MockTransport(handler))
    first = asyncio.create_task(api.get("/search", params={"q": "first"}, cancel_key="search"))
    await asyncio.sleep(0)

    second = await api.get("/search", params={"q": "second"}, cancel_key="search")

    assert second.json() == {"q": "second"}
    with pytest.raises(RequestCancelled):
        await first
    assert api.cancel("search") is False
    await api.aclose()


@pytest.mark.asyncio
async def test_cancel_aborts_in_flight_request(store, config, notifier):
    started = asyncio.Event()

    async def handler(request):
        started.set()
        await asyncio.Event().wait()

    api = ApiClient(store, config=config, notifier=notifier, transport=httpx.MockTransport(handler))
    pending = asyncio.create_task(api.get("/analytics", cancel_key="analytics"))
    await started.wait()

    assert api.cancel("analytics") is True
    with pytest.raises(RequestCancelled):
        await pending
    assert notifier.toasts == []
    await api.aclose()


@pytest.mark.asyncio
async def test_cookies_kept_only_with_credentials(store, notifier):
    def handler(request):
        if request.url.path == "/login":
            return httpx.Response(200, headers={"Set-Cookie": "sid=abc; Path=/"})
        return httpx.Response(200, json={"cookie": request.headers.get("Cookie")})

    for with_credentials, expected in ((True, "sid=abc"), (False, None)):
        config = {**DEFAULT_CONFIG, "api_base_url": "http://example.org", "with_credentials": with_credentials}
        api = ApiClient(store, config=config, notifier=notifier, transport=httpx.MockTransport(handler))
        await api.post("/login")
        assert (await api.get_json("/me")) == {"cookie": expected}
        await api.aclose()
