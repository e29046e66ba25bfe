from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Mapping, Optional, Set

import httpx

from hireloop.config import CLIENT_CONFIG
from hireloop.notifications import Notifier, get_notifier
from hireloop.protocol.errors import (
    ERROR_MESSAGES,
    ApiError,
    ClientError,
    NetworkError,
    NotFoundError,
    RecoverableAuthError,
    RequestCancelled,
    ServerError,
    StatusCode,
    TerminalAuthError,
    describe_status,
    server_message,
)
from hireloop.protocol.messages import TokenPair
from hireloop.storage.session_store import SessionStore

logger = logging.getLogger(__name__)

RedirectHook = Callable[[str], Any]


@dataclass(frozen=True)
class RequestAttempt:
    """One dispatch of a logical request; `retried` is the only thing a retry changes."""

    method: str
    url: str
    params: Optional[Mapping[str, Any]] = None
    json: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    retried: bool = False

    def retry_with(self, access_token: str) -> "RequestAttempt":
        headers = {**self.headers, "Authorization": f"Bearer {access_token}"}
        return replace(self, headers=headers, retried=True)


class ApiClient:
    """Async REST client that attaches bearer tokens and recovers once from a 401."""

    def __init__(
        self,
        store: SessionStore,
        config: Optional[Dict[str, Any]] = None,
        notifier: Optional[Notifier] = None,
        redirect: Optional[RedirectHook] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or CLIENT_CONFIG
        self.store = store
        self._notifier = notifier
        self.redirect = redirect
        self.http = httpx.AsyncClient(
            base_url=self.config["api_base_url"],
            timeout=httpx.Timeout(float(self.config["request_timeout"])),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._refresh_lock = asyncio.Lock()
        self._inflight: Dict[str, asyncio.Task] = {}
        self._superseded: Set[asyncio.Task] = set()

    @property
    def notifier(self) -> Notifier:
        return self._notifier or get_notifier()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        cancel_key: Optional[str] = None,
    ) -> httpx.Response:
        attempt = RequestAttempt(method=method.upper(), url=url, params=params, json=json, headers=dict(headers or {}))
        if cancel_key is None:
            return await self._send(attempt)
        return await self._send_latest(cancel_key, attempt)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, json=json if json is not None else {}, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, json=json if json is not None else {}, **kwargs)

    async def patch(self, url: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, json=json if json is not None else {}, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.get(url, **kwargs)
        return response.json()

    def cancel(self, cancel_key: str) -> bool:
        """Abort the in-flight request registered under `cancel_key`; no-op once it finished."""
        task = self._inflight.get(cancel_key)
        if task is None or task.done():
            return False
        self._superseded.add(task)
        task.cancel()
        return True

    async def aclose(self) -> None:
        for task in list(self._inflight.values()):
            if not task.done():
                self._superseded.add(task)
                task.cancel()
        await self.http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _send_latest(self, cancel_key: str, attempt: RequestAttempt) -> httpx.Response:
        if self.cancel(cancel_key):
            logger.debug("Superseded in-flight request %s", cancel_key)
        task = asyncio.create_task(self._send(attempt), name=f"api-{cancel_key}")
        self._inflight[cancel_key] = task
        try:
            return await task
        except asyncio.CancelledError:
            if task in self._superseded:
                raise RequestCancelled(f"{attempt.method} {attempt.url} was cancelled") from None
            raise
        finally:
            self._superseded.discard(task)
            if self._inflight.get(cancel_key) is task:
                del self._inflight[cancel_key]

    async def _dispatch(self, attempt: RequestAttempt) -> httpx.Response:
        headers = dict(attempt.headers)
        token = self.store.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        logger.debug("%s %s (retried=%s)", attempt.method, attempt.url, attempt.retried)
        response = await self.http.request(
            attempt.method,
            attempt.url,
            params=attempt.params,
            json=attempt.json,
            headers=headers,
        )
        if not self.config["with_credentials"]:
            self.http.cookies.clear()
        return response

    async def _send(self, attempt: RequestAttempt) -> httpx.Response:
        try:
            response = await self._dispatch(attempt)
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", attempt.method, attempt.url, exc)
            self.notifier.error(ERROR_MESSAGES["network"])
            raise NetworkError(ERROR_MESSAGES["network"]) from exc

        status = response.status_code
        if status < StatusCode.BAD_REQUEST:
            return response

        message = server_message(response)
        if status == StatusCode.UNAUTHORIZED:
            return await self._handle_unauthorized(attempt, response, message)
        if status == StatusCode.NOT_FOUND:
            raise NotFoundError(describe_status(status), status, response)

        text = describe_status(status, message)
        self.notifier.error(text)
        if status >= StatusCode.INTERNAL_ERROR:
            raise ServerError(text, status, response)
        raise ClientError(text, status, response)

    async def _handle_unauthorized(
        self, attempt: RequestAttempt, response: httpx.Response, message: Optional[str]
    ) -> httpx.Response:
        if attempt.retried:
            text = describe_status(StatusCode.UNAUTHORIZED, message)
            logger.warning("%s %s rejected again after refresh", attempt.method, attempt.url)
            await self._end_session(text)
            raise TerminalAuthError(text, StatusCode.UNAUTHORIZED, response)

        recoverable = RecoverableAuthError(describe_status(StatusCode.UNAUTHORIZED, message), StatusCode.UNAUTHORIZED, response)
        stale = response.request.headers.get("Authorization", "").removeprefix("Bearer ")
        try:
            pair = await self._refresh_tokens(stale)
        except ApiError as exc:
            logger.warning("Token refresh failed: %s", exc)
            await self._end_session(ERROR_MESSAGES["session_expired"])
            raise TerminalAuthError(ERROR_MESSAGES["session_expired"], exc.status, exc.response) from recoverable
        return await self._send(attempt.retry_with(pair.access_token))

    async def _refresh_tokens(self, stale_token: str) -> TokenPair:
        if not self.config["dedupe_refresh"]:
            return await self._exchange_refresh_token()
        async with self._refresh_lock:
            current = self.store.get_access_token()
            refresh_token = self.store.get_refresh_token()
            if current and refresh_token and current != stale_token:
                # another request refreshed while this one waited
                return TokenPair(access_token=current, refresh_token=refresh_token)
            return await self._exchange_refresh_token()

    async def _exchange_refresh_token(self) -> TokenPair:
        refresh_token = self.store.get_refresh_token()
        if not refresh_token:
            raise TerminalAuthError("No refresh token available", StatusCode.UNAUTHORIZED)
        try:
            # Raw client: the exchange must not re-enter the 401 handling.
            response = await self.http.post(self.config["refresh_path"], json={"refreshToken": refresh_token})
        except httpx.RequestError as exc:
            raise TerminalAuthError(f"Refresh request failed: {exc}") from exc
        if response.status_code >= StatusCode.BAD_REQUEST:
            raise TerminalAuthError("Refresh token rejected", response.status_code, response)
        try:
            pair = TokenPair.model_validate(response.json())
        except ValueError as exc:
            raise TerminalAuthError("Refresh returned an invalid token pair", response.status_code, response) from exc
        self.store.save_tokens(pair)
        logger.info("Access token refreshed")
        return pair

    async def _end_session(self, message: str) -> None:
        self.store.clear_tokens()
        self.notifier.error(message)
        target = self.config["login_redirect"]
        if self.redirect is None:
            logger.info("Session ended; redirecting to %s", target)
            return
        result = self.redirect(target)
        if inspect.isawaitable(result):
            await result


__all__ = ["ApiClient", "RequestAttempt"]
