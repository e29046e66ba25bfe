from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from hireloop.core.http_client import ApiClient
from hireloop.protocol.errors import ApiError, ErrorCode, ProtocolError, StatusCode
from hireloop.protocol.messages import SessionUser, TokenPair
from hireloop.storage.cache import PROFILE_TTL, TTLCache, cache as default_cache, cache_keys
from hireloop.storage.session_store import SessionStore

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[SessionUser]], Awaitable[None]]


class SessionError(ProtocolError):
    pass


def parse_auth_response(body: Any) -> Tuple[TokenPair, SessionUser]:
    """Accept both the flat login body and the `{"data": {"user": ...}}` envelope."""
    if not isinstance(body, dict):
        raise SessionError(StatusCode.BAD_REQUEST, ErrorCode.INVALID_PAYLOAD, "Login response must be an object")
    data: Dict[str, Any] = body.get("data") if isinstance(body.get("data"), dict) else body
    raw_user = data.get("user")
    if isinstance(raw_user, dict):
        first = raw_user.get("firstName", "")
        last = raw_user.get("lastName", "")
        user_fields = {
            "id": raw_user.get("_id") or raw_user.get("id"),
            "name": raw_user.get("name") or f"{first} {last}".strip(),
            "email": raw_user.get("email", ""),
            "role": raw_user.get("role", "client"),
            "profilePicture": raw_user.get("profilePicture"),
        }
    else:
        user_fields = {key: data.get(key) for key in ("id", "name", "email", "role", "profilePicture")}
    try:
        pair = TokenPair.model_validate(data)
        user = SessionUser.model_validate({key: value for key, value in user_fields.items() if value is not None})
    except ValidationError as exc:
        raise SessionError(StatusCode.BAD_REQUEST, ErrorCode.INVALID_PAYLOAD, f"Login response invalid: {exc}") from exc
    return pair, user


class SessionManager:
    """Holds the authenticated user and notifies listeners on auth transitions."""

    def __init__(self, api: ApiClient, store: SessionStore, cache: Optional[TTLCache] = None) -> None:
        self.api = api
        self.store = store
        self.cache = cache if cache is not None else default_cache
        self.user: Optional[SessionUser] = None
        self._listeners: List[SessionListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def access_token(self) -> Optional[str]:
        return self.store.get_access_token()

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def restore(self) -> Optional[SessionUser]:
        """Adopt a session persisted by a previous run, if both token and user exist."""
        try:
            token = self.store.get_access_token()
            user = self.store.get_user()
        except ValueError:
            logger.exception("Stored session is corrupt")
            await self.logout()
            return None
        if token and user:
            self.user = user
            logger.info("Restored session for %s", user.id)
            await self._notify()
        return self.user

    async def login(self, email: str, password: str) -> SessionUser:
        response = await self.api.post(self.api.config["login_path"], json={"email": email, "password": password})
        pair, user = parse_auth_response(response.json())
        self.store.save_tokens(pair)
        self.store.save_user(user)
        self.cache.set(cache_keys.profile(user.id), user, PROFILE_TTL)
        self.user = user
        logger.info("Session authenticated for %s", user.id)
        await self._notify()
        return user

    async def logout(self) -> None:
        self.store.clear()
        self.cache.clear()
        was_authenticated = self.user is not None
        self.user = None
        if was_authenticated:
            logger.info("Logged out")
            await self._notify()

    async def refresh_user(self) -> Optional[SessionUser]:
        try:
            response = await self.api.get(self.api.config["me_path"])
            user = SessionUser.model_validate(response.json())
        except (ApiError, ValueError) as exc:
            logger.warning("Refreshing user failed: %s", exc)
            await self.logout()
            return None
        self.store.save_user(user)
        self.user = user
        return user

    async def expire(self, _redirect_to: str = "") -> None:
        """Redirect hook for the HTTP client: tokens are already gone, drop the user."""
        if self.user is None:
            return
        logger.info("Session expired for %s", self.user.id)
        self.user = None
        self.store.clear()
        self.cache.clear()
        await self._notify()

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(self.user)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Session listener failed")


__all__ = ["SessionError", "SessionManager", "parse_auth_response"]
