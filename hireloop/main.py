from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from hireloop.config import CLIENT_CONFIG, load_config
from hireloop.core import ApiClient, EventBus, RealtimeBridge, SessionManager
from hireloop.core.realtime import ClientFactory
from hireloop.features import MessageFeed
from hireloop.notifications import Notifier, init_notifier, shutdown_notifier
from hireloop.protocol.events import LocalEvent
from hireloop.storage import SessionStore, TTLCache

logger = logging.getLogger(__name__)


@dataclass
class ClientContext:
    config: Dict[str, Any]
    notifier: Notifier
    store: SessionStore
    cache: TTLCache
    api: ApiClient
    session: SessionManager
    bus: EventBus
    realtime: RealtimeBridge
    feed: MessageFeed

    async def close(self) -> None:
        self.feed.close()
        await self.realtime.disconnect()
        await self.api.aclose()
        self.store.close()
        shutdown_notifier()


def build_context(
    config: Optional[Dict[str, Any]] = None,
    notifier: Optional[Notifier] = None,
    store: Optional[SessionStore] = None,
    cache: Optional[TTLCache] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    client_factory: Optional[ClientFactory] = None,
) -> ClientContext:
    """Wire notifier, storage, HTTP client, session and real-time bridge together."""
    config = config or CLIENT_CONFIG
    notifier = init_notifier(notifier)
    if store is None:
        store = SessionStore(config["session_db_path"])
    if cache is None:
        cache = TTLCache(default_ttl=config["cache_default_ttl"])
    api = ApiClient(store, config=config, notifier=notifier, transport=transport)
    session = SessionManager(api, store, cache=cache)
    # The client clears tokens on a terminal 401; the session drops the user.
    api.redirect = session.expire
    bus = EventBus()
    realtime = RealtimeBridge(bus, config=config, notifier=notifier, client_factory=client_factory)
    realtime.attach(session)
    feed = MessageFeed(bus)
    return ClientContext(config, notifier, store, cache, api, session, bus, realtime, feed)


def _log_event(kind: LocalEvent):
    def _handler(payload: Any) -> None:
        logger.info("%s: %s", kind.value, payload)

    return _handler


async def run_client() -> None:
    load_config()
    logging.basicConfig(level=CLIENT_CONFIG["log_level"])
    context = build_context(CLIENT_CONFIG)
    for kind in LocalEvent:
        context.bus.subscribe(kind, _log_event(kind))

    user = await context.session.restore()
    if user is None:
        logger.info("No stored session; waiting without a realtime connection")
    try:
        await asyncio.Event().wait()
    finally:
        await context.close()


if __name__ == "__main__":
    asyncio.run(run_client())
