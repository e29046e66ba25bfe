from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set, Union

from hireloop.protocol.events import LocalEvent
from hireloop.protocol.messages import TypingPayload

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class EventBus:
    """Publish/subscribe keyed by `LocalEvent`; many listeners, fire and forget."""

    def __init__(self) -> None:
        self._handlers: Dict[LocalEvent, List[Handler]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, kind: Union[LocalEvent, str], handler: Handler) -> Callable[[], None]:
        event = LocalEvent(kind)
        self._handlers[event].append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(event, handler)

        return _unsubscribe

    def unsubscribe(self, kind: Union[LocalEvent, str], handler: Handler) -> None:
        handlers = self._handlers.get(LocalEvent(kind))
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscribe_typing(self, conversation_id: str, handler: Callable[[TypingPayload], Any]) -> Callable[[], None]:
        """Receive typing changes for one conversation only."""

        def _scoped(payload: TypingPayload) -> Any:
            if payload.conversation_id == conversation_id:
                return handler(payload)
            return None

        return self.subscribe(LocalEvent.USER_TYPING, _scoped)

    def publish(self, kind: Union[LocalEvent, str], payload: Any) -> int:
        event = LocalEvent(kind)
        handlers = list(self._handlers.get(event, ()))
        delivered = 0
        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
                delivered += 1
            except Exception:
                logger.exception("Subscriber for %s failed", event.value)
        logger.debug("Published %s to %s subscriber(s)", event.value, delivered)
        return delivered

    def subscriber_count(self, kind: Union[LocalEvent, str]) -> int:
        return len(self._handlers.get(LocalEvent(kind), ()))

    def clear(self) -> None:
        self._handlers.clear()

    def _schedule(self, event: LocalEvent, awaitable: Any) -> None:
        async def _run() -> None:
            try:
                await awaitable
            except Exception:
                logger.exception("Async subscriber for %s failed", event.value)

        task = asyncio.get_running_loop().create_task(_run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


__all__ = ["EventBus", "Handler"]
