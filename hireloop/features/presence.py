from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Set

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Online peers and per-conversation typing peers for one connection."""

    def __init__(self) -> None:
        self._online: Set[str] = set()
        self._typing: Dict[str, Set[str]] = {}

    def mark_online(self, user_id: str) -> None:
        self._online.add(user_id)

    def mark_offline(self, user_id: str) -> None:
        self._online.discard(user_id)

    def set_typing(self, conversation_id: str, user_id: str, is_typing: bool) -> None:
        if is_typing:
            self._typing.setdefault(conversation_id, set()).add(user_id)
            return
        users = self._typing.get(conversation_id)
        if users is None:
            return
        users.discard(user_id)
        if not users:
            del self._typing[conversation_id]

    def online_users(self) -> FrozenSet[str]:
        return frozenset(self._online)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._online

    def typing_users(self, conversation_id: str) -> FrozenSet[str]:
        return frozenset(self._typing.get(conversation_id, ()))

    def reset(self) -> None:
        """Drop everything; state never survives a reconnect."""
        if self._online or self._typing:
            logger.debug("Resetting presence (%s online, %s typing rooms)", len(self._online), len(self._typing))
        self._online.clear()
        self._typing.clear()


__all__ = ["PresenceTracker"]
