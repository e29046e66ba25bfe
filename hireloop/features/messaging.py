from __future__ import annotations

from typing import Callable, List

from hireloop.core.bus import EventBus
from hireloop.protocol.events import LocalEvent
from hireloop.protocol.messages import ChatMessage, ConversationPayload


class MessageFeed:
    """Live message list and conversation list fed by the event bus."""

    def __init__(self, bus: EventBus) -> None:
        self.messages: List[ChatMessage] = []
        self.conversations: List[ConversationPayload] = []
        self._unsubscribers: List[Callable[[], None]] = [
            bus.subscribe(LocalEvent.NEW_MESSAGE, self._handle_message),
            bus.subscribe(LocalEvent.CONVERSATION_UPDATED, self._handle_conversation),
        ]

    def _handle_message(self, message: ChatMessage) -> None:
        self.messages.append(message)

    def _handle_conversation(self, conversation: ConversationPayload) -> None:
        for index, existing in enumerate(self.conversations):
            if existing.id == conversation.id:
                self.conversations[index] = conversation
                return
        self.conversations.insert(0, conversation)

    def messages_for(self, conversation_id: str) -> List[ChatMessage]:
        return [message for message in self.messages if message.conversation_id == conversation_id]

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
