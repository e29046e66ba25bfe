from __future__ import annotations

from enum import StrEnum
from typing import Dict, Union


class ServerEvent(StrEnum):
    """
    Event names pushed by the server on the duplex connection.
    The connection lifecycle names are emitted by the transport itself.
    """

    # Connection lifecycle
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"

    # Presence domain
    USER_ONLINE = "user:online"
    USER_OFFLINE = "user:offline"
    USER_TYPING = "user:typing"

    # Messaging domain
    MESSAGE_NEW = "message:new"
    MESSAGE_READ = "message:read"
    CONVERSATION_UPDATED = "conversation:updated"

    # Notification domain
    NOTIFICATION_NEW = "notification:new"

    # Marketplace domain
    PROJECT_UPDATED = "project:updated"
    CONTRACT_UPDATED = "contract:updated"
    PROPOSAL_NEW = "proposal:new"
    PAYMENT_COMPLETED = "payment:completed"
    PAYMENT_FAILED = "payment:failed"
    DISPUTE_NEW = "dispute:new"
    DISPUTE_UPDATED = "dispute:updated"


class OutboundEvent(StrEnum):
    """Event names this client emits; all are fire-and-forget."""

    CONVERSATION_JOIN = "conversation:join"
    CONVERSATION_LEAVE = "conversation:leave"
    MESSAGE_SEND = "message:send"
    MESSAGE_READ = "message:read"
    USER_TYPING = "user:typing"


class LocalEvent(StrEnum):
    """Application-level notifications re-dispatched on the event bus."""

    USER_ONLINE = "userOnline"
    USER_OFFLINE = "userOffline"
    NEW_MESSAGE = "newMessage"
    MESSAGE_READ = "messageRead"
    CONVERSATION_UPDATED = "conversationUpdated"
    USER_TYPING = "userTyping"
    NEW_NOTIFICATION = "newNotification"
    PROJECT_UPDATED = "projectUpdated"
    CONTRACT_UPDATED = "contractUpdated"
    NEW_PROPOSAL = "newProposal"
    PAYMENT_COMPLETED = "paymentCompleted"
    PAYMENT_FAILED = "paymentFailed"
    NEW_DISPUTE = "newDispute"
    DISPUTE_UPDATED = "disputeUpdated"


LOCAL_EVENTS: Dict[str, LocalEvent] = {
    ServerEvent.USER_ONLINE.value: LocalEvent.USER_ONLINE,
    ServerEvent.USER_OFFLINE.value: LocalEvent.USER_OFFLINE,
    ServerEvent.USER_TYPING.value: LocalEvent.USER_TYPING,
    ServerEvent.MESSAGE_NEW.value: LocalEvent.NEW_MESSAGE,
    ServerEvent.MESSAGE_READ.value: LocalEvent.MESSAGE_READ,
    ServerEvent.CONVERSATION_UPDATED.value: LocalEvent.CONVERSATION_UPDATED,
    ServerEvent.NOTIFICATION_NEW.value: LocalEvent.NEW_NOTIFICATION,
    ServerEvent.PROJECT_UPDATED.value: LocalEvent.PROJECT_UPDATED,
    ServerEvent.CONTRACT_UPDATED.value: LocalEvent.CONTRACT_UPDATED,
    ServerEvent.PROPOSAL_NEW.value: LocalEvent.NEW_PROPOSAL,
    ServerEvent.PAYMENT_COMPLETED.value: LocalEvent.PAYMENT_COMPLETED,
    ServerEvent.PAYMENT_FAILED.value: LocalEvent.PAYMENT_FAILED,
    ServerEvent.DISPUTE_NEW.value: LocalEvent.NEW_DISPUTE,
    ServerEvent.DISPUTE_UPDATED.value: LocalEvent.DISPUTE_UPDATED,
}


def normalize_event(event: Union[str, ServerEvent, OutboundEvent, LocalEvent]) -> str:
    """Convert enum/string into canonical event text."""
    return event.value if isinstance(event, StrEnum) else str(event)


def is_server_event(value: str) -> bool:
    try:
        ServerEvent(value)
        return True
    except ValueError:
        return False


__all__ = [
    "LOCAL_EVENTS",
    "LocalEvent",
    "OutboundEvent",
    "ServerEvent",
    "is_server_event",
    "normalize_event",
]
