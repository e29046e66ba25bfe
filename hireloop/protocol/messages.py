from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ErrorCode, ProtocolError, StatusCode
from .events import ServerEvent, normalize_event


class WireModel(BaseModel):
    """Base for payloads exchanged with the backend (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TokenPair(WireModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    access_token: str = Field(..., alias="accessToken", min_length=1)
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class SessionUser(WireModel):
    """Serialized session profile persisted next to the token pair."""

    id: str
    name: str = ""
    email: str = ""
    role: str = "client"
    profile_picture: Optional[str] = Field(default=None, alias="profilePicture")


class SenderInfo(WireModel):
    id: Optional[str] = Field(default=None, alias="_id")
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    profile_picture: Optional[str] = Field(default=None, alias="profilePicture")


class ChatMessage(WireModel):
    id: Optional[str] = Field(default=None, alias="_id")
    conversation_id: str = Field(..., alias="conversationId")
    sender_id: str = Field(..., alias="senderId")
    receiver_id: Optional[str] = Field(default=None, alias="receiverId")
    content: str = ""
    message_type: str = Field(default="text", alias="messageType")
    is_read: bool = Field(default=False, alias="isRead")
    metadata: Optional[Dict[str, Any]] = None
    sender: Optional[SenderInfo] = None

    @property
    def sender_name(self) -> str:
        if self.sender is None:
            return ""
        return f"{self.sender.first_name} {self.sender.last_name}".strip()


class PresencePayload(WireModel):
    user_id: str = Field(..., alias="userId")


class TypingPayload(WireModel):
    conversation_id: str = Field(..., alias="conversationId")
    user_id: str = Field(..., alias="userId")
    is_typing: bool = Field(..., alias="isTyping")


class MessageReadPayload(WireModel):
    conversation_id: str = Field(..., alias="conversationId")
    message_id: str = Field(..., alias="messageId")
    read_by: Optional[str] = Field(default=None, alias="readBy")


class ConversationPayload(WireModel):
    id: str = Field(..., alias="_id")
    participants: List[str] = Field(default_factory=list)
    unread_count: int = Field(default=0, alias="unreadCount")
    last_message: Optional[Dict[str, Any]] = Field(default=None, alias="lastMessage")


class NotificationPayload(WireModel):
    message: str = ""


class ProposalPayload(WireModel):
    project_id: Optional[str] = Field(default=None, alias="projectId")
    freelancer_id: Optional[str] = Field(default=None, alias="freelancerId")
    client_id: Optional[str] = Field(default=None, alias="clientId")


class DomainPayload(WireModel):
    """Opaque domain object (project, contract, payment, dispute)."""


EVENT_PAYLOADS: Dict[str, Type[WireModel]] = {
    ServerEvent.USER_ONLINE.value: PresencePayload,
    ServerEvent.USER_OFFLINE.value: PresencePayload,
    ServerEvent.USER_TYPING.value: TypingPayload,
    ServerEvent.MESSAGE_NEW.value: ChatMessage,
    ServerEvent.MESSAGE_READ.value: MessageReadPayload,
    ServerEvent.CONVERSATION_UPDATED.value: ConversationPayload,
    ServerEvent.NOTIFICATION_NEW.value: NotificationPayload,
    ServerEvent.PROJECT_UPDATED.value: DomainPayload,
    ServerEvent.CONTRACT_UPDATED.value: DomainPayload,
    ServerEvent.PROPOSAL_NEW.value: ProposalPayload,
    ServerEvent.PAYMENT_COMPLETED.value: DomainPayload,
    ServerEvent.PAYMENT_FAILED.value: DomainPayload,
    ServerEvent.DISPUTE_NEW.value: DomainPayload,
    ServerEvent.DISPUTE_UPDATED.value: DomainPayload,
}


def parse_event_payload(event: Union[str, ServerEvent], data: Any) -> WireModel:
    """Validate an inbound event body against its payload model."""
    event_text = normalize_event(event)
    model = EVENT_PAYLOADS.get(event_text)
    if model is None:
        raise ProtocolError(StatusCode.BAD_REQUEST, ErrorCode.INVALID_PAYLOAD, f"Unknown event {event_text}")
    if not isinstance(data, dict):
        raise ProtocolError(StatusCode.BAD_REQUEST, ErrorCode.INVALID_PAYLOAD, f"{event_text} payload must be an object")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(StatusCode.BAD_REQUEST, ErrorCode.INVALID_PAYLOAD, f"{event_text} payload invalid: {exc}") from exc


__all__ = [
    "EVENT_PAYLOADS",
    "ChatMessage",
    "ConversationPayload",
    "DomainPayload",
    "MessageReadPayload",
    "NotificationPayload",
    "PresencePayload",
    "ProposalPayload",
    "SenderInfo",
    "SessionUser",
    "TokenPair",
    "TypingPayload",
    "WireModel",
    "parse_event_payload",
]
