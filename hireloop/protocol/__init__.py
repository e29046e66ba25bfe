"""
Protocol package that centralizes event names, payload models, error taxonomy
and validation utilities for the HTTP client and the real-time bridge.
"""

from .errors import (
    ERROR_MESSAGES,
    ApiError,
    AuthError,
    ClientError,
    ErrorCode,
    NetworkError,
    NotFoundError,
    ProtocolError,
    RecoverableAuthError,
    RequestCancelled,
    ServerError,
    StatusCode,
    TerminalAuthError,
    describe_status,
)
from .events import LOCAL_EVENTS, LocalEvent, OutboundEvent, ServerEvent, is_server_event, normalize_event
from .messages import (
    ChatMessage,
    ConversationPayload,
    DomainPayload,
    MessageReadPayload,
    NotificationPayload,
    PresencePayload,
    ProposalPayload,
    SessionUser,
    TokenPair,
    TypingPayload,
    parse_event_payload,
)
from .validator import load_schema, validate_payload

__all__ = [
    "ERROR_MESSAGES",
    "ApiError",
    "AuthError",
    "ClientError",
    "ErrorCode",
    "NetworkError",
    "NotFoundError",
    "ProtocolError",
    "RecoverableAuthError",
    "RequestCancelled",
    "ServerError",
    "StatusCode",
    "TerminalAuthError",
    "describe_status",
    "LOCAL_EVENTS",
    "LocalEvent",
    "OutboundEvent",
    "ServerEvent",
    "is_server_event",
    "normalize_event",
    "ChatMessage",
    "ConversationPayload",
    "DomainPayload",
    "MessageReadPayload",
    "NotificationPayload",
    "PresencePayload",
    "ProposalPayload",
    "SessionUser",
    "TokenPair",
    "TypingPayload",
    "parse_event_payload",
    "load_schema",
    "validate_payload",
]
