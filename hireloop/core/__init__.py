from .bus import EventBus
from .http_client import ApiClient, RequestAttempt
from .realtime import ConnectionState, RealtimeBridge
from .session import SessionError, SessionManager

__all__ = [
    "ApiClient",
    "ConnectionState",
    "EventBus",
    "RealtimeBridge",
    "RequestAttempt",
    "SessionError",
    "SessionManager",
]
