from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Optional, Union

import socketio
from socketio import exceptions as sio_exceptions

from hireloop.config import CLIENT_CONFIG, realtime_transports, realtime_url
from hireloop.core.bus import EventBus
from hireloop.features.presence import PresenceTracker
from hireloop.notifications import Notifier, get_notifier
from hireloop.protocol.errors import ProtocolError
from hireloop.protocol.events import LOCAL_EVENTS, OutboundEvent, ServerEvent, is_server_event
from hireloop.protocol.messages import (
    ChatMessage,
    NotificationPayload,
    PresencePayload,
    ProposalPayload,
    SessionUser,
    TypingPayload,
    WireModel,
    parse_event_payload,
)
from hireloop.protocol.validator import validate_payload

if TYPE_CHECKING:
    from hireloop.core.session import SessionManager

logger = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = "Connection error. Some features may not work properly."

InboundHandler = Callable[[Any], None]
ClientFactory = Callable[[], Any]


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _default_client() -> socketio.AsyncClient:
    return socketio.AsyncClient(reconnection=True, logger=False)


class RealtimeBridge:
    """
    Single duplex connection per authenticated session.

    Inbound server events update presence/typing state, raise toasts where
    relevant and are re-published on the event bus. Outbound operations are
    fire-and-forget and silently dropped while disconnected.
    """

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        config: Optional[Dict[str, Any]] = None,
        notifier: Optional[Notifier] = None,
        presence: Optional[PresenceTracker] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.bus = bus or EventBus()
        self.config = config or CLIENT_CONFIG
        self.namespace: str = self.config["realtime_namespace"]
        self.presence = presence or PresenceTracker()
        self._notifier = notifier
        self._client_factory = client_factory or _default_client
        self._client: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._user_id: Optional[str] = None
        self._error_reported = False
        self._handlers: Dict[str, Optional[InboundHandler]] = {
            ServerEvent.USER_ONLINE.value: self._handle_user_online,
            ServerEvent.USER_OFFLINE.value: self._handle_user_offline,
            ServerEvent.USER_TYPING.value: self._handle_user_typing,
            ServerEvent.MESSAGE_NEW.value: self._handle_new_message,
            ServerEvent.MESSAGE_READ.value: None,
            ServerEvent.CONVERSATION_UPDATED.value: None,
            ServerEvent.NOTIFICATION_NEW.value: self._handle_notification,
            ServerEvent.PROJECT_UPDATED.value: None,
            ServerEvent.CONTRACT_UPDATED.value: None,
            ServerEvent.PROPOSAL_NEW.value: self._handle_new_proposal,
            ServerEvent.PAYMENT_COMPLETED.value: lambda _: self.notifier.success("Payment completed successfully"),
            ServerEvent.PAYMENT_FAILED.value: lambda _: self.notifier.error("Payment failed. Please try again."),
            ServerEvent.DISPUTE_NEW.value: lambda _: self.notifier.warning("A new dispute has been created"),
            ServerEvent.DISPUTE_UPDATED.value: None,
        }

    @property
    def notifier(self) -> Notifier:
        return self._notifier or get_notifier()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def online_users(self) -> FrozenSet[str]:
        return self.presence.online_users()

    def is_user_online(self, user_id: str) -> bool:
        return self.presence.is_online(user_id)

    def typing_users(self, conversation_id: str) -> FrozenSet[str]:
        return self.presence.typing_users(conversation_id)

    # --- Lifecycle ---------------------------------------------------------

    def attach(self, session: "SessionManager") -> Callable[[], None]:
        """Follow the session: connect when it authenticates, disconnect on logout."""

        async def _on_session_change(user: Optional[SessionUser]) -> None:
            if user is None:
                await self.disconnect()
                return
            token = session.access_token
            if not token:
                logger.warning("No access token found for realtime connection")
                return
            await self.connect(token, user.id)

        return session.add_listener(_on_session_change)

    async def connect(self, token: str, user_id: str) -> None:
        if self._client is not None:
            await self.disconnect()
        client = self._client_factory()
        self._client = client
        self._user_id = user_id
        self._error_reported = False
        self._state = ConnectionState.CONNECTING
        self._register_handlers(client)
        url = realtime_url(self.config)
        logger.info("Connecting realtime channel %s%s for %s", url, self.namespace, user_id)
        try:
            await client.connect(
                url,
                auth={"token": token, "userId": user_id},
                transports=realtime_transports(self.config),
                namespaces=[self.namespace],
            )
        except sio_exceptions.ConnectionError as exc:
            logger.warning("Realtime connection failed: %s", exc)
            self._report_connect_error()
            if self._client is client and not client.connected:
                self._client = None
                self._state = ConnectionState.DISCONNECTED

    async def disconnect(self) -> None:
        client = self._client
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        self.presence.reset()
        if client is not None:
            # shutdown also stops a reconnect loop left running after a transport drop
            await client.shutdown()
            logger.info("Realtime channel closed")

    def _register_handlers(self, client: Any) -> None:
        client.on(ServerEvent.CONNECT.value, self._bind(client, self._on_connect), namespace=self.namespace)
        client.on(ServerEvent.DISCONNECT.value, self._bind(client, self._on_disconnect), namespace=self.namespace)
        client.on(ServerEvent.CONNECT_ERROR.value, self._bind(client, self._on_connect_error), namespace=self.namespace)
        for event in self._handlers:
            client.on(event, self._bind(client, self._inbound(ServerEvent(event))), namespace=self.namespace)

    def _bind(self, client: Any, handler: Callable[..., None]) -> Callable[..., None]:
        def _guarded(*args: Any) -> None:
            if client is not self._client:
                logger.debug("Ignoring event from a stale connection")
                return
            handler(*args)

        return _guarded

    def _on_connect(self, *args: Any) -> None:
        self.presence.reset()
        self._state = ConnectionState.CONNECTED
        self._error_reported = False
        logger.info("Realtime channel connected")

    def _on_disconnect(self, *args: Any) -> None:
        reason = args[0] if args else "unknown"
        logger.info("Realtime channel disconnected: %s", reason)
        self._state = ConnectionState.DISCONNECTED
        self.presence.reset()

    def _on_connect_error(self, *args: Any) -> None:
        logger.warning("Realtime connection error: %s", args[0] if args else "unknown")
        self._report_connect_error()

    def _report_connect_error(self) -> None:
        if self._error_reported:
            return
        self._error_reported = True
        self.notifier.warning(CONNECTION_ERROR_MESSAGE)

    # --- Inbound -----------------------------------------------------------

    def _inbound(self, event: ServerEvent) -> Callable[..., None]:
        def _handle(data: Any = None, *_: Any) -> None:
            self.dispatch(event, data)

        return _handle

    def dispatch(self, event: Union[ServerEvent, str], data: Any) -> None:
        """Apply one inbound server event: side effect, notice, then re-publish."""
        if not is_server_event(event):
            logger.warning("Ignoring unknown server event %s", event)
            return
        event = ServerEvent(event)
        try:
            payload = parse_event_payload(event, data)
        except ProtocolError as exc:
            logger.warning("Dropping malformed %s event: %s", event.value, exc.message)
            return
        handler = self._handlers.get(event.value)
        if handler is not None:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler error for %s", event.value)
        self.bus.publish(LOCAL_EVENTS[event.value], payload)

    def _handle_user_online(self, payload: PresencePayload) -> None:
        self.presence.mark_online(payload.user_id)

    def _handle_user_offline(self, payload: PresencePayload) -> None:
        self.presence.mark_offline(payload.user_id)

    def _handle_user_typing(self, payload: TypingPayload) -> None:
        self.presence.set_typing(payload.conversation_id, payload.user_id, payload.is_typing)

    def _handle_new_message(self, message: ChatMessage) -> None:
        if message.sender_id == self._user_id:
            return
        name = message.sender_name
        self.notifier.info(f"New message from {name}" if name else "New message received")

    def _handle_notification(self, notification: NotificationPayload) -> None:
        if notification.message:
            self.notifier.info(notification.message)

    def _handle_new_proposal(self, proposal: ProposalPayload) -> None:
        if not proposal.project_id or proposal.freelancer_id == self._user_id:
            return
        # Without an owner field the server only routes proposals to the owner.
        if proposal.client_id is not None and proposal.client_id != self._user_id:
            return
        self.notifier.info("New proposal received for your project")

    # --- Outbound ----------------------------------------------------------

    async def join_conversation(self, conversation_id: str) -> None:
        await self._emit(OutboundEvent.CONVERSATION_JOIN, {"conversationId": conversation_id})

    async def leave_conversation(self, conversation_id: str) -> None:
        await self._emit(OutboundEvent.CONVERSATION_LEAVE, {"conversationId": conversation_id})

    async def send_message(self, message: Union[ChatMessage, Dict[str, Any]]) -> None:
        """Emit a chat message; it shows up locally only when the server echoes it back."""
        if isinstance(message, WireModel):
            payload = message.to_wire()
        else:
            payload = dict(message)
        for key in ("_id", "createdAt", "updatedAt"):
            payload.pop(key, None)
        await self._emit(OutboundEvent.MESSAGE_SEND, payload)

    async def mark_as_read(self, conversation_id: str, message_id: str) -> None:
        await self._emit(OutboundEvent.MESSAGE_READ, {"conversationId": conversation_id, "messageId": message_id})

    async def typing(self, conversation_id: str, is_typing: bool) -> None:
        await self._emit(OutboundEvent.USER_TYPING, {"conversationId": conversation_id, "isTyping": is_typing})

    async def _emit(self, event: OutboundEvent, payload: Dict[str, Any]) -> None:
        validate_payload(event, payload)
        client = self._client
        if client is None or not self.is_connected:
            logger.debug("Dropping %s: realtime channel not connected", event.value)
            return
        try:
            await client.emit(event.value, payload, namespace=self.namespace)
        except sio_exceptions.SocketIOError as exc:
            logger.warning("Emit %s failed: %s", event.value, exc)


__all__ = ["CONNECTION_ERROR_MESSAGE", "ConnectionState", "RealtimeBridge"]
