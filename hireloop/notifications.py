"""
User-visible notices ("toasts") raised from non-UI code.

A single notifier is initialised at application start and injected into the
HTTP client and the real-time bridge. Code that runs before initialisation
gets a ``NullNotifier`` that only logs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ToastType(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Toast:
    id: str
    type: ToastType
    message: str


ToastCallback = Callable[[Toast], None]


class Notifier:
    """Base notifier; subclasses implement `notify`."""

    def notify(self, message: str, toast_type: ToastType = ToastType.INFO) -> Optional[Toast]:
        raise NotImplementedError

    def success(self, message: str) -> Optional[Toast]:
        return self.notify(message, ToastType.SUCCESS)

    def error(self, message: str) -> Optional[Toast]:
        return self.notify(message, ToastType.ERROR)

    def warning(self, message: str) -> Optional[Toast]:
        return self.notify(message, ToastType.WARNING)

    def info(self, message: str) -> Optional[Toast]:
        return self.notify(message, ToastType.INFO)


class NullNotifier(Notifier):
    """Fallback used before `init_notifier` runs."""

    def notify(self, message: str, toast_type: ToastType = ToastType.INFO) -> Optional[Toast]:
        logger.warning("Toast notifier not initialized; dropping %s notice: %s", toast_type.value, message)
        return None


class ToastCenter(Notifier):
    """Keeps the list of visible toasts and fans them out to listeners."""

    def __init__(self) -> None:
        self.toasts: List[Toast] = []
        self._callbacks: List[ToastCallback] = []

    def notify(self, message: str, toast_type: ToastType = ToastType.INFO) -> Optional[Toast]:
        toast = Toast(id=uuid.uuid4().hex[:7], type=toast_type, message=message)
        self.toasts.append(toast)
        logger.debug("Toast %s (%s): %s", toast.id, toast.type.value, message)
        for callback in list(self._callbacks):
            try:
                callback(toast)
            except Exception:
                logger.exception("Toast callback failed")
        return toast

    def on_toast(self, callback: ToastCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def remove(self, toast_id: str) -> None:
        self.toasts = [toast for toast in self.toasts if toast.id != toast_id]

    def clear(self) -> None:
        self.toasts.clear()

    def messages(self, toast_type: Optional[ToastType] = None) -> List[str]:
        return [toast.message for toast in self.toasts if toast_type is None or toast.type == toast_type]


_NULL_NOTIFIER = NullNotifier()
_notifier: Optional[Notifier] = None


def init_notifier(notifier: Optional[Notifier] = None) -> Notifier:
    global _notifier
    _notifier = notifier or ToastCenter()
    return _notifier


def get_notifier() -> Notifier:
    return _notifier if _notifier is not None else _NULL_NOTIFIER


def shutdown_notifier() -> None:
    global _notifier
    _notifier = None


__all__ = [
    "Notifier",
    "NullNotifier",
    "Toast",
    "ToastCenter",
    "ToastType",
    "get_notifier",
    "init_notifier",
    "shutdown_notifier",
]
