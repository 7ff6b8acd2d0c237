"""
notifications.py — Transient User Notifications

The stores and the checkout workflow never raise API failures to the UI; they
report them here instead. A UI can attach a sink to display each notification
as it arrives (the equivalent of a toast); the notifier also keeps a bounded
history and logs every entry.
"""

import logging
from collections import deque
from typing import Literal

from pydantic import BaseModel

from .errors import ApiError, PaymentError

log = logging.getLogger(__name__)


class Notification(BaseModel):
    level: Literal["success", "error", "info"]
    message: str


class Notifier:
    def __init__(self, sink=None, history_size: int = 50):
        self.sink = sink
        self.history = deque(maxlen=history_size)

    def _emit(self, level, message):
        notification = Notification(level=level, message=message)
        self.history.append(notification)
        if level == "error":
            log.warning(f"[Notify] {message}")
        else:
            log.info(f"[Notify] {message}")
        if self.sink:
            self.sink(notification)
        return notification

    def success(self, message: str):
        return self._emit("success", message)

    def info(self, message: str):
        return self._emit("info", message)

    def error(self, message: str):
        return self._emit("error", message)

    def report(self, exc: Exception, fallback: str):
        """
        Emits an error notification for a failed operation.

        Processor messages and the backend's 4xx messages are shown as-is;
        server errors, network failures and anything else fall back to the
        generic text supplied by the caller.
        """
        if isinstance(exc, PaymentError) and exc.message:
            return self.error(exc.message)
        if isinstance(exc, ApiError) and exc.message and exc.status_code is not None and exc.status_code < 500:
            return self.error(exc.message)
        return self.error(fallback)

    @property
    def last(self):
        return self.history[-1] if self.history else None

    def messages(self, level=None):
        return [n.message for n in self.history if level is None or n.level == level]
