import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

import streamlit as st

from rakgame.core.error_handler import describe_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    level: str  # 'success', 'info' or 'error'
    title: str
    description: Optional[str] = None


class Notifier:
    """Collects transient user-facing messages"""

    def __init__(self, history_size: int = 50):
        self.history_size = history_size
        self.messages: List[Notification] = []

    def _emit(self, notification: Notification) -> None:
        self.messages.append(notification)
        del self.messages[:-self.history_size]

    def success(self, title: str, description: Optional[str] = None) -> None:
        self._emit(Notification('success', title, description))

    def info(self, title: str, description: Optional[str] = None) -> None:
        self._emit(Notification('info', title, description))

    def error(self, title: str, description: Optional[str] = None) -> None:
        logger.error(f"{title}: {description}" if description else title)
        self._emit(Notification('error', title, description))

    def report_error(self, error: Exception) -> None:
        """Show an error using the message mapped for its type and code"""
        title, description = describe_error(error)
        self.error(title, description)

    def last(self) -> Optional[Notification]:
        return self.messages[-1] if self.messages else None


class StreamlitNotifier(Notifier):
    """
    Notifier for the Streamlit dashboard.

    Store and queue code runs on the background event loop thread, where no
    script run context exists, so notifications are held until the page script
    calls ``flush`` and then raised as toasts.
    """

    ICONS = {'success': '✅', 'info': 'ℹ️', 'error': '⚠️'}

    def __init__(self, history_size: int = 50):
        super().__init__(history_size)
        self._pending: List[Notification] = []
        self._lock = threading.Lock()

    def _emit(self, notification: Notification) -> None:
        with self._lock:
            super()._emit(notification)
            self._pending.append(notification)

    def flush(self) -> int:
        """Show every notification emitted since the last flush"""
        with self._lock:
            pending, self._pending = self._pending, []
        for notification in pending:
            body = notification.title
            if notification.description:
                body = f"**{notification.title}**: {notification.description}"
            st.toast(body, icon=self.ICONS.get(notification.level))
        return len(pending)
