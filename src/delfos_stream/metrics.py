"""Lightweight in-memory counters for stream client visibility."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from threading import Lock
from typing import Deque, Dict, Optional


class StreamMetrics:
    """Thread-safe, low-overhead counters for connection and delivery activity."""

    def __init__(self, max_errors: int = 50) -> None:
        self._lock = Lock()
        self._recent_errors: Deque[Dict[str, str]] = deque(maxlen=max_errors)
        self.connect_attempts = 0
        self.connections_opened = 0
        self.disconnects = 0
        self.reconnects_scheduled = 0
        self.frames_received = 0
        self.messages_delivered = 0
        self.decode_errors = 0
        self.callback_errors = 0
        self.transport_errors = 0
        self.last_message_ts: Optional[int] = None

    def record_connect_attempt(self) -> None:
        with self._lock:
            self.connect_attempts += 1

    def record_connection_opened(self) -> None:
        with self._lock:
            self.connections_opened += 1

    def record_disconnect(self) -> None:
        with self._lock:
            self.disconnects += 1

    def record_reconnect_scheduled(self) -> None:
        with self._lock:
            self.reconnects_scheduled += 1

    def record_frame(self, delivered: bool, timestamp: Optional[int] = None) -> None:
        """Count a received frame and whether it decoded into a message."""

        with self._lock:
            self.frames_received += 1
            if delivered:
                self.messages_delivered += 1
                if timestamp is not None:
                    self.last_message_ts = timestamp

    def record_decode_error(self, message: str) -> None:
        with self._lock:
            self.decode_errors += 1
            self._recent_errors.appendleft(self._format_error(message))

    def record_callback_error(self, message: str) -> None:
        """Track a consumer callback failure without touching transport counters."""

        with self._lock:
            self.callback_errors += 1
            self._recent_errors.appendleft(self._format_error(message))

    def record_transport_error(self, message: str) -> None:
        with self._lock:
            self.transport_errors += 1
            self._recent_errors.appendleft(self._format_error(message))

    def snapshot(self) -> Dict[str, object]:
        """Return a read-only snapshot of current counters."""

        with self._lock:
            return {
                "connect_attempts": self.connect_attempts,
                "connections_opened": self.connections_opened,
                "disconnects": self.disconnects,
                "reconnects_scheduled": self.reconnects_scheduled,
                "frames_received": self.frames_received,
                "messages_delivered": self.messages_delivered,
                "decode_errors": self.decode_errors,
                "callback_errors": self.callback_errors,
                "transport_errors": self.transport_errors,
                "last_message_ts": self.last_message_ts,
                "recent_errors": list(self._recent_errors),
            }

    @staticmethod
    def _format_error(message: str) -> Dict[str, str]:
        return {
            "at": datetime.now(timezone.utc).isoformat(),
            "message": message,
        }


__all__ = ["StreamMetrics"]
