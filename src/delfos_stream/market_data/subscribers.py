from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from delfos_stream.logging_config import structured_log_extra
from delfos_stream.market_data.models import StatusUpdate, TickerUpdate
from delfos_stream.metrics import StreamMetrics

logger = logging.getLogger(__name__)


@dataclass
class StreamCallbacks:
    on_message: Optional[Callable[[Union[TickerUpdate, StatusUpdate]], None]] = None
    on_connect: Optional[Callable[[], None]] = None
    on_disconnect: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[BaseException], None]] = None


class SubscriberRegistry:
    """
    Ordered list of callback bundles.

    Every callback runs in registration order and in isolation: an exception
    is logged and counted, and delivery moves on to the next subscriber.
    """

    def __init__(self, metrics: Optional[StreamMetrics] = None):
        self._subscribers: List[StreamCallbacks] = []
        self._metrics = metrics

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callbacks: StreamCallbacks) -> Callable[[], None]:
        """Registers a bundle and returns a callable that removes it again."""
        self._subscribers.append(callbacks)

        def unsubscribe() -> None:
            # Identity match: equal-looking bundles registered twice stay distinct.
            for index, registered in enumerate(self._subscribers):
                if registered is callbacks:
                    del self._subscribers[index]
                    return

        return unsubscribe

    def emit_message(self, message: Union[TickerUpdate, StatusUpdate]) -> None:
        self._emit("on_message", message)

    def emit_connect(self) -> None:
        self._emit("on_connect")

    def emit_disconnect(self) -> None:
        self._emit("on_disconnect")

    def emit_error(self, cause: BaseException) -> None:
        self._emit("on_error", cause)

    def _emit(self, name: str, *args: Any) -> None:
        # Snapshot so (un)subscribing from inside a callback doesn't skip anyone.
        for callbacks in list(self._subscribers):
            callback = getattr(callbacks, name)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception as exc:
                logger.exception(
                    f"Stream subscriber callback {name} failed: {exc}",
                    extra=structured_log_extra(event="stream_callback_error", callback=name),
                )
                if self._metrics is not None:
                    self._metrics.record_callback_error(f"{name}: {exc}")
