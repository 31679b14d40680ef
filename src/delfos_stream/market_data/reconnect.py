"""Single-slot, constant-delay reconnection timer."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from delfos_stream.logging_config import structured_log_extra
from delfos_stream.market_data.models import ReconnectPolicy

logger = logging.getLogger(__name__)


class ReconnectScheduler:
    """Holds at most one pending reconnection attempt.

    ``arm()`` replaces whatever was pending, so overlapping failure reports
    still produce a single retry. The delay never grows and there is no
    attempt cap; the next attempt is armed by the next failure, not here.
    """

    def __init__(
        self,
        callback: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self.attempts = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self, policy: ReconnectPolicy) -> bool:
        """Schedule one attempt after ``policy.delay_ms``; returns whether one was armed."""

        self.cancel()
        if not policy.enabled:
            return False

        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.error(
                    "No running event loop; reconnection not scheduled.",
                    extra=structured_log_extra(event="stream_reconnect_unavailable"),
                )
                return False
        self._handle = loop.call_later(policy.delay_seconds, self._fire)
        logger.info(
            f"Reconnecting in {policy.delay_ms}ms...",
            extra=structured_log_extra(
                event="stream_reconnect_scheduled", delay_ms=policy.delay_ms
            ),
        )
        return True

    def cancel(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.debug(
            "Pending reconnection cancelled.",
            extra=structured_log_extra(event="stream_reconnect_cancelled"),
        )

    def _fire(self) -> None:
        self._handle = None
        self.attempts += 1
        logger.info(
            f"Reconnecting to market data stream (attempt {self.attempts})...",
            extra=structured_log_extra(
                event="stream_reconnect_attempt", attempt=self.attempts
            ),
        )
        self._callback()
