"""Shared fixtures: a manually driven event loop clock and an in-memory transport."""

from __future__ import annotations

import heapq
import itertools
from typing import Callable, List, Optional

import pytest

from delfos_stream.market_data.models import ReconnectPolicy
from delfos_stream.market_data.subscribers import StreamCallbacks
from delfos_stream.market_data.ws_client import MarketDataStreamClient

STREAM_URL = "ws://localhost:5000/ws/market-data"


class FakeTimerHandle:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class FakeLoop:
    """Just enough of an event loop for ``call_later``, advanced by hand."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: List[tuple] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.now + delay, callback)
        heapq.heappush(self._timers, (handle.when, next(self._seq), handle))
        return handle

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, handle in self._timers if not handle.cancelled())

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while self._timers and self._timers[0][0] <= target:
            when, _, handle = heapq.heappop(self._timers)
            if handle.cancelled():
                continue
            self.now = when
            handle.callback()
        self.now = target


class FakeTransport:
    def __init__(self, url: str, listener):
        self.url = url
        self.listener = listener
        self.closed = False
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    # Server-side events; like the real transport, nothing is delivered once closed.
    def open(self) -> None:
        if not self.closed:
            self.listener.on_open()

    def frame(self, payload) -> None:
        if not self.closed:
            self.listener.on_frame(payload)

    def error(self, exc: Optional[BaseException] = None) -> None:
        if not self.closed:
            self.listener.on_error(exc or ConnectionResetError("connection reset by peer"))

    def drop(self) -> None:
        if not self.closed:
            self.listener.on_close()


class FakeTransportFactory:
    def __init__(self) -> None:
        self.transports: List[FakeTransport] = []
        self.fail_next: List[BaseException] = []

    def __call__(self, url: str, listener) -> FakeTransport:
        if self.fail_next:
            raise self.fail_next.pop(0)
        transport = FakeTransport(url, listener)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]

    @property
    def open_transports(self) -> List[FakeTransport]:
        return [t for t in self.transports if not t.closed]


class Recorder:
    """Captures every callback the client emits, in order."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_message=lambda message: self.events.append(("message", message)),
            on_connect=lambda: self.events.append(("connect",)),
            on_disconnect=lambda: self.events.append(("disconnect",)),
            on_error=lambda cause: self.events.append(("error", cause)),
        )

    def names(self) -> List[str]:
        return [event[0] for event in self.events]

    def messages(self) -> list:
        return [event[1] for event in self.events if event[0] == "message"]


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_client(fake_loop: FakeLoop, transport_factory: FakeTransportFactory, recorder: Recorder):
    def _make(enabled: bool = True, delay_ms: int = 3000) -> MarketDataStreamClient:
        return MarketDataStreamClient(
            STREAM_URL,
            policy=ReconnectPolicy(enabled=enabled, delay_ms=delay_ms),
            callbacks=recorder.callbacks(),
            transport_factory=transport_factory,
            loop=fake_loop,
        )

    return _make
