# src/delfos_stream/market_data/transport.py

import asyncio
import logging
from typing import Callable, Optional, Protocol, Union

from websockets.asyncio.client import ClientConnection, connect
from websockets.uri import parse_uri

from delfos_stream.logging_config import structured_log_extra

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]


class TransportListener(Protocol):
    def on_open(self) -> None: ...

    def on_frame(self, frame: Frame) -> None: ...

    def on_error(self, exc: BaseException) -> None: ...

    def on_close(self) -> None: ...


class Transport(Protocol):
    def close(self) -> None: ...


TransportFactory = Callable[[str, TransportListener], Transport]


class WebSocketTransport:
    """
    One websocket connection driven by a reader task on the running event loop.

    Construction validates the URL and schedules the task; it raises if the URL
    is unusable or no loop is running. Events reach the listener in the order
    the socket produces them. ``close()`` detaches the listener before
    cancelling the task, so nothing is delivered after it returns.
    """

    def __init__(
        self,
        url: str,
        listener: TransportListener,
        *,
        open_timeout: Optional[float] = 10.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        parse_uri(url)
        self._url = url
        self._listener: Optional[TransportListener] = listener
        self._open_timeout = open_timeout
        self._websocket: Optional[ClientConnection] = None
        self._loop = loop or asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run())

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self._listener is None

    def close(self) -> None:
        self._listener = None
        # Called from a listener callback inside the reader task: it is already finishing.
        if not self._task.done() and self._task is not asyncio.current_task(self._loop):
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Waits until the reader task has fully finished."""
        await asyncio.gather(self._task, return_exceptions=True)

    def _notify(self, name: str, *args) -> None:
        listener = self._listener
        if listener is None:
            return
        getattr(listener, name)(*args)

    async def _run(self) -> None:
        try:
            async with connect(self._url, open_timeout=self._open_timeout) as ws:
                self._websocket = ws
                self._notify("on_open")
                # Ends quietly on a normal close, raises ConnectionClosedError otherwise.
                # close() from inside a callback detaches the listener; leave the loop then.
                if self._listener is not None:
                    async for frame in ws:
                        self._notify("on_frame", frame)
                        if self._listener is None:
                            break
        except asyncio.CancelledError:
            logger.debug(
                "Websocket reader cancelled; closing connection.",
                extra=structured_log_extra(event="transport_cancelled", url=self._url),
            )
            raise
        except Exception as exc:
            self._notify("on_error", exc)
        finally:
            self._websocket = None

        self._notify("on_close")
        self._listener = None


def websocket_transport_factory(url: str, listener: TransportListener) -> Transport:
    return WebSocketTransport(url, listener)
