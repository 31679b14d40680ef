# src/delfos_stream/market_data/ws_client.py

import asyncio
import dataclasses
import logging
from typing import Callable, Optional, Union

from delfos_stream.logging_config import structured_log_extra
from delfos_stream.market_data.codec import decode
from delfos_stream.market_data.endpoint import build_stream_url
from delfos_stream.market_data.exceptions import DecodeError, TransportError
from delfos_stream.market_data.models import (
    ClientOptions,
    ConnectionStatus,
    ReconnectPolicy,
    StatusUpdate,
    TickerUpdate,
)
from delfos_stream.market_data.reconnect import ReconnectScheduler
from delfos_stream.market_data.subscribers import StreamCallbacks, SubscriberRegistry
from delfos_stream.market_data.transport import (
    Frame,
    Transport,
    TransportFactory,
    websocket_transport_factory,
)
from delfos_stream.metrics import StreamMetrics

logger = logging.getLogger(__name__)


class _ConnectionListener:
    """Routes events of one transport back to the client, tagged with its connection id."""

    def __init__(self, client: "MarketDataStreamClient", connection_id: int):
        self._client = client
        self.connection_id = connection_id
        self.active = True

    def on_open(self) -> None:
        self._client._handle_open(self)

    def on_frame(self, frame: Frame) -> None:
        self._client._handle_frame(self, frame)

    def on_error(self, exc: BaseException) -> None:
        self._client._handle_error(self, exc)

    def on_close(self) -> None:
        self._client._handle_lost(self)


class MarketDataStreamClient:
    """
    Keeps one push connection to the market data feed alive and exposes the
    latest status and message to consumers.

    The client owns at most one transport and one pending reconnection at a
    time. Every method is synchronous and non-blocking; transport events and
    the reconnection timer resume through the event loop.
    """

    def __init__(
        self,
        url: str,
        *,
        policy: Optional[ReconnectPolicy] = None,
        callbacks: Optional[StreamCallbacks] = None,
        transport_factory: Optional[TransportFactory] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        metrics: Optional[StreamMetrics] = None,
    ):
        self._url = url
        self._policy = policy or ReconnectPolicy()
        self._transport_factory = transport_factory or websocket_transport_factory
        self.metrics = metrics or StreamMetrics()
        self._subscribers = SubscriberRegistry(self.metrics)
        if callbacks is not None:
            self._subscribers.subscribe(callbacks)
        self._scheduler = ReconnectScheduler(self.connect, loop=loop)

        self._transport: Optional[Transport] = None
        self._listener: Optional[_ConnectionListener] = None
        self._connection_seq = 0
        self._status = ConnectionStatus.DISCONNECTED
        self._last_message: Optional[Union[TickerUpdate, StatusUpdate]] = None
        # Connectivity last announced to subscribers; None until the first announcement.
        self._reported_connected: Optional[bool] = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_message(self) -> Optional[Union[TickerUpdate, StatusUpdate]]:
        """The most recently received message, or None before the first one."""
        return self._last_message

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._scheduler.pending

    def subscribe(self, callbacks: StreamCallbacks) -> Callable[[], None]:
        return self._subscribers.subscribe(callbacks)

    def connect(self) -> None:
        """
        (Re)establishes the connection. Any pending reconnection and any
        existing transport are released first. Transport construction failures
        are reported like any other connection error and never raised.
        """
        self._scheduler.cancel()
        self._release_transport()
        if self._reported_connected:
            # Tearing down a live connection; announce it before the new one opens.
            self._status = ConnectionStatus.DISCONNECTED
            self._report_connectivity(False)

        self._connection_seq += 1
        listener = _ConnectionListener(self, self._connection_seq)
        self._listener = listener
        self._status = ConnectionStatus.CONNECTING
        self.metrics.record_connect_attempt()
        logger.info(
            f"Connecting to market data stream at {self._url}.",
            extra=self._log_extra("stream_connecting", listener),
        )

        try:
            transport = self._transport_factory(self._url, listener)
        except Exception as exc:
            self._handle_error(
                listener, TransportError(self._url, exc, during="construction")
            )
            return

        if listener.active:
            self._transport = transport
        else:
            # The factory already reported a failure for this connection.
            transport.close()

    def disconnect(self) -> None:
        """
        Stops the stream: cancels any pending reconnection and closes the
        transport within this call. Safe to call repeatedly and in any state.
        """
        self._scheduler.cancel()
        self._release_transport()

        previous = self._status
        self._status = ConnectionStatus.DISCONNECTED
        if previous is not ConnectionStatus.DISCONNECTED:
            self.metrics.record_disconnect()
            logger.info(
                "Market data stream stopped.",
                extra=self._log_extra("stream_stopped"),
            )
        if self._reported_connected:
            self._report_connectivity(False)

    def _release_transport(self) -> None:
        listener, self._listener = self._listener, None
        transport, self._transport = self._transport, None
        if listener is not None:
            listener.active = False
        if transport is None:
            return
        try:
            transport.close()
        except Exception as exc:
            logger.warning(
                f"Error while closing market data transport: {exc}",
                extra=self._log_extra("stream_close_error"),
            )

    def _is_current(self, listener: _ConnectionListener) -> bool:
        return listener.active and listener is self._listener

    def _handle_open(self, listener: _ConnectionListener) -> None:
        if not self._is_current(listener):
            return
        self._status = ConnectionStatus.CONNECTED
        self.metrics.record_connection_opened()
        logger.info(
            "Market data stream connected.",
            extra=self._log_extra("stream_connected", listener),
        )
        self._report_connectivity(True)

    def _handle_frame(self, listener: _ConnectionListener, frame: Frame) -> None:
        if not self._is_current(listener):
            return

        result = decode(frame)
        if isinstance(result, DecodeError):
            self.metrics.record_frame(delivered=False)
            self.metrics.record_decode_error(result.reason)
            logger.warning(
                f"Dropping malformed stream frame: {result.reason}",
                extra=self._log_extra("stream_decode_error", listener, frame=result.frame),
            )
            return

        self._last_message = result
        self.metrics.record_frame(
            delivered=True, timestamp=getattr(result, "timestamp", None)
        )
        self._subscribers.emit_message(result)

    def _handle_error(self, listener: _ConnectionListener, exc: BaseException) -> None:
        if not self._is_current(listener):
            return

        if isinstance(exc, TransportError):
            error = exc
        else:
            during = "open" if self._status is ConnectionStatus.CONNECTING else "runtime"
            error = TransportError(self._url, exc, during=during)
        self.metrics.record_transport_error(str(error))
        logger.error(
            f"Market data stream error: {error}",
            extra=self._log_extra("stream_transport_error", listener, during=error.during),
        )
        self._handle_lost(listener, error)

    def _handle_lost(
        self, listener: _ConnectionListener, error: Optional[TransportError] = None
    ) -> None:
        if not self._is_current(listener):
            return

        listener.active = False
        self._listener = None
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                transport.close()
            except Exception as exc:
                logger.debug(f"Ignoring close error on a dead transport: {exc}")

        self._status = ConnectionStatus.DISCONNECTED
        self.metrics.record_disconnect()
        logger.info(
            "Market data stream disconnected.",
            extra=self._log_extra("stream_disconnected", listener),
        )

        # Armed before callbacks run so a disconnect() from inside one still cancels it.
        if self._scheduler.arm(self._policy):
            self.metrics.record_reconnect_scheduled()

        if error is not None:
            self._subscribers.emit_error(error)
        self._report_connectivity(False)

    def _report_connectivity(self, connected: bool) -> None:
        if self._reported_connected is connected:
            return
        self._reported_connected = connected
        self._subscribers.emit_message(StatusUpdate(connected=connected))
        if self._reported_connected is not connected:
            # A callback (dis)connected the client; its own announcement superseded this one.
            return
        if connected:
            self._subscribers.emit_connect()
        else:
            self._subscribers.emit_disconnect()

    def _log_extra(
        self, event: str, listener: Optional[_ConnectionListener] = None, **kwargs
    ) -> dict:
        return structured_log_extra(
            event=event,
            url=self._url,
            connection_id=listener.connection_id if listener is not None else None,
            **kwargs,
        )


def create_client(
    options: Optional[ClientOptions] = None,
    *,
    transport_factory: Optional[TransportFactory] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    metrics: Optional[StreamMetrics] = None,
    **overrides,
) -> MarketDataStreamClient:
    """
    Builds a client from ``ClientOptions`` (or keyword overrides of it). The
    stream URL is ``options.url`` when given, otherwise it is derived from
    ``options.origin`` and ``options.path``.
    """
    options = options or ClientOptions()
    if overrides:
        options = dataclasses.replace(options, **overrides)

    if options.url:
        url = options.url
    elif options.origin:
        url = build_stream_url(options.origin, options.path)
    else:
        raise ValueError("Either 'url' or 'origin' is required to create a stream client.")

    callbacks = StreamCallbacks(
        on_message=options.on_message,
        on_connect=options.on_connect,
        on_disconnect=options.on_disconnect,
        on_error=options.on_error,
    )
    return MarketDataStreamClient(
        url,
        policy=options.reconnect_policy(),
        callbacks=callbacks,
        transport_factory=transport_factory,
        loop=loop,
        metrics=metrics,
    )
