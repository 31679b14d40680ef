# src/delfos_stream/market_data/__init__.py

from .codec import decode, encode
from .endpoint import build_stream_url
from .exceptions import DecodeError, MarketDataError, TransportError
from .lifecycle import StreamBinding, bind_stream
from .models import (
    ClientOptions,
    ConnectionStatus,
    ReconnectPolicy,
    StatusUpdate,
    StreamMessage,
    TickerUpdate,
)
from .reconnect import ReconnectScheduler
from .subscribers import StreamCallbacks, SubscriberRegistry
from .transport import Transport, TransportListener, WebSocketTransport
from .ws_client import MarketDataStreamClient, create_client

__all__ = [
    "ClientOptions",
    "ConnectionStatus",
    "DecodeError",
    "MarketDataError",
    "MarketDataStreamClient",
    "ReconnectPolicy",
    "ReconnectScheduler",
    "StatusUpdate",
    "StreamBinding",
    "StreamCallbacks",
    "StreamMessage",
    "SubscriberRegistry",
    "TickerUpdate",
    "Transport",
    "TransportError",
    "TransportListener",
    "WebSocketTransport",
    "bind_stream",
    "build_stream_url",
    "create_client",
    "decode",
    "encode",
]
