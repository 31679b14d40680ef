from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Callable, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr

DEFAULT_RECONNECT_DELAY_MS = 3000
DEFAULT_STREAM_PATH = "/ws/market-data"


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TickerUpdate(BaseModel):
    """Quote snapshot for one symbol.

    Numeric fields stay as the decimal text the server sent; converting them
    is left to the consumer so no precision is lost on the way through.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["ticker"] = "ticker"
    symbol: StrictStr
    price: Optional[StrictStr] = None
    volume: Optional[StrictStr] = None
    high: Optional[StrictStr] = None
    low: Optional[StrictStr] = None
    bid: Optional[StrictStr] = None
    ask: Optional[StrictStr] = None
    timestamp: StrictInt

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump()


class StatusUpdate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["status"] = "status"
    connected: StrictBool

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump()


StreamMessage = Annotated[Union[TickerUpdate, StatusUpdate], Field(discriminator="type")]


@dataclass(frozen=True)
class ReconnectPolicy:
    enabled: bool = True
    delay_ms: int = DEFAULT_RECONNECT_DELAY_MS

    def __post_init__(self) -> None:
        if isinstance(self.delay_ms, bool) or not isinstance(self.delay_ms, int):
            raise ValueError(f"delay_ms must be an integer, got {self.delay_ms!r}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {self.delay_ms}")

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


@dataclass
class ClientOptions:
    on_message: Optional[Callable[[Union[TickerUpdate, StatusUpdate]], None]] = None
    on_connect: Optional[Callable[[], None]] = None
    on_disconnect: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[BaseException], None]] = None
    auto_reconnect: bool = True
    reconnect_delay_ms: int = DEFAULT_RECONNECT_DELAY_MS
    # Either a full stream URL, or a page origin that the URL is derived from.
    url: Optional[str] = None
    origin: Optional[str] = None
    path: str = DEFAULT_STREAM_PATH

    def reconnect_policy(self) -> ReconnectPolicy:
        return ReconnectPolicy(
            enabled=self.auto_reconnect, delay_ms=self.reconnect_delay_ms
        )
