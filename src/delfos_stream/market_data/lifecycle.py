"""Ties a stream client's connection to the lifetime of its consumer."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from delfos_stream.logging_config import structured_log_extra
from delfos_stream.market_data.ws_client import MarketDataStreamClient

logger = logging.getLogger(__name__)


class StreamBinding:
    """Connects once on activation and disconnects once on deactivation.

    Works as a plain object (``activate()``/``deactivate()``) or as a sync or
    async context manager, in which case the disconnect runs on every way out
    of the block, exceptions included.
    """

    def __init__(self, client: MarketDataStreamClient) -> None:
        self._client = client
        self._activated = False
        self._deactivated = False

    @property
    def client(self) -> MarketDataStreamClient:
        return self._client

    @property
    def active(self) -> bool:
        return self._activated and not self._deactivated

    def activate(self) -> MarketDataStreamClient:
        if self._activated:
            logger.warning("Stream binding is already active.")
            return self._client
        self._activated = True
        logger.debug(
            "Binding stream client to consumer.",
            extra=structured_log_extra(event="stream_bound", url=self._client.url),
        )
        self._client.connect()
        return self._client

    def deactivate(self) -> None:
        if not self._activated or self._deactivated:
            return
        self._deactivated = True
        self._client.disconnect()
        logger.debug(
            "Stream client released by consumer.",
            extra=structured_log_extra(event="stream_unbound", url=self._client.url),
        )

    def __enter__(self) -> MarketDataStreamClient:
        return self.activate()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.deactivate()
        return False

    async def __aenter__(self) -> MarketDataStreamClient:
        return self.activate()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.deactivate()
        return False


@contextmanager
def bind_stream(client: MarketDataStreamClient) -> Iterator[MarketDataStreamClient]:
    """Scoped acquisition of a client's connection."""

    binding = StreamBinding(client)
    binding.activate()
    try:
        yield client
    finally:
        binding.deactivate()
