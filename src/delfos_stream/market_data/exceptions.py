# src/delfos_stream/market_data/exceptions.py

class MarketDataError(Exception):
    """Base exception for the market_data module."""
    pass

class DecodeError(MarketDataError):
    """A frame that could not be decoded into a known stream message.

    The codec returns instances of this class instead of raising them, so a
    malformed frame never interrupts the delivery path.
    """
    MAX_FRAME_PREVIEW = 200

    def __init__(self, reason: str, frame: object = None):
        self.reason = reason
        preview = frame if isinstance(frame, str) else repr(frame)
        if len(preview) > self.MAX_FRAME_PREVIEW:
            preview = preview[: self.MAX_FRAME_PREVIEW] + "..."
        self.frame = preview
        message = f"Could not decode stream frame: {reason}."
        super().__init__(message)

class TransportError(MarketDataError):
    """Raised (or reported to ``on_error``) when the transport fails to open or dies mid-stream."""
    def __init__(self, url: str, cause: BaseException | None = None, during: str = "runtime"):
        self.url = url
        self.cause = cause
        self.during = during
        detail = f": {cause}" if cause is not None else ""
        message = f"Transport to '{url}' failed during {during}{detail}"
        super().__init__(message)
