from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from delfos_stream.market_data.models import DEFAULT_STREAM_PATH

_SECURE_SCHEMES = {"https", "wss"}


def build_stream_url(origin: str, path: str = DEFAULT_STREAM_PATH) -> str:
    """
    Derives the stream URL from a page origin such as ``https://app.example.com``.
    Secure origins map to ``wss``, everything else to ``ws``; the host and port
    are kept and the path is replaced by ``path``.
    """
    parts = urlsplit(origin if "//" in origin else f"//{origin}")
    if not parts.netloc:
        raise ValueError(f"Origin '{origin}' has no host to connect to.")

    scheme = "wss" if parts.scheme.lower() in _SECURE_SCHEMES else "ws"
    if not path.startswith("/"):
        path = "/" + path
    return urlunsplit((scheme, parts.netloc, path, "", ""))
