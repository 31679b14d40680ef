from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import appdirs  # type: ignore[import-untyped]
import yaml  # type: ignore[import-untyped]

from delfos_stream.logging_config import configure_logging
from delfos_stream.market_data.models import (
    DEFAULT_RECONNECT_DELAY_MS,
    DEFAULT_STREAM_PATH,
    ClientOptions,
)

CONFIG_FILENAME = "config.yaml"

ENV_ORIGIN = "DELFOS_STREAM_ORIGIN"
ENV_AUTO_RECONNECT = "DELFOS_STREAM_AUTO_RECONNECT"
ENV_RECONNECT_DELAY_MS = "DELFOS_STREAM_RECONNECT_DELAY_MS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

logger = logging.getLogger(__name__)


@dataclass
class StreamConfig:
    origin: Optional[str] = None
    url: Optional[str] = None
    path: str = DEFAULT_STREAM_PATH
    auto_reconnect: bool = True
    reconnect_delay_ms: int = DEFAULT_RECONNECT_DELAY_MS
    log_level: str = "INFO"
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_options(self, **callbacks: Any) -> ClientOptions:
        """Build client options; ``callbacks`` are passed through (``on_message=...``)."""

        return ClientOptions(
            url=self.url,
            origin=self.origin,
            path=self.path,
            auto_reconnect=self.auto_reconnect,
            reconnect_delay_ms=self.reconnect_delay_ms,
            **callbacks,
        )


def get_config_dir() -> Path:
    """
    Returns the OS-specific configuration directory for the stream client using appdirs.
    """
    return Path(appdirs.user_config_dir("delfos_stream"))


def _parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return None


def load_config(config_path: Optional[Path] = None) -> StreamConfig:
    """
    Loads the stream client configuration from the default location or a specified
    path, then applies environment overrides. Invalid values are logged and replaced
    by their defaults.
    """

    def _validated_delay(value: Any, source: str) -> int:
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value

        logger.warning(
            f"reconnect_delay_ms from {source} is invalid; using default",
            extra={"event": "config_invalid_reconnect_delay", "config_path": str(config_path)},
        )
        return DEFAULT_RECONNECT_DELAY_MS

    def _validated_bool(value: Any, source: str) -> bool:
        parsed = _parse_bool(value)
        if parsed is not None:
            return parsed

        logger.warning(
            f"auto_reconnect from {source} is invalid; using default",
            extra={"event": "config_invalid_auto_reconnect", "config_path": str(config_path)},
        )
        return True

    if config_path is None:
        config_path = get_config_dir() / CONFIG_FILENAME

    config_path = config_path.expanduser()

    if not config_path.exists():
        logger.info(
            "Configuration file not found; using defaults",
            extra={"event": "config_missing_file", "config_path": str(config_path)},
        )
        raw_config: Dict[str, Any] = {}
    else:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict):
        logger.warning(
            "Configuration file is not a mapping; falling back to defaults",
            extra={"event": "config_invalid_format", "config_path": str(config_path)},
        )
        raw_config = {}

    stream_raw = raw_config.get("stream", {})
    if not isinstance(stream_raw, dict):
        logger.warning(
            "'stream' section is not a mapping; ignoring it",
            extra={"event": "config_invalid_section", "config_path": str(config_path)},
        )
        stream_raw = {}
    stream_raw = dict(stream_raw)

    config = StreamConfig(
        origin=stream_raw.pop("origin", None),
        url=stream_raw.pop("url", None),
        path=stream_raw.pop("path", DEFAULT_STREAM_PATH) or DEFAULT_STREAM_PATH,
        auto_reconnect=_validated_bool(stream_raw.pop("auto_reconnect", True), "config file"),
        reconnect_delay_ms=_validated_delay(
            stream_raw.pop("reconnect_delay_ms", DEFAULT_RECONNECT_DELAY_MS), "config file"
        ),
        log_level=str(raw_config.get("log_level", "INFO")).upper(),
        extra=stream_raw,
    )

    env_origin = os.environ.get(ENV_ORIGIN)
    if env_origin:
        config.origin = env_origin

    env_auto = os.environ.get(ENV_AUTO_RECONNECT)
    if env_auto is not None:
        config.auto_reconnect = _validated_bool(env_auto, ENV_AUTO_RECONNECT)

    env_delay = os.environ.get(ENV_RECONNECT_DELAY_MS)
    if env_delay is not None:
        config.reconnect_delay_ms = _validated_delay(env_delay, ENV_RECONNECT_DELAY_MS)

    return config


def apply_logging(config: StreamConfig, env: Optional[str] = None) -> None:
    """Install JSON logging at the level named by ``config.log_level``."""

    configure_logging(level=config.log_level, env=env)


__all__ = [
    "CONFIG_FILENAME",
    "StreamConfig",
    "apply_logging",
    "get_config_dir",
    "load_config",
]
