"""Settings for the mcumgr client.

Configuration is a frozen ``msgspec`` struct whose bounds are declared on the
fields, so out-of-range values fail at load time with
``msgspec.ValidationError``. It can be built from any mapping or from a TOML
file.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any

import msgspec

from ..protocol import protocol

logger = logging.getLogger(__name__)


class ClientConfig(msgspec.Struct, frozen=True, kw_only=True, forbid_unknown_fields=True):
    """Strongly typed configuration for :class:`mcumgr.client.McuManager`."""

    mtu: Annotated[int, msgspec.Meta(ge=protocol.MIN_MTU, le=protocol.UINT16_MAX)] = protocol.DEFAULT_MTU
    upload_retry_timeout_ms: Annotated[
        int,
        msgspec.Meta(ge=protocol.UPLOAD_RETRY_TIMEOUT_MIN_MS, le=protocol.UPLOAD_RETRY_TIMEOUT_MAX_MS),
    ] = protocol.DEFAULT_UPLOAD_RETRY_TIMEOUT_MS
    connect_attempts: Annotated[
        int, msgspec.Meta(ge=1, le=protocol.CONNECT_ATTEMPTS_MAX)
    ] = protocol.DEFAULT_CONNECT_ATTEMPTS
    reconnect_delay: Annotated[
        float, msgspec.Meta(ge=0.0, le=protocol.RECONNECT_DELAY_MAX)
    ] = protocol.DEFAULT_RECONNECT_DELAY
    auto_reconnect: bool = True
    debug_logging: bool = False

    @property
    def upload_retry_timeout(self) -> float:
        return self.upload_retry_timeout_ms / 1000.0


def load_config(source: Mapping[str, Any] | None = None) -> ClientConfig:
    """Build a :class:`ClientConfig` from *source*, filling in defaults."""
    raw = dict(source or {})
    config = msgspec.convert(raw, ClientConfig, strict=False)
    logger.debug("Loaded configuration: %s", config)
    return config


def load_config_file(path: str | Path) -> ClientConfig:
    """Load a :class:`ClientConfig` from a TOML file."""
    config_path = Path(path)
    config = msgspec.toml.decode(config_path.read_bytes(), type=ClientConfig)
    logger.debug("Loaded configuration from %s", config_path)
    return config
