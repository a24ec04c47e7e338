"""Transport interface.

A transport moves opaque byte buffers to and from the device. It knows
nothing about SMP framing: received buffers may hold part of a frame or the
tail of one frame followed by the next. Concrete transports (BLE GATT, UDP,
serial) live outside this package and only need to satisfy :class:`Transport`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from ..errors import TransportError

logger = logging.getLogger("mcumgr.transport")

FragmentCallback = Callable[[bytes], Awaitable[None]]
LostCallback = Callable[[Exception | None], None]


class Transport(Protocol):
    """Protocol describing the surface required from a byte transport.

    ``open`` registers the callbacks. The transport must await
    ``on_fragment`` for each received buffer before delivering the next one,
    and call ``on_lost`` once if the link drops without ``close`` being
    requested.
    """

    async def open(self, on_fragment: FragmentCallback, on_lost: LostCallback) -> None: ...

    async def send(self, data: bytes) -> None: ...

    async def close(self) -> None: ...


async def transport_not_ready(data: bytes) -> None:
    logger.warning("Transport disconnected; dropping %d bytes", len(data))
    raise TransportError("Transport is not connected")
