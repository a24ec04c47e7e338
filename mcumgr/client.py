"""High level mcumgr client.

:class:`McuManager` wires a byte transport to the reassembly buffer, the
command dispatcher and the upload engine, and exposes the caller-visible
events. All state lives on one asyncio event loop; no locking is needed as
long as the transport delivers fragments one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import tenacity

from .config.settings import ClientConfig
from .errors import FramingError, TransportError
from .events import EventEmitter, EventKind, UploadFinished, UploadProgress
from .image import ImageDescriptor, ImageInfo, image_info
from .protocol.frame import Frame
from .protocol.reassembly import ReassemblyBuffer
from .services.dispatcher import CommandDispatcher
from .services.upload import Scheduler, UploadEngine
from .transport import Transport
from .util import log_hexdump

logger = logging.getLogger("mcumgr.client")


def _log_connect_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Connect attempt %d failed (%s); retrying in %.2fs",
        retry_state.attempt_number,
        exc,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


class McuManager:
    """Client for the SMP image and OS management groups."""

    def __init__(
        self,
        transport: Transport,
        config: ClientConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
        logger_: logging.Logger | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._transport = transport
        self._logger = logger_ or logger
        self.events = EventEmitter()
        self._buffer = ReassemblyBuffer()
        self.dispatcher = CommandDispatcher(events=self.events)
        self.upload_engine = UploadEngine(
            send_request=self.dispatcher.send_request,
            events=self.events,
            mtu=self._config.mtu,
            retry_timeout=self._config.upload_retry_timeout,
            scheduler=scheduler,
        )
        self.dispatcher.register_upload_engine(self.upload_engine)
        self._connected = False
        self._user_requested_disconnect = False
        self._reconnect_task: asyncio.Task[None] | None = None

    # --- Properties ---

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def upload_in_progress(self) -> bool:
        return self.upload_engine.in_progress

    # --- Event registration (chainable) ---

    def on_connecting(self, callback: Callable[[], None]) -> McuManager:
        self.events.subscribe(EventKind.CONNECTING, lambda _payload: callback())
        return self

    def on_connect(self, callback: Callable[[], None]) -> McuManager:
        self.events.subscribe(EventKind.CONNECTED, lambda _payload: callback())
        return self

    def on_disconnect(self, callback: Callable[[], None]) -> McuManager:
        self.events.subscribe(EventKind.DISCONNECTED, lambda _payload: callback())
        return self

    def on_message(self, callback: Callable[[Frame], None]) -> McuManager:
        self.events.subscribe(EventKind.MESSAGE, callback)
        return self

    def on_image_upload_progress(self, callback: Callable[[UploadProgress], None]) -> McuManager:
        self.events.subscribe(EventKind.UPLOAD_PROGRESS, callback)
        return self

    def on_image_upload_finished(self, callback: Callable[[UploadFinished], None]) -> McuManager:
        self.events.subscribe(EventKind.UPLOAD_FINISHED, callback)
        return self

    # --- Connection lifecycle ---

    def _build_connect_retryer(self) -> tenacity.AsyncRetrying:
        return tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(self._config.connect_attempts),
            wait=tenacity.wait_fixed(self._config.reconnect_delay),
            retry=tenacity.retry_if_exception_type(OSError),
            before_sleep=_log_connect_retry,
            reraise=True,
        )

    async def connect(self) -> None:
        """Open the transport, retrying per configuration, and resume any upload."""
        self._user_requested_disconnect = False
        self.events.emit(EventKind.CONNECTING)
        self._logger.info("Connecting...")

        try:
            await self._build_connect_retryer()(
                self._transport.open, self._on_fragment, self._on_transport_lost
            )
        except OSError as exc:
            self._logger.error("Could not connect: %s", exc)
            self._handle_disconnected()
            if isinstance(exc, TransportError):
                raise
            raise TransportError(f"Could not connect: {exc}") from exc

        self._connected = True
        self.dispatcher.set_sender(self._transport.send)
        self._logger.info("Connected.")
        self.events.emit(EventKind.CONNECTED)

        if self.upload_engine.in_progress:
            try:
                await self.upload_engine.resume()
            except TransportError as exc:
                self._logger.warning("Resuming upload failed: %s; waiting for retry", exc)

    async def disconnect(self) -> None:
        """Close the transport on user request; an upload in flight is dropped."""
        self._user_requested_disconnect = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None
        try:
            await self._transport.close()
        finally:
            self._handle_disconnected()

    def _handle_disconnected(self) -> None:
        self._logger.info("Disconnected.")
        self._connected = False
        self.dispatcher.set_sender(None)
        self._buffer.reset()
        self.upload_engine.abort()
        self.events.emit(EventKind.DISCONNECTED)

    def _on_transport_lost(self, exc: Exception | None) -> None:
        if self._user_requested_disconnect:
            return
        self._logger.info("Transport lost: %s", exc)
        if not self._config.auto_reconnect:
            self._handle_disconnected()
            return

        self._connected = False
        self.dispatcher.set_sender(None)
        self._buffer.reset()
        self.upload_engine.pause()
        self._logger.info("Trying to reconnect")
        self._reconnect_task = asyncio.ensure_future(self._reconnect())

    async def _reconnect(self) -> None:
        await asyncio.sleep(self._config.reconnect_delay)
        try:
            await self.connect()
        except TransportError as exc:
            self._logger.error("Reconnect failed: %s", exc)

    # --- Receive path ---

    async def _on_fragment(self, fragment: bytes) -> None:
        for raw_frame in self._buffer.feed(fragment):
            try:
                frame = Frame.parse(raw_frame)
            except FramingError as exc:
                self._logger.error("Dropping malformed frame: %s", exc)
                log_hexdump(self._logger, logging.DEBUG, "RX", raw_frame)
                continue
            try:
                await self.dispatcher.route(frame)
            except TransportError as exc:
                self._logger.warning("Sending next upload chunk failed: %s; waiting for retry", exc)

    # --- Commands ---

    async def reset(self) -> None:
        await self.dispatcher.reset()

    async def echo(self, message: str) -> None:
        await self.dispatcher.echo(message)

    async def image_state(self) -> None:
        await self.dispatcher.image_state()

    async def image_erase(self) -> None:
        await self.dispatcher.image_erase()

    async def image_test(self, image_hash: bytes) -> None:
        await self.dispatcher.image_test(image_hash)

    async def image_confirm(self, image_hash: bytes) -> None:
        await self.dispatcher.image_confirm(image_hash)

    async def upload(self, image: bytes | bytearray | memoryview, slot: int = 0) -> ImageDescriptor:
        return await self.dispatcher.upload(image, slot)

    @staticmethod
    def image_info(image: bytes | bytearray | memoryview) -> ImageInfo:
        return image_info(image)

    def __repr__(self) -> str:
        state: dict[str, Any] = {
            "connected": self._connected,
            "upload": self.upload_engine.fsm_state,
            "mtu": self._config.mtu,
        }
        return f"McuManager({', '.join(f'{k}={v}' for k, v in state.items())})"


__all__ = ["McuManager"]
