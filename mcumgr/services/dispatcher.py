"""Command dispatch logic for the mcumgr client."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from ..events import EventEmitter, EventKind
from ..image import ImageDescriptor
from ..protocol import protocol
from ..protocol.frame import Frame
from ..protocol.protocol import GroupId, GroupImageId, GroupOSId, OpCode
from ..transport import transport_not_ready
from ..util import log_hexdump

if TYPE_CHECKING:
    from .upload import UploadEngine

SendBytesCallable = Callable[[bytes], Awaitable[None]]

logger = logging.getLogger("mcumgr.dispatcher")


class SequenceCounter:
    """8-bit send sequence.

    A number is reserved before the send is awaited so that concurrent
    requests never share one; a failed send releases it again when no later
    request has reserved a number in the meantime.
    """

    def __init__(self, start: int = 0) -> None:
        self._value = start % protocol.SEQUENCE_MODULO

    @property
    def value(self) -> int:
        return self._value

    def advance(self) -> int:
        self._value = (self._value + 1) % protocol.SEQUENCE_MODULO
        return self._value

    def reserve(self) -> int:
        sequence = self._value
        self.advance()
        return sequence

    def release(self, sequence: int) -> None:
        if (sequence + 1) % protocol.SEQUENCE_MODULO == self._value:
            self._value = sequence


class CommandDispatcher:
    """Maps semantic commands onto frames and routes received frames.

    Outgoing commands are fire-and-forget: each coroutine returns once the
    encoded frame has been handed to the transport. Responses are matched by
    nobody here; upload acknowledgements go to the upload engine and every
    other frame is published as a ``message`` event.
    """

    def __init__(
        self,
        *,
        events: EventEmitter,
        send_bytes: SendBytesCallable | None = None,
        logger_: logging.Logger | None = None,
    ) -> None:
        self._events = events
        self._send_bytes: SendBytesCallable = send_bytes or transport_not_ready
        self._logger = logger_ or logger
        self._sequence = SequenceCounter()
        self.upload_engine: UploadEngine | None = None

    @property
    def sequence(self) -> int:
        return self._sequence.value

    def set_sender(self, sender: SendBytesCallable | None) -> None:
        self._send_bytes = sender or transport_not_ready

    def register_upload_engine(self, engine: UploadEngine) -> None:
        self.upload_engine = engine

    async def send_request(
        self,
        operation: int,
        group_id: int,
        command_id: int,
        body: Any | None = None,
    ) -> None:
        """Encode and send one request under a freshly reserved sequence number."""
        raw = Frame.build(operation, group_id, command_id, self._sequence.value, body)
        sequence = self._sequence.reserve()
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(
                "> op=%d group=%d id=%d seq=%d len=%d",
                operation,
                group_id,
                command_id,
                sequence,
                len(raw) - protocol.HEADER_SIZE,
            )
            log_hexdump(self._logger, logging.DEBUG, "TX", raw)
        sent = False
        try:
            await self._send_bytes(raw)
            sent = True
        finally:
            if not sent:
                self._sequence.release(sequence)

    async def route(self, frame: Frame) -> bool:
        """Deliver *frame*; return ``True`` if the upload engine consumed it."""
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug("< %s", frame.describe())

        engine = self.upload_engine
        if engine is not None and engine.is_upload_ack(frame):
            await engine.handle_ack(frame)
            return True

        if frame.is_error:
            self._logger.debug("Device returned rc=%s for %s", frame.rc, frame.describe())
        self._events.emit(EventKind.MESSAGE, frame)
        return False

    # --- OS group ---

    async def reset(self) -> None:
        await self.send_request(OpCode.WRITE, GroupId.OS, GroupOSId.RESET)

    async def echo(self, message: str) -> None:
        await self.send_request(OpCode.WRITE, GroupId.OS, GroupOSId.ECHO, {"d": message})

    # --- Image group ---

    async def image_state(self) -> None:
        await self.send_request(OpCode.READ, GroupId.IMAGE, GroupImageId.STATE)

    async def image_erase(self) -> None:
        await self.send_request(OpCode.WRITE, GroupId.IMAGE, GroupImageId.ERASE, {})

    async def image_test(self, image_hash: bytes) -> None:
        await self.send_request(
            OpCode.WRITE,
            GroupId.IMAGE,
            GroupImageId.STATE,
            {"hash": bytes(image_hash), "confirm": False},
        )

    async def image_confirm(self, image_hash: bytes) -> None:
        await self.send_request(
            OpCode.WRITE,
            GroupId.IMAGE,
            GroupImageId.STATE,
            {"hash": bytes(image_hash), "confirm": True},
        )

    async def upload(self, image: bytes | bytearray | memoryview, slot: int = 0) -> ImageDescriptor:
        if self.upload_engine is None:
            raise RuntimeError("No upload engine registered")
        return await self.upload_engine.start(image, slot)


__all__ = ["CommandDispatcher", "SequenceCounter"]
