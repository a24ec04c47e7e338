"""Chunked firmware upload with per-chunk retransmission.

The engine sends one chunk at a time and only moves forward when the device
acknowledges it with the next offset. If no acknowledgement arrives within the
retry timeout the very same chunk is sent again, indefinitely; there is no
backoff and no failure state.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol

import msgspec
from transitions import Machine

from ..errors import TransportError, UploadAlreadyInProgress
from ..events import EventEmitter, EventKind, UploadFinished, UploadProgress
from ..image import ImageDescriptor, parse_image
from ..protocol import protocol
from ..protocol.encoding import encoded_size
from ..protocol.frame import Frame
from ..protocol.protocol import GroupId, GroupImageId, OpCode

SendRequestCallable = Callable[[int, int, int, Any], Awaitable[None]]

logger = logging.getLogger("mcumgr.service.upload")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with ``call_later`` semantics, e.g. an asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[..., object], *args: Any) -> TimerHandle: ...


class RetryTimer:
    """Cancellable deferred callback.

    Every ``arm`` or ``cancel`` bumps a generation counter. A callback only
    runs if no ``arm``/``cancel`` happened since it was scheduled, and callers
    that hop onto another task can compare :attr:`generation` to detect that
    they were superseded in between.
    """

    def __init__(self, scheduler: Scheduler | None = None) -> None:
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()
        scheduler: Scheduler = self._scheduler or asyncio.get_running_loop()
        self._handle = scheduler.call_later(delay, self._fire, self._generation, callback)

    def cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, generation: int, callback: Callable[[], None]) -> None:
        if generation != self._generation:
            return
        self._handle = None
        callback()


class UploadSession(msgspec.Struct, kw_only=True):
    """Book-keeping for the upload in flight."""

    image: bytes
    total_length: int
    image_hash: bytes
    slot: int
    descriptor: ImageDescriptor
    retry_timeout: float
    offset: int = 0
    retry_count: int = 0
    started_at: float = 0.0
    last_chunk_at: float = 0.0

    @property
    def percentage(self) -> int:
        return self.offset * 100 // self.total_length


class UploadEngine:
    """Drives a single image upload over the image management group."""

    if TYPE_CHECKING:
        # FSM generated methods and attributes for static analysis
        fsm_state: str
        begin_upload: Callable[[], None]
        complete_upload: Callable[[], None]
        reset_fsm: Callable[[], None]

    # FSM States
    STATE_IDLE = "idle"
    STATE_UPLOADING = "uploading"

    def __init__(
        self,
        *,
        send_request: SendRequestCallable,
        events: EventEmitter,
        mtu: int = protocol.DEFAULT_MTU,
        retry_timeout: float = protocol.DEFAULT_UPLOAD_RETRY_TIMEOUT_MS / 1000.0,
        scheduler: Scheduler | None = None,
        logger_: logging.Logger | None = None,
    ) -> None:
        self._send_request = send_request
        self._events = events
        self._mtu = mtu
        self._retry_timeout = retry_timeout
        self._timer = RetryTimer(scheduler)
        self._logger = logger_ or logger
        self._session: UploadSession | None = None
        self._background: set[asyncio.Task[None]] = set()

        # FSM Initialization
        self.state_machine = Machine(
            model=self,
            states=[self.STATE_IDLE, self.STATE_UPLOADING],
            initial=self.STATE_IDLE,
            ignore_invalid_triggers=True,
            auto_transitions=False,
            model_attribute="fsm_state",
        )

        # FSM Transitions
        self.state_machine.add_transition(
            trigger="begin_upload", source=self.STATE_IDLE, dest=self.STATE_UPLOADING
        )
        self.state_machine.add_transition(
            trigger="complete_upload", source=self.STATE_UPLOADING, dest=self.STATE_IDLE
        )
        self.state_machine.add_transition(trigger="reset_fsm", source="*", dest=self.STATE_IDLE)

    @property
    def in_progress(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> UploadSession | None:
        return self._session

    @property
    def mtu(self) -> int:
        return self._mtu

    @staticmethod
    def chunk_header(offset: int, total_length: int, image_hash: bytes) -> dict[str, Any]:
        """Upload request body without data; the first chunk also carries length and digest."""
        payload: dict[str, Any] = {"data": b"", "off": offset}
        if offset == 0:
            payload["len"] = total_length
            payload["sha"] = image_hash
        return payload

    def chunk_budget(self, payload: dict[str, Any]) -> int:
        """Number of image bytes that fit next to *payload* within the MTU."""
        return self._mtu - encoded_size({**payload, "data": b""}) - protocol.HEADER_SIZE

    async def start(self, image: bytes | bytearray | memoryview, slot: int = 0) -> ImageDescriptor:
        """Validate *image* and send its first chunk.

        Raises:
            UploadAlreadyInProgress: another upload has not finished yet.
            ImageFormatError: the image is not a valid MCUboot image.
            ValueError: the MTU leaves no room for image data.
            TransportError: the first chunk could not be sent; the session
                is dropped.
        """
        if self._session is not None:
            raise UploadAlreadyInProgress("Upload is already in progress.")

        data = bytes(image)
        descriptor = parse_image(data)
        image_hash = hashlib.sha256(data).digest()
        first_budget = self.chunk_budget(self.chunk_header(0, len(data), image_hash))
        if first_budget <= 0:
            raise ValueError(f"MTU {self._mtu} leaves no room for upload data")

        now = time.monotonic()
        self._session = UploadSession(
            image=data,
            total_length=len(data),
            image_hash=image_hash,
            slot=slot,
            descriptor=descriptor,
            retry_timeout=self._retry_timeout,
            started_at=now,
        )
        self.begin_upload()
        self._logger.info(
            "Starting upload of %d bytes (version %s) to slot %d",
            len(data),
            descriptor.version,
            slot,
        )
        try:
            await self._send_next_chunk()
        except TransportError:
            self.abort()
            raise
        return descriptor

    @staticmethod
    def is_upload_ack(frame: Frame) -> bool:
        if frame.group_id != GroupId.IMAGE or frame.command_id != GroupImageId.UPLOAD:
            return False
        body = frame.body
        if not isinstance(body, dict):
            return False
        if body.get("rc", protocol.ReturnCode.OK) != protocol.ReturnCode.OK:
            return False
        return "off" in body

    async def handle_ack(self, frame: Frame) -> None:
        """Advance to the offset acknowledged by the device and send on."""
        session = self._session
        if session is None:
            self._logger.debug("Ignoring upload acknowledgement; no upload in progress")
            return

        off = frame.body.get("off")
        if (
            not isinstance(off, int)
            or isinstance(off, bool)
            or off < session.offset
            or off > session.total_length
        ):
            self._logger.warning(
                "Dropping malformed upload acknowledgement (off=%r, offset=%d)",
                off,
                session.offset,
            )
            return

        # An ack for the current offset still triggers a send: after a
        # retransmission the device acks both copies and each chunk then goes
        # out twice until the next timeout-free round trip.
        self._timer.cancel()
        session.offset = off
        await self._send_next_chunk()

    def pause(self) -> None:
        """Stop retransmitting but keep the session (link lost)."""
        self._timer.cancel()
        if self._session is not None:
            self._logger.info("Upload paused at offset %d", self._session.offset)

    async def resume(self) -> None:
        """Resend the chunk at the current offset (link re-established)."""
        if self._session is None:
            return
        self._logger.info("Resuming upload at offset %d", self._session.offset)
        await self._send_next_chunk()

    def abort(self) -> None:
        self._timer.cancel()
        if self._session is not None:
            self._logger.warning("Upload aborted at offset %d", self._session.offset)
        self._session = None
        self.reset_fsm()

    async def _send_next_chunk(self) -> None:
        session = self._session
        if session is None:
            self._logger.error("No firmware upload to do")
            return

        if session.offset >= session.total_length:
            self._complete(session)
            return

        self._timer.arm(session.retry_timeout, self._on_retry_timeout)

        payload = self.chunk_header(session.offset, session.total_length, session.image_hash)
        budget = self.chunk_budget(payload)
        payload["data"] = session.image[session.offset : session.offset + budget]
        session.last_chunk_at = time.monotonic()

        self._events.emit(
            EventKind.UPLOAD_PROGRESS,
            UploadProgress(
                offset=session.offset,
                total_length=session.total_length,
                percentage=session.percentage,
            ),
        )
        await self._send_request(OpCode.WRITE, GroupId.IMAGE, GroupImageId.UPLOAD, payload)

    def _complete(self, session: UploadSession) -> None:
        self._timer.cancel()
        self._session = None
        self.complete_upload()
        self._logger.info(
            "Upload finished: %d bytes in %.2fs (%d retries)",
            session.total_length,
            time.monotonic() - session.started_at,
            session.retry_count,
        )
        self._events.emit(EventKind.UPLOAD_FINISHED, UploadFinished(image_hash=session.image_hash))

    def _on_retry_timeout(self) -> None:
        task = asyncio.ensure_future(self._retry(self._timer.generation))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _retry(self, generation: int) -> None:
        session = self._session
        if session is None or generation != self._timer.generation:
            return
        session.retry_count += 1
        self._logger.info(
            "Upload chunk timeout at offset %d, retry %d",
            session.offset,
            session.retry_count,
        )
        try:
            await self._send_next_chunk()
        except TransportError as exc:
            self._logger.warning("Retransmission at offset %d failed: %s", session.offset, exc)


__all__ = ["RetryTimer", "Scheduler", "UploadEngine", "UploadSession"]
