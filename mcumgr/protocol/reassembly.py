"""Reassembly of transport fragments into complete SMP frames."""

from __future__ import annotations

import logging

from . import protocol

logger = logging.getLogger("mcumgr.reassembly")


class ReassemblyBuffer:
    """Accumulates fragments and cuts them into frames using the length field.

    One instance belongs to one transport connection. Bytes are only ever
    removed from the front, one whole frame at a time; decoding the returned
    frames is left to :meth:`mcumgr.protocol.frame.Frame.parse`.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        if self._buffer:
            logger.debug("Discarding %d buffered bytes", len(self._buffer))
        self._buffer.clear()

    def _next_frame_size(self) -> int | None:
        if len(self._buffer) < protocol.LENGTH_FIELD_END:
            return None
        body_length = protocol.LENGTH_STRUCT.parse(bytes(self._buffer[2 : protocol.LENGTH_FIELD_END]))
        frame_size = protocol.HEADER_SIZE + body_length
        if len(self._buffer) < frame_size:
            return None
        return frame_size

    def feed(self, fragment: bytes | bytearray | memoryview) -> list[bytes]:
        """Append *fragment* and return every raw frame it completes, in order."""
        self._buffer.extend(fragment)
        frames: list[bytes] = []
        while (frame_size := self._next_frame_size()) is not None:
            frames.append(bytes(self._buffer[:frame_size]))
            del self._buffer[:frame_size]
        return frames
