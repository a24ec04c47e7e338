"""SMP frame building and parsing.

This module implements the binary frame format exchanged with an mcumgr
device over any byte transport.

Frame Structure:
    [Header (8 bytes)] [Body (0-65535 bytes)]

Header Format (big-endian):
    - operation (1 byte): read / write request or response
    - flags (1 byte): reserved, always 0 on send
    - length (2 bytes): number of body bytes
    - group_id (2 bytes): management group
    - sequence (1 byte): sender sequence number
    - command_id (1 byte): command within the group

The body is a CBOR encoded value. There is no delimiter and no checksum: the
length field is the only frame boundary indicator.

Example:
    >>> raw = Frame.build(OpCode.READ, GroupId.IMAGE, GroupImageId.STATE, 0)
    >>> Frame.parse(raw).command_id
    0
"""

from __future__ import annotations

from typing import Any

import msgspec
from construct import ConstructError

from ..errors import FramingError
from . import protocol
from .encoding import decode_body, encode_body


class Frame(msgspec.Struct, frozen=True, kw_only=True):
    """One decoded SMP message.

    Attributes:
        operation: Raw operation code (see :class:`~mcumgr.protocol.protocol.OpCode`).
        flags: Reserved header byte.
        length: Body length declared in the header.
        group_id: Management group.
        sequence: Sender sequence number.
        command_id: Command within ``group_id``.
        body: Decoded CBOR body, ``None`` when the body is empty.
    """

    operation: int
    group_id: int
    command_id: int
    sequence: int = 0
    flags: int = 0
    length: int = 0
    body: Any = None

    @staticmethod
    def build(
        operation: int,
        group_id: int,
        command_id: int,
        sequence: int,
        body: Any | None = None,
    ) -> bytes:
        """Build a raw frame (header + CBOR body)."""
        if not 0 <= operation <= protocol.UINT8_MAX:
            raise FramingError(f"Operation {operation} outside 8-bit range")
        if not 0 <= group_id <= protocol.UINT16_MAX:
            raise FramingError(f"Group id {group_id} outside 16-bit range")
        if not 0 <= command_id <= protocol.UINT8_MAX:
            raise FramingError(f"Command id {command_id} outside 8-bit range")
        if not 0 <= sequence <= protocol.UINT8_MAX:
            raise FramingError(f"Sequence {sequence} outside 8-bit range")

        encoded = encode_body(body)
        if len(encoded) > protocol.UINT16_MAX:
            raise FramingError(f"Body too large ({len(encoded)} bytes); max is {protocol.UINT16_MAX}")

        header = protocol.HEADER_STRUCT.build(
            {
                "operation": operation,
                "flags": 0,
                "length": len(encoded),
                "group_id": group_id,
                "sequence": sequence,
                "command_id": command_id,
            }
        )
        return header + encoded

    @staticmethod
    def parse(raw_frame: bytes | bytearray | memoryview) -> "Frame":
        """Parse one complete frame.

        The declared length is not re-checked against the buffer; the
        reassembly buffer only hands over exactly ``8 + length`` bytes.
        """
        data = bytes(raw_frame)
        if len(data) < protocol.HEADER_SIZE:
            raise FramingError(
                f"Incomplete frame: size {len(data)} is less than header size {protocol.HEADER_SIZE}"
            )

        try:
            header = protocol.HEADER_STRUCT.parse(data[: protocol.HEADER_SIZE])
        except ConstructError as exc:
            raise FramingError(f"Header parsing failed: {exc}") from exc

        body_bytes = data[protocol.HEADER_SIZE :]
        return Frame(
            operation=header.operation,
            flags=header.flags,
            length=len(body_bytes),
            group_id=header.group_id,
            sequence=header.sequence,
            command_id=header.command_id,
            body=decode_body(body_bytes),
        )

    @property
    def rc(self) -> int | None:
        """Device return code carried in the body, if any."""
        if isinstance(self.body, dict):
            value = self.body.get("rc")
            if isinstance(value, int):
                return value
        return None

    @property
    def is_error(self) -> bool:
        rc = self.rc
        return rc is not None and rc != protocol.ReturnCode.OK

    def to_bytes(self) -> bytes:
        """Serialize the instance using :meth:`build`."""
        return self.build(self.operation, self.group_id, self.command_id, self.sequence, self.body)

    def describe(self) -> str:
        try:
            group = protocol.GroupId(self.group_id).name
        except ValueError:
            group = f"0x{self.group_id:04X}"
        try:
            operation = protocol.OpCode(self.operation).name
        except ValueError:
            operation = f"0x{self.operation:02X}"
        return f"{operation} {group}/{self.command_id} seq={self.sequence} len={self.length}"
