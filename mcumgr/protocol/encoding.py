"""CBOR body encoding helpers for SMP frames.

Request and response bodies are CBOR maps. An absent body is carried as a
zero-length byte string on the wire and decodes back to ``None``. A non-empty
body must hold exactly one CBOR item; the header length is the only frame
boundary, so leftover bytes mean the frame is garbled.
"""

from __future__ import annotations

import io
from typing import Any

import cbor2

from ..errors import BodyDecodeError, BodyEncodeError


def encode_body(value: Any | None) -> bytes:
    """Return the CBOR encoding of *value*, or ``b""`` when it is ``None``."""
    if value is None:
        return b""
    try:
        return cbor2.dumps(value)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
        raise BodyEncodeError(f"Cannot encode body: {exc}") from exc


def decode_body(data: bytes | bytearray | memoryview) -> Any | None:
    """Decode a CBOR body; an empty buffer yields ``None``."""
    if not data:
        return None
    raw = bytes(data)
    stream = io.BytesIO(raw)
    try:
        value = cbor2.CBORDecoder(stream).decode()
    except (cbor2.CBORDecodeError, ValueError, EOFError) as exc:
        raise BodyDecodeError(f"Invalid CBOR body: {exc}") from exc
    if stream.tell() != len(raw):
        raise BodyDecodeError(
            f"Invalid CBOR body: {len(raw) - stream.tell()} trailing bytes after {stream.tell()}-byte item"
        )
    return value


def encoded_size(value: Any) -> int:
    """Size in bytes of *value* once CBOR encoded."""
    return len(encode_body(value))
