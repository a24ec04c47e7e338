"""Shared fakes and builders for mcumgr tests."""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from mcumgr.errors import TransportError
from mcumgr.protocol import protocol
from mcumgr.protocol.frame import Frame
from mcumgr.protocol.protocol import GroupId, GroupImageId, OpCode
from mcumgr.transport import FragmentCallback, LostCallback


@dataclass
class ScheduledCall:
    delay: float
    callback: Callable[..., object]
    args: tuple[Any, ...]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def run(self) -> None:
        self.callback(*self.args)


@dataclass
class ManualScheduler:
    """``call_later`` replacement whose timers only fire when told to."""

    calls: list[ScheduledCall] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[..., object], *args: Any) -> ScheduledCall:
        call = ScheduledCall(delay, callback, args)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> list[ScheduledCall]:
        return [call for call in self.calls if not call.cancelled]

    def fire_pending(self) -> int:
        due = self.pending
        self.calls.clear()
        for call in due:
            call.run()
        return len(due)


@dataclass
class FakeTransport:
    """In-memory byte transport recording everything sent to the device."""

    open_failures: int = 0
    fail_sends: bool = False
    sent: list[bytes] = field(default_factory=list)
    open_calls: int = 0
    close_calls: int = 0
    is_open: bool = False
    _on_fragment: FragmentCallback | None = None
    _on_lost: LostCallback | None = None

    async def open(self, on_fragment: FragmentCallback, on_lost: LostCallback) -> None:
        self.open_calls += 1
        if self.open_failures > 0:
            self.open_failures -= 1
            raise TransportError("link unavailable")
        self._on_fragment = on_fragment
        self._on_lost = on_lost
        self.is_open = True

    async def send(self, data: bytes) -> None:
        if self.fail_sends or not self.is_open:
            raise TransportError("send failed")
        self.sent.append(bytes(data))

    async def close(self) -> None:
        self.close_calls += 1
        self.is_open = False

    async def deliver(self, *fragments: bytes) -> None:
        assert self._on_fragment is not None, "transport not opened"
        for fragment in fragments:
            await self._on_fragment(fragment)

    def drop(self, exc: Exception | None = None) -> None:
        assert self._on_lost is not None, "transport not opened"
        self.is_open = False
        self._on_lost(exc)

    @property
    def frames(self) -> list[Frame]:
        return [Frame.parse(raw) for raw in self.sent]


async def drain(rounds: int = 5) -> None:
    """Give scheduled tasks a chance to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def upload_ack(off: int, *, sequence: int = 0, rc: int = protocol.ReturnCode.OK) -> bytes:
    return Frame.build(
        OpCode.WRITE_RESPONSE,
        GroupId.IMAGE,
        GroupImageId.UPLOAD,
        sequence,
        {"rc": rc, "off": off},
    )


def _tlv_area(magic: int, entries: Iterable[tuple[int, bytes]]) -> bytes:
    body = b"".join(
        protocol.IMAGE_TLV_ENTRY_HEADER_STRUCT.build({"tag": tag, "length": len(value)}) + value
        for tag, value in entries
    )
    info = protocol.IMAGE_TLV_INFO_STRUCT.build(
        {"magic": magic, "area_end": protocol.IMAGE_TLV_INFO_SIZE + len(body)}
    )
    return info + body


def build_image(
    payload: bytes = b"\xa5" * 64,
    *,
    version: tuple[int, int, int, int] = (1, 2, 3, 4),
    protected: Iterable[tuple[int, bytes]] = (),
    extra_tlvs: Iterable[tuple[int, bytes]] = (),
    magic: int = protocol.IMAGE_MAGIC,
    load_address: int = 0,
    flags: int = 0,
    image_hash: bytes | None = None,
    include_hash: bool = True,
) -> bytes:
    """Assemble an MCUboot image with a correct SHA-256 trailer by default."""
    protected_area = _tlv_area(protocol.IMAGE_TLV_PROT_INFO_MAGIC, protected) if protected else b""
    major, minor, revision, build_number = version
    header = protocol.IMAGE_HEADER_STRUCT.build(
        {
            "magic": magic,
            "load_address": load_address,
            "header_size": protocol.IMAGE_HEADER_SIZE,
            "protected_tlv_area_size": len(protected_area),
            "image_size": len(payload),
            "flags": flags,
            "version": {
                "major": major,
                "minor": minor,
                "revision": revision,
                "build_number": build_number,
            },
            "reserved": 0,
        }
    )
    signed = header + payload + protected_area
    digest = image_hash if image_hash is not None else hashlib.sha256(signed).digest()
    entries = [(protocol.IMAGE_TLV_SHA256, digest)] if include_hash else []
    entries.extend(extra_tlvs)
    return signed + _tlv_area(protocol.IMAGE_TLV_INFO_MAGIC, entries)


def image_of_length(total_length: int) -> bytes:
    """Valid image whose serialized size is exactly *total_length* bytes."""
    trailer = protocol.IMAGE_TLV_INFO_SIZE + protocol.IMAGE_TLV_ENTRY_HEADER_SIZE + protocol.IMAGE_HASH_SIZE
    payload_size = total_length - protocol.IMAGE_HEADER_SIZE - trailer
    payload = bytes(index % 251 for index in range(payload_size))
    image = build_image(payload)
    assert len(image) == total_length
    return image
