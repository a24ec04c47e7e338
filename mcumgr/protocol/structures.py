"""Typed response structures for SMP image management.

Response bodies arrive as plain CBOR maps; these ``msgspec`` structs give the
caller a validated, attribute-based view of them.
"""

from __future__ import annotations

from typing import Any

import msgspec

from .frame import Frame
from .protocol import GroupId, GroupImageId


class ImageSlotState(msgspec.Struct, frozen=True, kw_only=True):
    """State of one image slot as reported by the device."""

    slot: int
    version: str
    hash: bytes | None = None
    image: int = 0
    bootable: bool = False
    pending: bool = False
    confirmed: bool = False
    active: bool = False
    permanent: bool = False


class ImageStateResponse(msgspec.Struct, frozen=True, kw_only=True, rename={"split_status": "splitStatus"}):
    images: list[ImageSlotState] = []
    split_status: int = 0
    rc: int = 0


def decode_image_state(frame: Frame) -> ImageStateResponse:
    """Convert an image-state response frame into typed structures."""
    if frame.group_id != GroupId.IMAGE or frame.command_id != GroupImageId.STATE:
        raise ValueError(f"Not an image state response: {frame.describe()}")
    body: Any = frame.body if frame.body is not None else {}
    return msgspec.convert(body, ImageStateResponse)
