"""MCUboot firmware image parsing.

Image layout::

    +----------------+-----------------+----------------------+---------------------+
    | Header (32 B)  | Payload         | Protected TLV area   | Unprotected TLVs    |
    | hdr_size bytes | img_size bytes  | protect_tlv_size B   | magic 0x6907 + TLVs |
    +----------------+-----------------+----------------------+---------------------+

The SHA-256 digest covers the header, the payload and the protected TLV area.
The unprotected trailer carries that digest as tag 0x10.

:func:`parse_image` is pure: it never mutates its input and fails on the first
structural violation with a specific :class:`~mcumgr.errors.ImageFormatError`.
A digest mismatch is reported through ``hash_valid`` and never raised here.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterator, Mapping
from types import MappingProxyType

import msgspec
from construct import ConstructError

from .errors import (
    BadFlags,
    BadImageSize,
    BadLoadAddress,
    BadMagic,
    BadProtectedTlvMagic,
    BadTlv,
    BadTlvMagic,
    HashMismatch,
    ImageFormatError,
    ImageTooShort,
)
from .protocol import protocol


class ImageVersion(msgspec.Struct, frozen=True):
    major: int
    minor: int
    revision: int
    build_number: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.revision}"


class ImageDescriptor(msgspec.Struct, frozen=True, kw_only=True):
    """Description of a parsed firmware image."""

    header_size: int
    image_size: int
    protected_tlv_area_size: int
    version: ImageVersion
    computed_hash: bytes
    hash_valid: bool
    tags: Mapping[int, bytes]

    @property
    def trailer_hash(self) -> bytes | None:
        return self.tags.get(protocol.IMAGE_TLV_SHA256)

    @property
    def hash_hex(self) -> str:
        return self.computed_hash.hex()

    def require_valid_hash(self) -> None:
        """Raise :class:`HashMismatch` unless the trailer digest matches."""
        if self.hash_valid:
            return
        trailer = self.trailer_hash
        if trailer is None:
            raise HashMismatch("Image trailer carries no SHA-256 TLV")
        raise HashMismatch(f"Image hash mismatch: computed {self.hash_hex}, trailer {trailer.hex()}")


class ImageInfo(msgspec.Struct, frozen=True, kw_only=True):
    """Short human-oriented summary of an image."""

    image_size: int
    version: str
    hash: str


def _iter_tlv_entries(image: bytes, start: int, end: int) -> Iterator[tuple[int, bytes]]:
    position = start
    while position < end:
        value_start = position + protocol.IMAGE_TLV_ENTRY_HEADER_SIZE
        if value_start > end:
            raise BadTlv(f"Truncated TLV header at offset {position}")
        entry = protocol.IMAGE_TLV_ENTRY_HEADER_STRUCT.parse(image[position:value_start])
        value_end = value_start + entry.length
        if value_end > end:
            raise BadTlv(
                f"TLV 0x{entry.tag:04X} at offset {position} declares {entry.length} bytes past area end {end}"
            )
        yield entry.tag, image[value_start:value_end]
        position = value_end


def _read_tlv_area(
    image: bytes,
    base: int,
    magic: int,
    magic_error: type[ImageFormatError],
) -> tuple[dict[int, bytes], int]:
    """Parse the TLV area starting at *base*; return its entries and end offset."""
    info_end = base + protocol.IMAGE_TLV_INFO_SIZE
    if info_end > len(image):
        raise magic_error(f"Missing TLV area header at offset {base}")
    info = protocol.IMAGE_TLV_INFO_STRUCT.parse(image[base:info_end])
    if info.magic != magic:
        raise magic_error(f"Wrong TLV area magic 0x{info.magic:04X} at offset {base}, expected 0x{magic:04X}")

    area_end = base + info.area_end
    if info.area_end < protocol.IMAGE_TLV_INFO_SIZE or area_end > len(image):
        raise BadTlv(f"TLV area at offset {base} declares invalid size {info.area_end}")
    return dict(_iter_tlv_entries(image, info_end, area_end)), area_end


def parse_image(image: bytes | bytearray | memoryview) -> ImageDescriptor:
    """Validate an MCUboot image and describe it."""
    data = bytes(image)

    if len(data) < protocol.IMAGE_HEADER_SIZE:
        raise ImageTooShort(f"Invalid image (too short: {len(data)} bytes)")

    try:
        header = protocol.IMAGE_HEADER_STRUCT.parse(data[: protocol.IMAGE_HEADER_SIZE])
    except ConstructError as exc:
        raise ImageTooShort(f"Invalid image header: {exc}") from exc

    if header.magic != protocol.IMAGE_MAGIC:
        raise BadMagic(f"Invalid image (wrong magic 0x{header.magic:08X})")
    if header.load_address != 0:
        raise BadLoadAddress(f"Invalid image (load address 0x{header.load_address:08X})")

    header_size = header.header_size
    protected_size = header.protected_tlv_area_size
    image_size = header.image_size

    if len(data) < image_size + header_size:
        raise BadImageSize(
            f"Invalid image (declares {header_size} + {image_size} bytes, file has {len(data)})"
        )
    if header.flags != 0:
        raise BadFlags(f"Invalid image (flags 0x{header.flags:08X})")

    version = ImageVersion(
        major=header.version.major,
        minor=header.version.minor,
        revision=header.version.revision,
        build_number=header.version.build_number,
    )

    payload_end = header_size + image_size
    computed_hash = hashlib.sha256(data[: payload_end + protected_size]).digest()

    tags: dict[int, bytes] = {}
    if protected_size > 0:
        protected_tags, _ = _read_tlv_area(
            data, payload_end, protocol.IMAGE_TLV_PROT_INFO_MAGIC, BadProtectedTlvMagic
        )
        tags.update(protected_tags)

    # Unprotected entries win over protected ones with the same tag.
    unprotected_tags, _ = _read_tlv_area(
        data, payload_end + protected_size, protocol.IMAGE_TLV_INFO_MAGIC, BadTlvMagic
    )
    tags.update(unprotected_tags)

    trailer_hash = tags.get(protocol.IMAGE_TLV_SHA256)
    hash_valid = (
        trailer_hash is not None
        and len(trailer_hash) == protocol.IMAGE_HASH_SIZE
        and trailer_hash == computed_hash
    )

    return ImageDescriptor(
        header_size=header_size,
        image_size=image_size,
        protected_tlv_area_size=protected_size,
        version=version,
        computed_hash=computed_hash,
        hash_valid=hash_valid,
        tags=MappingProxyType(tags),
    )


def image_info(image: bytes | bytearray | memoryview) -> ImageInfo:
    """Summarise *image* as size, dotted version and hex digest."""
    descriptor = parse_image(image)
    return ImageInfo(
        image_size=descriptor.image_size,
        version=str(descriptor.version),
        hash=descriptor.hash_hex,
    )


__all__ = ["ImageDescriptor", "ImageInfo", "ImageVersion", "image_info", "parse_image"]
