"""Exception hierarchy for the mcumgr client.

Every error raised by this package derives from :class:`McuMgrError`. The
concrete classes also inherit the closest builtin (``ValueError`` for bad
input data, ``OSError`` for transport failures) so callers that only know the
builtins still catch them.
"""

from __future__ import annotations


class McuMgrError(Exception):
    """Base class for all mcumgr client errors."""


# --- Framing ---


class FramingError(McuMgrError, ValueError):
    """Raised when a frame header or body cannot be built or parsed."""


class BodyEncodeError(FramingError):
    """Raised when a request body cannot be encoded as CBOR."""


class BodyDecodeError(FramingError):
    """Raised when a received body is not valid CBOR."""


# --- Image format ---


class ImageFormatError(McuMgrError, ValueError):
    """Raised when a firmware image violates the MCUboot layout."""


class ImageTooShort(ImageFormatError):
    pass


class BadMagic(ImageFormatError):
    pass


class BadLoadAddress(ImageFormatError):
    pass


class BadImageSize(ImageFormatError):
    pass


class BadFlags(ImageFormatError):
    pass


class BadProtectedTlvMagic(ImageFormatError):
    pass


class BadTlvMagic(ImageFormatError):
    pass


class BadTlv(ImageFormatError):
    """Raised when a TLV entry or area runs past its declared bounds."""


class HashMismatch(McuMgrError, ValueError):
    """Raised on request when the trailer hash does not match the image.

    Not an :class:`ImageFormatError`: the image is well formed, and parsing
    only reports the mismatch through ``hash_valid``.
    """


# --- Upload / transport ---


class UploadAlreadyInProgress(McuMgrError, RuntimeError):
    """Raised when an upload is started while another one is in flight."""


class TransportError(McuMgrError, OSError):
    """Raised when the byte transport cannot open, send or close."""


__all__ = [
    "BadFlags",
    "BadImageSize",
    "BadLoadAddress",
    "BadMagic",
    "BadProtectedTlvMagic",
    "BadTlv",
    "BadTlvMagic",
    "BodyDecodeError",
    "BodyEncodeError",
    "FramingError",
    "HashMismatch",
    "ImageFormatError",
    "ImageTooShort",
    "McuMgrError",
    "TransportError",
    "UploadAlreadyInProgress",
]
