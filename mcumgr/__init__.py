"""mcumgr client package initialisation."""

__version__ = "0.3.0"

import logging

from .client import McuManager
from .config import ClientConfig, configure_logging, load_config, load_config_file
from .errors import (
    FramingError,
    HashMismatch,
    ImageFormatError,
    McuMgrError,
    TransportError,
    UploadAlreadyInProgress,
)
from .events import EventKind, UploadFinished, UploadProgress
from .image import ImageDescriptor, ImageInfo, image_info, parse_image
from .protocol.structures import decode_image_state

logger = logging.getLogger(__name__)

__all__ = [
    "ClientConfig",
    "EventKind",
    "FramingError",
    "HashMismatch",
    "ImageDescriptor",
    "ImageFormatError",
    "ImageInfo",
    "McuManager",
    "McuMgrError",
    "TransportError",
    "UploadAlreadyInProgress",
    "UploadFinished",
    "UploadProgress",
    "configure_logging",
    "decode_image_state",
    "image_info",
    "load_config",
    "load_config_file",
    "parse_image",
]
