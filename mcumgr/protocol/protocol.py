"""SMP protocol constants and binary layouts."""
from __future__ import annotations
from construct import Int8ub, Int16ub, Int16ul, Int32ul, Struct as BinStruct  # type: ignore
from enum import IntEnum
from typing import Final

HEADER_SIZE: Final[int] = 8
LENGTH_FIELD_END: Final[int] = 4
UINT8_MAX: Final[int] = 255
UINT16_MAX: Final[int] = 65535
SEQUENCE_MODULO: Final[int] = 256

DEFAULT_MTU: Final[int] = 400
MIN_MTU: Final[int] = 128
DEFAULT_UPLOAD_RETRY_TIMEOUT_MS: Final[int] = 100
UPLOAD_RETRY_TIMEOUT_MIN_MS: Final[int] = 10
UPLOAD_RETRY_TIMEOUT_MAX_MS: Final[int] = 60000
DEFAULT_CONNECT_ATTEMPTS: Final[int] = 3
CONNECT_ATTEMPTS_MAX: Final[int] = 10
DEFAULT_RECONNECT_DELAY: Final[float] = 1.0
RECONNECT_DELAY_MAX: Final[float] = 60.0

IMAGE_MAGIC: Final[int] = 0x96F3B83D
IMAGE_HEADER_SIZE: Final[int] = 32
IMAGE_TLV_INFO_MAGIC: Final[int] = 0x6907
IMAGE_TLV_PROT_INFO_MAGIC: Final[int] = 0x6908
IMAGE_TLV_INFO_SIZE: Final[int] = 4
IMAGE_TLV_ENTRY_HEADER_SIZE: Final[int] = 4
IMAGE_TLV_SHA256: Final[int] = 0x10
IMAGE_HASH_SIZE: Final[int] = 32


class OpCode(IntEnum):
    READ = 0
    READ_RESPONSE = 1
    WRITE = 2
    WRITE_RESPONSE = 3


class GroupId(IntEnum):
    OS = 0
    IMAGE = 1
    STAT = 2
    CONFIG = 3
    LOG = 4
    CRASH = 5
    SPLIT = 6
    RUN = 7
    FILE_SYSTEM = 8
    SHELL = 9


class GroupOSId(IntEnum):
    ECHO = 0
    CONSOLE_ECHO_CONTROL = 1
    TASK_STAT = 2
    MPSTAT = 3
    DATETIME = 4
    RESET = 5


class GroupImageId(IntEnum):
    STATE = 0
    UPLOAD = 1
    FILE = 2
    CORE_LIST = 3
    CORE_LOAD = 4
    ERASE = 5


class ReturnCode(IntEnum):
    OK = 0
    UNKNOWN = 1
    NO_MEMORY = 2
    INVALID = 3
    TIMEOUT = 4
    NO_ENTRY = 5
    BAD_STATE = 6
    MSG_SIZE = 7
    NOT_SUPPORTED = 8
    CORRUPT = 9
    BUSY = 10


# [op:1][flags:1][length:2][group:2][seq:1][id:1], network byte order.
HEADER_STRUCT: Final = BinStruct(
    "operation" / Int8ub,
    "flags" / Int8ub,
    "length" / Int16ub,
    "group_id" / Int16ub,
    "sequence" / Int8ub,
    "command_id" / Int8ub,
)
LENGTH_STRUCT: Final = Int16ub

# MCUboot image header, little-endian.
IMAGE_VERSION_STRUCT: Final = BinStruct(
    "major" / Int8ub,
    "minor" / Int8ub,
    "revision" / Int16ul,
    "build_number" / Int32ul,
)
IMAGE_HEADER_STRUCT: Final = BinStruct(
    "magic" / Int32ul,
    "load_address" / Int32ul,
    "header_size" / Int16ul,
    "protected_tlv_area_size" / Int16ul,
    "image_size" / Int32ul,
    "flags" / Int32ul,
    "version" / IMAGE_VERSION_STRUCT,
    "reserved" / Int32ul,
)
IMAGE_TLV_INFO_STRUCT: Final = BinStruct(
    "magic" / Int16ul,
    "area_end" / Int16ul,
)
IMAGE_TLV_ENTRY_HEADER_STRUCT: Final = BinStruct(
    "tag" / Int16ul,
    "length" / Int16ul,
)
