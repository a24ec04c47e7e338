"""SMP protocol layer: constants, CBOR bodies, framing and reassembly."""

from .encoding import decode_body, encode_body
from .frame import Frame
from .protocol import GroupId, GroupImageId, GroupOSId, OpCode, ReturnCode
from .reassembly import ReassemblyBuffer
from . import protocol, frame, structures

__all__ = [
    "Frame",
    "GroupId",
    "GroupImageId",
    "GroupOSId",
    "OpCode",
    "ReassemblyBuffer",
    "ReturnCode",
    "decode_body",
    "encode_body",
    "protocol",
    "frame",
    "structures",
]
