"""Service layer: command dispatch and the firmware upload engine."""

from .dispatcher import CommandDispatcher, SequenceCounter
from .upload import RetryTimer, UploadEngine, UploadSession

__all__ = [
    "CommandDispatcher",
    "RetryTimer",
    "SequenceCounter",
    "UploadEngine",
    "UploadSession",
]
