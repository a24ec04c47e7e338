"""Byte transport contract consumed by the mcumgr client."""

from .base import FragmentCallback, LostCallback, Transport, transport_not_ready

__all__ = [
    "FragmentCallback",
    "LostCallback",
    "Transport",
    "transport_not_ready",
]
