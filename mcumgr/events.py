"""Caller-visible events and the observer registry that delivers them."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from enum import StrEnum
from typing import Any

import msgspec

logger = logging.getLogger("mcumgr.events")

EventCallback = Callable[[Any], None]


class EventKind(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    UPLOAD_PROGRESS = "upload_progress"
    UPLOAD_FINISHED = "upload_finished"


class UploadProgress(msgspec.Struct, frozen=True, kw_only=True):
    offset: int
    total_length: int
    percentage: int


class UploadFinished(msgspec.Struct, frozen=True, kw_only=True):
    image_hash: bytes


class EventEmitter:
    """Synchronous publish/subscribe registry keyed by :class:`EventKind`.

    Subscribers run in registration order on the emitting task. A subscriber
    that raises is logged and skipped; it never interrupts the emitter.
    """

    def __init__(self) -> None:
        self._subscribers: defaultdict[EventKind, list[EventCallback]] = defaultdict(list)

    def subscribe(self, kind: EventKind | str, callback: EventCallback) -> Callable[[], None]:
        event_kind = EventKind(kind)
        self._subscribers[event_kind].append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers[event_kind].remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def subscriber_count(self, kind: EventKind | str) -> int:
        return len(self._subscribers[EventKind(kind)])

    def emit(self, kind: EventKind, payload: Any = None) -> None:
        for callback in list(self._subscribers[kind]):
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for '%s' event failed", kind.value)


__all__ = ["EventCallback", "EventEmitter", "EventKind", "UploadFinished", "UploadProgress"]
