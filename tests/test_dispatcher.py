"""Tests for command encoding and frame routing."""

from __future__ import annotations

import asyncio

import pytest

from mcumgr.errors import TransportError
from mcumgr.events import EventEmitter, EventKind
from mcumgr.protocol.frame import Frame
from mcumgr.protocol.protocol import GroupId, GroupImageId, GroupOSId, OpCode
from mcumgr.services.dispatcher import CommandDispatcher, SequenceCounter
from mcumgr.services.upload import UploadEngine
from tests.mocks import FakeTransport, ManualScheduler, image_of_length, upload_ack


def _dispatcher(transport: FakeTransport, events: EventEmitter, scheduler: ManualScheduler) -> CommandDispatcher:
    dispatcher = CommandDispatcher(events=events, send_bytes=transport.send)
    dispatcher.register_upload_engine(
        UploadEngine(
            send_request=dispatcher.send_request,
            events=events,
            mtu=256,
            scheduler=scheduler,
        )
    )
    return dispatcher


@pytest.fixture()
def open_transport(transport: FakeTransport) -> FakeTransport:
    transport.is_open = True
    return transport


def test_sequence_counter_wraps() -> None:
    counter = SequenceCounter(255)

    assert counter.advance() == 0
    assert SequenceCounter(300).value == 44


def test_sequence_advances_per_send_and_wraps(
    open_transport: FakeTransport, events: EventEmitter, scheduler: ManualScheduler
) -> None:
    dispatcher = _dispatcher(open_transport, events, scheduler)

    async def _run() -> None:
        for _ in range(257):
            await dispatcher.echo("x")

    asyncio.run(_run())

    sequences = [frame.sequence for frame in open_transport.frames]
    assert sequences[:3] == [0, 1, 2]
    assert sequences[255] == 255
    assert sequences[256] == 0
    assert dispatcher.sequence == 1


def test_failed_send_does_not_advance_sequence(events: EventEmitter, scheduler: ManualScheduler) -> None:
    transport = FakeTransport(fail_sends=True, is_open=True)
    dispatcher = _dispatcher(transport, events, scheduler)

    with pytest.raises(TransportError):
        asyncio.run(dispatcher.reset())

    assert dispatcher.sequence == 0


def test_concurrent_requests_get_distinct_sequences(events: EventEmitter) -> None:
    sent: list[bytes] = []

    async def slow_send(data: bytes) -> None:
        await asyncio.sleep(0)
        sent.append(data)

    dispatcher = CommandDispatcher(events=events, send_bytes=slow_send)

    async def _run() -> None:
        await asyncio.gather(dispatcher.echo("a"), dispatcher.echo("b"), dispatcher.reset())

    asyncio.run(_run())

    assert sorted(Frame.parse(raw).sequence for raw in sent) == [0, 1, 2]
    assert dispatcher.sequence == 3


def test_failed_send_keeps_later_reservation(events: EventEmitter) -> None:
    sent: list[bytes] = []

    async def flaky_send(data: bytes) -> None:
        await asyncio.sleep(0)
        if Frame.parse(data).body == {"d": "lost"}:
            raise TransportError("send failed")
        sent.append(data)

    dispatcher = CommandDispatcher(events=events, send_bytes=flaky_send)

    async def _run() -> list[object]:
        return await asyncio.gather(dispatcher.echo("lost"), dispatcher.echo("kept"), return_exceptions=True)

    results = asyncio.run(_run())

    assert isinstance(results[0], TransportError)
    assert [Frame.parse(raw).sequence for raw in sent] == [1]
    assert dispatcher.sequence == 2


def test_sequence_release_only_rolls_back_latest() -> None:
    counter = SequenceCounter()
    first = counter.reserve()
    second = counter.reserve()

    counter.release(first)
    assert counter.value == 2
    counter.release(second)
    assert counter.value == 1


def test_send_without_transport_raises(events: EventEmitter) -> None:
    dispatcher = CommandDispatcher(events=events)

    with pytest.raises(TransportError, match="not connected"):
        asyncio.run(dispatcher.image_state())


def test_command_frames(open_transport: FakeTransport, events: EventEmitter, scheduler: ManualScheduler) -> None:
    dispatcher = _dispatcher(open_transport, events, scheduler)
    image_hash = bytes(range(32))

    async def _run() -> None:
        await dispatcher.reset()
        await dispatcher.echo("ping")
        await dispatcher.image_state()
        await dispatcher.image_erase()
        await dispatcher.image_test(image_hash)
        await dispatcher.image_confirm(image_hash)

    asyncio.run(_run())

    summary = [
        (frame.operation, frame.group_id, frame.command_id, frame.body) for frame in open_transport.frames
    ]
    assert summary == [
        (OpCode.WRITE, GroupId.OS, GroupOSId.RESET, None),
        (OpCode.WRITE, GroupId.OS, GroupOSId.ECHO, {"d": "ping"}),
        (OpCode.READ, GroupId.IMAGE, GroupImageId.STATE, None),
        (OpCode.WRITE, GroupId.IMAGE, GroupImageId.ERASE, {}),
        (OpCode.WRITE, GroupId.IMAGE, GroupImageId.STATE, {"hash": image_hash, "confirm": False}),
        (OpCode.WRITE, GroupId.IMAGE, GroupImageId.STATE, {"hash": image_hash, "confirm": True}),
    ]


def test_upload_ack_is_consumed_by_engine(
    open_transport: FakeTransport, events: EventEmitter, scheduler: ManualScheduler
) -> None:
    dispatcher = _dispatcher(open_transport, events, scheduler)
    messages: list[Frame] = []
    events.subscribe(EventKind.MESSAGE, messages.append)

    async def _run() -> bool:
        await dispatcher.upload(image_of_length(1000))
        return await dispatcher.route(Frame.parse(upload_ack(100)))

    consumed = asyncio.run(_run())

    assert consumed is True
    assert messages == []
    assert [frame.body["off"] for frame in open_transport.frames] == [0, 100]


def test_upload_error_response_is_emitted_once(
    open_transport: FakeTransport, events: EventEmitter, scheduler: ManualScheduler
) -> None:
    dispatcher = _dispatcher(open_transport, events, scheduler)
    messages: list[Frame] = []
    events.subscribe(EventKind.MESSAGE, messages.append)
    error = Frame.parse(
        Frame.build(OpCode.WRITE_RESPONSE, GroupId.IMAGE, GroupImageId.UPLOAD, 0, {"rc": 2})
    )

    async def _run() -> bool:
        await dispatcher.upload(image_of_length(1000))
        return await dispatcher.route(error)

    consumed = asyncio.run(_run())

    assert consumed is False
    assert messages == [error]
    assert len(open_transport.sent) == 1
    assert dispatcher.upload_engine is not None
    assert dispatcher.upload_engine.session is not None
    assert dispatcher.upload_engine.session.offset == 0


def test_upload_response_without_offset_is_a_message(
    open_transport: FakeTransport, events: EventEmitter, scheduler: ManualScheduler
) -> None:
    dispatcher = _dispatcher(open_transport, events, scheduler)
    messages: list[Frame] = []
    events.subscribe(EventKind.MESSAGE, messages.append)
    response = Frame(
        operation=OpCode.WRITE_RESPONSE,
        group_id=GroupId.IMAGE,
        command_id=GroupImageId.UPLOAD,
        body={"rc": 0},
    )

    consumed = asyncio.run(dispatcher.route(response))

    assert consumed is False
    assert messages == [response]


def test_other_responses_are_messages(
    open_transport: FakeTransport, events: EventEmitter, scheduler: ManualScheduler
) -> None:
    dispatcher = _dispatcher(open_transport, events, scheduler)
    messages: list[Frame] = []
    events.subscribe(EventKind.MESSAGE, messages.append)
    echo = Frame(operation=OpCode.WRITE_RESPONSE, group_id=GroupId.OS, command_id=GroupOSId.ECHO, body={"r": "ping"})

    asyncio.run(dispatcher.route(echo))

    assert messages == [echo]
