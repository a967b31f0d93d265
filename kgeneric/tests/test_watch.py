# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
import anyio
import pytest

from kgeneric import (
    EventType,
    RawWatch,
    TransportError,
    WatchEvent,
    WatchTerminatedError,
    resource_kind,
)
from kgeneric._testutils import check_streams_closed
from kgeneric.asyncio import Watcher, new_fake
from kgeneric.objects import Deployment, Pod


class QueueWatch:
    """A raw watch fed by the test."""

    def __init__(self):
        self.send, self.receive = anyio.create_memory_object_stream(100)
        self.stop_calls = 0

    def __aiter__(self):
        return self.receive.__aiter__()

    async def stop(self):
        self.stop_calls += 1
        self.send.close()

    def emit(self, event_type, obj):
        self.send.send_nowait(WatchEvent(EventType(event_type), obj))


class BrokenWatch:
    async def __aiter__(self):
        yield WatchEvent(EventType.ADDED, Pod("a"))
        raise TransportError("connection reset")

    async def stop(self):
        pass


def make_watcher(raw):
    return Watcher(raw, Pod, resource_kind(Pod))


def test_raw_watch_protocol():
    assert isinstance(QueueWatch(), RawWatch)


async def test_events_in_order():
    raw = QueueWatch()
    for name in "abc":
        raw.emit("ADDED", Pod(name))
    raw.send.close()
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with watcher:
            names = [pod.name async for pod in watcher]
    assert names == ["a", "b", "c"]
    assert watcher.cause is None
    assert not watcher.stopped
    assert watcher.done
    assert raw.stop_calls >= 1


async def test_stop():
    raw = QueueWatch()
    raw.emit("ADDED", Pod("a"))
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with watcher:
            first = await watcher.results().receive()
            await watcher.stop()
            rest = [pod async for pod in watcher]
            await watcher.stop()
    assert first.name == "a"
    assert rest == []
    assert watcher.stopped
    assert watcher.cause is None


async def test_stop_before_start():
    raw = QueueWatch()
    raw.emit("ADDED", Pod("a"))
    watcher = make_watcher(raw)
    await watcher.stop()
    with anyio.fail_after(5):
        async with watcher:
            assert [pod async for pod in watcher] == []
    assert watcher.stopped


async def test_narrowing_failure_ends_stream():
    raw = QueueWatch()
    raw.emit("ADDED", Pod("a"))
    raw.emit("MODIFIED", Deployment("web"))
    raw.emit("ADDED", Pod("b"))
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with watcher:
            names = [pod.name async for pod in watcher]
    assert names == ["a"]
    assert isinstance(watcher.cause, WatchTerminatedError)
    assert watcher.cause.event_type == "MODIFIED"
    assert isinstance(watcher.cause.payload, Deployment)
    assert not watcher.stopped


async def test_dict_payloads_are_decoded():
    raw = QueueWatch()
    raw.emit("ADDED", {"kind": "Pod", "apiVersion": "v1", "metadata": {"name": "a"}})
    raw.emit("ADDED", {"kind": "Pod", "apiVersion": "v2", "metadata": {"name": "b"}})
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with watcher:
            received = [pod async for pod in watcher]
    assert [type(p) for p in received] == [Pod]
    assert received[0].name == "a"
    assert isinstance(watcher.cause, WatchTerminatedError)


async def test_bookmarks_are_skipped():
    raw = QueueWatch()
    raw.emit("BOOKMARK", {"kind": "Pod", "apiVersion": "v1", "metadata": {"resourceVersion": "5"}})
    raw.emit("ADDED", Pod("a"))
    raw.send.close()
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with watcher:
            assert [pod.name async for pod in watcher] == ["a"]
    assert watcher.cause is None


async def test_transport_error_is_recorded():
    watcher = make_watcher(BrokenWatch())
    with anyio.fail_after(5):
        async with watcher:
            names = [pod.name async for pod in watcher]
    assert names == ["a"]
    assert isinstance(watcher.cause, TransportError)


async def test_start_in_task_group():
    raw = QueueWatch()
    raw.emit("ADDED", Pod("a"))
    raw.send.close()
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            watcher.start(tg)
            names = [pod.name async for pod in watcher.results()]
    assert names == ["a"]
    await watcher.wait()
    with pytest.raises(RuntimeError):
        await watcher.run()


async def test_unbuffered_output():
    raw = QueueWatch()
    raw.emit("ADDED", Pod("a"))
    raw.emit("ADDED", Pod("b"))
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with watcher:
            await anyio.sleep(0.1)
            # The forwarding task holds "a" until someone receives it
            assert raw.receive.statistics().current_buffer_used == 1
            assert (await watcher.results().receive()).name == "a"
            assert (await watcher.results().receive()).name == "b"


async def test_consumer_closing_ends_stream():
    raw = QueueWatch()
    raw.emit("ADDED", Pod("a"))
    watcher = make_watcher(raw)
    with anyio.fail_after(5):
        async with watcher:
            watcher.results().close()
            await watcher.wait()
    assert watcher.cause is None
    assert raw.stop_calls >= 1


async def test_stopped_fake_watch_closes_streams():
    async def watch_one():
        pods = new_fake(Pod)
        watcher = await pods.watch("fake")
        async with watcher:
            await pods.create(Pod({"metadata": {"name": "a", "namespace": "fake"}}))
            assert (await watcher.results().receive()).name == "a"
            await watcher.stop()
        with pytest.raises(anyio.ClosedResourceError):
            await watcher.results().receive()

    with anyio.fail_after(5), check_streams_closed():
        await watch_one()


async def test_aclose():
    async def watch_one():
        raw = QueueWatch()
        raw.emit("ADDED", Pod("a"))
        watcher = make_watcher(raw)
        async with anyio.create_task_group() as tg:
            watcher.start(tg)
            assert (await watcher.results().receive()).name == "a"
            await watcher.aclose()
            assert watcher.done
        await watcher.aclose()
        raw.receive.close()

    with anyio.fail_after(5), check_streams_closed():
        await watch_one()


async def test_aclose_unstarted():
    async def watch_one():
        raw = QueueWatch()
        watcher = make_watcher(raw)
        await watcher.aclose()
        assert watcher.stopped
        raw.receive.close()

    with check_streams_closed():
        await watch_one()
