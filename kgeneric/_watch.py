# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""Typed watch streams.

A :class:`Watcher` turns a :class:`~kgeneric._types.RawWatch`, whose events may
carry anything, into a stream of objects of one resource class.
"""
from __future__ import annotations

import enum
import logging
from typing import Any, AsyncIterator, Generic, Iterator, NamedTuple, TypeVar

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ._async_utils import Portal, iter_over_async
from ._exceptions import WatchTerminatedError
from ._scheme import GroupVersionKind
from ._types import RawWatch

T = TypeVar("T")
logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


class WatchEvent(NamedTuple):
    type: EventType
    object: Any


def narrow(
    payload: Any, resource_cls: type[T], kind: GroupVersionKind | None = None
) -> T | None:
    """Return ``payload`` as a ``resource_cls`` instance, or ``None`` if it is something else.

    Instances pass through. Dicts are decoded when their ``kind`` and
    ``apiVersion`` match ``kind``.
    """
    if isinstance(payload, resource_cls):
        return payload
    if (
        isinstance(payload, dict)
        and kind is not None
        and payload.get("kind") == kind.kind
        and payload.get("apiVersion") == kind.api_version
    ):
        return resource_cls(payload)  # type: ignore[call-arg]
    return None


class Watcher(Generic[T]):
    """Republish a raw watch stream as a stream of ``T``.

    A single forwarding task (:meth:`run`) owns the raw stream. Each event
    payload is narrowed to ``T`` and sent over a zero-capacity stream, so a slow
    consumer holds up the producer. Bookmark events carry no object and are
    skipped. The stream closes when the upstream ends,
    when a payload cannot be narrowed, or when :meth:`stop` is called.

    How the stream ended can be told apart afterwards:

    * ``stopped`` is true when :meth:`stop` ended it;
    * ``cause`` holds a :class:`~kgeneric.WatchTerminatedError` when a payload
      failed to narrow, or the transport error that broke the stream;
    * otherwise the upstream closed normally.

    Example:
        >>> watcher = await pods.watch("default")
        >>> async with watcher:
        ...     async for pod in watcher:
        ...         print(pod.name)
    """

    def __init__(
        self,
        raw: RawWatch,
        resource_cls: type[T],
        kind: GroupVersionKind | None = None,
    ) -> None:
        self._raw = raw
        self._resource_cls = resource_cls
        self._kind = kind
        self._send: MemoryObjectSendStream[T]
        self._receive: MemoryObjectReceiveStream[T]
        self._send, self._receive = anyio.create_memory_object_stream(0)
        self._scope: anyio.CancelScope | None = None
        self._task_group: TaskGroup | None = None
        self._started = False
        self._stopped = False
        self._done = anyio.Event()
        self.cause: BaseException | None = None

    @property
    def raw(self) -> RawWatch:
        """The upstream event stream."""
        return self._raw

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def done(self) -> bool:
        """Whether the forwarding task has exited."""
        return self._done.is_set()

    def results(self) -> MemoryObjectReceiveStream[T]:
        """The receiving end of the typed stream."""
        return self._receive

    def __aiter__(self) -> AsyncIterator[T]:
        return self._receive.__aiter__()

    def _narrow(self, event: Any) -> T | None:
        return narrow(getattr(event, "object", None), self._resource_cls, self._kind)

    async def run(self) -> None:
        """Forward events until the upstream ends, narrowing fails or :meth:`stop` is called.

        This is the body of the forwarding task and must run exactly once.
        """
        if self._started:
            raise RuntimeError("Watcher is already running")
        self._started = True
        try:
            with anyio.CancelScope() as scope:
                self._scope = scope
                if self._stopped:
                    return
                try:
                    async for event in self._raw:
                        if getattr(event, "type", None) == EventType.BOOKMARK:
                            continue
                        obj = self._narrow(event)
                        if obj is None:
                            event_type = getattr(event, "type", "")
                            self.cause = WatchTerminatedError(
                                f"Watch event payload is not a {self._resource_cls.__name__}",
                                event_type=getattr(event_type, "value", event_type),
                                payload=getattr(event, "object", event),
                            )
                            logger.debug("Ending watch: %s", self.cause)
                            break
                        await self._send.send(obj)
                except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                    # The consumer closed its end, or stop() closed ours.
                    pass
                except Exception as e:
                    self.cause = e
                    logger.debug("Watch stream failed: %r", e)
        finally:
            self._send.close()
            with anyio.CancelScope(shield=True):
                await self._raw.stop()
            self._done.set()

    def start(self, task_group: TaskGroup) -> None:
        """Run the forwarding task in ``task_group``."""
        task_group.start_soon(self.run, name=f"watch-{self._resource_cls.__name__}")

    async def stop(self) -> None:
        """Stop the upstream and close the typed stream.

        Idempotent, and safe to call whether or not the forwarding task is running.
        """
        if self._stopped or self._done.is_set():
            return
        self._stopped = True
        if self._scope is not None:
            self._scope.cancel()
        self._send.close()
        await self._raw.stop()

    async def wait(self) -> None:
        """Wait for the forwarding task to exit."""
        await self._done.wait()

    async def __aenter__(self) -> Watcher[T]:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        self.start(self._task_group)
        return self

    async def aclose(self) -> None:
        """Stop the watch and close the typed stream for good.

        Waits for the forwarding task if it was started. Iterating afterwards
        raises :class:`anyio.ClosedResourceError`.
        """
        await self.stop()
        if self._started:
            await self._done.wait()
        self._receive.close()

    async def __aexit__(self, *exc_info) -> bool | None:
        await self.stop()
        assert self._task_group
        try:
            return await self._task_group.__aexit__(*exc_info)
        finally:
            self._task_group = None
            self._receive.close()


class SyncWatcher(Generic[T]):
    """Blocking view of a :class:`Watcher`.

    The forwarding task runs on the background event loop used by the blocking
    API, so events keep flowing between calls.

    Example:
        >>> with pods.watch("default") as watcher:
        ...     for pod in watcher:
        ...         print(pod.name)
    """

    def __init__(self, watcher: Watcher[T]) -> None:
        self._watcher = watcher
        self._portal = Portal()
        self._future = self._portal.start_task_soon(watcher.run)

    @property
    def watcher(self) -> Watcher[T]:
        return self._watcher

    @property
    def stopped(self) -> bool:
        return self._watcher.stopped

    @property
    def cause(self) -> BaseException | None:
        return self._watcher.cause

    @property
    def done(self) -> bool:
        return self._future.done()

    def results(self) -> Iterator[T]:
        """Iterate over objects until the watch ends."""
        return iter_over_async(self._watcher.results())

    def __iter__(self) -> Iterator[T]:
        return self.results()

    def stop(self) -> None:
        """Stop the watch and wait for the forwarding task to exit. Idempotent."""
        self._portal.call(self._watcher.aclose)
        self._future.result()

    def wait(self, timeout: float | None = None) -> None:
        """Block until the forwarding task has exited."""
        self._future.result(timeout)

    def __enter__(self) -> SyncWatcher[T]:
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
