# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
#
# Utilities for running async code in a sync context. This is how kgeneric provides its blocking API.
#
# The blocking API wraps every public coroutine of the async classes. It may itself be used from
# inside an async context (a Jupyter notebook, an async test), so the coroutines run on an event
# loop in a separate thread and the calling thread blocks on an anyio portal into that loop.
#
# Long-running work such as watch forwarding is started on the same loop with
# Portal.start_task_soon and keeps running between blocking calls.
from __future__ import annotations

import inspect
from concurrent.futures import Future
from functools import partial, wraps
from threading import Thread
from typing import (
    Any,
    AsyncGenerator,
    Awaitable,
    Callable,
    Generator,
    ParamSpec,
    TypeVar,
)

import anyio
import anyio.from_thread

T = TypeVar("T")
C = TypeVar("C")
P = ParamSpec("P")


class Portal:
    """A class that manages a thread running an anyio loop.

    This class is a singleton that manages a thread running an anyio loop and provides
    an anyio portal to communicate with the loop from a sync context.

    See https://anyio.readthedocs.io/en/stable/api.html#anyio.from_thread.start_blocking_portal for more info.

    It's important to start the loop in a separate thread because the sync code may be
    running in a context where an event loop is already running, and we can't run two
    event loops in the same thread.
    """

    _instance: Portal
    _portal: anyio.from_thread.BlockingPortal
    thread: Thread

    def __new__(cls):
        if not hasattr(cls, "_instance"):
            cls._instance = super().__new__(cls)
            cls._instance.thread = Thread(
                target=anyio.run,
                args=[cls._instance._run],
                name="KgenericSyncRunnerThread",
            )
            cls._instance.thread.daemon = True
            cls._instance.thread.start()
        return cls._instance

    async def _run(self):
        async with anyio.from_thread.BlockingPortal() as portal:
            self._portal = portal
            await portal.sleep_until_stopped()

    def _wait_for_portal(self) -> anyio.from_thread.BlockingPortal:
        # On first call the thread has to start the loop, so we need to wait for it
        while not hasattr(self, "_portal"):
            pass
        return self._portal

    def call(self, func: Callable[P, Awaitable[T]], *args, **kwargs) -> T:
        """Call a coroutine in the runner loop and return the result."""
        return self._wait_for_portal().call(func, *args, **kwargs)

    def start_task_soon(self, func: Callable[..., Awaitable[T]], *args) -> Future[T]:
        """Start a coroutine in the runner loop without waiting for it."""
        return self._wait_for_portal().start_task_soon(func, *args)


def run_sync(coro: Callable[P, Awaitable[T]]) -> Callable[P, T]:
    """Wraps a coroutine in a function that blocks until it has executed.

    Args:
        coro (Awaitable): A coroutine.

    Returns:
        Callable: A sync function that executes the coroutine via the :class`Portal`.
    """
    if inspect.iscoroutinefunction(coro):

        @wraps(coro)
        def run_sync_inner(*args: P.args, **kwargs: P.kwargs) -> T:
            wrapped = partial(coro, *args, **kwargs)
            portal = Portal()
            return portal.call(wrapped)

        return run_sync_inner

    raise TypeError(f"Expected coroutine function, got {coro.__class__.__name__}")


def iter_over_async(agen: AsyncGenerator) -> Generator:
    """Convert an async iterator to a sync generator.

    Args:
        agen (AsyncGenerator): async generator (or any async iterable) to convert

    Yields:
        Any: object from async generator
    """
    ait = agen.__aiter__()

    async def get_next() -> tuple[bool, Any]:
        try:
            obj = await ait.__anext__()
            return False, obj
        except StopAsyncIteration:
            return True, None

    portal = Portal()
    while True:
        done, obj = portal.call(get_next)
        if done:
            break
        yield obj


def sync(source: C) -> C:
    """Convert all public async methods of a class to blocking methods.

    Private methods or methods starting with "async_" are ignored.
    See :func:`run_sync` for more info on how the conversion works.

    Args:
        source (C): class with coroutines to convert

    Returns:
        C: converted class with sync methods

    Examples:
        It's common to implement a coroutine and name it with async_ and then wrap that
        in another coroutine that calls it. The outer coroutine becomes a blocking
        method while other async code can still await the inner one.

        >>> class Foo:
        ...     async def async_bar(self):
        ...         return 42
        ...     async def bar(self):
        ...         return await self.async_bar()
        ...
        >>> SyncFoo = sync(Foo)
        >>> SyncFoo().bar()
        42
    """
    setattr(source, "_asyncio", False)  # noqa: B010
    for name in dir(source):
        method = getattr(source, name)

        if not name.startswith("_") and not name.startswith("async_"):
            if inspect.iscoroutinefunction(method):
                function = getattr(source, name)
                setattr(source, name, run_sync(function))

        elif name == "__aenter__" and not hasattr(source, "__enter__"):
            setattr(source, "__enter__", run_sync(method))  # noqa: B010

        elif name == "__aexit__" and not hasattr(source, "__exit__"):
            setattr(source, "__exit__", run_sync(method))  # noqa: B010

    return source
