# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""Keep a local cache of a resource collection with list and watch.

An :class:`Informer` lists the collection into a :class:`Store`, then watches
from the list's resource version and applies each event. When the watch ends
it lists again. Nothing runs until the informer is started, and it runs until
it is stopped.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Awaitable, Callable, Generic, TypeVar

import anyio
from anyio.abc import TaskGroup

from ._async_utils import Portal
from ._data_utils import match_selector
from ._exceptions import WatchTerminatedError, error_from_status, status_for
from ._options import ListOptions, ObjectList
from ._scheme import GroupVersionKind
from ._types import RawWatch
from ._watch import EventType, narrow

T = TypeVar("T")
logger = logging.getLogger(__name__)

ListFunc = Callable[[ListOptions], Awaitable[ObjectList]]
WatchFunc = Callable[[ListOptions], Awaitable[RawWatch]]


def object_key(obj: Any) -> str:
    """``namespace/name``, or ``name`` for cluster-scoped objects."""
    if obj.namespace:
        return f"{obj.namespace}/{obj.name}"
    return obj.name


class ListWatch(Generic[T]):
    """The list and watch functions an :class:`Informer` runs on."""

    def __init__(
        self,
        list_func: ListFunc,
        watch_func: WatchFunc,
        resource_cls: type[T],
        kind: GroupVersionKind | None = None,
        resource: str = "",
    ) -> None:
        self.list_func = list_func
        self.watch_func = watch_func
        self.resource_cls = resource_cls
        self.kind = kind
        self.resource = resource

    @classmethod
    def from_client(cls, api: Any, namespace: str = "") -> ListWatch[T]:
        """Build list and watch functions from a client or a fake client.

        An empty ``namespace`` covers all namespaces.
        """

        async def list_func(options: ListOptions) -> ObjectList:
            return await api.async_list_objects(namespace, options)

        async def watch_func(options: ListOptions) -> RawWatch:
            return await api.async_watch_raw(namespace, options)

        return cls(
            list_func,
            watch_func,
            api.resource_cls,
            api.kind,
            resource=api.metadata.resource,
        )


class Store(Generic[T]):
    """A thread-safe map of object keys to the latest copy of each object."""

    def __init__(self, key_func: Callable[[Any], str] = object_key) -> None:
        self._key_func = key_func
        self._items: dict[str, T] = {}
        self._lock = threading.Lock()

    def add(self, obj: T) -> None:
        with self._lock:
            self._items[self._key_func(obj)] = obj

    update = add

    def delete(self, obj: T) -> None:
        with self._lock:
            self._items.pop(self._key_func(obj), None)

    def replace(self, items: list[T]) -> None:
        """Swap the whole contents for ``items``."""
        new_items = {self._key_func(obj): obj for obj in items}
        with self._lock:
            self._items = new_items

    def get_by_key(self, key: str) -> T | None:
        with self._lock:
            return self._items.get(key)

    def list(self) -> list[T]:
        with self._lock:
            return list(self._items.values())

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class Reflector(Generic[T]):
    """Mirror a collection into a :class:`Store`.

    :meth:`run` lists, replaces the store, watches from the list's resource
    version and applies events until the watch ends, then starts over. It runs
    until cancelled; list and watch errors propagate. There is no resync period
    and no backoff.
    """

    def __init__(
        self,
        list_watch: ListWatch[T],
        store: Store[T],
        options: ListOptions | None = None,
        on_synced: Callable[[], None] | None = None,
    ) -> None:
        self._list_watch = list_watch
        self._store = store
        self._options = options or ListOptions()
        self._on_synced = on_synced
        self.last_sync_resource_version = ""

    async def list_and_replace(self) -> str:
        """List every page of the collection and swap it into the store.

        Returns:
            The resource version of the list, where the watch resumes.
        """
        options = self._options.replace(watch=False, continue_=None)
        items: list[T] = []
        while True:
            result = await self._list_watch.list_func(options)
            items.extend(result.items)
            if not result.continue_:
                break
            options = options.replace(continue_=result.continue_)
        self._store.replace(items)
        self.last_sync_resource_version = result.resource_version
        logger.debug(
            "Listed %d %s at resource version %r",
            len(items),
            self._list_watch.resource or self._list_watch.resource_cls.__name__,
            result.resource_version,
        )
        if self._on_synced is not None:
            self._on_synced()
        return result.resource_version

    def _apply(self, event: Any) -> bool:
        """Apply one raw event to the store. Returns ``False`` when the watch must be restarted."""
        if event.type == EventType.ERROR:
            logger.debug("Watch returned an error event: %r", event.object)
            return False
        if event.type == EventType.BOOKMARK:
            version = (event.object.get("metadata") or {}).get("resourceVersion")
            if version:
                self.last_sync_resource_version = version
            return True
        obj = narrow(event.object, self._list_watch.resource_cls, self._list_watch.kind)
        if obj is None:
            raise WatchTerminatedError(
                f"Watch event payload is not a {self._list_watch.resource_cls.__name__}",
                event_type=getattr(event.type, "value", event.type),
                payload=event.object,
            )
        if event.type == EventType.DELETED:
            self._store.delete(obj)
        else:
            self._store.update(obj)
        if obj.resource_version:  # type: ignore[attr-defined]
            self.last_sync_resource_version = obj.resource_version  # type: ignore[attr-defined]
        return True

    async def watch_and_apply(self, resource_version: str) -> None:
        options = self._options.replace(
            watch=True,
            resource_version=resource_version or None,
            limit=None,
            continue_=None,
        )
        raw = await self._list_watch.watch_func(options)
        try:
            async for event in raw:
                if not self._apply(event):
                    break
        finally:
            with anyio.CancelScope(shield=True):
                await raw.stop()

    async def run(self) -> None:
        while True:
            resource_version = await self.list_and_replace()
            await self.watch_and_apply(resource_version)
            logger.debug("Watch ended, listing again")


class Lister(Generic[T]):
    """Read objects from an informer's store."""

    def __init__(self, store: Store[T], resource: str = "") -> None:
        self._store = store
        self._resource = resource

    def _not_found(self, name: str) -> Exception:
        message = f'{self._resource} "{name}" not found' if self._resource else f'"{name}" not found'
        return error_from_status(status_for("NotFound", 404, message, name=name))

    def list(self, selector: str | dict | None = None) -> list[T]:
        """Objects matching a label selector, all of them when ``selector`` is empty."""
        return [
            obj
            for obj in self._store.list()
            if match_selector(selector, obj.labels)  # type: ignore[attr-defined]
        ]

    def get(self, name: str) -> T:
        """Get a cluster-scoped object by name.

        Raises:
            NotFoundError: If the store holds no such object.
        """
        obj = self._store.get_by_key(name)
        if obj is None:
            raise self._not_found(name)
        return obj

    def by_namespace(self, namespace: str) -> NamespaceLister[T]:
        return NamespaceLister(self._store, namespace, self._resource)


class NamespaceLister(Generic[T]):
    """A :class:`Lister` limited to one namespace."""

    def __init__(self, store: Store[T], namespace: str, resource: str = "") -> None:
        self._store = store
        self._namespace = namespace
        self._resource = resource

    @property
    def namespace(self) -> str:
        return self._namespace

    def list(self, selector: str | dict | None = None) -> list[T]:
        return [
            obj
            for obj in self._store.list()
            if (obj.namespace or "") == self._namespace  # type: ignore[attr-defined]
            and match_selector(selector, obj.labels)  # type: ignore[attr-defined]
        ]

    def get(self, name: str) -> T:
        obj = self._store.get_by_key(f"{self._namespace}/{name}")
        if obj is None:
            raise Lister(self._store, self._resource)._not_found(name)
        return obj


class Informer(Generic[T]):
    """A store of a collection kept up to date by a :class:`Reflector`.

    Creating an informer does nothing. Start it with ``async with informer:``
    or :meth:`start`, and end it with :meth:`stop`.

    If listing or watching fails the informer stops and the error is kept in
    ``error``.

    Example:
        >>> informer = Informer.from_client(pods, "kube-system")
        >>> async with informer:
        ...     await informer.wait_for_sync()
        ...     names = [p.name for p in informer.lister().list()]
    """

    def __init__(self, list_watch: ListWatch[T], options: ListOptions | None = None) -> None:
        self._list_watch = list_watch
        self._store: Store[T] = Store()
        self._reflector = Reflector(list_watch, self._store, options, self._mark_synced)
        self._synced = False
        self._running = False
        self._stopped = False
        self._scope: anyio.CancelScope | None = None
        self._task_group: TaskGroup | None = None
        self._ready: anyio.Event | None = None
        self._done: anyio.Event | None = None
        self.error: Exception | None = None

    @classmethod
    def from_client(
        cls, api: Any, namespace: str = "", options: ListOptions | None = None
    ) -> Informer[T]:
        return cls(ListWatch.from_client(api, namespace), options)

    @property
    def store(self) -> Store[T]:
        return self._store

    def lister(self) -> Lister[T]:
        return Lister(self._store, self._list_watch.resource)

    def has_synced(self) -> bool:
        """Whether the first full list has been stored."""
        return self._synced

    @property
    def running(self) -> bool:
        return self._running

    def _events(self) -> tuple[anyio.Event, anyio.Event]:
        if self._ready is None:
            self._ready = anyio.Event()
        if self._done is None:
            self._done = anyio.Event()
        return self._ready, self._done

    def _mark_synced(self) -> None:
        self._synced = True
        ready, _ = self._events()
        ready.set()

    async def run(self) -> None:
        """Run the reflector until :meth:`stop` is called or it fails."""
        if self._running:
            raise RuntimeError("Informer is already running")
        ready, done = self._events()
        self._running = True
        try:
            with anyio.CancelScope() as scope:
                self._scope = scope
                if self._stopped:
                    return
                try:
                    await self._reflector.run()
                except Exception as e:
                    self.error = e
                    logger.debug("Informer stopped after an error: %r", e)
        finally:
            self._running = False
            ready.set()
            done.set()

    def start(self, task_group: TaskGroup) -> None:
        task_group.start_soon(self.run, name="informer")

    async def stop(self) -> None:
        """Stop the reflector. Idempotent."""
        self._stopped = True
        if self._scope is not None:
            self._scope.cancel()

    async def wait_for_sync(self) -> bool:
        """Wait for the first full list, or for the informer to end.

        Returns:
            Whether the store has synced.
        """
        ready, _ = self._events()
        await ready.wait()
        return self._synced

    async def wait(self) -> None:
        """Wait for the informer to finish running."""
        _, done = self._events()
        await done.wait()

    async def __aenter__(self) -> Informer[T]:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        self.start(self._task_group)
        return self

    async def __aexit__(self, *exc_info) -> bool | None:
        await self.stop()
        assert self._task_group
        try:
            return await self._task_group.__aexit__(*exc_info)
        finally:
            self._task_group = None


class SyncInformer(Generic[T]):
    """Blocking view of an :class:`Informer`, run on the background event loop.

    Example:
        >>> with SyncInformer.from_client(pods, "kube-system") as informer:
        ...     informer.wait_for_sync()
        ...     names = [p.name for p in informer.lister().list()]
    """

    def __init__(self, informer: Informer[T]) -> None:
        self._informer = informer
        self._portal = Portal()
        self._future = None

    @classmethod
    def from_client(
        cls, api: Any, namespace: str = "", options: ListOptions | None = None
    ) -> SyncInformer[T]:
        return cls(Informer.from_client(api, namespace, options))

    @property
    def informer(self) -> Informer[T]:
        return self._informer

    @property
    def error(self) -> Exception | None:
        return self._informer.error

    @property
    def store(self) -> Store[T]:
        return self._informer.store

    def lister(self) -> Lister[T]:
        return self._informer.lister()

    def has_synced(self) -> bool:
        return self._informer.has_synced()

    def start(self) -> None:
        if self._future is None:
            self._future = self._portal.start_task_soon(self._informer.run)

    def stop(self) -> None:
        """Stop the informer and wait for it to finish. Idempotent."""
        self._portal.call(self._informer.stop)
        if self._future is not None:
            self._future.result()

    def wait_for_sync(self) -> bool:
        return self._portal.call(self._informer.wait_for_sync)

    def __enter__(self) -> SyncInformer[T]:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
