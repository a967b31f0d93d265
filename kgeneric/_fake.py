# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""An in-memory stand-in for the API server, for unit tests.

:class:`ObjectTracker` stores objects and fans out watch events.
:class:`Fake` routes every call through a chain of reactors, the default one
delegating to the tracker, so tests can inject failures or canned responses.
:class:`FakeClient` offers the same methods as :class:`~kgeneric.asyncio.GenericClient`.
"""
from __future__ import annotations

import copy
import dataclasses
import itertools
import logging
import threading
import uuid
from typing import Any, Callable, Generic, Iterable, NamedTuple, TypeVar

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ._binding import ResourceMetadata, resource_kind, resource_metadata
from ._data_utils import match_selector, parse_field_selector
from ._exceptions import FatalError, error_from_status, status_for
from ._options import (
    CreateOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    ObjectList,
    UpdateOptions,
)
from ._scheme import GroupVersionKind, Scheme
from ._types import RawWatch
from ._watch import EventType, WatchEvent, Watcher

T = TypeVar("T")
logger = logging.getLogger(__name__)

VERBS = frozenset({"get", "list", "create", "update", "delete"})
WATCH_BUFFER_SIZE = 100
FIELD_SELECTORS = frozenset({"metadata.name", "metadata.namespace"})


@dataclasses.dataclass(frozen=True)
class Action:
    """A recorded call against the fake."""

    verb: str
    resource: ResourceMetadata
    namespace: str = ""
    name: str = ""
    object: Any = None
    options: Any = None

    def matches(self, verb: str, resource: str) -> bool:
        return verb in ("*", self.verb) and resource in ("*", self.resource.resource)


Reaction = Callable[[Action], "tuple[bool, Any]"]


class _Reactor(NamedTuple):
    verb: str
    resource: str
    reaction: Reaction


def _not_found(resource: ResourceMetadata, name: str) -> Exception:
    return error_from_status(
        status_for(
            "NotFound",
            404,
            f'{resource.resource} "{name}" not found',
            name=name,
            group=resource.group,
            kind=resource.resource,
        )
    )


class FakeWatch:
    """A tracker subscription, a :class:`~kgeneric.RawWatch` of the tracker's events."""

    def __init__(
        self,
        tracker: ObjectTracker,
        resource: ResourceMetadata,
        namespace: str = "",
        max_buffer_size: int = WATCH_BUFFER_SIZE,
    ) -> None:
        self.resource = resource
        self.namespace = namespace
        self._tracker = tracker
        self._send: MemoryObjectSendStream[WatchEvent]
        self._receive: MemoryObjectReceiveStream[WatchEvent]
        self._send, self._receive = anyio.create_memory_object_stream(max_buffer_size)
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def deliver(self, event: WatchEvent) -> bool:
        """Queue an event. Returns ``False`` once the subscription is closed."""
        try:
            self._send.send_nowait(event)
        except anyio.WouldBlock:
            # The consumer fell too far behind, end the watch so it lists again.
            logger.debug("Watch buffer full for %s, closing the watch", self.resource)
            self._close()
            return False
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            self._close()
            return False
        return True

    def _close(self) -> None:
        self._stopped = True
        self._send.close()

    def __aiter__(self):
        return self._receive.__aiter__()

    async def stop(self) -> None:
        """Unsubscribe and close both ends. Events still buffered are dropped."""
        if not self._stopped:
            self._tracker.unsubscribe(self)
            self._close()
        self._receive.close()


class ObjectTracker:
    """In-memory object storage with watch fan-out.

    Objects are keyed by resource, namespace and name. Every create stamps a new
    ``metadata.resourceVersion`` from a single counter and a ``metadata.uid``;
    every update stamps a new resource version, and an update carrying a stale
    non-empty resource version is rejected with a conflict.

    Args:
        *objects: Objects to seed the tracker with.
        scheme: Scheme used to resolve classes that do not describe themselves.
    """

    def __init__(self, *objects: Any, scheme: Scheme | None = None) -> None:
        self._scheme = scheme
        self._objects: dict[ResourceMetadata, dict[tuple[str, str], Any]] = {}
        self._watches: dict[tuple[ResourceMetadata, str], list[FakeWatch]] = {}
        self._lock = threading.RLock()
        self._counter = itertools.count(1)
        self._resource_version = "0"
        for obj in objects:
            self.add(obj)

    @property
    def resource_version(self) -> str:
        """The resource version of the last write."""
        return self._resource_version

    def _next_resource_version(self) -> str:
        self._resource_version = str(next(self._counter))
        return self._resource_version

    def add(self, obj: Any) -> Any:
        """Store an object, resolving its resource from its class."""
        resource = resource_metadata(type(obj), self._scheme)
        return self.create(resource, obj, obj.namespace or "")

    def get(self, resource: ResourceMetadata, namespace: str, name: str) -> Any:
        with self._lock:
            try:
                obj = self._objects.get(resource, {})[(namespace, name)]
            except KeyError:
                raise _not_found(resource, name) from None
            return copy.deepcopy(obj)

    def list(self, resource: ResourceMetadata, namespace: str = "") -> ObjectList:
        """List objects of a resource, across all namespaces when ``namespace`` is empty."""
        with self._lock:
            items = [
                copy.deepcopy(obj)
                for (ns, _), obj in self._objects.get(resource, {}).items()
                if not namespace or ns == namespace
            ]
            return ObjectList(items=items, resource_version=self._resource_version)

    def _prepare(self, obj: Any, namespace: str) -> Any:
        obj = copy.deepcopy(obj)
        if namespace and not obj.namespace:
            obj.namespace = namespace
        elif namespace and obj.namespace != namespace:
            raise error_from_status(
                status_for(
                    "BadRequest",
                    400,
                    "the namespace of the provided object does not match "
                    "the namespace sent on the request",
                )
            )
        if "name" not in obj.metadata or not obj.metadata["name"]:
            raise error_from_status(
                status_for("Invalid", 422, "metadata.name: Required value")
            )
        return obj

    def create(self, resource: ResourceMetadata, obj: Any, namespace: str = "") -> Any:
        with self._lock:
            obj = self._prepare(obj, namespace)
            key = (obj.namespace or "", obj.name)
            objects = self._objects.setdefault(resource, {})
            if key in objects:
                raise error_from_status(
                    status_for(
                        "AlreadyExists",
                        409,
                        f'{resource.resource} "{obj.name}" already exists',
                        name=obj.name,
                        group=resource.group,
                        kind=resource.resource,
                    )
                )
            obj.metadata["uid"] = obj.metadata.get("uid") or str(uuid.uuid4())
            obj.resource_version = self._next_resource_version()
            objects[key] = obj
            self._notify(resource, key[0], WatchEvent(EventType.ADDED, obj))
            return copy.deepcopy(obj)

    def update(self, resource: ResourceMetadata, obj: Any, namespace: str = "") -> Any:
        with self._lock:
            obj = self._prepare(obj, namespace)
            key = (obj.namespace or "", obj.name)
            objects = self._objects.get(resource, {})
            if key not in objects:
                raise _not_found(resource, obj.name)
            current = objects[key]
            if obj.resource_version and obj.resource_version != current.resource_version:
                raise error_from_status(
                    status_for(
                        "Conflict",
                        409,
                        f'Operation cannot be fulfilled on {resource.resource} "{obj.name}": '
                        "the object has been modified; please apply your changes "
                        "to the latest version and try again",
                        name=obj.name,
                        group=resource.group,
                        kind=resource.resource,
                    )
                )
            if "uid" in current.metadata:
                obj.metadata["uid"] = current.metadata["uid"]
            obj.resource_version = self._next_resource_version()
            objects[key] = obj
            self._notify(resource, key[0], WatchEvent(EventType.MODIFIED, obj))
            return copy.deepcopy(obj)

    def delete(self, resource: ResourceMetadata, namespace: str, name: str) -> None:
        with self._lock:
            objects = self._objects.get(resource, {})
            try:
                obj = objects.pop((namespace, name))
            except KeyError:
                raise _not_found(resource, name) from None
            obj.resource_version = self._next_resource_version()
            self._notify(resource, namespace, WatchEvent(EventType.DELETED, obj))

    def watch(self, resource: ResourceMetadata, namespace: str = "") -> FakeWatch:
        """Subscribe to changes of a resource in a namespace, or in all namespaces."""
        with self._lock:
            watch = FakeWatch(self, resource, namespace)
            self._watches.setdefault((resource, namespace), []).append(watch)
            return watch

    def unsubscribe(self, watch: FakeWatch) -> None:
        with self._lock:
            watches = self._watches.get((watch.resource, watch.namespace), [])
            if watch in watches:
                watches.remove(watch)

    def _notify(self, resource: ResourceMetadata, namespace: str, event: WatchEvent) -> None:
        keys = [(resource, namespace)]
        if namespace:
            keys.append((resource, ""))
        for key in keys:
            watches = self._watches.get(key, [])
            for watch in list(watches):
                event_copy = WatchEvent(event.type, copy.deepcopy(event.object))
                if not watch.deliver(event_copy):
                    watches.remove(watch)


def object_reaction(tracker: ObjectTracker) -> Reaction:
    """Build a reaction that serves every verb from ``tracker``."""

    def react(action: Action) -> tuple[bool, Any]:
        if action.verb == "get":
            return True, tracker.get(action.resource, action.namespace, action.name)
        if action.verb == "list":
            return True, tracker.list(action.resource, action.namespace)
        if action.verb == "create":
            return True, tracker.create(action.resource, action.object, action.namespace)
        if action.verb == "update":
            return True, tracker.update(action.resource, action.object, action.namespace)
        if action.verb == "delete":
            tracker.delete(action.resource, action.namespace, action.name)
            return True, None
        return False, None

    return react


def _check_verb(verb: str) -> None:
    if verb != "*" and verb not in VERBS:
        raise ValueError(
            f"Unknown verb {verb!r}, expected '*' or one of {', '.join(sorted(VERBS))}. "
            "Use add_watch_reactor() for watches."
        )


class Fake:
    """A chain of reactors that every fake call is routed through.

    Reactors are tried in order. A reaction returns ``(handled, result)`` or
    raises; the first one that handles an action decides its outcome. Every
    action is recorded, see :meth:`actions`.

    Example:
        >>> def deny(action):
        ...     raise error_from_status(status_for("Forbidden", 403, "no"))
        >>> clientset.prepend_reactor("create", "pods", deny)
    """

    def __init__(self) -> None:
        self._reactors: list[_Reactor] = []
        self._watch_reactors: list[_Reactor] = []
        self._actions: list[Action] = []
        self._lock = threading.RLock()

    def add_reactor(self, verb: str, resource: str, reaction: Reaction) -> None:
        """Append a reactor to the chain.

        Raises:
            ValueError: If ``verb`` is not a known verb or ``"*"``.
        """
        _check_verb(verb)
        with self._lock:
            self._reactors.append(_Reactor(verb, resource, reaction))

    def prepend_reactor(self, verb: str, resource: str, reaction: Reaction) -> None:
        """Insert a reactor at the front of the chain."""
        _check_verb(verb)
        with self._lock:
            self._reactors.insert(0, _Reactor(verb, resource, reaction))

    def add_watch_reactor(self, resource: str, reaction: Reaction) -> None:
        with self._lock:
            self._watch_reactors.append(_Reactor("watch", resource, reaction))

    def prepend_watch_reactor(self, resource: str, reaction: Reaction) -> None:
        with self._lock:
            self._watch_reactors.insert(0, _Reactor("watch", resource, reaction))

    def actions(self) -> list[Action]:
        """Actions invoked so far, oldest first."""
        with self._lock:
            return list(self._actions)

    def clear_actions(self) -> None:
        with self._lock:
            self._actions.clear()

    def _run_chain(self, reactors: Iterable[_Reactor], action: Action) -> Any:
        for reactor in reactors:
            if not action.matches(reactor.verb, reactor.resource):
                continue
            handled, result = reactor.reaction(action)
            if handled:
                return result
        raise NotImplementedError(
            f"No reactor handled {action.verb} on {action.resource}"
        )

    def invokes(self, action: Action) -> Any:
        """Record an action and return what the first handling reactor returned."""
        with self._lock:
            self._actions.append(action)
            return self._run_chain(list(self._reactors), action)

    def invokes_watch(self, action: Action) -> RawWatch:
        with self._lock:
            self._actions.append(action)
            return self._run_chain(list(self._watch_reactors), action)


class FakeClientset(Fake):
    """A tracker seeded with ``objects`` plus a reactor chain serving it.

    Hands out a typed :class:`FakeClient` per resource class, all sharing the
    same tracker and chain.

    Example:
        >>> clientset = FakeClientset(Pod({"metadata": {"name": "web", "namespace": "default"}}))
        >>> pods = clientset.client(Pod)
        >>> await pods.get("web", "default")
        <Pod web>
    """

    def __init__(self, *objects: Any, scheme: Scheme | None = None) -> None:
        super().__init__()
        self.scheme = scheme
        self.tracker = ObjectTracker(*objects, scheme=scheme)
        self.add_reactor("*", "*", object_reaction(self.tracker))
        self.add_watch_reactor("*", self._watch_reaction)

    def _watch_reaction(self, action: Action) -> tuple[bool, Any]:
        return True, self.tracker.watch(action.resource, action.namespace)

    def client(self, resource_cls: type[T]) -> FakeClient[T]:
        return FakeClient(resource_cls, self)


def _field_selector(selector: str | dict | None) -> dict[str, str]:
    try:
        fields = parse_field_selector(selector)
    except ValueError as e:
        raise error_from_status(status_for("BadRequest", 400, str(e))) from None
    for field in fields:
        if field not in FIELD_SELECTORS:
            raise error_from_status(
                status_for(
                    "BadRequest",
                    400,
                    f'field label not supported: "{field}"',
                )
            )
    return fields


class FakeClient(Generic[T]):
    """A :class:`~kgeneric.asyncio.GenericClient` look-alike backed by a :class:`FakeClientset`.

    List applies label selectors and ``metadata.name``/``metadata.namespace``
    field selectors from :class:`~kgeneric.ListOptions`; any other field is
    rejected with a ``BadRequest`` :class:`~kgeneric.ServerError`. Watches are not filtered.
    """

    _asyncio = True

    def __init__(self, resource_cls: type[T], clientset: FakeClientset) -> None:
        self._resource_cls = resource_cls
        self._clientset = clientset
        self._metadata = resource_metadata(resource_cls, clientset.scheme)
        self._kind: GroupVersionKind = resource_kind(resource_cls, clientset.scheme)

    def __repr__(self):
        return f"<{type(self).__name__}[{self._resource_cls.__name__}] {self._metadata}>"

    @property
    def resource_cls(self) -> type[T]:
        return self._resource_cls

    @property
    def metadata(self) -> ResourceMetadata:
        return self._metadata

    @property
    def kind(self) -> GroupVersionKind:
        return self._kind

    @property
    def tracker(self) -> ObjectTracker:
        return self._clientset.tracker

    def to_clientset(self) -> FakeClientset:
        """The clientset holding the tracker and reactor chain behind this client."""
        return self._clientset

    def _action(self, verb: str, **kwargs) -> Action:
        return Action(verb, self._metadata, **kwargs)

    async def get(
        self, name: str, namespace: str = "", options: GetOptions | None = None
    ) -> T:
        return await self.async_get(name, namespace, options)

    async def async_get(
        self, name: str, namespace: str = "", options: GetOptions | None = None
    ) -> T:
        return self._clientset.invokes(
            self._action("get", namespace=namespace or "", name=name, options=options)
        )

    async def create(self, obj: T, options: CreateOptions | None = None) -> T:
        return await self.async_create(obj, options)

    async def async_create(self, obj: T, options: CreateOptions | None = None) -> T:
        return self._clientset.invokes(
            self._action(
                "create",
                namespace=obj.namespace or "",  # type: ignore[attr-defined]
                object=obj,
                options=options,
            )
        )

    async def update(self, obj: T, options: UpdateOptions | None = None) -> T:
        return await self.async_update(obj, options)

    async def async_update(self, obj: T, options: UpdateOptions | None = None) -> T:
        return self._clientset.invokes(
            self._action(
                "update",
                namespace=obj.namespace or "",  # type: ignore[attr-defined]
                name=obj.name,  # type: ignore[attr-defined]
                object=obj,
                options=options,
            )
        )

    async def delete(
        self, name: str, namespace: str = "", options: DeleteOptions | None = None
    ) -> None:
        return await self.async_delete(name, namespace, options)

    async def async_delete(
        self, name: str, namespace: str = "", options: DeleteOptions | None = None
    ) -> None:
        self._clientset.invokes(
            self._action("delete", namespace=namespace or "", name=name, options=options)
        )

    async def list(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> list[T]:
        return await self.async_list(namespace, options)

    async def async_list(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> list[T]:
        return (await self.async_list_objects(namespace, options)).items

    async def list_objects(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> ObjectList[T]:
        return await self.async_list_objects(namespace, options)

    async def async_list_objects(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> ObjectList[T]:
        options = options or ListOptions()
        fields = _field_selector(options.field_selector)
        result = self._clientset.invokes(
            self._action("list", namespace=namespace or "", options=options)
        )
        items = [
            obj
            for obj in result
            if match_selector(options.label_selector, obj.labels)
            and obj.name == fields.get("metadata.name", obj.name)
            and (obj.namespace or "") == fields.get("metadata.namespace", obj.namespace or "")
        ]
        return ObjectList(
            items=items,
            resource_version=getattr(result, "resource_version", ""),
            continue_=getattr(result, "continue_", ""),
        )

    async def watch(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> Watcher[T]:
        return await self.async_watch(namespace, options)

    async def async_watch(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> Watcher[T]:
        raw = await self.async_watch_raw(namespace, options)
        return Watcher(raw, self._resource_cls, self._kind)

    async def async_watch_raw(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> RawWatch:
        options = (options or ListOptions()).replace(watch=True)
        return self._clientset.invokes_watch(
            self._action("watch", namespace=namespace or "", options=options)
        )

    async def must_list(self, namespace: str = "") -> list[T]:
        return await self.async_must_list(namespace)

    async def async_must_list(self, namespace: str = "") -> list[T]:
        try:
            return await self.async_list(namespace)
        except Exception as e:
            raise FatalError(str(e)) from e


def new_fake(resource_cls: type[T], *objects: T, scheme: Scheme | None = None) -> FakeClient[T]:
    """Create a fake client for ``resource_cls`` seeded with ``objects``.

    Example:
        >>> pods = new_fake(Pod, Pod({"metadata": {"name": "fake", "namespace": "fake"}}))
        >>> [p.name for p in await pods.list("fake")]
        ['fake']
    """
    return FakeClientset(*objects, scheme=scheme).client(resource_cls)
