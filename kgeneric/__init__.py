# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""
This module contains `kgeneric`, a typed generic client layer for Kubernetes style APIs.

One :class:`GenericClient` implementation serves every resource class: bind it to
``Pod`` and you get pods back. An in-memory fake, namespace and option wrappers and
an informer are built on the same surface.

At the top level, `kgeneric` provides a synchronous API that wraps the asynchronous API
provided by `kgeneric.asyncio`. Both APIs have the same classes, method names and return
values.
"""
from functools import partial

from . import asyncio, objects
from ._async_utils import Portal as _Portal
from ._async_utils import run_sync as _run_sync
from ._async_utils import sync as _sync
from ._binding import (
    ResourceMetadata,
    clear_cache,
    is_self_describing,
    resource_kind,
    resource_metadata,
)
from ._client import GenericClient as _AsyncGenericClient
from ._client import create_or_update as _create_or_update
from ._data_utils import dict_to_selector, match_selector, parse_selector
from ._decorators import Infallible as _AsyncInfallible
from ._decorators import NamespaceScoped as _AsyncNamespaceScoped
from ._decorators import OptionlessNamespaced as _AsyncOptionlessNamespaced
from ._exceptions import (
    AlreadyExistsError,
    APITimeoutError,
    ConflictError,
    FatalError,
    InvalidError,
    NotFoundError,
    ServerError,
    TransportError,
    UnregisteredTypeError,
    WatchTerminatedError,
    error_from_status,
    status_for,
)
from ._fake import Action, FakeWatch, ObjectTracker, object_reaction
from ._fake import FakeClient as _AsyncFakeClient
from ._fake import FakeClientset as _AsyncFakeClientset
from ._informer import ListWatch, Lister, NamespaceLister, Store
from ._informer import SyncInformer as Informer
from ._objects import APIObject
from ._options import (
    CreateOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    LogOptions,
    ObjectList,
    UpdateOptions,
)
from ._pluralize import pluralize
from ._scheme import GroupVersionKind, Scheme, default_scheme
from ._transport import HttpTransport
from ._types import RawWatch, Transport
from ._watch import EventType, WatchEvent
from ._watch import SyncWatcher as Watcher

try:
    from ._version import version as __version__  # noqa
    from ._version import version_tuple as __version_tuple__  # noqa
except ImportError:
    __version__ = "0.0.0"
    __version_tuple__ = (0, 0, 0)


class _SyncWatchMixin:
    def watch(self, *args, **kwargs) -> Watcher:
        """Open a watch and return a blocking :class:`Watcher`.

        Example:
            >>> with pods.watch("default") as watcher:
            ...     for pod in watcher:
            ...         print(pod.name)
        """
        return Watcher(_Portal().call(partial(self.async_watch, *args, **kwargs)))


@_sync
class GenericClient(_SyncWatchMixin, _AsyncGenericClient):
    __doc__ = _AsyncGenericClient.__doc__


@_sync
class FakeClient(_SyncWatchMixin, _AsyncFakeClient):
    __doc__ = _AsyncFakeClient.__doc__


class FakeClientset(_AsyncFakeClientset):
    __doc__ = _AsyncFakeClientset.__doc__

    def client(self, resource_cls):
        return FakeClient(resource_cls, self)


@_sync
class NamespaceScoped(_SyncWatchMixin, _AsyncNamespaceScoped):
    __doc__ = _AsyncNamespaceScoped.__doc__


@_sync
class OptionlessNamespaced(_SyncWatchMixin, _AsyncOptionlessNamespaced):
    __doc__ = _AsyncOptionlessNamespaced.__doc__


@_sync
class Infallible(_SyncWatchMixin, _AsyncInfallible):
    __doc__ = _AsyncInfallible.__doc__


def new_fake(resource_cls, *objects, scheme=None) -> FakeClient:
    """Create a fake client for ``resource_cls`` seeded with ``objects``.

    Example:
        >>> pods = new_fake(Pod, Pod({"metadata": {"name": "fake", "namespace": "fake"}}))
        >>> pods.get("fake", "fake")
        <Pod fake>
    """
    return FakeClientset(*objects, scheme=scheme).client(resource_cls)


def create_or_update(api, obj):
    """Create ``obj``, or update it if it already exists.

    Only :class:`AlreadyExistsError` leads to the update; every other error from
    the create is raised unchanged. The two requests are not atomic.
    """
    return _run_sync(_create_or_update)(api, obj)


__all__ = sorted(
    [
        "APIObject",
        "APITimeoutError",
        "Action",
        "AlreadyExistsError",
        "ConflictError",
        "CreateOptions",
        "DeleteOptions",
        "EventType",
        "FakeClient",
        "FakeClientset",
        "FakeWatch",
        "FatalError",
        "GenericClient",
        "GetOptions",
        "GroupVersionKind",
        "HttpTransport",
        "Infallible",
        "Informer",
        "InvalidError",
        "ListOptions",
        "ListWatch",
        "Lister",
        "LogOptions",
        "NamespaceLister",
        "NamespaceScoped",
        "NotFoundError",
        "ObjectList",
        "ObjectTracker",
        "OptionlessNamespaced",
        "RawWatch",
        "ResourceMetadata",
        "Scheme",
        "ServerError",
        "Store",
        "Transport",
        "TransportError",
        "UnregisteredTypeError",
        "UpdateOptions",
        "WatchEvent",
        "WatchTerminatedError",
        "Watcher",
        "asyncio",
        "clear_cache",
        "create_or_update",
        "default_scheme",
        "dict_to_selector",
        "error_from_status",
        "is_self_describing",
        "match_selector",
        "new_fake",
        "object_reaction",
        "objects",
        "parse_selector",
        "pluralize",
        "resource_kind",
        "resource_metadata",
        "status_for",
    ]
)
