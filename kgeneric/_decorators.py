# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""Wrappers that narrow a client's methods for simpler call sites.

Each wrapper only talks to the layer beneath it, so they stack::

    pods = Infallible(OptionlessNamespaced(NamespaceScoped(client, "default")))
    pod = await pods.get("web")
"""
from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from ._exceptions import FatalError
from ._options import (
    CreateOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    UpdateOptions,
)
from ._watch import Watcher

T = TypeVar("T")
logger = logging.getLogger(__name__)


class NamespaceScoped(Generic[T]):
    """Bind a client to one namespace.

    ``create`` and ``update`` put the namespace on objects that have none and
    refuse objects that name a different one. The object passed in is not modified.

    Args:
        api: A :class:`~kgeneric.asyncio.GenericClient` or :class:`~kgeneric.asyncio.FakeClient`.
        namespace: The namespace every call is made in.
    """

    _asyncio = True

    def __init__(self, api: Any, namespace: str) -> None:
        self._api = api
        self._namespace = namespace

    def __repr__(self):
        return f"<{type(self).__name__} {self._api!r} namespace={self._namespace!r}>"

    @property
    def api(self) -> Any:
        return self._api

    @property
    def namespace(self) -> str:
        return self._namespace

    def _scoped(self, obj: T) -> T:
        namespace = obj.namespace  # type: ignore[attr-defined]
        if namespace and namespace != self._namespace:
            raise ValueError(
                f"{obj!r} is in namespace {namespace!r}, "
                f"expected {self._namespace!r}"
            )
        if not namespace:
            obj = obj.deepcopy()  # type: ignore[attr-defined]
            obj.namespace = self._namespace  # type: ignore[attr-defined]
        return obj

    async def get(self, name: str, options: GetOptions | None = None) -> T:
        return await self.async_get(name, options)

    async def async_get(self, name: str, options: GetOptions | None = None) -> T:
        return await self._api.async_get(name, self._namespace, options)

    async def create(self, obj: T, options: CreateOptions | None = None) -> T:
        """Create ``obj`` in the bound namespace.

        Raises:
            ValueError: If ``obj`` names a different namespace.
        """
        return await self.async_create(obj, options)

    async def async_create(self, obj: T, options: CreateOptions | None = None) -> T:
        return await self._api.async_create(self._scoped(obj), options)

    async def update(self, obj: T, options: UpdateOptions | None = None) -> T:
        """Update ``obj`` in the bound namespace.

        Raises:
            ValueError: If ``obj`` names a different namespace.
        """
        return await self.async_update(obj, options)

    async def async_update(self, obj: T, options: UpdateOptions | None = None) -> T:
        return await self._api.async_update(self._scoped(obj), options)

    async def delete(self, name: str, options: DeleteOptions | None = None) -> None:
        return await self.async_delete(name, options)

    async def async_delete(self, name: str, options: DeleteOptions | None = None) -> None:
        return await self._api.async_delete(name, self._namespace, options)

    async def list(self, options: ListOptions | None = None) -> list[T]:
        return await self.async_list(options)

    async def async_list(self, options: ListOptions | None = None) -> list[T]:
        return await self._api.async_list(self._namespace, options)

    async def watch(self, options: ListOptions | None = None) -> Watcher[T]:
        return await self.async_watch(options)

    async def async_watch(self, options: ListOptions | None = None) -> Watcher[T]:
        return await self._api.async_watch(self._namespace, options)


class OptionlessNamespaced(Generic[T]):
    """Drop the options argument from a :class:`NamespaceScoped` client, using defaults."""

    _asyncio = True

    def __init__(self, api: Any) -> None:
        self._api = api

    def __repr__(self):
        return f"<{type(self).__name__} {self._api!r}>"

    @property
    def api(self) -> Any:
        return self._api

    async def get(self, name: str) -> T:
        return await self.async_get(name)

    async def async_get(self, name: str) -> T:
        return await self._api.async_get(name, GetOptions())

    async def create(self, obj: T) -> T:
        return await self.async_create(obj)

    async def async_create(self, obj: T) -> T:
        return await self._api.async_create(obj, CreateOptions())

    async def update(self, obj: T) -> T:
        return await self.async_update(obj)

    async def async_update(self, obj: T) -> T:
        return await self._api.async_update(obj, UpdateOptions())

    async def delete(self, name: str) -> None:
        return await self.async_delete(name)

    async def async_delete(self, name: str) -> None:
        return await self._api.async_delete(name, DeleteOptions())

    async def list(self) -> list[T]:
        return await self.async_list()

    async def async_list(self) -> list[T]:
        return await self._api.async_list(ListOptions())

    async def watch(self) -> Watcher[T]:
        return await self.async_watch()

    async def async_watch(self) -> Watcher[T]:
        return await self._api.async_watch(ListOptions())


class Infallible(Generic[T]):
    """Turn every error of the wrapped layer into :class:`~kgeneric.FatalError`.

    Arguments are passed through unchanged, so this wraps any layer. The fatal
    error carries the original message and chains the original error. Meant for
    tests and bootstrap code that cannot recover anyway.
    """

    _asyncio = True

    def __init__(self, api: Any) -> None:
        self._api = api

    def __repr__(self):
        return f"<{type(self).__name__} {self._api!r}>"

    @property
    def api(self) -> Any:
        return self._api

    async def _call(self, method: str, *args, **kwargs) -> Any:
        try:
            return await getattr(self._api, method)(*args, **kwargs)
        except FatalError:
            raise
        except Exception as e:
            logger.debug("%s failed: %r", method, e)
            raise FatalError(str(e)) from e

    async def get(self, *args, **kwargs) -> T:
        return await self.async_get(*args, **kwargs)

    async def async_get(self, *args, **kwargs) -> T:
        return await self._call("async_get", *args, **kwargs)

    async def create(self, *args, **kwargs) -> T:
        return await self.async_create(*args, **kwargs)

    async def async_create(self, *args, **kwargs) -> T:
        return await self._call("async_create", *args, **kwargs)

    async def update(self, *args, **kwargs) -> T:
        return await self.async_update(*args, **kwargs)

    async def async_update(self, *args, **kwargs) -> T:
        return await self._call("async_update", *args, **kwargs)

    async def delete(self, *args, **kwargs) -> None:
        return await self.async_delete(*args, **kwargs)

    async def async_delete(self, *args, **kwargs) -> None:
        return await self._call("async_delete", *args, **kwargs)

    async def list(self, *args, **kwargs) -> list[T]:
        return await self.async_list(*args, **kwargs)

    async def async_list(self, *args, **kwargs) -> list[T]:
        return await self._call("async_list", *args, **kwargs)

    async def watch(self, *args, **kwargs) -> Watcher[T]:
        return await self.async_watch(*args, **kwargs)

    async def async_watch(self, *args, **kwargs) -> Watcher[T]:
        return await self._call("async_watch", *args, **kwargs)
