# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from ._binding import resource_kind, resource_metadata
from ._exceptions import AlreadyExistsError, FatalError
from ._options import (
    CreateOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    LogOptions,
    ObjectList,
    UpdateOptions,
)
from ._scheme import Scheme
from ._types import RawWatch, Transport
from ._watch import Watcher

T = TypeVar("T")
logger = logging.getLogger(__name__)


class GenericClient(Generic[T]):
    """A client for one resource class.

    The class is resolved to its group, version and resource name when the
    client is created, so an unusable class fails here rather than on the
    first request.

    Args:
        resource_cls: The resource class, usually a subclass of :class:`~kgeneric.objects.APIObject`.
        transport: The :class:`~kgeneric.Transport` to issue requests with.
        scheme: Scheme used for classes that do not describe themselves.

    Raises:
        UnregisteredTypeError: If ``resource_cls`` cannot be resolved.

    Example:
        >>> pods = GenericClient(Pod, HttpTransport("http://localhost:8001"))
        >>> pod = await pods.get("nginx", "default")
    """

    _asyncio = True

    def __init__(
        self,
        resource_cls: type[T],
        transport: Transport,
        scheme: Scheme | None = None,
    ) -> None:
        self._resource_cls = resource_cls
        self._transport = transport
        self._metadata = resource_metadata(resource_cls, scheme)
        self._kind = resource_kind(resource_cls, scheme)

    def __repr__(self):
        return f"<{type(self).__name__}[{self._resource_cls.__name__}] {self._metadata}>"

    @property
    def resource_cls(self) -> type[T]:
        return self._resource_cls

    @property
    def metadata(self):
        """The :class:`~kgeneric.ResourceMetadata` this client is bound to."""
        return self._metadata

    @property
    def kind(self):
        return self._kind

    @property
    def transport(self) -> Transport:
        return self._transport

    def _target(self, namespace: str = "", name: str = "") -> dict[str, str]:
        return {
            "base": self._metadata.api_path,
            "resource": self._metadata.resource,
            "namespace": namespace or "",
            "name": name,
        }

    def _decode(self, data: Any) -> T:
        return self._resource_cls(data)  # type: ignore[call-arg]

    def _encode(self, obj: T) -> dict:
        body = obj.to_dict()  # type: ignore[attr-defined]
        body["apiVersion"] = self._kind.api_version
        body["kind"] = self._kind.kind
        return body

    async def get(
        self, name: str, namespace: str = "", options: GetOptions | None = None
    ) -> T:
        """Get an object by name.

        Raises:
            NotFoundError: If the object does not exist.
        """
        return await self.async_get(name, namespace, options)

    async def async_get(
        self, name: str, namespace: str = "", options: GetOptions | None = None
    ) -> T:
        options = options or GetOptions()
        data = await self._transport.request(
            "GET", **self._target(namespace, name), params=options.to_params()
        )
        return self._decode(data)

    async def create(self, obj: T, options: CreateOptions | None = None) -> T:
        """Create an object in its own namespace and return the server's copy.

        Raises:
            AlreadyExistsError: If an object with the same name exists.
            InvalidError: If the server rejects the object.
        """
        return await self.async_create(obj, options)

    async def async_create(self, obj: T, options: CreateOptions | None = None) -> T:
        options = options or CreateOptions()
        data = await self._transport.request(
            "POST",
            **self._target(obj.namespace),  # type: ignore[attr-defined]
            params=options.to_params(),
            body=self._encode(obj),
        )
        return self._decode(data)

    async def update(self, obj: T, options: UpdateOptions | None = None) -> T:
        """Replace an object and return the server's copy.

        Raises:
            NotFoundError: If the object does not exist.
            ConflictError: If the object's resource version is stale.
        """
        return await self.async_update(obj, options)

    async def async_update(self, obj: T, options: UpdateOptions | None = None) -> T:
        options = options or UpdateOptions()
        data = await self._transport.request(
            "PUT",
            **self._target(obj.namespace, obj.name),  # type: ignore[attr-defined]
            params=options.to_params(),
            body=self._encode(obj),
        )
        return self._decode(data)

    async def delete(
        self, name: str, namespace: str = "", options: DeleteOptions | None = None
    ) -> None:
        """Delete an object by name.

        Raises:
            NotFoundError: If the object does not exist.
        """
        return await self.async_delete(name, namespace, options)

    async def async_delete(
        self, name: str, namespace: str = "", options: DeleteOptions | None = None
    ) -> None:
        options = options or DeleteOptions()
        await self._transport.request(
            "DELETE", **self._target(namespace, name), params=options.to_params()
        )

    async def list(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> list[T]:
        """List objects in a namespace, or in all namespaces when ``namespace`` is empty.

        Items are returned in the order the server sent them.
        """
        return await self.async_list(namespace, options)

    async def async_list(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> list[T]:
        return (await self.async_list_objects(namespace, options)).items

    async def list_objects(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> ObjectList[T]:
        """List objects and keep the list's resource version and continue token."""
        return await self.async_list_objects(namespace, options)

    async def async_list_objects(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> ObjectList[T]:
        options = (options or ListOptions()).replace(watch=False)
        data = await self._transport.request(
            "GET",
            **self._target(namespace),
            params=options.to_params(),
            timeout=options.timeout,
        )
        metadata = data.get("metadata") or {}
        return ObjectList(
            items=[self._decode(item) for item in data.get("items") or []],
            resource_version=metadata.get("resourceVersion", ""),
            continue_=metadata.get("continue", ""),
        )

    async def watch(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> Watcher[T]:
        """Open a watch and return a :class:`~kgeneric.asyncio.Watcher` of ``T``.

        The watch runs until the server closes it or :meth:`Watcher.stop` is called.

        Example:
            >>> watcher = await pods.watch("default")
            >>> async with watcher:
            ...     async for pod in watcher:
            ...         print(pod.name)
        """
        return await self.async_watch(namespace, options)

    async def async_watch(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> Watcher[T]:
        raw = await self.async_watch_raw(namespace, options)
        return Watcher(raw, self._resource_cls, self._kind)

    async def async_watch_raw(
        self, namespace: str = "", options: ListOptions | None = None
    ) -> RawWatch:
        """Open a watch and return the untyped event stream, for callers that decode events themselves."""
        options = (options or ListOptions()).replace(watch=True)
        raw = await self._transport.watch(
            base=self._metadata.api_path,
            resource=self._metadata.resource,
            namespace=namespace or "",
            params=options.to_params(),
        )
        logger.debug("Watching %s in namespace %r", self._metadata, namespace)
        return raw

    async def must_list(self, namespace: str = "") -> list[T]:
        """List with default options, raising :class:`~kgeneric.FatalError` on any failure.

        Only for callers with no way to recover, such as tests and bootstrap code.
        """
        return await self.async_must_list(namespace)

    async def async_must_list(self, namespace: str = "") -> list[T]:
        try:
            return await self.async_list(namespace)
        except Exception as e:
            raise FatalError(str(e)) from e

    async def logs(
        self, name: str, namespace: str = "", options: LogOptions | None = None
    ) -> str:
        """Read the logs of an object, for resource classes that serve a ``log`` subresource.

        Raises:
            TypeError: If the bound class has no ``log`` subresource.
        """
        return await self.async_logs(name, namespace, options)

    async def async_logs(
        self, name: str, namespace: str = "", options: LogOptions | None = None
    ) -> str:
        if "log" not in getattr(self._resource_cls, "subresources", ()):
            raise TypeError(f"{self._kind.kind} does not have a log subresource")
        options = options or LogOptions()
        return await self._transport.request_text(
            "GET",
            **self._target(namespace, name),
            subresource="log",
            params=options.to_params(),
        )


async def create_or_update(api: Any, obj: T) -> T:
    """Create ``obj``, or update it if it already exists.

    Only :class:`~kgeneric.AlreadyExistsError` leads to the update; every other
    error from the create is raised unchanged. The two requests are not atomic.

    Works with any layer that offers ``create`` and ``update`` taking just the
    object, such as a client or a :class:`~kgeneric.asyncio.NamespaceScoped` wrapper.
    """
    try:
        return await api.async_create(obj)
    except AlreadyExistsError:
        logger.debug("%r already exists, updating", obj)
        return await api.async_update(obj)
