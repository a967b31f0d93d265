# SPDX-FileCopyrightText: Copyright (c) 2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
from __future__ import annotations

from os import PathLike
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Iterable,
    Protocol,
    TypeVar,
    Union,
    runtime_checkable,
)

_KT = TypeVar("_KT")
_VT_co = TypeVar("_VT_co", covariant=True)
PathType = Union[str, "PathLike[str]"]

if TYPE_CHECKING:
    from ._watch import WatchEvent


@runtime_checkable
class SupportsKeysAndGetItem(Protocol[_KT, _VT_co]):
    """Copied from _typeshed.SupportsKeysAndGetItem to avoid importing it and make runtime checkable."""

    def keys(self) -> Iterable[_KT]: ...
    def __getitem__(self, key: _KT, /) -> _VT_co: ...


class SupportsToDict(Protocol):
    """An object that can be converted to a dictionary."""

    def to_dict(self) -> dict: ...


# Type that can be converted to a Kubernetes spec.
SpecType = Union[dict, str, SupportsKeysAndGetItem, SupportsToDict]


@runtime_checkable
class RawWatch(Protocol):
    """An untyped stream of watch events.

    Produced by a :class:`Transport` or by the fake tracker and consumed by
    :class:`kgeneric.asyncio.Watcher`.
    """

    def __aiter__(self) -> AsyncIterator[WatchEvent]: ...

    async def stop(self) -> None:
        """Tell the producer to stop sending. Safe to call more than once."""
        ...


@runtime_checkable
class Transport(Protocol):
    """Issues requests against a computed resource path.

    ``base`` is the absolute API path of a group version (``/api/v1`` or
    ``/apis/apps/v1``); the transport appends the namespace, resource, name and
    subresource segments.
    """

    async def request(
        self,
        method: str,
        *,
        base: str,
        resource: str,
        namespace: str = "",
        name: str = "",
        subresource: str = "",
        params: dict | None = None,
        body: Any = None,
        timeout: float | None = None,
    ) -> dict: ...

    async def request_text(
        self,
        method: str,
        *,
        base: str,
        resource: str,
        namespace: str = "",
        name: str = "",
        subresource: str = "",
        params: dict | None = None,
        timeout: float | None = None,
    ) -> str: ...

    async def watch(
        self,
        *,
        base: str,
        resource: str,
        namespace: str = "",
        params: dict | None = None,
    ) -> RawWatch: ...
