# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""Resolve a resource class to the group, version and resource name it is served under."""
from __future__ import annotations

import threading
from typing import NamedTuple

from cachetools import LRUCache, cached  # type: ignore

from ._pluralize import pluralize
from ._scheme import GroupVersionKind, Scheme, default_scheme, split_group_version


class ResourceMetadata(NamedTuple):
    group: str
    version: str
    resource: str

    @property
    def group_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def api_path(self) -> str:
        """Absolute path of the group version, ``/api/v1`` or ``/apis/<group>/<version>``."""
        if not self.group:
            return f"/api/{self.version}"
        return f"/apis/{self.group}/{self.version}"

    def with_kind(self, kind: str) -> GroupVersionKind:
        return GroupVersionKind(self.group, self.version, kind)

    def __str__(self) -> str:
        if not self.group:
            return f"{self.resource}.{self.version}"
        return f"{self.resource}.{self.version}.{self.group}"


class _Binding(NamedTuple):
    metadata: ResourceMetadata
    kind: GroupVersionKind


_cache: LRUCache = LRUCache(maxsize=512)
_lock = threading.Lock()


def is_self_describing(cls: type) -> bool:
    """Whether a class reports its own group version and resource name."""
    return bool(getattr(cls, "version", None)) and bool(getattr(cls, "plural", None))


@cached(_cache, lock=_lock)
def _resolve(cls: type, scheme: Scheme) -> _Binding:
    if is_self_describing(cls):
        group, version = split_group_version(cls.version)  # type: ignore[attr-defined]
        kind = getattr(cls, "kind", None) or cls.__name__
        return _Binding(
            ResourceMetadata(group, version, cls.plural.lower()),  # type: ignore[attr-defined]
            GroupVersionKind(group, version, kind),
        )
    gvk = scheme.object_kind(cls)
    return _Binding(ResourceMetadata(gvk.group, gvk.version, pluralize(cls.__name__)), gvk)


def resource_metadata(cls: type, scheme: Scheme | None = None) -> ResourceMetadata:
    """Resolve the group, version and resource name of a resource class.

    Classes with ``version`` and ``plural`` attributes describe themselves.
    Anything else is looked up in ``scheme`` (the default scheme when omitted)
    and its resource name is derived from the class name with :func:`pluralize`.

    Args:
        cls: The resource class.
        scheme: The scheme to consult for classes that do not describe themselves.

    Returns:
        The resolved metadata.

    Raises:
        UnregisteredTypeError: If the class neither describes itself nor is registered.

    Example:
        >>> from kgeneric.objects import Deployment
        >>> resource_metadata(Deployment)
        ResourceMetadata(group='apps', version='v1', resource='deployments')
    """
    return _resolve(cls, scheme or default_scheme).metadata


def resource_kind(cls: type, scheme: Scheme | None = None) -> GroupVersionKind:
    """Resolve the group, version and kind of a resource class.

    See :func:`resource_metadata` for the resolution rules.
    """
    return _resolve(cls, scheme or default_scheme).kind


def clear_cache() -> None:
    """Forget every resolved binding, e.g. after re-registering a class."""
    with _lock:
        _cache.clear()
