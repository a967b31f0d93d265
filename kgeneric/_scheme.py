# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
from __future__ import annotations

import threading
from typing import NamedTuple

from ._exceptions import UnregisteredTypeError


def split_group_version(group_version: str) -> tuple[str, str]:
    """Split ``"apps/v1"`` into ``("apps", "v1")`` and ``"v1"`` into ``("", "v1")``."""
    if "/" in group_version:
        group, version = group_version.split("/", 1)
        return group, version
    return "", group_version


class GroupVersionKind(NamedTuple):
    group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        """The ``apiVersion`` field value for objects of this kind."""
        return f"{self.group}/{self.version}" if self.group else self.version


class Scheme:
    """A registry of resource classes and the group, version and kind they map to.

    Classes that describe themselves (see :class:`kgeneric.objects.APIObject`)
    do not need to be registered.

    Example:
        >>> from kgeneric import APIObject, Scheme
        >>> class Widget(APIObject):
        ...     namespaced = True
        >>> scheme = Scheme()
        >>> scheme.add_known_types("example.com/v1", Widget)
        >>> scheme.object_kind(Widget)
        GroupVersionKind(group='example.com', version='v1', kind='Widget')
    """

    def __init__(self) -> None:
        self._kinds: dict[type, GroupVersionKind] = {}
        self._lock = threading.Lock()

    def add_known_types(self, group_version: str, *types: type) -> None:
        """Register classes under a group version, using the class names as kinds."""
        group, version = split_group_version(group_version)
        with self._lock:
            for cls in types:
                kind = cls.__dict__.get("kind", cls.__name__)
                self._kinds[cls] = GroupVersionKind(group, version, kind)

    def object_kind(self, cls: type) -> GroupVersionKind:
        """Look up the group, version and kind registered for a class.

        Raises:
            UnregisteredTypeError: If the class is not registered.
        """
        try:
            return self._kinds[cls]
        except KeyError:
            raise UnregisteredTypeError(
                f"{cls.__name__} is not registered in the scheme. "
                "Register it with Scheme.add_known_types() or give the class "
                "'version' and 'plural' attributes."
            ) from None

    def recognizes(self, cls: type) -> bool:
        return cls in self._kinds

    def known_types(self) -> dict[type, GroupVersionKind]:
        return dict(self._kinds)


default_scheme = Scheme()
