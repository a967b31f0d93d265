# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""Request options and list results.

Each options class renders itself to the query parameters the API server
expects via ``to_params()``.
"""
from __future__ import annotations

import dataclasses
from typing import Generic, Iterator, TypeVar

from ._data_utils import dict_to_selector, xdict

T = TypeVar("T")


def _selector(value: str | dict | None) -> str | None:
    if isinstance(value, dict):
        return dict_to_selector(value)
    return value or None


@dataclasses.dataclass(frozen=True)
class GetOptions:
    resource_version: str | None = None

    def to_params(self) -> dict:
        return xdict(resourceVersion=self.resource_version)


@dataclasses.dataclass(frozen=True)
class CreateOptions:
    dry_run: bool = False
    field_manager: str | None = None

    def to_params(self) -> dict:
        return xdict(
            dryRun="All" if self.dry_run else None, fieldManager=self.field_manager
        )


@dataclasses.dataclass(frozen=True)
class UpdateOptions:
    dry_run: bool = False
    field_manager: str | None = None

    def to_params(self) -> dict:
        return xdict(
            dryRun="All" if self.dry_run else None, fieldManager=self.field_manager
        )


@dataclasses.dataclass(frozen=True)
class DeleteOptions:
    propagation_policy: str | None = None
    grace_period_seconds: int | None = None

    def to_params(self) -> dict:
        return xdict(
            propagationPolicy=self.propagation_policy,
            gracePeriodSeconds=self.grace_period_seconds,
        )


@dataclasses.dataclass(frozen=True)
class ListOptions:
    """Options for list and watch requests.

    ``timeout_seconds`` bounds a list request on the client side as well as
    being passed to the server; zero or ``None`` means no timeout.
    """

    label_selector: str | dict | None = None
    field_selector: str | dict | None = None
    resource_version: str | None = None
    timeout_seconds: int | None = None
    limit: int | None = None
    continue_: str | None = None
    watch: bool = False
    allow_watch_bookmarks: bool = False

    @property
    def timeout(self) -> float | None:
        if not self.timeout_seconds:
            return None
        return float(self.timeout_seconds)

    def to_params(self) -> dict:
        return xdict(
            labelSelector=_selector(self.label_selector),
            fieldSelector=_selector(self.field_selector),
            resourceVersion=self.resource_version,
            timeoutSeconds=self.timeout_seconds or None,
            limit=self.limit,
            # continue is a keyword, hence the trailing underscore on the field
            **{"continue": self.continue_},
            watch="true" if self.watch else None,
            allowWatchBookmarks="true" if self.allow_watch_bookmarks else None,
        )

    def replace(self, **changes) -> ListOptions:
        return dataclasses.replace(self, **changes)


@dataclasses.dataclass(frozen=True)
class LogOptions:
    container: str | None = None
    tail_lines: int | None = None
    since_seconds: int | None = None
    timestamps: bool = False
    previous: bool = False
    limit_bytes: int | None = None

    def to_params(self) -> dict:
        return xdict(
            container=self.container,
            tailLines=self.tail_lines,
            sinceSeconds=self.since_seconds,
            timestamps="true" if self.timestamps else None,
            previous="true" if self.previous else None,
            limitBytes=self.limit_bytes,
        )


@dataclasses.dataclass
class ObjectList(Generic[T]):
    """A page of objects plus the list-level metadata the server returned."""

    items: list[T] = dataclasses.field(default_factory=list)
    resource_version: str = ""
    continue_: str = ""

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)
