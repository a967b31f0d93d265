# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""Utilities for working with Kubernetes data structures."""
from __future__ import annotations

import re
from typing import Mapping, NamedTuple

_SET_REQUIREMENT = re.compile(r"^\s*([^\s!=]+)\s+(in|notin)\s+\((.*)\)\s*$")
_EQUALITY_REQUIREMENT = re.compile(r"^\s*([^\s!=]+)\s*(==|=|!=)\s*([^\s]*)\s*$")
_EXISTS_REQUIREMENT = re.compile(r"^\s*(!?)\s*([^\s!=(),]+)\s*$")


class Requirement(NamedTuple):
    """A single term of a label selector."""

    key: str
    operator: str
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == "exists":
            return self.key in labels
        if self.operator == "!":
            return self.key not in labels
        if self.operator in ("=", "==", "in"):
            return self.key in labels and labels[self.key] in self.values
        # != and notin also match objects without the key, as the API server does.
        return labels.get(self.key) not in self.values


def dict_to_selector(selector_dict: dict) -> str:
    """Convert a dictionary to a Kubernetes selector.

    Args:
        selector_dict: The dictionary to convert to a Kubernetes selector.

    Returns:
        A Kubernetes selector string.
    """
    return ",".join(f"{k}={v}" for k, v in selector_dict.items())


def _split_terms(selector: str) -> list[str]:
    # Commas inside "in (a,b)" do not separate terms.
    terms, depth, current = [], 0, ""
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            terms.append(current)
            current = ""
        else:
            current += char
    terms.append(current)
    return [t for t in terms if t.strip()]


def parse_selector(selector: str | dict | None) -> list[Requirement]:
    """Parse a label selector into its requirements.

    Supports equality (``=``, ``==``, ``!=``), set (``in``, ``notin``) and
    existence (``key``, ``!key``) terms.

    Args:
        selector: A selector string, or a dict of required labels.

    Returns:
        The list of requirements. An empty list matches everything.

    Raises:
        ValueError: If a term cannot be parsed.

    Examples:
        >>> parse_selector("app=web,tier in (a, b),!canary")
        [Requirement(key='app', operator='=', values=('web',)), ...]
    """
    if not selector:
        return []
    if isinstance(selector, dict):
        selector = dict_to_selector(selector)
    requirements = []
    for term in _split_terms(selector):
        if match := _SET_REQUIREMENT.match(term):
            key, op, values = match.groups()
            requirements.append(
                Requirement(key, op, tuple(v.strip() for v in values.split(",")))
            )
        elif match := _EQUALITY_REQUIREMENT.match(term):
            key, op, value = match.groups()
            requirements.append(Requirement(key, op, (value,)))
        elif match := _EXISTS_REQUIREMENT.match(term):
            negate, key = match.groups()
            requirements.append(Requirement(key, "!" if negate else "exists"))
        else:
            raise ValueError(f"Unable to parse selector term '{term.strip()}'")
    return requirements


def match_selector(selector: str | dict | None, labels: Mapping[str, str] | None) -> bool:
    """Check whether a set of labels satisfies every term of a selector."""
    labels = labels or {}
    return all(r.matches(labels) for r in parse_selector(selector))


def parse_field_selector(selector: str | dict | None) -> dict[str, str]:
    """Parse an equality-only field selector such as ``metadata.name=foo``.

    Raises:
        ValueError: If a term is not an equality.
    """
    if not selector:
        return {}
    if isinstance(selector, dict):
        return {k: str(v) for k, v in selector.items()}
    fields = {}
    for term in _split_terms(selector):
        match = _EQUALITY_REQUIREMENT.match(term)
        if not match or match.group(2) == "!=":
            raise ValueError(f"Field selector {term.strip()} not supported")
        fields[match.group(1)] = match.group(3)
    return fields


def xdict(*in_dict, **kwargs):
    """Dictionary constructor that ignores None values.

    Args:
        in_dict: A dict to convert. Only one is allowed.
        **kwargs: Keyword arguments to be converted to a dict.

    Returns:
        A dict with None values removed.

    Raises:
        ValueError
            If more than one positional argument is passed, or if both a positional
            argument and keyword arguments are passed.

    Examples:
        >>> xdict(foo="bar", baz=None)
        {"foo": "bar"}

        >>> xdict({"foo": "bar", "baz": None})
        {"foo": "bar"}
    """
    if len(in_dict) > 1:
        raise ValueError(
            f"xdict expected at most 1 positional argument, got {len(in_dict)}"
        )
    if len(in_dict) == 1 and kwargs:
        raise ValueError(
            "xdict expected at most 1 positional argument, or multiple keyword arguments, got both"
        )
    if len(in_dict) == 1:
        [kwargs] = in_dict
    return {k: v for k, v in kwargs.items() if v is not None}
