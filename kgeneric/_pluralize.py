# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""Derive REST resource names from type names."""
from __future__ import annotations

from typing import Mapping

CONSONANTS = "bcdfghjklmnpqrstvwxyz"

# Irregular names that the suffix rules below would get wrong.
# Keys are case-sensitive type names, values are the intended resource names.
DEFAULT_EXCEPTIONS: Mapping[str, str] = {
    "Endpoints": "endpoints",
    "PodMetrics": "pods",
    "NodeMetrics": "nodes",
}


def _is_consonant(char: str) -> bool:
    return char.lower() in CONSONANTS


def pluralize(singular: str, exceptions: Mapping[str, str] | None = None) -> str:
    """Return the lowercase plural form of a type name.

    This is a heuristic, not a grammar. Irregular plurals belong in ``exceptions``.

    Args:
        singular: The type name, e.g. ``"NetworkPolicy"``.
        exceptions: Overrides keyed by type name. Defaults to
            :data:`DEFAULT_EXCEPTIONS`.

    Returns:
        The resource name.

    Examples:
        >>> pluralize("Pod")
        'pods'
        >>> pluralize("Ingress")
        'ingresses'
        >>> pluralize("NetworkPolicy")
        'networkpolicies'
        >>> pluralize("Knife")
        'knives'
    """
    if exceptions is None:
        exceptions = DEFAULT_EXCEPTIONS
    if singular in exceptions:
        return exceptions[singular].lower()
    if len(singular) < 2:
        return singular.lower()

    last, before = singular[-1].lower(), singular[-2].lower()
    if last in "sxz":
        plural = singular + "es"
    elif last == "h":
        plural = singular + ("es" if before in "cs" else "s")
    elif last == "y":
        plural = singular[:-1] + "ies" if _is_consonant(before) else singular + "s"
    elif last == "e":
        plural = singular[:-2] + "ves" if before == "f" else singular + "s"
    elif last == "f":
        plural = singular[:-1] + "ves"
    else:
        plural = singular + "s"
    return plural.lower()
