# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
"""The `kgeneric` asynchronous API.

Every call is a coroutine. Watchers and informers run in anyio task groups.
"""
from .._client import GenericClient, create_or_update
from .._decorators import Infallible, NamespaceScoped, OptionlessNamespaced
from .._fake import FakeClient, FakeClientset, new_fake
from .._informer import Informer, ListWatch, Lister, NamespaceLister, Reflector, Store
from .._watch import Watcher

__all__ = [
    "FakeClient",
    "FakeClientset",
    "GenericClient",
    "Infallible",
    "Informer",
    "ListWatch",
    "Lister",
    "NamespaceLister",
    "NamespaceScoped",
    "OptionlessNamespaced",
    "Reflector",
    "Store",
    "Watcher",
    "create_or_update",
    "new_fake",
]
