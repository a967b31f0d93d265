# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
import contextlib
import gc
import os
import warnings
from typing import Generator


@contextlib.contextmanager
def set_env(**environ: str) -> Generator[None, None, None]:
    """Temporarily set process environment variables, restoring the old environment on exit.

    Examples:
        >>> with set_env(KUBERNETES_SERVICE_HOST="10.0.0.1"):
        ...     "KUBERNETES_SERVICE_HOST" in os.environ
        True

        >>> "KUBERNETES_SERVICE_HOST" in os.environ
        False
    """
    old_environ = dict(os.environ)
    os.environ.update(environ)
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(old_environ)


@contextlib.contextmanager
def check_streams_closed() -> Generator[None, None, None]:
    """Raise if memory object streams dropped inside the block were left open.

    Streams only report themselves when they are garbage collected, so the
    objects under test must be unreachable when the block ends.

    Raises:
        ResourceWarning: Listing every unclosed stream.
    """
    gc.collect()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ResourceWarning)
        yield
        gc.collect()
    unclosed = [
        str(w.message)
        for w in caught
        if issubclass(w.category, ResourceWarning) and "MemoryObject" in str(w.message)
    ]
    if unclosed:
        raise ResourceWarning(", ".join(unclosed))
