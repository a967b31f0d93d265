# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
import json
from typing import Callable

import httpx
import pytest

from kgeneric._binding import clear_cache
from kgeneric._transport import HttpTransport
from kgeneric.objects import Pod


@pytest.fixture(autouse=True)
def fresh_bindings():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def pod_spec() -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": "example",
            "namespace": "default",
            "labels": {"hello": "world"},
        },
        "spec": {
            "containers": [{"name": "pause", "image": "gcr.io/google_containers/pause"}]
        },
    }


@pytest.fixture
def example_pod(pod_spec) -> Pod:
    return Pod(pod_spec)


@pytest.fixture
def mock_api() -> Callable:
    """Build an HttpTransport that answers from ``handler`` and records every request.

    The returned transport has a ``requests`` list attribute.
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> HttpTransport:
        requests = []

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        transport = HttpTransport(
            "https://k8s.example.com", token="secret", transport=httpx.MockTransport(record)
        )
        transport.requests = requests  # type: ignore[attr-defined]
        return transport

    return factory


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content)
