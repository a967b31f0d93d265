# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
import time

import httpx
import pytest

import kgeneric
from kgeneric import (
    AlreadyExistsError,
    EventType,
    FatalError,
    FakeClient,
    GenericClient,
    Infallible,
    Informer,
    NamespaceScoped,
    NotFoundError,
    OptionlessNamespaced,
    WatchEvent,
    Watcher,
    create_or_update,
    new_fake,
)
from kgeneric._testutils import check_streams_closed
from kgeneric.objects import Pod


def pod(name, namespace="fake", **labels):
    return Pod({"metadata": {"name": name, "namespace": namespace, "labels": labels}})


def wait_until(predicate, timeout=5):
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "timed out"
        time.sleep(0.01)


class FiniteWatch:
    def __init__(self, *objects):
        self.objects = objects

    async def __aiter__(self):
        for obj in self.objects:
            yield WatchEvent(EventType.ADDED, obj)

    async def stop(self):
        pass


def test_sync_classes_are_blocking():
    assert kgeneric.asyncio.GenericClient._asyncio is True
    assert GenericClient._asyncio is False
    assert FakeClient._asyncio is False
    assert NamespaceScoped._asyncio is False


def test_fake_lifecycle():
    pods = new_fake(Pod, pod("fake"))
    assert isinstance(pods, FakeClient)
    assert pods.get("fake", "fake").name == "fake"

    pods.create(pod("fake2", a="b"))
    with pytest.raises(AlreadyExistsError):
        pods.create(pod("fake2"))
    create_or_update(pods, pod("fake2", a="modified"))
    assert pods.get("fake2", "fake").labels["a"] == "modified"

    pods.update(pod("fake", role="web"))
    assert pods.get("fake", "fake").labels == {"role": "web"}
    assert sorted(p.name for p in pods.list("fake")) == ["fake", "fake2"]

    pods.delete("fake2", "fake")
    with pytest.raises(NotFoundError):
        pods.get("fake2", "fake")


def test_clientset_hands_out_sync_clients():
    clientset = kgeneric.FakeClientset(pod("fake"))
    pods = clientset.client(Pod)
    assert isinstance(pods, FakeClient)
    assert [p.name for p in pods.list()] == ["fake"]


def test_generic_client(mock_api, pod_spec):
    api = mock_api(lambda request: httpx.Response(200, json=pod_spec))
    pods = GenericClient(Pod, api)
    got = pods.get("example", "default")
    assert isinstance(got, Pod)
    assert got.name == "example"
    assert api.requests[0].url.path == "/api/v1/namespaces/default/pods/example"


def test_decorator_stack():
    fake = new_fake(Pod, pod("fake"))
    pods = Infallible(OptionlessNamespaced(NamespaceScoped(fake, "fake")))
    created = pods.create(Pod("new"))
    assert created.namespace == "fake"
    assert sorted(p.name for p in pods.list()) == ["fake", "new"]
    with pytest.raises(FatalError):
        pods.get("missing")


def test_watch():
    pods = new_fake(Pod)
    with pods.watch("fake") as watcher:
        assert isinstance(watcher, Watcher)
        pods.create(pod("a"))
        pods.create(pod("b"))
        results = iter(watcher)
        assert next(results).name == "a"
        assert next(results).name == "b"
    assert watcher.stopped
    assert watcher.done
    watcher.stop()


def test_watch_natural_end():
    pods = new_fake(Pod)
    pods.to_clientset().prepend_watch_reactor(
        "pods", lambda action: (True, FiniteWatch(pod("a"), pod("b")))
    )
    watcher = pods.watch("fake")
    assert [p.name for p in watcher] == ["a", "b"]
    watcher.wait(5)
    assert watcher.done
    assert not watcher.stopped
    assert watcher.cause is None


def test_namespace_scoped_watch():
    fake = new_fake(Pod)
    pods = NamespaceScoped(fake, "fake")
    with pods.watch() as watcher:
        fake.create(pod("other", "other"))
        fake.create(pod("a"))
        assert next(iter(watcher)).name == "a"


def test_informer():
    pods = new_fake(Pod, pod("a"))
    informer = Informer.from_client(pods, "fake")
    assert not informer.has_synced()
    with informer:
        assert informer.wait_for_sync()
        assert [p.name for p in informer.lister().list()] == ["a"]
        pods.create(pod("b"))
        wait_until(lambda: len(informer.store) == 2)
        assert informer.lister().by_namespace("fake").get("b").name == "b"
    assert informer.error is None
    informer.stop()


def test_watch_stop_closes_streams():
    def watch_one():
        pods = new_fake(Pod)
        with pods.watch("fake") as watcher:
            pods.create(pod("a"))
            assert next(iter(watcher)).name == "a"

    with check_streams_closed():
        watch_one()
