# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
import anyio
import pytest

from kgeneric import (
    EventType,
    ListOptions,
    NotFoundError,
    ObjectList,
    TransportError,
    WatchEvent,
    WatchTerminatedError,
    resource_kind,
)
from kgeneric._informer import object_key
from kgeneric._testutils import check_streams_closed
from kgeneric.asyncio import Informer, Lister, ListWatch, Reflector, Store, new_fake
from kgeneric.objects import ConfigMap, Namespace, Pod


def pod(name, namespace="fake", rv="", **labels):
    metadata = {"name": name, "namespace": namespace, "labels": labels}
    if rv:
        metadata["resourceVersion"] = rv
    return Pod({"metadata": metadata})


async def wait_until(predicate):
    with anyio.fail_after(5):
        while not predicate():
            await anyio.sleep(0.01)


class ScriptedWatch:
    """Replays a fixed list of events, then waits until stopped."""

    def __init__(self, events, hang=True):
        self.events = events
        self.hang = hang
        self.stopped = False

    async def __aiter__(self):
        for event in self.events:
            yield event
        if self.hang:
            await anyio.sleep_forever()

    async def stop(self):
        self.stopped = True


class ScriptedListWatch(ListWatch):
    def __init__(self, lists, watches):
        self.lists = list(lists)
        self.watches = list(watches)
        self.list_calls = []
        self.watch_calls = []
        super().__init__(self._list, self._watch, Pod, resource_kind(Pod), "pods")

    async def _list(self, options):
        self.list_calls.append(options)
        result = self.lists.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def _watch(self, options):
        self.watch_calls.append(options)
        return self.watches.pop(0)


def test_object_key():
    assert object_key(pod("a")) == "fake/a"
    assert object_key(Namespace("default")) == "default"


def test_store():
    store = Store()
    store.add(pod("a"))
    store.add(pod("b"))
    store.update(pod("a", x="y"))
    assert len(store) == 2
    assert store.get_by_key("fake/a").labels == {"x": "y"}
    store.delete(pod("a"))
    assert store.keys() == ["fake/b"]
    store.delete(pod("missing"))
    store.replace([pod("c")])
    assert [p.name for p in store.list()] == ["c"]
    assert store.get_by_key("fake/b") is None


def test_lister():
    store = Store()
    store.replace([pod("a", app="web"), pod("b", app="db"), pod("c", "other", app="web")])
    lister = Lister(store, "pods")
    assert sorted(p.name for p in lister.list()) == ["a", "b", "c"]
    assert sorted(p.name for p in lister.list("app=web")) == ["a", "c"]
    assert [p.name for p in lister.list({"app": "db"})] == ["b"]

    namespaced = lister.by_namespace("fake")
    assert namespaced.namespace == "fake"
    assert sorted(p.name for p in namespaced.list()) == ["a", "b"]
    assert [p.name for p in namespaced.list("app=web")] == ["a"]
    assert namespaced.get("b").name == "b"
    with pytest.raises(NotFoundError, match='pods "c" not found'):
        namespaced.get("c")


def test_lister_cluster_scoped():
    store = Store()
    store.add(Namespace("default"))
    lister = Lister(store)
    assert lister.get("default").name == "default"
    with pytest.raises(NotFoundError):
        lister.get("kube-system")


async def test_construction_does_nothing():
    pods = new_fake(Pod, pod("a"))
    informer = Informer.from_client(pods, "fake")
    await anyio.sleep(0.05)
    assert pods.to_clientset().actions() == []
    assert not informer.has_synced()
    assert not informer.running
    assert len(informer.store) == 0


async def test_informer_follows_changes():
    pods = new_fake(Pod, pod("a"), pod("z", "other"))
    informer = Informer.from_client(pods, "fake")
    async with informer:
        with anyio.fail_after(5):
            assert await informer.wait_for_sync()
        assert informer.running
        assert [p.name for p in informer.lister().list()] == ["a"]

        await pods.create(pod("b"))
        await wait_until(lambda: len(informer.store) == 2)

        await pods.update(pod("b", role="web"))
        await wait_until(lambda: informer.store.get_by_key("fake/b").labels.get("role") == "web")
        assert [p.name for p in informer.lister().list("role=web")] == ["b"]

        await pods.delete("a", "fake")
        await wait_until(lambda: len(informer.store) == 1)

        await pods.create(pod("y", "other"))
        await anyio.sleep(0.05)
        assert informer.store.keys() == ["fake/b"]
    assert not informer.running
    assert informer.error is None


async def test_informer_all_namespaces():
    clientset_pods = new_fake(Pod, pod("a"), pod("b", "other"))
    informer = Informer.from_client(clientset_pods)
    async with informer:
        with anyio.fail_after(5):
            await informer.wait_for_sync()
        assert sorted(informer.store.keys()) == ["fake/a", "other/b"]
        assert [p.name for p in informer.lister().by_namespace("other").list()] == ["b"]


async def test_informer_ignores_other_resources():
    clientset = new_fake(Pod, pod("a")).to_clientset()
    informer = Informer.from_client(clientset.client(Pod))
    async with informer:
        with anyio.fail_after(5):
            await informer.wait_for_sync()
        await clientset.client(ConfigMap).create(
            ConfigMap({"metadata": {"name": "cfg", "namespace": "fake"}})
        )
        await anyio.sleep(0.05)
        assert informer.store.keys() == ["fake/a"]


async def test_informer_stop():
    pods = new_fake(Pod, pod("a"))
    informer = Informer.from_client(pods, "fake")
    async with anyio.create_task_group() as tg:
        informer.start(tg)
        with anyio.fail_after(5):
            await informer.wait_for_sync()
        await informer.stop()
        await informer.stop()
        with anyio.fail_after(5):
            await informer.wait()
    assert not informer.running
    assert informer.error is None
    # The watch subscription was released
    await pods.create(pod("b"))
    assert len(informer.store) == 1


async def test_informer_stop_before_start():
    pods = new_fake(Pod, pod("a"))
    informer = Informer.from_client(pods, "fake")
    await informer.stop()
    with anyio.fail_after(5):
        async with informer:
            assert not await informer.wait_for_sync()
    assert pods.to_clientset().actions() == []


async def test_informer_runs_once():
    informer = Informer(ScriptedListWatch([ObjectList()], [ScriptedWatch([])]))
    async with informer:
        with anyio.fail_after(5):
            await informer.wait_for_sync()
        with pytest.raises(RuntimeError):
            await informer.run()


async def test_list_error_is_kept():
    list_watch = ScriptedListWatch([TransportError("no route to host")], [])
    informer = Informer(list_watch)
    with anyio.fail_after(5):
        async with informer:
            assert not await informer.wait_for_sync()
            await informer.wait()
    assert isinstance(informer.error, TransportError)
    assert not informer.has_synced()


async def test_watch_starts_at_list_resource_version():
    list_watch = ScriptedListWatch(
        [ObjectList(items=[pod("a", rv="7")], resource_version="7")],
        [ScriptedWatch([WatchEvent(EventType.ADDED, pod("b", rv="8"))])],
    )
    informer = Informer(list_watch, ListOptions(label_selector="app=web"))
    async with informer:
        with anyio.fail_after(5):
            await informer.wait_for_sync()
        await wait_until(lambda: len(informer.store) == 2)
    assert list_watch.list_calls[0].watch is False
    assert list_watch.list_calls[0].label_selector == "app=web"
    options = list_watch.watch_calls[0]
    assert options.watch is True
    assert options.resource_version == "7"
    assert options.label_selector == "app=web"


async def test_error_event_relists():
    first = ScriptedWatch(
        [
            WatchEvent(EventType.ADDED, pod("b", rv="8")),
            WatchEvent(EventType.ERROR, {"kind": "Status", "code": 410, "reason": "Expired"}),
        ]
    )
    second = ScriptedWatch([])
    list_watch = ScriptedListWatch(
        [
            ObjectList(items=[pod("a", rv="7")], resource_version="7"),
            ObjectList(items=[pod("c", rv="20")], resource_version="20"),
        ],
        [first, second],
    )
    informer = Informer(list_watch)
    async with informer:
        await wait_until(lambda: len(list_watch.watch_calls) == 2)
        assert informer.store.keys() == ["fake/c"]
    assert first.stopped
    assert second.stopped
    assert list_watch.watch_calls[1].resource_version == "20"


async def test_watch_end_relists():
    list_watch = ScriptedListWatch(
        [ObjectList(resource_version="1"), ObjectList(items=[pod("a")], resource_version="2")],
        [ScriptedWatch([], hang=False), ScriptedWatch([])],
    )
    informer = Informer(list_watch)
    async with informer:
        await wait_until(lambda: len(informer.store) == 1)
    assert len(list_watch.list_calls) == 2


async def test_bookmark_and_deleted_events():
    store = Store()
    list_watch = ScriptedListWatch(
        [ObjectList(items=[pod("a", rv="7")], resource_version="7")],
        [
            ScriptedWatch(
                [
                    WatchEvent(EventType.BOOKMARK, {"kind": "Pod", "apiVersion": "v1", "metadata": {"resourceVersion": "9"}}),
                    WatchEvent(EventType.DELETED, {"kind": "Pod", "apiVersion": "v1", "metadata": {"name": "a", "namespace": "fake", "resourceVersion": "10"}}),
                ],
                hang=False,
            )
        ],
    )
    reflector = Reflector(list_watch, store)
    resource_version = await reflector.list_and_replace()
    assert resource_version == "7"
    assert len(store) == 1
    await reflector.watch_and_apply(resource_version)
    assert len(store) == 0
    assert reflector.last_sync_resource_version == "10"


async def test_wrong_payload_stops_informer():
    list_watch = ScriptedListWatch(
        [ObjectList()],
        [ScriptedWatch([WatchEvent(EventType.ADDED, Namespace("default"))])],
    )
    informer = Informer(list_watch)
    with anyio.fail_after(5):
        async with informer:
            await informer.wait()
    assert isinstance(informer.error, WatchTerminatedError)
    assert informer.has_synced()


async def test_informer_closes_watch_streams():
    async def run_once():
        pods = new_fake(Pod, pod("a"))
        informer = Informer.from_client(pods, "fake")
        async with informer:
            with anyio.fail_after(5):
                await informer.wait_for_sync()
            await pods.create(pod("b"))
            await wait_until(lambda: len(informer.store) == 2)

    with check_streams_closed():
        await run_once()


async def test_list_follows_continue():
    list_watch = ScriptedListWatch(
        [
            ObjectList(items=[pod("a")], resource_version="5", continue_="page-2"),
            ObjectList(items=[pod("b")], resource_version="5", continue_="page-3"),
            ObjectList(items=[pod("c")], resource_version="5"),
        ],
        [ScriptedWatch([])],
    )
    informer = Informer(list_watch, ListOptions(limit=1))
    async with informer:
        with anyio.fail_after(5):
            await informer.wait_for_sync()
        assert sorted(informer.store.keys()) == ["fake/a", "fake/b", "fake/c"]
        await wait_until(lambda: len(list_watch.watch_calls) == 1)
    assert [o.continue_ for o in list_watch.list_calls] == [None, "page-2", "page-3"]
    assert all(o.limit == 1 for o in list_watch.list_calls)
    watch_options = list_watch.watch_calls[0]
    assert watch_options.resource_version == "5"
    assert watch_options.limit is None
    assert watch_options.continue_ is None
