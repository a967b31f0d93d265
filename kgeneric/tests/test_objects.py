# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
import copy

import pytest
from box import Box

from kgeneric.objects import (
    APIObject,
    ConfigMap,
    Deployment,
    Namespace,
    Pod,
    new_class,
)


def test_pod_from_dict(pod_spec):
    pod = Pod(pod_spec)
    assert pod.name == "example"
    assert pod.namespace == "default"
    assert pod.labels == {"hello": "world"}
    assert pod.annotations == {}
    assert pod.spec.containers[0].name == "pause"
    assert repr(pod) == "<Pod example>"
    assert str(pod) == "example"
    assert pod.key == "default/example"


def test_object_from_name():
    pod = Pod("web", namespace="default")
    assert pod.name == "web"
    assert pod.namespace == "default"
    assert pod.raw["kind"] == "Pod"
    assert pod.raw["apiVersion"] == "v1"


def test_object_from_to_dict():
    class Thing:
        def to_dict(self):
            return {"metadata": {"name": "thing"}}

    assert ConfigMap(Thing()).name == "thing"
    with pytest.raises(ValueError):
        Pod(42)


def test_object_without_name():
    pod = Pod({"metadata": {"generateName": "web-"}})
    assert repr(pod) == "<Pod generateName(web-)>"
    with pytest.raises(ValueError, match="generateName"):
        pod.name
    with pytest.raises(ValueError):
        Pod({}).name


def test_namespace_setter():
    pod = Pod("web")
    assert pod.namespace is None
    pod.namespace = "default"
    assert pod.namespace == "default"
    pod.namespace = ""
    assert pod.namespace is None
    assert "namespace" not in pod.metadata


def test_cluster_scoped_key():
    assert Namespace("kube-system").key == "kube-system"


def test_to_dict_is_plain(pod_spec):
    data = Pod(pod_spec).to_dict()
    assert type(data) is dict
    assert not isinstance(data["metadata"], Box)
    assert data["metadata"]["labels"] == {"hello": "world"}


def test_deepcopy(pod_spec):
    pod = Pod(pod_spec)
    clone = pod.deepcopy()
    clone.labels["hello"] = "there"
    assert pod.labels["hello"] == "world"
    assert clone == pod
    assert copy.deepcopy(pod).labels == pod.labels


def test_equality():
    assert Pod("a", namespace="x") == Pod("a", namespace="x")
    assert Pod("a", namespace="x") != Pod("a", namespace="y")
    assert Pod("a", namespace="x") != Deployment("a", namespace="x")


def test_item_access(pod_spec):
    pod = Pod(pod_spec)
    assert "spec" in pod.keys()
    assert pod["metadata"]["name"] == "example"
    pod["status"] = {"phase": "Running"}
    assert pod.status.phase == "Running"


def test_resource_version():
    pod = Pod("web")
    assert pod.resource_version == ""
    pod.resource_version = "12"
    assert pod.metadata.resourceVersion == "12"


def test_configmap_data():
    cm = ConfigMap({"metadata": {"name": "cm"}, "data": {"key": "value"}})
    assert cm.data.key == "value"
    assert ConfigMap("empty").data == {}


def test_new_class():
    Widget = new_class("Widget", "example.com/v1", namespaced=False)
    assert issubclass(Widget, APIObject)
    assert Widget.kind == "Widget"
    assert Widget.plural == "widgets"
    assert Widget.singular == "widget"
    assert not Widget.namespaced
    widget = Widget("w")
    assert widget.raw["apiVersion"] == "example.com/v1"


def test_scheme_types_do_not_inject_kind():
    class Plain(APIObject):
        pass

    assert "kind" not in Plain("p").to_dict()
