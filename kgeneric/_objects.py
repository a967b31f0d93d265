# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
from __future__ import annotations

import copy
from typing import Any, TypeVar

from box import Box

from ._pluralize import pluralize
from ._types import SpecType, SupportsKeysAndGetItem

T = TypeVar("T", bound="APIObject")


class APIObject:
    """Base class for Kubernetes objects.

    Subclasses either describe themselves by setting ``version`` and ``plural``
    (all of the built-in kinds below do) or get registered in a
    :class:`kgeneric.Scheme`.
    """

    version: str
    kind: str
    plural: str
    singular: str
    namespaced: bool = False
    subresources: tuple[str, ...] = ()

    def __init__(self, resource: SpecType, namespace: str | None = None) -> None:
        """Initialize an APIObject."""
        if isinstance(resource, dict):
            self.raw = resource
        elif isinstance(resource, SupportsKeysAndGetItem):
            self.raw = dict(resource)
        elif isinstance(resource, str):
            self.raw = {"metadata": {"name": resource}}
        elif hasattr(resource, "to_dict"):
            self.raw = resource.to_dict()
        else:
            raise ValueError(
                "resource must be a dict, string or have a to_dict method"
            )
        if "metadata" not in self._raw:
            self._raw["metadata"] = {}
        if namespace is not None:
            self._raw["metadata"]["namespace"] = namespace

    def __repr__(self):
        """Return a string representation of the Kubernetes resource."""
        kind = getattr(self, "kind", type(self).__name__)
        if "name" in self.metadata:
            return f"<{kind} {self.name}>"
        if "generateName" in self.metadata:
            return f"<{kind} generateName({self.metadata.generateName})>"
        return f"<{kind} UNKNOWN>"

    def __str__(self):
        """Return a string representation of the Kubernetes resource."""
        return self.name

    def __eq__(self, other):
        if not isinstance(other, APIObject):
            return NotImplemented
        if type(self) is not type(other):
            return False
        return (self.name, self.namespace) == (other.name, other.namespace)

    @property
    def raw(self) -> Any:
        """Raw object as sent to or returned from the Kubernetes API."""
        if getattr(self, "version", None):
            self._raw.update({"kind": self.kind, "apiVersion": self.version})
        return self._raw

    @raw.setter
    def raw(self, value: Any) -> None:
        self._raw = Box(value)

    @property
    def name(self) -> str:
        """Name of the Kubernetes resource."""
        if "name" in self.metadata:
            return self.metadata.name
        if "generateName" in self.metadata:
            raise ValueError("Resource has a generateName that has not been resolved")
        raise ValueError("Resource does not have a name")

    @name.setter
    def name(self, value: str) -> None:
        self.raw["metadata"]["name"] = value

    @property
    def namespace(self) -> str | None:
        """Namespace of the Kubernetes resource, ``None`` when unset."""
        return self.raw["metadata"].get("namespace") or None

    @namespace.setter
    def namespace(self, value: str | None) -> None:
        if value:
            self.raw["metadata"]["namespace"] = value
        else:
            self.raw["metadata"].pop("namespace", None)

    @property
    def metadata(self) -> Box:
        """Metadata of the Kubernetes resource."""
        return self.raw["metadata"]

    @metadata.setter
    def metadata(self, value: dict) -> None:
        self.raw["metadata"] = value

    @property
    def spec(self) -> Box:
        """Spec of the Kubernetes resource."""
        return self.raw["spec"]

    @spec.setter
    def spec(self, value: dict) -> None:
        self.raw["spec"] = value

    @property
    def status(self) -> Box:
        """Status of the Kubernetes resource."""
        return self.raw["status"]

    @status.setter
    def status(self, value: dict) -> None:
        self.raw["status"] = value

    @property
    def labels(self) -> Box:
        """Labels of the Kubernetes resource."""
        try:
            return self.raw["metadata"]["labels"]
        except KeyError:
            return Box({})

    @labels.setter
    def labels(self, value: dict) -> None:
        self.raw["metadata"]["labels"] = value

    @property
    def annotations(self) -> Box:
        """Annotations of the Kubernetes resource."""
        try:
            return self.raw["metadata"]["annotations"]
        except KeyError:
            return Box({})

    @annotations.setter
    def annotations(self, value: dict) -> None:
        self.raw["metadata"]["annotations"] = value

    @property
    def resource_version(self) -> str:
        return self.metadata.get("resourceVersion", "")

    @resource_version.setter
    def resource_version(self, value: str) -> None:
        self.raw["metadata"]["resourceVersion"] = value

    @property
    def key(self) -> str:
        """Cache key, ``namespace/name`` or ``name`` for cluster-scoped objects."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def keys(self) -> list:
        """Return the keys of this object."""
        return self.raw.keys()

    def __getitem__(self, key: str) -> Any:
        """Get an item from this object."""
        return self.raw[key]

    def __setitem__(self, key: str, value: Any) -> None:
        """Set an item in this object."""
        self.raw[key] = value

    def to_dict(self) -> dict:
        """Return a plain dictionary representation of this object."""
        return self.raw.to_dict()

    def deepcopy(self: T) -> T:
        """Return an independent copy of this object."""
        return type(self)(copy.deepcopy(self.to_dict()))

    def __deepcopy__(self, memo):
        return self.deepcopy()


## v1 objects


class Namespace(APIObject):
    """A Kubernetes Namespace."""

    version = "v1"
    kind = "Namespace"
    plural = "namespaces"
    singular = "namespace"
    namespaced = False


class Node(APIObject):
    """A Kubernetes Node."""

    version = "v1"
    kind = "Node"
    plural = "nodes"
    singular = "node"
    namespaced = False
    subresources = ("status", "proxy")


class Pod(APIObject):
    """A Kubernetes Pod."""

    version = "v1"
    kind = "Pod"
    plural = "pods"
    singular = "pod"
    namespaced = True
    subresources = ("log", "status", "exec", "eviction")


class Service(APIObject):
    """A Kubernetes Service."""

    version = "v1"
    kind = "Service"
    plural = "services"
    singular = "service"
    namespaced = True
    subresources = ("status", "proxy")


class ConfigMap(APIObject):
    """A Kubernetes ConfigMap."""

    version = "v1"
    kind = "ConfigMap"
    plural = "configmaps"
    singular = "configmap"
    namespaced = True

    @property
    def data(self) -> Box:
        """Data of the ConfigMap."""
        return self.raw.get("data", Box({}))


class Secret(APIObject):
    """A Kubernetes Secret."""

    version = "v1"
    kind = "Secret"
    plural = "secrets"
    singular = "secret"
    namespaced = True


class ServiceAccount(APIObject):
    """A Kubernetes ServiceAccount."""

    version = "v1"
    kind = "ServiceAccount"
    plural = "serviceaccounts"
    singular = "serviceaccount"
    namespaced = True


class Endpoints(APIObject):
    """A Kubernetes Endpoints."""

    version = "v1"
    kind = "Endpoints"
    plural = "endpoints"
    singular = "endpoint"
    namespaced = True


class Event(APIObject):
    """A Kubernetes Event."""

    version = "v1"
    kind = "Event"
    plural = "events"
    singular = "event"
    namespaced = True


class PersistentVolume(APIObject):
    """A Kubernetes PersistentVolume."""

    version = "v1"
    kind = "PersistentVolume"
    plural = "persistentvolumes"
    singular = "persistentvolume"
    namespaced = False


class PersistentVolumeClaim(APIObject):
    """A Kubernetes PersistentVolumeClaim."""

    version = "v1"
    kind = "PersistentVolumeClaim"
    plural = "persistentvolumeclaims"
    singular = "persistentvolumeclaim"
    namespaced = True


## apps/v1 objects


class Deployment(APIObject):
    """A Kubernetes Deployment."""

    version = "apps/v1"
    kind = "Deployment"
    plural = "deployments"
    singular = "deployment"
    namespaced = True
    subresources = ("status", "scale")


class StatefulSet(APIObject):
    """A Kubernetes StatefulSet."""

    version = "apps/v1"
    kind = "StatefulSet"
    plural = "statefulsets"
    singular = "statefulset"
    namespaced = True
    subresources = ("status", "scale")


class DaemonSet(APIObject):
    """A Kubernetes DaemonSet."""

    version = "apps/v1"
    kind = "DaemonSet"
    plural = "daemonsets"
    singular = "daemonset"
    namespaced = True
    subresources = ("status",)


class ReplicaSet(APIObject):
    """A Kubernetes ReplicaSet."""

    version = "apps/v1"
    kind = "ReplicaSet"
    plural = "replicasets"
    singular = "replicaset"
    namespaced = True
    subresources = ("status", "scale")


## batch/v1 objects


class Job(APIObject):
    """A Kubernetes Job."""

    version = "batch/v1"
    kind = "Job"
    plural = "jobs"
    singular = "job"
    namespaced = True
    subresources = ("status",)


class CronJob(APIObject):
    """A Kubernetes CronJob."""

    version = "batch/v1"
    kind = "CronJob"
    plural = "cronjobs"
    singular = "cronjob"
    namespaced = True
    subresources = ("status",)


## networking.k8s.io/v1 objects


class Ingress(APIObject):
    """A Kubernetes Ingress."""

    version = "networking.k8s.io/v1"
    kind = "Ingress"
    plural = "ingresses"
    singular = "ingress"
    namespaced = True
    subresources = ("status",)


class NetworkPolicy(APIObject):
    """A Kubernetes NetworkPolicy."""

    version = "networking.k8s.io/v1"
    kind = "NetworkPolicy"
    plural = "networkpolicies"
    singular = "networkpolicy"
    namespaced = True


## rbac.authorization.k8s.io/v1 objects


class ClusterRoleBinding(APIObject):
    """A Kubernetes ClusterRoleBinding."""

    version = "rbac.authorization.k8s.io/v1"
    kind = "ClusterRoleBinding"
    plural = "clusterrolebindings"
    singular = "clusterrolebinding"
    namespaced = False


class ClusterRole(APIObject):
    """A Kubernetes ClusterRole."""

    version = "rbac.authorization.k8s.io/v1"
    kind = "ClusterRole"
    plural = "clusterroles"
    singular = "clusterrole"
    namespaced = False


class RoleBinding(APIObject):
    """A Kubernetes RoleBinding."""

    version = "rbac.authorization.k8s.io/v1"
    kind = "RoleBinding"
    plural = "rolebindings"
    singular = "rolebinding"
    namespaced = True


class Role(APIObject):
    """A Kubernetes Role."""

    version = "rbac.authorization.k8s.io/v1"
    kind = "Role"
    plural = "roles"
    singular = "role"
    namespaced = True


## apiextensions.k8s.io/v1 objects


class CustomResourceDefinition(APIObject):
    """A Kubernetes CustomResourceDefinition."""

    version = "apiextensions.k8s.io/v1"
    kind = "CustomResourceDefinition"
    plural = "customresourcedefinitions"
    singular = "customresourcedefinition"
    namespaced = False


def new_class(
    kind: str,
    version: str | None = None,
    namespaced: bool = True,
    plural: str | None = None,
    subresources: tuple[str, ...] = (),
) -> type[APIObject]:
    """Create a new self-describing APIObject subclass.

    Args:
        kind: The Kubernetes resource kind.
        version: The Kubernetes API version, e.g. ``"example.com/v1"``.
        namespaced: Whether the resource is namespaced or not.
        plural: The plural form of the resource. Derived from ``kind`` when omitted.
        subresources: Subresources the server offers for the resource.

    Returns:
        A new APIObject subclass.

    Example:
        >>> Widget = new_class("Widget", "example.com/v1")
        >>> Widget.plural
        'widgets'
    """
    if "." in kind:
        kind, version = kind.split(".", 1)
    if version is None:
        version = "v1"
    plural = plural or pluralize(kind)
    return type(
        kind,
        (APIObject,),
        {
            "kind": kind,
            "version": version,
            "plural": plural.lower(),
            "singular": kind.lower(),
            "namespaced": namespaced,
            "subresources": subresources,
        },
    )
