# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
from __future__ import annotations

import contextlib
import json
import logging
import os
import ssl
from typing import Any, AsyncGenerator, AsyncIterator

import anyio
import httpx

from ._exceptions import APITimeoutError, TransportError, error_from_status
from ._types import PathType
from ._watch import EventType, WatchEvent

logger = logging.getLogger(__name__)

SERVICEACCOUNT_PATH = "/var/run/secrets/kubernetes.io/serviceaccount"


def _raise_for_status(response: httpx.Response) -> None:
    if not response.is_error:
        return
    try:
        status = response.json()
    except json.JSONDecodeError:
        status = response.text
    raise error_from_status(status, response=response)


class HttpWatch:
    """A watch response read line by line as :class:`WatchEvent` objects."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[WatchEvent]:
        async for line in self._response.aiter_lines():
            if not line.strip():
                continue
            event = json.loads(line)
            yield WatchEvent(EventType(event["type"]), event["object"])

    async def stop(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class HttpTransport:
    """A :class:`~kgeneric.Transport` backed by an ``httpx.AsyncClient``.

    Args:
        url: Base URL of the API server, e.g. ``https://10.0.0.1:6443``.
        token: Bearer token sent with every request.
        verify: TLS verification, passed through to httpx (bool, CA bundle path or SSL context).
        timeout: Default timeout for requests in seconds.
        transport: An httpx transport to use instead of the network, mostly for tests.

    Example:
        >>> transport = HttpTransport("http://localhost:8001")
        >>> pods = GenericClient(Pod, transport)
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        verify: bool | str | ssl.SSLContext = True,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.token = token
        self._verify = verify
        self._timeout = timeout
        self._transport = transport
        self._session: httpx.AsyncClient | None = None

    @classmethod
    def in_cluster(
        cls, serviceaccount: PathType = SERVICEACCOUNT_PATH, **kwargs
    ) -> HttpTransport:
        """Configure a transport from the service account mounted into a Pod.

        Reads ``KUBERNETES_SERVICE_HOST`` and ``KUBERNETES_SERVICE_PORT`` from the
        environment and the token and CA certificate from ``serviceaccount``.

        Raises:
            ValueError: If not running inside a cluster.
        """
        serviceaccount = os.path.expanduser(serviceaccount)
        try:
            host = os.environ["KUBERNETES_SERVICE_HOST"]
            port = os.environ["KUBERNETES_SERVICE_PORT"]
        except KeyError as e:
            raise ValueError(f"Not running in a cluster, {e.args[0]} is unset") from e
        if not os.path.isdir(serviceaccount):
            raise ValueError(f"Service account directory {serviceaccount} not found")
        with open(os.path.join(serviceaccount, "token")) as f:
            token = f.read().strip()
        ca_file = os.path.join(serviceaccount, "ca.crt")
        if "verify" not in kwargs and os.path.isfile(ca_file):
            kwargs["verify"] = ssl.create_default_context(cafile=ca_file)
        if ":" in host:
            host = f"[{host}]"
        return cls(f"https://{host}:{port}", token=token, **kwargs)

    @property
    def timeout(self):
        return self._timeout

    async def _create_session(self) -> None:
        headers = {"User-Agent": self.__version__, "content-type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self._session:
            with contextlib.suppress(RuntimeError):
                await self._session.aclose()
            self._session = None
        kwargs: dict[str, Any] = {}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        else:
            kwargs["verify"] = self._verify
        self._session = httpx.AsyncClient(
            base_url=self.url,
            headers=headers,
            timeout=self._timeout,
            follow_redirects=True,
            **kwargs,
        )

    async def _ensure_session(self) -> httpx.AsyncClient:
        if not self._session or self._session.is_closed:
            await self._create_session()
        assert self._session
        return self._session

    def _construct_url(
        self,
        base: str,
        resource: str,
        namespace: str = "",
        name: str = "",
        subresource: str = "",
    ) -> str:
        parts = [base.rstrip("/")]
        if namespace:
            parts.extend(["namespaces", namespace])
        parts.append(resource)
        if name:
            parts.append(name)
        if subresource:
            parts.append(subresource)
        return "/".join(parts)

    @contextlib.asynccontextmanager
    async def call_api(
        self,
        method: str = "GET",
        *,
        base: str,
        resource: str,
        namespace: str = "",
        name: str = "",
        subresource: str = "",
        **kwargs,
    ) -> AsyncGenerator[httpx.Response]:
        """Make a Kubernetes API request and map failures to kgeneric errors."""
        session = await self._ensure_session()
        url = self._construct_url(base, resource, namespace, name, subresource)
        try:
            response = await session.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise APITimeoutError(
                "Timeout while waiting for the Kubernetes API server"
            ) from e
        except httpx.TransportError as e:
            raise TransportError(str(e)) from e
        _raise_for_status(response)
        yield response

    async def request(
        self,
        method: str,
        *,
        base: str,
        resource: str,
        namespace: str = "",
        name: str = "",
        subresource: str = "",
        params: dict | None = None,
        body: Any = None,
        timeout: float | None = None,
    ) -> dict:
        """Issue a request and return the decoded JSON body."""
        kwargs: dict[str, Any] = {"params": params or None}
        if body is not None:
            kwargs["content"] = json.dumps(body)
        if timeout is not None:
            kwargs["timeout"] = timeout
        async with self.call_api(
            method,
            base=base,
            resource=resource,
            namespace=namespace,
            name=name,
            subresource=subresource,
            **kwargs,
        ) as response:
            try:
                return response.json()
            except json.JSONDecodeError as e:
                raise TransportError(f"Unable to decode response: {e}") from e

    async def request_text(
        self,
        method: str,
        *,
        base: str,
        resource: str,
        namespace: str = "",
        name: str = "",
        subresource: str = "",
        params: dict | None = None,
        timeout: float | None = None,
    ) -> str:
        """Issue a request and return the body as text."""
        kwargs: dict[str, Any] = {"params": params or None}
        if timeout is not None:
            kwargs["timeout"] = timeout
        async with self.call_api(
            method,
            base=base,
            resource=resource,
            namespace=namespace,
            name=name,
            subresource=subresource,
            **kwargs,
        ) as response:
            return response.text

    async def watch(
        self,
        *,
        base: str,
        resource: str,
        namespace: str = "",
        params: dict | None = None,
    ) -> HttpWatch:
        """Open a watch request and return the live event stream."""
        session = await self._ensure_session()
        url = self._construct_url(base, resource, namespace)
        request = session.build_request("GET", url, params=params, timeout=None)
        try:
            response = await session.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise APITimeoutError(
                "Timeout while waiting for the Kubernetes API server"
            ) from e
        except httpx.TransportError as e:
            raise TransportError(str(e)) from e
        if response.is_error:
            try:
                await response.aread()
            finally:
                await response.aclose()
            _raise_for_status(response)
        logger.debug("Opened watch on %s", url)
        return HttpWatch(response)

    async def aclose(self) -> None:
        if self._session:
            with anyio.CancelScope(shield=True):
                await self._session.aclose()
            self._session = None

    async def __aenter__(self) -> HttpTransport:
        await self._ensure_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def __version__(self) -> str:
        from . import __version__

        return f"kgeneric/{__version__}"
