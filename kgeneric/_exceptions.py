# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
from __future__ import annotations

from typing import Any

import httpx


class ServerError(Exception):
    """Error from the Kubernetes API server (or the fake tracker standing in for it).

    Attributes:
        status: The Status object from the Kubernetes API server
        response: The httpx response object, if the error came over the wire
    """

    def __init__(
        self,
        message: str,
        status: dict | str | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        self.status = status
        self.response = response
        super().__init__(message)

    @property
    def code(self) -> int | None:
        """HTTP status code of the failed request."""
        if self.response is not None:
            return self.response.status_code
        if isinstance(self.status, dict):
            return self.status.get("code")
        return None


class NotFoundError(ServerError):
    """Unable to find the requested resource."""


class AlreadyExistsError(ServerError):
    """A resource with the same namespace and name already exists."""


class ConflictError(ServerError):
    """The write was rejected because the resource version is stale."""


class InvalidError(ServerError):
    """The server rejected the object as invalid."""


class UnregisteredTypeError(Exception):
    """A resource class neither describes itself nor is registered in the scheme."""


class TransportError(Exception):
    """The request could not be delivered or its response could not be decoded."""


class APITimeoutError(TransportError):
    """A timeout has occurred while waiting for a response from the Kubernetes API server."""


class WatchTerminatedError(Exception):
    """A watch stream ended because an event could not be narrowed to the bound type.

    Attributes:
        event_type: The type of the offending event
        payload: The payload that failed to narrow
    """

    def __init__(self, message: str, event_type: str = "", payload: Any = None):
        self.event_type = event_type
        self.payload = payload
        super().__init__(message)


class FatalError(RuntimeError):
    """An error raised at a call site that declared it cannot recover.

    Raised by ``must_list`` and the ``Infallible`` decorator. The message is the
    message of the original error, which is chained as ``__cause__``.
    """


_REASONS = {
    "NotFound": NotFoundError,
    "AlreadyExists": AlreadyExistsError,
    "Conflict": ConflictError,
    "Invalid": InvalidError,
}

_CODES = {
    404: NotFoundError,
    409: ConflictError,
    422: InvalidError,
}


def error_from_status(
    status: dict | str, response: httpx.Response | None = None
) -> ServerError:
    """Build the most specific error for a Kubernetes ``Status`` body.

    The ``reason`` field wins over the HTTP code because a 409 is used for both
    ``AlreadyExists`` and ``Conflict``.

    Args:
        status: The decoded Status object, or the raw response text.
        response: The httpx response, if any.

    Returns:
        A ServerError subclass instance.
    """
    if isinstance(status, dict):
        message = status.get("message") or status.get("reason") or "Unknown error"
        reason = status.get("reason", "")
        code = status.get("code")
    else:
        message = status or "Unknown error"
        reason = ""
        code = None
    if response is not None:
        code = response.status_code
    cls = _REASONS.get(reason) or _CODES.get(code or 0, ServerError)
    return cls(message, status=status, response=response)


def status_for(reason: str, code: int, message: str, **details: Any) -> dict:
    """Build a Kubernetes ``Status`` body."""
    status = {
        "kind": "Status",
        "apiVersion": "v1",
        "status": "Failure",
        "message": message,
        "reason": reason,
        "code": code,
    }
    if details:
        status["details"] = details
    return status
