# SPDX-FileCopyrightText: Copyright (c) 2023-2024, Kr8s Developers (See LICENSE for list)
# SPDX-License-Identifier: BSD 3-Clause License
import httpx
import pytest

from kgeneric import (
    AlreadyExistsError,
    APITimeoutError,
    ConflictError,
    FatalError,
    InvalidError,
    NotFoundError,
    ServerError,
    TransportError,
    error_from_status,
    status_for,
)


@pytest.mark.parametrize(
    "reason,code,cls",
    [
        ("NotFound", 404, NotFoundError),
        ("AlreadyExists", 409, AlreadyExistsError),
        ("Conflict", 409, ConflictError),
        ("Invalid", 422, InvalidError),
        ("Forbidden", 403, ServerError),
        ("", 404, NotFoundError),
        ("", 409, ConflictError),
        ("InternalError", 500, ServerError),
    ],
)
def test_error_from_status(reason, code, cls):
    status = status_for(reason, code, "boom")
    error = error_from_status(status)
    assert type(error) is cls
    assert str(error) == "boom"
    assert error.status == status
    assert error.code == code


def test_error_from_text_response():
    response = httpx.Response(502, text="Bad Gateway")
    error = error_from_status(response.text, response=response)
    assert type(error) is ServerError
    assert str(error) == "Bad Gateway"
    assert error.code == 502


def test_status_for_details():
    status = status_for("NotFound", 404, 'pods "a" not found', name="a", kind="pods")
    assert status["details"] == {"name": "a", "kind": "pods"}
    assert status["status"] == "Failure"


def test_hierarchy():
    assert issubclass(APITimeoutError, TransportError)
    assert issubclass(FatalError, RuntimeError)
    for cls in (NotFoundError, AlreadyExistsError, ConflictError, InvalidError):
        assert issubclass(cls, ServerError)
