"""
Contract Tests for the Error Taxonomy
Every error kind maps to exactly one HTTP status, and handlers never raise.
"""

import asyncio

import pytest
from hypothesis import given, strategies as st

from mms_adapter.api.handlers import LegacyRequest, legacy_handler
from mms_adapter.contracts import (
    AdapterError,
    AuthenticationError,
    DataFormatError,
    ErrorCode,
    MalformedIdentifierError,
    NotFoundError,
    NotImplementedEndpointError,
    PermissionDeniedError,
    STATUS_CODES,
    ServerError,
    get_status_code,
)


@pytest.mark.parametrize("error_type, status", [
    (DataFormatError, 400),
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (ServerError, 500),
    (MalformedIdentifierError, 500),
    (NotImplementedEndpointError, 501),
])
def test_status_per_error_kind(error_type, status):
    assert error_type("x").status_code == status
    assert get_status_code(error_type("x")) == status


def test_every_code_has_a_status():
    assert set(STATUS_CODES) == set(ErrorCode)


def test_foreign_errors_are_server_errors():
    assert get_status_code(KeyError("x")) == 500


ERROR_TYPES = [
    DataFormatError, AuthenticationError, PermissionDeniedError,
    NotFoundError, ServerError, MalformedIdentifierError, RuntimeError,
]


@given(st.sampled_from(ERROR_TYPES), st.text(max_size=40))
def test_wrapped_handler_always_returns(error_type, message):
    @legacy_handler
    async def failing(request, response):
        response.payload = {"partial": True}
        raise error_type(message)

    response = asyncio.run(failing(LegacyRequest(backend=None, user="u")))

    assert response.payload == {"message": message}
    expected = error_type(message).status_code if issubclass(error_type, AdapterError) else 500
    assert response.status_code == expected
