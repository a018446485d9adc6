"""Property tests for ErrorFactory.

Every non-2xx response maps to a RemoteError that keeps the upstream
status and body; only the overloaded status is marked retryable.
"""

from __future__ import annotations

import httpx
from hypothesis import given, settings, strategies as st

from cloud_objects_sdk.core.errors import ErrorFactory
from cloud_objects_sdk.errors import (
    RETRYABLE_STATUS,
    CloudObjectsError,
    ErrorCode,
    RemoteError,
    TransportError,
)

from helpers import respond


error_statuses = st.integers(min_value=300, max_value=599)
error_messages = st.text(min_size=1, max_size=100, alphabet=st.characters(whitelist_categories=("L", "N", "P", "S")))
correlation_ids = st.uuids().map(str)
bodies = st.one_of(
    st.none(),
    st.text(max_size=50),
    st.dictionaries(st.text(max_size=10), st.integers(), max_size=5),
)


class TestErrorFactoryProperties:
    """Property tests for ErrorFactory."""

    @given(status_code=error_statuses, body=bodies, correlation_id=correlation_ids)
    @settings(max_examples=100)
    def test_from_response_keeps_upstream_details(
        self,
        status_code: int,
        body: object,
        correlation_id: str,
    ) -> None:
        error = ErrorFactory.from_response(
            respond(status_code, body), correlation_id=correlation_id
        )

        assert isinstance(error, RemoteError)
        assert error.status_code == status_code
        assert error.body == body
        assert error.correlation_id == correlation_id
        assert str(status_code) in error.message

    @given(status_code=error_statuses)
    @settings(max_examples=100)
    def test_only_overloaded_status_is_retryable(self, status_code: int) -> None:
        error = ErrorFactory.from_response(respond(status_code))

        assert error.is_retryable == (status_code == RETRYABLE_STATUS)
        expected = ErrorCode.SERVICE_OVERLOADED if error.is_retryable else ErrorCode.REMOTE_ERROR
        assert error.code == expected

    @given(message=error_messages)
    @settings(max_examples=50)
    def test_server_message_is_surfaced(self, message: str) -> None:
        error = ErrorFactory.from_response(respond(400, {"message": message}))

        assert message in error.message

    @given(message=error_messages)
    @settings(max_examples=50)
    def test_httpx_errors_become_transport_errors(self, message: str) -> None:
        for exc in (
            httpx.ConnectError(message),
            httpx.ReadTimeout(message),
            httpx.RemoteProtocolError(message),
        ):
            error = ErrorFactory.from_exception(exc)

            assert isinstance(error, TransportError)
            assert isinstance(error, CloudObjectsError)
            assert error.__cause__ is exc
            assert error.correlation_id is not None
