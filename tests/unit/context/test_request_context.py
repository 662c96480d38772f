"""
Tests for request context management.
"""

import threading

import pytest
from pydantic import ValidationError as PydanticValidationError

from qr_token_core.context import ClientContext, RequestContext, request_context
from qr_token_core.exceptions import get_correlation_id


class TestRequestContext:
    def test_sets_and_restores_ids(self):
        assert RequestContext.get_request_id() is None

        with request_context("req-1") as request_id:
            assert request_id == "req-1"
            assert RequestContext.get_request_id() == "req-1"
            assert get_correlation_id() == "req-1"

        assert RequestContext.get_request_id() is None
        assert get_correlation_id() is None

    def test_generates_request_id(self):
        with request_context() as request_id:
            assert request_id
            assert RequestContext.get_request_id() == request_id

    def test_nested_contexts_restore_outer(self):
        with request_context("outer"):
            with request_context("inner"):
                assert RequestContext.get_request_id() == "inner"
            assert RequestContext.get_request_id() == "outer"
            assert get_correlation_id() == "outer"

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with request_context("req-err"):
                raise RuntimeError("boom")

        assert RequestContext.get_request_id() is None

    def test_thread_isolation(self):
        seen = {}

        def worker():
            seen["worker"] = RequestContext.get_request_id()

        with request_context("main-thread"):
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()

        assert seen["worker"] is None


class TestClientContext:
    def test_defaults_are_empty(self):
        context = ClientContext()

        assert context.ip_address is None
        assert context.user_agent is None

    def test_field_limits(self):
        with pytest.raises(PydanticValidationError):
            ClientContext(ip_address="1" * 46)
        with pytest.raises(PydanticValidationError):
            ClientContext(user_agent="a" * 501)

    def test_immutable(self):
        context = ClientContext(ip_address="10.0.0.1")

        with pytest.raises(PydanticValidationError):
            context.ip_address = "10.0.0.2"
