"""
Request context management for the QR token core.

Holds the per-request identifiers that logging and error reporting attach to
their output, and the advisory client details captured at issue and redeem
time. State lives in thread-local storage, matching the thread-per-request
model of the hosting service.
"""

import threading
import uuid
from contextlib import contextmanager
from typing import Generator, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import clear_correlation_id, get_correlation_id, set_correlation_id


class ClientContext(BaseModel):
    """
    Advisory provenance of a request.

    Recorded on the token record and in the audit trail; never used for an
    access decision.
    """

    model_config = ConfigDict(frozen=True)

    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=500)


class RequestContext:
    """
    Manages the current request id using thread-local storage.
    """

    _thread_local = threading.local()

    @classmethod
    def set_request_id(cls, request_id: str) -> None:
        cls._thread_local.request_id = request_id

    @classmethod
    def get_request_id(cls) -> Optional[str]:
        return getattr(cls._thread_local, "request_id", None)

    @classmethod
    def clear_request_id(cls) -> None:
        if hasattr(cls._thread_local, "request_id"):
            delattr(cls._thread_local, "request_id")


@contextmanager
def request_context(request_id: Optional[str] = None) -> Generator[str, None, None]:
    """
    Context manager for a single request.

    Sets the request id (generated when not given) and uses it as the
    correlation id for errors raised inside the block. Previous values are
    restored afterward.

    Args:
        request_id: Optional caller-supplied request id

    Yields:
        The active request id
    """
    request_id = request_id or str(uuid.uuid4())
    previous_request = RequestContext.get_request_id()
    previous_correlation = get_correlation_id()

    RequestContext.set_request_id(request_id)
    set_correlation_id(request_id)
    try:
        yield request_id
    finally:
        if previous_request:
            RequestContext.set_request_id(previous_request)
        else:
            RequestContext.clear_request_id()
        if previous_correlation:
            set_correlation_id(previous_correlation)
        else:
            clear_correlation_id()
