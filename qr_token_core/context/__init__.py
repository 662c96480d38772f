"""Request context and client provenance."""

from .request_context import ClientContext, RequestContext, request_context

__all__ = ["ClientContext", "RequestContext", "request_context"]
