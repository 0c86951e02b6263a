"""Outbound HTTP used to fetch property values and forward rendered output."""

from .http import (
    HttpClient,
    HttpResponse,
    fetch_property_values,
    forward_rendered,
    normalize_request_spec,
)

__all__ = [
    "HttpClient",
    "HttpResponse",
    "fetch_property_values",
    "forward_rendered",
    "normalize_request_spec",
]
