# resttree/types.py
"""Core type definitions and data structures for resttree.

This module defines the values exchanged between the request executor and
its collaborators: the API family and throttle tier enumerations, the
outgoing request description handed to the transport, and the per-call
response envelope consumed by the response processor.
"""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiFamily(str, Enum):
    """API families with independently reported quotas."""

    REST = "REST"
    GRAPHQL = "GraphQL"


class ThrottleTier(str, Enum):
    """Throttle classes sharing one quota signal with separate thresholds."""

    NORMAL = "normal"
    PRIORITY = "priority"


class RequestData(BaseModel):
    """Encapsulates data for a single HTTP request."""

    method: str
    url: str
    json_data: Any | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    def build_request(self) -> httpx.Request:
        """Builds an httpx.Request object from the stored data."""
        return httpx.Request(
            method=self.method,
            url=self.url,
            json=self.json_data,
            headers=self.headers,
        )


class ResponseEnvelope(BaseModel):
    """The observable outcome of one call, consumed once by the processor.

    Attributes:
        body: The decoded JSON value, or ``None`` when no body was decoded.
        status_code: Status of the last response, ``None`` if unknown.
        headers: Last response headers with lower-cased names.
    """

    body: Any | None = None
    status_code: int | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("headers", mode="before")
    @classmethod
    def _lower_header_names(cls, value: Mapping[str, str] | None) -> dict[str, str]:
        if value is None:
            return {}
        return {str(k).lower(): v for k, v in value.items()}

    @property
    def has_body(self) -> bool:
        return self.body is not None


PreRequestHook = Callable[[str, str, httpx.Headers, Any | None], None]
"""Type alias for a pre-request hook.

Pre-request hooks are called by the transport right before a request is sent.

Args:
    method (str): The HTTP method of the request (e.g., "GET", "POST").
    url (str): The full URL of the request.
    headers (httpx.Headers): A mutable `httpx.Headers` object. Hooks can
        modify this object in place.
    body (Any | None): The JSON payload about to be sent, if any.
Return:
    None: Hooks are expected to modify arguments in-place or perform side effects.
"""
