"""Interpretation of a single response envelope.

The processor turns a ``ResponseEnvelope`` into either the requested payload,
a redirect location, or one of the typed failures in ``resttree.exceptions``.
Pagination links are extracted on every call, including failing ones.
"""

import copy
from collections.abc import Callable, Mapping
from http import HTTPStatus
from typing import Any

from .config import DEFAULT_BENIGN_ERRORS
from .exceptions import ApiError, TransportError
from .log_config import logger
from .pagination import DEFAULT_MIN_VERSION, DEFAULT_VERSION_HEADER, PageLinks, extract_links
from .types import ResponseEnvelope

SUCCESS_STATUSES: frozenset[int] = frozenset(
    [HTTPStatus.OK, HTTPStatus.CREATED, HTTPStatus.NO_CONTENT]
)


def flatten_errors(value: Any) -> str:
    """Render an ``errors`` value as a single human-readable string.

    Mappings become ``"key - value"`` pairs, lists are comma-joined without
    keys, and nested values are rendered recursively.

    Example:
        >>> flatten_errors({"title": ["can't be blank"], "price": "is invalid"})
        "title - can't be blank, price - is invalid"
    """
    if isinstance(value, Mapping):
        parts = [f"{key} - {flatten_errors(val)}" for key, val in value.items()]
    elif isinstance(value, list | tuple):
        parts = [flatten_errors(val) for val in value]
    else:
        return str(value)
    return ", ".join(parts)


class ResponseProcessor:
    """Classifies response envelopes into results or typed failures.

    Attributes:
        benign_errors: Flattened error messages mapped to the result returned
            in their place instead of raising ``ApiError``.
    """

    def __init__(
        self,
        benign_errors: Mapping[str, Any] | None = None,
        *,
        version_header: str = DEFAULT_VERSION_HEADER,
        min_link_version: str = DEFAULT_MIN_VERSION,
    ):
        self.benign_errors: dict[str, Any] = dict(
            DEFAULT_BENIGN_ERRORS if benign_errors is None else benign_errors
        )
        self._version_header = version_header
        self._min_link_version = min_link_version

    def process(
        self,
        envelope: ResponseEnvelope,
        data_key: str | None = None,
        on_links: Callable[[PageLinks], None] | None = None,
    ) -> tuple[Any, PageLinks]:
        """Process one response.

        Args:
            envelope: The response envelope of the call.
            data_key: Key of the payload to unwrap from the body, if present.
            on_links: Receives the extracted links before the outcome is
                classified, so they are stored even when processing fails.

        Returns:
            tuple[Any, PageLinks]: The result and the pagination links
                extracted from the response headers.

        Raises:
            TransportError: If no body was decoded and the status is not an
                accepted success status.
            ApiError: If the body carries a non-benign ``errors`` field.
        """
        links = extract_links(
            envelope.headers,
            version_header=self._version_header,
            min_version=self._min_link_version,
        )
        if on_links is not None:
            on_links(links)
        body = envelope.body
        status = envelope.status_code

        if not envelope.has_body:
            if status == HTTPStatus.SEE_OTHER and "location" in envelope.headers:
                return {"location": envelope.headers["location"]}, links
            if status is not None and status not in SUCCESS_STATUSES:
                logger.error(f"Request failed with HTTP code {status} and no body")
                raise TransportError(status)

        if isinstance(body, Mapping) and body.get("errors") is not None:
            message = flatten_errors(body["errors"])
            if message in self.benign_errors:
                logger.info(f"Treating API error '{message}' as a result")
                return copy.deepcopy(self.benign_errors[message]), links
            logger.warning(f"API returned errors (status {status}): {message}")
            raise ApiError(message, status_code=status)

        if data_key and isinstance(body, Mapping) and body.get(data_key) is not None:
            return body[data_key], links
        return body, links
