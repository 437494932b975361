"""Cursor pagination links carried in the ``Link`` response header.

Responses from API versions older than the configured minimum use a different
pagination scheme and never yield links.
"""

import re
from collections.abc import Mapping

import httpx
from pydantic import BaseModel

DEFAULT_VERSION_HEADER = "X-Shopify-Api-Version"
DEFAULT_MIN_VERSION = "2019-07"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def page_params(url: str | None) -> dict[str, str | list[str]]:
    """Return the query string of ``url`` as a parameter mapping.

    Repeated ``key[]`` parameters are collected into a list under ``key``, so
    the mapping can be passed back to ``get`` unchanged. For any other
    repeated key the last value wins.
    """
    if not url:
        return {}
    params: dict[str, str | list[str]] = {}
    for key, value in httpx.URL(url).params.multi_items():
        if key.endswith("[]"):
            values = params.setdefault(key[:-2], [])
            if isinstance(values, list):
                values.append(value)
            else:
                params[key[:-2]] = [value]
        else:
            params[key] = value
    return params


class PageLinks(BaseModel):
    """Next/previous cursor URLs of the last list-style response."""

    next_link: str | None = None
    prev_link: str | None = None

    def next_page_params(self) -> dict[str, str | list[str]]:
        return page_params(self.next_link)

    def prev_page_params(self) -> dict[str, str | list[str]]:
        return page_params(self.prev_link)


def parse_link(
    headers: Mapping[str, str],
    rel: str = "next",
    *,
    version_header: str = DEFAULT_VERSION_HEADER,
    min_version: str = DEFAULT_MIN_VERSION,
) -> str | None:
    """Extract the URL of the ``rel`` segment of the ``Link`` header.

    Args:
        headers: Response headers, matched case-insensitively.
        rel: Relation to look for, ``"next"`` or ``"previous"``.
        version_header: Name of the header carrying the API version.
        min_version: Date-formatted version before which links are unsupported.

    Returns:
        str | None: The URL between ``<`` and ``>``, or None.
    """
    version = _header(headers, version_header)
    if version is not None and version < min_version:
        return None

    link_header = _header(headers, "link")
    if not link_header:
        return None

    pattern = re.compile(r'<(.*?)>; rel="' + re.escape(rel) + '"', re.IGNORECASE)
    for segment in link_header.split(","):
        match = pattern.search(segment)
        if match:
            return match.group(1)
    return None


def extract_links(
    headers: Mapping[str, str],
    *,
    version_header: str = DEFAULT_VERSION_HEADER,
    min_version: str = DEFAULT_MIN_VERSION,
) -> PageLinks:
    return PageLinks(
        next_link=parse_link(
            headers, "next", version_header=version_header, min_version=min_version
        ),
        prev_link=parse_link(
            headers, "previous", version_header=version_header, min_version=min_version
        ),
    )
