# tests/conftest.py
from collections.abc import Mapping
from typing import Any

import pytest

from resttree.config import ResttreeSettings, ThrottleSettings
from resttree.executor import RequestExecutor
from resttree.resources import ResourceNode
from resttree.throttle import MemoryThrottleStore, ThrottleController
from resttree.types import ResponseEnvelope

API_URL = "https://shop.example.com/admin/api/2024-01"


# --- Resource types used across the tests ---


class Product(ResourceNode):
    resource_key = "product"
    search_enabled = True
    child_resources = {"Image": "ProductImage", "Variant": "ProductVariant"}
    custom_get_actions = {"inventory": "inventory_levels"}


class ProductImage(ResourceNode):
    resource_key = "image"


class ProductVariant(ResourceNode):
    resource_key = "variant"
    count_enabled = False


class GiftCard(ResourceNode):
    resource_key = "gift_card"
    search_enabled = True
    custom_post_actions = ("disable",)


class Discount(ResourceNode):
    resource_key = "discount"
    custom_post_actions = {"enable": "enable", "make_default": "default"}
    custom_put_actions = ("reorder",)
    custom_delete_actions = ("purge",)
    custom_get_actions = {"Enable": "shouting"}


class Shop(ResourceNode):
    resource_key = "shop"
    resource_path = "shop"
    read_only = True
    count_enabled = False
    custom_post_actions = ("activate",)
    custom_get_actions = ("status",)


class Country(ResourceNode):
    resource_key = "country"
    plural_key = "countries"
    child_resources = ("Province",)


class Province(ResourceNode):
    resource_key = "province"


class Collect(ResourceNode):
    resource_key = "collect"
    post_key = "collect_item"


# --- Fakes ---


class FakeTransport:
    """Transport returning queued envelopes and recording every call."""

    def __init__(self, *envelopes: ResponseEnvelope):
        self.envelopes = list(envelopes)
        self.calls: list[tuple[str, str, Mapping[str, str], Any]] = []

    def queue(self, body: Any = None, status_code: int | None = 200, headers=None):
        self.envelopes.append(
            ResponseEnvelope(body=body, status_code=status_code, headers=headers or {})
        )

    def execute(self, method, url, headers, body=None):
        self.calls.append((method, url, headers, body))
        if self.envelopes:
            return self.envelopes.pop(0)
        return ResponseEnvelope(body={}, status_code=200)


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RecordingSink:
    def __init__(self):
        self.records = []

    def emit(self, record) -> None:
        self.records.append(record)


# --- Fixtures ---


@pytest.fixture
def throttle_settings():
    return ThrottleSettings(threshold=30, priority_threshold=20)


@pytest.fixture
def settings(throttle_settings):
    return ResttreeSettings(
        api_url=API_URL,
        tenant="test-shop",
        access_token="shpat_test",
        throttle=throttle_settings,
        _env_file=None,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return MemoryThrottleStore()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def throttle(settings, store, sleep):
    return ThrottleController(settings.throttle, store, tenant=settings.tenant, sleep=sleep)


@pytest.fixture
def executor(settings, transport, throttle, sink):
    return RequestExecutor(settings, transport, throttle, sinks=[sink])
