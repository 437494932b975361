"""Tests for the ApiClient entry point."""

import pytest

from resttree import ApiClient
from resttree.config import ResttreeSettings
from resttree.exceptions import ConfigurationError, UnknownChildResource
from resttree.throttle import MemoryThrottleStore
from resttree.transport import HttpxTransport
from resttree.types import ApiFamily, ThrottleTier

from conftest import API_URL, FakeTransport, Product

CALL_LIMIT = "X-Shopify-Shop-Api-Call-Limit"


@pytest.fixture
def client(settings, transport, store, sink):
    with ApiClient(settings, transport=transport, store=store, sinks=[sink]) as api:
        yield api


def test_top_level_resource(client):
    products = client.Product

    assert isinstance(products, Product)
    assert products.base_url == f"{API_URL}/products"


def test_top_level_call_style(client):
    assert client.Product(632910392).base_url == f"{API_URL}/products/632910392"
    assert client.navigate("Product", 7).base_url == f"{API_URL}/products/7"


def test_top_level_node_called_again_renavigates(client):
    node = client.Product
    item = node(3)

    assert item.base_url == f"{API_URL}/products/3"
    assert node.base_url == f"{API_URL}/products"


def test_unknown_top_level_resource(client):
    with pytest.raises(UnknownChildResource):
        client.Nope
    with pytest.raises(UnknownChildResource):
        client.navigate("product")
    assert not hasattr(client, "_hidden")


def test_full_round_trip(client, transport, sink):
    """Test a nested GET goes through the transport and reports telemetry."""
    transport.queue(
        {"images": [{"id": 850703190}]},
        headers={CALL_LIMIT: "2/40"},
    )

    result = client.Product(632910392).Image.get()

    assert result == [{"id": 850703190}]
    assert transport.calls[0][1] == f"{API_URL}/products/632910392/images.json"
    assert sink.records[0].quota_available == 38


def test_priority_is_scoped_to_the_client(settings, store):
    first = ApiClient(settings, transport=FakeTransport(), store=store, sinks=[])
    second = ApiClient(settings, transport=FakeTransport(), store=store, sinks=[])

    first.set_priority()

    assert first.is_priority()
    assert first.Product.is_priority()
    assert not second.is_priority()
    assert first.executor.tier is ThrottleTier.PRIORITY


def test_clients_of_same_tenant_share_throttle_flags(settings, store, sleep):
    first_transport = FakeTransport()
    first = ApiClient(settings, transport=first_transport, store=store, sinks=[])
    second = ApiClient(settings, transport=FakeTransport(), store=store, sinks=[])
    second.executor.throttle._sleep = sleep
    first_transport.queue({}, headers={CALL_LIMIT: "38/40"})

    first.Product.get()
    second.Product.get()

    assert sleep.calls == [0.5]
    assert second.executor.throttle.is_throttled(ApiFamily.REST, ThrottleTier.NORMAL)


def test_requires_api_url():
    with pytest.raises(ConfigurationError, match="api_url"):
        ApiClient(ResttreeSettings(api_url="", _env_file=None), transport=FakeTransport())


def test_requires_credentials_without_transport(monkeypatch):
    for name in ("RESTTREE_ACCESS_TOKEN", "RESTTREE_API_KEY", "RESTTREE_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    settings = ResttreeSettings(api_url=API_URL, _env_file=None)

    with pytest.raises(ConfigurationError, match="access token"):
        ApiClient(settings)


def test_default_transport_is_created_and_closed(settings):
    client = ApiClient(settings, store=MemoryThrottleStore())
    transport = client.executor.transport

    assert isinstance(transport, HttpxTransport)
    client.close()
    assert transport._http_client.is_closed


def test_given_transport_is_not_closed(settings):
    class ClosableTransport(FakeTransport):
        closed = False

        def close(self):
            self.closed = True

    transport = ClosableTransport()
    with ApiClient(settings, transport=transport):
        pass

    assert not transport.closed
