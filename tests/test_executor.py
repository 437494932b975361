# tests/test_executor.py
import pytest

from resttree.exceptions import ApiError, TransportError
from resttree.executor import RequestExecutor, build_query, build_url
from resttree.types import ApiFamily, ResponseEnvelope, ThrottleTier

CALL_LIMIT = "X-Shopify-Shop-Api-Call-Limit"


# --- URL construction ---


def test_build_url_without_params():
    assert build_url("https://x/admin/products") == "https://x/admin/products.json"


def test_build_url_with_action_and_params():
    url = build_url("https://x/admin/products", {"limit": 50, "status": "active"}, "count")

    assert url == "https://x/admin/products/count.json?limit=50&status=active"


def test_build_url_empty_params_has_no_query():
    assert build_url("https://x/p", {}) == "https://x/p.json"
    assert build_url("https://x/p", {"skip": None}) == "https://x/p.json"


def test_build_query_is_deterministic_and_ordered():
    params = {"b": 2, "a": 1}

    assert build_query(params) == "b=2&a=1"
    assert build_query(params) == build_query(dict(params))


def test_build_query_nested_values():
    query = build_query(
        {"ids": [1, 2], "filter": {"vendor": "Acme Co"}, "published": True, "x": None}
    )

    assert query == (
        "ids%5B%5D=1&ids%5B%5D=2&filter%5Bvendor%5D=Acme+Co&published=true"
    )


# --- Tier selection ---


def test_tier_defaults_to_normal_and_is_sticky(executor):
    assert executor.tier is ThrottleTier.NORMAL
    assert not executor.is_priority()

    executor.set_priority()
    assert executor.is_priority()
    assert executor.tier is ThrottleTier.PRIORITY

    executor.set_priority(False)
    assert executor.tier is ThrottleTier.NORMAL


# --- Pipeline ---


def test_send_returns_processed_result_and_links(executor, transport):
    transport.queue(
        {"products": [{"id": 1}]},
        headers={"Link": '<https://x/p.json?page_info=n>; rel="next"'},
    )

    result, links = executor.send("get", "https://x/p.json", data_key="products")

    assert result == [{"id": 1}]
    assert links.next_page_params() == {"page_info": "n"}
    assert transport.calls == [("GET", "https://x/p.json", {}, None)]


def test_send_updates_throttle_from_call_limit_header(executor, transport, throttle):
    transport.queue({}, headers={CALL_LIMIT: "36/40"})  # 10% available

    executor.send("GET", "https://x/p.json")

    assert throttle.is_throttled(ApiFamily.REST, ThrottleTier.NORMAL)
    assert throttle.is_throttled(ApiFamily.REST, ThrottleTier.PRIORITY)


def test_quarter_quota_left_flags_only_normal_tier(executor, transport, throttle):
    transport.queue({}, headers={CALL_LIMIT: "30/40"})  # 25%: not below 20

    executor.send("GET", "https://x/p.json")

    assert throttle.is_throttled(ApiFamily.REST, ThrottleTier.NORMAL)
    assert not throttle.is_throttled(ApiFamily.REST, ThrottleTier.PRIORITY)


def test_send_without_quota_leaves_flags_untouched(executor, transport, throttle, store):
    transport.queue({})

    executor.send("GET", "https://x/p.json")

    assert store.get(throttle.cache_key(ApiFamily.REST, ThrottleTier.NORMAL)) is None


def test_throttled_call_sleeps_before_transport(executor, transport, sleep):
    order: list[str] = []
    executor.throttle._sleep = lambda seconds: order.append(f"sleep {seconds}")
    original_execute = transport.execute

    def execute(*args, **kwargs):
        order.append("execute")
        return original_execute(*args, **kwargs)

    transport.execute = execute
    transport.queue({}, headers={CALL_LIMIT: "35/40"})  # 12.5% available
    transport.queue({})

    executor.send("GET", "https://x/p.json")
    executor.send("GET", "https://x/p.json")

    assert order == ["execute", "sleep 0.5", "execute"]


def test_priority_tier_uses_priority_flag_and_delay(settings, transport, throttle, sleep):
    executor = RequestExecutor(settings, transport, throttle, sinks=[])
    executor.set_priority()
    transport.queue({}, headers={CALL_LIMIT: "35/40"})

    executor.send("GET", "https://x/p.json")
    executor.send("GET", "https://x/p.json")

    assert sleep.calls == [0.25]


def test_priority_tier_not_delayed_between_thresholds(settings, transport, throttle, sleep):
    executor = RequestExecutor(settings, transport, throttle, sinks=[])
    executor.set_priority()
    transport.queue({}, headers={CALL_LIMIT: "29/40"})  # 27.5% available

    executor.send("GET", "https://x/p.json")
    executor.send("GET", "https://x/p.json")

    assert sleep.calls == []


def test_quota_update_happens_before_processing_errors(executor, transport, throttle):
    transport.queue({"errors": "Exceeded"}, status_code=429, headers={CALL_LIMIT: "40/40"})

    with pytest.raises(ApiError):
        executor.send("GET", "https://x/p.json")

    assert throttle.is_throttled(ApiFamily.REST, ThrottleTier.NORMAL)


def test_transport_error_is_surfaced_not_retried(executor, transport):
    transport.queue(None, status_code=502)

    with pytest.raises(TransportError):
        executor.send("GET", "https://x/p.json")

    assert len(transport.calls) == 1


def test_links_callback_runs_on_failure(executor, transport):
    received = []
    transport.queue(
        None, status_code=500, headers={"link": '<https://x/p.json?page=2>; rel="next"'}
    )

    with pytest.raises(TransportError):
        executor.send("GET", "https://x/p.json", on_links=received.append)

    assert received[0].next_link == "https://x/p.json?page=2"


# --- Telemetry ---


def test_telemetry_record_fields(executor, transport, sink):
    transport.queue(
        {"errors": {"title": ["can't be blank"]}},
        status_code=422,
        headers={CALL_LIMIT: "4/40", "Retry-After": "1"},
    )

    with pytest.raises(ApiError):
        executor.send("post", "https://x/p.json", {"product": {}})

    record = sink.records[0]
    assert record.api_family is ApiFamily.REST
    assert record.request_verb == "POST"
    assert record.url == "https://x/p.json"
    assert record.status_code == 422
    assert record.quota_available == 36
    assert record.quota_maximum == 40
    assert record.retry_after == 1.0
    assert record.error_text == "title - can't be blank"
    assert record.request_payload is None
    assert record.response_headers is None


def test_verbose_telemetry_includes_payloads(settings, transport, throttle, sink):
    settings = settings.model_copy(update={"telemetry_verbose": True})
    executor = RequestExecutor(settings, transport, throttle, sinks=[sink])
    transport.queue({"product": {"id": 1}}, headers={"X-Request-Id": "abc"})

    executor.send("PUT", "https://x/p/1.json", {"product": {"title": "t"}}, data_key="product")

    record = sink.records[0]
    assert record.request_payload == {"product": {"title": "t"}}
    assert record.response_payload == {"product": {"id": 1}}
    assert record.response_headers == {"x-request-id": "abc"}


def test_telemetry_payload_override(settings, transport, throttle, sink):
    settings = settings.model_copy(update={"telemetry_verbose": True})
    executor = RequestExecutor(settings, transport, throttle, sinks=[sink])

    executor.send("GET", "https://x/p.json?limit=5", telemetry_payload={"limit": 5})

    assert sink.records[0].request_payload == {"limit": 5}


def test_telemetry_computed_without_sinks(settings, transport, throttle):
    executor = RequestExecutor(settings, transport, throttle, sinks=[])
    transport.queue({}, headers={CALL_LIMIT: "1/40"})

    executor.send("GET", "https://x/p.json")

    assert executor.last_record is not None
    assert executor.last_record.quota_available == 39
    assert executor.last_response.headers == {CALL_LIMIT.lower(): "1/40"}


def test_failing_sink_does_not_fail_call(executor, transport):
    class BrokenSink:
        def emit(self, record):
            raise RuntimeError("sink down")

    executor.sinks.insert(0, BrokenSink())
    transport.queue({"shop": {"id": 1}})

    result, _ = executor.send("GET", "https://x/shop.json", data_key="shop")

    assert result == {"id": 1}


def test_graphql_family_reads_quota_from_body(executor, transport, throttle):
    transport.queue(
        {
            "data": {},
            "extensions": {
                "cost": {
                    "throttleStatus": {"maximumAvailable": 1000, "currentlyAvailable": 100}
                }
            },
        }
    )

    executor.send("POST", "https://x/graphql.json", {"query": "{}"}, api_family=ApiFamily.GRAPHQL)

    assert throttle.is_throttled(ApiFamily.GRAPHQL, ThrottleTier.NORMAL)
    assert not throttle.is_throttled(ApiFamily.REST, ThrottleTier.NORMAL)
    assert executor.last_record.api_family is ApiFamily.GRAPHQL


def test_explicit_envelope_from_transport(executor, transport):
    transport.envelopes.append(ResponseEnvelope(body=None, status_code=204))

    result, _ = executor.send("DELETE", "https://x/p/1.json")

    assert result is None
