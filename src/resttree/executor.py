"""Request pipeline shared by every resource node of a client.

Each call goes through the same steps: wait on the throttle gate of the
current tier, hand the request to the transport, feed the reported quota back
into the throttle controller, emit telemetry, and let the response processor
classify the outcome. Nothing is retried here.
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any

import httpx

from .config import ResttreeSettings
from .log_config import logger
from .pagination import PageLinks
from .processor import ResponseProcessor, flatten_errors
from .telemetry import TelemetryRecord, TelemetrySink, emit_to_sinks
from .throttle import QuotaReading, ThrottleController
from .transport import Transport
from .types import ApiFamily, ResponseEnvelope, ThrottleTier


def _flatten_params(prefix: str, value: Any) -> list[tuple[str, str]]:
    if value is None:
        return []
    if isinstance(value, Mapping):
        pairs: list[tuple[str, str]] = []
        for key, val in value.items():
            pairs.extend(_flatten_params(f"{prefix}[{key}]", val))
        return pairs
    if isinstance(value, Sequence) and not isinstance(value, str | bytes):
        pairs = []
        for val in value:
            pairs.extend(_flatten_params(f"{prefix}[]", val))
        return pairs
    if isinstance(value, bool):
        return [(prefix, "true" if value else "false")]
    return [(prefix, str(value))]


def build_query(params: Mapping[str, Any]) -> str:
    """Encode query parameters deterministically, in insertion order.

    Nested mappings become ``key[sub]=...``, sequences repeat ``key[]=...``
    and ``None`` values are dropped.

    Example:
        >>> build_query({"ids": [1, 2], "fields": "id,title"})
        'ids%5B%5D=1&ids%5B%5D=2&fields=id%2Ctitle'
    """
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        pairs.extend(_flatten_params(str(key), value))
    return str(httpx.QueryParams(pairs))


def build_url(
    base_url: str,
    params: Mapping[str, Any] | None = None,
    action: str | None = None,
) -> str:
    """Build ``base_url[/action].json[?query]``."""
    url = base_url + (f"/{action}" if action else "") + ".json"
    query = build_query(params) if params else ""
    return f"{url}?{query}" if query else url


class RequestExecutor:
    """Runs calls through throttle, transport, telemetry and processing.

    One executor is shared by every node navigated from the same client, so
    the tier selected with ``set_priority`` sticks for all of them until it is
    changed again. Separate clients never see each other's tier.

    Attributes:
        settings: Client settings.
        transport: Transport collaborator executing the HTTP calls.
        throttle: Throttle controller gating and updated by every call.
        processor: Response processor classifying the outcome.
        sinks: Telemetry sinks receiving one record per call.
        last_response: Envelope of the most recent call, if any.
        last_record: Telemetry record of the most recent call, if any.
    """

    def __init__(
        self,
        settings: ResttreeSettings,
        transport: Transport,
        throttle: ThrottleController,
        processor: ResponseProcessor | None = None,
        sinks: list[TelemetrySink] | None = None,
    ):
        self.settings = settings
        self.transport = transport
        self.throttle = throttle
        self.processor = processor or ResponseProcessor(
            settings.benign_errors,
            version_header=settings.api_version_header,
            min_link_version=settings.min_link_api_version,
        )
        self.sinks: list[TelemetrySink] = list(
            settings.telemetry_sinks if sinks is None else sinks
        )
        self._tier = ThrottleTier.NORMAL
        self.last_response: ResponseEnvelope | None = None
        self.last_record: TelemetryRecord | None = None

    @property
    def tier(self) -> ThrottleTier:
        return self._tier

    def set_priority(self, is_priority: bool = True) -> None:
        """Switch every subsequent call of this executor to the given tier."""
        self._tier = ThrottleTier.PRIORITY if is_priority else ThrottleTier.NORMAL
        logger.debug(f"Throttle tier set to {self._tier.value}")

    def is_priority(self) -> bool:
        return self._tier is ThrottleTier.PRIORITY

    def _read_quota(
        self, api_family: ApiFamily, envelope: ResponseEnvelope
    ) -> QuotaReading:
        if api_family is ApiFamily.GRAPHQL:
            reading = QuotaReading.from_graphql_body(envelope.body)
            rest = QuotaReading.from_rest_headers(envelope.headers, self.settings.call_limit_header)
            return reading.model_copy(update={"retry_after": rest.retry_after})
        return QuotaReading.from_rest_headers(
            envelope.headers, self.settings.call_limit_header
        )

    def _record(
        self,
        api_family: ApiFamily,
        method: str,
        url: str,
        payload: Any | None,
        envelope: ResponseEnvelope,
        quota: QuotaReading,
        throttled_ms: int,
    ) -> TelemetryRecord:
        body = envelope.body
        errors = body.get("errors") if isinstance(body, Mapping) else None
        verbose = self.settings.telemetry_verbose
        return TelemetryRecord(
            api_family=api_family,
            request_verb=method.upper(),
            url=url,
            status_code=envelope.status_code,
            quota_available=quota.available,
            quota_maximum=quota.maximum,
            retry_after=quota.retry_after,
            restore_rate=quota.restore_rate,
            requested_query_cost=quota.requested_cost,
            actual_query_cost=quota.actual_cost,
            error_text=flatten_errors(errors) if errors else "",
            throttled_ms=throttled_ms,
            request_payload=payload if verbose else None,
            response_payload=body if verbose else None,
            response_headers=dict(envelope.headers) if verbose else None,
        )

    def send(
        self,
        method: str,
        url: str,
        payload: Any | None = None,
        *,
        data_key: str | None = None,
        api_family: ApiFamily = ApiFamily.REST,
        telemetry_payload: Any | None = None,
        on_links: Callable[[PageLinks], None] | None = None,
    ) -> tuple[Any, PageLinks]:
        """Execute one call and process its response.

        Args:
            method: HTTP verb.
            url: Absolute request URL.
            payload: JSON body for POST/PUT.
            data_key: Key to unwrap from the response body.
            api_family: API family whose quota governs the call.
            telemetry_payload: Request data reported to telemetry instead of
                ``payload`` (e.g. the query parameters of a GET).
            on_links: Receives the pagination links of the response, even
                when processing raises.

        Returns:
            tuple[Any, PageLinks]: The processed result and pagination links.
        """
        throttled_ms = self.throttle.gate(api_family, self._tier)

        envelope = self.transport.execute(method.upper(), url, {}, payload)
        self.last_response = envelope

        quota = self._read_quota(api_family, envelope)
        if quota.reported:
            self.throttle.update(api_family, quota.available, quota.maximum)
        else:
            logger.debug(f"No {api_family.value} quota reported for {method} {url}")

        record = self._record(
            api_family,
            method,
            url,
            payload if telemetry_payload is None else telemetry_payload,
            envelope,
            quota,
            throttled_ms,
        )
        self.last_record = record
        emit_to_sinks(self.sinks, record)

        return self.processor.process(envelope, data_key, on_links)
