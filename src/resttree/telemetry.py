"""Per-call telemetry records and sinks.

A ``TelemetryRecord`` is computed for every call made by the request
executor, whether or not any sink is attached. Sinks decide what to do with
it; storage backends are left to the application.
"""

import json
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from .log_config import logger
from .types import ApiFamily


class TelemetryRecord(BaseModel):
    """Everything a logging collaborator needs to know about one call.

    The payload and header fields are only filled in when the client is
    configured for verbose telemetry.
    """

    api_family: ApiFamily
    request_verb: str
    url: str
    status_code: int | None = None
    quota_available: int | None = None
    quota_maximum: int | None = None
    retry_after: float | None = None
    restore_rate: float | None = None
    requested_query_cost: float | None = None
    actual_query_cost: float | None = None
    error_text: str = ""
    throttled_ms: int = 0
    request_payload: Any | None = None
    response_payload: Any | None = None
    response_headers: dict[str, str] | None = None

    def as_line(self) -> str:
        """Render the record as a single comma-joined line."""
        fields: list[Any] = [
            self.api_family.value,
            self.request_verb,
            self.url,
            "" if self.status_code is None else self.status_code,
            "" if self.quota_available is None else self.quota_available,
            "" if self.quota_maximum is None else self.quota_maximum,
            "" if not self.retry_after else self.retry_after,
            self.error_text,
        ]
        if self.request_payload is not None:
            fields.append(json.dumps(self.request_payload, default=str))
        if self.response_payload is not None:
            fields.append(json.dumps(self.response_payload, default=str))
        if self.response_headers is not None:
            fields.append(json.dumps(self.response_headers))
        return ",".join(str(field) for field in fields)


@runtime_checkable
class TelemetrySink(Protocol):
    """Receives one ``TelemetryRecord`` per call."""

    def emit(self, record: TelemetryRecord) -> None: ...


class LogTelemetrySink:
    """Writes telemetry records through Loguru.

    Lines are bound with ``telemetry=True`` so ``configure_logging`` can route
    them to a dedicated sink.
    """

    def __init__(self, level: str = "INFO"):
        self.level = level.upper()

    def emit(self, record: TelemetryRecord) -> None:
        logger.bind(telemetry=True, record=record.model_dump(mode="json")).log(
            self.level, record.as_line()
        )


def emit_to_sinks(sinks: list[TelemetrySink], record: TelemetryRecord) -> None:
    """Deliver a record to every sink; a failing sink never fails the call."""
    for sink in sinks:
        try:
            sink.emit(record)
        except Exception as e:
            logger.exception(
                f"Error emitting telemetry to {type(sink).__name__}: {e}"
            )
