# resttree/log_config.py
"""Logging configuration for the resttree library using Loguru.

Every module logs through the shared Loguru ``logger`` re-exported here, so
applications embedding the client only need to call ``configure_logging``
once to route request, throttle and telemetry messages to their sinks.

Per-call telemetry lines are bound with ``telemetry=True`` (see
``resttree.telemetry.LogTelemetrySink``). When a dedicated telemetry sink is
given they are written there and kept out of the main sink.
"""

import sys
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
TELEMETRY_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss}] {message}"


def _is_telemetry(record: dict[str, Any]) -> bool:
    return bool(record["extra"].get("telemetry"))


def configure_logging(
    level: str = "INFO", sink=sys.stderr, *, telemetry_sink: Any | None = None
) -> None:
    """
    Configures Loguru logger.

    Removes existing handlers and adds a new one with the specified level and
    sink. If ``telemetry_sink`` is given (a path or any Loguru sink), per-call
    telemetry lines go there instead of the main sink.

    Args:
        level: The minimum logging level (e.g., "DEBUG", "INFO", "WARNING").
        sink: The output sink (e.g., sys.stderr, "file.log").
        telemetry_sink: Optional separate sink for per-call telemetry lines.
    """
    logger.remove()
    logger.add(
        sink,
        level=level.upper(),
        format=LOG_FORMAT,
        colorize=sink is sys.stderr,
        backtrace=True,
        diagnose=True,
        filter=(lambda record: not _is_telemetry(record))
        if telemetry_sink is not None
        else None,
    )
    if telemetry_sink is not None:
        logger.add(
            telemetry_sink,
            level="DEBUG",
            format=TELEMETRY_FORMAT,
            colorize=False,
            filter=_is_telemetry,
        )
    logger.info(
        f"Loguru logger configured with level={level.upper()} writing to {sink}"
        + (f", telemetry to {telemetry_sink}" if telemetry_sink is not None else "")
    )


__all__ = ["configure_logging", "logger"]
