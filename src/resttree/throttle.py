"""Adaptive dual-tier throttle controller.

The controller keeps the outgoing call rate under the remote quota by
voluntarily delaying calls once the quota reported by the server drops below
a configured percentage. Two tiers (normal and priority) consume the same
quota signal with independent thresholds and delays.

Delay flags live in a shared key-value store with a short freshness window so
that several clients, threads or worker processes addressing the same tenant
observe each other's quota readings. Reading a flag before a call and writing
it after a call are not atomic with respect to each other: under concurrent
load the controller limits the rate probabilistically, not as a hard
guarantee.
"""

import threading
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from cachetools import TLRUCache  # type: ignore[import-untyped]
from pydantic import BaseModel

from .config import ThrottleSettings
from .exceptions import ConfigurationError
from .log_config import logger
from .types import ApiFamily, ThrottleTier

DEFAULT_DELAY_MS: dict[ThrottleTier, int] = {
    ThrottleTier.NORMAL: 500,
    ThrottleTier.PRIORITY: 250,
}


@runtime_checkable
class ThrottleStore(Protocol):
    """Shared key-value store holding the throttle flags."""

    def put(self, key: str, value: bool, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> bool | None: ...


class MemoryThrottleStore:
    """In-process store with a per-entry time to live.

    One instance shared by every client of a process makes the flags
    process-wide.
    """

    def __init__(self, maxsize: int = 1024, timer: Callable[[], float] = time.monotonic):
        self._cache: TLRUCache = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, value, now: now + value[1],
            timer=timer,
        )
        self._lock = threading.Lock()

    def put(self, key: str, value: bool, ttl_seconds: int) -> None:
        with self._lock:
            self._cache[key] = (value, ttl_seconds)

    def get(self, key: str) -> bool | None:
        with self._lock:
            entry = self._cache.get(key)
        return None if entry is None else entry[0]


class RedisThrottleStore:
    """Store sharing the flags across processes through Redis.

    Requires the ``redis`` extra. Values are stored as ``"1"``/``"0"`` with
    ``SET ... EX ttl``.
    """

    def __init__(self, client: Any | None = None, *, url: str | None = None):
        if client is None:
            if url is None:
                raise ConfigurationError(
                    "RedisThrottleStore needs either a redis client or a url"
                )
            try:
                import redis
            except ImportError as e:
                raise ConfigurationError(
                    "RedisThrottleStore requires the 'redis' package (pip install resttree[redis])"
                ) from e
            client = redis.Redis.from_url(url)
        self._redis = client

    def put(self, key: str, value: bool, ttl_seconds: int) -> None:
        self._redis.set(key, "1" if value else "0", ex=ttl_seconds)

    def get(self, key: str) -> bool | None:
        raw = self._redis.get(key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return raw == "1"


_default_store: MemoryThrottleStore | None = None
_default_store_lock = threading.Lock()


def default_store() -> MemoryThrottleStore:
    """Return the process-wide in-memory store."""
    global _default_store
    with _default_store_lock:
        if _default_store is None:
            _default_store = MemoryThrottleStore()
        return _default_store


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class QuotaReading(BaseModel):
    """Quota usage reported by the server for one call."""

    available: int | None = None
    maximum: int | None = None
    retry_after: float | None = None
    restore_rate: float | None = None
    requested_cost: float | None = None
    actual_cost: float | None = None

    @property
    def reported(self) -> bool:
        return bool(self.available is not None and self.maximum)

    @classmethod
    def from_rest_headers(
        cls, headers: Mapping[str, str], call_limit_header: str
    ) -> "QuotaReading":
        """Parse the ``"used/maximum"`` call-limit header and ``Retry-After``."""
        lowered = {k.lower(): v for k, v in headers.items()}
        retry_after: float | None = None
        retry_header = lowered.get("retry-after")
        if retry_header:
            try:
                retry_after = float(retry_header)
            except ValueError:
                logger.warning(f"Could not parse Retry-After header: {retry_header}")

        call_limit = lowered.get(call_limit_header.lower())
        if not call_limit or "/" not in call_limit:
            return cls(retry_after=retry_after)
        used_str, _, maximum_str = call_limit.partition("/")
        used, maximum = _to_int(used_str), _to_int(maximum_str)
        if used is None or maximum is None:
            logger.warning(f"Could not parse call limit header: {call_limit}")
            return cls(retry_after=retry_after)
        return cls(available=maximum - used, maximum=maximum, retry_after=retry_after)

    @classmethod
    def from_graphql_body(cls, body: Any) -> "QuotaReading":
        """Read ``extensions.cost`` of a GraphQL response body."""
        if not isinstance(body, Mapping):
            return cls()
        cost = (body.get("extensions") or {}).get("cost") or {}
        status = cost.get("throttleStatus") or {}
        return cls(
            available=_to_int(status.get("currentlyAvailable")),
            maximum=_to_int(status.get("maximumAvailable")),
            restore_rate=status.get("restoreRate"),
            requested_cost=cost.get("requestedQueryCost"),
            actual_cost=cost.get("actualQueryCost"),
        )


class ThrottleController:
    """Gates calls on, and updates, the shared per-tier delay flags.

    Attributes:
        settings: Thresholds, delays and freshness window.
        store: Shared key-value store holding the flags.
        tenant: Tenant identity scoping the flags.
    """

    def __init__(
        self,
        settings: ThrottleSettings,
        store: ThrottleStore | None = None,
        *,
        tenant: str = "",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.store: ThrottleStore = store if store is not None else default_store()
        self.tenant = tenant
        self._sleep = sleep

    def cache_key(self, api_family: ApiFamily, tier: ThrottleTier) -> str:
        key = f"{self.tenant}_{self.settings.key_prefix}_{api_family.value.lower()}_throttle"
        if tier is ThrottleTier.PRIORITY:
            key += "_priority"
        return key

    def update(
        self,
        api_family: ApiFamily,
        available: int | None,
        maximum: int | None,
    ) -> bool:
        """Record quota usage reported after a call.

        Both tier flags are written with the configured freshness window. The
        update is skipped entirely when throttling is disabled or no quota was
        reported.

        Returns:
            bool: The normal tier flag that was written (False when skipped).
        """
        if not self.settings.enabled or available is None or not maximum:
            return False

        percent_available = available / maximum * 100
        ttl = self.settings.flag_ttl_seconds

        normal = (
            self.settings.threshold is not None
            and percent_available < self.settings.threshold
        )
        priority = (
            self.settings.priority_threshold is not None
            and percent_available < self.settings.priority_threshold
        )
        self.store.put(self.cache_key(api_family, ThrottleTier.NORMAL), normal, ttl)
        self.store.put(self.cache_key(api_family, ThrottleTier.PRIORITY), priority, ttl)
        logger.debug(
            f"{api_family.value} quota {available}/{maximum} ({percent_available:.1f}% available): "
            f"delay normal={normal}, priority={priority}"
        )
        return normal

    def is_throttled(self, api_family: ApiFamily, tier: ThrottleTier) -> bool:
        return bool(self.store.get(self.cache_key(api_family, tier)))

    def delay_ms(self, tier: ThrottleTier) -> int:
        """Configured delay of ``tier``, or its default if not a non-negative integer."""
        value = (
            self.settings.priority_milliseconds
            if tier is ThrottleTier.PRIORITY
            else self.settings.milliseconds
        )
        if isinstance(value, bool):
            return DEFAULT_DELAY_MS[tier]
        if isinstance(value, int) and value >= 0:
            return value
        if isinstance(value, float) and value.is_integer() and value >= 0:
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        return DEFAULT_DELAY_MS[tier]

    def gate(self, api_family: ApiFamily, tier: ThrottleTier) -> int:
        """Block before a call while the tier's delay flag is set.

        Returns:
            int: The number of milliseconds slept.
        """
        if not self.is_throttled(api_family, tier):
            return 0
        delay = self.delay_ms(tier)
        logger.info(
            f"Throttling {self.tenant or 'tenant'} {api_family.value} API ({tier.value}) for {delay}ms"
        )
        self._sleep(delay / 1000)
        return delay
