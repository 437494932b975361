# resttree/config.py
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import PreRequestHook

DEFAULT_BENIGN_ERRORS: dict[str, Any] = {
    "account already enabled": {"account_activation_url": False},
}


class ThrottleSettings(BaseModel):
    """Per-tier thresholds and delays of the throttle controller.

    Thresholds are percentages of the remaining quota: a tier is flagged for
    delay once ``available / maximum * 100`` drops below its threshold. A
    ``None`` threshold never flags the tier.

    The delay values are accepted as-is and only used when they are valid
    non-negative integers; anything else falls back to 500 ms (normal) or
    250 ms (priority).
    """

    enabled: bool = Field(default=True, description="Enable/disable throttling")
    threshold: float | None = Field(
        default=None, description="Normal tier threshold (percent available)"
    )
    milliseconds: Any = Field(
        default=500, description="Normal tier delay in milliseconds"
    )
    priority_threshold: float | None = Field(
        default=None, description="Priority tier threshold (percent available)"
    )
    priority_milliseconds: Any = Field(
        default=250, description="Priority tier delay in milliseconds"
    )
    flag_ttl_seconds: int = Field(
        default=60, description="Freshness window of the shared delay flags"
    )
    key_prefix: str = Field(
        default="api", description="Middle segment of the shared store keys"
    )


class ResttreeSettings(BaseSettings):
    """
    Manages user-configurable settings for resttree clients, primarily loaded
    from environment variables (prefix ``RESTTREE_``) or a .env file.

    Nested throttle settings can be given as ``RESTTREE_THROTTLE__THRESHOLD``.
    The core only reads these values; they are never written back.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "secrets.env"),
        env_file_encoding="utf-8",
        env_prefix="RESTTREE_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        arbitrary_types_allowed=True,
    )

    # --- Tenant and credentials ---
    api_url: str = Field(
        default="",
        description="Root URL of the resource tree, e.g. https://shop.example.com/admin/api/2024-01",
    )
    tenant: str = Field(default="", description="Tenant identity (e.g. shop name)")
    access_token: str | None = Field(default=None, description="API access token")
    api_key: str | None = Field(default=None, description="Private app API key")
    password: str | None = Field(default=None, description="Private app password")
    access_token_header: str = Field(
        default="X-Shopify-Access-Token",
        description="Header carrying the access token",
    )
    api_features: list[str] = Field(
        default_factory=list, description="Opt-in API features sent with requests"
    )
    api_features_header: str = Field(default="X-Shopify-Api-Features")

    # --- Transport behaviour ---
    request_timeout: float = Field(
        default=30.0, description="Default request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of socket-level retries (timeouts, connection errors)",
    )
    backoff_factor: float = Field(
        default=0.5, description="Backoff factor for socket-level retries (seconds)"
    )
    user_agent: str = Field(
        default="resttree/0.1.0", description="User-Agent header for requests"
    )

    # --- Response interpretation ---
    api_version_header: str = Field(default="X-Shopify-Api-Version")
    min_link_api_version: str = Field(
        default="2019-07",
        description="Oldest API version whose responses carry pagination links",
    )
    call_limit_header: str = Field(
        default="X-Shopify-Shop-Api-Call-Limit",
        description='REST quota header in "used/maximum" form',
    )
    benign_errors: dict[str, Any] = Field(
        default_factory=lambda: dict(DEFAULT_BENIGN_ERRORS),
        description="Flattened error messages returned as results instead of raised",
    )

    # --- Throttling ---
    throttle: ThrottleSettings = Field(default_factory=ThrottleSettings)

    # --- Telemetry and hooks ---
    telemetry_verbose: bool = Field(
        default=False,
        description="Include request/response payloads and headers in telemetry",
    )
    telemetry_sinks: list[Any] = Field(
        default_factory=list,
        description="Sinks receiving one TelemetryRecord per call.",
    )
    pre_request_hooks: list[PreRequestHook] = Field(
        default_factory=list,
        description="List of hooks to call before a request is sent.",
    )


@lru_cache
def get_settings() -> ResttreeSettings:
    """
    Provides access to the resttree settings.

    Settings are loaded from environment variables or .env/secrets.env files.
    The instance is cached for performance.

    Returns:
        ResttreeSettings: The settings instance.
    """
    return ResttreeSettings()
