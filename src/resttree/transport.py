"""HTTP transport used by the request executor.

The transport sends one request and reports what came back: the status code,
the headers and the decoded JSON body (or ``None`` when the body is empty or
not JSON). It never interprets the response; that is the job of
``resttree.processor``. Socket-level failures (timeouts, refused connections)
are retried here with tenacity; HTTP error statuses are returned as-is.
"""

import json
import ssl
from collections.abc import Mapping
from typing import Any, Protocol, Self, runtime_checkable

import certifi
import httpx
import tenacity
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .auth import AuthStrategy, NoAuth
from .config import ResttreeSettings
from .exceptions import NetworkError, ResttreeError, TimeoutError
from .log_config import logger
from .types import RequestData, ResponseEnvelope


@runtime_checkable
class Transport(Protocol):
    """Executes one HTTP call and surfaces the last response."""

    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any | None = None,
    ) -> ResponseEnvelope: ...


class HttpxTransport:
    """Synchronous transport built on ``httpx.Client``.

    Attributes:
        _settings: Timeout, retry and hook configuration.
        _auth_strategy: Authentication strategy applied to each request.
        _http_client: The underlying httpx.Client.
        _should_close_client: Flag indicating if this instance owns the _http_client.
    """

    def __init__(
        self,
        settings: ResttreeSettings,
        auth_strategy: AuthStrategy | None = None,
        *,
        http_client: httpx.Client | None = None,
    ):
        self._settings = settings
        self._auth_strategy: AuthStrategy = auth_strategy or NoAuth()
        logger.info(
            f"Using authentication strategy: {type(self._auth_strategy).__name__}"
        )
        self._should_close_client = http_client is None
        self._http_client = http_client or self._create_default_http_client()

    def _create_default_http_client(self) -> httpx.Client:
        """Create a default httpx.Client with configured settings."""
        try:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            verify_ssl: ssl.SSLContext | bool = ssl_context
            logger.debug("Using certifi SSL context.")
        except Exception:
            verify_ssl = True
            logger.warning(
                "certifi not found or failed to load. Using default SSL verification."
            )

        return httpx.Client(
            timeout=self._settings.request_timeout,
            verify=verify_ssl,
            headers={"User-Agent": self._settings.user_agent},
        )

    def _build_request(self, request_data: RequestData) -> httpx.Request:
        """Apply hooks, feature headers and authentication to a request."""
        hook_headers = httpx.Headers(request_data.headers)
        for hook in self._settings.pre_request_hooks:
            try:
                hook(request_data.method, request_data.url, hook_headers, request_data.json_data)
            except Exception as e:
                logger.exception(
                    f"Error executing pre-request hook {getattr(hook, '__name__', str(hook))}: {e}"
                )
        request_data.headers = dict(hook_headers.items())

        request = request_data.build_request()
        if self._settings.api_features:
            request.headers[self._settings.api_features_header] = ", ".join(
                self._settings.api_features
            )
        if not request.headers.get("User-Agent"):
            request.headers["User-Agent"] = self._settings.user_agent
        self._auth_strategy.authenticate(request)
        return request

    def _send_once(self, request: httpx.Request) -> httpx.Response:
        logger.debug(f"Sending request: {request.method} {request.url}")
        if request.content:
            logger.trace(f"Request Body: {request.content.decode()}")
        try:
            return self._http_client.send(request)
        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {request.url}")
            raise TimeoutError("Request timed out", url=str(request.url)) from e
        except httpx.NetworkError as e:
            logger.error(f"Network error occurred for {request.url}: {e}")
            raise NetworkError(
                f"Network error for {request.url}: {e}", url=str(request.url)
            ) from e
        except httpx.RequestError as e:
            logger.error(f"HTTP request error for {request.url}: {e}")
            raise ResttreeError(f"HTTP request error for {request.url}: {e}") from e

    def _before_retry_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        sleep_time = (
            getattr(retry_state.next_action, "sleep", 0) if retry_state.next_action else 0
        )
        logger.info(
            f"Retrying request in {sleep_time:.2f} seconds after "
            f"{retry_state.attempt_number} attempt(s) due to: {type(exc).__name__} - {exc}"
        )

    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any | None = None,
    ) -> ResponseEnvelope:
        """Send one request and return the observed response.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE).
            url: Absolute request URL including the query string.
            headers: Extra request headers.
            body: JSON payload for POST/PUT requests.

        Returns:
            ResponseEnvelope: Status, lower-cased headers and decoded body
                (``None`` when the body is empty or not valid JSON).

        Raises:
            TimeoutError: If every attempt timed out.
            NetworkError: If every attempt failed to connect.
        """
        request = self._build_request(
            RequestData(method=method.upper(), url=url, json_data=body, headers=dict(headers))
        )
        retrying = Retrying(
            stop=stop_after_attempt(self._settings.max_retries + 1),
            wait=wait_exponential(multiplier=self._settings.backoff_factor),
            retry=retry_if_exception_type((TimeoutError, NetworkError)),
            reraise=True,
            before_sleep=self._before_retry_sleep,
        )
        response = retrying(self._send_once, request)
        logger.debug(f"Received response: {response.status_code} for {request.url}")

        decoded: Any | None = None
        if response.content:
            try:
                decoded = response.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning(
                    f"Response from {request.url} is not valid JSON (status {response.status_code})"
                )
        return ResponseEnvelope(
            body=decoded,
            status_code=response.status_code,
            headers=dict(response.headers.items()),
        )

    def close(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._should_close_client and not self._http_client.is_closed:
            self._http_client.close()
            logger.info("HttpxTransport internal HTTP client closed.")

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        self.close()
