"""Credential strategies applied to every outgoing request.

Only static credentials are supported: an access token header or private app
API key and password. There is no token negotiation.
"""

from typing import Protocol

import httpx

from .config import ResttreeSettings
from .exceptions import ConfigurationError
from .log_config import logger


class AuthStrategy(Protocol):
    """Protocol defining the interface for authentication strategies.

    Concrete implementations add authentication information (e.g. headers)
    to an HTTP request right before the transport sends it.
    """

    def authenticate(self, request: httpx.Request) -> None:
        """
        Modifies the request to add authentication information.

        Args:
            request: The httpx.Request object to modify.
        """
        ...


class NoAuth:
    """Implements the AuthStrategy protocol for requests requiring no authentication."""

    def authenticate(self, request: httpx.Request) -> None:
        logger.trace("Using NoAuth strategy, no authentication applied.")


class AccessTokenAuth:
    """Sends a static access token in a dedicated header.

    Attributes:
        _token: The access token.
        _header: Name of the header carrying the token.
    """

    def __init__(self, token: str | None, header: str = "X-Shopify-Access-Token"):
        """Initializes AccessTokenAuth.

        Raises:
            ConfigurationError: If the token is None or empty.
        """
        if not token:
            raise ConfigurationError("AccessTokenAuth requires a non-empty 'token'.")
        self._token: str = token
        self._header = header
        logger.debug("AccessTokenAuth initialized.")

    def authenticate(self, request: httpx.Request) -> None:
        logger.trace("Authenticating request using AccessTokenAuth.")
        request.headers[self._header] = self._token


class BasicAuth:
    """Sends private app credentials as HTTP basic authentication."""

    def __init__(self, api_key: str | None, password: str | None):
        if not api_key or not password:
            raise ConfigurationError("BasicAuth requires 'api_key' and 'password'.")
        self._auth = httpx.BasicAuth(api_key, password)
        logger.debug("BasicAuth initialized.")

    def authenticate(self, request: httpx.Request) -> None:
        logger.trace("Authenticating request using BasicAuth.")
        next(self._auth.auth_flow(request))


def auth_from_settings(settings: ResttreeSettings) -> AuthStrategy:
    """Pick the strategy matching the configured credentials.

    An access token wins over an API key and password pair.

    Raises:
        ConfigurationError: If neither an access token nor an API key and
            password combination is configured.
    """
    if settings.access_token:
        return AccessTokenAuth(settings.access_token, settings.access_token_header)
    if settings.api_key and settings.password:
        return BasicAuth(settings.api_key, settings.password)
    raise ConfigurationError(
        "Either an access token or an API key and password combination is "
        "required to access the resources. Please check the configuration!"
    )
