"""Custom exception classes for the resttree library.

None of these are retried by the core: every failure is surfaced to the
caller as soon as it is detected.
"""


class ResttreeError(Exception):
    """Base exception class for all resttree errors."""

    def __init__(self, message: str, *, status_code: int | None = None):
        """Initializes the base exception.

        Args:
            message: The error message.
            status_code: Optional HTTP status code of the response that caused
                the error.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (Status: {self.status_code})"
        return self.message


class UnknownChildResource(ResttreeError, AttributeError):
    """Raised when navigating to a child resource not registered on a node."""

    def __init__(self, name: str, resource_name: str):
        super().__init__(
            f"Child Resource {name} is not available for {resource_name}"
        )
        self.name = name
        self.resource_name = resource_name


class UnknownAction(ResttreeError, AttributeError):
    """Raised when invoking a custom action not registered on a node."""

    def __init__(self, name: str, resource_name: str):
        super().__init__(f"No action named {name} is defined for {resource_name}")
        self.name = name
        self.resource_name = resource_name


class UnsupportedOperation(ResttreeError):
    """Raised when an operation is disabled for a resource (e.g. count, search)."""


class ReadOnlyResourceError(UnsupportedOperation):
    """Raised when a write verb is dispatched against a read-only resource."""


class TransportError(ResttreeError):
    """Represents a response without a body and an unexpected HTTP status."""

    def __init__(self, status_code: int):
        super().__init__(
            f"Request failed with HTTP Code {status_code}.", status_code=status_code
        )


class ApiError(ResttreeError):
    """Represents a structured error envelope returned by the API.

    The message is the flattened ``errors`` value of the response body.
    """


class ConfigurationError(ResttreeError):
    """Represents an error in the library's configuration."""


class TimeoutError(ResttreeError):
    """Represents a request that did not complete within the configured timeout."""

    def __init__(self, message: str, *, url: str | None = None):
        super().__init__(message)
        self.url = url

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} (URL: {self.url})"
        return self.message


class NetworkError(ResttreeError):
    """Represents a network connection error (DNS failure, connection refused...).

    This error indicates a problem in establishing or maintaining a network
    connection to the server during an HTTP request.
    """

    def __init__(self, message: str, *, url: str | None = None):
        super().__init__(message)
        self.url = url

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} (URL: {self.url})"
        return self.message
