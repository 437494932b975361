"""Entry point of a resttree client.

``ApiClient`` wires the settings, transport, throttle controller, response
processor and telemetry sinks into one ``RequestExecutor`` and exposes every
registered resource type as a top-level node:

    with ApiClient(settings) as client:
        products = client.Product
        first_page = products.get({"limit": 50})
        second_page = products.get(products.next_page_params())
"""

from typing import Any, Self

from .auth import auth_from_settings
from .config import ResttreeSettings, get_settings
from .exceptions import ConfigurationError, UnknownChildResource
from .executor import RequestExecutor
from .log_config import logger
from .processor import ResponseProcessor
from .resources import ResourceNode, resource_types
from .telemetry import TelemetrySink
from .throttle import ThrottleController, ThrottleStore
from .transport import HttpxTransport, Transport


class ApiClient:
    """Root of the resource tree.

    Every registered resource type is reachable at the top level, including
    types normally used only as children: ``client.ProductImage`` addresses
    ``<api_url>/images``. Navigate from the parent to get the nested URL.

    Attributes:
        settings: Client settings.
        executor: Request executor shared by every node of this client.
    """

    def __init__(
        self,
        settings: ResttreeSettings | None = None,
        *,
        transport: Transport | None = None,
        store: ThrottleStore | None = None,
        sinks: list[TelemetrySink] | None = None,
        processor: ResponseProcessor | None = None,
    ):
        """Initialize the client.

        Args:
            settings: Client settings; loaded from the environment if None.
            transport: Transport to use; an ``HttpxTransport`` authenticated
                from the settings is created if None.
            store: Shared throttle store; the process-wide in-memory store
                is used if None.
            sinks: Telemetry sinks; ``settings.telemetry_sinks`` if None.
            processor: Response processor; built from the settings if None.

        Raises:
            ConfigurationError: If no API URL is configured, or no credentials
                are configured and no transport is given.
        """
        self.settings = settings or get_settings()
        if not self.settings.api_url:
            raise ConfigurationError("An api_url is required to build a client.")

        self._should_close_transport = transport is None
        if transport is None:
            transport = HttpxTransport(self.settings, auth_from_settings(self.settings))

        throttle = ThrottleController(
            self.settings.throttle, store, tenant=self.settings.tenant
        )
        self.executor = RequestExecutor(
            self.settings, transport, throttle, processor=processor, sinks=sinks
        )
        logger.debug(f"ApiClient initialized for {self.settings.api_url}")

    def navigate(self, name: str, *args: Any) -> ResourceNode:
        """Build a top-level node of the registered resource type ``name``."""
        if not name[:1].isupper() or name not in resource_types:
            raise UnknownChildResource(name, type(self).__name__)
        node = resource_types[name](
            self.executor, args[0] if args else None, self.settings.api_url
        )
        node._parent_navigator = lambda identifier=None: self.navigate(name, identifier)
        return node

    def __getattr__(self, name: str) -> ResourceNode:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.navigate(name)

    def set_priority(self, is_priority: bool = True) -> None:
        self.executor.set_priority(is_priority)

    def is_priority(self) -> bool:
        return self.executor.is_priority()

    def close(self) -> None:
        """Close the transport if this client created it."""
        close = getattr(self.executor.transport, "close", None)
        if self._should_close_transport and callable(close):
            close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        self.close()
