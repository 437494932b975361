"""Resource nodes of the API tree and their dynamic dispatcher.

A ``ResourceNode`` subclass describes one kind of resource: its keys, the
child resources reachable from it and the custom actions it exposes. An
instance addresses one point of the tree, either a collection or, when it
carries an identifier, a single item:

    client.Product(632910392).Image.get()
    client.Product(632910392).Variant(808950810).put({"price": "1.00"})
    client.PriceRule(507328175).DiscountCode.count()
    client.GiftCard(48394658).disable()

Names starting with an upper-case letter navigate to a child resource; any
other name invokes a custom action. Attribute access, call-style access and
``navigate`` all resolve names through ``resolve``.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, ClassVar

from .exceptions import (
    ReadOnlyResourceError,
    UnknownAction,
    UnknownChildResource,
    UnsupportedOperation,
)
from .executor import build_url
from .log_config import logger
from .pagination import PageLinks

if TYPE_CHECKING:
    from .executor import RequestExecutor

resource_types: dict[str, type["ResourceNode"]] = {}
"""Registry of every ``ResourceNode`` subclass, keyed by class name."""

WRITE_VERBS = frozenset(["POST", "PUT", "DELETE"])
ACTION_VERBS = ("POST", "PUT", "GET", "DELETE")


@dataclass(frozen=True)
class ChildRoute:
    """Resolution of a name to a child resource type."""

    name: str
    type_name: str


@dataclass(frozen=True)
class ActionRoute:
    """Resolution of a name to a custom action bound to an HTTP verb."""

    name: str
    verb: str
    path: str


Route = ChildRoute | ActionRoute


def _normalize_registry(entries: Sequence[str] | Mapping[str, str]) -> dict[str, str]:
    """Turn ``["a", "b"]`` or ``{"a": "x"}`` into an exposed-name mapping."""
    if isinstance(entries, Mapping):
        return dict(entries)
    return {entry: entry for entry in entries}


def resolve_resource_type(type_name: str) -> type["ResourceNode"]:
    try:
        return resource_types[type_name]
    except KeyError:
        raise UnknownChildResource(type_name, "the resource registry") from None


class ResourceNode:
    """One addressable node of the resource tree.

    Subclasses configure the resource through class attributes:

    Attributes:
        resource_key: Singular key wrapping single-item payloads.
        plural_key: Plural key wrapping list payloads (default ``resource_key + "s"``).
        resource_path: URL path segment (default ``plural_key``).
        post_key: Key wrapping outgoing payloads (default ``resource_key``).
        child_resources: Child names, or a mapping of exposed name to the
            class name implementing it.
        custom_post_actions, custom_put_actions, custom_get_actions,
        custom_delete_actions: Action names, or a mapping of exposed name to
            the URL path segment of the action.
        search_enabled: Whether ``search`` is available.
        count_enabled: Whether ``count`` is available.
        read_only: Whether write verbs are rejected.
    """

    resource_key: ClassVar[str] = ""
    plural_key: ClassVar[str | None] = None
    resource_path: ClassVar[str | None] = None
    post_key: ClassVar[str | None] = None

    child_resources: ClassVar[Sequence[str] | Mapping[str, str]] = ()
    custom_post_actions: ClassVar[Sequence[str] | Mapping[str, str]] = ()
    custom_put_actions: ClassVar[Sequence[str] | Mapping[str, str]] = ()
    custom_get_actions: ClassVar[Sequence[str] | Mapping[str, str]] = ()
    custom_delete_actions: ClassVar[Sequence[str] | Mapping[str, str]] = ()

    search_enabled: ClassVar[bool] = False
    count_enabled: ClassVar[bool] = True
    read_only: ClassVar[bool] = False

    _children: ClassVar[dict[str, str]] = {}
    _actions: ClassVar[dict[str, dict[str, str]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        # Derived per class from its own resource_key.
        if cls.__dict__.get("plural_key") is None:
            cls.plural_key = f"{cls.resource_key}s" if cls.resource_key else None
        if cls.__dict__.get("resource_path") is None:
            cls.resource_path = cls.plural_key
        if cls.__dict__.get("post_key") is None:
            cls.post_key = cls.resource_key
        cls._children = _normalize_registry(cls.child_resources)
        cls._actions = {
            "POST": _normalize_registry(cls.custom_post_actions),
            "PUT": _normalize_registry(cls.custom_put_actions),
            "GET": _normalize_registry(cls.custom_get_actions),
            "DELETE": _normalize_registry(cls.custom_delete_actions),
        }
        if cls.__name__ in resource_types:
            logger.warning(f"Resource type {cls.__name__} registered twice; keeping the latest")
        resource_types[cls.__name__] = cls

    def __init__(
        self,
        executor: "RequestExecutor",
        identifier: str | int | None = None,
        parent_url: str = "",
    ):
        """Create a node under ``parent_url``.

        Args:
            executor: Request executor shared by the whole client.
            identifier: Key of the item addressed, None for the collection.
            parent_url: Base URL of the parent node, or the API root URL.
        """
        self._executor = executor
        self._identifier = identifier
        parent = parent_url.rstrip("/")
        self._base_url = (
            (f"{parent}/" if parent else "")
            + str(self.resource_path)
            + (f"/{identifier}" if self.is_item else "")
        )
        self._parent_url = parent
        self._parent_navigator: Callable[..., ResourceNode] | None = None
        self.links = PageLinks()

    @property
    def identifier(self) -> str | int | None:
        return self._identifier

    @property
    def is_item(self) -> bool:
        """Whether the node addresses a single item rather than the collection."""
        return self._identifier is not None and self._identifier != ""

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def resource_name(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.resource_name} {self._base_url}>"

    # --- Dynamic dispatch ---

    def resolve(self, name: str) -> Route:
        """Classify ``name`` and look it up in the node's registries.

        Raises:
            UnknownChildResource: Capitalized name not registered as a child.
            UnknownAction: Other name not registered under any verb.
        """
        if name[:1].isupper():
            if name in self._children:
                return ChildRoute(name, self._children[name])
            if name in self._children.values():
                return ChildRoute(name, name)
            raise UnknownChildResource(name, self.resource_name)

        for verb in ACTION_VERBS:
            actions = self._actions.get(verb, {})
            if name in actions:
                return ActionRoute(name, verb, actions[name] or name)
        raise UnknownAction(name, self.resource_name)

    def navigate(self, name: str, *args: Any) -> Any:
        """Navigate to a child resource or invoke a custom action.

        For a child, the first argument (if any) is the identifier of the new
        node; the node is constructed, not fetched. For an action, the first
        argument is the query parameters of GET/DELETE actions or the
        unwrapped body of POST/PUT actions, and the call runs immediately.
        """
        route = self.resolve(name)
        if isinstance(route, ChildRoute):
            child_type = resolve_resource_type(route.type_name)
            child = child_type(self._executor, args[0] if args else None, self._base_url)
            child._parent_navigator = partial(self.navigate, name)
            return child
        return self._run_action(route, args[0] if args else {})

    def _run_action(self, route: ActionRoute, argument: Any) -> Any:
        logger.debug(f"Dispatching {route.verb} action '{route.name}' on {self.resource_name}")
        if route.verb in ("POST", "PUT"):
            url = self.generate_url(action=route.path)
            if route.verb == "POST":
                return self.post(argument, url=url, wrap=False)
            return self.put(argument, url=url, wrap=False)
        url = self.generate_url(argument, route.path)
        if route.verb == "GET":
            return self.get(argument, url=url)
        return self.delete(argument, url=url)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        route = self.resolve(name)
        if isinstance(route, ChildRoute):
            return self.navigate(name)
        return partial(self.navigate, name)

    def __call__(self, identifier: str | int | None = None) -> "ResourceNode":
        """Address an item of this resource, e.g. ``client.Product(5)``."""
        if self._parent_navigator is None:
            return type(self)(self._executor, identifier, self._parent_url)
        return self._parent_navigator(identifier)

    # --- Request building ---

    def generate_url(
        self, params: Mapping[str, Any] | None = None, action: str | None = None
    ) -> str:
        return build_url(self._base_url, params, action)

    def wrap_data(self, data: Any, data_key: str | None = None) -> dict[str, Any]:
        return {data_key or str(self.post_key): data}

    def _check_writable(self, verb: str) -> None:
        if self.read_only and verb in WRITE_VERBS:
            raise ReadOnlyResourceError(
                f"{verb} is not available for read-only resource {self.resource_name}"
            )

    def _send(
        self,
        method: str,
        url: str,
        payload: Any | None = None,
        *,
        data_key: str | None = None,
        telemetry_payload: Any | None = None,
    ) -> Any:
        self._check_writable(method)
        result, _ = self._executor.send(
            method,
            url,
            payload,
            data_key=data_key,
            telemetry_payload=telemetry_payload,
            on_links=self._store_links,
        )
        return result

    def _store_links(self, links: PageLinks) -> None:
        self.links = links

    # --- CRUD operations ---

    def get(
        self,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        data_key: str | None = None,
    ) -> Any:
        """Fetch the resource.

        Args:
            params: Query parameters, used when ``url`` is not given.
            url: Explicit request URL.
            data_key: Key to unwrap; defaults to the singular key for an item
                and the plural key for a collection.
        """
        params = params or {}
        if not url:
            url = self.generate_url(params)
        if not data_key:
            data_key = self.resource_key if self.is_item else self.plural_key
        return self._send("GET", url, data_key=data_key, telemetry_payload=dict(params))

    def count(self, params: Mapping[str, Any] | None = None) -> Any:
        """Number of resources matching ``params``.

        Raises:
            UnsupportedOperation: If counting is disabled for the resource.
        """
        if not self.count_enabled:
            raise UnsupportedOperation(f"Count is not available for {self.resource_name}")
        url = self.generate_url(params, "count")
        return self.get({}, url, "count")

    def search(self, query: Any) -> Any:
        """Search the resource with a raw query string or a parameter mapping.

        Raises:
            UnsupportedOperation: If search is disabled for the resource.
        """
        if not self.search_enabled:
            raise UnsupportedOperation(f"Search is not available for {self.resource_name}")
        if not isinstance(query, Mapping):
            query = {"query": query}
        url = self.generate_url(query, "search")
        return self.get({}, url)

    def post(self, data: Any, url: str | None = None, wrap: bool = True) -> Any:
        """Create a resource (or run a POST action when ``url`` is given)."""
        if not url:
            url = self.generate_url()
        if wrap and data:
            data = self.wrap_data(data)
        return self._send("POST", url, data, data_key=self.resource_key)

    def put(self, data: Any, url: str | None = None, wrap: bool = True) -> Any:
        """Update a resource (or run a PUT action when ``url`` is given)."""
        if not url:
            url = self.generate_url()
        if wrap and data:
            data = self.wrap_data(data)
        return self._send("PUT", url, data, data_key=self.resource_key)

    def delete(
        self, params: Mapping[str, Any] | None = None, url: str | None = None
    ) -> Any:
        """Delete the resource; returns the raw (usually empty) response body."""
        params = params or {}
        if not url:
            url = self.generate_url(params)
        return self._send("DELETE", url, telemetry_payload=dict(params))

    # --- Pagination ---

    @property
    def next_link(self) -> str | None:
        return self.links.next_link

    @property
    def prev_link(self) -> str | None:
        return self.links.prev_link

    def next_page_params(self) -> dict[str, str | list[str]]:
        return self.links.next_page_params()

    def prev_page_params(self) -> dict[str, str | list[str]]:
        return self.links.prev_page_params()

    # --- Throttle tier ---

    def set_priority(self, is_priority: bool = True) -> None:
        self._executor.set_priority(is_priority)

    def is_priority(self) -> bool:
        return self._executor.is_priority()
