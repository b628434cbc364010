"""Adapter interface and the shared connection-lifecycle state machine."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from loguru import logger as _logger

from warren.connection import Connection
from warren.errors import InvalidConnectionDetails, NoConnectionDetails
from warren.filters import MessageFilterPipeline, pipeline_from_names

T = TypeVar("T")

NOT_CONNECTED = "not_connected"
CONNECTED = "connected"

# Caller passes this instead of a queue name to use the configured default queue
DEFAULT_QUEUE = "default"

# Options routed to queue declaration instead of client construction
QUEUE_OPTION_KEYS = ("durable", "auto_delete")
# Options the adapter consumes itself; never passed to the broker client
INTERNAL_OPTION_KEYS = (*QUEUE_OPTION_KEYS, "default_queue", "filters", "shared_secret")


class _QueueEmpty:
    """Marker yielded by a broker client when no message is available."""

    def __repr__(self) -> str:
        return "QUEUE_EMPTY"


QUEUE_EMPTY = _QueueEmpty()


class BrokerClient(ABC):
    """The broker-client capabilities an adapter drives."""

    @property
    @abstractmethod
    def status(self) -> str:
        """NOT_CONNECTED or CONNECTED."""
        ...

    @abstractmethod
    def start(self) -> None:
        """Open the connection to the broker."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Close the connection to the broker."""
        ...

    @abstractmethod
    def declare_queue(self, name: str, **queue_options: Any) -> None:
        """Idempotently make sure the queue exists."""
        ...

    @abstractmethod
    def send(self, name: str, body: str | bytes, *, persistent: bool = False, **properties: Any) -> None:
        """Send a wire value to the named queue."""
        ...

    @abstractmethod
    def qos(self, prefetch_count: int = 1) -> None:
        """Set consumer prefetch."""
        ...

    @abstractmethod
    def consume(self, name: str, **consume_options: Any) -> Iterator[tuple[Any, dict[str, Any]]]:
        """Blocking, infinite iterator of (body, metadata).

        Yields (QUEUE_EMPTY, {}) when nothing arrived within the inactivity window.
        """
        ...

    def ack(self, delivery_tag: int) -> None:
        """Acknowledge a delivery (only needed when not auto-acking)."""
        return None


_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.VAR_POSITIONAL,
)


def call_with_adapter(func: Callable[..., T], adapter: Any) -> T:
    """Call ``func(adapter)``, or ``func()`` when it takes no positional parameters."""
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return func(adapter)
    if any(p.kind in _POSITIONAL for p in params):
        return func(adapter)
    return func()


def filters_from_options(options: Mapping[str, Any]) -> MessageFilterPipeline:
    """Pipeline named by the ``filters`` connection option, or the default one."""
    names = options.get("filters")
    if not names:
        return MessageFilterPipeline.default()
    if isinstance(names, str):
        names = [names]
    return pipeline_from_names(list(names), secret=options.get("shared_secret"))


class AdapterBase(ABC):
    """Owns the broker client handle and the stay-connected flag.

    Handle states are NOT_CONNECTED and CONNECTED. ``ensure_connected`` and
    ``release_if_not_persistent`` are the only transitions used by operations;
    ``stay_connected`` scopes keep the handle open across operations.
    """

    def __init__(
        self,
        connection: Connection | None = None,
        *,
        filters: MessageFilterPipeline | None = None,
        logger: Any = None,
    ) -> None:
        self.logger = logger or _logger.bind(adapter=type(self).__name__)
        self._explicit_filters = filters is not None
        self.filters = filters or MessageFilterPipeline.default()
        self.connection = connection
        self._client: BrokerClient | None = None
        self._stay_connected = False

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def connection(self) -> Connection | None:
        return self._connection

    @connection.setter
    def connection(self, connection: Connection | None) -> None:
        self._connection = connection
        if connection is not None and not self._explicit_filters:
            self.filters = filters_from_options(connection.options)

    # --- connection details ---

    def check_connection_details(self, options: Mapping[str, Any]) -> bool:
        """Adapter-specific required-field check. Override to add requirements."""
        return True

    def _require_connection(self) -> Connection:
        if self.connection is None:
            raise NoConnectionDetails("No connection configured for adapter", code="no_connection")
        return self.connection

    def queue_name(self) -> str:
        """The configured default queue name."""
        return self._require_connection().queue_name()

    def resolve_queue_name(self, queue_name: str) -> str:
        if queue_name == DEFAULT_QUEUE:
            return self.queue_name()
        if not queue_name:
            raise InvalidConnectionDetails("Queue name must not be empty", code="empty_queue_name")
        return queue_name

    def client_options(self) -> dict[str, Any]:
        options = self._require_connection().options
        return {k: v for k, v in options.items() if k not in INTERNAL_OPTION_KEYS}

    def queue_options(self) -> dict[str, Any]:
        options = self._require_connection().options
        return {k: options[k] for k in QUEUE_OPTION_KEYS if k in options}

    # --- client lifecycle ---

    @abstractmethod
    def build_client(self, **client_options: Any) -> BrokerClient:
        """Construct a fresh, unconnected broker client."""
        ...

    def client(self) -> BrokerClient:
        """Low-level access to the broker client; built on first use."""
        if self._client is None:
            self._client = self.build_client(**self.client_options())
        return self._client

    @property
    def is_staying_connected(self) -> bool:
        return self._stay_connected

    def ensure_connected(self) -> BrokerClient:
        client = self.client()
        if client.status == NOT_CONNECTED:
            self.logger.log("DEBUG", "Connecting to broker")
            client.start()
        return client

    def release_if_not_persistent(self) -> None:
        if self._stay_connected or self._client is None:
            return
        if self._client.status == CONNECTED:
            self.logger.log("DEBUG", "Disconnecting from broker")
            self._client.stop()

    @contextmanager
    def connected(self) -> Iterator[BrokerClient]:
        """Connect for one operation, releasing afterwards unless staying connected.

        Release is skipped when the body raises; the error propagates as-is.
        """
        client = self.ensure_connected()
        yield client
        self.release_if_not_persistent()

    @contextmanager
    def staying_connected(self) -> Iterator[AdapterBase]:
        """Keep the connection open for the duration of the block.

        Nesting is allowed; only the outermost scope releases the connection,
        and it does so even when the block raises.
        """
        previous = self._stay_connected
        self._stay_connected = True
        try:
            yield self
        except BaseException:
            self._stay_connected = previous
            # The body's error is the one the caller sees
            try:
                self._leave_scope()
            except Exception as exc:
                self.logger.log("DEBUG", "Ignoring error while disconnecting after failure: {}", exc)
            raise
        self._stay_connected = previous
        self._leave_scope()

    def _leave_scope(self) -> None:
        if not self._stay_connected and self._client is not None:
            if self._client.status == CONNECTED:
                self.logger.log("DEBUG", "Leaving stay-connected scope, disconnecting")
                self._client.stop()

    def stay_connected(self, func: Callable[..., T] | None = None) -> Any:
        """Keep the connection open across several operations.

        Without ``func`` this returns a context manager yielding the adapter::

            with adapter.stay_connected():
                adapter.publish("jobs", {"id": 1})
                adapter.publish("jobs", {"id": 2})

        With ``func`` the function runs inside the scope and its result is
        returned. It is passed the adapter if it takes a positional argument.
        """
        if func is None:
            return self.staying_connected()
        with self.staying_connected():
            return call_with_adapter(func, self)

    def reset(self) -> None:
        """Discard the client handle, e.g. after forking."""
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.stop()
        except Exception as exc:
            self.logger.log("DEBUG", "Ignoring error while stopping client on reset: {}", exc)

    # --- operations ---

    @abstractmethod
    def publish(
        self,
        queue_name: str,
        payload: Any,
        options: Mapping[str, Any] | None = None,
        callback: Callable[[], T] | None = None,
    ) -> bool | T: ...

    @abstractmethod
    def subscribe(
        self,
        queue_name: str,
        handler: Callable[..., Any] | None = None,
        options: Mapping[str, Any] | None = None,
        *,
        with_metadata: bool = False,
    ) -> None: ...
