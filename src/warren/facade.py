"""Queue facade: one active adapter and connection, forwarding operations."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from loguru import logger

from warren.config import default_config_path
from warren.connection import Connection
from warren.errors import InvalidAdapter, NoAdapterSet

OPERATIONS = ("publish", "subscribe", "stay_connected", "client", "reset")
# Operations that need connection options on the adapter before running
_NEEDS_CONNECTION = ("publish", "subscribe", "stay_connected", "client")


class Queue:
    """Registry holding the active adapter and connection.

    Operations are forwarded to the adapter after checking it implements them::

        queue = Queue(AMQPAdapter())
        queue.connection = {"user": "guest", "pass": "guest", "vhost": "/"}
        queue.publish("jobs", {"id": 1})
    """

    def __init__(
        self,
        adapter: Any = None,
        connection: Connection | Mapping[str, Any] | None = None,
        *,
        config_path: str | Path | None = None,
        env: str | None = None,
    ) -> None:
        self._adapter: Any = None
        self._connection: Connection | None = None
        self._config_path = config_path
        self._env = env
        if adapter is not None:
            self.register_adapter(adapter)
        if connection is not None:
            self.connection = connection

    # --- adapter ---

    @property
    def adapter(self) -> Any:
        if self._adapter is None:
            raise NoAdapterSet("No adapter set", code="no_adapter")
        return self._adapter

    @adapter.setter
    def adapter(self, adapter: Any) -> None:
        self.register_adapter(adapter)

    def register_adapter(self, adapter: Any) -> Any:
        """Make ``adapter`` the active adapter. Returns it."""
        if self._connection is not None:
            self._connection.validate(adapter)
            _attach(adapter, self._connection)
        self._adapter = adapter
        name = getattr(adapter, "name", type(adapter).__name__)
        missing = missing_operations(adapter)
        if missing:
            logger.warning("Adapter {} does not implement: {}", name, ", ".join(missing))
        logger.debug("Adapter registered: {}", name)
        return adapter

    @property
    def has_adapter(self) -> bool:
        return self._adapter is not None

    # --- connection ---

    @property
    def connection(self) -> Connection:
        """Current connection; loaded from the config file on first use."""
        if self._connection is None:
            path = self._config_path or default_config_path()
            self._set_connection(
                Connection.from_file(path, env=self._env, adapter=self._adapter)
            )
        return self._connection

    @connection.setter
    def connection(self, conn: Connection | Mapping[str, Any]) -> None:
        if isinstance(conn, Connection):
            if self._adapter is not None:
                conn.validate(self._adapter)
        else:
            conn = Connection(conn, adapter=self._adapter)
        self._set_connection(conn)

    def _set_connection(self, conn: Connection) -> None:
        self._connection = conn
        if self._adapter is not None:
            _attach(self._adapter, conn)

    # --- operations ---

    def _operation(self, name: str) -> Callable[..., Any]:
        adapter = self.adapter
        method = getattr(adapter, name, None)
        if not callable(method):
            raise InvalidAdapter(
                f"{name} method missing", code="missing_method", details={"method": name}
            )
        if name in _NEEDS_CONNECTION and getattr(adapter, "connection", False) is None:
            _attach(adapter, self.connection)
        return method

    def publish(self, *args: Any, **kwargs: Any) -> Any:
        """Publish a message through the active adapter."""
        return self._operation("publish")(*args, **kwargs)

    def subscribe(self, *args: Any, **kwargs: Any) -> Any:
        """Subscribe to a queue through the active adapter."""
        return self._operation("subscribe")(*args, **kwargs)

    def stay_connected(self, *args: Any, **kwargs: Any) -> Any:
        return self._operation("stay_connected")(*args, **kwargs)

    def client(self, *args: Any, **kwargs: Any) -> Any:
        return self._operation("client")(*args, **kwargs)

    def reset(self, *args: Any, **kwargs: Any) -> Any:
        return self._operation("reset")(*args, **kwargs)


def missing_operations(adapter: Any) -> list[str]:
    """Names of queue operations the adapter does not implement."""
    return [op for op in OPERATIONS if not callable(getattr(adapter, op, None))]


def _attach(adapter: Any, conn: Connection) -> None:
    if hasattr(adapter, "connection"):
        adapter.connection = conn


# Process-wide default queue
queue: Queue = Queue()
