"""AMQP adapter backed by pika's BlockingConnection."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any, TypeVar

import pika
import pika.exceptions
from pika.adapters.blocking_connection import BlockingChannel

from warren.adapters.base import (
    CONNECTED,
    NOT_CONNECTED,
    QUEUE_EMPTY,
    AdapterBase,
    BrokerClient,
)
from warren.connection import Connection
from warren.errors import InvalidConnectionDetails, NoBlockGiven
from warren.logs import intercept_logging

T = TypeVar("T")

REQUIRED_OPTIONS = ("user", "pass", "vhost")

# Seconds without a delivery before consume() reports QUEUE_EMPTY
DEFAULT_INACTIVITY_TIMEOUT = 1.0

# Publish options that map onto pika.BasicProperties
_PROPERTY_KEYS = frozenset(
    {
        "content_type",
        "content_encoding",
        "headers",
        "priority",
        "correlation_id",
        "reply_to",
        "expiration",
        "message_id",
        "timestamp",
        "type",
        "user_id",
        "app_id",
    }
)


class PikaClient(BrokerClient):
    """Broker client over one pika BlockingConnection and channel.

    Construction does no I/O; ``start`` opens the connection.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5672,
        user: str = "guest",
        vhost: str = "/",
        logging: bool = False,
        heartbeat: int = 600,
        blocked_connection_timeout: float = 300,
        **options: Any,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.vhost = vhost
        self.parameters = pika.ConnectionParameters(
            host=host,
            port=self.port,
            virtual_host=vhost,
            credentials=pika.PlainCredentials(user, options.get("pass", "guest")),
            heartbeat=heartbeat,
            blocked_connection_timeout=blocked_connection_timeout,
        )
        if logging:
            intercept_logging(["pika"], "DEBUG")
        self._connection: pika.BlockingConnection | None = None
        self._channel: BlockingChannel | None = None

    @property
    def status(self) -> str:
        if self._connection is not None and self._connection.is_open:
            return CONNECTED
        return NOT_CONNECTED

    @property
    def channel(self) -> BlockingChannel:
        if self._channel is None or not self._channel.is_open:
            if self.status != CONNECTED:
                raise pika.exceptions.ConnectionWrongStateError("Client is not connected")
            self._channel = self._connection.channel()
        return self._channel

    def start(self) -> None:
        self._connection = pika.BlockingConnection(self.parameters)
        self._channel = self._connection.channel()

    def stop(self) -> None:
        connection, self._connection, self._channel = self._connection, None, None
        if connection is not None and connection.is_open:
            connection.close()

    def declare_queue(self, name: str, **queue_options: Any) -> None:
        self.channel.queue_declare(
            queue=name,
            durable=bool(queue_options.get("durable", False)),
            auto_delete=bool(queue_options.get("auto_delete", False)),
        )

    def send(self, name: str, body: str | bytes, *, persistent: bool = False, **properties: Any) -> None:
        if persistent:
            properties["delivery_mode"] = pika.DeliveryMode.Persistent
        self.channel.basic_publish(
            exchange="",
            routing_key=name,
            body=body,
            properties=pika.BasicProperties(**properties),
        )

    def qos(self, prefetch_count: int = 1) -> None:
        self.channel.basic_qos(prefetch_count=prefetch_count)

    def consume(
        self,
        name: str,
        *,
        auto_ack: bool = True,
        exclusive: bool = False,
        inactivity_timeout: float | None = DEFAULT_INACTIVITY_TIMEOUT,
        **_: Any,
    ) -> Iterator[tuple[Any, dict[str, Any]]]:
        deliveries = self.channel.consume(
            name,
            auto_ack=auto_ack,
            exclusive=exclusive,
            inactivity_timeout=inactivity_timeout,
        )
        for method, properties, body in deliveries:
            if method is None:
                yield QUEUE_EMPTY, {}
                continue
            yield body, _metadata(method, properties)

    def ack(self, delivery_tag: int) -> None:
        self.channel.basic_ack(delivery_tag=delivery_tag)


def _metadata(method: Any, properties: Any) -> dict[str, Any]:
    """Transport details handed to handlers that ask for them."""
    meta: dict[str, Any] = {
        "delivery_tag": method.delivery_tag,
        "exchange": method.exchange,
        "routing_key": method.routing_key,
        "redelivered": method.redelivered,
    }
    if properties is not None:
        for key in sorted(_PROPERTY_KEYS | {"delivery_mode"}):
            value = getattr(properties, key, None)
            if value is not None:
                meta[key] = value
    return meta


class AMQPAdapter(AdapterBase):
    """Publishes to and consumes from queues on an AMQP broker.

    Messages go through the default exchange, routed by queue name.
    """

    def __init__(
        self,
        connection: Connection | None = None,
        *,
        client_factory: Callable[..., BrokerClient] = PikaClient,
        **kwargs: Any,
    ) -> None:
        super().__init__(connection, **kwargs)
        self._client_factory = client_factory

    def check_connection_details(self, options: Mapping[str, Any]) -> bool:
        for required in REQUIRED_OPTIONS:
            if required not in options:
                raise InvalidConnectionDetails(
                    f"{required.capitalize()} not specified",
                    code="missing_option",
                    details={"option": required},
                )
        return True

    def build_client(self, **client_options: Any) -> BrokerClient:
        return self._client_factory(**client_options)

    def declare(self, queue_name: str) -> None:
        self.client().declare_queue(queue_name, **self.queue_options())

    def publish(
        self,
        queue_name: str,
        payload: Any,
        options: Mapping[str, Any] | None = None,
        callback: Callable[[], T] | None = None,
    ) -> bool | T:
        """Send ``payload`` to a queue.

        Returns True, or the result of ``callback`` when one is given.
        Use ``"default"`` as the queue name for the configured default queue.
        """
        queue_name = self.resolve_queue_name(queue_name)
        message = self.filters.pack(payload)
        options = dict(options or {})
        properties = {k: v for k, v in options.items() if k in _PROPERTY_KEYS}
        unknown = set(options) - _PROPERTY_KEYS
        if unknown:
            self.logger.log("WARNING", "Ignoring unknown publish options: {}", sorted(unknown))

        with self.connected() as client:
            self.declare(queue_name)
            client.send(
                queue_name,
                message,
                persistent=bool(self._require_connection().options.get("durable", False)),
                **properties,
            )
        self.logger.log("DEBUG", "Published message to {}", queue_name)
        return True if callback is None else callback()

    def subscribe(
        self,
        queue_name: str,
        handler: Callable[..., Any] | None = None,
        options: Mapping[str, Any] | None = None,
        *,
        with_metadata: bool = False,
    ) -> None:
        """Run ``handler`` for every message arriving on a queue. Blocks.

        The handler is called with the unpacked payload, or with
        ``(payload, metadata)`` when ``with_metadata`` is set. Pass
        ``{"auto_ack": False}`` to acknowledge only after the handler returns.
        """
        if handler is None:
            raise NoBlockGiven("subscribe needs a handler", code="no_handler")
        queue_name = self.resolve_queue_name(queue_name)
        options = dict(options or {})
        auto_ack = bool(options.get("auto_ack", True))

        with self.staying_connected():
            client = self.ensure_connected()
            client.qos(int(options.pop("prefetch_count", 1)))
            self.declare(queue_name)
            self.logger.log("INFO", "Subscribed to {}", queue_name)
            for body, metadata in client.consume(queue_name, **options):
                self.handle_delivery(body, metadata, handler, with_metadata=with_metadata)
                if not auto_ack and "delivery_tag" in metadata:
                    client.ack(metadata["delivery_tag"])

    def handle_delivery(
        self,
        body: Any,
        metadata: Mapping[str, Any],
        handler: Callable[..., Any],
        *,
        with_metadata: bool = False,
    ) -> Any:
        """Unpack one inbound message and hand it to ``handler``."""
        if body is QUEUE_EMPTY:
            return None
        payload = self.filters.unpack(body)
        if with_metadata:
            return handler(payload, dict(metadata))
        return handler(payload)
