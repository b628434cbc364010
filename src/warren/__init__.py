"""Pluggable client for publishing and consuming messages on an AMQP broker."""

from loguru import logger

from warren.adapters import DEFAULT_QUEUE, QUEUE_EMPTY, AdapterBase, AMQPAdapter, NullAdapter
from warren.connection import Connection
from warren.errors import (
    InvalidAdapter,
    InvalidConnectionDetails,
    InvalidMessageSignature,
    NoAdapterSet,
    NoBlockGiven,
    NoConnectionDetails,
    WarrenError,
)
from warren.filters import (
    JsonFilter,
    MessageFilterPipeline,
    SharedSecretFilter,
    YamlFilter,
    ZlibFilter,
)
from warren.facade import Queue, queue

__version__ = "0.1.0"

# Silent until the application opts in with logger.enable("warren")
logger.disable("warren")

__all__ = [
    "DEFAULT_QUEUE",
    "QUEUE_EMPTY",
    "AMQPAdapter",
    "AdapterBase",
    "Connection",
    "InvalidAdapter",
    "InvalidConnectionDetails",
    "InvalidMessageSignature",
    "JsonFilter",
    "MessageFilterPipeline",
    "NoAdapterSet",
    "NoBlockGiven",
    "NoConnectionDetails",
    "NullAdapter",
    "Queue",
    "SharedSecretFilter",
    "WarrenError",
    "YamlFilter",
    "ZlibFilter",
    "__version__",
    "queue",
]
