"""Broker adapters. Each implements the publish/subscribe/stay_connected/client/reset contract."""

from warren.adapters.amqp import AMQPAdapter, PikaClient
from warren.adapters.base import DEFAULT_QUEUE, QUEUE_EMPTY, AdapterBase, BrokerClient
from warren.adapters.null import NullAdapter

__all__ = [
    "DEFAULT_QUEUE",
    "QUEUE_EMPTY",
    "AMQPAdapter",
    "AdapterBase",
    "BrokerClient",
    "NullAdapter",
    "PikaClient",
]
