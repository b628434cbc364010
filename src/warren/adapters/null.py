"""No-op adapter: logs operations instead of talking to a broker."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from loguru import logger as _logger

from warren.adapters.base import call_with_adapter

T = TypeVar("T")


class NullAdapter:
    """Accepts every operation and does nothing but log it. Useful in tests."""

    def __init__(self, *, logger: Any = None) -> None:
        self.logger = logger or _logger.bind(adapter="NullAdapter")

    @property
    def name(self) -> str:
        return "NullAdapter"

    def check_connection_details(self, options: Mapping[str, Any]) -> bool:
        return True

    def publish(
        self,
        queue_name: str,
        payload: Any,
        options: Mapping[str, Any] | None = None,
        callback: Callable[[], T] | None = None,
    ) -> bool | T:
        self.logger.log("INFO", "publishing {!r} to {}", payload, queue_name)
        return True if callback is None else callback()

    def subscribe(
        self,
        queue_name: str,
        handler: Callable[..., Any] | None = None,
        options: Mapping[str, Any] | None = None,
        *,
        with_metadata: bool = False,
    ) -> None:
        self.logger.log("INFO", "subscribing to {}", queue_name)

    @contextmanager
    def _scope(self) -> Iterator[NullAdapter]:
        self.logger.log("INFO", "staying connected (begin)")
        yield self
        self.logger.log("INFO", "staying connected (end)")

    def stay_connected(self, func: Callable[..., T] | None = None) -> Any:
        if func is None:
            return self._scope()
        with self._scope():
            return call_with_adapter(func, self)

    def client(self) -> None:
        return None

    def reset(self) -> None:
        return None
