"""Message filters: ordered, reversible payload transforms.

Outbound payloads are passed through each filter's ``pack`` in order; inbound
wire values go through ``unpack`` in reverse order. The first filter is
normally a serializer turning structured data into a string, later filters
transform that string (compression, signing).
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import zlib
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import yaml

from warren.errors import InvalidMessageSignature, WarrenError


class MessageFilter(Protocol):
    """A reversible transform."""

    def pack(self, value: Any) -> Any: ...

    def unpack(self, value: Any) -> Any: ...


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, (bytes, bytearray)) else value


class YamlFilter:
    """Serialize structured payloads as YAML (safe subset only)."""

    def pack(self, value: Any) -> str:
        return yaml.safe_dump(value, allow_unicode=True)

    def unpack(self, value: Any) -> Any:
        return yaml.safe_load(_text(value))


class JsonFilter:
    """Serialize structured payloads as JSON."""

    def pack(self, value: Any) -> str:
        return json.dumps(value, ensure_ascii=False)

    def unpack(self, value: Any) -> Any:
        return json.loads(_text(value))


class ZlibFilter:
    """Compress a string; base64 keeps the wire value a string."""

    def __init__(self, level: int = zlib.Z_DEFAULT_COMPRESSION) -> None:
        self.level = level

    def pack(self, value: str) -> str:
        compressed = zlib.compress(value.encode("utf-8"), self.level)
        return base64.b64encode(compressed).decode("ascii")

    def unpack(self, value: Any) -> str:
        return zlib.decompress(base64.b64decode(_text(value))).decode("utf-8")


class SharedSecretFilter:
    """Prefix messages with an HMAC-SHA256 signature and verify it on unpack.

    Wire format: ``<hex digest>:<message>``.
    """

    separator = ":"

    def __init__(self, secret: str | bytes) -> None:
        if not secret:
            raise WarrenError("Shared secret must not be empty", code="empty_secret")
        self._key = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)

    def _sign(self, message: str) -> str:
        return hmac.new(self._key, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def pack(self, value: str) -> str:
        return f"{self._sign(value)}{self.separator}{value}"

    def unpack(self, value: Any) -> str:
        signature, sep, message = _text(value).partition(self.separator)
        if not sep or not hmac.compare_digest(signature, self._sign(message)):
            raise InvalidMessageSignature(
                "Message signature does not match", code="bad_signature"
            )
        return message


class MessageFilterPipeline:
    """Fixed, ordered sequence of filters."""

    def __init__(self, filters: Iterable[MessageFilter] | None = None) -> None:
        self._filters: tuple[MessageFilter, ...] = tuple(filters or ())

    @classmethod
    def default(cls) -> MessageFilterPipeline:
        return cls((YamlFilter(),))

    @property
    def filters(self) -> tuple[MessageFilter, ...]:
        return self._filters

    def then(self, message_filter: MessageFilter) -> MessageFilterPipeline:
        """New pipeline with ``message_filter`` appended."""
        return MessageFilterPipeline((*self._filters, message_filter))

    def pack(self, payload: Any) -> Any:
        value = payload
        for message_filter in self._filters:
            value = message_filter.pack(value)
        return value

    def unpack(self, wire_value: Any) -> Any:
        value = wire_value
        for message_filter in reversed(self._filters):
            value = message_filter.unpack(value)
        return value

    def __len__(self) -> int:
        return len(self._filters)

    def __repr__(self) -> str:
        names = ", ".join(type(f).__name__ for f in self._filters)
        return f"MessageFilterPipeline([{names}])"


FILTERS: dict[str, type] = {
    "yaml": YamlFilter,
    "json": JsonFilter,
    "zlib": ZlibFilter,
    "shared_secret": SharedSecretFilter,
}


def pipeline_from_names(
    names: Sequence[str], *, secret: str | None = None
) -> MessageFilterPipeline:
    """Build a pipeline from config names, e.g. ``["yaml", "zlib"]``."""
    filters: list[MessageFilter] = []
    for name in names:
        cls = FILTERS.get(name)
        if cls is None:
            raise WarrenError(
                f"Unknown message filter: {name}",
                code="unknown_filter",
                details={"name": name, "known": sorted(FILTERS)},
            )
        if cls is SharedSecretFilter:
            if secret is None:
                raise WarrenError(
                    "shared_secret filter needs a secret", code="missing_secret"
                )
            filters.append(SharedSecretFilter(secret))
        else:
            filters.append(cls())
    return MessageFilterPipeline(filters)
