"""Broker connection options and their validation."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol

from loguru import logger

from warren.config import _deep_update, current_env, env_overrides, load_config_with_env
from warren.errors import InvalidConnectionDetails, NoConnectionDetails

# Section merged underneath every environment section of a config file
COMMON_SECTION = "common"


class ConnectionChecker(Protocol):
    """Anything able to validate connection options (normally an adapter)."""

    def check_connection_details(self, options: Mapping[str, Any]) -> bool: ...


def _normalize(options: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(key): value for key, value in options.items()}


class Connection:
    """Holds broker connection options.

    Recognised keys: host, port, user, pass, vhost, default_queue, durable,
    auto_delete, logging, filters. Which of them are required is decided by
    the adapter through ``check_connection_details``.
    """

    def __init__(
        self,
        options: Mapping[Any, Any] | None = None,
        *,
        adapter: ConnectionChecker | None = None,
    ) -> None:
        self._options: Mapping[str, Any] = MappingProxyType(_normalize(options or {}))
        if adapter is not None:
            self.validate(adapter)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        env: str | None = None,
        adapter: ConnectionChecker | None = None,
    ) -> Connection:
        """Build from a config mapping keyed by environment name."""
        env = env or current_env()
        section = config.get(env)
        if not isinstance(section, Mapping):
            raise InvalidConnectionDetails(
                f"No connection details for environment '{env}'",
                code="missing_environment",
                details={"env": env},
            )
        common = config.get(COMMON_SECTION)
        options = _normalize(section)
        if isinstance(common, Mapping):
            options = _deep_update(_normalize(common), options)
        return cls(options, adapter=adapter)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        *,
        env: str | None = None,
        adapter: ConnectionChecker | None = None,
    ) -> Connection:
        """Load from a YAML config file, then apply WARREN_* env overrides."""
        config = load_config_with_env(path)
        if not config:
            raise NoConnectionDetails(
                f"No connection details found in {path}",
                code="missing_config",
                details={"path": str(path)},
            )
        env = env or current_env()
        overrides = env_overrides()
        if overrides and isinstance(config.get(env), Mapping):
            config = _deep_update(config, {env: overrides})
        connection = cls.from_config(config, env=env, adapter=adapter)
        logger.debug("Connection loaded from {} ({})", path, env)
        return connection

    @property
    def options(self) -> Mapping[str, Any]:
        """Read-only view of the connection options."""
        return self._options

    def validate(self, adapter: ConnectionChecker) -> bool:
        """Let the adapter check its required fields; raise InvalidConnectionDetails."""
        check = getattr(adapter, "check_connection_details", None)
        if check is None:
            return True
        try:
            return check(self._options)
        except InvalidConnectionDetails:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidConnectionDetails(str(exc), original_error=exc) from exc

    def queue_name(self) -> str:
        """Configured default queue name."""
        if "default_queue" not in self._options:
            raise InvalidConnectionDetails(
                "Missing a default queue name.", code="missing_default_queue"
            )
        return str(self._options["default_queue"])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Connection):
            return NotImplemented
        return dict(self._options) == dict(other._options)

    def __repr__(self) -> str:
        shown = {k: ("***" if k == "pass" else v) for k, v in self._options.items()}
        return f"Connection({shown!r})"
