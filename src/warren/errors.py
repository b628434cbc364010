"""Warren domain exceptions."""

from __future__ import annotations


class WarrenError(Exception):
    """Base for warren errors."""

    def __init__(
        self,
        message: str = "",
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class InvalidConnectionDetails(WarrenError):
    """A required connection option is missing or invalid for the adapter."""


class NoConnectionDetails(WarrenError):
    """No connection has been configured and none could be loaded."""


class NoAdapterSet(WarrenError):
    """A queue operation was called before any adapter was registered."""


class InvalidAdapter(WarrenError):
    """The active adapter does not implement the requested operation."""


class NoBlockGiven(WarrenError):
    """An operation that needs a handler was called without one."""


class InvalidMessageSignature(WarrenError):
    """A signed message failed verification on unpack."""
