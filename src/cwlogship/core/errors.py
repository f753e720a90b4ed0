"""
Error taxonomy for the shipping pipeline.

Every error raised on the delivery path derives from ``ShipperError`` and is
handled inside the worker loops: a failed batch is logged and dropped, and
the pipeline keeps running.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import Destination


class ShipperError(Exception):
    """Base class for all cwlogship errors."""

    def __init__(
        self,
        message: str,
        *,
        destination: Destination | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.destination = destination
        self.cause = cause

    def to_fields(self) -> dict[str, Any]:
        """Flatten the error into diagnostic fields."""
        fields: dict[str, Any] = {
            "error_type": type(self).__name__,
            "error": self.message,
        }
        if self.destination is not None:
            fields["group"] = self.destination.group
            fields["stream"] = self.destination.stream
        if self.cause is not None:
            fields["cause"] = repr(self.cause)
        return fields


class ConfigurationError(ShipperError):
    """Invalid or missing configuration."""


class RetentionConfigError(ConfigurationError):
    """A retention value is not a valid positive integer day count."""

    def __init__(self, value: object, *, cause: BaseException | None = None) -> None:
        super().__init__(
            f"invalid retention days {value!r}: expected a positive integer",
            cause=cause,
        )
        self.value = value


class RegionUnresolvedError(ConfigurationError):
    """No AWS region could be determined at startup."""


class DeliveryError(ShipperError):
    """A batch could not be delivered."""


class TransportError(DeliveryError):
    """A remote call failed (network or service error)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        code: str | None = None,
        destination: Destination | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, destination=destination, cause=cause)
        self.operation = operation
        self.code = code

    def to_fields(self) -> dict[str, Any]:
        fields = super().to_fields()
        if self.operation is not None:
            fields["operation"] = self.operation
        if self.code is not None:
            fields["code"] = self.code
        return fields


class RemoteTimeoutError(TransportError):
    """A remote call exceeded its configured timeout."""


class CursorMismatchError(TransportError):
    """The remote service rejected the supplied sequencing cursor as stale."""

    def __init__(
        self,
        message: str,
        *,
        expected_cursor: str | None = None,
        operation: str | None = "append_events",
        code: str | None = "InvalidSequenceTokenException",
        destination: Destination | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            code=code,
            destination=destination,
            cause=cause,
        )
        self.expected_cursor = expected_cursor


class AmbiguousDestinationError(DeliveryError):
    """More than one remote stream matches the destination's stream prefix."""

    def __init__(self, destination: Destination, matches: list[str]) -> None:
        super().__init__(
            f"{len(matches)} streams match group {destination.group}, "
            f"stream {destination.stream}",
            destination=destination,
        )
        self.matches = matches


class ResolutionExhaustedError(DeliveryError):
    """The stream is still missing after one create-and-requery cycle."""


__all__ = [
    "AmbiguousDestinationError",
    "ConfigurationError",
    "CursorMismatchError",
    "DeliveryError",
    "RegionUnresolvedError",
    "RemoteTimeoutError",
    "ResolutionExhaustedError",
    "RetentionConfigError",
    "ShipperError",
    "TransportError",
]
