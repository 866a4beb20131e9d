from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from route_sequencer.services.types import Stop


class RoutePlannerError(Exception):
    """Base exception for route sequencing errors."""


class ExternalServiceError(RoutePlannerError):
    """Raised when an upstream API call fails."""


class InvalidLocationError(RoutePlannerError):
    """Raised when an address cannot be resolved to a location."""


class NoDestinationsError(RoutePlannerError):
    """Raised when no unvisited stop with an address is left to route."""


class MultipleEndpointsError(RoutePlannerError):
    """Raised when more than one stop is flagged as the end point."""


class UnresolvedAddressError(RoutePlannerError):
    """Raised when a stop address cannot be geocoded."""

    def __init__(self, stop: Stop) -> None:
        super().__init__(f'Destination "{stop.address}" not found')
        self.stop = stop


class ProviderRejectedError(RoutePlannerError):
    """Raised when the trip service returns no usable trip."""


class OrderingMismatchError(RoutePlannerError):
    """Raised when the trip service ordering does not cover the requested stops."""


class SegmentUnreachableError(RoutePlannerError):
    """Raised when no path exists between two points."""
