from __future__ import annotations

from collections.abc import MutableMapping

from route_sequencer.services.types import TravelMode


class DurationCache:
    """Last computed duration per travel mode, scoped to one user session."""

    def __init__(self, store: MutableMapping[str, float] | None = None) -> None:
        self._store: MutableMapping[str, float] = store if store is not None else {}

    def get(self, travel_mode: TravelMode) -> float | None:
        value = self._store.get(travel_mode)
        return float(value) if value is not None else None

    def remember(self, travel_mode: TravelMode, duration_seconds: float) -> None:
        self._store[travel_mode] = duration_seconds

    def as_dict(self) -> dict[str, float]:
        return dict(self._store)
