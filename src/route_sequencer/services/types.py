from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from route_sequencer.exceptions import RoutePlannerError

TravelMode = Literal["driving", "cycling", "walking"]
RouteStrategy = Literal["provider", "insertion", "nearest_neighbor", "direct"]


@dataclass(slots=True, frozen=True)
class GeoPoint:
    longitude: float
    latitude: float

    @classmethod
    def from_lon_lat(cls, pair: list[float] | tuple[float, float]) -> GeoPoint:
        lon, lat = pair
        return cls(longitude=float(lon), latitude=float(lat))

    def as_lat_lon(self) -> tuple[float, float]:
        return self.latitude, self.longitude

    def as_lon_lat(self) -> tuple[float, float]:
        return self.longitude, self.latitude


@dataclass(slots=True, frozen=True)
class Origin:
    point: GeoPoint
    label: str | None = None


@dataclass(slots=True, frozen=True)
class Stop:
    stop_id: str
    address: str
    name: str | None = None
    point: GeoPoint | None = None
    visited: bool = False
    is_end_point: bool = False


@dataclass(slots=True, frozen=True)
class RouteLeg:
    point: GeoPoint
    stop: Stop


@dataclass(slots=True, frozen=True)
class Waypoint:
    latitude: float
    longitude: float
    address: str
    name: str | None
    stop_id: str
    display_number: int


@dataclass(slots=True, frozen=True)
class SegmentRoute:
    path: list[GeoPoint]
    distance_meters: float
    duration_seconds: float


@dataclass(slots=True, frozen=True)
class TripAccepted:
    order: list[RouteLeg]
    path: list[GeoPoint]
    distance_meters: float
    duration_seconds: float


@dataclass(slots=True, frozen=True)
class TripRejected:
    reason: str
    error: RoutePlannerError


TripResult = TripAccepted | TripRejected


@dataclass(slots=True, frozen=True)
class RouteArtifact:
    waypoints: list[Waypoint]
    path: list[GeoPoint]
    distance_meters: float
    duration_seconds: float
    strategy: RouteStrategy
    travel_mode: TravelMode
