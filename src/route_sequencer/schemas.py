from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_STOPS = 100


class CurrentLocation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    label: str | None = Field(default=None, max_length=300)


class StopRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, max_length=100)
    address: str = Field(default="", max_length=300)
    name: str | None = Field(default=None, max_length=200)
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    visited: bool = False
    is_end_point: bool = False

    @model_validator(mode="after")
    def check_coordinates_pair(self) -> StopRequest:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        return self


class RouteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_location: CurrentLocation
    stops: list[StopRequest] = Field(min_length=1, max_length=MAX_STOPS)
    travel_mode: Literal["driving", "cycling", "walking"] = "driving"


class WaypointResponse(BaseModel):
    latitude: float
    longitude: float
    address: str
    name: str | None
    id: str
    display_number: int


class RouteSummaryResponse(BaseModel):
    distance_meters: float
    duration_seconds: float
    distance_text: str
    duration_text: str
    stop_sequence: str


class RouteResponse(BaseModel):
    strategy: Literal["provider", "insertion", "nearest_neighbor", "direct"]
    travel_mode: Literal["driving", "cycling", "walking"]
    waypoints: list[WaypointResponse]
    path: list[tuple[float, float]]
    route_geojson: dict
    summary: RouteSummaryResponse
    previous_duration_seconds: float | None = None
