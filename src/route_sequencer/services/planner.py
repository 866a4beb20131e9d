from __future__ import annotations

import logging
from collections.abc import Sequence

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from route_sequencer.exceptions import (
    ExternalServiceError,
    MultipleEndpointsError,
    NoDestinationsError,
    SegmentUnreachableError,
    UnresolvedAddressError,
)
from route_sequencer.schemas import (
    RouteRequest,
    RouteResponse,
    RouteSummaryResponse,
    WaypointResponse,
)
from route_sequencer.services.duration_cache import DurationCache
from route_sequencer.services.formatting import format_distance, format_duration, stop_sequence
from route_sequencer.services.geo import haversine_meters, path_length_meters
from route_sequencer.services.geocoding import Geocoder, GeocodingClient
from route_sequencer.services.ordering import HEURISTICS
from route_sequencer.services.osrm import OsrmClient
from route_sequencer.services.types import (
    GeoPoint,
    Origin,
    RouteArtifact,
    RouteLeg,
    RouteStrategy,
    SegmentRoute,
    Stop,
    TravelMode,
    TripAccepted,
    Waypoint,
)

logger = logging.getLogger(__name__)

FALLBACK_SPEED_MPS = 13.0
MODE_DURATION_FACTORS: dict[str, float] = {
    "driving": 1.0,
    "cycling": 1.5,
    "walking": 3.0,
}


class RouteSequencerService:
    def __init__(
        self,
        geocoder: Geocoder | None = None,
        osrm_client: OsrmClient | None = None,
        fallback_heuristic: str | None = None,
    ) -> None:
        self.geocoder = geocoder or GeocodingClient()
        self.osrm_client = osrm_client or OsrmClient()
        self.fallback_heuristic = fallback_heuristic or settings.ROUTE_FALLBACK_HEURISTIC
        if self.fallback_heuristic not in HEURISTICS:
            raise ImproperlyConfigured(
                f"Unknown fallback heuristic {self.fallback_heuristic!r}, "
                f"expected one of {sorted(HEURISTICS)}"
            )

    def plan(
        self, request: RouteRequest, duration_cache: DurationCache | None = None
    ) -> RouteResponse:
        location = request.current_location
        origin = Origin(
            point=GeoPoint(longitude=location.longitude, latitude=location.latitude),
            label=location.label,
        )
        stops = [
            Stop(
                stop_id=stop.id,
                address=stop.address,
                name=stop.name,
                point=(
                    GeoPoint(longitude=stop.longitude, latitude=stop.latitude)
                    if stop.latitude is not None and stop.longitude is not None
                    else None
                ),
                visited=stop.visited,
                is_end_point=stop.is_end_point,
            )
            for stop in request.stops
        ]

        previous_duration = duration_cache.get(request.travel_mode) if duration_cache else None
        route = self.compute_route(origin, stops, request.travel_mode, duration_cache)

        return RouteResponse(
            strategy=route.strategy,
            travel_mode=route.travel_mode,
            waypoints=[
                WaypointResponse(
                    latitude=round(waypoint.latitude, 6),
                    longitude=round(waypoint.longitude, 6),
                    address=waypoint.address,
                    name=waypoint.name,
                    id=waypoint.stop_id,
                    display_number=waypoint.display_number,
                )
                for waypoint in route.waypoints
            ],
            path=[point.as_lat_lon() for point in route.path],
            route_geojson={
                "type": "LineString",
                "coordinates": [list(point.as_lon_lat()) for point in route.path],
            },
            summary=RouteSummaryResponse(
                distance_meters=round(route.distance_meters, 1),
                duration_seconds=round(route.duration_seconds, 1),
                distance_text=format_distance(route.distance_meters),
                duration_text=format_duration(route.duration_seconds),
                stop_sequence=stop_sequence(route.waypoints),
            ),
            previous_duration_seconds=previous_duration,
        )

    def compute_route(
        self,
        origin: Origin,
        stops: Sequence[Stop],
        travel_mode: TravelMode,
        duration_cache: DurationCache | None = None,
    ) -> RouteArtifact:
        available = [stop for stop in stops if not stop.visited and stop.address.strip()]
        if not available:
            raise NoDestinationsError("Please add at least one unvisited destination")

        end_stops = [stop for stop in available if stop.is_end_point]
        if len(end_stops) > 1:
            raise MultipleEndpointsError(
                f"Only one stop can be the end point, got {len(end_stops)}"
            )
        end_stop = end_stops[0] if end_stops else None

        legs = self._resolve_legs(available)
        end_leg = None
        if end_stop is not None:
            end_leg = next(leg for leg in legs if leg.stop.stop_id == end_stop.stop_id)
        intermediates = [leg for leg in legs if leg is not end_leg]

        strategy: RouteStrategy
        if len(legs) == 1:
            strategy = "direct"
            order = legs
            path, distance, duration = self._stitch_legs(origin.point, order)
        else:
            result = self.osrm_client.trip(origin.point, intermediates, end_leg)
            if isinstance(result, TripAccepted):
                strategy = "provider"
                order = result.order
                path = result.path
                distance = result.distance_meters
                duration = result.duration_seconds
            else:
                logger.warning(
                    "Falling back to %s ordering: %s", self.fallback_heuristic, result.reason
                )
                strategy = self.fallback_heuristic
                orderer = HEURISTICS[self.fallback_heuristic]
                order = orderer(
                    origin.point,
                    legs,
                    end_stop.stop_id if end_stop is not None else None,
                )
                logger.info(
                    "%s order spans %.0f m in straight lines",
                    self.fallback_heuristic,
                    path_length_meters([origin.point, *(leg.point for leg in order)]),
                )
                path, distance, duration = self._stitch_legs(origin.point, order)

        duration *= MODE_DURATION_FACTORS[travel_mode]
        if duration_cache is not None:
            duration_cache.remember(travel_mode, duration)

        logger.info(
            "Route computed with %s strategy: %s stops, %.0f m, %.0f s (%s)",
            strategy,
            len(order),
            distance,
            duration,
            travel_mode,
        )
        return RouteArtifact(
            waypoints=self._number_waypoints(origin, order, end_stop),
            path=path,
            distance_meters=max(distance, 0.0),
            duration_seconds=max(duration, 0.0),
            strategy=strategy,
            travel_mode=travel_mode,
        )

    def _resolve_legs(self, stops: Sequence[Stop]) -> list[RouteLeg]:
        legs: list[RouteLeg] = []
        for stop in stops:
            point = stop.point
            if point is None:
                point = self.geocoder.resolve(stop.address)
            if point is None:
                raise UnresolvedAddressError(stop)
            legs.append(RouteLeg(point=point, stop=stop))
        return legs

    def _stitch_legs(
        self, start: GeoPoint, order: Sequence[RouteLeg]
    ) -> tuple[list[GeoPoint], float, float]:
        path: list[GeoPoint] = []
        total_distance = 0.0
        total_duration = 0.0

        previous = start
        for leg in order:
            segment = self._route_segment(previous, leg.point)
            segment_path = segment.path
            if path and segment_path and segment_path[0] == path[-1]:
                segment_path = segment_path[1:]
            path.extend(segment_path)
            total_distance += segment.distance_meters
            total_duration += segment.duration_seconds
            previous = leg.point

        return path, total_distance, total_duration

    def _route_segment(self, start: GeoPoint, finish: GeoPoint) -> SegmentRoute:
        try:
            return self.osrm_client.route(start, finish)
        except (SegmentUnreachableError, ExternalServiceError) as exc:
            distance = haversine_meters(start, finish)
            logger.warning(
                "Segment %s -> %s unavailable (%s), using straight line",
                start.as_lat_lon(),
                finish.as_lat_lon(),
                exc,
            )
            return SegmentRoute(
                path=[start, finish],
                distance_meters=distance,
                duration_seconds=distance / FALLBACK_SPEED_MPS,
            )

    @staticmethod
    def _number_waypoints(
        origin: Origin, order: Sequence[RouteLeg], end_stop: Stop | None
    ) -> list[Waypoint]:
        start_label = origin.label or settings.ROUTE_START_LABEL
        waypoints = [
            Waypoint(
                latitude=origin.point.latitude,
                longitude=origin.point.longitude,
                address=start_label,
                name=start_label,
                stop_id="start",
                display_number=0,
            )
        ]

        for index, leg in enumerate(order):
            address = leg.stop.address
            name = leg.stop.name
            stop_id = leg.stop.stop_id
            is_last = index == len(order) - 1
            if is_last and end_stop is not None:
                if end_stop.address.strip():
                    address = end_stop.address
                if end_stop.name and end_stop.name.strip():
                    name = end_stop.name
                stop_id = end_stop.stop_id
            waypoints.append(
                Waypoint(
                    latitude=leg.point.latitude,
                    longitude=leg.point.longitude,
                    address=address,
                    name=name,
                    stop_id=stop_id,
                    display_number=index + 1,
                )
            )
        return waypoints
