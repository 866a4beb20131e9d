from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Sequence
from typing import Any

import httpx
from django.conf import settings
from django.core.cache import cache

from route_sequencer.exceptions import (
    ExternalServiceError,
    OrderingMismatchError,
    ProviderRejectedError,
    RoutePlannerError,
    SegmentUnreachableError,
)
from route_sequencer.services.types import (
    GeoPoint,
    RouteLeg,
    SegmentRoute,
    TripAccepted,
    TripRejected,
    TripResult,
)

logger = logging.getLogger(__name__)

# Walking and cycling durations are derived from driving, never requested.
PROFILE = "driving"


class OsrmClient:
    def __init__(self) -> None:
        self.base_url = settings.OSRM_BASE_URL.rstrip("/")
        self.timeout = settings.OSRM_TIMEOUT_SECONDS
        self.retry_count = settings.OSRM_RETRY_COUNT

    def trip(
        self,
        start: GeoPoint,
        intermediates: Sequence[RouteLeg],
        end_leg: RouteLeg | None = None,
    ) -> TripResult:
        """Ask the trip service for an optimized order with start (and end) pinned.

        Provider and transport failures come back as ``TripRejected`` so the
        caller can fall back to a local heuristic.
        """
        points = [start, *(leg.point for leg in intermediates)]
        if end_leg is not None:
            points.append(end_leg.point)

        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "false",
            "source": "first",
        }
        if end_leg is not None:
            params["destination"] = "last"
            params["roundtrip"] = "false"

        endpoint = f"{self.base_url}/trip/v1/{PROFILE}/{_encode(points)}"
        try:
            payload = self._get_json(endpoint, params)
            return self._parse_trip(payload, intermediates, end_leg)
        except (ProviderRejectedError, OrderingMismatchError, ExternalServiceError) as exc:
            logger.warning("Trip service result rejected: %s", exc)
            return TripRejected(reason=str(exc), error=exc)

    def route(self, start: GeoPoint, finish: GeoPoint) -> SegmentRoute:
        cache_key = self._cache_key([start, finish])
        cached = cache.get(cache_key)
        if cached:
            return SegmentRoute(
                path=[GeoPoint.from_lon_lat(coord) for coord in cached["coordinates"]],
                distance_meters=cached["distance_meters"],
                duration_seconds=cached["duration_seconds"],
            )

        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "false",
            "annotations": "false",
        }
        payload = self._get_json(
            f"{self.base_url}/route/v1/{PROFILE}/{_encode([start, finish])}", params
        )
        segment = self._parse_route(payload)
        cache.set(
            cache_key,
            {
                "coordinates": [point.as_lon_lat() for point in segment.path],
                "distance_meters": segment.distance_meters,
                "duration_seconds": segment.duration_seconds,
            },
            timeout=settings.ROUTE_CACHE_TTL_SECONDS,
        )
        return segment

    def _get_json(self, endpoint: str, params: dict[str, str]) -> Any:
        for attempt in range(self.retry_count + 1):
            try:
                response = httpx.get(endpoint, params=params, timeout=self.timeout)
                # OSRM answers NoRoute/NoTrip with a 400 and a JSON body
                if response.status_code == 400:
                    return response.json()
                response.raise_for_status()
                return response.json()
            except ValueError as exc:
                raise ExternalServiceError("OSRM returned invalid JSON") from exc
            except httpx.HTTPError as exc:
                if attempt >= self.retry_count:
                    raise ExternalServiceError("OSRM request failed") from exc
                time.sleep(0.3 * (attempt + 1))

        raise ExternalServiceError("OSRM request failed")

    @staticmethod
    def _cache_key(waypoints: list[GeoPoint]) -> str:
        encoded = "|".join(
            f"{point.latitude:.5f}:{point.longitude:.5f}" for point in waypoints
        ).encode()
        digest = hashlib.sha256(encoded).hexdigest()
        return f"route:{digest}"

    @staticmethod
    def _parse_trip(
        payload: Any,
        intermediates: Sequence[RouteLeg],
        end_leg: RouteLeg | None,
    ) -> TripAccepted:
        if not isinstance(payload, dict) or payload.get("code") != "Ok":
            raise ProviderRejectedError("Could not find an optimal trip for these destinations")

        trips = payload.get("trips")
        if not isinstance(trips, list) or not trips or not isinstance(trips[0], dict):
            raise ProviderRejectedError("Could not find an optimal trip for these destinations")

        first = trips[0]
        path = _parse_geometry(first.get("geometry"), ProviderRejectedError)
        distance, duration = _parse_totals(first, ProviderRejectedError)

        order = list(intermediates)
        if len(intermediates) > 1:
            order = _order_from_waypoints(payload.get("waypoints"), intermediates, end_leg)
        if end_leg is not None:
            order.append(end_leg)

        return TripAccepted(
            order=order,
            path=path,
            distance_meters=distance,
            duration_seconds=duration,
        )

    @staticmethod
    def _parse_route(payload: Any) -> SegmentRoute:
        if not isinstance(payload, dict) or payload.get("code") != "Ok":
            raise SegmentUnreachableError("Could not compute route")

        routes = payload.get("routes")
        if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
            raise SegmentUnreachableError("Could not compute route")

        first = routes[0]
        path = _parse_geometry(first.get("geometry"), SegmentUnreachableError)
        distance, duration = _parse_totals(first, SegmentUnreachableError)
        return SegmentRoute(path=path, distance_meters=distance, duration_seconds=duration)


def _encode(points: Sequence[GeoPoint]) -> str:
    return ";".join(f"{point.longitude:.6f},{point.latitude:.6f}" for point in points)


def _parse_geometry(geometry: Any, error: type[RoutePlannerError]) -> list[GeoPoint]:
    if not isinstance(geometry, dict) or not isinstance(geometry.get("coordinates"), list):
        raise error("Route data malformed: missing geometry")

    try:
        path = [GeoPoint.from_lon_lat(coord) for coord in geometry["coordinates"]]
    except (TypeError, ValueError) as exc:
        raise error("Route data malformed: invalid coordinates") from exc

    if len(path) < 2:
        raise error("Route geometry unavailable")
    return path


def _parse_totals(payload: dict[str, Any], error: type[RoutePlannerError]) -> tuple[float, float]:
    totals: list[float] = []
    for key in ("distance", "duration"):
        value = payload.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise error(f"Route data malformed: missing {key}")
        totals.append(max(float(value), 0.0))
    return totals[0], totals[1]


def _order_from_waypoints(
    waypoints: Any,
    intermediates: Sequence[RouteLeg],
    end_leg: RouteLeg | None,
) -> list[RouteLeg]:
    expected = len(intermediates) + 1 + (1 if end_leg is not None else 0)
    if not isinstance(waypoints, list) or len(waypoints) != expected:
        raise OrderingMismatchError("Trip ordering missing or does not match the requested stops")

    # source=first keeps the answer to a single trip
    if any(
        not isinstance(waypoint, dict) or waypoint.get("trips_index") != 0
        for waypoint in waypoints
    ):
        raise OrderingMismatchError("Trip ordering spans more than one trip")

    positions: list[int] = []
    for waypoint in waypoints[1 : len(intermediates) + 1]:
        position = waypoint.get("waypoint_index")
        if not isinstance(position, int) or isinstance(position, bool):
            raise OrderingMismatchError("Trip ordering contains an invalid index")
        positions.append(position)

    if len(set(positions)) != len(positions):
        raise OrderingMismatchError("Trip ordering contains duplicate indices")

    ranked = sorted(range(len(intermediates)), key=lambda index: positions[index])
    return [intermediates[index] for index in ranked]
