from __future__ import annotations

import math
from collections.abc import Sequence

from route_sequencer.services.types import GeoPoint

EARTH_RADIUS_METERS = 6_371_000.0


def haversine_meters(a: GeoPoint, b: GeoPoint) -> float:
    lat1_rad = math.radians(a.latitude)
    lon1_rad = math.radians(a.longitude)
    lat2_rad = math.radians(b.latitude)
    lon2_rad = math.radians(b.longitude)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    h = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2.0) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c


def path_length_meters(points: Sequence[GeoPoint]) -> float:
    return sum(
        haversine_meters(points[index - 1], points[index]) for index in range(1, len(points))
    )
