from __future__ import annotations

from collections.abc import Callable, Sequence

from route_sequencer.services.geo import haversine_meters
from route_sequencer.services.types import GeoPoint, RouteLeg

Orderer = Callable[[GeoPoint, Sequence[RouteLeg], str | None], list[RouteLeg]]


def nearest_neighbor_order(
    start: GeoPoint,
    legs: Sequence[RouteLeg],
    end_stop_id: str | None = None,
) -> list[RouteLeg]:
    """Visit the closest remaining leg from the current tail, end leg last."""
    end_index = _find_end_index(legs, end_stop_id)
    remaining = [index for index in range(len(legs)) if index != end_index]

    ordered: list[RouteLeg] = []
    current = start
    while remaining:
        best_position = 0
        best_distance = haversine_meters(current, legs[remaining[0]].point)
        for position in range(1, len(remaining)):
            distance = haversine_meters(current, legs[remaining[position]].point)
            if distance < best_distance:
                best_position = position
                best_distance = distance

        chosen = remaining.pop(best_position)
        ordered.append(legs[chosen])
        current = legs[chosen].point

    if end_index is not None:
        ordered.append(legs[end_index])
    return ordered


def greedy_insertion_order(
    start: GeoPoint,
    legs: Sequence[RouteLeg],
    end_stop_id: str | None = None,
) -> list[RouteLeg]:
    """Cheapest-insertion ordering.

    Seeds the route with ``[start, end]`` (or the closed loop ``[start, start]``
    when no end stop is given) and repeatedly inserts the leg/position pair
    with the smallest detour ``d(prev, leg) + d(leg, next) - d(prev, next)``.
    Ties go to the lowest candidate index, then the lowest position.
    """
    if not legs:
        return []

    end_index = _find_end_index(legs, end_stop_id)
    closed_loop = end_index is None
    remaining = [index for index in range(len(legs)) if index != end_index]

    # -1 marks the start placeholder
    route = [-1, -1] if closed_loop else [-1, end_index]

    def point_at(route_index: int) -> GeoPoint:
        return start if route_index < 0 else legs[route_index].point

    while remaining:
        best_increase = float("inf")
        best_candidate = 0
        best_position = 1
        for candidate_position, candidate in enumerate(remaining):
            candidate_point = legs[candidate].point
            for position in range(1, len(route)):
                prev_point = point_at(route[position - 1])
                next_point = point_at(route[position])
                increase = (
                    haversine_meters(prev_point, candidate_point)
                    + haversine_meters(candidate_point, next_point)
                    - haversine_meters(prev_point, next_point)
                )
                if increase < best_increase:
                    best_increase = increase
                    best_candidate = candidate_position
                    best_position = position

        route.insert(best_position, remaining.pop(best_candidate))

    inner = route[1:-1] if closed_loop else route[1:]
    if closed_loop and len(inner) > 1:
        # A loop can be walked either way; start with the nearer neighbour of start
        # so the dropped closing edge is the longer one.
        first_distance = haversine_meters(start, legs[inner[0]].point)
        last_distance = haversine_meters(start, legs[inner[-1]].point)
        if last_distance < first_distance:
            inner.reverse()

    return [legs[index] for index in inner]


HEURISTICS: dict[str, Orderer] = {
    "insertion": greedy_insertion_order,
    "nearest_neighbor": nearest_neighbor_order,
}


def _find_end_index(legs: Sequence[RouteLeg], end_stop_id: str | None) -> int | None:
    if end_stop_id is None:
        return None
    for index, leg in enumerate(legs):
        if leg.stop.stop_id == end_stop_id:
            return index
    raise ValueError(f"End stop {end_stop_id!r} is not among the legs to order")
