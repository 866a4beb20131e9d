from __future__ import annotations

from collections.abc import Sequence

from route_sequencer.services.types import Waypoint

SEQUENCE_SEPARATOR = " → "


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def waypoint_label(waypoint: Waypoint) -> str:
    if waypoint.name and waypoint.name.strip():
        return waypoint.name.strip()
    first_part = waypoint.address.split(",")[0].strip() if waypoint.address else ""
    return first_part or f"Stop {waypoint.display_number}"


def stop_sequence(waypoints: Sequence[Waypoint]) -> str:
    return SEQUENCE_SEPARATOR.join(
        waypoint_label(waypoint) for waypoint in waypoints if waypoint.display_number != 0
    )
