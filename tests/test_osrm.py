from __future__ import annotations

from typing import Any

import httpx
import pytest

from route_sequencer.exceptions import (
    ExternalServiceError,
    OrderingMismatchError,
    ProviderRejectedError,
    SegmentUnreachableError,
)
from route_sequencer.services.osrm import OsrmClient
from route_sequencer.services.types import GeoPoint, RouteLeg, Stop, TripAccepted, TripRejected

START = GeoPoint(longitude=-58.38, latitude=-34.60)


def _leg(stop_id: str, longitude: float, latitude: float) -> RouteLeg:
    point = GeoPoint(longitude=longitude, latitude=latitude)
    stop = Stop(stop_id=stop_id, address=f"{stop_id} street", point=point)
    return RouteLeg(point=point, stop=stop)


def _response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code, json=payload, request=httpx.Request("GET", "http://osrm.test")
    )


def _trip_payload(waypoint_indices: list[int] | None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": "Ok",
        "trips": [
            {
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[-58.38, -34.60], [-58.37, -34.59], [-58.36, -34.58]],
                },
                "distance": 4200.5,
                "duration": 610.0,
            }
        ],
    }
    if waypoint_indices is not None:
        payload["waypoints"] = [
            {"waypoint_index": index, "trips_index": 0} for index in waypoint_indices
        ]
    return payload


def test_trip_accepts_provider_order_and_normalizes_geometry(mocker) -> None:
    legs = [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58), _leg("C", -58.35, -34.57)]
    get = mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response(_trip_payload([0, 3, 1, 2])),
    )

    result = OsrmClient().trip(START, legs)

    assert isinstance(result, TripAccepted)
    assert [leg.stop.stop_id for leg in result.order] == ["B", "C", "A"]
    assert result.path[0] == GeoPoint(longitude=-58.38, latitude=-34.60)
    assert result.path[0].as_lat_lon() == (-34.60, -58.38)
    assert result.distance_meters == 4200.5
    assert result.duration_seconds == 610.0

    endpoint = get.call_args.args[0]
    params = get.call_args.kwargs["params"]
    assert endpoint.startswith("http://osrm.test/trip/v1/driving/-58.380000,-34.600000;")
    assert params["source"] == "first"
    assert "destination" not in params


def test_trip_pins_end_point_last(mocker) -> None:
    legs = [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58)]
    end_leg = _leg("E", -58.30, -34.50)
    get = mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response(_trip_payload([0, 2, 1, 3])),
    )

    result = OsrmClient().trip(START, legs, end_leg)

    assert isinstance(result, TripAccepted)
    assert [leg.stop.stop_id for leg in result.order] == ["B", "A", "E"]
    params = get.call_args.kwargs["params"]
    assert params["destination"] == "last"
    assert params["roundtrip"] == "false"
    assert get.call_args.args[0].endswith(";-58.300000,-34.500000")


@pytest.mark.parametrize("waypoint_indices", [None, [0, 1, 2]])
def test_trip_with_wrong_ordering_is_rejected_as_mismatch(mocker, waypoint_indices) -> None:
    legs = [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58), _leg("C", -58.35, -34.57)]
    mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response(_trip_payload(waypoint_indices)),
    )

    result = OsrmClient().trip(START, legs)

    assert isinstance(result, TripRejected)
    assert isinstance(result.error, OrderingMismatchError)


def test_trip_with_duplicate_ordering_indices_is_rejected(mocker) -> None:
    legs = [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58)]
    mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response(_trip_payload([0, 1, 1])),
    )

    result = OsrmClient().trip(START, legs)

    assert isinstance(result, TripRejected)
    assert isinstance(result.error, OrderingMismatchError)


def test_trip_split_across_several_trips_is_rejected(mocker) -> None:
    legs = [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58)]
    payload = _trip_payload([0, 2, 1])
    payload["waypoints"][2]["trips_index"] = 1
    mocker.patch("route_sequencer.services.osrm.httpx.get", return_value=_response(payload))

    result = OsrmClient().trip(START, legs)

    assert isinstance(result, TripRejected)
    assert isinstance(result.error, OrderingMismatchError)


def test_trip_single_intermediate_does_not_need_ordering(mocker) -> None:
    legs = [_leg("A", -58.37, -34.59)]
    mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response(_trip_payload(None)),
    )

    result = OsrmClient().trip(START, legs, _leg("E", -58.30, -34.50))

    assert isinstance(result, TripAccepted)
    assert [leg.stop.stop_id for leg in result.order] == ["A", "E"]


@pytest.mark.parametrize(
    "payload",
    [
        {"code": "NoTrips", "message": "No trip visiting all destinations possible."},
        {"code": "Ok", "trips": []},
        {"code": "Ok", "trips": [{"distance": 10.0, "duration": 5.0}]},
        {"code": "Ok", "trips": [{"geometry": {"coordinates": [[1.0]]}, "distance": 1.0}]},
        {"code": "Ok", "trips": [{"geometry": {"coordinates": [[1.0, 2.0]]}, "distance": 1.0}]},
        {
            "code": "Ok",
            "trips": [{"geometry": {"coordinates": [[-58.38, -34.60], [-58.36, -34.58]]}}],
            "waypoints": [{"waypoint_index": i, "trips_index": 0} for i in (0, 2, 1)],
        },
        {
            "code": "Ok",
            "trips": [
                {
                    "geometry": {"coordinates": [[-58.38, -34.60], [-58.36, -34.58]]},
                    "distance": "far",
                    "duration": 12.0,
                }
            ],
            "waypoints": [{"waypoint_index": i, "trips_index": 0} for i in (0, 2, 1)],
        },
    ],
)
def test_trip_without_usable_trip_is_provider_rejection(mocker, payload) -> None:
    mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response(payload, status_code=400 if payload["code"] != "Ok" else 200),
    )

    result = OsrmClient().trip(START, [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58)])

    assert isinstance(result, TripRejected)
    assert isinstance(result.error, ProviderRejectedError)


def test_trip_transport_failure_is_rejected(mocker) -> None:
    mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        side_effect=httpx.ConnectTimeout("timed out"),
    )

    result = OsrmClient().trip(START, [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58)])

    assert isinstance(result, TripRejected)
    assert isinstance(result.error, ExternalServiceError)


def test_trip_retries_transport_failures(mocker, settings) -> None:
    settings.OSRM_RETRY_COUNT = 1
    mocker.patch("route_sequencer.services.osrm.time.sleep")
    get = mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        side_effect=[httpx.ReadTimeout("slow"), _response(_trip_payload([0, 2, 1]))],
    )

    result = OsrmClient().trip(START, [_leg("A", -58.37, -34.59), _leg("B", -58.36, -34.58)])

    assert isinstance(result, TripAccepted)
    assert get.call_count == 2


def test_route_returns_segment_and_caches_it(mocker) -> None:
    payload = {
        "code": "Ok",
        "routes": [
            {
                "geometry": {"coordinates": [[-58.38, -34.60], [-58.37, -34.59]]},
                "distance": 1500.0,
                "duration": 120.0,
            }
        ],
    }
    get = mocker.patch(
        "route_sequencer.services.osrm.httpx.get", return_value=_response(payload)
    )
    client = OsrmClient()
    finish = GeoPoint(longitude=-58.37, latitude=-34.59)

    first = client.route(START, finish)
    second = client.route(START, finish)

    assert first == second
    assert first.path == [START, finish]
    assert first.distance_meters == 1500.0
    assert first.duration_seconds == 120.0
    assert get.call_count == 1
    assert "/route/v1/driving/" in get.call_args.args[0]


def test_route_without_path_is_unreachable(mocker) -> None:
    mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response({"code": "NoRoute", "message": "Impossible route"}, 400),
    )

    with pytest.raises(SegmentUnreachableError):
        OsrmClient().route(START, GeoPoint(longitude=-58.37, latitude=-34.59))


def test_route_server_error_is_external_failure(mocker) -> None:
    mocker.patch(
        "route_sequencer.services.osrm.httpx.get",
        return_value=_response({"message": "boom"}, 503),
    )

    with pytest.raises(ExternalServiceError):
        OsrmClient().route(START, GeoPoint(longitude=-58.37, latitude=-34.59))


@pytest.mark.parametrize(
    "totals",
    [{}, {"distance": 1500.0}, {"duration": 120.0}, {"distance": None, "duration": 120.0}],
)
def test_route_without_totals_is_unreachable(mocker, totals) -> None:
    payload = {
        "code": "Ok",
        "routes": [{"geometry": {"coordinates": [[-58.38, -34.60], [-58.37, -34.59]]}, **totals}],
    }
    mocker.patch("route_sequencer.services.osrm.httpx.get", return_value=_response(payload))

    with pytest.raises(SegmentUnreachableError):
        OsrmClient().route(START, GeoPoint(longitude=-58.37, latitude=-34.59))
