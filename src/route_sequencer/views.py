from __future__ import annotations

import json
from typing import Any

from django.conf import settings
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST
from pydantic import ValidationError

from route_sequencer.exceptions import (
    MultipleEndpointsError,
    NoDestinationsError,
    UnresolvedAddressError,
)
from route_sequencer.schemas import RouteRequest
from route_sequencer.services.duration_cache import DurationCache
from route_sequencer.services.planner import RouteSequencerService

SESSION_DURATIONS_KEY = "route_durations"

_sequencer_service: RouteSequencerService | None = None


def get_route_sequencer() -> RouteSequencerService:
    global _sequencer_service
    if _sequencer_service is None:
        _sequencer_service = RouteSequencerService()
    return _sequencer_service


@require_GET
def health_view(_: HttpRequest) -> HttpResponse:
    return JsonResponse(
        {
            "status": "ok",
            "routing": {
                "base_url": settings.OSRM_BASE_URL,
                "fallback_heuristic": settings.ROUTE_FALLBACK_HEURISTIC,
            },
        }
    )


@csrf_exempt
@require_POST
def route_view(request: HttpRequest) -> HttpResponse:
    payload = _parse_json_payload(request)
    if isinstance(payload, JsonResponse):
        return payload

    try:
        route_request = RouteRequest.model_validate(payload)
    except ValidationError as exc:
        return JsonResponse(
            {
                "error": {
                    "code": "validation_error",
                    "message": "Invalid request payload",
                    "details": exc.errors(include_url=False, include_context=False),
                }
            },
            status=400,
        )

    durations = dict(request.session.get(SESSION_DURATIONS_KEY, {}))
    duration_cache = DurationCache(durations)

    sequencer = get_route_sequencer()
    try:
        response = sequencer.plan(route_request, duration_cache)
    except NoDestinationsError as exc:
        return _error_response("no_destinations", str(exc), status=400)
    except MultipleEndpointsError as exc:
        return _error_response("multiple_endpoints", str(exc), status=400)
    except UnresolvedAddressError as exc:
        return _error_response(
            "unresolved_address", str(exc), status=422, stop_id=exc.stop.stop_id
        )

    request.session[SESSION_DURATIONS_KEY] = duration_cache.as_dict()
    return JsonResponse(response.model_dump(mode="json"), status=200)


def _parse_json_payload(request: HttpRequest) -> dict[str, Any] | JsonResponse:
    if not request.body:
        return {}

    try:
        payload = json.loads(request.body)
    except json.JSONDecodeError:
        return _error_response("invalid_json", "Request body must be valid JSON", status=400)

    if not isinstance(payload, dict):
        return _error_response("invalid_json", "JSON body must be an object", status=400)

    return payload


def _error_response(code: str, message: str, status: int, **extra: Any) -> JsonResponse:
    return JsonResponse({"error": {"code": code, "message": message, **extra}}, status=status)
