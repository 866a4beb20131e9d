from __future__ import annotations

import hashlib
import logging
import time
from typing import Any, Protocol

import httpx
from django.conf import settings
from django.core.cache import cache

from route_sequencer.exceptions import ExternalServiceError, InvalidLocationError
from route_sequencer.services.types import GeoPoint

logger = logging.getLogger(__name__)

# Candidates requested per search; malformed ones are skipped.
SEARCH_LIMIT = 3


class Geocoder(Protocol):
    def resolve(self, address: str) -> GeoPoint | None: ...


class GeocodingClient:
    """Address lookup against a Nominatim-compatible ``/search`` endpoint.

    ``resolve`` is the collaborator entry point used by the route sequencer and
    never raises: any lookup failure is reported as ``None``. ``geocode`` keeps
    the distinction between "no such place" (``InvalidLocationError``) and
    "service unavailable" (``ExternalServiceError``).
    """

    def __init__(self) -> None:
        self.search_url = f"{settings.GEOCODING_BASE_URL.rstrip('/')}/search"
        self.timeout = settings.GEOCODING_TIMEOUT_SECONDS
        self.retry_count = settings.GEOCODING_RETRY_COUNT
        self.country_codes = settings.GEOCODING_COUNTRY_CODES
        self.headers = {
            "Accept": "application/json",
            "User-Agent": settings.GEOCODING_USER_AGENT,
        }

    def resolve(self, address: str) -> GeoPoint | None:
        try:
            return self.geocode(address)
        except (InvalidLocationError, ExternalServiceError) as exc:
            logger.info("Could not geocode %r: %s", address, exc)
            return None

    def geocode(self, query: str) -> GeoPoint:
        key = self._cache_key(query)
        cached = cache.get(key)
        if cached is not None:
            return GeoPoint.from_lon_lat(cached)

        point = _first_valid_point(self._search(query))
        if point is None:
            raise InvalidLocationError(f"No coordinates found for {query!r}")

        cache.set(key, point.as_lon_lat(), timeout=settings.GEOCODE_CACHE_TTL_SECONDS)
        return point

    def _search(self, query: str) -> list[Any]:
        params: dict[str, Any] = {"q": query, "format": "jsonv2", "limit": SEARCH_LIMIT}
        if self.country_codes:
            params["countrycodes"] = self.country_codes

        attempt = 0
        while True:
            try:
                response = httpx.get(
                    self.search_url, params=params, headers=self.headers, timeout=self.timeout
                )
                response.raise_for_status()
                break
            except httpx.HTTPError as exc:
                if attempt >= self.retry_count:
                    raise ExternalServiceError("Geocoding request failed") from exc
                attempt += 1
                time.sleep(0.3 * attempt)

        try:
            candidates = response.json()
        except ValueError as exc:
            raise ExternalServiceError("Geocoding returned invalid JSON") from exc
        if not isinstance(candidates, list):
            raise ExternalServiceError("Geocoding returned an unexpected payload")
        return candidates

    def _cache_key(self, query: str) -> str:
        normalized = " ".join(query.split()).lower()
        digest = hashlib.sha256(f"{normalized}|{self.country_codes}".encode()).hexdigest()
        return f"geocode:{digest}"


def _first_valid_point(candidates: list[Any]) -> GeoPoint | None:
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        try:
            return GeoPoint(longitude=float(candidate["lon"]), latitude=float(candidate["lat"]))
        except (KeyError, TypeError, ValueError):
            continue
    return None
