from __future__ import annotations

import pytest
from django.core.cache import cache
from django.test import Client


@pytest.fixture(autouse=True)
def _routing_settings(settings):
    settings.OSRM_BASE_URL = "http://osrm.test"
    settings.OSRM_RETRY_COUNT = 0
    settings.GEOCODING_BASE_URL = "http://geocoder.test"
    settings.GEOCODING_RETRY_COUNT = 0
    settings.ROUTE_FALLBACK_HEURISTIC = "insertion"
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client() -> Client:
    return Client()
