"""Shared fixtures for mapcore tests: settings, HTTP stubs, log capture."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from loguru import logger

from mapcore.config import Settings


@pytest.fixture
def fast_settings():
    """Settings with the timing knobs shrunk so tests run quickly."""
    return Settings(
        _env_file=None,
        batch_delay=0,
        shared_cluster_retry_delay=0.01,
        profiles_base_path="profiles",
    )


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    records: list[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


class RouteStub:
    """Serves canned responses keyed by URL path and counts requests.

    Route values: a dict/list (JSON body), a str (text body), an int
    (bare status code) or a ``(status, body)`` tuple.
    """

    def __init__(self, routes: dict, delay: float = 0.0) -> None:
        self.routes = routes
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip("/")
        self.calls.append(path)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if path not in self.routes:
                return httpx.Response(404, text="not found")
            value = self.routes[path]
            status = 200
            if isinstance(value, tuple):
                status, value = value
            if isinstance(value, int):
                return httpx.Response(value)
            if isinstance(value, (dict, list)):
                return httpx.Response(status, text=json.dumps(value))
            return httpx.Response(status, text=value)
        finally:
            self.in_flight -= 1


@pytest.fixture
def make_client():
    """Factory: ``make_client(routes, delay=0)`` -> (AsyncClient, RouteStub)."""

    def _factory(routes: dict, delay: float = 0.0):
        stub = RouteStub(routes, delay)
        client = httpx.AsyncClient(transport=httpx.MockTransport(stub), base_url="http://test")
        return client, stub

    return _factory


def point_feature(name: str, lng: float, lat: float, **props) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "properties": {"name": name, **props},
    }


@pytest.fixture
def point_collection():
    """Two valid Point features."""
    return {
        "type": "FeatureCollection",
        "features": [
            point_feature("Harbor", -1.55, 47.21, id="h1"),
            point_feature("Castle", -1.54, 47.22, id="c1"),
        ],
    }
