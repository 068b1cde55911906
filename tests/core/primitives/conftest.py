"""
Test fixtures for fetcher and dispatcher tests.

Provides an in-memory HTTP site served through httpx.MockTransport,
so no test touches the network.
"""

import asyncio
import json

import httpx
import pytest

from queuefetch.core.primitives.fetcher import Fetcher

BASE_URL = "https://example.com"


class FakeSite:
    """Routes requests to canned responses and records what was sent."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.requests: list[httpx.Request] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return self.respond(request)
        finally:
            self.in_flight -= 1

    def respond(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if path in ("/foo", "/bar", "/get"):
            return httpx.Response(200, text=path.lstrip("/"))
        if path == "/url":
            return httpx.Response(200, json={"urls": [f"{BASE_URL}/foo", f"{BASE_URL}/bar"]})
        if path == "/check":
            res = request.url.params.get("res")
            return httpx.Response(200, text="something" if res == "true" else "")
        if path == "/post" and request.method == "POST":
            if request.url.params.get("test") == "true":
                return httpx.Response(200, text=json.loads(request.content)["content"])
            return httpx.Response(200, text="")
        if path == "/headers":
            return httpx.Response(
                200,
                text=request.headers.get("my-header", ""),
                headers={"My-Header-Reply": "true"},
            )
        if path == "/empty-json":
            return httpx.Response(200, json={})
        if path.startswith("/item/"):
            return httpx.Response(200, text=path.rsplit("/", 1)[-1])
        if path == "/boom":
            raise httpx.ConnectError("Connection refused", request=request)

        return httpx.Response(404, text="not found")


@pytest.fixture
def site() -> FakeSite:
    """Fake HTTP site answering instantly."""
    return FakeSite()


@pytest.fixture
def fetcher(site: FakeSite) -> Fetcher:
    """Fetcher wired to the fake site."""
    return Fetcher(transport=httpx.MockTransport(site))
