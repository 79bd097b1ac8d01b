"""Shared fixtures: a small Swagger document and a fake upstream API."""

from __future__ import annotations

import copy
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from swagger_adapter.cache import CacheSet
from swagger_adapter.config import Settings


API_BASE = "http://api.test"
SWAGGER_URL = "http://api.test/swagger/v1/swagger.json"


_SPEC: Dict[str, Any] = {
    "openapi": "3.0.1",
    "info": {"title": "Widget API", "version": "1.0"},
    "paths": {
        "/items/{id}": {
            "parameters": [{"name": "id", "in": "path", "required": True}],
            "get": {
                "operationId": "getItem",
                "summary": "Get an item",
                "tags": ["items"],
                "parameters": [
                    {
                        "name": "id",
                        "in": "path",
                        "required": True,
                        "schema": {"type": "string"},
                        "description": "Item id",
                    }
                ],
            },
        },
        "/widgets": {
            "get": {
                "description": "List widgets",
                "parameters": [
                    {"name": "color", "in": "query", "schema": {"type": "string"}},
                    {"name": "page", "in": "query", "schema": {"type": "integer"}},
                    {"name": "X-Trace", "in": "header", "schema": {"type": "string"}},
                ],
            },
            "post": {
                "operationId": "createWidget",
                "summary": "Create a widget",
                "requestBody": {
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/Widget"}}
                    }
                },
            },
        },
        "/widgets/{id}": {
            "get": {
                "operationId": "getWidget",
                "parameters": [
                    {"name": "id", "in": "path", "required": True},
                    {"name": "color", "in": "query"},
                ],
            },
            "delete": {
                "parameters": [{"name": "id", "in": "path", "required": True}],
            },
        },
    },
    "components": {
        "schemas": {
            "Widget": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Widget name"},
                    "size": {"type": "integer"},
                    "tags": {"type": "array"},
                },
                "required": ["name"],
            }
        }
    },
}


@pytest.fixture
def spec() -> Dict[str, Any]:
    return copy.deepcopy(_SPEC)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        swagger_url=SWAGGER_URL,
        api_base_url=API_BASE,
        cache_enabled=True,
        upstream_timeout_seconds=5,
    )


@pytest.fixture
def caches(settings: Settings):
    cache_set = CacheSet.from_settings(settings)
    yield cache_set
    cache_set.dispose()


class FakeUpstream:
    """Route table for ``httpx.MockTransport`` that records every request."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[tuple, Callable[[httpx.Request], httpx.Response]] = {}

    def add(self, method: str, path: str, status: int = 200, body: Any = None) -> None:
        def respond(_request: httpx.Request) -> httpx.Response:
            if body is None:
                return httpx.Response(status)
            return httpx.Response(status, json=body)

        self.routes[(method.upper(), path)] = respond

    def add_handler(
        self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]
    ) -> None:
        self.routes[(method.upper(), path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "no route"})
        return handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last.content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def upstream(spec: Dict[str, Any]) -> FakeUpstream:
    fake = FakeUpstream()
    fake.add("GET", "/swagger/v1/swagger.json", body=spec)
    return fake
