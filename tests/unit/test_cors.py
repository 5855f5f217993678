"""Tests for the fixed-header CORS middleware."""

import pytest
from starlette.responses import JSONResponse
from starlette.testclient import TestClient

from micro_api.cors import CORS_HEADERS, CORSMiddleware

from conftest import StubHandler

EXPECTED_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-headers": "Content-Type,AccessToken,X-CSRF-Token,Authorization,Token,X-Token,X-User-Id",
    "access-control-allow-methods": "POST,GET,OPTIONS,DELETE,PUT",
    "access-control-expose-headers": "Content-Length,Access-Control-Allow-Origin,Access-Control-Allow-Headers,Content-Type",
    "access-control-allow-credentials": "true",
}


def _assert_cors_headers(response):
    for name, value in EXPECTED_HEADERS.items():
        assert response.headers[name] == value


@pytest.fixture
def handler():
    return StubHandler()


@pytest.fixture
def client(handler):
    return TestClient(CORSMiddleware(handler))


def test_header_set_is_fixed():
    assert {k.lower(): v for k, v in CORS_HEADERS} == EXPECTED_HEADERS


def test_options_short_circuits(client, handler):
    response = client.options("/any/path")

    assert response.status_code == 200
    assert response.content == b""
    _assert_cors_headers(response)
    assert handler.calls == 0


def test_get_passes_through(client, handler):
    response = client.get("/any/path")

    assert response.status_code == 200
    assert response.text == "stub"
    assert response.headers["x-stub"] == "1"
    _assert_cors_headers(response)
    assert handler.calls == 1


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
def test_other_methods_pass_through(client, handler, method):
    response = client.request(method, "/any/path")

    assert response.status_code == 200
    _assert_cors_headers(response)
    assert handler.calls == 1


def test_headers_applied_to_error_responses():
    async def failing_app(scope, receive, send):
        await JSONResponse({"error": "boom"}, status_code=500)(scope, receive, send)

    client = TestClient(CORSMiddleware(failing_app))
    response = client.get("/")

    assert response.status_code == 500
    _assert_cors_headers(response)


def test_headers_override_downstream_values():
    async def app(scope, receive, send):
        response = JSONResponse({}, headers={"Access-Control-Allow-Origin": "https://a.com"})
        await response(scope, receive, send)

    client = TestClient(CORSMiddleware(app))
    response = client.get("/")

    assert response.headers.get_list("access-control-allow-origin") == ["*"]


@pytest.mark.asyncio
async def test_non_http_scope_passes_through():
    called = False

    async def app(scope, receive, send):
        nonlocal called
        called = True

    await CORSMiddleware(app)({"type": "lifespan"}, None, None)

    assert called is True
