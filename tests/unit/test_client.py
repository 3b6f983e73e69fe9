"""
Tests for FetchClient with respx mocks.
"""

import json

import httpx
import pytest
import respx

from fetch_client import (
    ClientConfig,
    FetchClient,
    HTTPError,
    PydanticSchemaValidator,
    RetryOptions,
    SchemaValidationError,
)
from fetch_client.core.transport import HttpxTransport
from pydantic import BaseModel


class User(BaseModel):
    id: int
    name: str


class TestFetchClientInit:

    def test_defaults(self):
        client = FetchClient()
        assert client.base_url == ""
        assert client.config.timeout == 30.0
        assert isinstance(client.transport, HttpxTransport)

    def test_custom_config(self, config, scripted):
        client = FetchClient(config=config, transport=scripted())
        assert client.config is config
        assert client.base_url == "https://api.example.com"

    def test_keyword_options(self):
        client = FetchClient(
            "https://api.test.com/",
            headers={"X-Client": "tests"},
            timeout=5,
            retry=RetryOptions(max_retries=1),
        )
        assert client.base_url == "https://api.test.com"
        assert client.config.headers["X-Client"] == "tests"
        assert client.config.retry_policy().max_retries == 1


class TestFetchClientMethods:
    """Test all HTTP methods with respx mocks."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_get(self):
        respx.get("https://api.test.com/users/1").mock(
            return_value=httpx.Response(200, json={"id": 1, "name": "alice"})
        )

        async with FetchClient("https://api.test.com") as client:
            response = await client.get("/users/:id", path_params={"id": 1})

        assert response.status == 200
        assert response.data == {"id": 1, "name": "alice"}

    @respx.mock
    @pytest.mark.asyncio
    async def test_post_json_body(self):
        route = respx.post("https://api.test.com/users").mock(
            return_value=httpx.Response(201, json={"id": 2})
        )

        async with FetchClient("https://api.test.com") as client:
            response = await client.post("/users", {"name": "bob"})

        request = route.calls.last.request
        assert response.status == 201
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"name": "bob"}

    @respx.mock
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["put", "patch"])
    async def test_put_and_patch(self, method):
        route = respx.route(method=method.upper(), url="https://api.test.com/users/1").mock(
            return_value=httpx.Response(200, json={"ok": True})
        )

        async with FetchClient("https://api.test.com") as client:
            response = await getattr(client, method)("/users/1", {"name": "carol"})

        assert response.data == {"ok": True}
        assert json.loads(route.calls.last.request.content) == {"name": "carol"}

    @respx.mock
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["delete", "head", "options"])
    async def test_methods_without_body(self, method):
        route = respx.route(method=method.upper(), url="https://api.test.com/users/1").mock(
            return_value=httpx.Response(204)
        )

        async with FetchClient("https://api.test.com") as client:
            response = await getattr(client, method)("/users/1")

        assert response.status == 204
        assert response.method == method.upper()
        assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_query_and_headers(self):
        route = respx.get("https://api.test.com/search").mock(return_value=httpx.Response(200))

        async with FetchClient("https://api.test.com", headers={"X-Client": "tests"}) as client:
            await client.get("/search", params={"q": "hello world", "tags": ["a", "b"]})

        request = route.calls.last.request
        assert str(request.url) == "https://api.test.com/search?q=hello+world&tags=a&tags=b"
        assert request.headers["x-client"] == "tests"

    @respx.mock
    @pytest.mark.asyncio
    async def test_http_error(self):
        respx.get("https://api.test.com/missing").mock(
            return_value=httpx.Response(404, json={"detail": "not found"})
        )

        async with FetchClient("https://api.test.com") as client:
            with pytest.raises(HTTPError) as exc_info:
                await client.get("/missing")

        assert exc_info.value.status == 404
        assert exc_info.value.status_text == "Not Found"
        assert exc_info.value.data == {"detail": "not found"}

    @respx.mock
    @pytest.mark.asyncio
    async def test_pydantic_schema(self):
        respx.get("https://api.test.com/users/1").mock(
            side_effect=[
                httpx.Response(200, json={"id": 1, "name": "alice"}),
                httpx.Response(200, json={"id": "x"}),
            ]
        )

        async with FetchClient("https://api.test.com", schema_validator=PydanticSchemaValidator()) as client:
            response = await client.get("/users/1", schema=User)
            assert response.data == User(id=1, name="alice")

            with pytest.raises(SchemaValidationError) as exc_info:
                await client.get("/users/1", schema=User)

        assert exc_info.value.schema is User
        assert exc_info.value.issues


class TestFetchClientLifecycle:

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        client = FetchClient("https://api.test.com")
        await client.close()
        await client.close()

        assert client.transport.client.is_closed

    @pytest.mark.asyncio
    async def test_request_after_close(self):
        client = FetchClient("https://api.test.com")
        await client.close()

        with pytest.raises(RuntimeError):
            await client.get("/users")

    @pytest.mark.asyncio
    async def test_injected_transport_not_closed(self):
        http = httpx.AsyncClient()
        transport = HttpxTransport(http)
        try:
            async with FetchClient("https://api.test.com", transport=transport):
                pass
            assert not http.is_closed
        finally:
            await http.aclose()

    @pytest.mark.asyncio
    async def test_uses_injected_transport(self, scripted, respond_json):
        transport = scripted(respond_json({"pong": True}))

        async with FetchClient("https://api.test.com", transport=transport) as client:
            response = await client.get("/ping")

        assert response.data == {"pong": True}
        assert transport.calls[0][0] == "https://api.test.com/ping"


class TestFetchClientLogging:

    @respx.mock
    @pytest.mark.asyncio
    async def test_request_lifecycle_logged(self, logging_config_with_file, fast_retry):
        respx.get("https://api.test.com/flaky").mock(
            side_effect=[httpx.Response(503), httpx.Response(200, json={"ok": True})]
        )
        config = ClientConfig(
            base_url="https://api.test.com",
            retry=fast_retry,
            logging=logging_config_with_file,
        )

        async with FetchClient(config=config) as client:
            await client.get("/flaky", params={"api_key": "secret-key"})

        with open(logging_config_with_file.file_path, encoding="utf-8") as f:
            records = [json.loads(line) for line in f if line.strip()]

        messages = [record["message"] for record in records]
        assert messages == ["Request started", "Retrying request", "Request completed"]
        assert all("secret-key" not in json.dumps(record) for record in records)
        assert len({record["correlation_id"] for record in records}) == 1
        assert records[-1]["status"] == 200
        assert records[-1]["attempts"] == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_failure_logged(self, logging_config_with_file):
        respx.get("https://api.test.com/missing").mock(return_value=httpx.Response(404))
        config = ClientConfig(base_url="https://api.test.com", logging=logging_config_with_file)

        async with FetchClient(config=config) as client:
            with pytest.raises(HTTPError):
                await client.get("/missing")

        with open(logging_config_with_file.file_path, encoding="utf-8") as f:
            records = [json.loads(line) for line in f if line.strip()]

        assert records[-1]["message"] == "Request failed"
        assert records[-1]["level"] == "ERROR"
        assert records[-1]["status"] == 404
        assert records[-1]["error_type"] == "HTTPError"

    @respx.mock
    @pytest.mark.asyncio
    async def test_request_headers_masked(self, logging_config_with_file):
        respx.get("https://api.test.com/me").mock(return_value=httpx.Response(200))
        config = ClientConfig(
            base_url="https://api.test.com",
            headers={"Authorization": "Bearer abc123", "X-Client": "tests"},
            logging=logging_config_with_file,
        )

        async with FetchClient(config=config) as client:
            await client.get("/me")

        with open(logging_config_with_file.file_path, encoding="utf-8") as f:
            records = [json.loads(line) for line in f if line.strip()]

        started = records[0]
        assert started["message"] == "Request started"
        assert started["headers"]["authorization"] == "***REDACTED***"
        assert started["headers"]["x-client"] == "tests"
        assert "abc123" not in json.dumps(records)
