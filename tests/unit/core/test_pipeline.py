"""Tests for the request execution pipeline."""

import asyncio

import pytest

from fetch_client.core.cancellation import CancellationToken
from fetch_client.core.config import ClientConfig, RetryOptions
from fetch_client.core.exceptions import (
    HTTPError,
    MiddlewareError,
    NetworkError,
    PathParameterError,
    RequestAbortedError,
    SchemaValidationError,
    SerializationError,
    TimeoutError,
)
from fetch_client.core.logging import get_correlation_id
from fetch_client.core.pipeline import RequestOptions, RequestPipeline
from fetch_client.core.schema import ValidationResult, standard_schema
from fetch_client.core.transport import TransportResponse


class TestSuccess:

    @pytest.mark.asyncio
    async def test_json_response(self, config, scripted, respond_json):
        transport = scripted(respond_json({"a": 1}))
        pipeline = RequestPipeline(config, transport)

        envelope = await pipeline.execute("/users/:id", RequestOptions(path_params={"id": 1}))

        assert envelope.data == {"a": 1}
        assert envelope.status == 200
        assert envelope.status_text == "OK"
        assert envelope.method == "GET"
        assert envelope.url == "https://api.example.com/users/1"
        assert envelope.headers["content-type"] == "application/json"
        assert transport.calls[0][0] == "https://api.example.com/users/1"

    @pytest.mark.asyncio
    async def test_query_params(self, config, scripted, respond):
        transport = scripted(respond(200))
        pipeline = RequestPipeline(config, transport)

        await pipeline.execute("/users", RequestOptions(params={"tags": ["a", "b"], "x": None}))

        assert transport.calls[0][0] == "https://api.example.com/users?tags=a&tags=b"

    @pytest.mark.asyncio
    async def test_custom_params_serializer(self, base_url, scripted, respond):
        config = ClientConfig(base_url=base_url, serialize_params=lambda p: "?filter=" + ",".join(p))
        transport = scripted(respond(200))

        await RequestPipeline(config, transport).execute("/users", RequestOptions(params={"a": 1, "b": 2}))

        assert transport.calls[0][0] == "https://api.example.com/users?filter=a,b"

    @pytest.mark.asyncio
    async def test_headers_merge(self, base_url, scripted, respond):
        config = ClientConfig(base_url=base_url, headers={"Accept": "text/plain", "X-Client": "1"})
        transport = scripted(respond(200))

        await RequestPipeline(config, transport).execute(
            "/users", RequestOptions(headers={"accept": "application/json"})
        )

        headers = transport.calls[0][1].headers
        assert headers["accept"] == "application/json"
        assert headers.get_list("accept") == ["application/json"]
        assert headers["x-client"] == "1"

    @pytest.mark.asyncio
    async def test_json_body_for_post(self, config, scripted, respond):
        transport = scripted(respond(201))
        pipeline = RequestPipeline(config, transport)

        envelope = await pipeline.execute("/users", RequestOptions(method="post", body={"name": "Ann"}))

        init = transport.calls[0][1]
        assert init.method == "POST"
        assert init.body == '{"name":"Ann"}'
        assert init.headers["content-type"] == "application/json"
        assert envelope.status == 201

    @pytest.mark.asyncio
    async def test_body_ignored_for_get(self, config, scripted, respond):
        transport = scripted(respond(200))

        await RequestPipeline(config, transport).execute("/users", RequestOptions(body={"a": 1}))

        init = transport.calls[0][1]
        assert init.body is None
        assert "content-type" not in init.headers

    @pytest.mark.asyncio
    async def test_validate_status_override(self, config, scripted, respond):
        transport = scripted(respond(404, b"missing", {"content-type": "text/plain"}))

        envelope = await RequestPipeline(config, transport).execute(
            "/users/1", RequestOptions(validate_status=lambda status: status < 500)
        )

        assert envelope.status == 404
        assert envelope.data == "missing"

    @pytest.mark.asyncio
    async def test_response_is_closed(self, config, scripted):
        closed = []

        def step(url, init):
            async def on_close():
                closed.append(url)

            async def body():
                yield b"ok"

            return TransportResponse(200, "OK", {}, url=url, stream=body(), on_close=on_close)

        await RequestPipeline(config, scripted(step)).execute("/ping")
        assert closed == ["https://api.example.com/ping"]

    @pytest.mark.asyncio
    async def test_correlation_id_bound_during_request(self, base_url, scripted, respond):
        seen = {}

        def on_request(ctx):
            seen["request_id"] = ctx.request_id

        def step(url, init):
            seen["correlation_id"] = get_correlation_id()
            return respond(200)(url, init)

        config = ClientConfig(base_url=base_url, on_request=on_request)
        await RequestPipeline(config, scripted(step)).execute("/ping")

        assert seen["correlation_id"] == seen["request_id"]
        assert get_correlation_id() is None


class TestRetry:

    @pytest.mark.asyncio
    async def test_recovers_after_server_errors(self, config, scripted, respond, respond_json):
        transport = scripted(respond(500), respond(500), respond_json({"ok": True}))

        envelope = await RequestPipeline(config, transport).execute(
            "/flaky", RequestOptions(retry_options=RetryOptions(max_retries=2))
        )

        assert envelope.status == 200
        assert envelope.data == {"ok": True}
        assert transport.call_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, config, scripted, respond_json):
        transport = scripted(respond_json({"error": "busy"}, status=503))

        with pytest.raises(HTTPError) as exc_info:
            await RequestPipeline(config, transport).execute(
                "/busy", RequestOptions(retry_options=RetryOptions(max_retries=2))
            )

        error = exc_info.value
        assert transport.call_count == 3
        assert error.status == 503
        assert error.data == {"error": "busy"}
        assert error.method == "GET"
        assert error.url == "https://api.example.com/busy"

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self, config, scripted, respond):
        transport = scripted(respond(404))

        with pytest.raises(HTTPError):
            await RequestPipeline(config, transport).execute("/missing")

        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_network_error_retried(self, config, scripted, respond):
        transport = scripted(ConnectionResetError("reset"), respond(200))

        envelope = await RequestPipeline(config, transport).execute("/ping")

        assert envelope.status == 200
        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_network_error_wrapped_when_not_retried(self, config, scripted):
        transport = scripted(ConnectionResetError("reset"))

        with pytest.raises(NetworkError) as exc_info:
            await RequestPipeline(config, transport).execute(
                "/ping", RequestOptions(retry_options=RetryOptions(retry_network_errors=False))
            )

        assert transport.call_count == 1
        assert isinstance(exc_info.value.cause, ConnectionResetError)

    @pytest.mark.asyncio
    async def test_one_shot_payload_not_retried(self, config, scripted, respond):
        transport = scripted(respond(503))

        with pytest.raises(HTTPError):
            await RequestPipeline(config, transport).execute(
                "/upload", RequestOptions(method="PUT", body=iter([b"a", b"b"]))
            )

        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_decode_failure_not_retried(self, config, scripted, respond):
        transport = scripted(respond(200, b"{oops", {"content-type": "application/json"}))

        with pytest.raises(SerializationError):
            await RequestPipeline(config, transport).execute("/broken")

        assert transport.call_count == 1


class TestCancellation:

    @pytest.mark.asyncio
    async def test_pre_aborted_makes_no_transport_call(self, config, scripted, respond):
        transport = scripted(respond(200))
        token = CancellationToken()
        token.cancel("not needed")

        with pytest.raises(RequestAbortedError) as exc_info:
            await RequestPipeline(config, transport).execute("/ping", RequestOptions(signal=token))

        assert transport.call_count == 0
        assert exc_info.value.reason == "not needed"

    @pytest.mark.asyncio
    async def test_timeout(self, config, scripted, hang):
        transport = scripted(hang())
        token = CancellationToken()

        with pytest.raises(TimeoutError) as exc_info:
            await RequestPipeline(config, transport).execute(
                "/slow", RequestOptions(timeout=0.05, signal=token)
            )

        assert exc_info.value.timeout == 0.05
        assert exc_info.value.url == "https://api.example.com/slow"
        assert transport.call_count == 1
        assert token.listener_count == 0

    @pytest.mark.asyncio
    async def test_timeout_retried_by_custom_predicate(self, config, scripted, hang, respond):
        transport = scripted(hang(), respond(200))

        envelope = await RequestPipeline(config, transport).execute(
            "/slow",
            RequestOptions(
                timeout=0.05,
                retry_options=RetryOptions(
                    should_retry=lambda error, attempt: isinstance(error, TimeoutError)
                ),
            ),
        )

        assert envelope.status == 200
        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_abort_in_flight(self, config, scripted, hang):
        transport = scripted(hang())
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel, "user navigated away")

        with pytest.raises(RequestAbortedError) as exc_info:
            await RequestPipeline(config, transport).execute("/slow", RequestOptions(signal=token))

        assert exc_info.value.reason == "user navigated away"
        assert transport.call_count == 1
        assert token.listener_count == 0

    @pytest.mark.asyncio
    async def test_abort_during_backoff(self, config, scripted, respond):
        transport = scripted(respond(503))
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)

        with pytest.raises(RequestAbortedError):
            await RequestPipeline(config, transport).execute(
                "/busy",
                RequestOptions(
                    signal=token,
                    retry_options=RetryOptions(retry_delay=10.0, max_retry_delay=10.0),
                ),
            )

        assert transport.call_count == 1
        assert token.listener_count == 0

    @pytest.mark.asyncio
    async def test_listeners_released_after_success(self, config, scripted, respond):
        token = CancellationToken()

        await RequestPipeline(config, scripted(respond(200))).execute("/ping", RequestOptions(signal=token))

        assert token.listener_count == 0

    @pytest.mark.asyncio
    async def test_outer_cancellation_propagates(self, config, scripted, hang):
        pipeline = RequestPipeline(config, scripted(hang()))
        task = asyncio.ensure_future(pipeline.execute("/slow"))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestMiddleware:

    @pytest.mark.asyncio
    async def test_request_middleware_headers_reach_transport(self, base_url, scripted, respond):
        def add_auth(ctx):
            ctx.headers["Authorization"] = "Bearer token"
            ctx.params = {"page": 2}
            return ctx

        transport = scripted(respond(200))
        config = ClientConfig(base_url=base_url, on_request=add_auth)

        await RequestPipeline(config, transport).execute("/users")

        url, init = transport.calls[0]
        assert url == "https://api.example.com/users?page=2"
        assert init.headers["authorization"] == "Bearer token"

    @pytest.mark.asyncio
    async def test_request_middleware_failure_makes_no_call(self, base_url, scripted, respond):
        def broken(ctx):
            raise RuntimeError("no token")

        transport = scripted(respond(200))
        config = ClientConfig(base_url=base_url, on_request=broken)

        with pytest.raises(MiddlewareError) as exc_info:
            await RequestPipeline(config, transport).execute("/users")

        assert exc_info.value.phase == "request"
        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_response_middleware_failure_not_retried(self, base_url, scripted, respond):
        async def broken(envelope, ctx):
            raise RuntimeError("bad")

        transport = scripted(respond(200))
        config = ClientConfig(
            base_url=base_url,
            on_response=broken,
            retry=RetryOptions(should_retry=lambda error, attempt: True, retry_delay=0),
        )

        with pytest.raises(MiddlewareError) as exc_info:
            await RequestPipeline(config, transport).execute("/users")

        assert exc_info.value.phase == "response"
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_response_middleware_transforms_envelope(self, base_url, scripted, respond_json):
        def unwrap(envelope, ctx):
            envelope.data = envelope.data["items"]
            return envelope

        config = ClientConfig(base_url=base_url, on_response=unwrap)
        envelope = await RequestPipeline(config, scripted(respond_json({"items": [1, 2]}))).execute("/items")

        assert envelope.data == [1, 2]

    @pytest.mark.asyncio
    async def test_frozen_context_after_send(self, base_url, scripted, respond):
        captured = []

        def keep(ctx):
            captured.append(ctx)

        config = ClientConfig(base_url=base_url, on_request=keep)
        await RequestPipeline(config, scripted(respond(200))).execute("/users")

        assert captured[0].frozen
        with pytest.raises(AttributeError):
            captured[0].url = "/other"


class TestSchemaAndStreaming:

    @pytest.mark.asyncio
    async def test_schema_issues(self, config, scripted, respond_json):
        def require_id(data):
            if "id" in data:
                return ValidationResult(value=data)
            return ValidationResult(issues=[{"message": "id is required", "path": ["id"]}])

        schema = standard_schema(require_id)
        transport = scripted(respond_json({"name": "Ann"}))

        with pytest.raises(SchemaValidationError) as exc_info:
            await RequestPipeline(config, transport).execute("/users/1", RequestOptions(schema=schema))

        error = exc_info.value
        assert error.schema is schema
        assert error.data == {"name": "Ann"}
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_schema_value_becomes_data(self, config, scripted, respond_json):
        schema = standard_schema(lambda data: ValidationResult(value={"id": int(data["id"])}))

        envelope = await RequestPipeline(config, scripted(respond_json({"id": "7"}))).execute(
            "/users/7", RequestOptions(schema=schema)
        )

        assert envelope.data == {"id": 7}

    @pytest.mark.asyncio
    async def test_download_progress(self, config, scripted, respond):
        events = []
        transport = scripted(respond(200, b"abcdef", {"content-length": "6", "content-type": "text/plain"}))

        envelope = await RequestPipeline(config, transport).execute(
            "/file", RequestOptions(on_download_streaming=events.append)
        )

        assert envelope.data == "abcdef"
        assert events[-1].transferred_bytes == 6
        assert all(event.total_bytes == 6 for event in events)

    @pytest.mark.asyncio
    async def test_upload_progress(self, config, scripted):
        events = []
        received = []

        async def consume(url, init):
            async for chunk in init.body:
                received.append(chunk)
            return TransportResponse.from_bytes(200, b"", url=url)

        await RequestPipeline(config, scripted(consume)).execute(
            "/upload", RequestOptions(method="POST", body=b"x" * 10, on_upload_streaming=events.append)
        )

        assert b"".join(received) == b"x" * 10
        assert events[-1].transferred_bytes == 10
        assert all(event.total_bytes is None for event in events)

    @pytest.mark.asyncio
    async def test_upload_total_from_content_length_header(self, base_url, fast_retry, scripted):
        events = []

        def declare_length(ctx):
            ctx.headers["content-length"] = "10"

        async def consume(url, init):
            async for _ in init.body:
                pass
            return TransportResponse.from_bytes(200, b"", url=url)

        config = ClientConfig(base_url=base_url, retry=fast_retry, on_request=declare_length)
        await RequestPipeline(config, scripted(consume)).execute(
            "/upload", RequestOptions(method="POST", body=b"x" * 10, on_upload_streaming=events.append)
        )

        assert events[-1].transferred_bytes == 10
        assert all(event.total_bytes == 10 for event in events)

    @pytest.mark.asyncio
    async def test_download_callback_error_not_retried(self, config, scripted, respond):
        def broken(event):
            raise ValueError("callback bug")

        transport = scripted(respond(200, b"abcdef", {"content-type": "text/plain"}))

        with pytest.raises(SerializationError) as exc_info:
            await RequestPipeline(config, transport).execute(
                "/file", RequestOptions(on_download_streaming=broken)
            )

        assert isinstance(exc_info.value.cause, ValueError)
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_upload_callback_error_not_retried(self, config, scripted):
        def broken(event):
            raise ValueError("callback bug")

        async def consume(url, init):
            async for _ in init.body:
                pass
            return TransportResponse.from_bytes(200, b"", url=url)

        transport = scripted(consume)

        with pytest.raises(SerializationError) as exc_info:
            await RequestPipeline(config, transport).execute(
                "/upload", RequestOptions(method="POST", body=b"x" * 10, on_upload_streaming=broken)
            )

        assert isinstance(exc_info.value.cause, ValueError)
        assert transport.call_count == 1


class TestResolution:

    @pytest.mark.asyncio
    async def test_missing_path_param(self, config, scripted, respond):
        transport = scripted(respond(200))

        with pytest.raises(PathParameterError):
            await RequestPipeline(config, transport).execute("/users/:id")

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_absolute_url_bypasses_base(self, config, scripted, respond):
        transport = scripted(respond(200))

        await RequestPipeline(config, transport).execute("https://other.example.com/status")

        assert transport.calls[0][0] == "https://other.example.com/status"

    def test_invalid_response_type(self):
        with pytest.raises(ValueError):
            RequestOptions(response_type="blob")
