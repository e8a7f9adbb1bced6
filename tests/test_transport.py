"""Tests for the retrying HTTP transport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from hlb_client.errors import BackendError, LocalError
from hlb_client.models import ListenerUpdate
from hlb_client.transport import (
    API_KEY_HEADER,
    SIGNED_HEADER,
    RateLimitRetryPolicy,
    RetryingTransport,
    encode_body,
)

BASE_URL = "https://hlb.us-east-1.aws.zonehero.cloud/v1"


class _Recorder:
    def __init__(self, responses: list[httpx.Response | Exception]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _transport(
    handler: Callable[[httpx.Request], httpx.Response],
    sleeps: _Sleeps | None = None,
    **kwargs: object,
) -> RetryingTransport:
    headers = iter(f"signed-{n}" for n in range(1, 100))

    async def header_provider() -> str:
        return next(headers)

    return RetryingTransport(
        BASE_URL,
        "api-key-123",
        header_provider,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=sleeps or _Sleeps(),
        **kwargs,  # type: ignore[arg-type]
    )


class TestRateLimitRetryPolicy:
    def test_only_429_without_error_is_retried(self) -> None:
        policy = RateLimitRetryPolicy()
        assert policy.should_retry(None, 429)
        for status in (200, 400, 401, 404, 409, 500, 502, 503):
            assert not policy.should_retry(None, status)
        assert not policy.should_retry(httpx.ConnectError("boom"), None)
        assert not policy.should_retry(httpx.ConnectError("boom"), 429)


class TestRetryingTransport:
    @pytest.mark.asyncio
    async def test_attaches_headers_and_builds_url(self) -> None:
        recorder = _Recorder([httpx.Response(200, json={"ok": True})])
        transport = _transport(recorder)

        data = await transport.send_json(
            "get", "/aws_account/1/load-balancers", params={"limit": 20, "nextToken": None}
        )

        assert data == {"ok": True}
        request = recorder.requests[0]
        assert request.method == "GET"
        assert str(request.url) == f"{BASE_URL}/aws_account/1/load-balancers?limit=20"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers[API_KEY_HEADER] == "api-key-123"
        assert request.headers[SIGNED_HEADER] == "signed-1"

    @pytest.mark.asyncio
    async def test_sends_model_body_by_alias(self) -> None:
        recorder = _Recorder([httpx.Response(201, json={})])
        transport = _transport(recorder)

        await transport.send("PUT", "x", body=ListenerUpdate(target_group_arn="arn"))

        assert json.loads(recorder.requests[0].content) == {"targetGroupArn": "arn"}

    @pytest.mark.asyncio
    async def test_retries_rate_limited_requests_with_fresh_headers(self) -> None:
        recorder = _Recorder(
            [httpx.Response(429), httpx.Response(429), httpx.Response(200, json={"id": "lb"})]
        )
        sleeps = _Sleeps()
        transport = _transport(recorder, sleeps, wait_min=1.0, wait_max=30.0)

        data = await transport.send_json("GET", "lb")

        assert data == {"id": "lb"}
        assert len(recorder.requests) == 3
        assert sleeps.delays == [1.0, 2.0]
        assert [r.headers[SIGNED_HEADER] for r in recorder.requests] == [
            "signed-1",
            "signed-2",
            "signed-3",
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 500, 502, 503])
    async def test_other_statuses_are_not_retried(self, status: int) -> None:
        recorder = _Recorder([httpx.Response(status), httpx.Response(200)])
        sleeps = _Sleeps()
        transport = _transport(recorder, sleeps)

        with pytest.raises(BackendError) as exc_info:
            await transport.send("GET", "lb")

        assert exc_info.value.status_code == status
        assert len(recorder.requests) == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_error_envelope_is_preserved(self) -> None:
        recorder = _Recorder(
            [httpx.Response(400, json={"code": 4001, "message": "invalid subnet"})]
        )

        with pytest.raises(BackendError) as exc_info:
            await _transport(recorder).send("POST", "lb", body={})

        error = exc_info.value
        assert error.has_envelope
        assert (error.status_code, error.code, error.message) == (400, 4001, "invalid subnet")

    @pytest.mark.asyncio
    async def test_non_json_error_body_is_generic(self) -> None:
        recorder = _Recorder([httpx.Response(502, text="<html>bad gateway</html>")])

        with pytest.raises(BackendError) as exc_info:
            await _transport(recorder).send("GET", "lb")

        assert not exc_info.value.has_envelope
        assert str(exc_info.value) == "request failed with status 502"

    @pytest.mark.asyncio
    async def test_rate_limit_after_last_attempt_is_backend_error(self) -> None:
        recorder = _Recorder([httpx.Response(429) for _ in range(3)])
        sleeps = _Sleeps()
        transport = _transport(recorder, sleeps, max_retries=2, wait_min=1.0, wait_max=30.0)

        with pytest.raises(BackendError) as exc_info:
            await transport.send("GET", "lb")

        assert exc_info.value.status_code == 429
        assert len(recorder.requests) == 3
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_after_header_is_honoured_and_capped(self) -> None:
        recorder = _Recorder(
            [
                httpx.Response(429, headers={"Retry-After": "7"}),
                httpx.Response(429, headers={"Retry-After": "120"}),
                httpx.Response(204),
            ]
        )
        sleeps = _Sleeps()
        transport = _transport(recorder, sleeps, wait_min=1.0, wait_max=30.0)

        assert await transport.send_json("DELETE", "lb") is None
        assert sleeps.delays == [7.0, 30.0]

    @pytest.mark.asyncio
    async def test_network_errors_are_local_and_not_retried(self) -> None:
        recorder = _Recorder([httpx.ConnectError("connection refused"), httpx.Response(200)])
        sleeps = _Sleeps()

        with pytest.raises(LocalError, match="connection refused") as exc_info:
            await _transport(recorder, sleeps).send("GET", "lb")

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert len(recorder.requests) == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_invalid_json_response_is_local_error(self) -> None:
        recorder = _Recorder([httpx.Response(200, text="not json")])

        with pytest.raises(LocalError, match="failed to decode response"):
            await _transport(recorder).send_json("GET", "lb")

    @pytest.mark.asyncio
    async def test_header_provider_failure_propagates(self) -> None:
        recorder = _Recorder([httpx.Response(200)])

        async def failing_provider() -> str:
            raise LocalError("no credentials")

        transport = RetryingTransport(
            BASE_URL,
            "api-key-123",
            failing_provider,
            client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        )

        with pytest.raises(LocalError, match="no credentials"):
            await transport.send("GET", "lb")
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_closes_only_owned_client(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(_Recorder([])))

        async def provider() -> str:
            return "signed"

        async with RetryingTransport(BASE_URL, "k", provider, client=client):
            pass
        assert not client.is_closed

        owned = RetryingTransport(BASE_URL, "k", provider)
        await owned.aclose()
        assert owned._client.is_closed  # noqa: SLF001
        await client.aclose()


def test_backoff_is_exponential_and_capped() -> None:
    async def provider() -> str:
        return "signed"

    transport = RetryingTransport(BASE_URL, "k", provider, wait_min=1.0, wait_max=30.0)
    assert [transport.backoff(n) for n in range(7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_encode_body_rejects_unserializable_values() -> None:
    with pytest.raises(LocalError, match="failed to marshal"):
        encode_body({"when": object()})
    assert encode_body(None) is None
