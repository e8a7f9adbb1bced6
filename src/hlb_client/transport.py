"""HTTP transport with rate-limit retries and structured errors.

Each request carries the static API key and a fresh signed header. Only
rate-limited responses (HTTP 429) are retried; every other outcome is final
at this layer and is converted into an :mod:`hlb_client.errors` exception.
The verb is not inspected: mutating calls are resent on 429 as well, which is
safe because the control plane keys them by resource id.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from hlb_client.errors import BackendError, LocalError
from hlb_client.utils.masking import redact_sensitive_fields

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
SIGNED_HEADER = "X-Sts-Gci-Headers"

HeaderProvider = Callable[[], Awaitable[str]]


class RetryPolicy(Protocol):
    def should_retry(self, error: BaseException | None, status_code: int | None) -> bool: ...


class RateLimitRetryPolicy:
    """Retry if and only if a response arrived and it says "too many requests"."""

    def should_retry(self, error: BaseException | None, status_code: int | None) -> bool:
        return error is None and status_code == httpx.codes.TOO_MANY_REQUESTS


def encode_body(body: Any) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json", by_alias=True, exclude_none=True)
    try:
        return json.dumps(body).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise LocalError(f"failed to marshal request body: {exc}") from exc


def _retry_after_seconds(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class RetryingTransport:
    """Sends authenticated JSON requests to the control plane."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        header_provider: HeaderProvider,
        *,
        policy: RetryPolicy | None = None,
        max_retries: int = 5,
        wait_min: float = 1.0,
        wait_max: float = 30.0,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        debug: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._header_provider = header_provider
        self._policy = policy or RateLimitRetryPolicy()
        self._max_retries = max_retries
        self._wait_min = wait_min
        self._wait_max = wait_max
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep
        self.debug = debug

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "RetryingTransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def backoff(self, attempt: int, response: httpx.Response | None = None) -> float:
        """Wait before retry number ``attempt + 1`` (``attempt`` counts from 0)."""
        retry_after = _retry_after_seconds(response)
        if retry_after is not None:
            return min(self._wait_max, retry_after)
        return min(self._wait_max, self._wait_min * (2**attempt))

    async def _headers(self) -> dict[str, str]:
        signed = await self._header_provider()
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            API_KEY_HEADER: self._api_key,
            SIGNED_HEADER: signed,
        }

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request and return the successful (2xx) response.

        Raises:
            BackendError: The server answered with a non-2xx status.
            LocalError: The request could not be built or sent.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        what = f"{method.upper()} {url}"
        content = encode_body(body)
        query = {k: v for k, v in (params or {}).items() if v is not None} or None

        logger.debug("Request: %s", what)
        if self.debug and body is not None:
            logger.debug("Request body: %s", redact_sensitive_fields(json.loads(content or b"null")))

        response: httpx.Response | None = None
        error: httpx.HTTPError | None = None
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            headers = await self._headers()
            response, error = None, None
            try:
                response = await self._client.request(
                    method.upper(), url, content=content, params=query, headers=headers
                )
            except httpx.HTTPError as exc:
                error = exc

            status = response.status_code if response is not None else None
            if attempt + 1 >= attempts or not self._policy.should_retry(error, status):
                break

            wait = self.backoff(attempt, response)
            logger.warning(
                "Request attempt #%d/%d throttled; will retry in %.2fs: %s -> %s",
                attempt + 1,
                attempts,
                wait,
                what,
                status if error is None else repr(error),
            )
            await self._sleep(wait)

        if error is not None:
            raise LocalError(f"failed to send request {what}: {error}") from error
        if response is None:  # impossible, but needed for type-checking.
            raise RuntimeError("Broken retryable routine.")

        if not response.is_success:
            raise self._error_from(response, what)

        if self.debug:
            logger.debug("Response %d: %s", response.status_code, response.text)
        return response

    async def send_json(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Like :meth:`send`, decoding the JSON body (``None`` for an empty body)."""
        response = await self.send(method, path, body=body, params=params)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise LocalError(f"failed to decode response: {exc}") from exc

    def _error_from(self, response: httpx.Response, what: str) -> BackendError:
        body: Any = None
        if response.content:
            if self.debug:
                logger.debug("Error response body: %s", response.text)
            try:
                body = response.json()
            except ValueError:
                body = None
        error = BackendError.from_body(response.status_code, body)
        logger.debug("Request failed: %s -> %s", what, error)
        return error
