"""Async streaming client for OpenAI-compatible ``/chat/completions``.

Uses ``httpx.AsyncClient``.  ``open_stream()`` returns once the response
headers arrive (so HTTP errors, including 429, surface there and can be
retried), and the returned ``ChatStream`` yields decoded SSE chunks.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, AsyncIterator

import httpx

from open_relay.errors import ProviderError, RateLimitError
from open_relay.providers.profile import ProviderProfile

_logger = logging.getLogger(__name__)

_DEBUG = os.environ.get("OPEN_RELAY_DEBUG") == "1"


def _mask_headers(headers: dict[str, str]) -> dict[str, str]:
    masked = dict(headers)
    for key in list(masked):
        if key.lower() in ("authorization", "x-api-key", "api-key"):
            masked[key] = "***REDACTED***"
    return masked


def _error_from_body(status_code: int, raw: bytes) -> ProviderError:
    """Build a ProviderError from a non-2xx response body."""
    text = raw.decode(errors="replace")
    body: Any = text
    message = text.strip() or f"HTTP {status_code}"
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        pass
    else:
        err = body.get("error") if isinstance(body, dict) else None
        if isinstance(err, dict) and err.get("message"):
            message = str(err["message"])
        elif isinstance(err, str):
            message = err
    message = f"{status_code} {message}"
    if status_code == 429:
        return RateLimitError(message, status_code=status_code, body=body)
    return ProviderError(message, status_code=status_code, body=body)


def _error_from_chunk(payload: dict[str, Any]) -> ProviderError:
    """Build a ProviderError from an in-stream ``{"error": ...}`` event."""
    err = payload.get("error")
    if isinstance(err, dict):
        message = str(err.get("message") or err)
        code = err.get("code", err.get("status", 0))
    else:
        message, code = str(err), 0
    try:
        status = int(code)
    except (TypeError, ValueError):
        status = 0
    cls = RateLimitError if status == 429 else ProviderError
    return cls(message, status_code=status, body=payload)


class ChatStream:
    """One streamed completion.  Iterate for chunk dicts; always close."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.done = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        async for raw_line in self._response.aiter_lines():
            line = raw_line.strip()
            if not line.startswith("data:"):
                continue
            data_str = line[5:].strip()
            if data_str == "[DONE]":
                self.done = True
                break
            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                _logger.debug("Skipping undecodable SSE line: %.200s", data_str)
                continue
            if isinstance(data, dict) and data.get("error"):
                raise _error_from_chunk(data)
            if isinstance(data, dict):
                yield data
        self.done = True

    async def aclose(self) -> None:
        await self._response.aclose()

    async def __aenter__(self) -> ChatStream:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


class AsyncStreamClient:
    """Streaming client bound to one provider profile.

    Parameters
    ----------
    profile:
        Endpoint and default headers.
    api_key:
        Sent as a bearer token when non-empty.
    timeout:
        Overall httpx timeout in seconds.  The read timeout between chunks
        is fixed at 300 seconds.
    transport:
        Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        profile: ProviderProfile,
        api_key: str = "",
        timeout: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.profile = profile
        headers = {"Content-Type": "application/json", **profile.default_headers}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=profile.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=30, read=300),
            transport=transport,
        )

    async def open_stream(
        self,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> ChatStream:
        """POST *body* and return the stream once headers are received.

        Raises ``RateLimitError`` for 429 and ``ProviderError`` for any other
        non-2xx status.  Transport failures propagate as ``httpx`` errors.
        """
        request = self._client.build_request(
            "POST", "/chat/completions", json=body, headers=headers or None,
        )
        if _DEBUG:
            _logger.debug(
                "[%s] POST %s headers=%s body=%s",
                self.profile.id, request.url,
                _mask_headers(dict(request.headers)), json.dumps(body)[:4000],
            )
        response = await self._client.send(request, stream=True)
        if response.status_code >= 400:
            try:
                raw = await response.aread()
            finally:
                await response.aclose()
            raise _error_from_body(response.status_code, raw)
        return ChatStream(response)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
