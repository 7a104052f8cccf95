"""Async HTTP transport for the Messages API built on httpx."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, Iterator, Mapping

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..errors import ErrorCode, TransportError
from .decoder import decode
from .payload import RequestPayload, validate_wire

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
DEFAULT_API_VERSION = "2023-06-01"


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the HTTP transport."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    anthropic_version: str = DEFAULT_API_VERSION
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class SSEDecoder:
    """Incremental joiner for server-sent event ``data:`` fields.

    Feed it one line at a time; it returns the joined data of a frame when a
    blank line closes that frame.
    """

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed(self, line: str) -> str | None:
        line = line.rstrip("\r\n")
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data.append(value)
        return None

    def flush(self) -> str | None:
        if not self._data:
            return None
        data = "\n".join(self._data)
        self._data = []
        return data


def iter_sse_data(lines: Iterable[str]) -> Iterator[str]:
    """Yield the ``data`` payload of every complete SSE frame in ``lines``."""

    decoder = SSEDecoder()
    for line in lines:
        data = decoder.feed(line)
        if data is not None:
            yield data
    tail = decoder.flush()
    if tail is not None:
        yield tail


class MessagesClient:
    """Async client that posts request payloads and yields raw response units."""

    def __init__(self, settings: ClientSettings, *, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def messages_url(self) -> str:
        return f"{self._settings.base_url.rstrip('/')}/messages"

    async def __aenter__(self) -> MessagesClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def send(self, payload: RequestPayload | Mapping[str, Any]) -> Any:
        """Post a non-streaming request and return the parsed JSON body."""

        body = self._request_body(payload, stream=False)
        async for attempt in self._retrying():
            with attempt:
                try:
                    response = await self._client.post(self.messages_url, json=body, headers=self._headers())
                except httpx.TransportError as exc:
                    raise _wrap_network_error(exc, partial=False) from exc
                if response.status_code >= 400:
                    raise _status_error(response.status_code, response.text)
                try:
                    return response.json()
                except ValueError as exc:
                    raise TransportError(
                        code=ErrorCode.INVALID_RESPONSE,
                        message=f"Response body is not JSON (HTTP {response.status_code})",
                        status_code=response.status_code,
                        body=response.text,
                    ) from exc
        raise TransportError(message="Request was not attempted")  # pragma: no cover - retry loop always runs

    async def stream(self, payload: RequestPayload | Mapping[str, Any]) -> AsyncIterator[str]:
        """Post a streaming request and yield the data of each SSE frame."""

        body = self._request_body(payload, stream=True)
        async for attempt in self._retrying():
            with attempt:
                yielded = False
                try:
                    async with self._client.stream(
                        "POST", self.messages_url, json=body, headers=self._headers()
                    ) as response:
                        if response.status_code >= 400:
                            await response.aread()
                            raise _status_error(response.status_code, response.text)
                        decoder = SSEDecoder()
                        async for line in response.aiter_lines():
                            data = decoder.feed(line)
                            if data is not None:
                                yielded = True
                                yield data
                        tail = decoder.flush()
                        if tail is not None:
                            yielded = True
                            yield tail
                except httpx.TransportError as exc:
                    raise _wrap_network_error(exc, partial=yielded) from exc
                break

    async def responses(self, payload: RequestPayload) -> AsyncIterator[Any]:
        """Yield response units for ``payload`` honoring its streaming flag."""

        if payload.streaming:
            async for unit in self.stream(payload):
                yield unit
            return
        yield await self.send(payload)

    async def aclose(self) -> None:
        """Close the underlying httpx client to release network resources."""

        await self._client.aclose()

    def _build_client(self, settings: ClientSettings) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.request_timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "x-api-key": self._settings.api_key,
            "anthropic-version": self._settings.anthropic_version,
            "content-type": "application/json",
        }
        if self._settings.default_headers:
            headers.update(self._settings.default_headers)
        return headers

    def _request_body(self, payload: RequestPayload | Mapping[str, Any], *, stream: bool) -> Dict[str, Any]:
        body = payload.to_wire() if isinstance(payload, RequestPayload) else dict(payload)
        if not body.get("messages"):
            raise ValueError("At least one message is required to start a chat")
        if stream:
            body["stream"] = True
        else:
            body.pop("stream", None)
        validate_wire(body)
        LOGGER.debug(
            "Posting %s request for %s with %s message(s)",
            "streamed" if stream else "single-shot",
            body.get("model"),
            len(body["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(body)
        return body

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(_should_retry),
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Request payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Request payload:\n%s", serialized)


def _should_retry(exc: BaseException) -> bool:
    if not isinstance(exc, TransportError):
        return False
    if exc.details.get("partial"):
        return False
    return exc.retryable


def _wrap_network_error(exc: httpx.TransportError, *, partial: bool) -> TransportError:
    code = ErrorCode.TIMEOUT if isinstance(exc, httpx.TimeoutException) else ErrorCode.TRANSPORT_FAILED
    message = str(exc) or exc.__class__.__name__
    return TransportError(code=code, message=message, details={"partial": partial})


def _status_error(status_code: int, body: str) -> TransportError:
    message = decode(body) or f"HTTP {status_code}"
    return TransportError(
        code=ErrorCode.HTTP_STATUS,
        message=message,
        status_code=status_code,
        body=body,
    )


__all__ = [
    "ClientSettings",
    "DEFAULT_API_VERSION",
    "DEFAULT_BASE_URL",
    "MessagesClient",
    "SSEDecoder",
    "iter_sse_data",
]
