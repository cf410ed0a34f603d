from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol, runtime_checkable

import httpx
from loguru import logger

from chatbot_core.errors import AuthenticationFailure, StreamInterrupted, TransportFailure
from chatbot_core.request_builder import RequestSpec

_DEFAULT_TIMEOUT_SECONDS = 120.0


@runtime_checkable
class CompletionTransport(Protocol):
    def open_stream(self, request: RequestSpec) -> AbstractAsyncContextManager[AsyncIterator[str]]:
        """Issue ``request`` and yield the response body as text lines.

        Entering the context raises ``TransportFailure`` when no response body
        can be obtained. Iterating the lines raises ``StreamInterrupted`` when
        the connection fails mid-body. Leaving the context closes the response.
        """
        ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    def __init__(
        self,
        *,
        timeout_seconds: float | None = _DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @asynccontextmanager
    async def open_stream(self, request: RequestSpec) -> AsyncIterator[AsyncIterator[str]]:
        logger.debug(
            f"API request: {request.method} {request.url}, model={request.body.get('model')}, "
            f"messages={len(request.body.get('messages', []))}"
        )
        http_request = self._client.build_request(
            request.method,
            request.url,
            headers=dict(request.headers),
            json=request.body,
        )
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as ex:
            raise TransportFailure(f"{type(ex).__name__}: {ex}") from ex

        try:
            if response.status_code >= 400:
                detail = await _read_error_body(response)
                logger.warning(f"HTTP {response.status_code} from completion endpoint: {detail}")
                error_type = AuthenticationFailure if response.status_code in (401, 403) else TransportFailure
                raise error_type(
                    f"HTTP {response.status_code} from completion endpoint: {detail}",
                    status_code=response.status_code,
                )
            yield _iter_lines(response)
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


async def _iter_lines(response: httpx.Response) -> AsyncIterator[str]:
    try:
        async for line in response.aiter_lines():
            yield line
    except httpx.HTTPError as ex:
        raise StreamInterrupted(f"{type(ex).__name__}: {ex}") from ex


async def _read_error_body(response: httpx.Response, max_chars: int = 500) -> str:
    try:
        raw = await response.aread()
    except httpx.HTTPError:
        return "(unreadable body)"
    return raw.decode("utf-8", errors="replace")[:max_chars]
