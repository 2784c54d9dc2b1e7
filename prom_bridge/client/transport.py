import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger("uvicorn.error")


@runtime_checkable
class Transport(Protocol):
    """Executes one HTTP request and returns the response or raises."""

    async def execute(self, request: httpx.Request) -> httpx.Response: ...


class HttpxTransport:
    """
    Transport backed by an httpx.AsyncClient.

    Responses are streamed: the body is not read until the caller reads it,
    and the caller must close the response. Errors raised by httpx propagate
    unchanged.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        )

    async def execute(self, request: httpx.Request) -> httpx.Response:
        return await self.client.send(request, stream=True)

    async def aclose(self) -> None:
        if self._owns_client:
            logger.debug("[HttpxTransport] Closing HTTP client")
            await self.client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
