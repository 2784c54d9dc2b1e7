import asyncio
from typing import Optional

import httpx


class RecordingTransport:
    """Transport double that keeps the last request it was asked to execute."""

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        headers: Optional[dict] = None,
        echo: bool = False,
    ):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        # Reply with the request body, like a backend echoing what it got
        self.echo = echo
        self.request: Optional[httpx.Request] = None
        self.requests: list[httpx.Request] = []

    async def execute(self, request: httpx.Request) -> httpx.Response:
        self.request = request
        self.requests.append(request)
        content = request.content if self.echo else self.content
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=content,
            request=request,
        )


class FailingTransport:
    """Transport double that raises the given error."""

    def __init__(self, error: Exception):
        self.error = error
        self.request: Optional[httpx.Request] = None

    async def execute(self, request: httpx.Request) -> httpx.Response:
        self.request = request
        raise self.error


class HangingTransport:
    """Transport double that never answers."""

    def __init__(self):
        self.started = asyncio.Event()

    async def execute(self, request: httpx.Request) -> httpx.Response:
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")
