from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from prom_bridge.vars import (
    PROMETHEUS_GZIP_QUERY_RESPONSES,
    PROMETHEUS_HTTP_METHOD,
    PROMETHEUS_TIMEOUT,
    PROMETHEUS_URL,
)

if TYPE_CHECKING:
    from prom_bridge.client.normalizer import ResponseBody


class HttpMethod(str, Enum):
    """How query parameters are sent to Prometheus."""

    GET = "GET"
    POST = "POST"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


class ClientConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str
    method: HttpMethod = HttpMethod.POST
    timeout: Optional[float] = None
    # Resource responses are always sniffed for gzip, query responses only on request
    gzip_query_responses: bool = False

    @field_validator("method", mode="before")
    @classmethod
    def _parse_method(cls, value):
        if isinstance(value, str):
            return HttpMethod(value)
        return value

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            base_url=PROMETHEUS_URL,
            method=HttpMethod(PROMETHEUS_HTTP_METHOD),
            timeout=PROMETHEUS_TIMEOUT,
            gzip_query_responses=PROMETHEUS_GZIP_QUERY_RESPONSES,
        )


class ResourceRequest(BaseModel):
    """A proxied call: method, path and body are forwarded as given."""

    method: str
    path: str = ""
    # Raw URL as received, may carry its own query string
    url: str = ""
    body: bytes = b""
    headers: Dict[str, str] = Field(default_factory=dict)


class Query(BaseModel):
    """A PromQL query over [start, end] sampled every step."""

    model_config = ConfigDict(frozen=True)

    expr: str
    start: datetime
    end: datetime
    step: timedelta = timedelta(seconds=1)
    range_query: bool = True
    instant_query: bool = False
    exemplar_query: bool = False


@dataclass(frozen=True)
class EncodedRequest:
    """The request handed to the transport; nothing else leaves the builder."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def to_httpx(self) -> httpx.Request:
        # httpx percent-encodes characters that are not valid in a URL (space, ", <, >);
        # existing escapes and everything else in the query are sent as given
        return httpx.Request(
            self.method,
            self.url,
            headers=self.headers,
            content=self.body,
        )


@dataclass
class NormalizedResponse:
    """
    Upstream response with a plain-bytes body.

    The caller owns ``body`` and must close it, either with ``aclose()`` or by
    using the response as an async context manager.
    """

    status_code: int
    headers: httpx.Headers
    body: "ResponseBody"

    async def aclose(self) -> None:
        await self.body.aclose()

    async def __aenter__(self) -> "NormalizedResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
