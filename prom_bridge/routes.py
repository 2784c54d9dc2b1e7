import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Dict

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from opentelemetry import trace
from pydantic import BaseModel

from prom_bridge.client import Client
from prom_bridge.client.request_builder import HOP_BY_HOP_HEADERS
from prom_bridge.errors import InvalidRequest
from prom_bridge.models import NormalizedResponse, Query, ResourceRequest

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# The streamed body is already decoded, so these no longer describe it
DECODED_BODY_HEADERS = {"content-encoding", "content-length"}


class InstantQueryRequest(BaseModel):
    expr: str
    time: datetime


def get_client(request: Request) -> Client:
    return request.app.state.prometheus_client


def response_headers(upstream: httpx.Headers) -> Dict[str, str]:
    headers = {}
    for name, value in upstream.items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS or name_lower in DECODED_BODY_HEADERS:
            continue
        headers[name] = value
    return headers


async def stream_body(response: NormalizedResponse) -> AsyncIterator[bytes]:
    """Stream the normalized body and release the upstream connection afterwards."""
    try:
        async for chunk in response.body.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()


def to_streaming_response(response: NormalizedResponse) -> StreamingResponse:
    return StreamingResponse(
        stream_body(response),
        status_code=response.status_code,
        headers=response_headers(response.headers),
        media_type=response.headers.get("content-type") or None,
    )


async def call_prometheus(description: str, call) -> NormalizedResponse:
    """Await a client call, mapping its failures to gateway HTTP errors."""
    try:
        return await call
    except InvalidRequest as e:
        logger.warning(f"Rejected {description}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except (httpx.TimeoutException, asyncio.TimeoutError) as e:
        logger.error(f"Prometheus timeout for {description}: {e}")
        raise HTTPException(status_code=504, detail="Gateway timeout")
    except httpx.ConnectError as e:
        logger.error(f"Failed to connect to Prometheus for {description}: {e}")
        raise HTTPException(
            status_code=502, detail="Bad gateway - cannot connect to Prometheus"
        )
    except httpx.HTTPError as e:
        logger.error(f"Prometheus error for {description}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Bad gateway: {str(e)}")


@router.post("/query_range")
async def query_range(query: Query, request: Request):
    """Run a range query; start, end and step are given in seconds."""
    client = get_client(request)
    response = await call_prometheus(
        f"query_range {query.expr!r}", client.query_range(query)
    )
    return to_streaming_response(response)


@router.post("/query")
async def query_instant(body: InstantQueryRequest, request: Request):
    client = get_client(request)
    query = Query(
        expr=body.expr,
        start=body.time,
        end=body.time,
        range_query=False,
        instant_query=True,
    )
    response = await call_prometheus(
        f"query {query.expr!r}", client.query_instant(query)
    )
    return to_streaming_response(response)


@router.api_route(
    "/resources/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def proxy_resource(request: Request, path: str):
    """Catch-all route that proxies resource calls to Prometheus."""
    client = get_client(request)
    target = f"/{path}"
    query_string = str(request.url.query)
    url = f"{target}?{query_string}" if query_string else target

    with tracer.start_as_current_span("proxy_resource") as span:
        span.set_attribute("proxy.method", request.method)
        span.set_attribute("proxy.path", target)
        resource = ResourceRequest(
            method=request.method,
            path=target,
            url=url,
            body=await request.body(),
            headers=dict(request.headers),
        )
        response = await call_prometheus(
            f"{request.method} {target}", client.query_resource(resource)
        )
        span.set_attribute("proxy.status_code", response.status_code)
    return to_streaming_response(response)
