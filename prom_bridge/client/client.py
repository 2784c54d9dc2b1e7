"""
Prometheus API client.

The client holds only immutable configuration and a transport, so one instance
can serve concurrent callers. Every call builds a request, executes it once
and hands back a NormalizedResponse whose body the caller must close.
"""

import asyncio
import logging
from typing import Dict, Optional, Union

import httpx
from opentelemetry import trace

from prom_bridge.client.encoding import (
    exemplar_query_params,
    instant_query_params,
    range_query_params,
)
from prom_bridge.client.normalizer import normalize_response
from prom_bridge.client.request_builder import (
    QUERY_EXEMPLARS_ENDPOINT,
    QUERY_INSTANT_ENDPOINT,
    QUERY_RANGE_ENDPOINT,
    build_query_request,
    build_resource_request,
)
from prom_bridge.client.transport import HttpxTransport, Transport
from prom_bridge.models import (
    ClientConfig,
    EncodedRequest,
    HttpMethod,
    NormalizedResponse,
    Query,
    ResourceRequest,
)
from prom_bridge.utils import redact_url
from prom_bridge.utils.traced_requests import traced_request

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)


class Client:
    """Client for the Prometheus HTTP API."""

    def __init__(self, transport: Transport, config: ClientConfig):
        self.logger = logger
        self.transport = transport
        self.config = config
        self.logger.info(
            f"[Client] Initialized with URL: {redact_url(config.base_url)}, method: {config.method.value}"
        )

    @classmethod
    def create(
        cls,
        transport: Transport,
        method: Union[HttpMethod, str],
        base_url: str,
        **kwargs,
    ) -> "Client":
        return cls(
            transport, ClientConfig(base_url=base_url, method=HttpMethod(method), **kwargs)
        )

    @classmethod
    def from_env(cls, transport: Optional[Transport] = None) -> "Client":
        config = ClientConfig.from_env()
        return cls(transport or HttpxTransport(timeout=config.timeout), config)

    async def query_resource(
        self, req: ResourceRequest, timeout: Optional[float] = None
    ) -> NormalizedResponse:
        """Forward a resource call; the response body is always gzip-normalized."""
        encoded = build_resource_request(self.config, req)
        return await self._execute(
            "prometheus.query_resource",
            encoded,
            decompress=True,
            timeout=timeout,
            extra_attrs={"prometheus.path": req.path},
        )

    async def query_range(
        self, query: Query, timeout: Optional[float] = None
    ) -> NormalizedResponse:
        return await self._query(
            "prometheus.query_range",
            QUERY_RANGE_ENDPOINT,
            range_query_params(query),
            timeout,
        )

    async def query_instant(
        self, query: Query, timeout: Optional[float] = None
    ) -> NormalizedResponse:
        return await self._query(
            "prometheus.query_instant",
            QUERY_INSTANT_ENDPOINT,
            instant_query_params(query),
            timeout,
        )

    async def query_exemplars(
        self, query: Query, timeout: Optional[float] = None
    ) -> NormalizedResponse:
        return await self._query(
            "prometheus.query_exemplars",
            QUERY_EXEMPLARS_ENDPOINT,
            exemplar_query_params(query),
            timeout,
        )

    async def _query(
        self,
        operation: str,
        endpoint: str,
        params: Dict[str, str],
        timeout: Optional[float],
    ) -> NormalizedResponse:
        encoded = build_query_request(self.config, endpoint, params)
        return await self._execute(
            operation,
            encoded,
            decompress=self.config.gzip_query_responses,
            timeout=timeout,
            extra_attrs={"prometheus.endpoint": endpoint},
        )

    async def _execute(
        self,
        operation: str,
        encoded: EncodedRequest,
        decompress: bool,
        timeout: Optional[float],
        extra_attrs: Optional[Dict] = None,
    ) -> NormalizedResponse:
        if timeout is None:
            timeout = self.config.timeout
        url = redact_url(encoded.url)

        with traced_request(tracer, operation, encoded, extra_attrs) as span:
            try:
                call = self.transport.execute(encoded.to_httpx())
                if timeout is None:
                    response = await call
                else:
                    response = await asyncio.wait_for(call, timeout)
            except asyncio.CancelledError:
                self.logger.info(f"[Client] Request to {url} was cancelled")
                span.set_attribute("prometheus.error", "cancelled")
                raise
            except asyncio.TimeoutError:
                self.logger.error(f"[Client] Timeout after {timeout}s for {url}")
                span.set_attribute("prometheus.error", "timeout")
                raise
            except httpx.HTTPError as e:
                self.logger.error(f"[Client] Request to {url} failed: {e}")
                span.set_attribute("prometheus.error", str(e))
                raise

            span.set_attribute("prometheus.status_code", response.status_code)
            self.logger.debug(
                f"[Client] {encoded.method} {url} -> {response.status_code}"
            )
            return normalize_response(response, decompress=decompress)
