import logging
from typing import Optional, Dict
from contextlib import contextmanager

from opentelemetry.trace import Tracer

from prom_bridge.models import EncodedRequest
from prom_bridge.utils import redact_url

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    request: EncodedRequest,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a span, set common attributes, and log a start message."""
    url = redact_url(request.url)
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("prometheus.method", request.method)
        span.set_attribute("prometheus.url", url)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.debug(f"[{operation}] {request.method} {url}")
        yield span
