"""
Build the HTTP requests sent to Prometheus.

Resource calls are forwarded as they came in. Query calls are encoded
according to the client's configured method: form body for POST, query
string for GET.
"""

from typing import Dict, Mapping

import httpx

from prom_bridge.client.encoding import ParamValue, encode_values
from prom_bridge.errors import InvalidRequest
from prom_bridge.models import ClientConfig, EncodedRequest, HttpMethod, ResourceRequest

QUERY_RANGE_ENDPOINT = "/api/v1/query_range"
QUERY_INSTANT_ENDPOINT = "/api/v1/query"
QUERY_EXEMPLARS_ENDPOINT = "/api/v1/query_exemplars"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Recomputed by httpx for the outgoing request
RECOMPUTED_HEADERS = {"content-length", "host"}


def join_url(base_url: str, path: str) -> str:
    """Join base_url and path with exactly one slash; a query string in path is kept verbatim."""
    if not base_url:
        raise InvalidRequest("base URL is empty")

    url = f"{base_url.rstrip('/')}/{path.lstrip('/')}" if path else base_url

    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise InvalidRequest(f"invalid URL {url!r}: {e}", url=url) from e

    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidRequest(
            f"base URL {base_url!r} must be an absolute http(s) URL", url=url
        )
    return url


def prepare_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy headers for forwarding, excluding hop-by-hop ones."""
    forwarded = {}
    for name, value in headers.items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS or name_lower in RECOMPUTED_HEADERS:
            continue
        forwarded[name] = value
    return forwarded


def build_resource_request(config: ClientConfig, req: ResourceRequest) -> EncodedRequest:
    """
    Build a pass-through request for a proxied resource call.

    The method and body are forwarded unmodified and no Content-Type is added.
    The raw URL is preferred over the path since it keeps the query string.
    """
    target = req.url or req.path
    url = join_url(config.base_url, target)
    return EncodedRequest(
        method=req.method.upper(),
        url=url,
        headers=prepare_headers(req.headers),
        body=req.body,
    )


def build_query_request(
    config: ClientConfig, endpoint: str, params: Mapping[str, ParamValue]
) -> EncodedRequest:
    """
    Encode params for a query endpoint using the configured method.

    POST sends a form-encoded body to the bare endpoint URL. GET appends the
    same encoding as a query string and sends no body.
    """
    url = join_url(config.base_url, endpoint)
    encoded = encode_values(params)

    if config.method == HttpMethod.POST:
        return EncodedRequest(
            method=HttpMethod.POST.value,
            url=url,
            headers={"Content-Type": FORM_CONTENT_TYPE},
            body=encoded.encode("utf-8"),
        )

    if encoded:
        url = f"{url}?{encoded}"
    return EncodedRequest(method=HttpMethod.GET.value, url=url)
