from prom_bridge.client.client import Client
from prom_bridge.client.normalizer import ResponseBody, is_gzip, normalize_response
from prom_bridge.client.transport import HttpxTransport, Transport

__all__ = [
    "Client",
    "HttpxTransport",
    "ResponseBody",
    "Transport",
    "is_gzip",
    "normalize_response",
]
