import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "prom-bridge")

PROMETHEUS_URL = os.environ.get("PROMETHEUS_URL", "http://localhost:9090")
# GET or POST, used for every query endpoint
PROMETHEUS_HTTP_METHOD = os.environ.get("PROMETHEUS_HTTP_METHOD", "POST").upper()
PROMETHEUS_TIMEOUT = float(os.environ.get("PROMETHEUS_TIMEOUT", "300"))
PROMETHEUS_GZIP_QUERY_RESPONSES = (
    os.environ.get("PROMETHEUS_GZIP_QUERY_RESPONSES", "false").lower() == "true"
)

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
