"""
Parameter encoding for the Prometheus query endpoints.

Parameters are always serialized with keys in alphabetical order so the same
query produces the same URL or body byte-for-byte.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Tuple, Union
from urllib.parse import urlencode

from prom_bridge.models import Query

ParamValue = Union[str, Iterable[str]]
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def encode_values(params: Mapping[str, ParamValue]) -> str:
    """
    Encode params as application/x-www-form-urlencoded, sorted by key.

    Multi-valued keys keep the order of their values.
    """
    pairs: List[Tuple[str, str]] = []
    for key in sorted(params):
        value = params[key]
        if isinstance(value, str):
            pairs.append((key, value))
        else:
            pairs.extend((key, v) for v in value)
    return urlencode(pairs)


def format_time(value: datetime) -> str:
    # Naive datetimes are taken as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return str((value - EPOCH) // timedelta(seconds=1))


def format_step(step: timedelta) -> str:
    return str(int(step.total_seconds()))


def range_query_params(query: Query) -> Dict[str, str]:
    return {
        "query": query.expr,
        "start": format_time(query.start),
        "end": format_time(query.end),
        "step": format_step(query.step),
    }


def instant_query_params(query: Query) -> Dict[str, str]:
    # Instant queries are evaluated at the end of the range
    return {
        "query": query.expr,
        "time": format_time(query.end),
    }


def exemplar_query_params(query: Query) -> Dict[str, str]:
    return {
        "query": query.expr,
        "start": format_time(query.start),
        "end": format_time(query.end),
    }
