"""In-process counters and structured log lines for the API and the client library.

Counter keys are ``name`` or ``name|label=value,...`` with labels sorted, so
``auth.rejected|kind=invalid_credential,reason=stale_user`` reads the same
wherever it was incremented.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from enum import Enum
from threading import Lock
from typing import Any


logger = logging.getLogger("yamo")

_lock = Lock()
_counters: Counter[str] = Counter()


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return _normalize(value.value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_normalize(v) for v in value]
    return str(value)


def metric_key(name: str, **labels: Any) -> str:
    if not labels:
        return name
    ordered = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
    return f"{name}|{ordered}"


def parse_metric_key(key: str) -> tuple[str, dict[str, str]]:
    """Split a counter key back into its name and labels."""
    name, _, rest = key.partition("|")
    labels = dict(pair.split("=", 1) for pair in rest.split(",")) if rest else {}
    return name, labels


def incr_metric(name: str, value: int = 1, **labels: Any) -> None:
    key = metric_key(name, **{k: _normalize(v) for k, v in labels.items()})
    with _lock:
        _counters[key] += value


def metrics_snapshot(prefix: str | None = None) -> dict[str, int]:
    """Counters by key, limited to names starting with ``prefix`` when given."""
    with _lock:
        counters = dict(_counters)
    if prefix:
        counters = {key: count for key, count in counters.items() if key.startswith(prefix)}
    return counters


def metric_totals(prefix: str | None = None) -> dict[str, int]:
    """Counters summed per name across all label combinations."""
    totals: Counter[str] = Counter()
    for key, count in metrics_snapshot(prefix).items():
        totals[parse_metric_key(key)[0]] += count
    return dict(totals)


def reset_metrics() -> None:
    with _lock:
        _counters.clear()


def log_event(
    event: str,
    *,
    level: int = logging.INFO,
    request_id: str | None = None,
    **fields: Any,
) -> None:
    payload = {"event": event}
    if request_id:
        payload["request_id"] = request_id
    for key, value in fields.items():
        payload[key] = _normalize(value)
    logger.log(level, json.dumps(payload, sort_keys=True))
