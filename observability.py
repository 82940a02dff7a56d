"""Structured lifecycle events and CSV metrics for the analyzer.

``log_event`` writes one JSON line per lifecycle event (``analysis_started``,
``live_stream_reconnect_scheduled`` ...) through the caller's logger, so the
events land wherever ``log_utils`` sends that module's output.

``record_metric`` appends ``ts,metric,value,labels`` rows to the CSV file
named by ``METRICS_PATH`` (``logs/metrics.csv`` by default).  The path is
resolved on every write so tests can point it at a temporary directory.
Recording never raises into the caller.
"""
from __future__ import annotations

import csv
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

_OBSERVABILITY_LOGGER = logging.getLogger("observability")

DEFAULT_METRICS_PATH = os.path.join("logs", "metrics.csv")
_CSV_FIELDS = ("ts", "metric", "value", "labels")


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


def log_event(logger: Optional[logging.Logger], event: str, **fields: Any) -> None:
    """Emit ``event`` and ``fields`` as a single JSON log line at INFO.

    Values that cannot be serialised are logged as their ``repr``.  When
    ``logger`` is ``None`` the module level ``observability`` logger is used.
    """

    payload: Dict[str, Any] = {key: _jsonable(value) for key, value in fields.items()}
    payload["event"] = event
    payload["ts"] = time.time()
    (logger or _OBSERVABILITY_LOGGER).info(json.dumps(payload, sort_keys=True))


class _CsvMetricsSink:
    def __init__(self, path: Optional[str] = None) -> None:
        self._explicit_path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return Path(self._explicit_path or os.getenv("METRICS_PATH") or DEFAULT_METRICS_PATH)

    def record(self, metric: str, value: float, labels: Mapping[str, Any]) -> None:
        row = {
            "ts": f"{time.time():.6f}",
            "metric": metric,
            "value": f"{float(value):.6f}",
            "labels": json.dumps({k: _jsonable(v) for k, v in labels.items()}, sort_keys=True),
        }
        path = self.path
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            fresh = not path.exists() or path.stat().st_size == 0
            with path.open("a", newline="") as handle:
                writer = csv.DictWriter(handle, fieldnames=_CSV_FIELDS)
                if fresh:
                    writer.writeheader()
                writer.writerow(row)


_metrics_sink = _CsvMetricsSink()


def record_metric(metric: str, value: float, *, labels: Optional[Mapping[str, Any]] = None) -> None:
    try:
        _metrics_sink.record(metric, value, dict(labels or {}))
    except Exception:
        _OBSERVABILITY_LOGGER.debug("Failed to record metric %s", metric, exc_info=True)


@contextmanager
def measure_latency(metric: str, **labels: Any) -> Iterator[Dict[str, Any]]:
    """Record the wall time of the ``with`` body as ``metric``.

    The yielded dict is the label set; the body may add or overwrite labels
    (an ``outcome`` for instance) before the row is written.  The row is
    written even when the body raises or is cancelled.
    """

    start = time.perf_counter()
    try:
        yield labels
    finally:
        record_metric(metric, time.perf_counter() - start, labels=labels)


__all__ = ["log_event", "measure_latency", "record_metric"]
