"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every Meevo
endpoint the service hits, plus one set of diagnostics per discovery run
(profiles found, candidates checked, candidates skipped because their
detail fetch failed).

* Metrics are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer every ``FLUSH_INTERVAL_SECONDS``.
* With ``METRICS_ENABLED != "true"`` metrics are only logged at DEBUG
  level and dropped on flush.
* Each ``put_metric_data`` call sends at most ``MAX_BATCH_SIZE`` points.

>>> from linked_profiles.services.metrics import metrics
>>> metrics.record_success("meevo", "GET /clients", latency_ms=123.4)
>>> metrics.record_discovery("hybrid", found=2, checked=40, skipped=1)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "LinkedProfiles"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


def _point(
    name: str,
    dimensions: list[dict[str, str]],
    value: float,
    unit: str,
    timestamp: datetime,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": dimensions,
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None  # lazy-init

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        """Create the boto3 CloudWatch client on first use."""
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Upstream calls ────────────────────────────────────────────────

    def record_success(
        self,
        service: str,
        operation: str,
        latency_ms: float,
    ) -> None:
        """Record a successful upstream call."""
        now = datetime.now(UTC)
        dims = [{"Name": "Service", "Value": service}]

        self._append(
            _point(
                "ExternalAPI/RequestCount",
                dims + [{"Name": "Status", "Value": "success"}],
                1, "Count", now,
            )
        )
        self._append(
            _point(
                "ExternalAPI/Latency",
                dims + [{"Name": "Operation", "Value": operation}],
                latency_ms, "Milliseconds", now,
            )
        )
        logger.debug(
            "Metric: %s %s success latency=%.1fms", service, operation, latency_ms,
        )

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed upstream call."""
        now = datetime.now(UTC)
        dims = [{"Name": "Service", "Value": service}]

        self._append(
            _point(
                "ExternalAPI/RequestCount",
                dims + [{"Name": "Status", "Value": "failure"}],
                1, "Count", now,
            )
        )
        self._append(
            _point(
                "ExternalAPI/ErrorCount",
                dims + [{"Name": "ErrorType", "Value": error_type}],
                1, "Count", now,
            )
        )
        if latency_ms > 0:
            self._append(
                _point(
                    "ExternalAPI/Latency",
                    dims + [{"Name": "Operation", "Value": operation}],
                    latency_ms, "Milliseconds", now,
                )
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    # ── Discovery diagnostics ─────────────────────────────────────────

    def record_discovery(
        self,
        strategy: str,
        *,
        found: int,
        checked: int,
        skipped: int,
    ) -> None:
        """Record the outcome of one linked-profile discovery run."""
        now = datetime.now(UTC)
        dims = [{"Name": "Strategy", "Value": strategy}]
        self._append(_point("Discovery/LinkedFound", dims, found, "Count", now))
        self._append(_point("Discovery/CandidatesChecked", dims, checked, "Count", now))
        self._append(_point("Discovery/SkippedCandidates", dims, skipped, "Count", now))
        logger.debug(
            "Metric: discovery %s found=%d checked=%d skipped=%d",
            strategy, found, checked, skipped,
        )

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

    def _start_flush_thread(self) -> None:
        """Start a daemon thread that flushes metrics periodically."""

        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info(
            "Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS,
        )


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
