from __future__ import annotations

from prometheus_client import Counter, Histogram

from cloudenv.infra.observability.instrumentation import (
    RequestCallback,
    RequestOpType,
)

# 低基数标签：仅按操作类型与成功与否分组
REQUESTS = Counter(
    "cloud_requests_total",
    "Total object store requests",
    ["op", "success"],
)

REQUEST_BYTES = Counter(
    "cloud_request_bytes_total",
    "Bytes transferred by object store requests",
    ["op"],
)

LATENCY = Histogram(
    "cloud_request_duration_seconds",
    "Object store request latency in seconds",
    ["op"],
)


class PrometheusRequestCallback:
    """Request callback that records every backend call in Prometheus."""

    def __call__(
        self,
        op_type: RequestOpType,
        byte_size: int,
        elapsed_micros: int,
        success: bool,
    ) -> None:
        REQUESTS.labels(op_type.value, "true" if success else "false").inc()
        if byte_size > 0:
            REQUEST_BYTES.labels(op_type.value).inc(byte_size)
        LATENCY.labels(op_type.value).observe(elapsed_micros / 1_000_000)


def build_request_callback(enable_metrics: bool) -> RequestCallback | None:
    if not enable_metrics:
        return None
    return PrometheusRequestCallback()
