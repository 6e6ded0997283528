import pytest
from prometheus_client import REGISTRY

from cloudenv.infra.observability.instrumentation import RequestOpType, measure_request
from cloudenv.infra.observability.metrics import (
    PrometheusRequestCallback,
    build_request_callback,
)


def test_callback_runs_once_on_success():
    events = []
    with measure_request(
        lambda *e: events.append(e), RequestOpType.WRITE, 10
    ) as measurement:
        measurement.succeeded()

    assert len(events) == 1
    op, size, elapsed, success = events[0]
    assert op is RequestOpType.WRITE
    assert size == 10
    assert elapsed >= 0
    assert success is True


def test_callback_runs_on_failure_with_known_size():
    events = []
    with pytest.raises(ValueError):
        with measure_request(lambda *e: events.append(e), RequestOpType.READ, 7):
            raise ValueError("boom")

    assert [(e[0], e[1], e[3]) for e in events] == [(RequestOpType.READ, 7, False)]


def test_success_size_overrides_initial_size():
    events = []
    with measure_request(lambda *e: events.append(e), RequestOpType.READ) as m:
        m.succeeded(512)
    assert events[0][1] == 512


def test_callback_errors_do_not_escape():
    def broken(*event):
        raise RuntimeError("metrics sink down")

    with measure_request(broken, RequestOpType.LIST) as measurement:
        measurement.succeeded()


def test_no_callback_is_fine():
    with measure_request(None, RequestOpType.INFO) as measurement:
        measurement.succeeded()
    assert measurement.success is True


def test_prometheus_callback_records_requests():
    def sample(name, labels):
        return REGISTRY.get_sample_value(name, labels) or 0.0

    before_ok = sample("cloud_requests_total", {"op": "copy", "success": "true"})
    before_bytes = sample("cloud_request_bytes_total", {"op": "copy"})
    before_count = sample("cloud_request_duration_seconds_count", {"op": "copy"})

    callback = PrometheusRequestCallback()
    callback(RequestOpType.COPY, 2048, 1500, True)

    assert sample("cloud_requests_total", {"op": "copy", "success": "true"}) == (
        before_ok + 1
    )
    assert sample("cloud_request_bytes_total", {"op": "copy"}) == before_bytes + 2048
    assert sample("cloud_request_duration_seconds_count", {"op": "copy"}) == (
        before_count + 1
    )


def test_build_request_callback_respects_flag():
    assert build_request_callback(False) is None
    assert isinstance(build_request_callback(True), PrometheusRequestCallback)
