"""Per-request instrumentation for backend calls.

Every backend call is wrapped in ``measure_request`` so the configured
callback fires exactly once, on success and on failure alike.
"""

from __future__ import annotations

import enum
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generator, Optional

logger = logging.getLogger(__name__)


class RequestOpType(str, enum.Enum):
    LIST = "list"
    CREATE = "create"
    INFO = "info"
    DELETE = "delete"
    COPY = "copy"
    READ = "read"
    WRITE = "write"


# (op_type, byte_size, elapsed_micros, success)
RequestCallback = Callable[[RequestOpType, int, int, bool], None]


@dataclass
class RequestMeasurement:
    """Mutable outcome filled in by the wrapped call."""

    op_type: RequestOpType
    size: int = 0
    success: bool = False

    def succeeded(self, size: int | None = None) -> None:
        self.success = True
        if size is not None:
            self.size = size


@contextmanager
def measure_request(
    callback: Optional[RequestCallback],
    op_type: RequestOpType,
    size: int = 0,
) -> Generator[RequestMeasurement, None, None]:
    """Time a backend call and report it to ``callback``.

    The body marks the measurement as successful via ``succeeded()``;
    an exception escaping the body leaves ``success`` False. The callback
    is invoked from ``finally`` so it runs on every exit path.
    """
    measurement = RequestMeasurement(op_type=op_type, size=size)
    start = time.perf_counter_ns()
    try:
        yield measurement
    finally:
        if callback is not None:
            elapsed_micros = (time.perf_counter_ns() - start) // 1000
            try:
                callback(
                    measurement.op_type,
                    measurement.size,
                    elapsed_micros,
                    measurement.success,
                )
            except Exception:
                # metrics must never change the outcome of the call
                logger.exception(
                    "request callback failed op=%s", measurement.op_type.value
                )
