
from __future__ import annotations
import functools
import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

from .errors import error_code

log = logging.getLogger("blobfacade.observability")

PKG = "blobfacade"

tracer = trace.get_tracer(PKG)
meter = metrics.get_meter(PKG)

completed_calls = meter.create_counter(
    f"{PKG}.completed_calls", unit="1", description="Count of completed method calls by provider, method and status."
)
latency_ms = meter.create_histogram(
    f"{PKG}.latency", unit="ms", description="Latency of method calls by provider and method."
)
bytes_read = meter.create_counter(
    f"{PKG}.bytes_read", unit="By", description="Sum of bytes read from the provider service."
)
bytes_written = meter.create_counter(
    f"{PKG}.bytes_written", unit="By", description="Sum of bytes written to the provider service."
)

EndFn = Callable[[Optional[BaseException]], None]


@contextmanager
def span(name: str, **attrs):
    with tracer.start_as_current_span(name) as s:
        for k, v in attrs.items():
            if v is None:
                continue
            try:
                s.set_attribute(f"blob.{k}", v)
            except Exception:
                log.debug("span attribute %s rejected", k)
        yield s


class Tracer:
    """Begin/end hooks for one provider's calls."""

    def __init__(self, provider: str):
        self.provider = provider

    def start(self, method: str) -> EndFn:
        """Open a span for ``method``; the returned ``end`` must run exactly once."""
        s = tracer.start_span(f"{PKG}.{method}", attributes={"blob.provider": self.provider})
        t0 = time.perf_counter()
        done = False

        def end(exc: Optional[BaseException] = None) -> None:
            nonlocal done
            if done:
                return
            done = True
            code = error_code(exc)
            if exc is not None:
                s.record_exception(exc)
                s.set_status(Status(StatusCode.ERROR, str(exc)))
            s.set_attribute("blob.status", code.value)
            s.end()
            tags = {"provider": self.provider, "method": method}
            completed_calls.add(1, {**tags, "status": code.value})
            latency_ms.record((time.perf_counter() - t0) * 1000, tags)

        return end

    def record_bytes_read(self, n: int) -> None:
        if n:
            bytes_read.add(n, {"provider": self.provider})

    def record_bytes_written(self, n: int) -> None:
        if n:
            bytes_written.add(n, {"provider": self.provider})


def traced(method: str):
    """Wrap a Bucket method in a start/end span; the instance needs ``_tracer``."""

    def deco(fn):
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            end = self._tracer.start(method)
            try:
                result = fn(self, *args, **kwargs)
            except BaseException as e:
                end(e)
                raise
            end(None)
            return result

        return wrapper

    return deco
