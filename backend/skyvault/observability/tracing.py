"""
Span timing for the outbound calls of the document Q&A pipeline.

A question costs at most two slow calls: fetching the source file and, for
scanned PDFs, the OCR provider. Both are wrapped with `@traced(name)`:

  always     one log line per call
               DEBUG  trace | span=text_extraction elapsed_ms=84.2 ok
               ERROR  trace | span=ocr_recognize elapsed_ms=30001.0 error=...
  optional   an OpenTelemetry span per call, exported over OTLP/HTTP when
             settings.otel_enabled and settings.otel_exporter_endpoint are
             set and the `otel` extra is installed

Only `Exception` is intercepted, so task cancellation passes through untouched.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

from skyvault.core.config import Settings

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

SERVICE_NAME = "skyvault-api"


class TracingConfig:
    """
    Process-wide exporter state. `init()` is idempotent; call it from the
    application factory with the loaded settings.
    """

    _initialised: bool = False
    tracer: Any = None   # opentelemetry Tracer once an exporter is active

    @classmethod
    def init(cls, cfg: Settings) -> None:
        if cls._initialised:
            return
        cls._initialised = True

        if not (cfg.otel_enabled and cfg.otel_exporter_endpoint):
            logger.debug("Tracing | exporter disabled, log spans only")
            return

        try:
            from opentelemetry import trace                                       # type: ignore
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter  # type: ignore
            from opentelemetry.sdk.resources import Resource                      # type: ignore
            from opentelemetry.sdk.trace import TracerProvider                    # type: ignore
            from opentelemetry.sdk.trace.export import BatchSpanProcessor        # type: ignore
        except ImportError:
            logger.warning("Tracing | OTEL requested but the 'otel' extra is not installed")
            return

        provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=cfg.otel_exporter_endpoint))
        )
        trace.set_tracer_provider(provider)
        cls.tracer = trace.get_tracer("skyvault")
        logger.info("Tracing | OTLP exporter endpoint=%s", cfg.otel_exporter_endpoint)

    @classmethod
    def reset(cls) -> None:
        cls._initialised = False
        cls.tracer = None


def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Time an async callable and log the outcome under a stable span name::

        @traced("text_extraction")
        async def extract(self, remote_url: str, media_type: str) -> ExtractionResult:
            ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        async def _timed(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                logger.error(
                    "trace | span=%s elapsed_ms=%.1f error=%s",
                    span_name, (time.perf_counter() - t0) * 1000, exc, exc_info=True,
                )
                raise
            logger.debug(
                "trace | span=%s elapsed_ms=%.1f ok",
                span_name, (time.perf_counter() - t0) * 1000,
            )
            return result

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = TracingConfig.tracer
            if tracer is None:
                return await _timed(*args, **kwargs)
            # start_as_current_span records the exception and error status itself
            with tracer.start_as_current_span(span_name):
                return await _timed(*args, **kwargs)

        return wrapper  # type: ignore[return-value]
    return decorator
