"""Optional OpenTelemetry instrumentation for streamdecoder.

Call ``streamdecoder.instrument()`` once at startup to enable tracing.
Requires ``opentelemetry-api`` to be installed; decoding works
identically without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "streamdecoder") -> None:
    """Enable OpenTelemetry tracing for runner-driven decoding.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install streamdecoder[otel]``

    Example::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        import streamdecoder
        streamdecoder.instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install streamdecoder[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; spans will be "
            "discarded. Set up a TracerProvider to export "
            "traces."
        )
    else:
        logger.info("streamdecoder instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def decode_span(decoder_kind: str):
    """Wrap one runner pass over a response in a ``decode`` span."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"decode {decoder_kind}",
        attributes={"streamdecoder.decoder": decoder_kind},
    ) as span:
        yield span


def record_progress(span, fragments: int, events: int) -> None:
    """Set fragment and event counts on a span."""
    if span is None:
        return
    span.set_attribute("streamdecoder.fragments", fragments)
    span.set_attribute("streamdecoder.events", events)


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
