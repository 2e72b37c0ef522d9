"""Replay a stored response through a decoder, as if it were streaming.

Demonstrates:
- Picking a decoder with detect_mode()/decoder_for()
- Rendering decoder events as content arrives
- Driving the decoder from an async fragment stream with DecodeRunner

Usage:
    uv run examples/replay_stream.py
    uv run examples/replay_stream.py response.json --chunk-size 3 --delay 0.01 --trace
"""

import argparse
import asyncio
import json
import logging
import random
from pathlib import Path

from streamdecoder.events import (
    DecodeCompleteEvent,
    FieldContent,
    FileStarted,
    SegmentClosed,
    SegmentCreated,
    SegmentUpdated,
    ToolCallRecognized,
)
from streamdecoder.fields import FieldStreamDecoder
from streamdecoder.mode import decoder_for, detect_mode
from streamdecoder.runner import DecodeRunner

DEMO_RESPONSE = json.dumps({
    "Text": "Here is a tiny CLI.",
    "tool_after_text": {"tool_name": "web_search", "query": "argparse subcommands"},
    "Files": [
        {
            "FileName": "cli.py",
            "FileVersion": 1,
            "FileCode": "import argparse\n\nparser = argparse.ArgumentParser()\n",
            "FileText": "Entry point.",
        },
    ],
    "Conclusion": "Run `python cli.py --help`.",
})


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from streamdecoder.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


async def fragments(text: str, chunk_size: int, delay: float):
    """Yield *text* in randomly sized pieces of up to *chunk_size* characters."""
    i = 0
    while i < len(text):
        size = random.randint(1, chunk_size)
        yield text[i:i + size]
        i += size
        await asyncio.sleep(delay)


def render(event) -> None:
    if isinstance(event, FileStarted):
        print(f"\n--- file #{event.index} ---")
    elif isinstance(event, FieldContent):
        print(event.content, end="", flush=True)
    elif isinstance(event, ToolCallRecognized):
        tc = event.tool_call
        print(f"\n[{tc.position.value}] {tc.name}: {tc.query}")
    elif isinstance(event, SegmentCreated):
        label = event.segment.kind.value
        print(f"\n<{label}>", end="")
    elif isinstance(event, SegmentUpdated):
        print(event.appended, end="", flush=True)
    elif isinstance(event, SegmentClosed):
        print(f"</{event.segment.kind.value}>", end="")


async def main():
    parser = argparse.ArgumentParser(description="Replay a response through a decoder")
    parser.add_argument("path", nargs="?", help="File holding a complete response")
    parser.add_argument("--chunk-size", type=int, default=8)
    parser.add_argument("--delay", type=float, default=0.0)
    parser.add_argument("--trace", action="store_true", help="Print OpenTelemetry spans")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    if args.trace:
        setup_tracing("streamdecoder-replay")

    text = Path(args.path).read_text() if args.path else DEMO_RESPONSE
    mode = detect_mode(text)
    decoder = decoder_for(mode)
    print(f"mode: {mode.value}")

    runner = DecodeRunner(decoder)
    result = None
    async for event in runner.iter(fragments(text, args.chunk_size, args.delay)):
        if isinstance(event, DecodeCompleteEvent):
            result = event.result
        else:
            render(event)

    print()
    if isinstance(decoder, FieldStreamDecoder):
        print(result.model_dump_json(indent=2))
    else:
        print(f"{len(result)} segments")


if __name__ == "__main__":
    asyncio.run(main())
