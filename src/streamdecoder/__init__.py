"""Incremental decoders for streamed language-model responses."""

from streamdecoder.events import (
    DecodeCompleteEvent,
    DecoderEvent,
    FieldContent,
    FieldEnded,
    FieldStarted,
    FileStarted,
    SegmentClosed,
    SegmentCreated,
    SegmentUpdated,
    ToolCallRecognized,
)
from streamdecoder.fences import FencedContentDecoder, FenceMode, Segment, SegmentKind
from streamdecoder.fields import FieldMode, FieldSnapshot, FieldStreamDecoder, FileRecord
from streamdecoder.instrumentation import instrument, uninstrument
from streamdecoder.mode import ResponseMode, decoder_for, detect_mode
from streamdecoder.runner import DecodeRunner
from streamdecoder.sse import sse_tokens
from streamdecoder.toolcalls import ToolCall, ToolCallPosition

__all__ = [
    "DecodeCompleteEvent",
    "DecodeRunner",
    "DecoderEvent",
    "FenceMode",
    "FencedContentDecoder",
    "FieldContent",
    "FieldEnded",
    "FieldMode",
    "FieldSnapshot",
    "FieldStarted",
    "FieldStreamDecoder",
    "FileRecord",
    "FileStarted",
    "ResponseMode",
    "Segment",
    "SegmentClosed",
    "SegmentCreated",
    "SegmentKind",
    "SegmentUpdated",
    "ToolCall",
    "ToolCallPosition",
    "ToolCallRecognized",
    "decoder_for",
    "detect_mode",
    "instrument",
    "sse_tokens",
    "uninstrument",
]
