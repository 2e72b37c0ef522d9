"""Events emitted while decoding a streamed response."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from streamdecoder.fences import Segment
    from streamdecoder.toolcalls import ToolCall


@dataclass
class DecoderEvent:
    """Base for all decoder events."""


# ---------------------------------------------------------------------------
# Field stream events
# ---------------------------------------------------------------------------

@dataclass
class FieldEvent(DecoderEvent):
    """Base for events produced by the field stream decoder."""


@dataclass
class FieldStarted(FieldEvent):
    """A known field's value has opened.

    ``file_index`` is set for the per-file fields (``FileName``,
    ``FileVersion``, ``FileCode``, ``FileText``) once a file is open.
    """

    name: str = ""
    file_index: int | None = None


@dataclass
class FieldContent(FieldEvent):
    """Unescaped characters appended to the open field."""

    name: str = ""
    content: str = ""
    file_index: int | None = None


@dataclass
class FieldEnded(FieldEvent):
    name: str = ""
    file_index: int | None = None


@dataclass
class FileStarted(FieldEvent):
    """A new entry of the ``Files`` array, emitted before its ``FileName``."""

    index: int = 0


@dataclass
class ToolCallRecognized(FieldEvent):
    tool_call: ToolCall | None = None


# ---------------------------------------------------------------------------
# Fenced content events
# ---------------------------------------------------------------------------

@dataclass
class SegmentEvent(DecoderEvent):
    """Base for events produced by the fenced content decoder.

    ``segment`` is an immutable copy taken when the event was emitted.
    """

    segment: Segment | None = None


@dataclass
class SegmentCreated(SegmentEvent):
    pass


@dataclass
class SegmentUpdated(SegmentEvent):
    """Characters appended to an existing segment during one ``parse()``."""

    appended: str = ""


@dataclass
class SegmentClosed(SegmentEvent):
    pass


@dataclass
class DecodeCompleteEvent(DecoderEvent):
    """Final event, always the last one yielded by the runner."""

    result: Any = None
