"""Incremental decoder for markdown text with code fences.

:class:`FencedContentDecoder` turns the text of a streamed answer into
an ordered list of :class:`Segment` objects (plain text, fenced code,
inline code).  It is fed the whole answer received so far on every call
and only scans the part it has not seen yet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from enum import Enum, auto
from typing import Callable

from pydantic import BaseModel

from streamdecoder.events import SegmentClosed, SegmentCreated, SegmentEvent, SegmentUpdated

logger = logging.getLogger(__name__)

FENCE_MIN_RUN = 3


class SegmentKind(Enum):
    TEXT = "text"
    CODE = "code"
    INLINE_CODE = "inline-code"


class FenceMode(Enum):
    TEXT = auto()
    READING_LANGUAGE = auto()
    IN_FENCED_CODE = auto()
    IN_INLINE_CODE = auto()


_ID_PREFIX = {
    SegmentKind.TEXT: "text",
    SegmentKind.CODE: "code",
    SegmentKind.INLINE_CODE: "inline",
}


class Segment(BaseModel):
    """An immutable view of one rendered unit of the answer."""

    model_config = {"frozen": True}

    id: str
    kind: SegmentKind
    content: str = ""
    language: str | None = None
    is_complete: bool = False


@dataclass
class _SegmentBuilder:
    id: str
    kind: SegmentKind
    content: str = ""
    language: str | None = None
    is_complete: bool = False

    def freeze(self) -> Segment:
        return Segment(
            id=self.id,
            kind=self.kind,
            content=self.content,
            language=self.language,
            is_complete=self.is_complete,
        )


@dataclass
class FenceCallbacks:
    on_segment_created: Callable[[SegmentCreated], None] | None = None
    on_segment_updated: Callable[[SegmentUpdated], None] | None = None
    on_segment_closed: Callable[[SegmentClosed], None] | None = None


_HANDLER_FOR = {
    SegmentCreated: "on_segment_created",
    SegmentUpdated: "on_segment_updated",
    SegmentClosed: "on_segment_closed",
}


class FencedContentDecoder:
    """Resumable segmenter for fenced and inline code.

    Backtick runs are only classified once the run has ended, so a fence
    split across calls (``"``"`` then ``"`python"``) is still a fence.
    A fence closes only on a run of exactly the opening length.
    """

    def __init__(self) -> None:
        self.callbacks = FenceCallbacks()
        self.reset()

    def reset(self) -> None:
        """Forget all segments and counters.  Registered callbacks are kept."""
        self.cursor = 0
        self.mode = FenceMode.TEXT
        self.last_events: list[SegmentEvent] = []
        self._buffer = ""
        self._segments: list[_SegmentBuilder] = []
        self._open: _SegmentBuilder | None = None
        self._appended = ""
        self._dirty = False
        self._pending_backticks = 0
        self._fence_len = 0
        self._language_buf = ""
        self._id_counter = 0

    def set_callbacks(self, **handlers: Callable | None) -> None:
        """Register handlers by name, keeping any not mentioned."""
        known = {f.name for f in fields(FenceCallbacks)}
        for name, handler in handlers.items():
            if name not in known:
                raise TypeError(f"Unknown callback: {name}")
            setattr(self.callbacks, name, handler)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, full_content: str) -> tuple[Segment, ...]:
        """Decode everything past the cursor and return all segments.

        If *full_content* does not extend what was seen before (it is
        shorter, or its prefix differs), it is treated as a new message.
        """
        if not isinstance(full_content, str):
            raise TypeError(f"content must be str, not {type(full_content).__name__}")
        if len(full_content) < self.cursor or not full_content.startswith(self._buffer):
            logger.info(
                f"Content no longer extends the {self.cursor} characters seen; "
                "starting a new message"
            )
            self.reset()

        self.last_events = []
        for char in full_content[self.cursor:]:
            if char == "`":
                self._pending_backticks += 1
                continue
            if self._pending_backticks:
                self._classify_run()
            self._process_char(char)

        self._flush_update()
        self._buffer = full_content
        self.cursor = len(full_content)
        return self.segments()

    def finish(self) -> tuple[Segment, ...]:
        """Resolve a held backtick run and close a trailing text segment.

        An unterminated fence or inline span stays incomplete.
        """
        self.last_events = []
        if self._pending_backticks:
            self._classify_run()
        if self._open is not None and self._open.kind is SegmentKind.TEXT:
            self._close_open()
        self._flush_update()
        return self.segments()

    def segments(self) -> tuple[Segment, ...]:
        return tuple(s.freeze() for s in self._segments)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _classify_run(self) -> None:
        count = self._pending_backticks
        self._pending_backticks = 0
        run = "`" * count

        if self.mode is FenceMode.IN_FENCED_CODE:
            if count == self._fence_len:
                self._close_open()
                self._fence_len = 0
                self.mode = FenceMode.TEXT
            else:
                self._append(run)
        elif self.mode is FenceMode.READING_LANGUAGE:
            self._language_buf += run
        elif self.mode is FenceMode.IN_INLINE_CODE:
            if count == 1:
                self._close_open()
                self.mode = FenceMode.TEXT
            else:
                self._append(run)
        elif count >= FENCE_MIN_RUN:
            self._close_open()
            self._start(SegmentKind.CODE)
            self._fence_len = count
            self._language_buf = ""
            self.mode = FenceMode.READING_LANGUAGE
        elif count == 1:
            self._close_open()
            self._start(SegmentKind.INLINE_CODE)
            self.mode = FenceMode.IN_INLINE_CODE
        else:
            self._append(run)

    def _process_char(self, char: str) -> None:
        if self.mode is FenceMode.READING_LANGUAGE:
            if char == "\n":
                self._open.language = self._language_buf.strip() or None
                self._dirty = True
                self._language_buf = ""
                self.mode = FenceMode.IN_FENCED_CODE
            else:
                self._language_buf += char
        else:
            self._append(char)

    # ------------------------------------------------------------------
    # Segment bookkeeping
    # ------------------------------------------------------------------

    def _start(self, kind: SegmentKind) -> None:
        self._flush_update()
        segment = _SegmentBuilder(id=f"{_ID_PREFIX[kind]}-{self._id_counter}", kind=kind)
        self._id_counter += 1
        self._segments.append(segment)
        self._open = segment
        self._emit(SegmentCreated(segment=segment.freeze()))

    def _append(self, text: str) -> None:
        if self._open is None:
            self._start(SegmentKind.TEXT)
        self._open.content += text
        self._appended += text
        self._dirty = True

    def _close_open(self) -> None:
        if self._open is None:
            return
        self._flush_update()
        self._open.is_complete = True
        closed = self._open
        self._open = None
        self._emit(SegmentClosed(segment=closed.freeze()))

    def _flush_update(self) -> None:
        if self._dirty and self._open is not None:
            self._emit(SegmentUpdated(segment=self._open.freeze(), appended=self._appended))
        self._appended = ""
        self._dirty = False

    def _emit(self, event: SegmentEvent) -> None:
        self.last_events.append(event)
        handler = getattr(self.callbacks, _HANDLER_FOR[type(event)])
        if handler is not None:
            handler(event)
