"""Incremental decoder for code-mode responses.

A code-mode response is a flat JSON-like object::

    {"Text": "...",
     "tool_after_text": {"tool_name": "search", "query": "..."},
     "Files": [{"FileName": "a.py", "FileVersion": 1,
                "FileCode": "...", "FileText": "..."}],
     "Conclusion": "..."}

that arrives as arbitrary text fragments.  :class:`FieldStreamDecoder`
scans each fragment once, character by character, and reports field
values as they grow.  Keys, escape sequences and tool-call objects may
be split across any number of fragments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from enum import Enum, auto
from typing import Callable

from pydantic import BaseModel

from streamdecoder.events import (
    FieldContent,
    FieldEnded,
    FieldEvent,
    FieldStarted,
    FileStarted,
    ToolCallRecognized,
)
from streamdecoder.toolcalls import MARKER_KEYS, ToolCall, ToolCallAccumulator, ToolCallPosition

logger = logging.getLogger(__name__)

TOP_LEVEL_FIELDS = ("Text", "Conclusion")
FILE_FIELDS = ("FileName", "FileVersion", "FileCode", "FileText")
FILES_KEY = "Files"

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    '"': '"',
    "\\": "\\",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "/": "/",
}
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_NUMBER_CHARS = frozenset("0123456789+-.eE")
_WHITESPACE = frozenset(" \t\r\n")


class FieldMode(Enum):
    AWAITING_KEY = auto()
    IN_KEY = auto()
    AWAITING_COLON = auto()
    AWAITING_VALUE = auto()
    IN_STRING = auto()
    IN_NUMBER = auto()
    SKIPPING_STRING = auto()
    IN_TOOL_CALL = auto()


class FileRecord(BaseModel):
    model_config = {"frozen": True}

    file_name: str | None = None
    file_version: int | None = None
    file_code: str | None = None
    file_text: str | None = None


class FieldSnapshot(BaseModel):
    """Everything recognized so far in a code-mode response."""

    model_config = {"frozen": True}

    text: str | None = None
    files: tuple[FileRecord, ...] = ()
    conclusion: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    is_complete: bool = False


@dataclass
class FieldCallbacks:
    """Handlers invoked synchronously as events are emitted.

    Each handler receives the event object; ``on_complete`` receives the
    final :class:`FieldSnapshot`.
    """

    on_field_start: Callable[[FieldStarted], None] | None = None
    on_field_content: Callable[[FieldContent], None] | None = None
    on_field_end: Callable[[FieldEnded], None] | None = None
    on_file_start: Callable[[FileStarted], None] | None = None
    on_tool_call: Callable[[ToolCallRecognized], None] | None = None
    on_complete: Callable[[FieldSnapshot], None] | None = None


_HANDLER_FOR = {
    FieldStarted: "on_field_start",
    FieldContent: "on_field_content",
    FieldEnded: "on_field_end",
    FileStarted: "on_file_start",
    ToolCallRecognized: "on_tool_call",
}

# Snapshot attribute for each per-file key.
_FILE_ATTR = {
    "FileName": "file_name",
    "FileVersion": "file_version",
    "FileCode": "file_code",
    "FileText": "file_text",
}


class FieldStreamDecoder:
    """Resumable scanner for the code-mode field protocol.

    Feed only new text to :meth:`process_chunk`; never re-feed text that
    was already processed.  Create one decoder per response, or call
    :meth:`reset` before reusing it.
    """

    def __init__(self) -> None:
        self.callbacks = FieldCallbacks()
        self.reset()

    def reset(self) -> None:
        """Clear all decoding state.  Registered callbacks are kept."""
        self.cursor = 0
        self.mode = FieldMode.AWAITING_KEY
        self.active_key: str | None = None
        self.active_file_index = -1
        self.in_files_array = False
        self.closed = False

        self._key_buf = ""
        self._key_escaped = False
        self._skip_escaped = False
        self._pending_escape = ""
        self._pending_high_surrogate = ""
        self._number_buf = ""
        self._array_depth = 0
        self._files_array_depth = 0
        self._tool_call: ToolCallAccumulator | None = None

        self._text: str | None = None
        self._conclusion: str | None = None
        self._files: list[dict] = []
        self._tool_calls: list[ToolCall] = []

        self._events: list[FieldEvent] = []
        self._run = ""

    def set_callbacks(self, **handlers: Callable | None) -> None:
        """Register handlers by name, keeping any not mentioned."""
        known = {f.name for f in fields(FieldCallbacks)}
        for name, handler in handlers.items():
            if name not in known:
                raise TypeError(f"Unknown callback: {name}")
            setattr(self.callbacks, name, handler)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_chunk(self, fragment: str) -> list[FieldEvent]:
        """Consume the next fragment and return the events it produced."""
        if not isinstance(fragment, str):
            raise TypeError(f"fragment must be str, not {type(fragment).__name__}")
        if not fragment:
            return []
        if self.closed:
            raise RuntimeError("Decoder is closed; call reset() before reuse")

        self._events = []
        i = 0
        while i < len(fragment):
            if self._step(fragment[i]):
                i += 1
        self.cursor += len(fragment)
        self._flush_run()
        return self._events

    def snapshot(self) -> FieldSnapshot:
        return FieldSnapshot(
            text=self._text,
            files=tuple(FileRecord(**f) for f in self._files),
            conclusion=self._conclusion,
            tool_calls=tuple(self._tool_calls),
            is_complete=self.closed,
        )

    def close(self) -> FieldSnapshot:
        """Mark the response as finished and fire ``on_complete`` once."""
        if not self.closed:
            self.closed = True
            if self.mode is not FieldMode.AWAITING_KEY:
                logger.debug(f"Stream closed mid-value in mode {self.mode.name}")
            snap = self.snapshot()
            if self.callbacks.on_complete is not None:
                self.callbacks.on_complete(snap)
            return snap
        return self.snapshot()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _step(self, char: str) -> bool:
        """Advance by one character.

        Returns False when the character must be re-examined in the new
        mode (the previous token ended without consuming it).
        """
        mode = self.mode

        if mode is FieldMode.IN_STRING:
            self._string_char(char)
        elif mode is FieldMode.AWAITING_KEY:
            if char == '"':
                self._key_buf = ""
                self._key_escaped = False
                self.mode = FieldMode.IN_KEY
            elif char == "[":
                self._array_depth += 1
            elif char == "]":
                if self.in_files_array and self._array_depth == self._files_array_depth:
                    self.in_files_array = False
                self._array_depth = max(self._array_depth - 1, 0)
        elif mode is FieldMode.IN_KEY:
            if self._key_escaped:
                self._key_buf += char
                self._key_escaped = False
            elif char == "\\":
                self._key_escaped = True
            elif char == '"':
                self.mode = FieldMode.AWAITING_COLON
            else:
                self._key_buf += char
        elif mode is FieldMode.AWAITING_COLON:
            if char == ":":
                self.mode = FieldMode.AWAITING_VALUE
            elif char not in _WHITESPACE:
                # A bare string (e.g. an array element), not a key.
                self.mode = FieldMode.AWAITING_KEY
                return False
        elif mode is FieldMode.AWAITING_VALUE:
            if char not in _WHITESPACE:
                return self._open_value(char)
        elif mode is FieldMode.IN_NUMBER:
            if char in _NUMBER_CHARS:
                self._number_buf += char
                self._run += char
            else:
                self._end_field()
                return False
        elif mode is FieldMode.SKIPPING_STRING:
            if self._skip_escaped:
                self._skip_escaped = False
            elif char == "\\":
                self._skip_escaped = True
            elif char == '"':
                self.mode = FieldMode.AWAITING_KEY
        elif mode is FieldMode.IN_TOOL_CALL:
            if self._tool_call.feed(char):
                self._finish_tool_call()
        return True

    def _open_value(self, char: str) -> bool:
        key = self._key_buf
        if key in MARKER_KEYS and char == "{":
            position = ToolCallPosition.from_marker(key)
            file_index = None
            if position is ToolCallPosition.AFTER_FILE and self.active_file_index >= 0:
                file_index = self.active_file_index
            self._tool_call = ToolCallAccumulator(position, file_index)
            self._tool_call.feed(char)
            self.mode = FieldMode.IN_TOOL_CALL
            return True
        if key == FILES_KEY and char == "[":
            self._array_depth += 1
            self._files_array_depth = self._array_depth
            self.in_files_array = True
            self.mode = FieldMode.AWAITING_KEY
            return True
        if char == '"' and (key in TOP_LEVEL_FIELDS or key in FILE_FIELDS):
            self._start_field(key)
            self.mode = FieldMode.IN_STRING
            return True
        if key == "FileVersion" and char in _NUMBER_CHARS:
            self._start_field(key)
            self._number_buf = char
            self._run = char
            self.mode = FieldMode.IN_NUMBER
            return True
        if char == '"':
            self._skip_escaped = False
            self.mode = FieldMode.SKIPPING_STRING
            return True
        # Unknown key, or a value shape this protocol does not stream.
        self.mode = FieldMode.AWAITING_KEY
        return False

    # ------------------------------------------------------------------
    # String values
    # ------------------------------------------------------------------

    def _string_char(self, char: str) -> None:
        if self._pending_escape:
            self._pending_escape += char
            self._resolve_escape()
        elif char == "\\":
            self._pending_escape = char
        elif char == '"':
            self._emit_high_surrogate()
            self._end_field()
        else:
            self._emit_high_surrogate()
            self._append(char)

    def _resolve_escape(self) -> None:
        seq = self._pending_escape
        kind = seq[1]
        if kind != "u":
            self._pending_escape = ""
            self._emit_high_surrogate()
            self._append(_SIMPLE_ESCAPES.get(kind, seq))
            return
        if len(seq) < 6:
            if seq[-1] in _HEX_DIGITS or len(seq) == 2:
                return
            # Not a valid \u escape: keep the text as written.
            self._pending_escape = ""
            self._emit_high_surrogate()
            self._append(seq)
            return

        self._pending_escape = ""
        code = int(seq[2:], 16)
        if 0xD800 <= code <= 0xDBFF:
            self._emit_high_surrogate()
            self._pending_high_surrogate = chr(code)
        elif 0xDC00 <= code <= 0xDFFF and self._pending_high_surrogate:
            high = ord(self._pending_high_surrogate)
            self._pending_high_surrogate = ""
            self._append(chr(0x10000 + ((high - 0xD800) << 10) + (code - 0xDC00)))
        else:
            self._emit_high_surrogate()
            self._append(chr(code))

    def _emit_high_surrogate(self) -> None:
        if self._pending_high_surrogate:
            self._append(self._pending_high_surrogate)
            self._pending_high_surrogate = ""

    # ------------------------------------------------------------------
    # Field bookkeeping
    # ------------------------------------------------------------------

    def _file_index_for(self, key: str) -> int | None:
        if key in FILE_FIELDS and self.active_file_index >= 0:
            return self.active_file_index
        return None

    def _start_field(self, key: str) -> None:
        self._flush_run()
        if key == "FileName":
            self.active_file_index += 1
            self._files.append({})
            self._emit(FileStarted(index=self.active_file_index))
        self.active_key = key
        self._pending_escape = ""
        self._pending_high_surrogate = ""
        if key == "Text":
            self._text = ""
        elif key == "Conclusion":
            self._conclusion = ""
        elif key != "FileVersion" and self.active_file_index >= 0:
            self._files[self.active_file_index][_FILE_ATTR[key]] = ""
        self._number_buf = ""
        self._emit(FieldStarted(name=key, file_index=self._file_index_for(key)))

    def _append(self, text: str) -> None:
        self._run += text
        key = self.active_key
        if key == "FileVersion":
            self._number_buf += text
        elif key == "Text":
            self._text += text
        elif key == "Conclusion":
            self._conclusion += text
        elif self.active_file_index >= 0:
            self._files[self.active_file_index][_FILE_ATTR[key]] += text

    def _flush_run(self) -> None:
        if self._run and self.active_key is not None:
            self._emit(FieldContent(
                name=self.active_key,
                content=self._run,
                file_index=self._file_index_for(self.active_key),
            ))
        self._run = ""

    def _end_field(self) -> None:
        self._flush_run()
        key = self.active_key
        if key == "FileVersion":
            self._store_version(self._number_buf)
        self._emit(FieldEnded(name=key, file_index=self._file_index_for(key)))
        self.active_key = None
        self._number_buf = ""
        self.mode = FieldMode.AWAITING_KEY

    def _store_version(self, raw: str) -> None:
        try:
            version = int(raw.strip())
        except ValueError:
            logger.debug(f"Ignoring non-numeric FileVersion {raw!r}")
            return
        if self.active_file_index >= 0:
            self._files[self.active_file_index]["file_version"] = version

    def _finish_tool_call(self) -> None:
        tool_call = self._tool_call.parse()
        self._tool_call = None
        self.mode = FieldMode.AWAITING_KEY
        if tool_call is None:
            return
        self._tool_calls.append(tool_call)
        self._emit(ToolCallRecognized(tool_call=tool_call))

    def _emit(self, event: FieldEvent) -> None:
        self._events.append(event)
        handler = getattr(self.callbacks, _HANDLER_FOR[type(event)])
        if handler is not None:
            handler(event)
