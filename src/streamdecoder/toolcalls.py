"""Tool-call sub-objects embedded in a code-mode response.

The backend reports side invocations (e.g. a web search) as small JSON
objects under one of three marker keys.  The :class:`ToolCallAccumulator`
collects such an object character by character until its braces
balance, then validates it into a :class:`ToolCall`.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class ToolCallPosition(Enum):
    AFTER_TEXT = "after_text"
    AFTER_FILE = "after_file"
    BEFORE_CONCLUSION = "before_conclusion"

    @property
    def marker(self) -> str:
        """The key the backend uses for this position."""
        return f"tool_{self.value}"

    @classmethod
    def from_marker(cls, key: str) -> ToolCallPosition | None:
        """Map ``"tool_after_file"`` to ``AFTER_FILE``; ``None`` otherwise."""
        if not key.startswith("tool_"):
            return None
        try:
            return cls(key[len("tool_"):])
        except ValueError:
            return None


MARKER_KEYS = frozenset(p.marker for p in ToolCallPosition)


class ToolCall(BaseModel):
    """A recognized tool call, tagged with where it occurred."""

    model_config = {"frozen": True}

    name: str
    query: str
    position: ToolCallPosition
    file_index: int | None = None


class _ToolCallPayload(BaseModel):
    tool_name: str = Field(min_length=1)
    query: str = Field(min_length=1)


class ToolCallAccumulator:
    """Brace-counts a tool-call object fed one character at a time.

    Braces inside the object's quoted strings are not counted, so a query
    such as ``"a}b"`` cannot close the object early.
    """

    def __init__(self, position: ToolCallPosition, file_index: int | None = None) -> None:
        self.position = position
        self.file_index = file_index
        self.raw = ""
        self.depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def balanced(self) -> bool:
        return bool(self.raw) and self.depth == 0

    def feed(self, char: str) -> bool:
        """Consume one character; return True once the object is closed."""
        self.raw += char
        if self._in_string:
            if self._escaped:
                self._escaped = False
            elif char == "\\":
                self._escaped = True
            elif char == '"':
                self._in_string = False
        elif char == '"':
            self._in_string = True
        elif char == "{":
            self.depth += 1
        elif char == "}":
            self.depth -= 1
        return self.balanced

    def parse(self) -> ToolCall | None:
        """Validate the balanced object, or return None if it is malformed."""
        try:
            payload = _ToolCallPayload.model_validate_json(self.raw)
        except ValidationError as e:
            logger.debug(
                f"Discarding malformed {self.position.marker} payload: "
                f"{e.error_count()} error(s)"
            )
            return None
        return ToolCall(
            name=payload.tool_name,
            query=payload.query,
            position=self.position,
            file_index=self.file_index,
        )
