"""Server-Sent Events adapter for backend token streams."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

END_OF_STREAM_EVENT = "event: end-of-stream"


async def sse_tokens(
    raw_stream: AsyncIterator[str],
    include_trace: bool = False,
) -> AsyncIterator[str]:
    """Convert raw SSE text into the token fragments it carries.

    Frames look like ``data: {"token": "...", "trace": false}`` and are
    separated by a blank line; *raw_stream* may split them anywhere.  The
    stream ends at ``data: {"status": "done"}`` or an
    ``event: end-of-stream`` frame.  Trace tokens are skipped unless
    *include_trace* is set.
    """
    buffer = ""
    async for text in raw_stream:
        buffer += text
        *frames, buffer = buffer.split("\n\n")
        for frame in frames:
            for token in _frame_tokens(frame, include_trace):
                if token is None:
                    return
                yield token
    for token in _frame_tokens(buffer, include_trace):
        if token is None:
            return
        yield token


def _frame_tokens(frame: str, include_trace: bool) -> list[str | None]:
    """Tokens in one frame; a trailing ``None`` marks end of stream."""
    frame = frame.strip()
    if frame.startswith(END_OF_STREAM_EVENT):
        return [None]
    if not frame.startswith("data:"):
        return []
    payload = frame[len("data:"):].strip()
    if not payload:
        return []
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping unparseable stream frame: {e}")
        return []
    if not isinstance(data, dict):
        return []

    tokens: list[str | None] = []
    token = data.get("token")
    if isinstance(token, str) and token and (include_trace or not data.get("trace")):
        tokens.append(token)
    if data.get("status") == "done":
        tokens.append(None)
    return tokens
