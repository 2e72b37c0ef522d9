import json
from enum import Enum

from streamdecoder.fences import FencedContentDecoder
from streamdecoder.fields import FILES_KEY, FieldStreamDecoder


class ResponseMode(Enum):
    """Request modes understood by the backend.

    Only ``CODE`` produces the structured field payload; the other modes
    stream plain markdown.
    """

    DEFAULT = "default"
    REASON = "reason"
    CODE = "code"


def detect_mode(payload: str) -> ResponseMode:
    """Classify a complete stored response.

    A response is code mode when it is a JSON object carrying ``Files`` or
    ``Conclusion``; anything else (including invalid JSON) is default.
    """
    try:
        parsed = json.loads(payload)
    except (json.JSONDecodeError, TypeError):
        return ResponseMode.DEFAULT
    if isinstance(parsed, dict) and (FILES_KEY in parsed or "Conclusion" in parsed):
        return ResponseMode.CODE
    return ResponseMode.DEFAULT


def decoder_for(mode: ResponseMode) -> FieldStreamDecoder | FencedContentDecoder:
    """Return a fresh decoder suited to responses in *mode*."""
    if mode is ResponseMode.CODE:
        return FieldStreamDecoder()
    return FencedContentDecoder()
