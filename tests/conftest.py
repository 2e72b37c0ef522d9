import json

import pytest

from streamdecoder.events import FieldContent
from streamdecoder.fences import FencedContentDecoder
from streamdecoder.fields import FieldStreamDecoder


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def make_code_payload(
    text: str | None = None,
    files: list[dict] | None = None,
    conclusion: str | None = None,
    tools: dict[str, dict] | None = None,
) -> str:
    """Serialize a code-mode response the way the backend emits it.

    *tools* maps a marker key (e.g. ``"tool_after_text"``) to its object;
    each marker is placed right after the section it refers to.
    """
    tools = tools or {}
    body: dict = {}
    if text is not None:
        body["Text"] = text
    if "tool_after_text" in tools:
        body["tool_after_text"] = tools["tool_after_text"]
    if files is not None:
        body["Files"] = files
    if "tool_before_conclusion" in tools:
        body["tool_before_conclusion"] = tools["tool_before_conclusion"]
    if conclusion is not None:
        body["Conclusion"] = conclusion
    return json.dumps(body)


def make_sse_frames(tokens: list[str], trace: list[str] | None = None) -> str:
    """Render tokens as the backend's SSE body, ending with a done frame."""
    frames = [f"data: {json.dumps({'token': t, 'trace': False})}\n\n" for t in tokens]
    for t in trace or []:
        frames.append(f"data: {json.dumps({'token': t, 'trace': True})}\n\n")
    frames.append('data: {"status": "done"}\n\n')
    return "".join(frames)


# ---------------------------------------------------------------------------
# Fragment helpers
# ---------------------------------------------------------------------------

def split_every(text: str, size: int) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


def split_at(text: str, *points: int) -> list[str]:
    bounds = [0, *points, len(text)]
    return [text[a:b] for a, b in zip(bounds, bounds[1:])]


async def async_iter(items):
    for item in items:
        yield item


def feed_all(decoder: FieldStreamDecoder, fragments: list[str]) -> list:
    events = []
    for fragment in fragments:
        events.extend(decoder.process_chunk(fragment))
    return events


def content_of(events: list, name: str, file_index: int | None = None) -> str:
    """Join every FieldContent for *name* (and *file_index*)."""
    return "".join(
        e.content for e in events
        if isinstance(e, FieldContent) and e.name == name and e.file_index == file_index
    )


def parse_cumulative(decoder: FencedContentDecoder, fragments: list[str]):
    content = ""
    segments = ()
    for fragment in fragments:
        content += fragment
        segments = decoder.parse(content)
    return segments


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def field_decoder():
    return FieldStreamDecoder()


@pytest.fixture
def fence_decoder():
    return FencedContentDecoder()


@pytest.fixture
def two_file_payload():
    return make_code_payload(
        text="Here are two files.",
        files=[
            {"FileName": "a.py", "FileVersion": 1, "FileCode": "print('a')\n", "FileText": "First."},
            {"FileName": "b.py", "FileVersion": 2, "FileCode": "print(\"b\")\n", "FileText": "Second."},
        ],
        conclusion="Done.",
    )
