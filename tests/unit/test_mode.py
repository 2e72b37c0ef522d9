import pytest

from streamdecoder.fences import FencedContentDecoder
from streamdecoder.fields import FieldStreamDecoder
from streamdecoder.mode import ResponseMode, decoder_for, detect_mode
from tests.conftest import make_code_payload


@pytest.mark.parametrize(
    "payload,expected",
    [
        (make_code_payload(text="t", files=[]), ResponseMode.CODE),
        (make_code_payload(conclusion="c"), ResponseMode.CODE),
        ('{"Text": "only text"}', ResponseMode.DEFAULT),
        ("Just some *markdown* with `code`.", ResponseMode.DEFAULT),
        ('["Files"]', ResponseMode.DEFAULT),
        ('{"Files": [', ResponseMode.DEFAULT),
    ],
    ids=["files", "conclusion", "text-only", "markdown", "array", "truncated"],
)
def test_detect_mode(payload, expected):
    assert detect_mode(payload) is expected


def test_detect_mode_tolerates_non_string():
    assert detect_mode(None) is ResponseMode.DEFAULT


def test_decoder_for_code_mode():
    assert isinstance(decoder_for(ResponseMode.CODE), FieldStreamDecoder)


@pytest.mark.parametrize("mode", [ResponseMode.DEFAULT, ResponseMode.REASON])
def test_decoder_for_markdown_modes(mode):
    assert isinstance(decoder_for(mode), FencedContentDecoder)


def test_decoder_for_returns_fresh_instances():
    assert decoder_for(ResponseMode.CODE) is not decoder_for(ResponseMode.CODE)
