"""Unit tests for DecodeRunner."""

from unittest.mock import MagicMock

import pytest

import streamdecoder.instrumentation as inst
from streamdecoder.events import (
    DecodeCompleteEvent,
    FieldContent,
    FieldEnded,
    FieldStarted,
    SegmentClosed,
    SegmentCreated,
    SegmentUpdated,
)
from streamdecoder.fences import FencedContentDecoder, SegmentKind
from streamdecoder.fields import FieldSnapshot, FieldStreamDecoder
from streamdecoder.runner import DecodeRunner
from tests.conftest import async_iter, split_every


@pytest.fixture(autouse=True)
def _reset_tracer():
    inst._tracer = None
    yield
    inst._tracer = None


class TestFieldRunner:
    @pytest.mark.asyncio
    async def test_events_then_completion(self):
        runner = DecodeRunner(FieldStreamDecoder())
        events = [e async for e in runner.iter(async_iter(['{"Text": "he', 'llo"}']))]

        assert [type(e) for e in events] == [
            FieldStarted, FieldContent, FieldContent, FieldEnded, DecodeCompleteEvent,
        ]
        result = events[-1].result
        assert isinstance(result, FieldSnapshot)
        assert result.text == "hello"
        assert result.is_complete is True

    @pytest.mark.asyncio
    async def test_run_returns_snapshot(self, two_file_payload):
        runner = DecodeRunner(FieldStreamDecoder())
        snap = await runner.run(async_iter(split_every(two_file_payload, 9)))

        assert [f.file_name for f in snap.files] == ["a.py", "b.py"]
        assert snap.conclusion == "Done."

    @pytest.mark.asyncio
    async def test_empty_stream_still_completes(self):
        snap = await DecodeRunner(FieldStreamDecoder()).run(async_iter([]))
        assert snap == FieldSnapshot(is_complete=True)


class TestFenceRunner:
    @pytest.mark.asyncio
    async def test_fragments_are_accumulated(self):
        runner = DecodeRunner(FencedContentDecoder())
        segments = await runner.run(async_iter(["Use ", "`x", "` and\n```py\n", "a = 1\n```"]))

        assert [(s.kind, s.content) for s in segments] == [
            (SegmentKind.TEXT, "Use "),
            (SegmentKind.INLINE_CODE, "x"),
            (SegmentKind.TEXT, " and\n"),
            (SegmentKind.CODE, "a = 1\n"),
        ]
        assert all(s.is_complete for s in segments)

    @pytest.mark.asyncio
    async def test_finish_events_are_yielded(self):
        runner = DecodeRunner(FencedContentDecoder())
        events = [e async for e in runner.iter(async_iter(["plain"]))]

        assert [type(e) for e in events] == [
            SegmentCreated, SegmentUpdated, SegmentClosed, DecodeCompleteEvent,
        ]


class TestRunnerErrors:
    @pytest.mark.asyncio
    async def test_transport_error_propagates_and_is_recorded(self):
        mock_span = MagicMock()
        mock_tracer = MagicMock()
        mock_tracer.start_as_current_span.return_value.__enter__ = MagicMock(return_value=mock_span)
        mock_tracer.start_as_current_span.return_value.__exit__ = MagicMock(return_value=False)
        inst._tracer = mock_tracer

        async def broken():
            yield '{"Text": "a'
            raise ConnectionError("reset by peer")

        with pytest.raises(ConnectionError):
            await DecodeRunner(FieldStreamDecoder()).run(broken())

        mock_span.record_exception.assert_called_once()

    @pytest.mark.asyncio
    async def test_progress_recorded_on_span(self):
        mock_span = MagicMock()
        mock_tracer = MagicMock()
        mock_tracer.start_as_current_span.return_value.__enter__ = MagicMock(return_value=mock_span)
        mock_tracer.start_as_current_span.return_value.__exit__ = MagicMock(return_value=False)
        inst._tracer = mock_tracer

        await DecodeRunner(FieldStreamDecoder()).run(async_iter(['{"Text":', ' "x"}']))

        mock_tracer.start_as_current_span.assert_called_once_with(
            "decode fields", attributes={"streamdecoder.decoder": "fields"},
        )
        mock_span.set_attribute.assert_any_call("streamdecoder.fragments", 2)
        mock_span.set_attribute.assert_any_call("streamdecoder.events", 3)
