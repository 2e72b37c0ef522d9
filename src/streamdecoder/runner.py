import logging
from collections.abc import AsyncIterator

from streamdecoder.events import DecodeCompleteEvent, DecoderEvent
from streamdecoder.fences import FencedContentDecoder, Segment
from streamdecoder.fields import FieldSnapshot, FieldStreamDecoder
from streamdecoder.instrumentation import decode_span, record_error, record_progress

logger = logging.getLogger(__name__)


class DecodeRunner:
    """Drives a decoder from an async stream of text fragments.

    Each fragment results in exactly one synchronous decoder call: the
    field decoder receives the fragment itself, the fenced decoder
    receives the text accumulated so far.  When the stream ends the
    decoder is closed and a :class:`DecodeCompleteEvent` carries the
    final result.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point.
    Stop iterating to cancel; the decoder needs no cleanup.

    Args:
        decoder: A fresh (or reset) decoder owned by this response.
    """

    def __init__(self, decoder: FieldStreamDecoder | FencedContentDecoder):
        self.decoder = decoder

    @property
    def decoder_kind(self) -> str:
        if isinstance(self.decoder, FieldStreamDecoder):
            return "fields"
        return "fences"

    async def run(
        self, fragments: AsyncIterator[str],
    ) -> FieldSnapshot | tuple[Segment, ...]:
        """Decode the whole stream and return the final snapshot."""
        result = None
        completed = False
        async for event in self.iter(fragments):
            if isinstance(event, DecodeCompleteEvent):
                result = event.result
                completed = True
        if not completed:
            raise RuntimeError("iter() ended without emitting DecodeCompleteEvent")
        return result

    async def iter(
        self, fragments: AsyncIterator[str],
    ) -> AsyncIterator[DecoderEvent]:
        """Decode the stream, yielding events in input order."""
        fragment_count = 0
        event_count = 0
        content = ""
        async with decode_span(self.decoder_kind) as span:
            try:
                async for fragment in fragments:
                    fragment_count += 1
                    if isinstance(self.decoder, FieldStreamDecoder):
                        events = self.decoder.process_chunk(fragment)
                    else:
                        content += fragment
                        self.decoder.parse(content)
                        events = self.decoder.last_events
                    event_count += len(events)
                    for event in events:
                        yield event

                if isinstance(self.decoder, FieldStreamDecoder):
                    result = self.decoder.close()
                else:
                    result = self.decoder.finish()
                    event_count += len(self.decoder.last_events)
                    for event in self.decoder.last_events:
                        yield event
            except Exception as e:
                logger.error(f"Decoding failed after {fragment_count} fragments: {e}")
                record_error(span, e)
                raise
            record_progress(span, fragment_count, event_count)
        logger.debug(
            f"Decoded {fragment_count} fragments into {event_count} events "
            f"with the {self.decoder_kind} decoder"
        )
        yield DecodeCompleteEvent(result=result)
