import asyncio
import json
import unittest

from termchat.errors import TransportError
from termchat.memory.models import StreamEvent
from termchat.stream_decoder import StreamDecoder, decode_stream


def _frame(content: str) -> bytes:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n".encode("utf-8")


_DONE = b"data: [DONE]\n"


async def _chunks(*chunks: bytes):
    for chunk in chunks:
        yield chunk


async def _failing_chunks(*chunks: bytes):
    for chunk in chunks:
        yield chunk
    raise TransportError("connection reset")


class StreamDecoderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.frame_errors: list = []
        self.decoder = StreamDecoder(on_frame_error=self.frame_errors.append)

    def test_one_frame_per_chunk(self) -> None:
        self.assertEqual([StreamEvent(delta="Hel")], self.decoder.feed(_frame("Hel")))
        self.assertEqual([StreamEvent(delta="lo")], self.decoder.feed(_frame("lo")))
        self.assertEqual([StreamEvent(terminal=True)], self.decoder.feed(_DONE))
        self.assertTrue(self.decoder.done)

    def test_frame_split_mid_line_is_not_duplicated(self) -> None:
        body = _frame("Hel") + _frame("lo") + _DONE
        split_at = len(_frame("Hel")) + 12
        first = self.decoder.feed(body[:split_at])
        self.assertEqual([StreamEvent(delta="Hel")], first)
        self.assertEqual(body[len(_frame("Hel")):split_at], self.decoder.pending)

        second = self.decoder.feed(body[split_at:])
        self.assertEqual([StreamEvent(delta="lo"), StreamEvent(terminal=True)], second)

    def test_multibyte_character_split_across_chunks(self) -> None:
        body = _frame("café ✓")
        split_at = body.index("é".encode("utf-8")) + 1
        self.assertEqual([], self.decoder.feed(body[:split_at]))
        self.assertEqual([StreamEvent(delta="café ✓")], self.decoder.feed(body[split_at:]))

    def test_byte_at_a_time_delivery(self) -> None:
        body = _frame("Hel") + _frame("lo") + _DONE
        events: list[StreamEvent] = []
        for i in range(len(body)):
            events.extend(self.decoder.feed(body[i:i + 1]))
        deltas = [e.delta for e in events if e.delta]
        self.assertEqual(["Hel", "lo"], deltas)
        self.assertTrue(events[-1].terminal)

    def test_malformed_frame_is_reported_and_skipped(self) -> None:
        events = self.decoder.feed(_frame("a") + b"data: {not valid json}\n" + _frame("b"))
        self.assertEqual([StreamEvent(delta="a"), StreamEvent(delta="b")], events)
        self.assertEqual(1, len(self.frame_errors))
        self.assertEqual("{not valid json}", self.frame_errors[0].frame)

    def test_oversized_integer_frame_is_dropped_not_fatal(self) -> None:
        body = _frame("a") + b"data: " + b"9" * 5000 + b"\n" + _frame("b") + _DONE
        events = self.decoder.feed(body)
        self.assertEqual([StreamEvent(delta="a"), StreamEvent(delta="b"), StreamEvent(terminal=True)], events)
        self.assertEqual(1, len(self.frame_errors))

    def test_deeply_nested_frame_is_dropped_not_fatal(self) -> None:
        body = _frame("a") + b"data: " + b"[" * 100000 + b"\n" + _frame("b")
        self.assertEqual([StreamEvent(delta="a"), StreamEvent(delta="b")], self.decoder.feed(body))
        self.assertEqual(1, len(self.frame_errors))

    def test_ignores_comments_blank_lines_and_other_fields(self) -> None:
        body = b": keep-alive\n\nevent: message\ndata: \ndata:{}\n" + _frame("x")
        self.assertEqual([StreamEvent(delta="x")], self.decoder.feed(body))
        self.assertEqual([], self.frame_errors)

    def test_frames_without_content_yield_nothing(self) -> None:
        body = (
            b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n'
            b'data: {"choices":[]}\n'
            b'data: {"choices":[{"delta":{"content":null}}]}\n'
            b'data: [1, 2]\n'
        )
        self.assertEqual([], self.decoder.feed(body))
        self.assertEqual([], self.frame_errors)

    def test_crlf_line_endings(self) -> None:
        body = _frame("hi").replace(b"\n", b"\r\n") + b"data: [DONE]\r\n"
        self.assertEqual([StreamEvent(delta="hi"), StreamEvent(terminal=True)], self.decoder.feed(body))

    def test_nothing_after_sentinel_is_decoded(self) -> None:
        events = self.decoder.feed(_frame("a") + _DONE + _frame("late"))
        self.assertEqual([StreamEvent(delta="a"), StreamEvent(terminal=True)], events)
        self.assertEqual([], self.decoder.feed(_frame("later")))
        self.assertEqual(b"", self.decoder.pending)

    def test_finish_flushes_unterminated_last_line(self) -> None:
        self.assertEqual([], self.decoder.feed(_frame("tail").rstrip(b"\n")))
        self.assertEqual([StreamEvent(delta="tail")], self.decoder.finish())
        self.assertEqual(b"", self.decoder.pending)


class DecodeStreamTests(unittest.TestCase):
    def test_emits_in_order_and_returns_concatenation(self) -> None:
        shown: list[str] = []
        answer = asyncio.run(decode_stream(_chunks(_frame("Hel"), _frame("lo"), _DONE), shown.append))
        self.assertEqual("Hello", answer)
        self.assertEqual(["Hel", "lo"], shown)

    def test_two_chunks_split_inside_second_frame(self) -> None:
        body = _frame("Hel") + _frame("lo") + _DONE
        split_at = len(_frame("Hel")) + 9
        shown: list[str] = []
        answer = asyncio.run(decode_stream(_chunks(body[:split_at], body[split_at:]), shown.append))
        self.assertEqual("Hello", answer)
        self.assertEqual(["Hel", "lo"], shown)

    def test_malformed_frame_between_valid_frames(self) -> None:
        errors: list = []
        body = _frame("one ") + b"data: {not valid json}\n" + _frame("two") + _DONE
        answer = asyncio.run(
            decode_stream(_chunks(body), lambda _: None, decoder=StreamDecoder(on_frame_error=errors.append))
        )
        self.assertEqual("one two", answer)
        self.assertEqual(1, len(errors))

    def test_missing_sentinel_returns_accumulated_text(self) -> None:
        answer = asyncio.run(decode_stream(_chunks(_frame("Hel"), _frame("lo")), lambda _: None))
        self.assertEqual("Hello", answer)

    def test_empty_stream_returns_empty_answer(self) -> None:
        self.assertEqual("", asyncio.run(decode_stream(_chunks(), lambda _: None)))

    def test_stops_reading_after_sentinel(self) -> None:
        consumed: list[bytes] = []

        async def tracking():
            for chunk in (_frame("a"), _DONE, _frame("never")):
                consumed.append(chunk)
                yield chunk

        answer = asyncio.run(decode_stream(tracking(), lambda _: None))
        self.assertEqual("a", answer)
        self.assertEqual(2, len(consumed))

    def test_read_error_propagates_and_keeps_displayed_text(self) -> None:
        shown: list[str] = []
        with self.assertRaises(TransportError):
            asyncio.run(decode_stream(_failing_chunks(_frame("partial")), shown.append))
        self.assertEqual(["partial"], shown)


if __name__ == "__main__":
    unittest.main()
