"""SSEDecoder 单元测试 -- 任意读取边界下的增量解码"""

import json

import pytest
from chatelix.dispatch.sse import SSEDecoder, extract_delta


def _frame(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n"


STREAM = (
    ": keep-alive comment\n"
    + _frame("Hel")
    + "\n"
    + _frame("lo, ")
    + "event: ping\n"
    + _frame("wörld ✓")
    + "data: {not json}\n"
    + _frame("!")
)


def _decode(chunks: list[bytes]) -> list[str]:
    decoder = SSEDecoder()
    deltas: list[str] = []
    for chunk in chunks:
        deltas.extend(decoder.feed(chunk))
    decoder.finish()
    return deltas


class TestExtractDelta:
    """单个 payload 的增量提取优先级"""

    def test_delta_content_first(self):
        payload = {
            "choices": [{"delta": {"content": "a"}, "message": {"content": "b"}}],
            "content": "c",
        }
        assert extract_delta(payload) == "a"

    def test_message_content_when_no_delta(self):
        payload = {"choices": [{"delta": {}, "message": {"content": "b"}}], "content": "c"}
        assert extract_delta(payload) == "b"

    def test_top_level_content_last(self):
        assert extract_delta({"content": "c"}) == "c"

    def test_empty_content_is_skipped(self):
        payload = {"choices": [{"delta": {"content": ""}}], "content": "c"}
        assert extract_delta(payload) == "c"

    @pytest.mark.parametrize("payload", [{}, {"choices": []}, [], "text", None, {"choices": [1]}])
    def test_no_content(self, payload):
        assert extract_delta(payload) == ""


class TestSSEDecoder:
    """行级与字节级拼接"""

    def test_single_chunk(self):
        assert _decode([STREAM.encode()]) == ["Hel", "lo, ", "wörld ✓", "!"]

    def test_every_split_point_gives_same_deltas(self):
        """任意一处切分（含多字节字符中间）结果不变"""
        data = STREAM.encode()
        expected = ["Hel", "lo, ", "wörld ✓", "!"]
        for i in range(len(data) + 1):
            assert _decode([data[:i], data[i:]]) == expected, f"split at {i}"

    def test_byte_by_byte(self):
        data = STREAM.encode()
        assert _decode([data[i : i + 1] for i in range(len(data))]) == [
            "Hel",
            "lo, ",
            "wörld ✓",
            "!",
        ]

    def test_done_stops_remaining_lines_of_the_read(self):
        """[DONE] 之后同一次读取中的行被忽略"""
        decoder = SSEDecoder()
        chunk = (_frame("a") + "data: [DONE]\n" + _frame("b")).encode()
        assert decoder.feed(chunk) == ["a"]

    def test_done_does_not_end_the_stream(self):
        """[DONE] 只影响当前读取，后续读取照常解析"""
        decoder = SSEDecoder()
        assert decoder.feed(b"data: [DONE]\n") == []
        assert decoder.feed(_frame("later").encode()) == ["later"]

    def test_invalid_json_is_skipped(self):
        decoder = SSEDecoder()
        chunk = ("data: {oops\n" + _frame("ok")).encode()
        assert decoder.feed(chunk) == ["ok"]

    def test_only_data_prefix_with_space_counts(self):
        decoder = SSEDecoder()
        raw = 'data:{"content": "x"}\nid: 1\n' + _frame("y")
        assert decoder.feed(raw.encode()) == ["y"]

    def test_partial_line_is_carried(self):
        decoder = SSEDecoder()
        frame = _frame("carried").encode()
        assert decoder.feed(frame[:10]) == []
        assert decoder.pending
        assert decoder.feed(frame[10:]) == ["carried"]
        assert decoder.pending == ""

    def test_trailing_partial_line_is_discarded(self):
        """流结束时没有换行的残留行不会产出增量"""
        decoder = SSEDecoder()
        tail = _frame("lost").rstrip("\n")
        assert decoder.feed(tail.encode()) == []
        assert decoder.finish() == tail
        assert decoder.pending == ""

    def test_invalid_utf8_is_replaced(self):
        decoder = SSEDecoder()
        chunk = b'data: {"content": "a\xff"}\n'
        assert decoder.feed(chunk) == ["a�"]
