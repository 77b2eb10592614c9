"""Tests for frame parsing and event decoding."""

import json

import pytest

from agentconsole.events import EventType
from agentconsole.parsers import (
    EventDecoder,
    FrameParser,
    decode_stream,
    summarize_tool_args,
)


def frame(event_type, data=None, timestamp=1000):
    return "data: " + json.dumps({"type": event_type, "data": data or {}, "timestamp": timestamp})


async def _chunks(*items):
    for item in items:
        yield item


# ---------------------------------------------------------------------------
# Frame parser
# ---------------------------------------------------------------------------

class TestFrameParser:

    def test_single_chunk_many_frames(self):
        p = FrameParser()
        text = frame("thinking") + "\n\n" + frame("done") + "\n\n"
        frames = p.feed(text)
        assert len(frames) == 2
        assert json.loads(frames[0])["type"] == "thinking"
        assert json.loads(frames[1])["type"] == "done"

    def test_frame_split_across_chunks(self):
        """A frame cut anywhere is emitted once, after its line ends."""
        line = frame("tool_call", {"tool": "write_file"})
        text = line + "\n\n"
        for cut in (1, 7, len(line) // 2, len(line)):
            p = FrameParser()
            first = p.feed(text[:cut])
            second = p.feed(text[cut:])
            assert first == []
            assert len(second) == 1
            assert json.loads(second[0])["data"] == {"tool": "write_file"}

    def test_one_byte_at_a_time(self):
        p = FrameParser()
        raw = (frame("message", {"message": "hi"}) + "\n\n").encode()
        frames = []
        for i in range(len(raw)):
            frames.extend(p.feed(raw[i:i + 1]))
        assert len(frames) == 1
        assert json.loads(frames[0])["data"]["message"] == "hi"

    def test_multibyte_character_split(self):
        """UTF-8 sequences split between byte chunks decode intact."""
        p = FrameParser()
        record = {"type": "message", "data": {"message": "Zählerstand ✓"}, "timestamp": 1}
        raw = ("data: " + json.dumps(record, ensure_ascii=False) + "\n\n").encode("utf-8")
        cut = raw.index("✓".encode("utf-8")) + 1
        frames = p.feed(raw[:cut]) + p.feed(raw[cut:])
        assert json.loads(frames[0])["data"]["message"] == "Zählerstand ✓"

    def test_lines_without_prefix_dropped(self):
        p = FrameParser()
        frames = p.feed("event: update\n: keepalive\n\n" + frame("done") + "\n")
        assert len(frames) == 1

    def test_crlf_line_endings(self):
        p = FrameParser()
        frames = p.feed(frame("done") + "\r\n\r\n")
        assert len(frames) == 1
        assert json.loads(frames[0])["type"] == "done"

    def test_prefix_without_space(self):
        p = FrameParser()
        assert p.feed('data:{"type": "done"}\n') == ['{"type": "done"}']

    def test_flush_emits_unterminated_tail(self):
        p = FrameParser()
        assert p.feed(frame("done")) == []
        frames = p.flush()
        assert len(frames) == 1
        assert p.flush() == []

    def test_long_line_in_small_chunks(self):
        """Pieces of an unfinished line are held, not re-split, until it ends."""
        p = FrameParser()
        line = frame("message", {"message": "x" * 20_000})
        for i in range(0, len(line), 3):
            assert p.feed(line[i:i + 3]) == []
        assert "".join(p._pending) == line
        frames = p.feed("\n\ndata: {\"type\": \"do")
        assert len(frames) == 1
        assert json.loads(frames[0])["data"]["message"] == "x" * 20_000
        assert p._pending == ['data: {"type": "do']
        assert p.feed('ne"}\n') == ['{"type": "done"}']

    def test_flush_empty(self):
        assert FrameParser().flush() == []

    @pytest.mark.asyncio
    async def test_iter_frames(self):
        p = FrameParser()
        text = frame("thinking") + "\n\n" + frame("done")
        frames = [f async for f in p.iter_frames(_chunks(text[:10], text[10:]))]
        assert [json.loads(f)["type"] for f in frames] == ["thinking", "done"]


# ---------------------------------------------------------------------------
# Event decoder
# ---------------------------------------------------------------------------

class TestEventDecoder:

    def test_decode_known_event(self):
        d = EventDecoder()
        ev = d.decode(json.dumps({"type": "tool_call", "data": {"tool": "x"}, "timestamp": 42}))
        assert ev is not None
        assert ev.type == "tool_call"
        assert ev.kind == EventType.TOOL_CALL
        assert ev.data == {"tool": "x"}
        assert ev.timestamp == 42

    def test_unknown_type_passes_through(self):
        d = EventDecoder()
        ev = d.decode(json.dumps({"type": "heartbeat", "data": {}, "timestamp": 1}))
        assert ev is not None
        assert ev.type == "heartbeat"
        assert ev.kind == EventType.UNKNOWN
        assert d.skipped == 0

    def test_bad_json_skipped(self):
        d = EventDecoder()
        assert d.decode("{not json") is None
        assert d.skipped == 1

    def test_non_object_skipped(self):
        d = EventDecoder()
        assert d.decode("[1, 2]") is None
        assert d.decode('"done"') is None
        assert d.skipped == 2

    def test_missing_type_skipped(self):
        d = EventDecoder()
        assert d.decode(json.dumps({"data": {}})) is None
        assert d.decode(json.dumps({"type": ""})) is None
        assert d.skipped == 2

    def test_missing_data_becomes_empty(self):
        ev = EventDecoder().decode(json.dumps({"type": "done", "data": "nope", "timestamp": 5}))
        assert ev.data == {}

    def test_missing_timestamp_defaults_to_now(self):
        ev = EventDecoder().decode(json.dumps({"type": "done"}))
        assert ev.timestamp > 1_600_000_000_000

    def test_bool_timestamp_rejected(self):
        ev = EventDecoder().decode(json.dumps({"type": "done", "timestamp": True}))
        assert ev.timestamp > 1_600_000_000_000


class TestDecodeStream:

    @pytest.mark.asyncio
    async def test_corrupt_frame_does_not_end_stream(self):
        """Events after a malformed frame are still delivered, in order."""
        text = "\n\n".join([
            frame("thinking", timestamp=1),
            "data: {oops",
            frame("message", {"message": "a"}, timestamp=2),
            frame("done", timestamp=3),
        ]) + "\n\n"
        decoder = EventDecoder()
        events = [e async for e in decode_stream(_chunks(text.encode()), decoder=decoder)]
        assert [e.type for e in events] == ["thinking", "message", "done"]
        assert decoder.skipped == 1

    @pytest.mark.asyncio
    async def test_read_error_propagates(self):
        async def broken():
            yield frame("thinking") + "\n\n"
            raise ConnectionResetError("peer went away")

        events = []
        with pytest.raises(ConnectionResetError):
            async for e in decode_stream(broken()):
                events.append(e)
        assert [e.type for e in events] == ["thinking"]


# ---------------------------------------------------------------------------
# Tool argument summaries
# ---------------------------------------------------------------------------

class TestSummarizeToolArgs:

    def test_file_path(self):
        assert summarize_tool_args("write_file", {"file_path": "db/meters.sql"}) == "db/meters.sql"

    def test_create_tasks(self):
        assert summarize_tool_args("create_tasks", {"tasks": ["a", "b", "c"]}) == "3 tasks"

    def test_update_task(self):
        args = {"task_id": "task_1", "status": "completed"}
        assert summarize_tool_args("update_task", args) == "task_1 -> completed"

    def test_fallback_json_truncated(self):
        out = summarize_tool_args("other", {"blob": "x" * 200})
        assert out.startswith('{"blob"')
        assert len(out) == 80

    def test_empty(self):
        assert summarize_tool_args("x", None) == ""
        assert summarize_tool_args("x", {}) == ""
