"""Frame parsing and event decoding for the agent activity stream.

Wire format, one record per line, records separated by blank lines:

    data: {"type": "tool_call", "data": {"tool": "write_file"}, "timestamp": 1700000000000}

Chunks arrive with arbitrary boundaries, so the frame parser carries the
unterminated tail of each chunk over to the next read.
"""

import codecs
import json
from typing import AsyncIterable, AsyncIterator, Optional, Union

import structlog

from agentconsole.events import StreamEvent, now_ms

log = structlog.get_logger(__name__)

DATA_PREFIX = "data:"

Chunk = Union[str, bytes]


# ---------------------------------------------------------------------------
# Frame parser
# ---------------------------------------------------------------------------

class FrameParser:
    """Split an arbitrarily chunked stream into ``data:`` frame payloads.

    Lines without the data marker (blank separators, ``event:`` lines,
    ``:`` comments) are dropped. One parser serves exactly one stream.
    """

    def __init__(self, prefix: str = DATA_PREFIX):
        self._prefix = prefix
        # Pieces of the unterminated last line, joined once it ends.
        self._pending: list[str] = []
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: Chunk) -> list[str]:
        """Buffer a chunk and return the frames it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        lines = chunk.split("\n")
        if len(lines) == 1:
            if chunk:
                self._pending.append(chunk)
            return []

        self._pending.append(lines[0])
        lines[0] = "".join(self._pending)
        tail = lines.pop()
        self._pending = [tail] if tail else []

        frames = []
        for line in lines:
            frame = self._frame(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[str]:
        """Emit whatever is left once the stream has ended."""
        tail = "".join(self._pending) + self._decoder.decode(b"", final=True)
        self._pending = []
        frame = self._frame(tail)
        return [frame] if frame is not None else []

    def _frame(self, line: str) -> Optional[str]:
        line = line.rstrip("\r")
        if not line.startswith(self._prefix):
            return None
        payload = line[len(self._prefix):]
        if payload.startswith(" "):
            payload = payload[1:]
        return payload

    async def iter_frames(self, chunks: AsyncIterable[Chunk]) -> AsyncIterator[str]:
        """Lazily yield frames from ``chunks``; read errors propagate."""
        async for chunk in chunks:
            for frame in self.feed(chunk):
                yield frame
        for frame in self.flush():
            yield frame


# ---------------------------------------------------------------------------
# Event decoder
# ---------------------------------------------------------------------------

class EventDecoder:
    """Turn one frame payload into a StreamEvent, or skip it.

    A corrupt frame is logged and skipped; it never ends the stream.
    Unknown event types pass through untouched.
    """

    def __init__(self):
        self.skipped = 0

    def decode(self, payload: str) -> Optional[StreamEvent]:
        try:
            raw = json.loads(payload)
        except json.JSONDecodeError as e:
            return self._skip(payload, f"bad json: {e.msg}")

        if not isinstance(raw, dict):
            return self._skip(payload, "not an object")

        etype = raw.get("type")
        if not isinstance(etype, str) or not etype:
            return self._skip(payload, "missing type")

        data = raw.get("data")
        if not isinstance(data, dict):
            data = {}

        timestamp = raw.get("timestamp")
        if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
            timestamp = now_ms()

        return StreamEvent(type=etype, data=data, timestamp=int(timestamp))

    def _skip(self, payload: str, reason: str) -> None:
        self.skipped += 1
        log.warning("frame.decode_failed", reason=reason, frame=payload[:120])
        return None


async def decode_stream(
    chunks: AsyncIterable[Chunk],
    parser: Optional[FrameParser] = None,
    decoder: Optional[EventDecoder] = None,
) -> AsyncIterator[StreamEvent]:
    """Yield decoded events from a raw chunk stream, in arrival order."""
    parser = parser or FrameParser()
    decoder = decoder or EventDecoder()
    async for frame in parser.iter_frames(chunks):
        event = decoder.decode(frame)
        if event is not None:
            yield event


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_DETAIL_KEYS = ("file_path", "path", "filename", "module_name", "command", "query", "pattern")


def summarize_tool_args(name: str, args: object) -> str:
    """Create a short summary of tool arguments for display."""
    if not args:
        return ""
    if not isinstance(args, dict):
        return str(args)[:80]
    for key in _DETAIL_KEYS:
        value = args.get(key)
        if value:
            return str(value)[:80]
    if name == "create_tasks" and isinstance(args.get("tasks"), list):
        return f"{len(args['tasks'])} tasks"
    if name == "update_task" and args.get("task_id"):
        return f"{args['task_id']} -> {args.get('status', '?')}"
    return json.dumps(args, default=str)[:80]
