"""Transports that deliver the raw agent activity stream.

Each transport opens one turn's stream and returns an async iterator of
text or byte chunks. Chunk boundaries are arbitrary; framing is the
parser's job.
"""

import asyncio
import json
import pathlib
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Protocol, Union

import httpx
import structlog

from agentconsole.errors import TransportError
from agentconsole.events import Attachment, Mode, now_ms

log = structlog.get_logger(__name__)

Chunk = Union[str, bytes]


@dataclass(frozen=True)
class TurnRequest:
    message: str
    session_id: str
    mode: Mode = Mode.BUILD
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)

    def to_payload(self) -> dict:
        return {
            "message": self.message,
            "sessionId": self.session_id,
            "mode": self.mode.value,
            "attachments": [a.to_dict() for a in self.attachments],
        }


class Transport(Protocol):
    def open(self, request: TurnRequest) -> AsyncIterator[Chunk]:
        ...


# ---------------------------------------------------------------------------
# HTTP transport
# ---------------------------------------------------------------------------

class HttpTransport:
    """POST the turn request to the backend and stream the response body."""

    def __init__(
        self,
        base_url: str,
        project_id: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.project_id = project_id
        self._owns_client = client is None
        # No read timeout by default: the agent may think for minutes.
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}/api/projects/{self.project_id}/agent-stream"

    async def open(self, request: TurnRequest) -> AsyncIterator[Chunk]:
        log.debug("transport.opening", url=self.url, session_id=request.session_id)
        try:
            async with self._client.stream("POST", self.url, json=request.to_payload()) as response:
                if response.is_error:
                    await response.aread()
                    raise TransportError(
                        f"Agent stream returned HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to communicate with agent: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ---------------------------------------------------------------------------
# Replay transport
# ---------------------------------------------------------------------------

class ReplayTransport:
    """Replay a captured stream file, ignoring the request."""

    def __init__(self, path: Union[str, pathlib.Path], chunk_size: int = 256, delay: float = 0.0):
        self.path = pathlib.Path(path)
        self.chunk_size = chunk_size
        self.delay = delay

    async def open(self, request: TurnRequest) -> AsyncIterator[Chunk]:
        try:
            raw = await asyncio.to_thread(self.path.read_bytes)
        except FileNotFoundError as e:
            raise TransportError(f"Replay file not found: {self.path}") from e
        except OSError as e:
            raise TransportError(f"Replay file error: {e}") from e

        for start in range(0, len(raw), self.chunk_size):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield raw[start:start + self.chunk_size]


# ---------------------------------------------------------------------------
# Demo transport
# ---------------------------------------------------------------------------

# (delay_seconds, event_type, data)
DEMO_SCRIPT: list[tuple[float, str, dict]] = [
    (0.6, "thinking", {"message": "Reading the request..."}),
    (0.5, "tool_call", {"id": "call_1", "tool": "create_tasks", "args": {"tasks": [
        "Design meter schema", "Generate CRUD API", "Write docs"]}}),
    (0.2, "task_update", {"action": "added", "task": {
        "id": "task_1", "content": "Design meter schema", "status": "pending"}}),
    (0.1, "task_update", {"action": "added", "task": {
        "id": "task_2", "content": "Generate CRUD API", "status": "pending"}}),
    (0.1, "task_update", {"action": "added", "task": {
        "id": "task_3", "content": "Write docs", "status": "pending"}}),
    (0.3, "tool_result", {"id": "call_1", "tool": "create_tasks", "result": {"success": True}}),
    (0.4, "task_update", {"action": "updated", "task": {
        "id": "task_1", "content": "Design meter schema", "status": "in_progress"}}),
    (0.7, "tool_call", {"id": "call_2", "tool": "write_file", "args": {
        "file_path": "db/schema/meters.sql"}}),
    (0.8, "tool_result", {"id": "call_2", "tool": "write_file", "result": {
        "success": True, "message": "Wrote 42 lines"}}),
    (0.3, "task_update", {"action": "updated", "task": {
        "id": "task_1", "content": "Design meter schema", "status": "completed",
        "result": "meters, readings"}}),
    (0.5, "thinking", {"message": "Drafting the API", "streaming": True,
                       "partial": "Generating the meter API"}),
    (0.7, "tool_call", {"id": "call_3", "tool": "write_file", "args": {
        "file_path": "api/routes/meters.ts"}}),
    (0.9, "tool_result", {"id": "call_3", "tool": "write_file", "result": {"success": True}}),
    (0.3, "task_update", {"action": "updated", "task": {
        "id": "task_2", "content": "Generate CRUD API", "status": "completed"}}),
    (0.4, "review", {"summary": "schema and API", "files": [
        "db/schema/meters.sql", "api/routes/meters.ts"]}),
    (0.8, "tool_call", {"id": "call_4", "tool": "write_file", "args": {
        "file_path": "docs/meters.md"}}),
    (0.5, "tool_result", {"id": "call_4", "tool": "write_file", "result": {"success": True}}),
    (0.3, "task_update", {"action": "updated", "task": {
        "id": "task_3", "content": "Write docs", "status": "completed"}}),
    (0.4, "text_delta", {"text": "\n\nBuilt the Meter Management module: "}),
    (0.3, "text_delta", {"text": "schema, CRUD API and docs."}),
    (0.5, "complete", {
        "message": "Built the Meter Management module: schema, CRUD API and docs.",
        "modules": [{"name": "Meter Management", "status": "completed"}],
    }),
    (0.1, "done", {}),
]


def encode_frame(event_type: str, data: dict, timestamp: int = 0) -> str:
    """Encode one event the way the backend writes it to the wire."""
    record = {"type": event_type, "data": data, "timestamp": timestamp}
    return f"data: {json.dumps(record)}\n\n"


class DemoTransport:
    """Scripted build session with realistic timing.

    Frames are cut in two so the demo exercises partial-frame buffering.
    """

    def __init__(self, delay_scale: float = 1.0):
        self.delay_scale = delay_scale

    async def open(self, request: TurnRequest) -> AsyncIterator[Chunk]:
        for delay, event_type, data in DEMO_SCRIPT:
            if self.delay_scale:
                await asyncio.sleep(delay * self.delay_scale)
            frame = encode_frame(event_type, data, now_ms())
            middle = len(frame) // 2
            yield frame[:middle]
            yield frame[middle:]
