"""Event and session model for agentconsole."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


class EventType(str, Enum):
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TASK_UPDATE = "task_update"
    MESSAGE = "message"
    TEXT_DELTA = "text_delta"
    REVIEW = "review"
    COMPLETE = "complete"
    ERROR = "error"
    DONE = "done"

    # Meta
    UNKNOWN = "unknown"


_KNOWN_TYPES = {t.value: t for t in EventType if t is not EventType.UNKNOWN}


class Mode(str, Enum):
    BUILD = "build"
    PLAN = "plan"


class ToolStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """One decoded frame. ``type`` is kept verbatim, even when unknown."""
    type: str
    data: dict = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    @property
    def kind(self) -> EventType:
        return _KNOWN_TYPES.get(self.type, EventType.UNKNOWN)


@dataclass(frozen=True, slots=True)
class Attachment:
    """Descriptor of an uploaded file. Content travels out of band."""
    name: str
    type: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "type": self.type}


@dataclass(slots=True)
class ToolCallRecord:
    name: str
    detail: str = ""
    status: ToolStatus = ToolStatus.RUNNING
    timestamp: int = 0
    call_id: Optional[str] = None
    result: str = ""


@dataclass(slots=True)
class AgentTask:
    id: str
    content: str = ""
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "AgentTask":
        try:
            status = TaskStatus(raw.get("status", "pending"))
        except ValueError:
            status = TaskStatus.PENDING
        result = raw.get("result")
        return cls(
            id=str(raw["id"]),
            content=str(raw.get("content", "")),
            status=status,
            result=None if result is None else str(result),
        )


@dataclass(slots=True)
class ConversationTurn:
    """One user request and the agent's full response to it."""
    id: str
    user_message: str
    attachments: list[Attachment] = field(default_factory=list)
    mode: Mode = Mode.BUILD
    assistant_text: str = ""
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    status_text: str = ""
    started_at: int = 0
    ended_at: Optional[int] = None
    is_expanded: bool = True
    outcome: Optional[TurnOutcome] = None

    @property
    def finished(self) -> bool:
        return self.ended_at is not None

    @property
    def running_calls(self) -> list[ToolCallRecord]:
        return [c for c in self.tool_calls if c.status == ToolStatus.RUNNING]


@dataclass(slots=True)
class SessionState:
    """Aggregate of everything the console shows for one session."""
    session_id: str
    turns: list[ConversationTurn] = field(default_factory=list)
    tasks: list[AgentTask] = field(default_factory=list)
    modules: dict[str, dict[str, Any]] = field(default_factory=dict)
    is_running: bool = False

    @property
    def current_turn(self) -> Optional[ConversationTurn]:
        return self.turns[-1] if self.turns else None

    def find_task(self, task_id: str) -> Optional[AgentTask]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None
