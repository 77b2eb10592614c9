"""Session reducer: folds stream events into the session model.

Each handler mutates the current turn (or the session-wide task list) in
place. Nothing here reads the clock; timestamps come from the events, so
replaying the same events into equal states yields equal states.
"""

from typing import Any, Callable, Iterable, Optional

import structlog

from agentconsole.events import (
    AgentTask, ConversationTurn, EventType, SessionState, StreamEvent,
    ToolCallRecord, ToolStatus, TurnOutcome,
)
from agentconsole.parsers import summarize_tool_args

log = structlog.get_logger(__name__)

ModuleCallback = Callable[[dict[str, Any]], None]
Handler = Callable[[SessionState, ConversationTurn, StreamEvent], None]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class SessionReducer:
    """The session state machine.

    ``apply`` must be called with events in arrival order: tool result
    matching and text accumulation both depend on it.
    """

    def __init__(self, on_module_built: Optional[ModuleCallback] = None):
        self._on_module_built = on_module_built
        self._handlers: dict[EventType, Handler] = {
            EventType.THINKING: self._thinking,
            EventType.TOOL_CALL: self._tool_call,
            EventType.TOOL_RESULT: self._tool_result,
            EventType.TASK_UPDATE: self._task_update,
            EventType.MESSAGE: self._message,
            EventType.TEXT_DELTA: self._text_delta,
            EventType.REVIEW: self._review,
            EventType.COMPLETE: self._complete,
            EventType.ERROR: self._error,
            EventType.DONE: self._done,
        }

    def apply(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        handler = self._handlers.get(event.kind)
        if handler is None:
            log.debug("reducer.unknown_event", type=event.type, turn_id=turn.id)
            return
        handler(state, turn, event)

    def replay(
        self, state: SessionState, turn: ConversationTurn, events: Iterable[StreamEvent],
    ) -> SessionState:
        for event in events:
            self.apply(state, turn, event)
        return state

    # --- Status and text channels ---

    def _thinking(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        data = event.data
        turn.status_text = _text(data.get("message")) or "Thinking..."
        partial = data.get("partial")
        # Preview channel: replaces, never appends.
        if data.get("streaming") and isinstance(partial, str):
            turn.assistant_text = partial

    def _message(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        turn.assistant_text += _text(event.data.get("message"))

    def _text_delta(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        data = event.data
        turn.assistant_text += _text(data.get("text", data.get("delta")))

    def _review(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        summary = _text(event.data.get("summary"))
        turn.status_text = f"Reviewing: {summary}" if summary else "Reviewing changes..."

    def _done(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        turn.status_text = ""

    # --- Tool calls ---

    def _tool_call(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        data = event.data
        name = _text(data.get("tool")) or "unknown_tool"
        detail = summarize_tool_args(name, data.get("args")) or _text(data.get("detail"))
        call_id = data.get("id", data.get("tool_call_id"))
        turn.tool_calls.append(ToolCallRecord(
            name=name,
            detail=detail,
            status=ToolStatus.RUNNING,
            timestamp=event.timestamp,
            call_id=None if call_id is None else str(call_id),
        ))
        turn.status_text = name

    def _tool_result(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        data = event.data
        record = self._match_running_call(turn, data.get("id", data.get("tool_call_id")))
        if record is None:
            log.debug("reducer.orphan_tool_result", tool=data.get("tool"), turn_id=turn.id)
            return

        result = data.get("result")
        error = data.get("error")
        failed = bool(error) or (isinstance(result, dict) and result.get("success") is False)
        record.status = ToolStatus.ERROR if failed else ToolStatus.COMPLETED
        if error:
            record.result = _text(error)[:200]
        elif isinstance(result, dict):
            record.result = _text(result.get("message", result.get("error", "")))[:200]
        else:
            record.result = _text(result)[:200]

    @staticmethod
    def _match_running_call(turn: ConversationTurn, call_id: Any) -> Optional[ToolCallRecord]:
        # By id when the backend sends one, else the most recent running call.
        if call_id is not None:
            for record in turn.tool_calls:
                if record.call_id == str(call_id) and record.status == ToolStatus.RUNNING:
                    return record
        for record in reversed(turn.tool_calls):
            if record.status == ToolStatus.RUNNING:
                return record
        return None

    # --- Tasks ---

    def _task_update(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        raw = event.data.get("task")
        action = event.data.get("action")
        if not isinstance(raw, dict) or "id" not in raw or action not in ("added", "updated"):
            log.warning("reducer.bad_task_update", action=action, turn_id=turn.id)
            return

        task = AgentTask.from_dict(raw)
        if action == "added":
            if state.find_task(task.id) is None:
                state.tasks.append(task)
        else:
            self._upsert_task(state, task)

    @staticmethod
    def _upsert_task(state: SessionState, task: AgentTask) -> None:
        for i, existing in enumerate(state.tasks):
            if existing.id == task.id:
                state.tasks[i] = task
                return
        state.tasks.append(task)

    # --- Terminal events ---

    def _complete(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        data = event.data
        message = data.get("message")
        if message:
            turn.assistant_text = _text(message)

        tasks = data.get("tasks") or []
        modules = data.get("modules") or []
        if not isinstance(tasks, list) or not isinstance(modules, list):
            log.warning("reducer.bad_complete", turn_id=turn.id,
                        tasks=type(tasks).__name__, modules=type(modules).__name__)
        if not isinstance(tasks, list):
            tasks = []
        if not isinstance(modules, list):
            modules = []

        for raw in tasks:
            if isinstance(raw, dict) and "id" in raw:
                self._upsert_task(state, AgentTask.from_dict(raw))

        for raw in modules:
            if not isinstance(raw, dict) or raw.get("status") != "completed":
                continue
            module = dict(raw)
            name = _text(module.get("name"))
            state.modules[name] = module
            log.info("session.module_built", module=name, turn_id=turn.id)
            if self._on_module_built is not None:
                # Callbacks get their own copy of the module record.
                self._on_module_built(dict(module))

        turn.status_text = ""

    def _error(self, state: SessionState, turn: ConversationTurn, event: StreamEvent) -> None:
        data = event.data
        reason = _text(data.get("error") or data.get("message")) or "Unknown error"
        turn.assistant_text = f"Error: {reason}"
        turn.status_text = ""
        turn.outcome = TurnOutcome.ERROR
        log.info("turn.agent_error", turn_id=turn.id, error=reason)
