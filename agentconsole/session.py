"""AgentSession: the one entry point the console and its collaborators use."""

import asyncio
import copy
from typing import Any, Callable, Iterable, Optional, Union

import structlog

from agentconsole.controller import CancelToken, TurnController
from agentconsole.events import Attachment, ConversationTurn, Mode, SessionState, now_ms
from agentconsole.reducer import SessionReducer
from agentconsole.streams import Transport, TurnRequest

log = structlog.get_logger(__name__)

ModuleCallback = Callable[[dict[str, Any]], None]
StateListener = Callable[[SessionState], None]
AttachmentLike = Union[Attachment, dict]


def new_session_id() -> str:
    return f"session_{now_ms()}"


def _coerce_attachment(raw: AttachmentLike) -> Attachment:
    if isinstance(raw, Attachment):
        return raw
    return Attachment(name=str(raw.get("name", "")), type=str(raw.get("type", "")))


class AgentSession:
    """Owns the session state and runs at most one turn at a time.

    The session id is generated once and sent with every turn so the
    backend can correlate them.
    """

    def __init__(self, transport: Transport, session_id: Optional[str] = None):
        self.transport = transport
        self._state = SessionState(session_id=session_id or new_session_id())
        self._reducer = SessionReducer(on_module_built=self._module_built)
        self._module_callbacks: list[ModuleCallback] = []
        self._listeners: list[StateListener] = []
        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def session_id(self) -> str:
        return self._state.session_id

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    def get_state(self) -> SessionState:
        """Snapshot of the session. Changes to it do not reach the session."""
        return copy.deepcopy(self._state)

    def on_module_built(self, callback: ModuleCallback) -> None:
        self._module_callbacks.append(callback)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with the live state after every change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def submit_message(
        self,
        text: str,
        attachments: Iterable[AttachmentLike] = (),
        mode: Union[Mode, str] = Mode.BUILD,
    ) -> Optional[ConversationTurn]:
        """Run one turn and return a snapshot of it.

        Returns None without doing anything when a turn is already running,
        the text is blank, or the mode is unknown. Stream failures end up in
        the returned turn, never as exceptions.
        """
        if self._state.is_running:
            log.info("session.submit_rejected", reason="turn running", session_id=self.session_id)
            return None
        if not text or not text.strip():
            return None
        try:
            mode = Mode(mode)
        except ValueError:
            log.warning("session.submit_rejected", reason="unknown mode", mode=mode)
            return None

        request = TurnRequest(
            message=text.strip(),
            session_id=self.session_id,
            mode=mode,
            attachments=tuple(_coerce_attachment(a) for a in attachments),
        )
        token = CancelToken()
        controller = TurnController(
            self._state, self._reducer, self.transport, token, on_change=self._changed,
        )
        # Opening is synchronous so a second submit sees the running flag.
        turn = controller.open(request)
        self._token = token
        self._task = asyncio.ensure_future(controller.drive(turn, request))
        try:
            await self._task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
        finally:
            # A task cancelled before it ever ran skipped its own finalize.
            if turn.ended_at is None:
                controller.finalize(turn)
            self._token = None
            self._task = None
        return copy.deepcopy(turn)

    def cancel(self) -> bool:
        """Stop the running turn. Returns False when nothing was running."""
        if self._token is None or not self._state.is_running:
            return False
        self._token.cancel()
        if self._task is not None:
            self._task.cancel()
        return True

    async def aclose(self) -> None:
        """Close the transport, if it holds anything open."""
        aclose = getattr(self.transport, "aclose", None)
        if aclose is not None:
            await aclose()

    def toggle_expanded(self, turn_id: Optional[str] = None) -> bool:
        """Flip a turn's display flag (the last turn by default)."""
        turns = self._state.turns
        turn = next((t for t in turns if t.id == turn_id), None) if turn_id else (turns[-1] if turns else None)
        if turn is None:
            return False
        turn.is_expanded = not turn.is_expanded
        self._changed(self._state)
        return turn.is_expanded

    # --- Internals ---

    def _module_built(self, module: dict[str, Any]) -> None:
        for callback in list(self._module_callbacks):
            try:
                callback(dict(module))
            except Exception:
                log.exception("session.module_callback_failed", module=module.get("name"))

    def _changed(self, state: SessionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.exception("session.listener_failed")
