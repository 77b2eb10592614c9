"""Turn lifecycle: one user message, one streamed agent response.

    idle -> opening -> streaming -> finalizing -> idle

Finalizing runs on every exit path, so a dead connection can never leave
the session stuck in the running state.
"""

import asyncio
import uuid
from enum import Enum
from typing import Callable, Optional

import httpx
import structlog

from agentconsole.errors import TransportError
from agentconsole.events import (
    ConversationTurn, SessionState, StreamEvent, ToolStatus, TurnOutcome, now_ms,
)
from agentconsole.parsers import EventDecoder, FrameParser
from agentconsole.reducer import SessionReducer
from agentconsole.streams import Transport, TurnRequest

log = structlog.get_logger(__name__)

ChangeListener = Callable[[SessionState], None]


class TurnPhase(str, Enum):
    IDLE = "idle"
    OPENING = "opening"
    STREAMING = "streaming"
    FINALIZING = "finalizing"


class CancelToken:
    """Checked by the read loop between chunks."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class TurnController:
    """Drives exactly one turn end to end. Not reusable."""

    def __init__(
        self,
        state: SessionState,
        reducer: SessionReducer,
        transport: Transport,
        token: Optional[CancelToken] = None,
        on_change: Optional[ChangeListener] = None,
    ):
        self.state = state
        self.reducer = reducer
        self.transport = transport
        self.token = token or CancelToken()
        self.phase = TurnPhase.IDLE
        self.events_applied = 0
        self.turn: Optional[ConversationTurn] = None
        self._on_change = on_change

    async def run(self, request: TurnRequest) -> ConversationTurn:
        turn = self.open(request)
        await self.drive(turn, request)
        return turn

    async def drive(self, turn: ConversationTurn, request: TurnRequest) -> None:
        """Stream into an opened turn, then finalize it whatever happens."""
        try:
            await self.stream(turn, request)
        except asyncio.CancelledError:
            self._cancel(turn)
            raise
        except (TransportError, httpx.HTTPError, OSError) as e:
            self._fail(turn, e)
        except Exception as e:
            log.exception("turn.crashed", turn_id=turn.id)
            self._fail(turn, e)
        finally:
            self.finalize(turn)

    def open(self, request: TurnRequest) -> ConversationTurn:
        if self.turn is not None:
            raise RuntimeError(f"Turn controller already used for {self.turn.id}")
        self.phase = TurnPhase.OPENING
        turn = ConversationTurn(
            id=f"conv_{uuid.uuid4().hex[:12]}",
            user_message=request.message,
            attachments=list(request.attachments),
            mode=request.mode,
            status_text="Starting...",
            started_at=now_ms(),
        )
        self.turn = turn
        self.state.turns.append(turn)
        self.state.is_running = True
        log.info("turn.opened", turn_id=turn.id, session_id=self.state.session_id,
                 mode=request.mode.value, attachments=len(request.attachments))
        self._notify()
        return turn

    async def stream(self, turn: ConversationTurn, request: TurnRequest) -> None:
        self.phase = TurnPhase.STREAMING
        parser = FrameParser()
        decoder = EventDecoder()
        chunks = self.transport.open(request)
        try:
            async for chunk in chunks:
                if self.token.cancelled:
                    self._cancel(turn)
                    return
                for frame in parser.feed(chunk):
                    self._apply(turn, decoder.decode(frame))
            for frame in parser.flush():
                self._apply(turn, decoder.decode(frame))
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()
            if decoder.skipped:
                log.warning("turn.frames_skipped", turn_id=turn.id, count=decoder.skipped)

    def finalize(self, turn: ConversationTurn) -> None:
        if turn.ended_at is not None:
            return
        self.phase = TurnPhase.FINALIZING
        if turn.outcome is None and self.token.cancelled:
            self._cancel(turn)
        turn.ended_at = now_ms()
        if turn.outcome is None:
            turn.outcome = TurnOutcome.COMPLETED
        # Anything still running will never get its result.
        for record in turn.running_calls:
            record.status = ToolStatus.ERROR
        turn.status_text = ""
        self.state.is_running = False
        self.phase = TurnPhase.IDLE
        log.info("turn.finalized", turn_id=turn.id, outcome=turn.outcome.value,
                 events=self.events_applied, tool_calls=len(turn.tool_calls),
                 duration_ms=turn.ended_at - turn.started_at)
        self._notify()

    # --- Internals ---

    def _apply(self, turn: ConversationTurn, event: Optional[StreamEvent]) -> None:
        if event is None:
            return
        self.reducer.apply(self.state, turn, event)
        self.events_applied += 1
        self._notify()

    def _fail(self, turn: ConversationTurn, error: BaseException) -> None:
        reason = str(error) or error.__class__.__name__
        log.error("turn.failed", turn_id=turn.id, error=reason)
        turn.assistant_text = f"Error: {reason}"
        turn.outcome = TurnOutcome.ERROR

    def _cancel(self, turn: ConversationTurn) -> None:
        if turn.outcome == TurnOutcome.CANCELLED or turn.ended_at is not None:
            return
        log.info("turn.cancelled", turn_id=turn.id)
        turn.outcome = TurnOutcome.CANCELLED
        turn.assistant_text = f"{turn.assistant_text}\n\nCancelled." if turn.assistant_text else "Cancelled."

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)

