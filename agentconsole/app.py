"""agentconsole TUI application built with Textual.

The app only observes the session: every change marks the view dirty and
a short timer re-renders it from the session state.
"""

from __future__ import annotations

import asyncio
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, ScrollableContainer, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Input, RichLog, Static
from rich.text import Text

from agentconsole.events import Mode, SessionState, now_ms
from agentconsole.session import AgentSession
from agentconsole.theme import (
    ACCENT, BG_BAR, BG_DARK, BG_PANEL, HELP_CONTENT, SEPARATOR_COLOR,
    render_logo, render_status, render_task, render_turn,
)

_REFRESH_SEC = 0.1


# ---------------------------------------------------------------------------
# Task sidebar
# ---------------------------------------------------------------------------

class TaskSidebar(Vertical):
    """Sidebar listing the agent's planned tasks."""

    DEFAULT_CSS = f"""
    TaskSidebar {{
        width: 32;
        background: {BG_PANEL};
        border-right: solid {SEPARATOR_COLOR};
    }}
    TaskSidebar.-hidden {{
        display: none;
    }}
    #sidebar-header {{
        height: 1;
        background: {BG_BAR};
        color: {ACCENT};
        text-style: bold;
        padding: 0 1;
    }}
    #task-list {{
        height: 1fr;
        overflow-y: auto;
    }}
    """

    def compose(self) -> ComposeResult:
        yield Static(" TASKS", id="sidebar-header")
        with ScrollableContainer():
            yield Static("", id="task-list")

    def show_tasks(self, state: SessionState) -> None:
        body = Text()
        if not state.tasks:
            body.append(" No tasks yet", style="dim")
        for i, task in enumerate(state.tasks):
            if i:
                body.append("\n")
            body.append_text(render_task(task))
        self.query_one("#task-list", Static).update(body)


# ---------------------------------------------------------------------------
# Help screen (modal overlay)
# ---------------------------------------------------------------------------

class HelpScreen(ModalScreen[None]):
    """Modal help overlay."""

    CSS = f"""
    HelpScreen {{
        align: center middle;
    }}
    #help-dialog {{
        width: 58;
        height: auto;
        max-height: 85%;
        background: {BG_BAR};
        border: heavy {SEPARATOR_COLOR};
        padding: 1 2;
    }}
    """

    BINDINGS = [
        Binding("escape", "dismiss", "Close"),
        Binding("f1", "dismiss", "Close"),
    ]

    def compose(self) -> ComposeResult:
        yield Static(HELP_CONTENT, id="help-dialog", markup=True)


# ---------------------------------------------------------------------------
# Status bar
# ---------------------------------------------------------------------------

class StatusBar(Static):
    """Bottom status bar showing session state and controls."""

    def show(self, state: SessionState, mode: Mode) -> None:
        self.update(render_status(state, mode))


# ---------------------------------------------------------------------------
# Main application
# ---------------------------------------------------------------------------

class AgentConsoleApp(App):
    """agentconsole - watch the agent build what you describe."""

    TITLE = "agentconsole"

    CSS = f"""
    Screen {{
        background: {BG_DARK};
    }}

    #main-container {{
        height: 1fr;
    }}

    #conversation {{
        background: {BG_DARK};
        scrollbar-color: #4a4a6a;
        scrollbar-background: #1a1a2e;
        border: none;
        padding: 0 0;
    }}

    #prompt {{
        dock: bottom;
        margin-bottom: 1;
        border: tall {SEPARATOR_COLOR};
    }}

    StatusBar {{
        dock: bottom;
        height: 1;
        background: {BG_BAR};
        color: #94a3b8;
        padding: 0 0;
    }}
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=False),
        Binding("escape", "cancel_turn", "Cancel", show=False),
        Binding("ctrl+t", "toggle_mode", "Mode", show=False),
        Binding("ctrl+s", "toggle_sidebar", "Tasks", show=False),
        Binding("ctrl+e", "toggle_expand", "Expand", show=False),
        Binding("f1", "show_help", "Help", show=False),
    ]

    mode = reactive(Mode.BUILD)

    def __init__(self, session: AgentSession, mode: Mode = Mode.BUILD, initial_message: str = "") -> None:
        super().__init__()
        self.session = session
        self._initial_mode = mode
        self._initial_message = initial_message
        self._tasks: list[asyncio.Task] = []
        self._dirty = True
        self._unsubscribe = session.subscribe(self._on_session_change)
        session.on_module_built(self._on_module_built)

    def compose(self) -> ComposeResult:
        with Horizontal(id="main-container"):
            yield TaskSidebar()
            yield RichLog(
                id="conversation",
                highlight=False,
                markup=False,
                auto_scroll=True,
                wrap=True,
                max_lines=10_000,
            )
        yield StatusBar()
        yield Input(placeholder="Make, test, iterate...", id="prompt")

    def on_mount(self) -> None:
        self.mode = self._initial_mode
        self.query_one(TaskSidebar).add_class("-hidden")
        self.set_interval(_REFRESH_SEC, self._refresh_view)
        self._refresh_view()
        self.query_one("#prompt", Input).focus()
        if self._initial_message:
            self._submit(self._initial_message)

    # --- Session observation ---

    def _on_session_change(self, state: SessionState) -> None:
        self._dirty = True

    def _on_module_built(self, module: dict[str, Any]) -> None:
        self.notify(f"Module built: {module.get('name', '?')}", title="agentconsole")

    def _refresh_view(self) -> None:
        state = self.session.get_state()
        # A running turn re-renders every tick for its elapsed-time line.
        if not (self._dirty or state.is_running):
            return
        self._dirty = False

        log = self.query_one("#conversation", RichLog)
        log.clear()
        for line in render_logo():
            log.write(line)
        now = now_ms()
        for turn in state.turns:
            for line in render_turn(turn, now=now):
                log.write(line)

        self.query_one(TaskSidebar).show_tasks(state)
        self.query_one(StatusBar).show(state, self.mode)

        prompt = self.query_one("#prompt", Input)
        prompt.disabled = state.is_running
        prompt.placeholder = "Agent is working..." if state.is_running else "Make, test, iterate..."
        if not state.is_running and not prompt.has_focus:
            prompt.focus()

    # --- Input ---

    def on_input_submitted(self, message: Input.Submitted) -> None:
        text = message.value
        if not text.strip() or self.session.is_running:
            return
        message.input.value = ""
        self._submit(text)

    def _submit(self, text: str) -> None:
        task = asyncio.ensure_future(self.session.submit_message(text, mode=self.mode))
        self._tasks.append(task)
        task.add_done_callback(self._tasks.remove)

    # --- Actions ---

    def watch_mode(self, mode: Mode) -> None:
        self._dirty = True

    def action_toggle_mode(self) -> None:
        self.mode = Mode.PLAN if self.mode == Mode.BUILD else Mode.BUILD

    def action_cancel_turn(self) -> None:
        if self.session.cancel():
            self.notify("Cancelling...", severity="warning")

    def action_toggle_sidebar(self) -> None:
        self.query_one(TaskSidebar).toggle_class("-hidden")

    def action_toggle_expand(self) -> None:
        self.session.toggle_expanded()

    def action_show_help(self) -> None:
        self.push_screen(HelpScreen())

    async def on_unmount(self) -> None:
        self._unsubscribe()
        self.session.cancel()
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.session.aclose()
