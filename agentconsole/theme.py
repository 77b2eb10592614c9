"""agentconsole theme - colors, icons, logo, and turn rendering."""

from datetime import datetime
from typing import Optional

from rich.text import Text

from agentconsole.events import (
    AgentTask, ConversationTurn, Mode, SessionState, TaskStatus, ToolCallRecord,
    ToolStatus, TurnOutcome,
)

# ---------------------------------------------------------------------------
# ASCII art
# ---------------------------------------------------------------------------

LOGO = """\
   ▄▀█ █▀▀ █▀▀ █▄░█ ▀█▀   █▀▀ █▀█ █▄░█ █▀ █▀█ █░░ █▀▀
   █▀█ █▄█ ██▄ █░▀█ ░█░   █▄▄ █▄█ █░▀█ ▄█ █▄█ █▄▄ ██▄"""

TAGLINE = "describe it, watch it get built"

# ---------------------------------------------------------------------------
# Colors
# ---------------------------------------------------------------------------

USER_PRIMARY = "#60a5fa"        # Blue
AGENT_PRIMARY = "#a78bfa"       # Violet
AGENT_DIM = "#7c6bc4"
SYSTEM_PRIMARY = "#64748b"      # Slate
SYSTEM_DIM = "#475569"
ACCENT = "#818cf8"              # Indigo (for UI chrome)
ERROR_COLOR = "#ef4444"
OK_COLOR = "#34d399"
RUNNING_COLOR = "#fbbf24"
SEPARATOR_COLOR = "#2a2a3c"

BG_DARK = "#0f0f17"
BG_PANEL = "#13131f"
BG_BAR = "#1a1a2e"

MODE_COLORS: dict[Mode, str] = {
    Mode.BUILD: "#059669",
    Mode.PLAN: "#2563eb",
}

# ---------------------------------------------------------------------------
# Icons
# ---------------------------------------------------------------------------

TOOL_ICONS: dict[ToolStatus, tuple[str, str]] = {
    ToolStatus.RUNNING: ("~~", RUNNING_COLOR),
    ToolStatus.COMPLETED: ("OK", OK_COLOR),
    ToolStatus.ERROR: ("!!", ERROR_COLOR),
}

TASK_ICONS: dict[TaskStatus, tuple[str, str]] = {
    TaskStatus.PENDING: ("○", SYSTEM_PRIMARY),
    TaskStatus.IN_PROGRESS: ("◐", RUNNING_COLOR),
    TaskStatus.COMPLETED: ("●", OK_COLOR),
    TaskStatus.FAILED: ("✕", ERROR_COLOR),
}

HELP_CONTENT = f"""\
[bold {ACCENT}]agentconsole[/]

[bold]enter[/]     send message
[bold]ctrl+t[/]    toggle build / plan mode
[bold]escape[/]    cancel the running turn
[bold]ctrl+s[/]    toggle task sidebar
[bold]ctrl+e[/]    collapse / expand the last turn
[bold]f1[/]        this help
[bold]ctrl+q[/]    quit

[dim]Only one turn runs at a time; input is disabled while the agent works.[/]
"""

# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def format_duration(ms: int) -> str:
    seconds = ms // 1000
    if seconds < 60:
        return f"{seconds} seconds"
    minutes = seconds // 60
    return f"{minutes} minute{'s' if minutes > 1 else ''}"


def _clock(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%H:%M:%S")


def render_tool_call(call: ToolCallRecord) -> Text:
    icon, color = TOOL_ICONS.get(call.status, ("  ", SYSTEM_PRIMARY))
    line = Text()
    line.append("    ")
    line.append(icon, style=f"bold {color}")
    line.append(f" {call.name}", style=f"bold {color}")
    if call.detail:
        line.append(f"  {call.detail}", style=f"dim {SYSTEM_PRIMARY}")
    if call.status == ToolStatus.ERROR and call.result:
        line.append(f"  {call.result}", style=ERROR_COLOR)
    return line


def render_turn(turn: ConversationTurn, now: Optional[int] = None) -> list[Text]:
    """Render one conversation turn as styled Rich Text lines."""
    lines: list[Text] = []

    header = Text()
    header.append(f" {_clock(turn.started_at)} ", style=f"dim {SYSTEM_DIM}")
    header.append(" | ", style="dim #3a3a5c")
    header.append("YOU ", style=f"bold {USER_PRIMARY}")
    header.append(turn.user_message)
    if turn.mode == Mode.PLAN:
        header.append("  [plan]", style=f"bold {MODE_COLORS[Mode.PLAN]}")
    lines.append(header)

    if turn.attachments:
        names = ", ".join(a.name for a in turn.attachments)
        lines.append(Text(f"    + {names}", style=f"dim {SYSTEM_PRIMARY}"))

    # Summary line: how long, how many tools
    summary = Text("    ")
    if turn.ended_at is None:
        elapsed = (now or turn.started_at) - turn.started_at
        summary.append(f"Working for {format_duration(max(elapsed, 0))}", style=f"bold {RUNNING_COLOR}")
        if turn.status_text:
            summary.append(f"  {turn.status_text}", style=f"italic {AGENT_DIM}")
    else:
        color = {
            TurnOutcome.ERROR: ERROR_COLOR,
            TurnOutcome.CANCELLED: SYSTEM_PRIMARY,
        }.get(turn.outcome, OK_COLOR)
        summary.append(
            f"Worked for {format_duration(turn.ended_at - turn.started_at)}", style=color,
        )
    if turn.tool_calls:
        summary.append(f"  ({len(turn.tool_calls)} tool calls)", style=f"dim {SYSTEM_PRIMARY}")
    lines.append(summary)

    if turn.is_expanded:
        lines.extend(render_tool_call(call) for call in turn.tool_calls)

    if turn.assistant_text:
        style = ERROR_COLOR if turn.assistant_text.startswith("Error:") else AGENT_PRIMARY
        for text_line in turn.assistant_text.strip("\n").split("\n"):
            lines.append(Text(f"  {text_line}", style=style))

    lines.append(render_separator())
    return lines


def render_task(task: AgentTask) -> Text:
    icon, color = TASK_ICONS.get(task.status, ("?", SYSTEM_PRIMARY))
    line = Text()
    line.append(f" {icon} ", style=f"bold {color}")
    style = f"dim {SYSTEM_PRIMARY}" if task.status == TaskStatus.COMPLETED else ""
    line.append(task.content or task.id, style=style)
    return line


def render_status(state: SessionState, mode: Mode) -> Text:
    """Bottom status bar: running badge, mode, counters, key hints."""
    bar = Text()
    if state.is_running:
        bar.append(" WORKING ", style="bold white on #b45309")
    else:
        bar.append("  READY  ", style="bold white on #059669")
    bar.append(f" {mode.value.upper()} ", style=f"bold white on {MODE_COLORS[mode]}")

    done = sum(1 for t in state.tasks if t.status == TaskStatus.COMPLETED)
    bar.append(f" {state.session_id}", style=f"dim {SYSTEM_DIM}")
    bar.append(f"  turns:{len(state.turns)}", style=f"dim {SYSTEM_PRIMARY}")
    bar.append(f"  tasks:{done}/{len(state.tasks)}", style=f"dim {SYSTEM_PRIMARY}")
    if state.modules:
        bar.append(f"  modules:{len(state.modules)}", style=f"bold {OK_COLOR}")

    bar.append(" | ", style=f"dim {SEPARATOR_COLOR}")
    for key, label in (("[^t]", "mode "), ("[esc]", "cancel "), ("[^s]", "tasks "), ("[f1]", "help")):
        bar.append(key, style=f"bold {ACCENT}")
        bar.append(label, style=f"dim {SYSTEM_DIM}")
    return bar


def render_separator() -> Text:
    return Text(f" {'─' * 58} ", style=f"dim {SEPARATOR_COLOR}")


def render_logo() -> list[Text]:
    """Render the ASCII logo and tagline as styled Text lines."""
    lines: list[Text] = []

    # Empty line above
    lines.append(Text(""))

    for logo_line in LOGO.split("\n"):
        t = Text(logo_line, style=f"bold {ACCENT}")
        t.pad(1)
        lines.append(t)

    tagline = Text()
    tagline.append(f"{'':>16}", style="")
    tagline.append(TAGLINE, style=f"italic {AGENT_DIM}")
    lines.append(tagline)

    lines.append(Text(""))
    lines.append(render_separator())
    lines.append(Text(""))

    return lines
