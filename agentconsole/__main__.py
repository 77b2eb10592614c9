"""CLI entry point for agentconsole.

Usage:
    agentconsole                                  # Demo mode
    agentconsole --demo                           # Explicit demo mode

    # Talk to a running agent backend:
    agentconsole --url http://localhost:8080 --project billing

    # Replay a captured agent stream:
    agentconsole --replay /tmp/agent-stream.sse

    # No TUI: send one message, print the finished turn:
    agentconsole --url http://localhost:8080 --once "Add a meters table"
"""

import argparse
import asyncio
import os
import sys
from typing import Optional

from agentconsole import __version__
from agentconsole.events import Mode
from agentconsole.logs import LOG_FORMATS, LOG_LEVELS, configure_logging
from agentconsole.session import AgentSession
from agentconsole.streams import DemoTransport, HttpTransport, ReplayTransport


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentconsole",
        description="Describe an application and watch the agent build it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
environment:
  AGENTCONSOLE_URL        default for --url
  AGENTCONSOLE_PROJECT    default for --project
  AGENTCONSOLE_LOG_LEVEL  default for --log-level
""",
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--demo", action="store_true",
        help="Run against a scripted demo agent (default when no URL is set)",
    )
    source.add_argument(
        "--url", default=os.environ.get("AGENTCONSOLE_URL"),
        help="Base URL of the agent backend",
    )
    source.add_argument(
        "--replay", metavar="PATH",
        help="Replay a captured agent stream file for every message",
    )
    parser.add_argument(
        "--project", default=os.environ.get("AGENTCONSOLE_PROJECT", "default"),
        help="Project id the agent works on (default: %(default)s)",
    )
    parser.add_argument(
        "--mode", choices=[m.value for m in Mode], default=Mode.BUILD.value,
        help="Initial agent mode (default: %(default)s)",
    )
    parser.add_argument(
        "--session", metavar="ID",
        help="Reuse a session id instead of generating one",
    )
    parser.add_argument(
        "--message", metavar="TEXT", default="",
        help="Send this message as soon as the console starts",
    )
    parser.add_argument(
        "--once", metavar="TEXT",
        help="Send one message without the TUI and print the finished turn",
    )
    parser.add_argument(
        "--log-level", choices=LOG_LEVELS,
        default=os.environ.get("AGENTCONSOLE_LOG_LEVEL", "warning"),
    )
    parser.add_argument("--log-format", choices=LOG_FORMATS, default="console")
    parser.add_argument(
        "--log-file", default="agentconsole.log",
        help="Log file used while the TUI owns the terminal (default: %(default)s)",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    return parser


def create_transport(args: argparse.Namespace):
    if args.replay:
        return ReplayTransport(args.replay, delay=0.02)
    if args.url and not args.demo:
        return HttpTransport(args.url, args.project)
    return DemoTransport()


async def run_once(session: AgentSession, text: str, mode: Mode) -> int:
    from rich.console import Console

    from agentconsole.theme import render_turn

    console = Console()
    turn = await session.submit_message(text, mode=mode)
    if turn is None:
        console.print("Nothing to send.", style="bold red")
        return 2
    for line in render_turn(turn):
        console.print(line)
    return 1 if turn.outcome and turn.outcome.value == "error" else 0


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    mode = Mode(args.mode)
    transport = create_transport(args)

    if args.once is not None:
        configure_logging(args.log_level, args.log_format)
        session = AgentSession(transport, session_id=args.session)

        async def _once() -> int:
            try:
                return await run_once(session, args.once, mode)
            finally:
                await session.aclose()

        sys.exit(asyncio.run(_once()))

    log_file = open(args.log_file, "a", encoding="utf-8")
    try:
        configure_logging(args.log_level, args.log_format, stream=log_file)
        from agentconsole.app import AgentConsoleApp
        session = AgentSession(transport, session_id=args.session)
        app = AgentConsoleApp(session, mode=mode, initial_message=args.message)
        app.run()
    except ImportError as e:
        print(f"Missing dependency: {e}", file=sys.stderr)
        print("Install with: pip install -e .", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        log_file.close()


if __name__ == "__main__":
    main()
