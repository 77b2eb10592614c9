"""Exceptions raised by agentconsole."""

from typing import Optional


class AgentConsoleError(Exception):
    """Base class for agentconsole errors."""


class TransportError(AgentConsoleError):
    """The agent stream could not be opened or broke while reading."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
