"""agentconsole - watch an agent build what you describe."""

__version__ = "0.1.0"
