"""
cmdguard - Policy gate and audit trail for generated shell commands.

cmdguard sits between whatever produces a shell command (an LLM backend,
a plugin, a human) and the shell that runs it. It provides:
- Safety classification of commands into tiers (safe, warning, dangerous, blocked)
- Enterprise allow/deny lists and a compliance mode
- An append-only JSON-lines audit trail of every decision and outcome
- Streaming queries and statistics over that trail

Example usage:
    $ cmdguard check "rm -rf /tmp/build"
    $ cmdguard history --tier blocked --since 2024-01-01
    $ cmdguard stats
"""

__version__ = "0.1.0"
__author__ = "cmdguard Contributors"

__all__ = [
    "__version__",
    "__author__",
]
