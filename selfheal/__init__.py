"""selfheal: error/fix memory for coding agents.

Captures failing tool calls, notices when a failing command starts passing,
and replays what was learned at the start of the next session.
"""

__version__ = "0.1.0"
