"""selfheal heal: online error/fix learning for coding agents.

Watches tool calls as they happen, remembers failures, infers fixes when a
failing command starts passing, and turns the accumulated history into a
short digest for the next session.

Architecture:
    hooks (adapter)  →  CorrelationEngine  →  RecordStore  →  PatternAnalyzer
                        ├── Classifier                        (background)
                        └── instant fixes / regression         ↓
                                                           ContextComposer
                                                           (session start)

The engine only sees normalized ToolEvents, so any host that can report
tool name, exit code, input and output can drive it.
"""
