from __future__ import annotations

# Fixed, ordered codename pool. Names are handed out first-unused-first.
AGENT_NAMES: tuple[str, ...] = (
    "alfa", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel",
    "india", "juliet", "kilo", "lima", "mike", "november", "oscar", "papa",
    "quebec", "romeo", "sierra", "tango", "uniform", "victor", "whiskey",
    "xray", "yankee", "zulu",
)

BROADCAST_TARGET = "all"
BROADCAST_PREFIX = "[BROADCAST] "

# Session handles carrying this prefix were claimed by a tool server process
# before any lifecycle hook bound the terminal.
PREREGISTERED_PREFIX = "mcp-"
SYNTHESIZED_PREFIX = "agent-"

COLLECTION_PREFIX = "hivemind"
PLACEHOLDER_DIM = 8
VECTOR_FIELD = "embedding"
PRIMARY_KEY = "id"

# Sequence names
CHANGELOG_SEQ = "changelog_id_seq"
TASK_SEQ = "task_id_seq"
DECISION_SEQ = "decision_id_seq"
METRICS_SEQ = "metrics_id_seq"

# Agent flags
FLAG_AWAITING_TASK = "awaiting_task"

# Tools that need the caller's identity injected by the pre-tool hook.
IDENTITY_TOOLS: tuple[str, ...] = ("hive_whoami", "hive_task", "hive_message", "hive_inbox")
TASK_TOOL = "hive_task"

EDIT_TOOLS: tuple[str, ...] = ("Write", "Edit")
