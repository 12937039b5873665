"""Hivemind: multi-agent coordination over a shared document store."""

__version__ = "0.4.0"
