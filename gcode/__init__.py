"""Message types, SQLite session storage, context compaction, skills and subprocess plugins for an LLM coding agent."""

__version__ = "0.1.0"