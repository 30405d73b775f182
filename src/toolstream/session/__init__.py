"""Conversation session storage."""

from .store import FileSessionStore, InMemorySessionStore, SessionEntry, SessionFile, SessionStore

__all__ = ["FileSessionStore", "InMemorySessionStore", "SessionEntry", "SessionFile", "SessionStore"]
