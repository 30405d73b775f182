"""Persistent session store for conversation turns."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

from loguru import logger

from ..core.segments import MessageTurn

SESSION_FILE_SUFFIX = ".jsonl"


@dataclass(frozen=True)
class SessionEntry:
    id: int
    role: str
    content: str
    meta: dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    def to_turn(self) -> MessageTurn | None:
        if self.role not in {"user", "assistant"}:
            return None
        return MessageTurn(role=self.role, content=self.content)  # type: ignore[arg-type]


class SessionStore(Protocol):
    def load(self, session_id: str, *, limit: int | None = None) -> list[MessageTurn]: ...

    def append(self, session_id: str, role: str, content: str, meta: dict[str, Any] | None = None) -> None: ...

    def reset(self, session_id: str) -> None: ...

    def archive(self, session_id: str) -> Path | None: ...

    def list_sessions(self) -> list[str]: ...


def _tail(turns: list[MessageTurn], limit: int | None) -> list[MessageTurn]:
    if limit is None:
        return turns
    if limit <= 0:
        return []
    return turns[-limit:]


class SessionFile:
    """Helper for one append-only session file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._read_entries: list[SessionEntry] = []
        self._read_offset = 0

    def _next_id(self) -> int:
        if self._read_entries:
            return self._read_entries[-1].id + 1
        return 1

    def _reset(self) -> None:
        self._read_entries = []
        self._read_offset = 0

    def reset(self) -> None:
        with self._lock:
            if self.path.exists():
                self.path.unlink()
            self._reset()

    def read(self) -> list[SessionEntry]:
        with self._lock:
            return self._read_locked()

    def _read_locked(self) -> list[SessionEntry]:
        if not self.path.exists():
            self._reset()
            return []

        if self.path.stat().st_size < self._read_offset:
            # Truncated or replaced on disk; cached entries are stale.
            self._reset()

        with self.path.open("r", encoding="utf-8") as handle:
            handle.seek(self._read_offset)
            for raw_line in handle:
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("session.entry.unparseable path={}", self.path.name)
                    continue
                entry = self.entry_from_payload(payload)
                if entry is not None:
                    self._read_entries.append(entry)
            self._read_offset = handle.tell()

        return list(self._read_entries)

    @staticmethod
    def entry_to_payload(entry: SessionEntry) -> dict[str, object]:
        return {
            "id": entry.id,
            "role": entry.role,
            "content": entry.content,
            "meta": dict(entry.meta),
            "timestamp": entry.timestamp,
        }

    @staticmethod
    def entry_from_payload(payload: object) -> SessionEntry | None:
        if not isinstance(payload, dict):
            return None
        entry_id = payload.get("id")
        role = payload.get("role")
        content = payload.get("content")
        if not isinstance(entry_id, int) or not isinstance(role, str) or not isinstance(content, str):
            return None
        meta = payload.get("meta")
        if not isinstance(meta, dict):
            meta = {}
        timestamp = payload.get("timestamp", 0.0)
        if not isinstance(timestamp, int | float):
            timestamp = 0.0
        return SessionEntry(entry_id, role, content, dict(meta), float(timestamp))

    def append(self, role: str, content: str, meta: dict[str, Any] | None = None) -> SessionEntry:
        with self._lock:
            # Sync cache and offset before allocating the next id.
            self._read_locked()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                entry = SessionEntry(self._next_id(), role, content, dict(meta or {}), time.time())
                handle.write(json.dumps(self.entry_to_payload(entry), ensure_ascii=False) + "\n")
                self._read_entries.append(entry)
                self._read_offset = handle.tell()
            return entry

    def archive(self) -> Path | None:
        with self._lock:
            if not self.path.exists():
                return None
            stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
            archive_file = self.path.with_suffix(f"{SESSION_FILE_SUFFIX}.{stamp}.bak")
            self.path.replace(archive_file)
            self._reset()
            return archive_file


class FileSessionStore:
    """Append-only JSONL store, one file per session."""

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._files: dict[str, SessionFile] = {}
        self._lock = threading.Lock()

    def list_sessions(self) -> list[str]:
        sessions = [
            unquote(path.name.removesuffix(SESSION_FILE_SUFFIX)) for path in self.root.glob(f"*{SESSION_FILE_SUFFIX}")
        ]
        return sorted(set(sessions))

    def entries(self, session_id: str) -> list[SessionEntry]:
        return self._session_file(session_id).read()

    def load(self, session_id: str, *, limit: int | None = None) -> list[MessageTurn]:
        turns = [turn for entry in self.entries(session_id) if (turn := entry.to_turn()) is not None]
        return _tail(turns, limit)

    def append(self, session_id: str, role: str, content: str, meta: dict[str, Any] | None = None) -> None:
        self._session_file(session_id).append(role, content, meta)

    def reset(self, session_id: str) -> None:
        self._session_file(session_id).reset()

    def archive(self, session_id: str) -> Path | None:
        with self._lock:
            session_file = self._files.pop(session_id, None)
        if session_file is None:
            session_file = SessionFile(self._path_for(session_id))
        return session_file.archive()

    def _path_for(self, session_id: str) -> Path:
        return self.root / f"{quote(session_id, safe='')}{SESSION_FILE_SUFFIX}"

    def _session_file(self, session_id: str) -> SessionFile:
        with self._lock:
            if session_id not in self._files:
                self._files[session_id] = SessionFile(self._path_for(session_id))
            return self._files[session_id]


class InMemorySessionStore:
    """Process-local store, mainly for tests and ephemeral callers."""

    def __init__(self) -> None:
        self._sessions: dict[str, list[MessageTurn]] = {}
        self._lock = threading.Lock()

    def list_sessions(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def load(self, session_id: str, *, limit: int | None = None) -> list[MessageTurn]:
        with self._lock:
            turns = list(self._sessions.get(session_id, []))
        return _tail(turns, limit)

    def append(self, session_id: str, role: str, content: str, meta: dict[str, Any] | None = None) -> None:
        if role not in {"user", "assistant"}:
            return
        with self._lock:
            self._sessions.setdefault(session_id, []).append(MessageTurn(role=role, content=content))  # type: ignore[arg-type]

    def reset(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def archive(self, session_id: str) -> Path | None:
        """Drop the session; there is no file to keep."""
        self.reset(session_id)
        return None
