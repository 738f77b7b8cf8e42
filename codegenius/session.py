"""Conversation persistence with SQLite storage."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable

import aiosqlite

from codegenius.config import get_config
from codegenius.llm import Message
from codegenius.logging import get_logger

log = get_logger(__name__)

_SELECT_COLUMNS = "SELECT id, name, messages, created_at, updated_at, metadata FROM sessions"


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


@dataclass
class Session:
    """A saved conversation."""

    id: str
    name: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)
    metadata: dict[str, Any] = field(default_factory=dict)

    def set_context(self, messages: Iterable[Message]) -> None:
        """Replace stored messages with an agent context (system prompt excluded)."""
        self.messages = [
            {"role": msg.role, "content": msg.content, "timestamp": _utcnow_iso()}
            for msg in messages
            if msg.role != "system"
        ]
        self.updated_at = _utcnow_iso()

    def context_messages(self) -> list[Message]:
        """Stored messages as agent context entries."""
        return [
            Message(role=str(msg.get("role", "")), content=str(msg.get("content", "")))
            for msg in self.messages
            if msg.get("role") in {"user", "assistant"}
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "messages": self.messages,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            messages=data.get("messages", []),
            created_at=data.get("created_at", _utcnow_iso()),
            updated_at=data.get("updated_at", _utcnow_iso()),
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def from_row(cls, row: Iterable[Any]) -> "Session":
        id_, name, messages, created_at, updated_at, metadata = row
        return cls.from_dict({
            "id": id_,
            "name": name,
            "messages": json.loads(messages),
            "created_at": created_at,
            "updated_at": updated_at,
            "metadata": json.loads(metadata),
        })


class SessionManager:
    """Manages saved conversations with SQLite storage."""

    def __init__(self, db_path: Path | str | None = None):
        """Initialize session manager.

        Args:
            db_path: Optional database path override
        """
        if db_path is None:
            config = get_config()
            self.db_path = Path(config.session.path).expanduser()
        else:
            self.db_path = Path(db_path).expanduser()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db: aiosqlite.Connection | None = None

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Ensure database is initialized."""
        if self._db is None:
            self._db = await aiosqlite.connect(str(self.db_path))
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    messages TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}'
                )
            """)
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_name_updated_at ON sessions(name, updated_at DESC)"
            )
            await self._db.commit()
        return self._db

    async def get_or_create_session(self, name: str = "default", metadata: dict[str, Any] | None = None) -> Session:
        """Return the latest session called `name`, creating it if needed."""
        session = await self.load_session_by_name(name)
        if session:
            return session
        return await self.create_session(name=name, metadata=metadata)

    async def create_session(self, name: str = "default", metadata: dict[str, Any] | None = None) -> Session:
        """Create and persist a new session."""
        session = Session(
            id=str(uuid.uuid4()),
            name=name,
            metadata=metadata or {},
        )
        await self.save_session(session)
        log.info("Created new session", session_id=session.id, name=name)
        return session

    async def load_session(self, session_id: str) -> Session | None:
        """Get a session by ID."""
        db = await self._ensure_db()
        async with db.execute(f"{_SELECT_COLUMNS} WHERE id = ?", (session_id,)) as cursor:
            row = await cursor.fetchone()
        return Session.from_row(row) if row else None

    async def load_session_by_name(self, name: str) -> Session | None:
        """Load the most recently updated session by name."""
        db = await self._ensure_db()
        async with db.execute(
            f"{_SELECT_COLUMNS} WHERE name = ? ORDER BY updated_at DESC LIMIT 1",
            (name,),
        ) as cursor:
            row = await cursor.fetchone()
        return Session.from_row(row) if row else None

    async def save_session(self, session: Session) -> None:
        """Save a session."""
        db = await self._ensure_db()

        session.updated_at = _utcnow_iso()

        await db.execute("""
            INSERT OR REPLACE INTO sessions (id, name, messages, created_at, updated_at, metadata)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            session.id,
            session.name,
            json.dumps(session.messages, ensure_ascii=False),
            session.created_at,
            session.updated_at,
            json.dumps(session.metadata, ensure_ascii=False),
        ))
        await db.commit()
        log.debug("Session saved", session_id=session.id, messages=len(session.messages))

    async def list_sessions(self, limit: int = 10) -> list[Session]:
        """List recent sessions, newest first."""
        db = await self._ensure_db()
        async with db.execute(
            f"{_SELECT_COLUMNS} ORDER BY updated_at DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [Session.from_row(row) for row in rows]

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session; False when it did not exist."""
        db = await self._ensure_db()
        cursor = await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        await db.commit()
        return cursor.rowcount > 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None
