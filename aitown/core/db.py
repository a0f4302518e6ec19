########## Database Utilities ##########
# SQLite persistence for message history, agent memories, and the event log.
# The tick loop never calls these; the executor side and the engine do.

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import Engine, create_engine, text

from . import config

_ENGINE: Optional[Engine] = None


def _db_path() -> Path:
    """Return the configured sqlite path and ensure its directory exists."""

    path = Path(config.DB_FILE).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def get_engine() -> Engine:
    """Create or reuse the SQLAlchemy engine."""

    # 1 Cache the engine so future calls reuse the same connection pool.       # steps
    global _ENGINE
    if _ENGINE is None:
        path = _db_path()
        _ENGINE = create_engine(f"sqlite:///{path}", echo=config.DB_ECHO, future=True)
        ensure_schema(_ENGINE)
    return _ENGINE


def reset_engine() -> None:
    """Drop the cached engine so the next call honours a new DB_FILE."""

    global _ENGINE
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None


def ensure_schema(engine: Optional[Engine] = None) -> None:
    """Create tables when they do not exist."""

    engine = engine or get_engine()
    with engine.begin() as connection:
        for statement in _schema_statements():
            connection.execute(text(statement))


def _schema_statements() -> List[str]:
    """Provide the schema definitions for idempotent creation."""

    messages = """
    CREATE TABLE IF NOT EXISTS messages (
        message_id INTEGER PRIMARY KEY AUTOINCREMENT,
        conversation_id TEXT,
        author TEXT,
        message_uuid TEXT,
        text TEXT,
        ts REAL
    )
    """
    memories = """
    CREATE TABLE IF NOT EXISTS memories (
        memory_id INTEGER PRIMARY KEY AUTOINCREMENT,
        player_id TEXT,
        conversation_id TEXT,
        description TEXT,
        ts REAL
    )
    """
    event_log = """
    CREATE TABLE IF NOT EXISTS event_log (
        event_id INTEGER PRIMARY KEY AUTOINCREMENT,
        agent_id TEXT,
        target_id TEXT,
        type TEXT,
        data TEXT,
        ts TEXT
    )
    """
    return [messages, memories, event_log]


########## Messages ##########


def insert_message(
    conversation_id: str,
    author: str,
    text_line: str,
    message_uuid: Optional[str],
    timestamp: float,
) -> None:
    statement = text(
        """
        INSERT INTO messages (conversation_id, author, message_uuid, text, ts)
        VALUES (:conversation_id, :author, :message_uuid, :text, :ts)
        """
    )
    parameters = {
        "conversation_id": conversation_id,
        "author": author,
        "message_uuid": message_uuid,
        "text": text_line,
        "ts": timestamp,
    }
    with get_engine().begin() as connection:
        connection.execute(statement, parameters)


def list_messages(conversation_id: str, limit: int = config.MESSAGE_HISTORY_KEEP) -> List[Dict[str, Any]]:
    """Return the most recent messages of a conversation, oldest first."""

    # 1 Fetch newest rows first then flip so callers read in order.           # steps
    statement = text(
        """
        SELECT conversation_id, author, message_uuid, text, ts
        FROM messages
        WHERE conversation_id = :conversation_id
        ORDER BY ts DESC, message_id DESC
        LIMIT :limit
        """
    )
    with get_engine().begin() as connection:
        rows = connection.execute(statement, {"conversation_id": conversation_id, "limit": limit}).mappings().all()
    payloads = [dict(row) for row in rows]
    payloads.reverse()
    return payloads


########## Memories ##########


def insert_memory(player_id: str, conversation_id: str, description: str, timestamp: float) -> None:
    statement = text(
        """
        INSERT INTO memories (player_id, conversation_id, description, ts)
        VALUES (:player_id, :conversation_id, :description, :ts)
        """
    )
    parameters = {
        "player_id": player_id,
        "conversation_id": conversation_id,
        "description": description,
        "ts": timestamp,
    }
    with get_engine().begin() as connection:
        connection.execute(statement, parameters)


def list_memories(player_id: str) -> List[Dict[str, Any]]:
    statement = text(
        """
        SELECT player_id, conversation_id, description, ts
        FROM memories
        WHERE player_id = :player_id
        ORDER BY ts ASC, memory_id ASC
        """
    )
    with get_engine().begin() as connection:
        rows = connection.execute(statement, {"player_id": player_id}).mappings().all()
    return [dict(row) for row in rows]


########## Event Log ##########


def log_event(
    agent_id: Optional[str],
    target_id: Optional[str],
    event_type: str,
    data: str,
    timestamp: Optional[datetime] = None,
) -> None:
    """Persist an event to the event_log table."""

    statement = text(
        """
        INSERT INTO event_log (agent_id, target_id, type, data, ts)
        VALUES (:agent_id, :target_id, :type, :data, :ts)
        """
    )
    parameters = {
        "agent_id": agent_id,
        "target_id": target_id,
        "type": event_type,
        "data": data,
        "ts": (timestamp or datetime.now(timezone.utc)).isoformat(),
    }
    with get_engine().begin() as connection:
        connection.execute(statement, parameters)


def fetch_events(limit: Optional[int] = None, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return events in insertion order, optionally filtered by type."""

    query = "SELECT agent_id, target_id, type, data, ts FROM event_log"
    params: Dict[str, Any] = {}
    if event_type is not None:
        query += " WHERE type = :type"
        params["type"] = event_type
    query += " ORDER BY event_id DESC"
    if limit is not None:
        query += " LIMIT :limit"
        params["limit"] = limit
    with get_engine().begin() as connection:
        rows = connection.execute(text(query), params).mappings().all()
    payloads = [dict(row) for row in rows]
    payloads.reverse()
    return payloads
