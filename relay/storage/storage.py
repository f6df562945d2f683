"""SQLite storage implementation."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import BusMessage, Memory, Task, Topic, TraceEvent


def _to_db(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


def _from_db(raw: str | None) -> datetime | None:
    if not raw:
        return None
    ts = datetime.fromisoformat(raw)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class IStorage(Protocol):
    """Persistent storage for all system data (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        ...

    # BusMessages
    async def save_bus_message(self, message: BusMessage) -> None:
        ...

    async def get_bus_messages(self, limit: int = 100) -> list[BusMessage]:
        ...

    # Memories
    async def add_memory(self, key: str, text: str, pinned: bool = False) -> int:
        ...

    async def get_memories(self, key: str, pinned: bool | None = None) -> list[Memory]:
        ...

    async def delete_oldest_memories(self, keep: int) -> int:
        ...

    # Tasks
    async def save_task(self, task: Task) -> None:
        ...

    async def get_task(self, task_id: str) -> Task | None:
        ...

    async def get_tasks(
        self, key: str | None = None, include_completed: bool = False
    ) -> list[Task]:
        ...

    async def complete_task(self, task_id: str) -> bool:
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)

        # Read and execute schema
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, ensure_ascii=False),
                _to_db(event.timestamp),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters (newest first)."""
        conn = self._require_conn()

        # Build query dynamically
        conditions = []
        params: list = []

        if after:
            if after.tzinfo is None:
                after = after.replace(tzinfo=timezone.utc)
            conditions.append("timestamp > ?")
            params.append(_to_db(after))
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_from_db(row[4]),
            )
            for row in rows
        ]

    # BusMessages
    async def save_bus_message(self, message: BusMessage) -> None:
        """Save a bus message."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT INTO bus_messages (id, topic, payload, source, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                message.id or str(uuid.uuid4()),
                message.topic.value,
                json.dumps(message.payload, ensure_ascii=False),
                message.source,
                _to_db(message.timestamp),
            ),
        )
        await conn.commit()

    async def get_bus_messages(self, limit: int = 100) -> list[BusMessage]:
        """Get bus messages (newest first)."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT id, topic, payload, source, timestamp
            FROM bus_messages
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (limit,),
        )
        rows = await cursor.fetchall()

        return [
            BusMessage(
                id=row[0],
                topic=Topic(row[1]),
                payload=json.loads(row[2]),
                source=row[3],
                timestamp=_from_db(row[4]),
            )
            for row in rows
        ]

    # Memories
    async def add_memory(self, key: str, text: str, pinned: bool = False) -> int:
        """Insert a memory row and return its id."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            INSERT INTO memories (key, text, pinned, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (key, text, int(pinned), _to_db(datetime.now(timezone.utc))),
        )
        await conn.commit()
        return cursor.lastrowid

    async def get_memories(self, key: str, pinned: bool | None = None) -> list[Memory]:
        """Get memories for a key in insertion order, optionally by pinned flag."""
        conn = self._require_conn()
        if pinned is None:
            cursor = await conn.execute(
                "SELECT id, key, text, pinned, created_at FROM memories "
                "WHERE key = ? ORDER BY id ASC",
                (key,),
            )
        else:
            cursor = await conn.execute(
                "SELECT id, key, text, pinned, created_at FROM memories "
                "WHERE key = ? AND pinned = ? ORDER BY id ASC",
                (key, int(pinned)),
            )
        rows = await cursor.fetchall()
        return [
            Memory(
                id=row[0],
                key=row[1],
                text=row[2],
                pinned=bool(row[3]),
                created_at=_from_db(row[4]),
            )
            for row in rows
        ]

    async def delete_oldest_memories(self, keep: int) -> int:
        """Delete non-pinned memories beyond the newest `keep`. Returns rows deleted."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            DELETE FROM memories
            WHERE pinned = 0 AND id NOT IN (
                SELECT id FROM memories WHERE pinned = 0 ORDER BY id DESC LIMIT ?
            )
            """,
            (keep,),
        )
        await conn.commit()
        return cursor.rowcount

    # Tasks
    async def save_task(self, task: Task) -> None:
        """Insert or replace a task."""
        conn = self._require_conn()
        if not task.id:
            task.id = str(uuid.uuid4())
        if task.created_at is None:
            task.created_at = datetime.now(timezone.utc)

        await conn.execute(
            """
            INSERT OR REPLACE INTO tasks
            (id, key, title, description, due_at, priority, category, completed, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.key,
                task.title,
                task.description,
                _to_db(task.due_at),
                task.priority,
                task.category,
                int(task.completed),
                _to_db(task.created_at),
            ),
        )
        await conn.commit()

    async def get_task(self, task_id: str) -> Task | None:
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT id, key, title, description, due_at, priority, category,
                   completed, created_at
            FROM tasks
            WHERE id = ?
            """,
            (task_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_task(row) if row else None

    async def get_tasks(
        self, key: str | None = None, include_completed: bool = False
    ) -> list[Task]:
        """Get tasks (newest first), for one key or for everyone."""
        conn = self._require_conn()

        conditions = []
        params: list = []
        if key is not None:
            conditions.append("key = ?")
            params.append(key)
        if not include_completed:
            conditions.append("completed = 0")

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cursor = await conn.execute(
            f"""
            SELECT id, key, title, description, due_at, priority, category,
                   completed, created_at
            FROM tasks
            {where_clause}
            ORDER BY created_at DESC
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def complete_task(self, task_id: str) -> bool:
        """Mark a task completed. Returns False if it does not exist."""
        conn = self._require_conn()
        cursor = await conn.execute(
            "UPDATE tasks SET completed = 1, completed_at = ? WHERE id = ?",
            (_to_db(datetime.now(timezone.utc)), task_id),
        )
        await conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_task(row) -> Task:
        return Task(
            id=row[0],
            key=row[1],
            title=row[2],
            description=row[3],
            due_at=_from_db(row[4]),
            priority=row[5],
            category=row[6],
            completed=bool(row[7]),
            created_at=_from_db(row[8]),
        )

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        tables = [
            "trace_events",
            "bus_messages",
            "memories",
            "tasks",
        ]

        for table in tables:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
