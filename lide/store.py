"""Durable session storage: metadata, message history and output buffers."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from threading import Lock

import structlog
from sqlalchemy import func as sa_func
from sqlmodel import select

from lide.db import get_session as get_db_session
from lide.models import MessageRecord, OutputRecord, SessionRecord
from lide.settings import settings

logger = structlog.get_logger("lide.store")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now_ts() -> str:
    """Return an ISO8601 UTC timestamp suitable for records and payloads."""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _message_dict(row: MessageRecord) -> dict:
    return {
        "id": row.id,
        "session_id": row.session_id,
        "role": row.role,
        "content": row.content,
        "created_at": row.created_at,
    }


class SessionStore:
    """SQLModel-backed persistence for session metadata, history and output.

    Two independent streams are kept per session: the raw output buffer,
    upserted and truncated to ``max_output`` characters, and the message
    history, which is append-only and never truncated.
    """

    def __init__(self, max_output: int | None = None) -> None:
        self._db_lock = Lock()
        self.max_output = max_output if max_output is not None else settings.output_buffer_max()

    # ------------------------------------------------------------------
    # Session metadata
    # ------------------------------------------------------------------

    def create_session(
        self,
        session_id: str,
        project_path: str,
        multiplexer_name: str | None = None,
        *,
        cols: int = 120,
        rows: int = 30,
    ) -> SessionRecord:
        """Insert (or replace) the metadata row for a session.

        Args:
            session_id: Stable session identifier.
            project_path: Working directory of the spawned process.
            multiplexer_name: Derived tmux session name, if tmux is used.
            cols: Initial terminal width.
            rows: Initial terminal height.
        """
        now = now_ts()
        record = SessionRecord(
            session_id=session_id,
            project_path=project_path,
            created_at=now,
            last_activity_at=now,
            is_active=True,
            multiplexer_name=multiplexer_name,
            cols=cols,
            rows=rows,
        )
        with self._db_lock:
            with get_db_session() as db:
                db.merge(record)
                db.commit()
        return record

    def find_session(self, session_id: str) -> SessionRecord | None:
        """Fetch a session row by id, or None if missing."""
        with self._db_lock:
            with get_db_session() as db:
                return db.get(SessionRecord, session_id)

    def list_active_sessions(self) -> list[SessionRecord]:
        """Return active session rows, most recently used first."""
        with self._db_lock:
            with get_db_session() as db:
                rows = db.exec(
                    select(SessionRecord)
                    .where(SessionRecord.is_active == True)  # noqa: E712
                    .order_by(SessionRecord.last_activity_at.desc())
                ).all()
                return list(rows)

    def touch_session(self, session_id: str) -> None:
        """Bump last_activity_at and mark the session active again."""
        with self._db_lock:
            with get_db_session() as db:
                row = db.get(SessionRecord, session_id)
                if not row:
                    return
                row.last_activity_at = now_ts()
                row.is_active = True
                db.add(row)
                db.commit()

    def resize_session(self, session_id: str, cols: int, rows: int) -> None:
        """Record the latest terminal size for a session."""
        with self._db_lock:
            with get_db_session() as db:
                row = db.get(SessionRecord, session_id)
                if not row:
                    return
                row.cols = cols
                row.rows = rows
                row.last_activity_at = now_ts()
                db.add(row)
                db.commit()

    def mark_session_inactive(self, session_id: str) -> None:
        """Flag a session inactive but keep it for later reconnection."""
        with self._db_lock:
            with get_db_session() as db:
                row = db.get(SessionRecord, session_id)
                if not row:
                    return
                row.is_active = False
                db.add(row)
                db.commit()

    def remove_session(self, session_id: str) -> bool:
        """Delete a session row together with its output and history."""
        with self._db_lock:
            with get_db_session() as db:
                for msg in db.exec(
                    select(MessageRecord).where(MessageRecord.session_id == session_id)
                ).all():
                    db.delete(msg)
                output = db.get(OutputRecord, session_id)
                if output:
                    db.delete(output)
                row = db.get(SessionRecord, session_id)
                if row:
                    db.delete(row)
                db.commit()
                return row is not None

    def cleanup_sessions(self, retention_days: int) -> int:
        """Delete inactive sessions whose last activity is older than the window."""
        if retention_days <= 0:
            return 0
        cutoff = (datetime.now(timezone.utc) - timedelta(days=retention_days)).strftime(
            TIMESTAMP_FORMAT
        )
        with self._db_lock:
            with get_db_session() as db:
                stale = db.exec(
                    select(SessionRecord.session_id).where(
                        SessionRecord.is_active == False,  # noqa: E712
                        SessionRecord.last_activity_at < cutoff,
                    )
                ).all()
        removed = 0
        for session_id in stale:
            if self.remove_session(session_id):
                removed += 1
        return removed

    def clear_all_data(self) -> None:
        """Delete every persisted session, message and output buffer."""
        with self._db_lock:
            with get_db_session() as db:
                for model in (MessageRecord, OutputRecord, SessionRecord):
                    for row in db.exec(select(model)).all():
                        db.delete(row)
                db.commit()

    # ------------------------------------------------------------------
    # Output buffer stream
    # ------------------------------------------------------------------

    def save_output(self, session_id: str, output: str) -> None:
        """Upsert the output buffer, keeping only the trailing ``max_output`` chars."""
        if len(output) > self.max_output:
            output = output[-self.max_output:]
        with self._db_lock:
            with get_db_session() as db:
                db.merge(
                    OutputRecord(session_id=session_id, output=output, updated_at=now_ts())
                )
                db.commit()

    def load_output(self, session_id: str) -> str:
        """Return the last flushed output buffer, or an empty string."""
        with self._db_lock:
            with get_db_session() as db:
                row = db.get(OutputRecord, session_id)
                return row.output if row else ""

    # ------------------------------------------------------------------
    # Message history stream
    # ------------------------------------------------------------------

    def add_message(self, session_id: str, role: str, content: str) -> dict:
        """Append a message to a session's history.

        Args:
            session_id: Session identifier.
            role: Message role ("user" or "assistant").
            content: Message text.

        Returns:
            The stored message as a dict.
        """
        message_id = f"msg_{uuid.uuid4().hex[:12]}"
        now = now_ts()
        with self._db_lock:
            with get_db_session() as db:
                max_seq = db.exec(
                    select(sa_func.coalesce(sa_func.max(MessageRecord.seq), 0)).where(
                        MessageRecord.session_id == session_id
                    )
                ).one()
                message = MessageRecord(
                    id=message_id,
                    session_id=session_id,
                    role=role,
                    content=content,
                    created_at=now,
                    seq=max_seq + 1,
                )
                db.add(message)
                db.commit()
        return {
            "id": message_id,
            "session_id": session_id,
            "role": role,
            "content": content,
            "created_at": now,
        }

    def load_messages(self, session_id: str) -> list[dict]:
        """Return the full message history of a session in order."""
        with self._db_lock:
            with get_db_session() as db:
                rows = db.exec(
                    select(MessageRecord)
                    .where(MessageRecord.session_id == session_id)
                    .order_by(MessageRecord.seq)
                ).all()
                return [_message_dict(row) for row in rows]
