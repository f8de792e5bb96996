from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Generator, List, Optional

from .errors import ConcurrencyConflictError, StorageError
from .models import Priority, TaskEntity
from .query import TaskQuery
from .repositories import (
    Repository,
    apply_patch,
    apply_update,
    check_row_version,
    new_row_version,
    utcnow,
)
from .schemas import TaskCreate, TaskPatch, TaskUpdate
from .validation import MAX_TAGS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "tasks"
    id: str = "id"
    title: str = "title"
    description: str = "description"
    due_date: str = "due_date"
    priority: str = "priority"
    tags: str = "tags"
    completed: str = "completed"
    created_at: str = "created_at"
    updated_at: str = "updated_at"
    deleted_at: str = "deleted_at"
    row_version: str = "row_version"


_COLS = _Cols()

# The soft-delete filter shared by every read path.
ACTIVE_CLAUSE = f"{_COLS.deleted_at} IS NULL"


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.

    Tags are stored as a JSON array, so tag filtering happens in the query
    engine after the priority pre-filter has run in SQL.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=30.0)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open task database: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.exception("SQLite operation failed db=%s", self._db_path)
            raise StorageError(f"Task storage failure: {exc}") from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NULL,
                    {_COLS.due_date} TEXT NULL,
                    {_COLS.priority} TEXT NOT NULL DEFAULT 'Med',
                    {_COLS.tags} TEXT NOT NULL DEFAULT '[]',
                    {_COLS.completed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL,
                    {_COLS.deleted_at} TEXT NULL,
                    {_COLS.row_version} TEXT NOT NULL
                )
                """
            )
            for col in (_COLS.created_at, _COLS.due_date, _COLS.priority):
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_{col} ON {_COLS.table}({col})"
                )
        logger.info("SQLite task store ready db=%s", self._db_path)

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        def parse_dt(s: Optional[str]) -> Optional[datetime]:
            if s is None:
                return None
            return datetime.fromisoformat(s)

        due = row[_COLS.due_date]
        return {
            "id": str(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "description": row[_COLS.description],
            "due_date": date.fromisoformat(due) if due else None,
            "priority": Priority(row[_COLS.priority]),
            "tags": list(json.loads(row[_COLS.tags] or "[]")),
            "completed": bool(row[_COLS.completed]),
            "created_at": parse_dt(row[_COLS.created_at]),  # type: ignore
            "updated_at": parse_dt(row[_COLS.updated_at]),  # type: ignore
            "deleted_at": parse_dt(row[_COLS.deleted_at]),
            "row_version": str(row[_COLS.row_version]),
        }

    def _fetch(self, conn: sqlite3.Connection, task_id: str, include_deleted: bool = False) -> Optional[TaskEntity]:
        sql = f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?"
        if not include_deleted:
            sql += f" AND {ACTIVE_CLAUSE}"
        row = conn.execute(sql, (task_id,)).fetchone()
        return self._row_to_entity(row) if row else None

    def _write(self, conn: sqlite3.Connection, entity: TaskEntity, expected_version: str) -> None:
        cur = conn.execute(
            f"""
            UPDATE {_COLS.table}
            SET {_COLS.title} = ?, {_COLS.description} = ?, {_COLS.due_date} = ?,
                {_COLS.priority} = ?, {_COLS.tags} = ?, {_COLS.completed} = ?,
                {_COLS.updated_at} = ?, {_COLS.deleted_at} = ?, {_COLS.row_version} = ?
            WHERE {_COLS.id} = ? AND {_COLS.row_version} = ?
            """,
            (
                entity["title"],
                entity["description"],
                entity["due_date"].isoformat() if entity["due_date"] else None,
                Priority(entity["priority"]).value,
                json.dumps(entity["tags"], ensure_ascii=False),
                1 if entity["completed"] else 0,
                entity["updated_at"].isoformat(),
                entity["deleted_at"].isoformat() if entity["deleted_at"] else None,
                entity["row_version"],
                entity["id"],
                expected_version,
            ),
        )
        if cur.rowcount == 0:
            # Another writer changed the row between our read and this update.
            raise ConcurrencyConflictError(
                "Update conflict. The resource was modified by another process."
            )

    def create(self, data: TaskCreate) -> TaskEntity:
        now = utcnow().isoformat()
        new_id = uuid.uuid4().hex
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.title}, {_COLS.description}, {_COLS.due_date},
                    {_COLS.priority}, {_COLS.tags}, {_COLS.completed}, {_COLS.created_at},
                    {_COLS.updated_at}, {_COLS.row_version})
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (
                    new_id,
                    data.title,
                    data.description,
                    data.due_date.isoformat() if data.due_date else None,
                    data.priority.value,
                    json.dumps(list(data.tags)[:MAX_TAGS], ensure_ascii=False),
                    now,
                    now,
                    new_row_version(),
                ),
            )
            entity = self._fetch(conn, new_id)
            if entity is None:
                raise StorageError(f"Task {new_id} was inserted but could not be read back")
            logger.debug("Task created id=%s", new_id)
            return entity

    def get(self, task_id: str, include_deleted: bool = False) -> Optional[TaskEntity]:
        with self._conn() as conn:
            return self._fetch(conn, task_id, include_deleted=include_deleted)

    def update(self, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        with self._conn() as conn:
            current = self._fetch(conn, task_id)
            if current is None:
                return None
            check_row_version(current, data.row_version)
            updated = apply_update(current, data, utcnow())
            self._write(conn, updated, current["row_version"])
            return updated

    def patch(self, task_id: str, data: TaskPatch) -> Optional[TaskEntity]:
        with self._conn() as conn:
            current = self._fetch(conn, task_id)
            if current is None:
                return None
            check_row_version(current, data.row_version)
            updated = apply_patch(current, data, utcnow())
            self._write(conn, updated, current["row_version"])
            return updated

    def soft_delete(self, task_id: str) -> bool:
        now = utcnow().isoformat()
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.deleted_at} = ?, {_COLS.updated_at} = MAX({_COLS.updated_at}, ?),
                    {_COLS.row_version} = ?
                WHERE {_COLS.id} = ? AND {ACTIVE_CLAUSE}
                """,
                (now, now, new_row_version(), task_id),
            )
            return cur.rowcount > 0

    def candidates(self, query: TaskQuery) -> List[TaskEntity]:
        clauses = [ACTIVE_CLAUSE]
        params: list = []

        if query.priorities:
            placeholders = ",".join("?" for _ in query.priorities)
            clauses.append(f"{_COLS.priority} IN ({placeholders})")
            params.extend(sorted(p.value for p in query.priorities))

        where_sql = f"WHERE {' AND '.join(clauses)}"
        with self._conn() as conn:
            rows = conn.execute(f"SELECT * FROM {_COLS.table} {where_sql}", params).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def count(self) -> int:
        with self._conn() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {_COLS.table} WHERE {ACTIVE_CLAUSE}").fetchone()
            return int(row["cnt"]) if row else 0
