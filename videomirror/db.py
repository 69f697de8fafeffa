"""SQLite persistence for mirrored videos, job runs, and health tracking."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import astuple, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Literal, Sequence

from .errors import PersistenceError
from .models import VideoRecord

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS videos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bc_video_id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    thumbnail TEXT NOT NULL,
    numero_corsa TEXT NOT NULL,
    data TEXT NOT NULL,
    ippodromo TEXT NOT NULL,
    tipologia TEXT,
    cavalli TEXT,
    fantini TEXT,
    primo TEXT,
    secondo TEXT,
    terzo TEXT,
    video_views INTEGER NOT NULL DEFAULT 0 CHECK (video_views >= 0),
    synced_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_videos_data ON videos(data);
CREATE TABLE IF NOT EXISTS job_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    duration_ms REAL NOT NULL,
    error TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_job_runs_job_id ON job_runs(job_id);
CREATE TABLE IF NOT EXISTS health_checks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    component TEXT NOT NULL,
    status TEXT NOT NULL,
    detail TEXT,
    observed_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_health_component ON health_checks(component);
"""

VIDEO_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(VideoRecord))
_SELECT_VIDEO = f"SELECT {', '.join(VIDEO_COLUMNS)} FROM videos"


class DatabaseManager:
    """Thread-safe SQLite manager; one connection per thread, WAL journal."""

    def __init__(self, path: Path | str, *, busy_timeout: float = 30.0) -> None:
        self.path = Path(path)
        self.busy_timeout = busy_timeout
        self._local = threading.local()
        # Owning thread -> its connection; entries of finished threads are pruned.
        self._connections: dict[threading.Thread, sqlite3.Connection] = {}
        self._connections_lock = threading.Lock()
        self._init_schema_once()

    # ------------------------------------------------------------------ #
    # Connection handling
    # ------------------------------------------------------------------ #

    def _get_conn(self) -> sqlite3.Connection:
        """Return a per-thread connection to the database."""
        if not hasattr(self._local, "conn"):
            try:
                conn = sqlite3.connect(
                    self.path,
                    check_same_thread=False,
                    isolation_level=None,
                    timeout=self.busy_timeout,
                )
            except sqlite3.Error as exc:
                raise PersistenceError(f"Cannot open database at {self.path}: {exc}") from exc
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._connections_lock:
                self._prune_dead_connections()
                self._connections[threading.current_thread()] = conn
            logger.debug("Opened thread-local DB connection at %s", self.path)
        return self._local.conn

    def _prune_dead_connections(self) -> None:
        """Close connections whose owning thread has exited. Caller holds the lock."""
        dead = [thread for thread in self._connections if not thread.is_alive()]
        for thread in dead:
            self._connections.pop(thread).close()
        if dead:
            logger.debug("Closed %d connection(s) left by finished threads", len(dead))

    def _init_schema_once(self) -> None:
        """Ensure the schema exists once at startup."""
        try:
            conn = sqlite3.connect(self.path)
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(SCHEMA)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot initialise schema at {self.path}: {exc}") from exc
        logger.debug("Database schema ensured at %s", self.path)

    # ------------------------------------------------------------------ #
    # Context managers
    # ------------------------------------------------------------------ #

    @contextmanager
    def cursor(self) -> Iterator[sqlite3.Cursor]:
        """Provide an autocommit cursor; sqlite errors surface as PersistenceError."""
        conn = self._get_conn()
        cur = conn.cursor()
        try:
            yield cur
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            cur.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """All-or-nothing cursor: commits on success, rolls back on any error."""
        conn = self._get_conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            cur.close()
            raise PersistenceError(f"Cannot begin transaction: {exc}") from exc
        try:
            yield cur
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.exception("Database transaction failed; rolled back.")
            raise PersistenceError(str(exc)) from exc
        except BaseException:
            conn.rollback()
            logger.exception("Database transaction aborted; rolled back.")
            raise
        finally:
            cur.close()

    # ------------------------------------------------------------------ #
    # Videos
    # ------------------------------------------------------------------ #

    def get_latest_video_id(self) -> str | None:
        """Greatest stored remote id, numeric order for digit ids; None when empty."""
        with self.cursor() as cur:
            cur.execute(
                """
                SELECT bc_video_id
                FROM videos
                ORDER BY LENGTH(bc_video_id) DESC, bc_video_id DESC
                LIMIT 1
                """
            )
            row = cur.fetchone()
        latest = row["bc_video_id"] if row else None
        logger.debug("get_latest_video_id: %s", latest)
        return latest

    def save_videos(self, records: Sequence[VideoRecord]) -> int:
        """Insert new records in order inside one transaction; returns rows inserted."""
        if not records:
            return 0
        placeholders = ", ".join("?" for _ in VIDEO_COLUMNS)
        statement = (
            f"INSERT INTO videos ({', '.join(VIDEO_COLUMNS)}) VALUES ({placeholders}) "
            "ON CONFLICT(bc_video_id) DO NOTHING"
        )
        inserted = 0
        with self.transaction() as cur:
            for record in records:
                cur.execute(statement, astuple(record))
                if cur.rowcount:
                    inserted += 1
                    logger.debug("saved video: %s", record.bc_video_id)
                else:
                    logger.debug("video already stored: %s", record.bc_video_id)
        return inserted

    def update_video_views(self, video_id: str, views: int) -> bool:
        """Set the view count of one video; False when no row matched."""
        with self.cursor() as cur:
            cur.execute(
                "UPDATE videos SET video_views = ? WHERE bc_video_id = ?",
                (int(views), video_id),
            )
            return cur.rowcount > 0

    def count_videos(self) -> int:
        with self.cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM videos")
            count = cur.fetchone()[0]
        return int(count)

    def list_videos(self, limit: int, offset: int = 0) -> list[VideoRecord]:
        """Page of records ordered by race date, newest first."""
        with self.cursor() as cur:
            cur.execute(
                f"{_SELECT_VIDEO} ORDER BY data DESC, bc_video_id DESC LIMIT ? OFFSET ?",
                (int(limit), int(offset)),
            )
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_video(self, video_id: str) -> VideoRecord | None:
        with self.cursor() as cur:
            cur.execute(f"{_SELECT_VIDEO} WHERE bc_video_id = ?", (video_id,))
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    # ------------------------------------------------------------------ #
    # Job and health ledger
    # ------------------------------------------------------------------ #

    def record_job_run(
        self,
        *,
        job_id: str,
        status: Literal["success", "failure"],
        started_at: datetime,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        """Persist job execution metadata for health checks."""
        with self.cursor() as cur:
            cur.execute(
                """
                INSERT INTO job_runs(job_id, status, started_at, duration_ms, error)
                VALUES(?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    status,
                    started_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
                    float(duration_ms),
                    error,
                ),
            )

    def record_health(
        self,
        *,
        component: str,
        status: Literal["pass", "warn", "fail"],
        detail: str | None = None,
    ) -> None:
        with self.cursor() as cur:
            cur.execute(
                "INSERT INTO health_checks(component, status, detail) VALUES(?, ?, ?)",
                (component, status, detail),
            )

    def recent_job_runs(self, job_id: str, limit: int = 10) -> list[dict]:
        with self.cursor() as cur:
            cur.execute(
                """
                SELECT job_id, status, started_at, duration_ms, error
                FROM job_runs
                WHERE job_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (job_id, int(limit)),
            )
            return [dict(row) for row in cur.fetchall()]

    def close(self) -> None:
        """Close every connection opened by this manager, across threads."""
        with self._connections_lock:
            connections, self._connections = list(self._connections.values()), {}
        for conn in connections:
            conn.close()
        if hasattr(self._local, "conn"):
            del self._local.conn
        logger.debug("Closed %d database connection(s).", len(connections))

    # ------------------------------------------------------------------ #
    # Utility
    # ------------------------------------------------------------------ #

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> VideoRecord:
        return VideoRecord(**{column: row[column] for column in VIDEO_COLUMNS})


__all__ = ["DatabaseManager", "SCHEMA", "VIDEO_COLUMNS"]
