from __future__ import annotations

import contextlib
import json
import os
import sqlite3
from collections.abc import Iterator

from .logging_bridge import error as log_error
from .models import Posting, StoredPosting, StoreStats
from .utils import now_iso


class JobStore:
    """
    Durable, deduplicating store of postings plus chat subscriptions (SQLite).

    Every mutation is a single statement in autocommit mode, so each one is
    atomic on its own and no transaction spans orchestrator stages.

    Dedupe key: (source, external_id)
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        _ensure_dir(sqlite_path)
        with self._conn() as conn:
            _ensure_schema(conn)

    # ---- postings -------------------------------------------------------

    def insert_if_absent(self, posting: Posting) -> bool:
        """
        Insert a posting unless (source, external_id) is already present.
        Returns True when a row was created.
        """
        with self._conn() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO jobs
                  (external_id, source, title, company, url, description, location, tags, posted_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    posting.external_id.strip(),
                    posting.source.strip(),
                    posting.title,
                    posting.company,
                    posting.url,
                    posting.description,
                    posting.location,
                    json.dumps(list(posting.tags), ensure_ascii=False),
                    posting.posted_at,
                    now_iso(),
                ),
            )
            return cur.rowcount == 1

    def unscored(self) -> list[StoredPosting]:
        """Postings with no match score yet, oldest first."""
        return self._select("WHERE match_score IS NULL ORDER BY id")

    def record_score(self, job_id: int, score: float, reasoning: str) -> None:
        """
        Set (score, reasoning) in one statement. Rows that already carry a score
        are left untouched, so a score is never overwritten.
        """
        score = float(score)
        if not (0.0 <= score <= 100.0):
            raise ValueError(f"score must be within 0..100 (got {score!r})")
        with self._conn() as conn:
            conn.execute(
                "UPDATE jobs SET match_score = ?, match_reasoning = ? WHERE id = ? AND match_score IS NULL",
                (score, reasoning, job_id),
            )

    def unnotified_above_threshold(self, min_score: float) -> list[StoredPosting]:
        """Scored, unnotified postings at or above min_score, best first."""
        return self._select(
            "WHERE notified = 0 AND match_score IS NOT NULL AND match_score >= ? ORDER BY match_score DESC, id",
            (float(min_score),),
        )

    def mark_notified(self, job_id: int) -> None:
        with self._conn() as conn:
            conn.execute("UPDATE jobs SET notified = 1 WHERE id = ?", (job_id,))

    def get(self, job_id: int) -> StoredPosting | None:
        rows = self._select("WHERE id = ?", (job_id,))
        return rows[0] if rows else None

    def top_matches(self, limit: int = 15) -> list[StoredPosting]:
        return self._select("WHERE match_score IS NOT NULL ORDER BY match_score DESC, id LIMIT ?", (int(limit),))

    def stats(self) -> StoreStats:
        with self._conn() as conn:
            total, analyzed, notified = conn.execute(
                """
                SELECT COUNT(*),
                       COUNT(match_score),
                       COALESCE(SUM(CASE WHEN notified = 1 THEN 1 ELSE 0 END), 0)
                FROM jobs
                """
            ).fetchone()
        return StoreStats(total=int(total), analyzed=int(analyzed), notified=int(notified))

    # ---- chat subscriptions ---------------------------------------------

    def register_chat(self, chat_id: int) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO bot_chats (chat_id, active, created_at) VALUES (?, 1, ?)
                ON CONFLICT(chat_id) DO UPDATE SET active = 1
                """,
                (int(chat_id), now_iso()),
            )

    def deactivate_chat(self, chat_id: int) -> None:
        with self._conn() as conn:
            conn.execute("UPDATE bot_chats SET active = 0 WHERE chat_id = ?", (int(chat_id),))

    def active_chats(self) -> list[int]:
        with self._conn() as conn:
            rows = conn.execute("SELECT chat_id FROM bot_chats WHERE active = 1 ORDER BY chat_id").fetchall()
        return [int(r[0]) for r in rows]

    def is_chat_active(self, chat_id: int) -> bool:
        with self._conn() as conn:
            row = conn.execute("SELECT active FROM bot_chats WHERE chat_id = ?", (int(chat_id),)).fetchone()
        return bool(row and row[0] == 1)

    # ---- internals ------------------------------------------------------

    def _select(self, where: str, params: tuple = ()) -> list[StoredPosting]:
        with self._conn() as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM jobs {where}", params).fetchall()
        return [_row_to_posting(r) for r in rows]

    @contextlib.contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        # isolation_level=None gives autocommit mode: one statement, one commit.
        conn = sqlite3.connect(self.sqlite_path, timeout=30.0, isolation_level=None)
        try:
            _apply_pragmas(conn)
            yield conn
        except sqlite3.Error as e:
            log_error({
                "component": "job_search.db",
                "op": "sqlite",
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise
        finally:
            conn.close()


def reset_db(sqlite_path: str) -> None:
    """Remove the DB file entirely (for pytest fixtures). Safe if it doesn't exist."""
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Internal utilities -----------------------------------------------------

_COLUMNS = (
    "id, source, external_id, title, company, url, description, location, tags, posted_at, "
    "match_score, match_reasoning, notified, created_at"
)


def _row_to_posting(row: tuple) -> StoredPosting:
    (
        job_id,
        source,
        external_id,
        title,
        company,
        url,
        description,
        location,
        tags,
        posted_at,
        match_score,
        match_reasoning,
        notified,
        created_at,
    ) = row
    try:
        tag_list = json.loads(tags) if tags else []
    except ValueError:
        tag_list = []
    return StoredPosting(
        id=int(job_id),
        source=source,
        external_id=external_id,
        title=title or "",
        company=company or "",
        url=url or "",
        description=description or "",
        location=location or "",
        tags=tuple(str(t) for t in tag_list),
        posted_at=posted_at,
        match_score=float(match_score) if match_score is not None else None,
        match_reasoning=match_reasoning,
        notified=bool(notified),
        created_at=created_at or "",
    )


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          external_id TEXT NOT NULL,
          source TEXT NOT NULL,
          title TEXT,
          company TEXT,
          url TEXT,
          description TEXT,
          location TEXT,
          tags TEXT,
          posted_at TEXT,
          match_score REAL,
          match_reasoning TEXT,
          notified INTEGER NOT NULL DEFAULT 0,
          created_at TEXT NOT NULL,
          UNIQUE (source, external_id)
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS ix_jobs_unscored ON jobs (match_score);")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS bot_chats (
          chat_id INTEGER PRIMARY KEY,
          active INTEGER NOT NULL DEFAULT 1,
          created_at TEXT NOT NULL
        );
        """
    )
