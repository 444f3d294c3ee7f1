"""SQLite cache for bullet rewrites (TTL 30 days)."""

from __future__ import annotations

import hashlib
import json
import sqlite3
import time
from pathlib import Path
from typing import Sequence

DEFAULT_DB_PATH = Path.home() / ".jobaly" / "cache.db"
DEFAULT_TTL_DAYS = 30


def rewrite_key(
    bullets: Sequence[str],
    job_title: str,
    company: str,
    keywords: Sequence[str] = (),
) -> str:
    """Stable hash of everything that influences a rewrite."""
    payload = json.dumps(
        {
            "bullets": list(bullets),
            "job_title": job_title.strip().lower(),
            "company": company.strip().lower(),
            "keywords": sorted(k.lower() for k in keywords),
        },
        ensure_ascii=False,
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class RewriteCache:
    """SQLite-backed rewrite cache with TTL expiration."""

    def __init__(
        self,
        db_path: str | Path = DEFAULT_DB_PATH,
        ttl_days: int = DEFAULT_TTL_DAYS,
    ):
        self.db_path = Path(db_path).expanduser()
        self.ttl_seconds = ttl_days * 86400
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS rewrite_cache (
                    cache_key TEXT PRIMARY KEY,
                    bullets_json TEXT NOT NULL,
                    cached_at REAL NOT NULL
                )
            """)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def get(self, key: str) -> list[str] | None:
        """Get cached rewritten bullets if not expired."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT bullets_json, cached_at FROM rewrite_cache WHERE cache_key = ?",
                (key,),
            ).fetchone()

        if row is None:
            return None

        bullets_json, cached_at = row
        if time.time() - cached_at > self.ttl_seconds:
            self.delete(key)
            return None

        return json.loads(bullets_json)

    def put(self, key: str, bullets: Sequence[str]) -> None:
        """Cache rewritten bullets."""
        with self._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO rewrite_cache
                   (cache_key, bullets_json, cached_at)
                   VALUES (?, ?, ?)""",
                (key, json.dumps(list(bullets), ensure_ascii=False), time.time()),
            )

    def delete(self, key: str) -> None:
        """Delete a cached rewrite."""
        with self._connect() as conn:
            conn.execute("DELETE FROM rewrite_cache WHERE cache_key = ?", (key,))

    def clear(self) -> int:
        """Clear all cached entries. Returns count of deleted rows."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM rewrite_cache")
            return cursor.rowcount

    def stats(self) -> dict:
        """Return cache statistics."""
        with self._connect() as conn:
            total = conn.execute("SELECT COUNT(*) FROM rewrite_cache").fetchone()[0]
            expired = conn.execute(
                "SELECT COUNT(*) FROM rewrite_cache WHERE ? - cached_at > ?",
                (time.time(), self.ttl_seconds),
            ).fetchone()[0]
        return {"total": total, "expired": expired, "active": total - expired}
