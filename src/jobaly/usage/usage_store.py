"""SQLite-backed usage log storage."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from jobaly.usage.models import RunLog

DEFAULT_DB_PATH = Path.home() / ".jobaly" / "usage.db"

_COLUMNS = (
    "id", "timestamp", "job_title", "company_name", "overall_score", "outcome",
    "warning_count", "degraded", "elapsed_seconds", "total_input_tokens",
    "total_output_tokens", "estimated_cost_usd", "success", "error_message",
)


class UsageStore:
    """SQLite-backed store for pipeline run logs with WAL mode."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS run_logs (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    job_title TEXT,
                    company_name TEXT,
                    overall_score INTEGER,
                    outcome TEXT,
                    warning_count INTEGER NOT NULL DEFAULT 0,
                    degraded INTEGER NOT NULL DEFAULT 0,
                    elapsed_seconds REAL NOT NULL DEFAULT 0.0,
                    total_input_tokens INTEGER NOT NULL DEFAULT 0,
                    total_output_tokens INTEGER NOT NULL DEFAULT 0,
                    estimated_cost_usd REAL NOT NULL DEFAULT 0.0,
                    success INTEGER NOT NULL DEFAULT 1,
                    error_message TEXT
                )
            """)

    def save_log(self, log: RunLog) -> None:
        """Persist a run log entry."""
        with self._connect() as conn:
            conn.execute(
                f"""INSERT OR REPLACE INTO run_logs ({", ".join(_COLUMNS)})
                   VALUES ({", ".join("?" for _ in _COLUMNS)})""",
                (
                    log.id,
                    log.timestamp.isoformat(),
                    log.job_title,
                    log.company_name,
                    log.overall_score,
                    log.outcome,
                    log.warning_count,
                    1 if log.degraded else 0,
                    log.elapsed_seconds,
                    log.total_input_tokens,
                    log.total_output_tokens,
                    log.estimated_cost_usd,
                    1 if log.success else 0,
                    log.error_message,
                ),
            )

    def get_logs(self, limit: int = 50) -> list[RunLog]:
        """Most recent run logs first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM run_logs ORDER BY timestamp DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_log(row) for row in rows]

    def get_summary(self) -> dict:
        """Aggregated stats across all runs."""
        with self._connect() as conn:
            row = conn.execute(
                """SELECT
                       COUNT(*),
                       SUM(total_input_tokens),
                       SUM(total_output_tokens),
                       SUM(estimated_cost_usd),
                       AVG(overall_score),
                       SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END),
                       SUM(CASE WHEN outcome = 'full' THEN 1 ELSE 0 END),
                       SUM(CASE WHEN outcome = 'partial' THEN 1 ELSE 0 END),
                       SUM(CASE WHEN outcome = 'synthesized' THEN 1 ELSE 0 END)
                   FROM run_logs"""
            ).fetchone()
        total = row[0] or 0
        return {
            "total_runs": total,
            "total_input_tokens": row[1] or 0,
            "total_output_tokens": row[2] or 0,
            "total_cost_usd": row[3] or 0.0,
            "avg_overall_score": round(row[4], 1) if row[4] is not None else None,
            "success_rate": (row[5] / total * 100) if total else 0.0,
            "outcomes": {
                "full": row[6] or 0,
                "partial": row[7] or 0,
                "synthesized": row[8] or 0,
            },
        }

    @staticmethod
    def _row_to_log(row: tuple) -> RunLog:
        return RunLog(
            id=row[0],
            timestamp=datetime.fromisoformat(row[1]),
            job_title=row[2],
            company_name=row[3],
            overall_score=row[4],
            outcome=row[5],
            warning_count=row[6],
            degraded=bool(row[7]),
            elapsed_seconds=row[8],
            total_input_tokens=row[9],
            total_output_tokens=row[10],
            estimated_cost_usd=row[11],
            success=bool(row[12]),
            error_message=row[13],
        )
