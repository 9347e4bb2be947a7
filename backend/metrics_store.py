"""Persisted metrics lookup and upsert, backed by SQLite."""

import json

import database


def upsert_metrics(user_id: str, repository: str, kind: str, metrics: dict, computed_at: float) -> None:
    """Insert or replace the stored metrics for (user, repository, kind)."""
    conn = database.get_db()
    conn.execute(
        """INSERT INTO pr_metrics (user_id, repository, kind, metrics, computed_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(user_id, repository, kind) DO UPDATE SET
               metrics = excluded.metrics,
               computed_at = excluded.computed_at,
               updated_at = datetime('now')""",
        (user_id, repository, kind, json.dumps(metrics), computed_at),
    )
    conn.commit()


def get_metrics(user_id: str, repository: str, kind: str) -> tuple[dict, float] | None:
    """Return (metrics, computed_at) or None if nothing is stored."""
    row = database.get_db().execute(
        "SELECT metrics, computed_at FROM pr_metrics WHERE user_id = ? AND repository = ? AND kind = ?",
        (user_id, repository, kind),
    ).fetchone()
    if row is None:
        return None
    return json.loads(row["metrics"]), row["computed_at"]


def list_repositories(user_id: str) -> list[str]:
    """Repositories the user has stored metrics for, most recent first."""
    rows = database.get_db().execute(
        """SELECT repository, MAX(computed_at) AS last FROM pr_metrics
           WHERE user_id = ? GROUP BY repository ORDER BY last DESC""",
        (user_id,),
    ).fetchall()
    return [r["repository"] for r in rows]
