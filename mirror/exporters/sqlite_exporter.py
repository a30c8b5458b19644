"""
mirror/exporters/sqlite_exporter.py
Anonymized crisis-incident sink — the storage collaborator behind the
crisis detector's hook. The detector never writes; callers wire
SqliteIncidentSink(db_path) in as on_detected.

SCHEMA DESIGN NOTES:
- crisis_incidents holds category + timestamp ONLY. No message content,
  no student identity, no session id. Do not add columns that could
  re-identify a student.
- mirror_meta stores schema version and last write time
- Timestamps stored as ISO-8601 TEXT (UTC)
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from mirror.models.record import CRISIS_OTHERS, CRISIS_SELF, CrisisIncident

logger = logging.getLogger(__name__)

SCHEMA_VERSION = '1.0'
_VALID_CATEGORIES = (CRISIS_SELF, CRISIS_OTHERS)


def export(
    db_path:    Path,
    incidents:  Optional[Iterable[CrisisIncident]] = None,
) -> Path:
    """
    Append incidents to the SQLite database. Creates schema if needed.
    Rolls back and re-raises on failure. Returns db_path.
    """
    incidents = [i for i in (incidents or []) if i.category in _VALID_CATEGORIES]

    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")   # Safe concurrent reads

    try:
        _create_schema(conn)
        conn.executemany(
            "INSERT INTO crisis_incidents (category, detected_at) VALUES (?, ?)",
            [(i.category, i.detected_at) for i in incidents],
        )
        _write_meta(conn)
        conn.commit()
        logger.info(f"Incident export complete → {db_path} ({len(incidents)} row(s))")
    except Exception as e:
        conn.rollback()
        logger.error(f"Incident export failed: {e}")
        raise
    finally:
        conn.close()

    return db_path


def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS mirror_meta (
            id              INTEGER PRIMARY KEY CHECK (id = 1),
            schema_version  TEXT    NOT NULL,
            updated_at      TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS crisis_incidents (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            category        TEXT    NOT NULL CHECK (category IN ('self', 'others')),
            detected_at     TEXT    NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_incidents_detected_at
            ON crisis_incidents(detected_at);
    """)


def _write_meta(conn: sqlite3.Connection) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO mirror_meta (id, schema_version, updated_at) VALUES (1, ?, ?)",
        (SCHEMA_VERSION, datetime.now(timezone.utc).isoformat()),
    )


class SqliteIncidentSink:
    """Callable incident hook: pass an instance as screen_message(on_detected=...)."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def __call__(self, incident: CrisisIncident) -> None:
        export(self.db_path, [incident])


def incident_counts(db_path: Path, since: Optional[str] = None) -> Dict[str, int]:
    """Counts per category, optionally only incidents at or after `since` (ISO)."""
    counts = {CRISIS_SELF: 0, CRISIS_OTHERS: 0}
    if not Path(db_path).exists():
        return counts

    sql = "SELECT category, COUNT(*) FROM crisis_incidents"
    params: List[str] = []
    if since:
        sql += " WHERE detected_at >= ?"
        params.append(since)
    sql += " GROUP BY category"

    conn = sqlite3.connect(str(db_path))
    try:
        for category, n in conn.execute(sql, params).fetchall():
            counts[category] = n
    except sqlite3.OperationalError as e:
        logger.warning(f"Incident table unreadable in {db_path}: {e}")
    finally:
        conn.close()
    return counts
