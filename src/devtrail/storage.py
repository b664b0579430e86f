from __future__ import annotations

import os
import uuid
from typing import Any, Iterable

from .db import connect_db
from .models import (
    ALLOWED_PREDECESSORS,
    CANCELLED,
    COMPLETED,
    FAILED,
    JOB_STATUSES,
    PENDING,
    RUNNING,
    TERMINAL_STATUSES,
    Job,
    LogEntry,
)
from .utils import json_dumps, json_loads, utc_now_iso

DEFAULT_DATA_DIR = "/data"

_JOB_COLUMNS = (
    "id, job_type, status, progress, status_message, logs_json, config_json, result_json, "
    "error, created_at, started_at, completed_at"
)
_ACTIVE = (PENDING, RUNNING)


def get_state_db_path() -> str:
    data_dir = os.environ.get("DT_DATA_DIR", DEFAULT_DATA_DIR)
    return os.path.join(data_dir, "devtrail.sqlite3")


def init_db(path: str | None = None):
    return connect_db(path or get_state_db_path())


def get_setting(conn: Any, key: str, default: object) -> object:
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    if not row:
        return default
    return json_loads(row[0], default)


def set_setting(conn: Any, key: str, value: object) -> None:
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO settings (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, json_dumps(value), now),
    )
    conn.commit()


def record_heartbeat(conn: Any, key: str, now: str | None = None) -> str:
    stamp = now or utc_now_iso()
    set_setting(conn, key, stamp)
    return stamp


def get_heartbeat(conn: Any, key: str) -> str | None:
    value = get_setting(conn, key, None)
    return value if isinstance(value, str) else None


def create_job(conn: Any, job_type: str, config: dict[str, object] | None) -> str:
    job_id = _new_job_id()
    now = utc_now_iso()
    logs = [LogEntry(timestamp=now, level="info", message=f"Job created: {job_type}")]
    with conn.transaction():
        row = conn.execute("SELECT COALESCE(MAX(created_seq), 0) FROM jobs").fetchone()
        seq = int(row[0] or 0) + 1
        conn.execute(
            """
            INSERT INTO jobs
                (id, job_type, status, progress, status_message, logs_json, config_json,
                 result_json, error, created_at, created_seq, started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job_id,
                job_type,
                PENDING,
                0,
                None,
                json_dumps(logs),
                json_dumps(config or {}),
                None,
                None,
                now,
                seq,
                None,
                None,
            ),
        )
    return job_id


def get_job(conn: Any, job_id: str) -> Job | None:
    row = conn.execute(f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?", (job_id,)).fetchone()
    return _row_to_job(row) if row else None


def list_jobs(
    conn: Any,
    limit: int = 50,
    job_types: Iterable[str] | None = None,
    status: str | None = None,
) -> list[Job]:
    clauses: list[str] = []
    params: list[object] = []
    types = list(job_types or [])
    if types:
        clauses.append(f"job_type IN ({','.join(['?'] * len(types))})")
        params.extend(types)
    if status:
        clauses.append("status = ?")
        params.append(status)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    params.append(limit)
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM jobs
        {where}
        ORDER BY created_at DESC, created_seq DESC
        LIMIT ?
        """,
        tuple(params),
    )
    return [_row_to_job(row) for row in cursor.fetchall()]


def list_pending_jobs(conn: Any, limit: int = 10) -> list[Job]:
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM jobs
        WHERE status = ?
        ORDER BY created_at ASC, created_seq ASC
        LIMIT ?
        """,
        (PENDING, limit),
    )
    return [_row_to_job(row) for row in cursor.fetchall()]


def claim_next_job(conn: Any) -> Job | None:
    with conn.transaction():
        row = conn.execute(
            """
            SELECT id FROM jobs
            WHERE status = ?
            ORDER BY created_at ASC, created_seq ASC
            LIMIT 1
            """,
            (PENDING,),
        ).fetchone()
        if not row:
            return None
        claimed = _mark_running(conn, row[0])
    return get_job(conn, row[0]) if claimed else None


def claim_job(conn: Any, job_id: str) -> Job | None:
    with conn.transaction():
        claimed = _mark_running(conn, job_id)
    return get_job(conn, job_id) if claimed else None


def _mark_running(conn: Any, job_id: str) -> bool:
    cursor = conn.execute(
        """
        UPDATE jobs
        SET status = ?, started_at = COALESCE(started_at, ?)
        WHERE id = ? AND status = ?
        """,
        (RUNNING, utc_now_iso(), job_id, PENDING),
    )
    return cursor.rowcount == 1


def update_job_status(conn: Any, job_id: str, status: str) -> bool:
    if status not in ALLOWED_PREDECESSORS:
        raise ValueError(f"unsupported job status {status}")
    previous = ALLOWED_PREDECESSORS[status]
    placeholders = ",".join(["?"] * len(previous))
    now = utc_now_iso()
    if status == RUNNING:
        assignments = "status = ?, started_at = COALESCE(started_at, ?)"
    elif status == COMPLETED:
        assignments = "status = ?, completed_at = ?, progress = 100"
    else:
        assignments = "status = ?, completed_at = ?"
    cursor = conn.execute(
        f"UPDATE jobs SET {assignments} WHERE id = ? AND status IN ({placeholders})",
        (status, now, job_id, *previous),
    )
    conn.commit()
    return cursor.rowcount == 1


def update_job_progress(
    conn: Any, job_id: str, progress: int, status_message: str | None = None
) -> bool:
    value = max(0, min(100, int(progress)))
    if status_message is None:
        cursor = conn.execute(
            "UPDATE jobs SET progress = ? WHERE id = ? AND status IN (?, ?)",
            (value, job_id, *_ACTIVE),
        )
    else:
        cursor = conn.execute(
            "UPDATE jobs SET progress = ?, status_message = ? WHERE id = ? AND status IN (?, ?)",
            (value, status_message, job_id, *_ACTIVE),
        )
    conn.commit()
    return cursor.rowcount == 1


def update_job_status_message(conn: Any, job_id: str, status_message: str) -> bool:
    cursor = conn.execute(
        "UPDATE jobs SET status_message = ? WHERE id = ? AND status IN (?, ?)",
        (status_message, job_id, *_ACTIVE),
    )
    conn.commit()
    return cursor.rowcount == 1


def save_job_logs(conn: Any, job_id: str, logs: list[LogEntry]) -> bool:
    cursor = conn.execute(
        "UPDATE jobs SET logs_json = ? WHERE id = ? AND status IN (?, ?)",
        (json_dumps(logs), job_id, *_ACTIVE),
    )
    conn.commit()
    return cursor.rowcount == 1


def set_job_result(conn: Any, job_id: str, result: dict[str, object]) -> bool:
    cursor = conn.execute(
        "UPDATE jobs SET result_json = ? WHERE id = ? AND status = ?",
        (json_dumps(result), job_id, RUNNING),
    )
    conn.commit()
    return cursor.rowcount == 1


def set_job_error(conn: Any, job_id: str, error: str) -> bool:
    cursor = conn.execute(
        "UPDATE jobs SET error = ? WHERE id = ? AND status IN (?, ?)",
        (error, job_id, *_ACTIVE),
    )
    conn.commit()
    return cursor.rowcount == 1


def fail_job(conn: Any, job_id: str, error: str) -> bool:
    cursor = conn.execute(
        """
        UPDATE jobs
        SET status = ?, error = ?, completed_at = ?
        WHERE id = ? AND status IN (?, ?)
        """,
        (FAILED, error, utc_now_iso(), job_id, *_ACTIVE),
    )
    conn.commit()
    return cursor.rowcount == 1


def cancel_job(conn: Any, job_id: str, reason: str) -> bool:
    cursor = conn.execute(
        """
        UPDATE jobs
        SET status = ?, error = ?, completed_at = ?
        WHERE id = ? AND status IN (?, ?)
        """,
        (CANCELLED, reason, utc_now_iso(), job_id, *_ACTIVE),
    )
    conn.commit()
    return cursor.rowcount == 1


def delete_terminal_jobs_before(conn: Any, cutoff_iso: str) -> int:
    statuses = sorted(TERMINAL_STATUSES)
    cursor = conn.execute(
        f"""
        DELETE FROM jobs
        WHERE status IN ({','.join(['?'] * len(statuses))})
          AND completed_at IS NOT NULL
          AND completed_at < ?
        """,
        (*statuses, cutoff_iso),
    )
    conn.commit()
    return int(cursor.rowcount or 0)


def delete_jobs_by_status(conn: Any, statuses: Iterable[str]) -> int:
    values = [status for status in statuses if status in TERMINAL_STATUSES]
    if not values:
        return 0
    cursor = conn.execute(
        f"DELETE FROM jobs WHERE status IN ({','.join(['?'] * len(values))})",
        tuple(values),
    )
    conn.commit()
    return int(cursor.rowcount or 0)


def count_jobs_by_status(conn: Any) -> dict[str, int]:
    counts = {status: 0 for status in JOB_STATUSES}
    for status, count in conn.execute(
        "SELECT status, COUNT(*) FROM jobs GROUP BY status"
    ).fetchall():
        counts[status] = int(count)
    return counts


def _new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


def _row_to_job(row: tuple) -> Job:
    (
        job_id,
        job_type,
        status,
        progress,
        status_message,
        logs_json,
        config_json,
        result_json,
        error,
        created_at,
        started_at,
        completed_at,
    ) = row
    logs = [
        LogEntry(
            timestamp=str(item.get("timestamp", "")),
            level=str(item.get("level", "info")),
            message=str(item.get("message", "")),
        )
        for item in json_loads(logs_json, [])
        if isinstance(item, dict)
    ]
    config = json_loads(config_json, {})
    return Job(
        id=job_id,
        job_type=job_type,
        status=status,
        progress=int(progress or 0),
        status_message=status_message,
        logs=logs,
        config=config if isinstance(config, dict) else {},
        result=json_loads(result_json, None),
        error=error,
        created_at=created_at,
        started_at=started_at,
        completed_at=completed_at,
    )
