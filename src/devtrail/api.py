from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Literal

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
import uvicorn
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import ConfigError
from .errors import ConfigurationError, DeprecatedJobType, InvalidTransition, UnknownJobType
from .job_configs import validate_job_config
from .processor import (
    cancel_job,
    cleanup_old_jobs,
    clear_failed_jobs,
    get_job_status,
    job_stats,
    trigger_job_processing,
    worker_health,
)
from .registry import build_default_registry
from .storage import create_job, init_db, list_jobs
from .utils import configure_logging, log_event

app = FastAPI(title="DevTrail Jobs API")
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
logger = logging.getLogger("devtrail.api")


def _require_admin_token(request: Request) -> None:
    token = os.environ.get("DT_ADMIN_TOKEN")
    if not token:
        return
    if request.headers.get("X-Admin-Token") != token:
        raise HTTPException(status_code=401, detail="unauthorized")


@contextmanager
def _db() -> Iterator[Any]:
    conn = init_db()
    try:
        yield conn
    finally:
        conn.close()


class JobRequest(BaseModel):
    job_type: str
    config: dict[str, Any] = Field(default_factory=dict)


class SyncAgentRequest(BaseModel):
    agent_type: Literal["github", "jira"]
    username: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    repositories: list[str] | None = None
    projects: list[str] | None = None
    dry_run: bool = False
    update_existing: bool = False


def _job_summary(job) -> dict[str, Any]:
    return {
        "id": job.id,
        "type": job.job_type,
        "status": job.status,
        "progress": job.progress,
        "status_message": job.status_message,
        "error": job.error,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }


def _enqueue(job_type: str, config: dict[str, Any]) -> dict[str, Any]:
    try:
        build_default_registry().check(job_type)
        payload = validate_job_config(job_type, config)
    except (UnknownJobType, DeprecatedJobType, ConfigurationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with _db() as conn:
        job_id = create_job(conn, job_type, payload)
    log_event(logger, logging.INFO, "job_enqueued", job_id=job_id, job_type=job_type)
    processing = trigger_job_processing(job_id)
    return {
        "job_id": job_id,
        "job_type": job_type,
        "status": "PENDING",
        "processing": "immediate" if processing else "queued",
    }


@app.get("/health")
def health() -> dict[str, object]:
    return {"ok": True, "time": datetime.now(tz=timezone.utc).isoformat()}


@app.post("/jobs", status_code=201, dependencies=[Depends(_require_admin_token)])
def jobs_create(payload: JobRequest) -> dict[str, Any]:
    return _enqueue(payload.job_type, payload.config)


@app.post("/sync/agent", status_code=201, dependencies=[Depends(_require_admin_token)])
def sync_agent(payload: SyncAgentRequest) -> dict[str, Any]:
    config: dict[str, Any] = {"dry_run": payload.dry_run, "update_existing": payload.update_existing}
    for key in ("start_date", "end_date"):
        value = getattr(payload, key)
        if value:
            config[key] = value
    if payload.agent_type == "github":
        if payload.username:
            config["username"] = payload.username
        if payload.repositories:
            config["repositories"] = payload.repositories
        return _enqueue("sync_github", config)
    if payload.projects:
        config["projects"] = payload.projects
    return _enqueue("sync_jira", config)


@app.get("/jobs")
def jobs_list(limit: int = 50, job_type: str | None = None, status: str | None = None) -> dict[str, Any]:
    with _db() as conn:
        jobs = list_jobs(conn, limit=limit, job_types=[job_type] if job_type else None, status=status)
    return {"jobs": [_job_summary(job) for job in jobs]}


@app.get("/jobs/stats")
def jobs_stats() -> dict[str, int]:
    with _db() as conn:
        return job_stats(conn)


@app.post("/jobs/clear-failed", dependencies=[Depends(_require_admin_token)])
def jobs_clear_failed() -> dict[str, int]:
    with _db() as conn:
        return {"deleted": clear_failed_jobs(conn)}


@app.post("/jobs/cleanup", dependencies=[Depends(_require_admin_token)])
def jobs_cleanup(days: int = 30) -> dict[str, int]:
    if days < 0:
        raise HTTPException(status_code=400, detail="days must be >= 0")
    with _db() as conn:
        return {"deleted": cleanup_old_jobs(conn, days_to_keep=days)}


@app.get("/jobs/{job_id}")
def jobs_get(job_id: str) -> dict[str, Any]:
    with _db() as conn:
        job = get_job_status(conn, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job_not_found")
    return job


@app.post("/jobs/{job_id}/cancel", dependencies=[Depends(_require_admin_token)])
def jobs_cancel(job_id: str) -> dict[str, Any]:
    with _db() as conn:
        try:
            return cancel_job(conn, job_id)
        except LookupError as exc:
            raise HTTPException(status_code=404, detail="job_not_found") from exc
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.get("/worker/health")
def worker_health_get() -> dict[str, Any]:
    with _db() as conn:
        try:
            return worker_health(conn)
        except ConfigError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc


def main() -> None:
    configure_logging("devtrail.api")
    uvicorn.run(
        app,
        host=os.environ.get("DT_API_HOST", "0.0.0.0"),
        port=int(os.environ.get("DT_API_PORT", "8080")),
        log_config=None,
    )
