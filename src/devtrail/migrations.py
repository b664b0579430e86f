from __future__ import annotations

import logging
from typing import Any, Callable

from .utils import utc_now_iso

Migration = Callable[[Any], None]


def apply_migrations(conn: Any) -> None:
    logger = logging.getLogger("devtrail.migrations")
    if conn.backend == "sqlite":
        conn.execute("BEGIN IMMEDIATE")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied = {
        row[0]
        for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
    }
    try:
        for version, migration in _get_migrations():
            if version in applied:
                logger.debug("migration_skipped version=%s", version)
                continue
            migration(conn)
            conn.execute(
                "INSERT OR IGNORE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (version, utc_now_iso()),
            )
            logger.info("migration_applied version=%s", version)
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _get_migrations() -> list[tuple[str, Migration]]:
    return [
        ("001_settings", _migration_settings),
        ("002_jobs", _migration_jobs),
        ("003_criteria_evidence", _migration_criteria_evidence),
        ("004_external_records", _migration_external_records),
        ("005_monthly_insights", _migration_monthly_insights),
        ("006_credentials", _migration_credentials),
        ("007_review_analyses", _migration_review_analyses),
    ]


def _migration_settings(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


def _migration_jobs(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            job_type TEXT NOT NULL,
            status TEXT NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0,
            status_message TEXT NULL,
            logs_json TEXT NOT NULL DEFAULT '[]',
            config_json TEXT NULL,
            result_json TEXT NULL,
            error TEXT NULL,
            created_at TEXT NOT NULL,
            created_seq INTEGER NOT NULL,
            started_at TEXT NULL,
            completed_at TEXT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs(status, created_at, created_seq)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_jobs_type ON jobs(job_type)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_jobs_completed_at ON jobs(completed_at)")


def _migration_criteria_evidence(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS criteria (
            id INTEGER PRIMARY KEY,
            area TEXT NOT NULL,
            subarea TEXT NOT NULL,
            description TEXT NOT NULL,
            pr_detectable INTEGER NOT NULL DEFAULT 1
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS evidence (
            id TEXT PRIMARY KEY,
            source TEXT NOT NULL,
            external_id TEXT NOT NULL,
            role TEXT NOT NULL,
            evidence_type TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NULL,
            summary TEXT NULL,
            category TEXT NULL,
            scope TEXT NULL,
            occurred_at TEXT NULL,
            github_pr_id TEXT NULL,
            jira_ticket_id TEXT NULL,
            job_id TEXT NULL,
            analyzed_at TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(source, external_id, role)
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_evidence_occurred ON evidence(occurred_at)")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS evidence_criteria (
            evidence_id TEXT NOT NULL REFERENCES evidence(id) ON DELETE CASCADE,
            criterion_id INTEGER NOT NULL REFERENCES criteria(id),
            confidence REAL NOT NULL,
            explanation TEXT NULL,
            created_at TEXT NOT NULL,
            PRIMARY KEY (evidence_id, criterion_id)
        )
        """
    )


def _migration_external_records(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS github_prs (
            id TEXT PRIMARY KEY,
            repo TEXT NOT NULL,
            number INTEGER NOT NULL,
            user_role TEXT NOT NULL,
            title TEXT NOT NULL,
            body TEXT NULL,
            url TEXT NULL,
            author TEXT NULL,
            state TEXT NULL,
            merged_at TEXT NULL,
            additions INTEGER NOT NULL DEFAULT 0,
            deletions INTEGER NOT NULL DEFAULT 0,
            changed_files INTEGER NOT NULL DEFAULT 0,
            components_json TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(repo, number, user_role)
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jira_tickets (
            id TEXT PRIMARY KEY,
            key TEXT NOT NULL,
            user_role TEXT NOT NULL,
            summary TEXT NOT NULL,
            description TEXT NULL,
            issue_type TEXT NULL,
            status TEXT NULL,
            priority TEXT NULL,
            story_points REAL NULL,
            created TEXT NULL,
            resolved TEXT NULL,
            duration_days INTEGER NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(key, user_role)
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS pr_jira_links (
            pr_id TEXT NOT NULL REFERENCES github_prs(id) ON DELETE CASCADE,
            jira_key TEXT NOT NULL,
            created_at TEXT NOT NULL,
            PRIMARY KEY (pr_id, jira_key)
        )
        """
    )


def _migration_monthly_insights(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS monthly_insights (
            month TEXT PRIMARY KEY,
            total_prs INTEGER NOT NULL DEFAULT 0,
            total_changes INTEGER NOT NULL DEFAULT 0,
            components_count INTEGER NOT NULL DEFAULT 0,
            categories_json TEXT NOT NULL DEFAULT '{}',
            strengths_json TEXT NOT NULL DEFAULT '[]',
            weaknesses_json TEXT NOT NULL DEFAULT '[]',
            tags_json TEXT NOT NULL DEFAULT '[]',
            summary TEXT NOT NULL,
            generated_at TEXT NOT NULL
        )
        """
    )


def _migration_credentials(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS credentials (
            name TEXT PRIMARY KEY,
            key_id TEXT NOT NULL,
            value_enc TEXT NOT NULL,
            value_last4 TEXT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


def _migration_review_analyses(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS review_analyses (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            year INTEGER NULL,
            review_type TEXT NOT NULL,
            source TEXT NULL,
            original_text TEXT NOT NULL,
            summary TEXT NOT NULL,
            themes_json TEXT NOT NULL DEFAULT '[]',
            strengths_json TEXT NOT NULL DEFAULT '[]',
            growth_areas_json TEXT NOT NULL DEFAULT '[]',
            achievements_json TEXT NOT NULL DEFAULT '[]',
            confidence_score INTEGER NOT NULL,
            job_id TEXT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
