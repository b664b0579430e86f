import pytest

from devtrail.errors import ConfigurationError, DeprecatedJobType, UnknownJobType
from devtrail.job_configs import AnalyzeEvidenceConfig, parse_job_config, validate_job_config
from devtrail.registry import JobRegistry, build_default_registry
from devtrail.storage import claim_next_job, create_job, init_db
from devtrail.job_logger import JobLogger


def test_default_registry_names():
    registry = build_default_registry()
    assert sorted(registry.names) == [
        "analyze_evidence",
        "analyze_review",
        "generate_insight",
        "sync_github",
        "sync_jira",
    ]


def test_unknown_type_lists_registered_types():
    registry = build_default_registry()
    with pytest.raises(UnknownJobType) as excinfo:
        registry.check("bogus")
    message = str(excinfo.value)
    assert message.startswith("Unknown job type: bogus.")
    assert "sync_github" in message


def test_deprecated_type_names_replacements():
    registry = build_default_registry()
    with pytest.raises(DeprecatedJobType) as excinfo:
        registry.check("github_sync")
    assert str(excinfo.value) == (
        "Job type 'github_sync' is deprecated. Please use sync_github or sync_jira instead."
    )
    assert registry.is_deprecated("report_generation")
    assert registry.describe("goal_progress").startswith("Deprecated")


def test_register_rejects_duplicates_and_deprecated_names():
    registry = JobRegistry()
    registry.register("echo", lambda conn, job, cfg, job_logger: {})
    with pytest.raises(ValueError):
        registry.register("echo", lambda conn, job, cfg, job_logger: {})
    with pytest.raises(ValueError):
        registry.register("jira_sync", lambda conn, job, cfg, job_logger: {})


def test_dispatch_passes_raw_config_for_unschematized_types(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    seen = {}

    def handler(conn, job, cfg, job_logger):
        seen["cfg"] = cfg
        return {"ok": True}

    registry = JobRegistry()
    registry.register("echo", handler)
    create_job(conn, "echo", {"value": 1})
    job = claim_next_job(conn)
    assert registry.dispatch(conn, job, JobLogger.for_job(conn, job)) == {"ok": True}
    assert seen["cfg"] == {"value": 1}


def test_job_config_validation():
    assert validate_job_config("sync_github", {"repositories": ["org/repo"]}) == {
        "repositories": ["org/repo"]
    }
    with pytest.raises(ConfigurationError):
        validate_job_config("sync_github", {"repositories": ["not a repo"]})
    with pytest.raises(ConfigurationError):
        validate_job_config("sync_jira", {"unexpected": True})
    with pytest.raises(ConfigurationError):
        validate_job_config("analyze_evidence", {})
    with pytest.raises(ConfigurationError):
        parse_job_config("generate_insight", {"month": "2024-13"})


def test_analyze_config_accepts_single_id():
    cfg = parse_job_config("analyze_evidence", {"evidence_id": "ev1"})
    assert cfg == AnalyzeEvidenceConfig(evidence_ids=["ev1"], force_reanalysis=False)
