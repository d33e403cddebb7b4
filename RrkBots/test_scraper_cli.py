"""
Tests for the click command-line interface.
"""

import aiohttp
import pytest
from click.testing import CliRunner

import scraper_cli
from config_schemas import COMPANY_COLUMNS, WorkerSummary
from csv_export import append_rows
from pagination import CheckpointManager


@pytest.fixture
def runner(restore_logging):
    return CliRunner()


def invoke(runner, tmp_path, *args, **kwargs):
    return runner.invoke(scraper_cli.cli, ["--output-dir", str(tmp_path), *args], **kwargs)


def test_run_reports_worker_summary(runner, tmp_path, monkeypatch):
    calls = {}

    async def fake_run_workers(combinations, workers, config):
        calls.update(count=len(combinations), workers=workers, notices=config.scrape_notices)
        return [
            WorkerSummary(worker_id="Worker-0", assigned=17, completed=17),
            WorkerSummary(worker_id="Worker-1", assigned=16, completed=15, failed=["ی"]),
        ]

    monkeypatch.setattr(scraper_cli, "run_workers", fake_run_workers)

    result = invoke(runner, tmp_path, "run", "--length", "1", "--workers", "2", "--no-notices")

    assert result.exit_code == 0, result.output
    assert calls == {"count": 33, "workers": 2, "notices": False}
    assert "Worker Summary" in result.output
    assert "ی" in result.output


def test_run_long_length_needs_confirmation(runner, tmp_path, monkeypatch):
    async def fail_run_workers(*args, **kwargs):
        raise AssertionError("should not run")

    monkeypatch.setattr(scraper_cli, "run_workers", fail_run_workers)

    result = invoke(runner, tmp_path, "run", "--length", "4", "--workers", "1", input="n\n")

    assert result.exit_code == 0
    assert "1,185,921 combinations" in result.output
    assert "Aborted." in result.output


def test_run_rejects_non_positive_values(runner, tmp_path):
    result = invoke(runner, tmp_path, "run", "--length", "0", "--workers", "1")

    assert result.exit_code != 0


def test_status(runner, tmp_path):
    assert "No checkpoint" in invoke(runner, tmp_path, "status", "آب").output

    CheckpointManager(tmp_path).mark_completed("آب")
    result = invoke(runner, tmp_path, "status", "آب")

    assert result.exit_code == 0
    assert "completed" in result.output


def test_consolidate(runner, tmp_path):
    append_rows(tmp_path / "آب" / "company_data.csv", [{"companyName": "الف"}], COMPANY_COLUMNS)

    result = invoke(runner, tmp_path, "consolidate")

    assert result.exit_code == 0, result.output
    assert (tmp_path / "all_company_data.csv").exists()


def test_enrich_notices(runner, tmp_path):
    source = tmp_path / "extracted_data.csv"
    append_rows(source, [{"url": "u", "content": "به شماره ثبت 6686"}], ["url", "content"])
    target = tmp_path / "out.csv"

    result = invoke(runner, tmp_path, "enrich-notices", str(source), "--output", str(target))

    assert result.exit_code == 0, result.output
    assert "6686" in target.read_text(encoding="utf-8")


def test_search_skips_completed_query(runner, tmp_path):
    CheckpointManager(tmp_path).mark_completed("آب")

    result = invoke(runner, tmp_path, "search", "آب")

    assert result.exit_code == 0
    assert "already completed" in result.output


def test_search_network_failure_exits_with_error(runner, tmp_path, monkeypatch):
    async def failing_search(query, config, force=False):
        raise aiohttp.ClientConnectionError("connection refused")

    monkeypatch.setattr(scraper_cli, "search_once", failing_search)

    result = invoke(runner, tmp_path, "search", "آب")

    assert result.exit_code == 1
    assert "Search failed" in result.output
    assert "connection refused" in result.output
