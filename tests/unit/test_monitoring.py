"""Tests for health checks and metrics export."""

import asyncio
from unittest.mock import AsyncMock, Mock

from tempo2redmine.domain.models import FillReport, ReconciliationStats
from tempo2redmine.monitoring.health_check import HealthChecker
from tempo2redmine.monitoring.metrics_exporter import MetricsExporter


def client(result=True, error=None):
    mock = Mock()
    mock.test_connection = AsyncMock(return_value=result, side_effect=error)
    return mock


def test_all_healthy():
    status = asyncio.run(HealthChecker(client(), client(), client()).check_all())

    assert status["overall"]["status"] == "healthy"
    assert status["jira"] == {"status": "healthy", "message": "OK"}


def test_failures_are_reported_per_service():
    checker = HealthChecker(client(False), client(error=RuntimeError("dns")), client())

    status = asyncio.run(checker.check_all())

    assert status["tempo"]["message"] == "Connection test failed"
    assert status["jira"] == {"status": "unhealthy", "message": "dns"}
    assert status["redmine"]["status"] == "healthy"
    assert status["overall"]["status"] == "unhealthy"


def test_run_metrics_file(tmp_path):
    exporter = MetricsExporter(str(tmp_path))
    stats = ReconciliationStats(tempo_total=4, missing=2, missing_hours=3.5, mapping_rate=50.0)

    exporter.export_run_metrics(stats, 1500, report=FillReport())

    text = (tmp_path / "tempo2redmine.prom").read_text()
    assert "tempo2redmine_missing_entries 2.0" in text
    assert "tempo2redmine_missing_hours 3.5" in text
    assert "tempo2redmine_run_duration_seconds 1.5" in text
    assert "tempo2redmine_entries_created 0.0" in text
    assert "tempo2redmine_run_success 1.0" in text


def test_failed_run_metrics(tmp_path):
    exporter = MetricsExporter(str(tmp_path))

    exporter.export_run_metrics(None, 10, status="error", error="Tempo down")

    text = (tmp_path / "tempo2redmine.prom").read_text()
    assert "tempo2redmine_run_success 0.0" in text
    assert "tempo2redmine_missing_entries" not in text
