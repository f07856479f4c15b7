"""Prometheus metrics exporter for monitoring."""

import os
from pathlib import Path
from datetime import datetime
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Gauge, Info, write_to_textfile

from ..domain.models import FillReport, ReconciliationStats


class MetricsExporter:
    """Export reconciliation metrics as Prometheus textfiles."""

    def __init__(self, metrics_dir: str = "metrics"):
        self.metrics_dir = Path(metrics_dir)
        self.metrics_dir.mkdir(parents=True, exist_ok=True)
        self.metrics_file = self.metrics_dir / "tempo2redmine.prom"
        self.health_file = self.metrics_dir / "tempo2redmine_health.prom"

    def export_run_metrics(
        self,
        stats: Optional[ReconciliationStats],
        duration_ms: int,
        report: Optional[FillReport] = None,
        status: str = "success",
        error: Optional[str] = None,
    ) -> None:
        """Write the metrics of a reconciliation run (and optional gap fill)."""
        registry = CollectorRegistry()

        Gauge(
            "tempo2redmine_run_duration_seconds",
            "Duration of the last run in seconds",
            registry=registry,
        ).set(duration_ms / 1000.0)

        if stats is not None:
            values = {
                "tempo2redmine_worklogs_total": ("Tempo worklogs in the period", stats.tempo_total),
                "tempo2redmine_worklog_hours": ("Hours logged in Tempo", stats.tempo_hours),
                "tempo2redmine_ledger_entries_total": ("Redmine time entries in the period", stats.redmine_total),
                "tempo2redmine_ledger_hours": ("Hours logged in Redmine", stats.redmine_hours),
                "tempo2redmine_missing_entries": ("Worklogs missing in Redmine", stats.missing),
                "tempo2redmine_missing_hours": ("Hours missing in Redmine", stats.missing_hours),
                "tempo2redmine_matched_entries": ("Worklogs matched in Redmine", stats.matched),
                "tempo2redmine_mapping_rate": ("Percent of coded worklogs linked to a Redmine issue", stats.mapping_rate),
            }
            for name, (documentation, value) in values.items():
                Gauge(name, documentation, registry=registry).set(value)

        if report is not None:
            Gauge(
                "tempo2redmine_entries_created",
                "Time entries created by the last gap fill",
                registry=registry,
            ).set(len(report.created))
            Gauge(
                "tempo2redmine_entries_failed",
                "Time entries that failed in the last gap fill",
                registry=registry,
            ).set(len(report.failed))

        Gauge(
            "tempo2redmine_last_run_timestamp",
            "Timestamp of the last run",
            registry=registry,
        ).set(datetime.now().timestamp())

        Gauge(
            "tempo2redmine_run_success",
            "Whether the last run was successful (1=success, 0=failure)",
            registry=registry,
        ).set(1 if status == "success" else 0)

        Info("tempo2redmine_build_info", "Build information", registry=registry).info(
            {
                "version": os.getenv("APP_VERSION", "0.1.0"),
                "status": status,
                "error": error or "",
            }
        )

        write_to_textfile(str(self.metrics_file), registry)

    def export_health_metrics(self, health: Dict[str, Dict[str, str]]) -> None:
        """Write per-service health gauges from ``HealthChecker.check_all`` output."""
        registry = CollectorRegistry()

        for service, state in health.items():
            Gauge(
                f"tempo2redmine_{service}_healthy",
                f"{service.capitalize()} health status (1=healthy, 0=unhealthy)",
                registry=registry,
            ).set(1 if state.get("status") == "healthy" else 0)

        write_to_textfile(str(self.health_file), registry)
