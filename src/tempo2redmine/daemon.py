"""Background daemon for scheduled reconciliation."""

import asyncio
import logging
import time
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from tempo2redmine.config import Config
from tempo2redmine.domain.models import FillReport
from tempo2redmine.factories.client_factory import ClientFactory
from tempo2redmine.history import History
from tempo2redmine.mapping.project_mappings import ProjectMappingStore
from tempo2redmine.monitoring.metrics_exporter import MetricsExporter
from tempo2redmine.services.reconciliation_service import (
    ReconciliationRun,
    ReconciliationService,
)
from tempo2redmine.utils.date_parser import format_period, get_current_month
from tempo2redmine.utils.logging import StructuredLogger

logger = logging.getLogger(__name__)


class ReconcileDaemon:
    """Manages scheduled reconciliation of the current month."""

    def __init__(
        self,
        config: Config,
        service: Optional[ReconciliationService] = None,
        history: Optional[History] = None,
        metrics_exporter: Optional[MetricsExporter] = None,
    ) -> None:
        """Initialize daemon.

        Args:
            config: Application configuration
            service: Reconciliation service, built from config when omitted
            history: Run history, built from config when omitted
            metrics_exporter: Metrics exporter, built from config when omitted
        """
        self.config = config
        self.scheduler = BackgroundScheduler()
        self.history = history or History(config.history_file)
        self.project_mappings = ProjectMappingStore(config.mappings_file)
        self.service = service or ClientFactory.create_reconciliation_service(
            config,
            project_mappings=self.project_mappings,
            structured_logger=StructuredLogger(config.sync["log_dir"]),
        )
        self.metrics_exporter = metrics_exporter or MetricsExporter(config.sync["metrics_dir"])
        self.last_run: Optional[ReconciliationRun] = None

    def _reconcile_job(self) -> None:
        logger.info("Starting scheduled reconciliation job...")
        self.reconcile_now(auto_fill=bool(self.config.sync.get("auto_fill")))

    def reconcile_now(self, auto_fill: bool = False) -> Optional[ReconciliationRun]:
        """Reconcile the current month immediately, optionally filling gaps.

        Returns:
            The run, or None if the reconciliation failed
        """
        start_date, end_date = get_current_month()
        period = format_period(start_date, end_date)
        start_time = time.time()

        try:
            outcome = asyncio.run(self.service.reconcile(start_date, end_date))
        except Exception as e:
            duration = time.time() - start_time
            self.history.record_run("reconcile", False, period, error=str(e), duration_seconds=duration)
            self.metrics_exporter.export_run_metrics(None, int(duration * 1000), status="error", error=str(e))
            logger.error(f"Reconciliation job failed with exception: {e}")
            return None

        if not outcome.success:
            duration = time.time() - start_time
            self.history.record_run(
                "reconcile", False, period, error=outcome.error, duration_seconds=duration
            )
            self.metrics_exporter.export_run_metrics(
                None, int(duration * 1000), status="error", error=outcome.error
            )
            logger.error(f"Reconciliation failed: {outcome.error}")
            return None

        run: ReconciliationRun = outcome.value
        stats = run.result.stats
        report: Optional[FillReport] = None
        if auto_fill and run.result.missing_in_redmine:
            report = asyncio.run(run.create_all())

        duration = time.time() - start_time
        self.history.record_run(
            "fill" if report else "reconcile",
            success=not report or not report.failed,
            period=period,
            worklog_total=stats.tempo_total,
            ledger_total=stats.redmine_total,
            missing=stats.missing,
            missing_hours=stats.missing_hours,
            created=len(report.created) if report else 0,
            failed=len(report.failed) if report else 0,
            duration_seconds=duration,
            details=report.errors if report else None,
        )
        self.metrics_exporter.export_run_metrics(stats, int(duration * 1000), report=report)
        logger.info(
            f"Reconciliation completed in {duration:.2f}s: matched={stats.matched}, "
            f"missing={stats.missing}, created={len(report.created) if report else 0}"
        )
        self.last_run = run
        return run

    def start(self) -> None:
        """Start the daemon."""
        logger.info("Starting ReconcileDaemon...")

        schedule = self.config.sync.get("schedule", "0 8 * * *")
        logger.info(f"Scheduling reconciliation with cron: {schedule}")

        self.scheduler.add_job(
            self._reconcile_job,
            "cron",
            **self._parse_cron(schedule),
            id="reconcile_job",
            name="Tempo to Redmine reconciliation",
        )

        self.scheduler.start()
        logger.info("ReconcileDaemon started")

    def stop(self) -> None:
        """Stop the daemon."""
        logger.info("Stopping ReconcileDaemon...")
        self.scheduler.shutdown(wait=True)
        logger.info("ReconcileDaemon stopped")

    @staticmethod
    def _parse_cron(cron_string: str) -> dict:
        """Parse cron string to APScheduler kwargs.

        Args:
            cron_string: Cron format string (minute hour day month day_of_week)

        Returns:
            Dictionary for APScheduler
        """
        parts = cron_string.split()
        if len(parts) != 5:
            logger.warning(f"Invalid cron format: {cron_string}, using daily at 8 AM")
            return {"hour": 8, "minute": 0}

        minute, hour, day, month, day_of_week = parts
        return {
            "minute": minute if minute != "*" else 0,
            "hour": hour,
            "day": day,
            "month": month,
            "day_of_week": day_of_week,
        }
