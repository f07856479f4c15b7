"""Structured logging setup for machine-readable logs."""

import json
import logging
import structlog
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional


class StructuredLogger:
    """Handles structured JSON logging for reconciliation runs."""

    def __init__(self, log_dir: str = "logs"):
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / "reconcile.jsonl"

        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="ISO"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self.logger = structlog.get_logger("tempo2redmine")

    def log_reconcile_start(self, period: Dict[str, str], strict: bool = False) -> None:
        self.logger.info(
            "reconcile_started",
            operation="reconcile",
            period=period,
            strict=strict,
            timestamp=datetime.now().isoformat(),
        )

    def log_reconcile_complete(
        self,
        duration_ms: int,
        period: Dict[str, str],
        stats: Dict[str, Any],
        status: str = "success",
        error: Optional[str] = None,
    ) -> None:
        """Log reconciliation completion and append it to the JSONL file."""
        log_entry = {
            "event": "reconcile_completed",
            "operation": "reconcile",
            "status": status,
            "duration_ms": duration_ms,
            "period": period,
            "stats": stats,
            "timestamp": datetime.now().isoformat(),
        }

        if error:
            log_entry["error"] = error

        self.logger.info(**log_entry)
        self._write_to_file(log_entry)

    def log_gap_fill_complete(self, duration_ms: int, period: Dict[str, str], report: Dict[str, Any]) -> None:
        """Log a finished gap fill and append it to the JSONL file."""
        log_entry = {
            "event": "gap_fill_completed",
            "operation": "gap_fill",
            "status": "success" if not report.get("failed") else "partial",
            "duration_ms": duration_ms,
            "period": period,
            "results": report,
            "timestamp": datetime.now().isoformat(),
        }
        self.logger.info(**log_entry)
        self._write_to_file(log_entry)

    def log_validation_error(self, errors: list) -> None:
        """Log configuration validation errors."""
        self.logger.error(
            "validation_failed",
            operation="validation",
            errors=errors,
            timestamp=datetime.now().isoformat(),
        )

    def log_api_error(self, service: str, error: str) -> None:
        """Log API connectivity errors."""
        self.logger.error(
            "api_error",
            operation="connectivity_check",
            service=service,
            error=error,
            timestamp=datetime.now().isoformat(),
        )

    def _write_to_file(self, log_entry: Dict[str, Any]) -> None:
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")
        except OSError as e:
            # Logging problems never fail a run
            logging.getLogger(__name__).warning(f"Failed to write to log file: {e}")


def setup_console_logging(level: str = "INFO") -> None:
    """Setup basic console logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
