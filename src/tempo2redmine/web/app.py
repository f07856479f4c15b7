"""Flask web application for reconciliation, gap filling and mappings."""

import asyncio
import logging
import threading
from typing import Any

from flask import Flask, Response, jsonify, request

from tempo2redmine.config import Config
from tempo2redmine.daemon import ReconcileDaemon
from tempo2redmine.export.csv_export import export_filename, export_missing_entries_csv
from tempo2redmine.monitoring.health_check import HealthChecker
from tempo2redmine.utils.date_parser import format_period, parse_period

logger = logging.getLogger(__name__)


def create_app(config: Config, daemon: ReconcileDaemon) -> Flask:
    """Create Flask application.

    Args:
        config: Application configuration
        daemon: Reconcile daemon instance, shared for its service, history and last run

    Returns:
        Flask application
    """
    app = Flask(__name__)
    app.config["CONFIG"] = config
    app.config["DAEMON"] = daemon
    app.config["HISTORY"] = daemon.history
    app.config["MAPPINGS"] = daemon.project_mappings
    # Creation requests mutate the shared run and must not overlap
    creation_lock = threading.Lock()

    def last_run_or_404() -> Any:
        run = app.config["DAEMON"].last_run
        if run is None:
            return None, (jsonify({"success": False, "error": "No reconciliation has been run yet"}), 404)
        return run, None

    @app.route("/")
    def index() -> Any:
        """Overview of the last run and the run history."""
        run = app.config["DAEMON"].last_run
        return jsonify(
            {
                "last_run": run.result.stats.to_dict() if run else None,
                "period": run.period if run else None,
                "stats": app.config["HISTORY"].get_run_stats(),
            }
        )

    @app.route("/api/compare", methods=["GET"])
    def compare() -> Any:
        """Reconcile a period and keep the run for later creation requests.

        Returns:
            Reconciliation result as JSON
        """
        try:
            start_date, end_date = parse_period(request.args.get("period"))
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400

        strict = request.args.get("strict", "").lower() in ("1", "true", "yes")
        outcome = asyncio.run(
            app.config["DAEMON"].service.reconcile(start_date, end_date, strict=strict or None)
        )
        if not outcome.success:
            app.config["HISTORY"].record_run(
                "reconcile", False, format_period(start_date, end_date), error=outcome.error
            )
            return jsonify({"success": False, "error": outcome.error}), 502

        run = outcome.value
        stats = run.result.stats
        app.config["HISTORY"].record_run(
            "reconcile",
            True,
            format_period(start_date, end_date),
            worklog_total=stats.tempo_total,
            ledger_total=stats.redmine_total,
            missing=stats.missing,
            missing_hours=stats.missing_hours,
        )
        with creation_lock:
            app.config["DAEMON"].last_run = run
        return jsonify({"success": True, **run.result.to_dict()})

    @app.route("/api/missing/create", methods=["POST"])
    def create_missing() -> Any:
        """Create one missing entry, identified by its key."""
        run, error = last_run_or_404()
        if error:
            return error

        key = (request.get_json(silent=True) or {}).get("key")
        if not key:
            return jsonify({"success": False, "error": "key is required"}), 400

        with creation_lock:
            entry = run.find_entry(key)
            if entry is None:
                return jsonify({"success": False, "error": f"No missing entry {key}"}), 404
            outcome = asyncio.run(run.create_one(entry))

        if not outcome.success:
            return jsonify({"success": False, "error": outcome.error}), 502

        created = outcome.value
        return jsonify(
            {
                "success": True,
                "time_entry": created.time_entry,
                "redmine_task": created.redmine_task,
                "stats": run.result.stats.to_dict(),
            }
        )

    @app.route("/api/missing/create-all", methods=["POST"])
    def create_all_missing() -> Any:
        """Create every missing entry of the last run."""
        run, error = last_run_or_404()
        if error:
            return error

        with creation_lock:
            report = asyncio.run(run.create_all())

        stats = run.result.stats
        app.config["HISTORY"].record_run(
            "fill",
            not report.failed,
            f"{run.period['start_date']}..{run.period['end_date']}",
            worklog_total=stats.tempo_total,
            ledger_total=stats.redmine_total,
            missing=stats.missing,
            missing_hours=stats.missing_hours,
            created=len(report.created),
            failed=len(report.failed),
            details=report.errors,
        )
        return jsonify({"success": not report.failed, **report.to_dict(), "stats": stats.to_dict()})

    @app.route("/api/missing/export.csv", methods=["GET"])
    def export_missing() -> Any:
        """Download the missing entries of the last run as CSV."""
        run, error = last_run_or_404()
        if error:
            return error

        body = export_missing_entries_csv(run.result.missing_in_redmine)
        filename = export_filename(run.result.start_date) if run.result.start_date else "missing-entries.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.route("/api/mappings", methods=["GET"])
    def list_mappings() -> Any:
        return jsonify({"mappings": [m.to_dict() for m in app.config["MAPPINGS"].list_mappings()]})

    @app.route("/api/mappings", methods=["POST"])
    def add_mapping() -> Any:
        data = request.get_json(silent=True) or {}
        try:
            mapping = app.config["MAPPINGS"].add_mapping(
                data.get("jira_url_prefix", ""),
                data.get("ledger_project_id", ""),
                data.get("description", ""),
            )
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        return jsonify({"success": True, "mapping": mapping.to_dict()}), 201

    @app.route("/api/mappings/<mapping_id>", methods=["PUT"])
    def update_mapping(mapping_id: str) -> Any:
        data = request.get_json(silent=True) or {}
        try:
            mapping = app.config["MAPPINGS"].update_mapping(
                mapping_id,
                jira_url_prefix=data.get("jira_url_prefix"),
                ledger_project_id=data.get("ledger_project_id"),
                description=data.get("description"),
            )
        except KeyError:
            return jsonify({"success": False, "error": f"Mapping {mapping_id} not found"}), 404
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        return jsonify({"success": True, "mapping": mapping.to_dict()})

    @app.route("/api/mappings/<mapping_id>", methods=["DELETE"])
    def delete_mapping(mapping_id: str) -> Any:
        if not app.config["MAPPINGS"].remove_mapping(mapping_id):
            return jsonify({"success": False, "error": f"Mapping {mapping_id} not found"}), 404
        return jsonify({"success": True})

    @app.route("/api/history", methods=["GET"])
    def get_history() -> Any:
        """Get run history.

        Returns:
            List of run records
        """
        limit = request.args.get("limit", 50, type=int)
        return jsonify({"runs": app.config["HISTORY"].get_last_runs(limit)})

    @app.route("/api/stats", methods=["GET"])
    def get_stats() -> Any:
        return jsonify(app.config["HISTORY"].get_run_stats())

    @app.route("/api/health", methods=["GET"])
    def health() -> Any:
        """Check connectivity to Tempo, Jira and Redmine."""
        service = app.config["DAEMON"].service
        checker = HealthChecker(service.tempo_client, service.jira_client, service.redmine_client)
        status = asyncio.run(checker.check_all())
        app.config["DAEMON"].metrics_exporter.export_health_metrics(status)
        code = 200 if status["overall"]["status"] == "healthy" else 503
        return jsonify(status), code

    @app.errorhandler(404)
    def not_found(error: Exception) -> Any:
        """Handle 404 errors.

        Args:
            error: Exception

        Returns:
            Error response
        """
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error: Exception) -> Any:
        """Handle 500 errors.

        Args:
            error: Exception

        Returns:
            Error response
        """
        logger.error(f"Internal server error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    return app
