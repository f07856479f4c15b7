"""Factory for creating API clients and the reconciliation service."""

from typing import Optional

from ..api.jira_client import JiraClient
from ..api.redmine_client import RedmineClient
from ..api.tempo_client import TempoClient
from ..config import Config
from ..mapping.field_mapper import FieldMapper
from ..mapping.project_mappings import ProjectMappingStore
from ..services.reconciliation_service import ReconciliationService
from ..sync.gap_filler import GapFillSettings
from ..utils.logging import StructuredLogger


class ClientFactory:
    """Factory for creating API clients with configuration."""

    @staticmethod
    def create_tempo_client(config: Config) -> TempoClient:
        if not config.tempo.get("api_token"):
            raise ValueError("TEMPO_API_TOKEN is required")
        return TempoClient(config.tempo["api_token"], config.tempo.get("worker"))

    @staticmethod
    def create_jira_client(config: Config) -> JiraClient:
        if not config.jira.get("base_url"):
            raise ValueError("JIRA_BASE_URL is required")
        if not config.jira.get("user_email"):
            raise ValueError("JIRA_USER_EMAIL is required")
        if not config.jira.get("api_token"):
            raise ValueError("JIRA_API_TOKEN is required")
        return JiraClient(
            config.jira["base_url"], config.jira["user_email"], config.jira["api_token"]
        )

    @staticmethod
    def create_redmine_client(config: Config) -> RedmineClient:
        if not config.redmine.get("url"):
            raise ValueError("REDMINE_URL is required")
        if not config.redmine.get("api_key"):
            raise ValueError("REDMINE_API_KEY is required")
        return RedmineClient(
            config.redmine["url"], config.redmine["api_key"], config.jira.get("base_url")
        )

    @staticmethod
    def create_gap_fill_settings(config: Config) -> GapFillSettings:
        return GapFillSettings(
            jira_base_url=(config.jira.get("base_url") or "").rstrip("/"),
            default_project_id=config.jira.get("default_project") or None,
            redmine_project_id=config.redmine.get("project_id") or None,
            activity_id=int(config.redmine.get("activity_id") or 9),
        )

    @classmethod
    def create_reconciliation_service(
        cls,
        config: Config,
        project_mappings: Optional[ProjectMappingStore] = None,
        structured_logger: Optional[StructuredLogger] = None,
    ) -> ReconciliationService:
        """Wire clients, mappings and settings into a ReconciliationService."""
        return ReconciliationService(
            cls.create_tempo_client(config),
            cls.create_jira_client(config),
            cls.create_redmine_client(config),
            project_mappings or ProjectMappingStore(config.mappings_file),
            cls.create_gap_fill_settings(config),
            field_mapper=FieldMapper(config.redmine),
            structured_logger=structured_logger,
            strict=bool(config.sync.get("strict")),
        )
