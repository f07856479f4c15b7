"""Core reconciliation service."""

import asyncio
import logging
import time
from datetime import date
from typing import Optional

from ..api.jira_client import JiraClient
from ..api.redmine_client import RedmineClient
from ..api.tempo_client import TempoClient
from ..domain.models import (
    Failure,
    FillReport,
    MissingEntry,
    ReconciliationResult,
    Result,
    Success,
)
from ..mapping.field_mapper import FieldMapper
from ..mapping.project_mappings import ProjectMappingResolver, ProjectMappingStore
from ..sync.gap_filler import EntryObserver, GapFiller, GapFillSettings
from ..sync.issue_linker import IssueLinker
from ..sync.issue_resolver import IssueKeyResolver
from ..sync.matcher import Matcher
from ..sync.normalizer import normalize_ledger_entries, normalize_worklogs
from ..utils.date_parser import format_period
from ..utils.logging import StructuredLogger

logger = logging.getLogger(__name__)


class ReconciliationRun:
    """One reconciliation result together with the caches of its run.

    The issue resolver and the code -> Redmine issue map live here and are
    discarded with the run. Creation calls mutate ``result`` and must be
    serialized by the caller.
    """

    def __init__(
        self,
        result: ReconciliationResult,
        resolver: IssueKeyResolver,
        gap_filler: GapFiller,
        structured_logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.result = result
        self.resolver = resolver
        self.gap_filler = gap_filler
        self.structured_logger = structured_logger

    @property
    def period(self) -> dict[str, str]:
        return {
            "start_date": self.result.start_date.isoformat() if self.result.start_date else "",
            "end_date": self.result.end_date.isoformat() if self.result.end_date else "",
        }

    @property
    def issue_links(self) -> dict[str, int]:
        return self.gap_filler.issue_links

    def find_entry(self, key: str) -> Optional[MissingEntry]:
        return self.result.find_missing(key)

    async def create_all(self, observer: Optional[EntryObserver] = None) -> FillReport:
        """Create every missing entry in Redmine."""
        started = time.time()
        self.gap_filler.observer = observer
        try:
            report = await self.gap_filler.create_all(self.result)
        finally:
            self.gap_filler.observer = None

        if self.structured_logger:
            self.structured_logger.log_gap_fill_complete(
                int((time.time() - started) * 1000), self.period, report.to_dict()
            )
        return report

    async def create_one(
        self, entry: MissingEntry, observer: Optional[EntryObserver] = None
    ) -> Result:
        """Create a single missing entry in Redmine."""
        self.gap_filler.observer = observer
        try:
            return await self.gap_filler.create_one(self.result, entry)
        finally:
            self.gap_filler.observer = None


class ReconciliationService:
    """Compare Tempo worklogs with Redmine time entries for a period."""

    def __init__(
        self,
        tempo_client: TempoClient,
        jira_client: JiraClient,
        redmine_client: RedmineClient,
        project_mappings: ProjectMappingStore | ProjectMappingResolver,
        settings: GapFillSettings,
        field_mapper: Optional[FieldMapper] = None,
        structured_logger: Optional[StructuredLogger] = None,
        strict: bool = False,
    ):
        self.tempo_client = tempo_client
        self.jira_client = jira_client
        self.redmine_client = redmine_client
        self.project_mappings = project_mappings
        self.settings = settings
        self.field_mapper = field_mapper or FieldMapper()
        self.structured_logger = structured_logger
        self.strict = strict

    def _project_resolver(self) -> ProjectMappingResolver:
        if isinstance(self.project_mappings, ProjectMappingStore):
            return self.project_mappings.resolver()
        return self.project_mappings

    async def reconcile(
        self, start_date: date, end_date: date, strict: Optional[bool] = None
    ) -> Result:
        """Run a reconciliation for a period.

        Both sources are fetched concurrently and a failure of either aborts
        the run. Everything after the fetch degrades per record instead.

        Args:
            start_date: Period start (inclusive)
            end_date: Period end (inclusive)
            strict: Override the service's strict mode for this run

        Returns:
            Success carrying a ReconciliationRun, or Failure with the fetch error
        """
        strict = self.strict if strict is None else strict
        period = {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
        started = time.time()
        logger.info(f"Reconciling {format_period(start_date, end_date)} (strict={strict})")
        if self.structured_logger:
            self.structured_logger.log_reconcile_start(period, strict=strict)

        try:
            raw_worklogs, raw_entries = await asyncio.gather(
                self.tempo_client.get_worklogs(start_date, end_date),
                self.redmine_client.get_time_entries(start_date, end_date),
            )
        except Exception as e:
            logger.error(f"Reconciliation aborted, source fetch failed: {e}")
            if self.structured_logger:
                self.structured_logger.log_api_error(getattr(e, "service", "unknown"), str(e))
                self.structured_logger.log_reconcile_complete(
                    int((time.time() - started) * 1000), period, {}, status="error", error=str(e)
                )
            return Failure(str(e))

        await self.redmine_client.enrich_time_entries(raw_entries)

        resolver = IssueKeyResolver(self.jira_client)
        worklogs = await normalize_worklogs(raw_worklogs, resolver)
        ledger = normalize_ledger_entries(raw_entries)

        result = Matcher(strict=strict).reconcile(worklogs, ledger, start_date, end_date)

        issue_links: dict[str, int] = {}
        linker = IssueLinker(self.redmine_client, self.settings.jira_base_url, issue_links)
        await linker.link_missing(result.missing_in_redmine)

        gap_filler = GapFiller(
            self.redmine_client,
            resolver,
            self._project_resolver(),
            self.settings,
            field_mapper=self.field_mapper,
            issue_links=issue_links,
        )

        if self.structured_logger:
            self.structured_logger.log_reconcile_complete(
                int((time.time() - started) * 1000), period, result.stats.to_dict()
            )

        return Success(ReconciliationRun(result, resolver, gap_filler, self.structured_logger))
