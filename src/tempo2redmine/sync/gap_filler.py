"""Create missing Redmine time entries, creating Redmine issues on demand."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..domain.models import (
    CreatedEntry,
    EntryState,
    FailedEntry,
    Failure,
    FillReport,
    MissingEntry,
    ReconciliationResult,
    Result,
    Success,
)
from ..mapping.field_mapper import FieldMapper
from ..mapping.project_mappings import ProjectMappingResolver
from .issue_resolver import IssueKeyResolver

logger = logging.getLogger(__name__)

HARD_DEFAULT_PROJECT_ID = "1"

EntryObserver = Callable[[MissingEntry, EntryState], None]


@dataclass(frozen=True)
class GapFillSettings:
    """Project fallbacks and Redmine defaults for created entries."""

    jira_base_url: str
    default_project_id: Optional[str] = None
    redmine_project_id: Optional[str] = None
    activity_id: int = 9
    context_url: Optional[str] = None

    def fallback_project(self) -> str:
        return str(self.default_project_id or self.redmine_project_id or HARD_DEFAULT_PROJECT_ID)


def _locate(result: ReconciliationResult, entry: MissingEntry) -> Optional[int]:
    for index, candidate in enumerate(result.missing_in_redmine):
        if candidate is entry:
            return index
    for index, candidate in enumerate(result.missing_in_redmine):
        if candidate.key == entry.key:
            return index
    return None


def apply_creation(
    result: ReconciliationResult, entry: MissingEntry, new_issue_id: Optional[int] = None
) -> bool:
    """Record that a missing entry now exists in Redmine.

    Removes the entry from the missing list, moves its hours to the Redmine
    side of the statistics and, when its creation produced a new issue, hands
    that issue to other pending entries with the same Jira code.

    Args:
        result: Live reconciliation result
        entry: Entry that was created
        new_issue_id: Redmine issue created for the entry's code, if any

    Returns:
        True if the entry was still missing and has been removed
    """
    index = _locate(result, entry)
    if index is None:
        return False

    removed = result.missing_in_redmine.pop(index)
    stats = result.stats
    stats.missing = len(result.missing_in_redmine)
    stats.missing_hours = sum(e.hours for e in result.missing_in_redmine)
    stats.redmine_total += 1
    stats.redmine_hours += removed.hours
    stats.matched += 1

    if new_issue_id and removed.jira_task:
        for other in result.missing_in_redmine:
            if other.jira_task == removed.jira_task and not other.redmine_task:
                other.redmine_task = new_issue_id
    return True


class GapFiller:
    """Fill the gaps a reconciliation run found.

    The ``issue_links`` map (Jira code -> Redmine issue ID) is owned by the
    run and shared with the issue linker. A code present there is never
    created again. Callers must not run ``create_all`` and ``create_one``
    concurrently against the same result.
    """

    def __init__(
        self,
        redmine_client,
        resolver: IssueKeyResolver,
        project_resolver: ProjectMappingResolver,
        settings: GapFillSettings,
        field_mapper: Optional[FieldMapper] = None,
        issue_links: Optional[dict[str, int]] = None,
        observer: Optional[EntryObserver] = None,
    ) -> None:
        self.redmine_client = redmine_client
        self.resolver = resolver
        self.project_resolver = project_resolver
        self.settings = settings
        self.field_mapper = field_mapper or FieldMapper()
        self.issue_links = issue_links if issue_links is not None else {}
        self.observer = observer

    def _notify(self, entry: MissingEntry, state: EntryState, error: Optional[str] = None) -> None:
        entry.state = state
        entry.error = error
        if self.observer is None:
            return
        try:
            self.observer(entry, state)
        except Exception as e:
            logger.warning(f"Entry observer failed for {entry.key}: {e}")

    def _issue_project(self, base_url: Optional[str]) -> str:
        return (
            self.project_resolver.resolve(base_url or self.settings.jira_base_url)
            or self.settings.fallback_project()
        )

    def _entry_project(self) -> str:
        return (
            self.project_resolver.resolve(self.settings.context_url or self.settings.jira_base_url)
            or self.settings.fallback_project()
        )

    async def create_issue(self, issue_code: str) -> int:
        """Create a Redmine issue for a Jira code.

        Args:
            issue_code: Jira issue code

        Returns:
            ID of the new Redmine issue

        Raises:
            LookupError: If the Jira metadata cannot be loaded
            ApiError: If Redmine rejects the issue
        """
        metadata = await self.resolver.get_metadata(issue_code)
        if metadata is None:
            raise LookupError(f"Could not load Jira issue {issue_code}")

        fields = self.field_mapper.map_issue(metadata, self._issue_project(metadata.base_url))
        issue = await self.redmine_client.create_issue(**fields)
        issue_id = int(issue["id"])
        self.issue_links[issue_code] = issue_id
        logger.info(f"Created Redmine issue #{issue_id} for {issue_code}")
        return issue_id

    async def _create_time_entry(self, entry: MissingEntry) -> dict[str, Any]:
        if entry.redmine_task:
            return await self.redmine_client.create_time_entry(
                spent_on=entry.date,
                hours=entry.hours,
                comments=entry.description,
                issue_id=entry.redmine_task,
                activity_id=self.settings.activity_id,
            )
        return await self.redmine_client.create_time_entry(
            spent_on=entry.date,
            hours=entry.hours,
            comments=entry.description,
            project_id=self._entry_project(),
            activity_id=self.settings.activity_id,
        )

    async def _fill_entry(
        self,
        result: ReconciliationResult,
        entry: MissingEntry,
        issue_error: Optional[str] = None,
        new_issue_id: Optional[int] = None,
    ) -> Result:
        if issue_error:
            error = f"Issue creation failed for {entry.jira_task}: {issue_error}"
            self._notify(entry, EntryState.FAILED, error)
            return Failure(error)

        self._notify(entry, EntryState.CREATING)
        try:
            time_entry = await self._create_time_entry(entry)
        except Exception as e:
            logger.error(f"Failed to create time entry for {entry.key}: {e}")
            self._notify(entry, EntryState.FAILED, str(e))
            return Failure(str(e))

        apply_creation(result, entry, new_issue_id)
        self._notify(entry, EntryState.CREATED)
        return Success(
            CreatedEntry(
                entry=entry,
                time_entry=time_entry,
                redmine_task=entry.redmine_task,
                project_id=None if entry.redmine_task else self._entry_project(),
                created_issue=new_issue_id is not None,
            )
        )

    async def create_all(self, result: ReconciliationResult) -> FillReport:
        """Create every missing entry of a result.

        One issue is created per distinct unlinked Jira code, then all time
        entries are created concurrently. Failures are collected per code and
        per entry without stopping the others.

        Args:
            result: Live reconciliation result, updated as entries succeed

        Returns:
            FillReport with created and failed entries
        """
        entries = list(result.missing_in_redmine)
        report = FillReport()
        for entry in entries:
            self._notify(entry, EntryState.PENDING)

        for entry in entries:
            if entry.jira_task and not entry.redmine_task and entry.jira_task in self.issue_links:
                entry.redmine_task = self.issue_links[entry.jira_task]

        codes = list(
            dict.fromkeys(e.jira_task for e in entries if e.jira_task and not e.redmine_task)
        )
        outcomes = await asyncio.gather(
            *(self.create_issue(code) for code in codes), return_exceptions=True
        )

        new_issues: dict[str, int] = {}
        for code, outcome in zip(codes, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Failed to create Redmine issue for {code}: {outcome}")
                report.issue_errors[code] = str(outcome)
            else:
                new_issues[code] = outcome
        report.issues_created = dict(new_issues)

        for entry in entries:
            if entry.jira_task in new_issues and not entry.redmine_task:
                entry.redmine_task = new_issues[entry.jira_task]

        outcomes = await asyncio.gather(
            *(
                self._fill_entry(
                    result,
                    entry,
                    issue_error=report.issue_errors.get(entry.jira_task)
                    if not entry.redmine_task
                    else None,
                    new_issue_id=new_issues.get(entry.jira_task),
                )
                for entry in entries
            )
        )
        for entry, outcome in zip(entries, outcomes):
            if outcome.success:
                report.created.append(outcome.value)
            else:
                report.failed.append(FailedEntry(entry=entry, error=outcome.error))

        logger.info(
            f"Gap fill finished: {len(report.created)} created, {len(report.failed)} failed, "
            f"{len(new_issues)} issues created"
        )
        return report

    async def create_one(self, result: ReconciliationResult, entry: MissingEntry) -> Result:
        """Create a single missing entry.

        Reuses an issue already linked or created in this run for the entry's
        code and otherwise creates one.

        Args:
            result: Live reconciliation result
            entry: Entry to create

        Returns:
            Success carrying a CreatedEntry, or Failure with the error
        """
        if _locate(result, entry) is None:
            return Failure(f"Entry {entry.key} is not missing")

        new_issue_id = None
        if entry.jira_task and not entry.redmine_task:
            if entry.jira_task in self.issue_links:
                entry.redmine_task = self.issue_links[entry.jira_task]
            else:
                self._notify(entry, EntryState.CREATING)
                try:
                    new_issue_id = await self.create_issue(entry.jira_task)
                except Exception as e:
                    logger.error(f"Failed to create Redmine issue for {entry.jira_task}: {e}")
                    return await self._fill_entry(result, entry, issue_error=str(e))
                entry.redmine_task = new_issue_id

        return await self._fill_entry(result, entry, new_issue_id=new_issue_id)
