"""Tests for creating missing entries in Redmine."""

import asyncio
from unittest.mock import AsyncMock, Mock

from tempo2redmine.api.errors import ApiError
from tempo2redmine.domain.models import (
    EntryState,
    IssueMetadata,
    Origin,
    ProjectMapping,
    TimeRecord,
)
from tempo2redmine.mapping.project_mappings import ProjectMappingResolver
from tempo2redmine.sync.gap_filler import GapFiller, GapFillSettings, apply_creation
from tempo2redmine.sync.issue_resolver import IssueKeyResolver
from tempo2redmine.sync.matcher import Matcher

JIRA_URL = "https://co.atlassian.net"


def worklog(date="2024-06-01", hours=2.0, description="Checkout work", code="AB-9"):
    return TimeRecord(
        date=date, hours=hours, description=description, origin=Origin.WORKLOG, linked_issue_code=code
    )


def make_redmine(fail_on_date=None):
    counter = iter(range(1000, 2000))

    def create_time_entry(**kwargs):
        if kwargs["spent_on"] == fail_on_date:
            raise ApiError("Redmine", "Validation failed: Hours is invalid", 422)
        return {"id": next(counter), **kwargs}

    redmine = Mock()
    redmine.create_issue = AsyncMock(return_value={"id": 500})
    redmine.create_time_entry = AsyncMock(side_effect=create_time_entry)
    return redmine


def make_filler(redmine, mappings=None, issue_links=None, settings=None):
    jira = Mock()
    jira.get_issue_metadata = AsyncMock(
        return_value=IssueMetadata(
            code="AB-9",
            title="Checkout fails",
            base_url=JIRA_URL,
            id="10009",
            priority_name="High",
            status_name="In Progress",
        )
    )
    filler = GapFiller(
        redmine,
        IssueKeyResolver(jira),
        ProjectMappingResolver(mappings or []),
        settings or GapFillSettings(jira_base_url=JIRA_URL, redmine_project_id="7"),
        issue_links=issue_links,
    )
    return filler, jira


class TestCreateAll:
    """Test bulk creation."""

    def test_one_issue_per_code(self):
        result = Matcher().reconcile(
            [
                worklog(date="2024-06-01", hours=1.0),
                worklog(date="2024-06-02", hours=2.0),
                worklog(date="2024-06-03", hours=3.0),
            ],
            [],
        )
        redmine = make_redmine()
        mapping = ProjectMapping(id="1", jira_url_prefix=JIRA_URL, ledger_project_id="12")
        filler, jira = make_filler(redmine, mappings=[mapping])

        report = asyncio.run(filler.create_all(result))

        redmine.create_issue.assert_awaited_once_with(
            project_id="12",
            subject="AB-9: Checkout fails",
            description="https://co.atlassian.net/browse/AB-9",
            priority_id=5,
            status_id=7,
            tracker_id=1,
        )
        jira.get_issue_metadata.assert_awaited_once_with("AB-9")
        assert [c.kwargs["issue_id"] for c in redmine.create_time_entry.await_args_list] == [500] * 3
        assert report.issues_created == {"AB-9": 500}
        assert len(report.created) == 3
        assert report.failed == []
        assert result.missing_in_redmine == []
        assert result.stats.missing == 0
        assert result.stats.missing_hours == 0
        assert result.stats.redmine_total == 3
        assert result.stats.redmine_hours == 6.0

    def test_existing_link_is_reused(self):
        result = Matcher().reconcile([worklog(), worklog(date="2024-06-02")], [])
        redmine = make_redmine()
        filler, _ = make_filler(redmine, issue_links={"AB-9": 77})

        report = asyncio.run(filler.create_all(result))

        redmine.create_issue.assert_not_awaited()
        assert [c.kwargs["issue_id"] for c in redmine.create_time_entry.await_args_list] == [77, 77]
        assert len(report.created) == 2

    def test_entry_failure_does_not_stop_siblings(self):
        result = Matcher().reconcile(
            [worklog(date="2024-06-01"), worklog(date="2024-06-02"), worklog(date="2024-06-03")], []
        )
        filler, _ = make_filler(make_redmine(fail_on_date="2024-06-02"))

        report = asyncio.run(filler.create_all(result))

        assert len(report.created) == 2
        assert len(report.failed) == 1
        failed = report.failed[0].entry
        assert failed.date == "2024-06-02"
        assert failed.state == EntryState.FAILED
        assert "Hours is invalid" in failed.error
        assert result.missing_in_redmine == [failed]
        assert result.stats.missing == 1
        assert result.stats.missing_hours == 2.0

    def test_issue_creation_failure_fails_only_its_entries(self):
        result = Matcher().reconcile(
            [worklog(), worklog(date="2024-06-02"), worklog(date="2024-06-03", code=None)], []
        )
        redmine = make_redmine()
        redmine.create_issue = AsyncMock(side_effect=ApiError("Redmine", "Access denied", 403))
        filler, _ = make_filler(redmine)

        report = asyncio.run(filler.create_all(result))

        assert list(report.issue_errors) == ["AB-9"]
        assert len(report.failed) == 2
        assert all("Issue creation failed for AB-9" in f.error for f in report.failed)
        redmine.create_time_entry.assert_awaited_once()
        assert redmine.create_time_entry.await_args.kwargs["project_id"] == "7"
        assert len(result.missing_in_redmine) == 2
        assert len(report.errors) == 3

    def test_observer_sees_state_transitions(self):
        result = Matcher().reconcile([worklog(code=None)], [])
        filler, _ = make_filler(make_redmine())
        states = []
        filler.observer = lambda entry, state: states.append(state)

        asyncio.run(filler.create_all(result))

        assert states == [EntryState.PENDING, EntryState.CREATING, EntryState.CREATED]

    def test_observer_errors_are_ignored(self):
        result = Matcher().reconcile([worklog(code=None)], [])
        filler, _ = make_filler(make_redmine())
        filler.observer = Mock(side_effect=RuntimeError("display broke"))

        report = asyncio.run(filler.create_all(result))

        assert len(report.created) == 1
        assert result.missing_in_redmine == []


class TestCreateOne:
    """Test single-entry creation."""

    def test_stats_follow_creation(self):
        result = Matcher().reconcile(
            [worklog(hours=3.0), worklog(date="2024-06-02", hours=2.0, code=None)], []
        )
        entry = result.missing_in_redmine[0]
        filler, _ = make_filler(make_redmine())

        outcome = asyncio.run(filler.create_one(result, entry))

        assert outcome.success
        assert outcome.value.redmine_task == 500
        assert outcome.value.created_issue
        assert entry not in result.missing_in_redmine
        assert result.stats.missing == 1
        assert result.stats.missing_hours == 2.0
        assert result.stats.redmine_total == 1
        assert result.stats.redmine_hours == 3.0

    def test_new_issue_is_propagated_to_same_code_entries(self):
        result = Matcher().reconcile([worklog(), worklog(date="2024-06-02")], [])
        first, second = result.missing_in_redmine
        redmine = make_redmine()
        filler, _ = make_filler(redmine)

        asyncio.run(filler.create_one(result, first))
        assert second.redmine_task == 500

        asyncio.run(filler.create_one(result, second))
        redmine.create_issue.assert_awaited_once()
        assert redmine.create_time_entry.await_args.kwargs["issue_id"] == 500
        assert result.missing_in_redmine == []

    def test_creating_twice_is_rejected(self):
        result = Matcher().reconcile([worklog()], [])
        entry = result.missing_in_redmine[0]
        redmine = make_redmine()
        filler, _ = make_filler(redmine)

        asyncio.run(filler.create_one(result, entry))
        outcome = asyncio.run(filler.create_one(result, entry))

        assert not outcome.success
        redmine.create_time_entry.assert_awaited_once()

    def test_project_fallbacks(self):
        result = Matcher().reconcile([worklog(code=None), worklog(date="2024-06-02", code=None)], [])
        redmine = make_redmine()
        filler, _ = make_filler(redmine, settings=GapFillSettings(jira_base_url=JIRA_URL))

        asyncio.run(filler.create_one(result, result.missing_in_redmine[0]))
        assert redmine.create_time_entry.await_args.kwargs["project_id"] == "1"

        filler.settings = GapFillSettings(jira_base_url=JIRA_URL, default_project_id="3", redmine_project_id="7")
        asyncio.run(filler.create_one(result, result.missing_in_redmine[0]))
        assert redmine.create_time_entry.await_args.kwargs["project_id"] == "3"

    def test_issue_failure_returns_failure(self):
        result = Matcher().reconcile([worklog()], [])
        redmine = make_redmine()
        redmine.create_issue = AsyncMock(side_effect=ApiError("Redmine", "Access denied", 403))
        filler, _ = make_filler(redmine)

        outcome = asyncio.run(filler.create_one(result, result.missing_in_redmine[0]))

        assert not outcome.success
        assert "Access denied" in outcome.error
        redmine.create_time_entry.assert_not_awaited()
        assert result.stats.missing == 1

    def test_missing_metadata_is_fetched_once_across_retries(self):
        result = Matcher().reconcile([worklog()], [])
        entry = result.missing_in_redmine[0]
        redmine = make_redmine()
        filler, jira = make_filler(redmine)
        jira.get_issue_metadata = AsyncMock(side_effect=ApiError("Jira", "Resource not found", 404))

        first = asyncio.run(filler.create_one(result, entry))
        second = asyncio.run(filler.create_one(result, entry))

        assert not first.success and not second.success
        assert "Could not load Jira issue AB-9" in second.error
        jira.get_issue_metadata.assert_awaited_once()
        redmine.create_issue.assert_not_awaited()


class TestApplyCreation:
    """Test the bookkeeping command."""

    def test_second_application_is_a_no_op(self):
        result = Matcher().reconcile([worklog(hours=4.0)], [])
        entry = result.missing_in_redmine[0]

        assert apply_creation(result, entry)
        assert not apply_creation(result, entry)
        assert result.stats.redmine_total == 1
        assert result.stats.redmine_hours == 4.0
