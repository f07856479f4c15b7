"""Tests for linking missing entries to existing Redmine issues."""

import asyncio
from unittest.mock import AsyncMock, Mock

from tempo2redmine.domain.models import MissingEntry, Origin, TimeRecord
from tempo2redmine.sync.issue_linker import IssueLinker

JIRA_URL = "https://co.atlassian.net"


def make_linker(*responses, issue_links=None):
    redmine = Mock()
    redmine.search_issues = AsyncMock(side_effect=list(responses))
    return IssueLinker(redmine, JIRA_URL + "/", issue_links), redmine


def missing(code, date="2024-06-03"):
    record = TimeRecord(date=date, hours=1.0, description="", origin=Origin.WORKLOG, linked_issue_code=code)
    return MissingEntry(record=record, jira_task=code)


class TestFindIssue:
    """Test searching Redmine for one code."""

    def test_hit_by_browse_url(self):
        linker, redmine = make_linker([{"id": 5, "subject": "AB-1: Login broken"}])

        assert asyncio.run(linker.find_issue("AB-1")) == 5
        redmine.search_issues.assert_awaited_once_with(f"{JIRA_URL}/browse/AB-1")
        assert linker.issue_links == {"AB-1": 5}

    def test_code_sharing_a_prefix_is_rejected(self):
        other = [{"id": 77, "subject": "AB-12: Other work"}]
        linker, redmine = make_linker(other, other)

        assert asyncio.run(linker.find_issue("AB-1")) is None
        assert redmine.search_issues.await_count == 2
        assert linker.issue_links == {}

    def test_falls_back_to_code_search(self):
        linker, redmine = make_linker(
            [{"id": 77, "subject": "AB-12: Other work", "description": f"{JIRA_URL}/browse/AB-12"}],
            [{"id": 77, "subject": "AB-12: Other work"}, {"id": 9, "subject": "AB-1 Login broken"}],
        )

        assert asyncio.run(linker.find_issue("AB-1")) == 9
        assert redmine.search_issues.await_args_list[1].args == ("AB-1",)

    def test_browse_url_in_description_is_accepted(self):
        linker, _ = make_linker(
            [{"id": 6, "subject": "Support ticket", "description": f"See {JIRA_URL}/browse/AB-1 for details"}]
        )

        assert asyncio.run(linker.find_issue("AB-1")) == 6

    def test_search_failure_moves_to_next_query(self):
        linker, _ = make_linker(RuntimeError("timeout"), [{"id": 9, "subject": "AB-1: Login broken"}])

        assert asyncio.run(linker.find_issue("AB-1")) == 9

    def test_known_link_skips_search(self):
        linker, redmine = make_linker(issue_links={"AB-1": 3})

        assert asyncio.run(linker.find_issue("AB-1")) == 3
        redmine.search_issues.assert_not_awaited()


class TestLinkMissing:
    """Test linking a list of missing entries."""

    def test_each_code_is_searched_once(self):
        redmine = Mock()
        redmine.search_issues = AsyncMock(
            side_effect=lambda query: [{"id": 5, "subject": "AB-1: Login broken"}] if "AB-1" in query else []
        )
        linker = IssueLinker(redmine, JIRA_URL)
        entries = [missing("AB-1"), missing("AB-1", date="2024-06-04"), missing("AB-2"), missing(None)]

        linked = asyncio.run(linker.link_missing(entries))

        assert linked == 2
        assert [e.redmine_task for e in entries] == [5, 5, None, None]
        assert redmine.search_issues.await_count == 3
