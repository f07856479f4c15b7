"""Tests for IssueKeyResolver caching behaviour."""

import asyncio
from unittest.mock import AsyncMock, Mock

from tempo2redmine.api.errors import ApiError
from tempo2redmine.domain.models import IssueMetadata
from tempo2redmine.sync.issue_resolver import IssueKeyResolver

JIRA_URL = "https://co.atlassian.net"


def make_jira(codes):
    """Jira mock resolving numeric IDs from ``codes``; unknown IDs raise 404."""

    def fetch(ref):
        if ref in codes:
            return IssueMetadata(code=codes[ref], title=f"Issue {codes[ref]}", base_url=JIRA_URL, id=ref)
        if ref in codes.values():
            issue_id = next(k for k, v in codes.items() if v == ref)
            return IssueMetadata(code=ref, title=f"Issue {ref}", base_url=JIRA_URL, id=issue_id)
        raise ApiError("Jira", "Resource not found", 404)

    jira = Mock()
    jira.get_issue_metadata = AsyncMock(side_effect=fetch)
    return jira


class TestIssueKeyResolver:
    """Test issue ID resolution."""

    def test_resolve_caches_successful_lookup(self):
        jira = make_jira({"10001": "AB-1"})
        resolver = IssueKeyResolver(jira)

        assert asyncio.run(resolver.resolve(10001)) == "AB-1"
        assert asyncio.run(resolver.resolve("10001")) == "AB-1"
        assert jira.get_issue_metadata.await_count == 1

    def test_failed_lookup_is_cached_as_none(self):
        jira = make_jira({})
        resolver = IssueKeyResolver(jira)

        assert asyncio.run(resolver.resolve(999)) is None
        assert asyncio.run(resolver.resolve(999)) is None
        assert jira.get_issue_metadata.await_count == 1

    def test_resolve_none_does_not_fetch(self):
        jira = make_jira({})
        resolver = IssueKeyResolver(jira)

        assert asyncio.run(resolver.resolve(None)) is None
        jira.get_issue_metadata.assert_not_awaited()

    def test_resolve_many_fetches_each_id_once(self):
        jira = make_jira({"10001": "AB-1", "10002": "AB-2"})
        resolver = IssueKeyResolver(jira)

        codes = asyncio.run(resolver.resolve_many([10001, "10002", 10001, None, 10001]))

        assert codes == {"10001": "AB-1", "10002": "AB-2"}
        assert jira.get_issue_metadata.await_count == 2

    def test_resolve_many_isolates_failures(self):
        jira = make_jira({"10001": "AB-1"})
        resolver = IssueKeyResolver(jira)

        codes = asyncio.run(resolver.resolve_many([10001, 404]))

        assert codes == {"10001": "AB-1", "404": None}

    def test_metadata_reused_after_id_resolution(self):
        jira = make_jira({"10001": "AB-1"})
        resolver = IssueKeyResolver(jira)

        asyncio.run(resolver.resolve(10001))
        metadata = asyncio.run(resolver.get_metadata("AB-1"))

        assert metadata.title == "Issue AB-1"
        assert jira.get_issue_metadata.await_count == 1

    def test_get_metadata_by_code_populates_id_cache(self):
        jira = make_jira({"10001": "AB-1"})
        resolver = IssueKeyResolver(jira)

        asyncio.run(resolver.get_metadata("AB-1"))

        assert asyncio.run(resolver.resolve(10001)) == "AB-1"
        assert jira.get_issue_metadata.await_count == 1

    def test_failed_metadata_lookup_is_not_retried(self):
        jira = make_jira({})
        resolver = IssueKeyResolver(jira)

        assert asyncio.run(resolver.get_metadata("ZZ-1")) is None
        assert asyncio.run(resolver.get_metadata("ZZ-1")) is None
        assert jira.get_issue_metadata.await_count == 1
