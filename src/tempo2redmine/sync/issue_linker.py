"""Link missing entries to existing Redmine issues by searching the ledger."""

import asyncio
import logging
import re
from typing import Optional

from ..domain.models import MissingEntry
from ..utils.issue_codes import extract_issue_code

logger = logging.getLogger(__name__)


class IssueLinker:
    """Find Redmine issues for Jira codes: search by browse URL, then by code.

    Resolved links are stored in ``issue_links`` (code -> Redmine issue ID),
    the per-run map shared with the gap filler.
    """

    def __init__(
        self,
        redmine_client,
        jira_base_url: str,
        issue_links: Optional[dict[str, int]] = None,
    ) -> None:
        self.redmine_client = redmine_client
        self.jira_base_url = (jira_base_url or "").rstrip("/")
        self.issue_links = issue_links if issue_links is not None else {}

    def _references(self, issue: dict, issue_code: str) -> bool:
        """Whether a search hit really belongs to the code, not to a code sharing its prefix."""
        subject = issue.get("subject") or ""
        description = issue.get("description") or ""
        if extract_issue_code(subject, description) == issue_code:
            return True
        if self.jira_base_url:
            browse_url = re.escape(f"{self.jira_base_url}/browse/{issue_code}")
            return re.search(rf"{browse_url}(?![0-9])", description) is not None
        return False

    async def find_issue(self, issue_code: str) -> Optional[int]:
        """Search Redmine for an issue referencing a Jira code.

        Redmine searches by substring, so hits are kept only when their
        subject or description carries exactly this code.

        Args:
            issue_code: Jira issue code

        Returns:
            Redmine issue ID, or None when nothing was found or the search failed
        """
        if issue_code in self.issue_links:
            return self.issue_links[issue_code]

        queries = [issue_code]
        if self.jira_base_url:
            queries.insert(0, f"{self.jira_base_url}/browse/{issue_code}")

        for query in queries:
            try:
                issues = await self.redmine_client.search_issues(query)
            except Exception as e:
                logger.warning(f"Redmine issue search for {query} failed: {e}")
                continue
            hit = next((i for i in issues if self._references(i, issue_code)), None)
            if hit is None:
                if issues:
                    logger.debug(f"Ignored {len(issues)} Redmine hits for {query} not matching {issue_code}")
                continue
            issue_id = int(hit["id"])
            self.issue_links[issue_code] = issue_id
            logger.debug(f"Linked {issue_code} to Redmine issue #{issue_id}")
            return issue_id
        return None

    async def link_missing(self, entries: list[MissingEntry]) -> int:
        """Fill ``redmine_task`` on missing entries that carry a code but no link.

        Known links from the matcher are recorded first, then each remaining
        distinct code is searched once.

        Returns:
            Number of entries that received a link
        """
        for entry in entries:
            if entry.jira_task and entry.redmine_task:
                self.issue_links.setdefault(entry.jira_task, entry.redmine_task)

        pending = [e for e in entries if e.jira_task and not e.redmine_task]
        codes = list(dict.fromkeys(e.jira_task for e in pending))
        if not codes:
            return 0

        found = await asyncio.gather(*(self.find_issue(code) for code in codes))
        links = {code: issue_id for code, issue_id in zip(codes, found) if issue_id}

        linked = 0
        for entry in pending:
            if entry.jira_task in links:
                entry.redmine_task = links[entry.jira_task]
                linked += 1

        logger.info(f"Linked {linked} of {len(pending)} unlinked missing entries to Redmine issues")
        return linked
