"""Resolve numeric Jira issue IDs to issue codes with per-run caching."""

import asyncio
import logging
from typing import Iterable, Optional

from ..domain.models import IssueMetadata

logger = logging.getLogger(__name__)


class IssueKeyResolver:
    """Translate opaque issue references to human-readable codes.

    Both successful and failed lookups are cached, so each reference is
    fetched at most once per run. Lookup failures resolve to None and are
    never raised.
    """

    def __init__(self, jira_client) -> None:
        self.jira_client = jira_client
        self._codes: dict[str, Optional[str]] = {}
        self._metadata: dict[str, Optional[IssueMetadata]] = {}
        self._inflight: dict[str, asyncio.Future] = {}

    async def _fetch(self, ref: str) -> Optional[IssueMetadata]:
        try:
            metadata = await self.jira_client.get_issue_metadata(ref)
        except Exception as e:
            logger.warning(f"Could not resolve Jira issue {ref}: {e}")
            return None
        self._metadata[metadata.code] = metadata
        if metadata.id:
            self._codes[metadata.id] = metadata.code
        return metadata

    async def _lookup(self, ref: str) -> Optional[IssueMetadata]:
        if ref in self._inflight:
            return await self._inflight[ref]

        task = asyncio.ensure_future(self._fetch(ref))
        self._inflight[ref] = task
        try:
            return await task
        finally:
            self._inflight.pop(ref, None)

    async def resolve(self, issue_id) -> Optional[str]:
        """Resolve one issue ID to its code.

        Args:
            issue_id: Numeric issue ID (int or str)

        Returns:
            Issue code, or None when the lookup failed
        """
        if issue_id is None:
            return None
        ref = str(issue_id)
        if ref in self._codes:
            return self._codes[ref]

        metadata = await self._lookup(ref)
        self._codes[ref] = metadata.code if metadata else None
        return self._codes[ref]

    async def resolve_many(self, issue_ids: Iterable) -> dict[str, Optional[str]]:
        """Resolve a batch of IDs concurrently, one fetch per distinct uncached ID."""
        refs = list(dict.fromkeys(str(i) for i in issue_ids if i is not None))
        await asyncio.gather(*(self.resolve(ref) for ref in refs if ref not in self._codes))
        return {ref: self._codes.get(ref) for ref in refs}

    async def get_metadata(self, issue_code: str) -> Optional[IssueMetadata]:
        """Return metadata for an issue code, fetching it at most once per run."""
        if issue_code in self._metadata:
            return self._metadata[issue_code]
        metadata = await self._lookup(issue_code)
        if metadata is None:
            self._metadata[issue_code] = None
        return metadata

    @property
    def cached_codes(self) -> dict[str, Optional[str]]:
        return dict(self._codes)
