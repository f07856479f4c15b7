"""Minimal Redmine API client for time entry and issue management."""

import asyncio
import logging
from datetime import date
from typing import Any, Optional

import httpx

from ..utils.issue_codes import extract_issue_code
from .errors import ApiError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
MAX_ITEMS = 10000
SEARCH_LIMIT = 10
DEFAULT_ACTIVITY_ID = 9
DEFAULT_TRACKER_ID = 1


class RedmineClient:
    """Simple async Redmine API client."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        jira_base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize Redmine client.

        Args:
            base_url: Redmine base URL
            api_key: Redmine REST API key
            jira_base_url: Jira base URL used to build browse links during enrichment
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = sanitize_url(base_url)
        self.api_key = api_key
        self.jira_base_url = jira_base_url.rstrip("/") if jira_base_url else None
        self.transport = transport
        self.headers = {
            "X-Redmine-API-Key": api_key,
            "Content-Type": "application/json",
        }
        self._current_user: dict[str, Any] | None = None

    async def _make_request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Make authenticated request to Redmine API.

        Args:
            method: HTTP method
            endpoint: API endpoint including the ``.json`` suffix
            **kwargs: Additional request arguments

        Returns:
            Response object

        Raises:
            ApiError: On transport failure or a non-2xx response
        """
        url = f"{self.base_url}{endpoint}"

        try:
            async with httpx.AsyncClient(
                headers=self.headers, timeout=30, transport=self.transport
            ) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            error = ApiError.from_response("Redmine", e.response)
            logger.error(f"Redmine API request failed: {error}")
            raise error from e
        except httpx.HTTPError as e:
            logger.error(f"Redmine API request failed: {e}")
            raise ApiError("Redmine", str(e) or type(e).__name__) from e

    async def get_current_user(self) -> dict[str, Any]:
        """Get the user owning the API key (cached).

        Returns:
            User data
        """
        if self._current_user is None:
            response = await self._make_request("GET", "/users/current.json")
            self._current_user = response.json()["user"]
            logger.debug(f"Resolved Redmine user {self._current_user.get('id')}")
        return self._current_user

    async def _get_paginated(
        self, endpoint: str, collection: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        offset = 0
        while len(items) < MAX_ITEMS:
            response = await self._make_request(
                "GET", endpoint, params={**(params or {}), "limit": PAGE_SIZE, "offset": offset}
            )
            page = response.json().get(collection, [])
            items.extend(page)
            if len(page) < PAGE_SIZE:
                return items
            offset += PAGE_SIZE

        logger.warning(f"Redmine {collection} fetch stopped at the {MAX_ITEMS} item cap")
        return items[:MAX_ITEMS]

    async def get_time_entries(self, from_date: date, to_date: date) -> list[dict[str, Any]]:
        """Get the current user's time entries for a date range.

        Args:
            from_date: Start date (inclusive)
            to_date: End date (inclusive)

        Returns:
            List of raw time entries
        """
        user = await self.get_current_user()
        entries = await self._get_paginated(
            "/time_entries.json",
            "time_entries",
            {
                "user_id": user["id"],
                "from": from_date.strftime("%Y-%m-%d"),
                "to": to_date.strftime("%Y-%m-%d"),
            },
        )
        logger.info(f"Retrieved {len(entries)} time entries from Redmine")
        return entries

    async def get_issue(self, issue_id: int) -> dict[str, Any]:
        response = await self._make_request("GET", f"/issues/{issue_id}.json")
        return response.json()["issue"]

    async def enrich_time_entries(self, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Attach the Jira code of each entry's issue as ``entry["jira"]``.

        Every distinct issue is fetched once, concurrently. The code is read
        from the issue subject first and the description second. Issues that
        cannot be fetched are skipped.

        Args:
            entries: Raw time entries, updated in place

        Returns:
            The same list
        """
        issue_ids = list(
            dict.fromkeys(e["issue"]["id"] for e in entries if (e.get("issue") or {}).get("id"))
        )
        if not issue_ids:
            return entries

        outcomes = await asyncio.gather(
            *(self.get_issue(issue_id) for issue_id in issue_ids), return_exceptions=True
        )

        codes: dict[int, str] = {}
        for issue_id, outcome in zip(issue_ids, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Could not load Redmine issue #{issue_id}: {outcome}")
                continue
            code = extract_issue_code(outcome.get("subject"), outcome.get("description"))
            if code:
                codes[issue_id] = code

        for entry in entries:
            code = codes.get((entry.get("issue") or {}).get("id"))
            if code:
                entry["jira"] = {
                    "code": code,
                    "url": f"{self.jira_base_url}/browse/{code}" if self.jira_base_url else None,
                }

        logger.debug(f"Linked {len(codes)} of {len(issue_ids)} Redmine issues to Jira codes")
        return entries

    async def search_issues(self, query: str) -> list[dict[str, Any]]:
        """Search issues by subject, falling back to the description.

        The description fallback only runs when the query starts with an
        issue code, and searches for that code alone.

        Args:
            query: Free text, typically a Jira browse URL or issue code

        Returns:
            Up to ten matching issues
        """
        response = await self._make_request(
            "GET", "/issues.json", params={"subject": f"~{query}", "limit": SEARCH_LIMIT}
        )
        issues = response.json().get("issues", [])
        if issues:
            return issues

        code = extract_issue_code(query)
        if code and query.startswith(code):
            response = await self._make_request(
                "GET", "/issues.json", params={"description": f"~{code}", "limit": SEARCH_LIMIT}
            )
            return response.json().get("issues", [])
        return []

    async def create_issue(
        self,
        project_id: str,
        subject: str,
        description: str = "",
        priority_id: Optional[int] = None,
        status_id: Optional[int] = None,
        tracker_id: int = DEFAULT_TRACKER_ID,
    ) -> dict[str, Any]:
        """Create an issue assigned to the current user.

        Args:
            project_id: Redmine project ID
            subject: Issue subject
            description: Issue description
            priority_id: Redmine priority ID
            status_id: Redmine status ID
            tracker_id: Redmine tracker ID

        Returns:
            Created issue data
        """
        user = await self.get_current_user()
        payload: dict[str, Any] = {
            "project_id": int(project_id),
            "subject": subject,
            "description": description or "",
            "tracker_id": tracker_id,
            "assigned_to_id": user["id"],
        }
        if status_id is not None:
            payload["status_id"] = status_id
        if priority_id is not None:
            payload["priority_id"] = priority_id

        logger.debug(f"Creating Redmine issue: {payload}")
        response = await self._make_request("POST", "/issues.json", json={"issue": payload})
        return response.json()["issue"]

    async def create_time_entry(
        self,
        spent_on: str,
        hours: float,
        comments: str = "",
        issue_id: Optional[int] = None,
        project_id: Optional[str] = None,
        activity_id: int = DEFAULT_ACTIVITY_ID,
    ) -> dict[str, Any]:
        """Create a time entry on an issue or, without one, on a project.

        Args:
            spent_on: Date in YYYY-MM-DD format
            hours: Hours spent
            comments: Entry comment
            issue_id: Redmine issue ID
            project_id: Redmine project ID, used when no issue is given
            activity_id: Time entry activity ID

        Returns:
            Created time entry data

        Raises:
            ValueError: If neither issue_id nor project_id is given
        """
        payload: dict[str, Any] = {
            "spent_on": spent_on,
            "hours": hours,
            "comments": comments or "",
            "activity_id": activity_id,
        }
        if issue_id:
            payload["issue_id"] = int(issue_id)
        elif project_id:
            payload["project_id"] = int(project_id)
        else:
            raise ValueError("Either task ID or project ID is required")

        logger.debug(f"Creating Redmine time entry: {payload}")
        response = await self._make_request(
            "POST", "/time_entries.json", json={"time_entry": payload}
        )
        return response.json()["time_entry"]

    async def get_projects(self) -> list[dict[str, Any]]:
        """Get all visible projects sorted by name.

        Returns:
            List of projects
        """
        projects = await self._get_paginated("/projects.json", "projects")
        return sorted(projects, key=lambda p: p.get("name", "").lower())

    async def test_connection(self) -> bool:
        """Test if API connection works.

        Returns:
            True if connection is successful
        """
        try:
            await self._make_request("GET", "/users/current.json")
            return True
        except ApiError as e:
            logger.error(f"Redmine connection test failed: {e}")
            return False


def sanitize_url(url: str) -> str:
    """Strip trailing slashes and default to https when no scheme is given."""
    url = (url or "").strip().rstrip("/")
    if url and not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url
