"""Minimal Jira API client for issue metadata lookups."""

import logging
from typing import Any, Optional

import httpx

from ..domain.models import IssueMetadata
from .errors import ApiError

logger = logging.getLogger(__name__)

METADATA_FIELDS = ["summary", "priority", "status"]


class JiraClient:
    """Simple async Jira API client."""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize Jira client.

        Args:
            base_url: Jira base URL
            email: User email for authentication
            api_token: Jira API token
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.api_token = api_token
        self.transport = transport
        self.headers = {"Accept": "application/json", "Content-Type": "application/json"}

    async def _make_request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Make authenticated request to Jira API.

        Args:
            method: HTTP method
            endpoint: API endpoint
            **kwargs: Additional request arguments

        Returns:
            Response object

        Raises:
            ApiError: On transport failure or a non-2xx response
        """
        url = f"{self.base_url}/rest/api/3{endpoint}"

        try:
            async with httpx.AsyncClient(
                headers=self.headers,
                auth=(self.email, self.api_token),
                timeout=30,
                transport=self.transport,
            ) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            logger.error(f"Jira API request failed: {e}")
            raise ApiError.from_response("Jira", e.response) from e
        except httpx.HTTPError as e:
            logger.error(f"Jira API request failed: {e}")
            raise ApiError("Jira", str(e) or type(e).__name__) from e

    async def get_issue(self, issue_key: str, fields: list[str] | None = None) -> dict[str, Any]:
        """Get issue details.

        Args:
            issue_key: Issue key or ID (e.g., 'PROJ-123' or '10386')
            fields: Specific fields to fetch (e.g., ['summary', 'status'])

        Returns:
            Issue data
        """
        params = {}
        if fields:
            params["fields"] = ",".join(fields)

        response = await self._make_request("GET", f"/issue/{issue_key}", params=params)
        return response.json()

    async def get_issue_metadata(self, issue_key: str) -> IssueMetadata:
        """Fetch the code, title, priority and status of an issue.

        Args:
            issue_key: Issue key or numeric ID

        Returns:
            IssueMetadata for the issue
        """
        issue = await self.get_issue(str(issue_key), fields=METADATA_FIELDS)
        fields = issue.get("fields") or {}
        return IssueMetadata(
            code=issue["key"],
            title=fields.get("summary") or "",
            base_url=self.base_url,
            id=str(issue.get("id")) if issue.get("id") is not None else None,
            priority_name=(fields.get("priority") or {}).get("name"),
            status_name=(fields.get("status") or {}).get("name"),
        )

    def browse_url(self, issue_code: str) -> str:
        return f"{self.base_url}/browse/{issue_code}"

    async def test_connection(self) -> bool:
        """Test if API connection works.

        Returns:
            True if connection is successful
        """
        try:
            await self._make_request("GET", "/myself")
            return True
        except ApiError as e:
            logger.error(f"Jira connection test failed: {e}")
            return False
