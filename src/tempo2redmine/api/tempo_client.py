"""Minimal Tempo API client for worklog retrieval."""

import logging
from datetime import date
from typing import Any, Optional

import httpx

from .errors import ApiError

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
MAX_WORKLOGS = 10000


class TempoClient:
    """Simple async Tempo API client."""

    def __init__(
        self,
        api_token: str,
        worker_account_id: Optional[str] = None,
        base_url: str = "https://api.tempo.io/4",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize Tempo client.

        Args:
            api_token: Tempo API authentication token
            worker_account_id: Restrict worklogs to this Atlassian account
            base_url: Tempo API root
            transport: Optional httpx transport (used by tests)
        """
        self.api_token = api_token
        self.worker_account_id = worker_account_id
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    async def _make_request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(
                headers=self.headers, timeout=30, transport=self.transport
            ) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            logger.error(f"Tempo API request failed: {e}")
            raise ApiError.from_response("Tempo", e.response) from e
        except httpx.HTTPError as e:
            logger.error(f"Tempo API request failed: {e}")
            raise ApiError("Tempo", str(e) or type(e).__name__) from e

    async def get_worklogs(self, from_date: date, to_date: date) -> list[dict[str, Any]]:
        """Get worklogs for date range.

        Pages through the results until a short page, a missing ``next`` link
        or the safety cap is reached.

        Args:
            from_date: Start date (inclusive)
            to_date: End date (inclusive)

        Returns:
            List of raw worklog entries
        """
        params: dict[str, Any] = {
            "from": from_date.strftime("%Y-%m-%d"),
            "to": to_date.strftime("%Y-%m-%d"),
            "limit": PAGE_SIZE,
        }
        if self.worker_account_id:
            params["worker"] = self.worker_account_id

        worklogs: list[dict[str, Any]] = []
        offset = 0
        while len(worklogs) < MAX_WORKLOGS:
            response = await self._make_request(
                "GET", "/worklogs", params={**params, "offset": offset}
            )
            data = response.json()
            page = data.get("results", [])
            worklogs.extend(page)

            if len(page) < PAGE_SIZE or not data.get("metadata", {}).get("next"):
                break
            offset += PAGE_SIZE

        if len(worklogs) >= MAX_WORKLOGS:
            logger.warning(f"Worklog fetch stopped at the {MAX_WORKLOGS} entry cap")
            worklogs = worklogs[:MAX_WORKLOGS]

        logger.info(f"Retrieved {len(worklogs)} worklogs from Tempo")
        return worklogs

    async def test_connection(self) -> bool:
        """Test if API connection works.

        Returns:
            True if connection is successful
        """
        try:
            await self._make_request("GET", "/work-attributes")
            return True
        except ApiError as e:
            logger.error(f"Tempo connection test failed: {e}")
            return False
