"""Health check implementation for API services."""

import asyncio
import logging
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class HealthChecker:
    """Health check for external API dependencies."""

    def __init__(self, tempo_client, jira_client, redmine_client):
        self.clients = {
            "tempo": tempo_client,
            "jira": jira_client,
            "redmine": redmine_client,
        }

    async def _check(self, name: str) -> Tuple[bool, str]:
        try:
            if await self.clients[name].test_connection():
                return True, "OK"
            return False, "Connection test failed"
        except Exception as e:
            logger.error(f"{name.capitalize()} health check failed: {e}")
            return False, str(e)

    async def check_all(self) -> Dict[str, Dict[str, str]]:
        """Check all services concurrently and return their status."""
        names = list(self.clients)
        outcomes = await asyncio.gather(*(self._check(name) for name in names))

        status: Dict[str, Dict[str, str]] = {
            name: {"status": "healthy" if healthy else "unhealthy", "message": message}
            for name, (healthy, message) in zip(names, outcomes)
        }
        all_healthy = all(healthy for healthy, _ in outcomes)
        status["overall"] = {
            "status": "healthy" if all_healthy else "unhealthy",
            "message": "All services healthy" if all_healthy else "One or more services unhealthy",
        }
        return status
