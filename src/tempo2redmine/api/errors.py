"""Error type shared by the HTTP adapters."""

from typing import Optional

import httpx

STATUS_MESSAGES = {
    401: "Authentication failed - check the API token",
    403: "Access denied - insufficient permissions",
    404: "Resource not found",
    422: "Validation failed",
    429: "Rate limit exceeded - try again later",
    500: "Internal server error",
    502: "Bad gateway",
    503: "Service unavailable",
}


class ApiError(Exception):
    """Failure talking to one of the remote services."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None) -> None:
        self.service = service
        self.message = message
        self.status_code = status_code
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.service} API error ({self.status_code}): {self.message}"
        return f"{self.service} API error: {self.message}"

    @classmethod
    def from_response(cls, service: str, response: httpx.Response) -> "ApiError":
        """Build an error from a non-2xx response, keeping any server-side detail."""
        message = STATUS_MESSAGES.get(response.status_code, response.reason_phrase or "Request failed")
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            # Redmine reports validation problems as {"errors": [...]}
            errors = body.get("errors") or body.get("errorMessages")
            if errors:
                message = f"{message}: {'; '.join(str(e) for e in errors)}"
        return cls(service, message, response.status_code)
