from typing import Any, Dict, Optional
import logging

from ..domain.models import IssueMetadata

logger = logging.getLogger(__name__)

PRIORITY_MAP = {
    "Highest": 6,
    "High": 5,
    "Medium": 4,
    "Low": 3,
    "Lowest": 33,
}

STATUS_MAP = {
    "To Do": 1,
    "Backlog": 1,
    "Open": 1,
    "Billing Hold": 4,
    "Pending": 4,
    "In Progress": 7,
    "Reopened": 7,
    "Ready for Review": 14,
    "RC&QA": 3,
    "Checked On UAT": 3,
    "Waiting For Release": 3,
    "Transfer to RC": 3,
    "Issue Closed": 3,
    "Done": 3,
    "Resolved": 3,
    "Closed": 5,
    "Cannot be Tested": 6,
    "Cancelled": 6,
}

DEFAULT_PRIORITY_ID = 4
DEFAULT_STATUS_ID = 1
DEFAULT_TRACKER_ID = 1


class FieldMapper:
    def __init__(self, mapping_rules: Optional[dict] = None):
        mapping_rules = mapping_rules or {}
        self.priority_map = {**PRIORITY_MAP, **mapping_rules.get("priority_map", {})}
        self.status_map = {**STATUS_MAP, **mapping_rules.get("status_map", {})}
        self.default_priority_id = int(
            mapping_rules.get("default_priority_id") or DEFAULT_PRIORITY_ID
        )
        self.default_status_id = int(mapping_rules.get("default_status_id") or DEFAULT_STATUS_ID)
        self.tracker_id = int(mapping_rules.get("tracker_id") or DEFAULT_TRACKER_ID)

    def map_priority(self, priority_name: Optional[str]) -> int:
        """Map a Jira priority name to a Redmine priority ID, falling back to the default."""
        if priority_name and priority_name in self.priority_map:
            return self.priority_map[priority_name]
        if priority_name:
            logger.debug(f"No Redmine priority for Jira priority '{priority_name}'")
        return self.default_priority_id

    def map_status(self, status_name: Optional[str]) -> int:
        """Map a Jira status name to a Redmine status ID, falling back to the default."""
        if status_name and status_name in self.status_map:
            return self.status_map[status_name]
        if status_name:
            logger.debug(f"No Redmine status for Jira status '{status_name}'")
        return self.default_status_id

    def map_issue(self, metadata: IssueMetadata, project_id: str) -> Dict[str, Any]:
        """
        Build the Redmine issue fields for a Jira issue.

        Args:
            metadata: Jira issue metadata
            project_id: Target Redmine project

        Returns:
            Keyword arguments for RedmineClient.create_issue
        """
        subject = f"{metadata.code}: {metadata.title}" if metadata.title else metadata.code
        return {
            "project_id": str(project_id),
            "subject": subject,
            "description": metadata.browse_url,
            "priority_id": self.map_priority(metadata.priority_name),
            "status_id": self.map_status(metadata.status_name),
            "tracker_id": self.tracker_id,
        }
