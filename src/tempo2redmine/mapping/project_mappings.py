"""Jira URL to Redmine project mappings.

Mappings are kept as an ordered list in a JSON file. The resolver picks the
first mapping whose URL prefix and the context URL contain one another.
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from ..domain.models import ProjectMapping

logger = logging.getLogger(__name__)


def sanitize_mapping_url(url: str) -> str:
    """Trim, strip trailing slashes and default to https."""
    url = (url or "").strip().rstrip("/")
    if url and not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


def _comparable(url: str) -> str:
    return (url or "").strip().lower().rstrip("/")


class ProjectMappingResolver:
    """Resolve a context URL to a Redmine project ID."""

    def __init__(self, mappings: Iterable[ProjectMapping]) -> None:
        self.mappings = list(mappings)

    def resolve(self, context_url: Optional[str]) -> Optional[str]:
        """Find the project mapped to a URL.

        Args:
            context_url: Jira base URL or any URL below it

        Returns:
            Redmine project ID of the first matching mapping, or None
        """
        target = _comparable(context_url or "")
        if not target:
            return None

        for mapping in self.mappings:
            prefix = _comparable(mapping.jira_url_prefix)
            if prefix and (prefix in target or target in prefix):
                logger.debug(f"Resolved {context_url} to project {mapping.ledger_project_id}")
                return mapping.ledger_project_id
        return None


class ProjectMappingStore:
    """Persist project mappings in a JSON file."""

    def __init__(self, mapping_file: str = "data/project_mappings.json") -> None:
        """Initialize mapping store.

        Args:
            mapping_file: Path to JSON file storing mappings
        """
        self.mapping_file = Path(mapping_file)
        self.mapping_file.parent.mkdir(parents=True, exist_ok=True)
        self.mappings: list[ProjectMapping] = []
        self._load()

    def _load(self) -> None:
        if not self.mapping_file.exists():
            logger.debug(f"No mapping file at {self.mapping_file}, starting empty")
            return

        try:
            with open(self.mapping_file, encoding="utf-8") as f:
                data = json.load(f)
            self.mappings = [ProjectMapping.from_dict(m) for m in data.get("mappings", [])]
            logger.debug(f"Loaded {len(self.mappings)} project mappings")
        except (json.JSONDecodeError, OSError, KeyError) as e:
            logger.warning(f"Could not load project mappings: {e}, starting fresh")
            self.mappings = []

    def _save(self) -> None:
        data = {
            "version": "1.0",
            "last_updated": datetime.now().isoformat(),
            "mappings": [m.to_dict() for m in self.mappings],
        }
        with open(self.mapping_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.debug(f"Saved {len(self.mappings)} project mappings")

    def _new_id(self) -> str:
        candidate = int(time.time() * 1000)
        existing = {m.id for m in self.mappings}
        while str(candidate) in existing:
            candidate += 1
        return str(candidate)

    def _check_duplicate(self, url: str, ignore_id: Optional[str] = None) -> None:
        for mapping in self.mappings:
            if mapping.id != ignore_id and mapping.jira_url_prefix.lower() == url.lower():
                raise ValueError(f"A mapping for {url} already exists")

    def list_mappings(self) -> list[ProjectMapping]:
        return list(self.mappings)

    def get_mapping(self, mapping_id: str) -> Optional[ProjectMapping]:
        return next((m for m in self.mappings if m.id == str(mapping_id)), None)

    def add_mapping(
        self, jira_url_prefix: str, ledger_project_id: str, description: str = ""
    ) -> ProjectMapping:
        """Add a mapping.

        Args:
            jira_url_prefix: Jira URL or URL prefix
            ledger_project_id: Redmine project ID
            description: Free-text note

        Returns:
            The stored mapping

        Raises:
            ValueError: If a field is empty or the URL is already mapped
        """
        url = sanitize_mapping_url(jira_url_prefix)
        if not url or not str(ledger_project_id or "").strip():
            raise ValueError("Jira URL and Redmine project are required")
        self._check_duplicate(url)

        now = datetime.now().isoformat()
        mapping = ProjectMapping(
            id=self._new_id(),
            jira_url_prefix=url,
            ledger_project_id=str(ledger_project_id).strip(),
            description=(description or "").strip(),
            created_at=now,
            updated_at=now,
        )
        self.mappings.append(mapping)
        self._save()
        logger.info(f"Added project mapping {url} -> {mapping.ledger_project_id}")
        return mapping

    def update_mapping(self, mapping_id: str, **changes: Any) -> ProjectMapping:
        """Update fields of an existing mapping.

        Raises:
            KeyError: If no mapping has this ID
            ValueError: If the new URL duplicates another mapping
        """
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            raise KeyError(f"Mapping {mapping_id} not found")

        if changes.get("jira_url_prefix") is not None:
            url = sanitize_mapping_url(changes["jira_url_prefix"])
            if not url:
                raise ValueError("Jira URL is required")
            self._check_duplicate(url, ignore_id=mapping.id)
            mapping.jira_url_prefix = url
        if changes.get("ledger_project_id") is not None:
            mapping.ledger_project_id = str(changes["ledger_project_id"]).strip()
        if changes.get("description") is not None:
            mapping.description = str(changes["description"]).strip()

        mapping.updated_at = datetime.now().isoformat()
        self._save()
        return mapping

    def remove_mapping(self, mapping_id: str) -> bool:
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            return False
        self.mappings.remove(mapping)
        self._save()
        logger.info(f"Removed project mapping {mapping.jira_url_prefix}")
        return True

    def resolver(self) -> ProjectMappingResolver:
        """Snapshot the current mappings into a resolver for one run."""
        return ProjectMappingResolver(self.mappings)
