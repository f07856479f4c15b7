"""Configuration loader for tempo2redmine.

Settings come from a JSON or YAML file. Credentials and URLs can be
overridden through environment variables, which are read after loading an
optional ``.env`` file.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

ENV_OVERRIDES = {
    "TEMPO_API_TOKEN": ("tempo", "api_token"),
    "TEMPO_WORKER_ID": ("tempo", "worker"),
    "JIRA_BASE_URL": ("jira", "base_url"),
    "JIRA_USER_EMAIL": ("jira", "user_email"),
    "JIRA_API_TOKEN": ("jira", "api_token"),
    "REDMINE_URL": ("redmine", "url"),
    "REDMINE_API_KEY": ("redmine", "api_key"),
    "REDMINE_PROJECT_ID": ("redmine", "project_id"),
}

DEFAULT_SYNC = {
    "schedule": "0 8 * * *",
    "auto_fill": False,
    "strict": False,
    "data_dir": "data",
    "log_dir": "logs",
    "metrics_dir": "metrics",
}


class Config:
    """Configuration container loaded from a JSON or YAML file."""

    def __init__(self, config_path: str = "config.json", require_file: bool = True) -> None:
        """Initialize configuration.

        Args:
            config_path: Path to config.json, config.yaml or config.yml
            require_file: Raise when the file is missing instead of relying on
                environment variables alone

        Raises:
            FileNotFoundError: If the file is missing and require_file is set
        """
        load_dotenv()
        self.path = Path(config_path)
        self.data: Dict[str, Any] = {}

        if self.path.exists():
            with open(self.path, encoding="utf-8") as f:
                if self.path.suffix in (".yaml", ".yml"):
                    self.data = yaml.safe_load(f) or {}
                else:
                    self.data = json.load(f)
        elif require_file:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                self.data.setdefault(section, {})[key] = value

    @property
    def jira(self) -> Dict[str, str]:
        """Get Jira configuration."""
        return self.data.get("jira", {})

    @property
    def tempo(self) -> Dict[str, str]:
        """Get Tempo configuration."""
        return self.data.get("tempo", {})

    @property
    def redmine(self) -> Dict[str, Any]:
        """Get Redmine configuration."""
        return self.data.get("redmine", {})

    @property
    def sync(self) -> Dict[str, Any]:
        """Get sync configuration with defaults applied."""
        return {**DEFAULT_SYNC, **self.data.get("sync", {})}

    @property
    def web(self) -> Dict[str, Any]:
        """Get web UI configuration."""
        return self.data.get("web", {"port": 8080})

    @property
    def mappings_file(self) -> str:
        return str(Path(self.sync["data_dir"]) / "project_mappings.json")

    @property
    def history_file(self) -> str:
        return str(Path(self.sync["data_dir"]) / "history.db")

    def validate(self) -> tuple[bool, list[str]]:
        """Validate required configuration fields.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors: list[str] = []

        if not self.jira.get("base_url"):
            errors.append("jira.base_url is required")
        if not self.jira.get("api_token"):
            errors.append("jira.api_token is required")
        if not self.jira.get("user_email"):
            errors.append("jira.user_email is required")

        if not self.tempo.get("api_token"):
            errors.append("tempo.api_token is required")

        if not self.redmine.get("url"):
            errors.append("redmine.url is required")
        if not self.redmine.get("api_key"):
            errors.append("redmine.api_key is required")

        for key in ("project_id", "activity_id", "tracker_id", "default_priority_id", "default_status_id"):
            value = self.redmine.get(key)
            if value not in (None, "") and not str(value).isdigit():
                errors.append(f"redmine.{key} must be a number")

        return len(errors) == 0, errors

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return self.data.copy()
