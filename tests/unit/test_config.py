"""Tests for configuration loading."""

import json

import pytest

from tempo2redmine.config import ENV_OVERRIDES, Config

FULL = {
    "jira": {"base_url": "https://co.atlassian.net", "user_email": "me@co.com", "api_token": "j"},
    "tempo": {"api_token": "t"},
    "redmine": {"url": "https://redmine.example.com", "api_key": "r", "project_id": "7"},
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


def write_json(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))
    return str(path)


def test_json_config_is_valid(tmp_path):
    config = Config(write_json(tmp_path, FULL))

    assert config.validate() == (True, [])
    assert config.redmine["project_id"] == "7"
    assert config.sync["schedule"] == "0 8 * * *"
    assert config.mappings_file.endswith("project_mappings.json")


def test_yaml_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "jira:\n  base_url: https://co.atlassian.net\n"
        "sync:\n  data_dir: state\n  strict: true\n"
    )
    config = Config(str(path))

    assert config.jira["base_url"] == "https://co.atlassian.net"
    assert config.sync["strict"] is True
    assert config.sync["log_dir"] == "logs"
    assert config.history_file.startswith("state")


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config(str(tmp_path / "missing.json"))
    assert Config(str(tmp_path / "missing.json"), require_file=False).data == {}


def test_environment_overrides_file(tmp_path, monkeypatch):
    monkeypatch.setenv("REDMINE_API_KEY", "from-env")
    monkeypatch.setenv("TEMPO_WORKER_ID", "acc-1")

    config = Config(write_json(tmp_path, FULL))

    assert config.redmine["api_key"] == "from-env"
    assert config.tempo["worker"] == "acc-1"


def test_environment_alone_is_enough(tmp_path, monkeypatch):
    env = {
        "JIRA_BASE_URL": "https://co.atlassian.net",
        "JIRA_USER_EMAIL": "me@co.com",
        "JIRA_API_TOKEN": "j",
        "TEMPO_API_TOKEN": "t",
        "REDMINE_URL": "https://redmine.example.com",
        "REDMINE_API_KEY": "r",
    }
    for name, value in env.items():
        monkeypatch.setenv(name, value)

    config = Config(str(tmp_path / "none.json"), require_file=False)

    assert config.validate() == (True, [])


def test_validation_errors(tmp_path):
    config = Config(write_json(tmp_path, {"redmine": {"project_id": "abc"}}))

    is_valid, errors = config.validate()

    assert not is_valid
    assert "jira.base_url is required" in errors
    assert "tempo.api_token is required" in errors
    assert "redmine.project_id must be a number" in errors
