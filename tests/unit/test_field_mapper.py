"""Tests for Jira to Redmine field mapping."""

from tempo2redmine.domain.models import IssueMetadata
from tempo2redmine.mapping.field_mapper import FieldMapper


def metadata(**overrides):
    values = dict(code="AB-9", title="Checkout fails", base_url="https://co.atlassian.net/")
    values.update(overrides)
    return IssueMetadata(**values)


def test_map_issue():
    fields = FieldMapper().map_issue(metadata(priority_name="Highest", status_name="Done"), 12)

    assert fields == {
        "project_id": "12",
        "subject": "AB-9: Checkout fails",
        "description": "https://co.atlassian.net/browse/AB-9",
        "priority_id": 6,
        "status_id": 3,
        "tracker_id": 1,
    }


def test_unknown_names_use_defaults():
    mapper = FieldMapper()
    assert mapper.map_priority("Blocker") == 4
    assert mapper.map_priority(None) == 4
    assert mapper.map_status("Triage") == 1


def test_subject_without_title():
    assert FieldMapper().map_issue(metadata(title=""), "1")["subject"] == "AB-9"


def test_configured_rules_extend_the_tables():
    mapper = FieldMapper(
        {
            "priority_map": {"Blocker": 7},
            "status_map": {"Triage": 2},
            "default_priority_id": "3",
            "tracker_id": "4",
        }
    )

    assert mapper.map_priority("Blocker") == 7
    assert mapper.map_priority("High") == 5
    assert mapper.map_priority("Unknown") == 3
    assert mapper.map_status("Triage") == 2
    assert mapper.map_issue(metadata(), "1")["tracker_id"] == 4
