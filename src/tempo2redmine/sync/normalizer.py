"""Normalize raw Tempo worklogs and Redmine time entries into TimeRecords."""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from ..domain.models import Origin, TimeRecord
from ..utils.issue_codes import is_issue_code
from .issue_resolver import IssueKeyResolver

logger = logging.getLogger(__name__)


def _normalize_date(value: Any, source: str, source_id: Optional[str]) -> str:
    text = str(value or "").strip()[:10]
    try:
        return datetime.strptime(text, "%Y-%m-%d").date().isoformat()
    except ValueError:
        logger.warning(f"{source} record {source_id} has malformed date {value!r}")
        return text


def _normalize_hours(value: Any, divisor: float, source: str, source_id: Optional[str]) -> float:
    try:
        hours = float(value or 0) / divisor
    except (TypeError, ValueError):
        logger.warning(f"{source} record {source_id} has malformed duration {value!r}")
        return 0.0
    if hours < 0:
        logger.warning(f"{source} record {source_id} has negative duration {value!r}")
        return 0.0
    return hours


def _worklog_issue_code(raw: dict[str, Any]) -> Optional[str]:
    jira = raw.get("jira") or {}
    if is_issue_code(jira.get("code")):
        return jira["code"]
    issue = raw.get("issue") or {}
    if is_issue_code(issue.get("key")):
        return issue["key"]
    return None


def normalize_worklog(raw: dict[str, Any] | TimeRecord, issue_code: Optional[str] = None) -> TimeRecord:
    """Convert one Tempo worklog. Already normalized records pass through unchanged.

    Args:
        raw: Worklog as returned by the Tempo API
        issue_code: Resolved issue code, when the worklog only carries an ID

    Returns:
        TimeRecord with origin ``worklog``
    """
    if isinstance(raw, TimeRecord):
        return raw

    source_id = str(raw.get("tempoWorklogId") or raw.get("id") or "") or None
    issue = raw.get("issue") or {}
    issue_ref = str(issue["id"]) if issue.get("id") is not None else None
    return TimeRecord(
        date=_normalize_date(raw.get("startDate"), "Tempo", source_id),
        hours=_normalize_hours(raw.get("timeSpentSeconds"), 3600, "Tempo", source_id),
        description=raw.get("description") or "",
        origin=Origin.WORKLOG,
        source_id=source_id,
        linked_issue_code=_worklog_issue_code(raw) or issue_code,
        issue_ref=issue_ref,
        issue_url=(raw.get("jira") or {}).get("url"),
    )


def normalize_ledger_entry(raw: dict[str, Any] | TimeRecord) -> TimeRecord:
    """Convert one enriched Redmine time entry. Already normalized records pass through.

    Args:
        raw: Time entry as returned by the Redmine API, optionally carrying ``jira``

    Returns:
        TimeRecord with origin ``ledger``
    """
    if isinstance(raw, TimeRecord):
        return raw

    source_id = str(raw["id"]) if raw.get("id") is not None else None
    issue = raw.get("issue") or {}
    jira = raw.get("jira") or {}
    return TimeRecord(
        date=_normalize_date(raw.get("spent_on"), "Redmine", source_id),
        hours=_normalize_hours(raw.get("hours"), 1, "Redmine", source_id),
        description=raw.get("comments") or "",
        origin=Origin.LEDGER,
        source_id=source_id,
        linked_issue_code=jira.get("code") if is_issue_code(jira.get("code")) else None,
        linked_ledger_issue_id=int(issue["id"]) if issue.get("id") is not None else None,
        issue_url=jira.get("url"),
    )


async def normalize_worklogs(
    raw_worklogs: Iterable[dict[str, Any] | TimeRecord], resolver: IssueKeyResolver
) -> list[TimeRecord]:
    """Normalize worklogs, resolving numeric issue IDs in one concurrent batch.

    Worklogs whose ID cannot be resolved keep ``issue_ref`` and get no code.
    """
    raw_worklogs = list(raw_worklogs)
    unresolved = [
        (raw.get("issue") or {}).get("id")
        for raw in raw_worklogs
        if not isinstance(raw, TimeRecord) and not _worklog_issue_code(raw)
    ]
    codes = await resolver.resolve_many(unresolved)

    records = []
    for raw in raw_worklogs:
        if isinstance(raw, TimeRecord):
            records.append(raw)
            continue
        issue_id = (raw.get("issue") or {}).get("id")
        code = codes.get(str(issue_id)) if issue_id is not None else None
        records.append(normalize_worklog(raw, code))
    return records


def normalize_ledger_entries(raw_entries: Iterable[dict[str, Any] | TimeRecord]) -> list[TimeRecord]:
    return [normalize_ledger_entry(raw) for raw in raw_entries]
