"""Domain models and value objects for reconciliation runs."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class Origin(str, Enum):
    """System a normalized record was read from."""

    WORKLOG = "worklog"
    LEDGER = "ledger"


class MatchReason(str, Enum):
    """Tags explaining why a ledger record was considered a match."""

    ISSUE_CODE_MATCH = "issueCodeMatch"
    HOURS_MATCH = "hoursMatch"
    HOURS_SIMILAR = "hoursSimilar"
    DESCRIPTION_SIMILAR = "descriptionSimilar"


class MappingStatus(str, Enum):
    """How a missing entry's issue code relates to existing ledger issues."""

    NO_JIRA_TASK = "no_jira_task"
    JIRA_ID_UNRESOLVED = "jira_id_unresolved"
    NO_REDMINE_LINK = "no_redmine_link"
    SINGLE_LINK = "single_link"
    MULTIPLE_LINKS = "multiple_links"

    @property
    def is_linked(self) -> bool:
        return self in (MappingStatus.SINGLE_LINK, MappingStatus.MULTIPLE_LINKS)


class EntryState(str, Enum):
    """Progress states a missing entry goes through while being created."""

    PENDING = "pending"
    CREATING = "creating"
    CREATED = "created"
    FAILED = "failed"


@dataclass(frozen=True)
class TimeRecord:
    """A time record normalized from either the worklog or the ledger source."""

    date: str
    hours: float
    description: str
    origin: Origin
    source_id: Optional[str] = None
    linked_issue_code: Optional[str] = None
    linked_ledger_issue_id: Optional[int] = None
    issue_ref: Optional[str] = None
    issue_url: Optional[str] = None


@dataclass(frozen=True)
class Match:
    """Pairing of one worklog record with its best ledger candidate."""

    worklog: TimeRecord
    ledger: Optional[TimeRecord]
    similarity: float
    reasons: list[MatchReason] = field(default_factory=list)
    match_type: str = "exact"


@dataclass(frozen=True)
class Discrepancy:
    """Partial match reported by the strict comparison mode."""

    worklog: TimeRecord
    ledger: TimeRecord
    similarity: float
    hours_difference: float
    type: str = "hours_mismatch"


@dataclass(frozen=True)
class Suggestion:
    """Same-date ledger records offered for human review of a missing entry."""

    type: str
    entries: list[TimeRecord]
    message: str


@dataclass
class MissingEntry:
    """A worklog record with no accepted match in the ledger."""

    record: TimeRecord
    redmine_task: Optional[int] = None
    jira_task: Optional[str] = None
    mapping_status: MappingStatus = MappingStatus.NO_JIRA_TASK
    linked_ledger_issue_ids: list[int] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)
    state: EntryState = EntryState.PENDING
    error: Optional[str] = None

    @property
    def date(self) -> str:
        return self.record.date

    @property
    def hours(self) -> float:
        return self.record.hours

    @property
    def description(self) -> str:
        return self.record.description

    @property
    def key(self) -> str:
        """Identity key used to locate the entry in the live missing list."""
        return f"{self.record.date}-{self.record.hours:g}-{self.jira_task or 'no-jira'}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "date": self.date,
            "hours": self.hours,
            "description": self.description,
            "jira_task": self.jira_task,
            "redmine_task": self.redmine_task,
            "mapping_status": self.mapping_status.value,
            "state": self.state.value,
            "error": self.error,
            "suggestions": [
                {"type": s.type, "message": s.message, "count": len(s.entries)}
                for s in self.suggestions
            ],
        }


@dataclass
class ReconciliationStats:
    """Aggregate counts and hour sums of a reconciliation run."""

    tempo_total: int = 0
    tempo_hours: float = 0.0
    redmine_total: int = 0
    redmine_hours: float = 0.0
    missing: int = 0
    missing_hours: float = 0.0
    matched: int = 0
    discrepancies: int = 0
    mapping_rate: float = 0.0

    @property
    def hours_difference(self) -> float:
        return self.tempo_hours - self.redmine_hours

    @property
    def missing_percentage(self) -> float:
        return self.missing / self.tempo_total * 100 if self.tempo_total else 0.0

    @property
    def matched_percentage(self) -> float:
        return self.matched / self.tempo_total * 100 if self.tempo_total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tempo_total": self.tempo_total,
            "tempo_hours": round(self.tempo_hours, 2),
            "redmine_total": self.redmine_total,
            "redmine_hours": round(self.redmine_hours, 2),
            "missing": self.missing,
            "missing_hours": round(self.missing_hours, 2),
            "matched": self.matched,
            "discrepancies": self.discrepancies,
            "mapping_rate": self.mapping_rate,
            "hours_difference": round(self.hours_difference, 2),
            "missing_percentage": round(self.missing_percentage, 1),
            "matched_percentage": round(self.matched_percentage, 1),
        }


@dataclass(frozen=True)
class DateBreakdown:
    """Per-date totals of both sources."""

    tempo_entries: int
    tempo_hours: float
    redmine_entries: int
    redmine_hours: float
    status: str

    @property
    def hours_difference(self) -> float:
        return self.tempo_hours - self.redmine_hours


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation run.

    Mutated after creation only through ``gap_filler.apply_creation``.
    """

    missing_in_redmine: list[MissingEntry]
    matched: list[Match]
    stats: ReconciliationStats
    discrepancies: list[Discrepancy] = field(default_factory=list)
    by_date: dict[str, DateBreakdown] = field(default_factory=dict)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def find_missing(self, key: str) -> Optional[MissingEntry]:
        return next((e for e in self.missing_in_redmine if e.key == key), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": {
                "start_date": self.start_date.isoformat() if self.start_date else None,
                "end_date": self.end_date.isoformat() if self.end_date else None,
            },
            "stats": self.stats.to_dict(),
            "missing": [entry.to_dict() for entry in self.missing_in_redmine],
            "matched": [
                {
                    "date": m.worklog.date,
                    "hours": m.worklog.hours,
                    "jira_task": m.worklog.linked_issue_code,
                    "redmine_entry": m.ledger.source_id if m.ledger else None,
                    "similarity": round(m.similarity, 3),
                    "match_type": m.match_type,
                    "reasons": [r.value for r in m.reasons],
                }
                for m in self.matched
            ],
            "discrepancies": [
                {
                    "date": d.worklog.date,
                    "hours_difference": round(d.hours_difference, 2),
                    "type": d.type,
                }
                for d in self.discrepancies
            ],
        }


@dataclass(frozen=True)
class IssueMetadata:
    """Issue tracker metadata needed to resolve codes and create ledger issues."""

    code: str
    title: str
    base_url: str
    id: Optional[str] = None
    priority_name: Optional[str] = None
    status_name: Optional[str] = None

    @property
    def browse_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/browse/{self.code}"


@dataclass
class ProjectMapping:
    """Issue tracker URL prefix mapped to a ledger project."""

    id: str
    jira_url_prefix: str
    ledger_project_id: str
    description: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "jira_url_prefix": self.jira_url_prefix,
            "ledger_project_id": self.ledger_project_id,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectMapping":
        return cls(
            id=str(data["id"]),
            jira_url_prefix=data["jira_url_prefix"],
            ledger_project_id=str(data["ledger_project_id"]),
            description=data.get("description", ""),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass(frozen=True)
class CreatedEntry:
    """A missing entry that now exists as a ledger time entry."""

    entry: MissingEntry
    time_entry: dict[str, Any]
    redmine_task: Optional[int] = None
    project_id: Optional[str] = None
    created_issue: bool = False


@dataclass(frozen=True)
class FailedEntry:
    entry: MissingEntry
    error: str


@dataclass
class FillReport:
    """Outcome of a bulk gap-fill."""

    created: list[CreatedEntry] = field(default_factory=list)
    failed: list[FailedEntry] = field(default_factory=list)
    issues_created: dict[str, int] = field(default_factory=dict)
    issue_errors: dict[str, str] = field(default_factory=dict)

    @property
    def errors(self) -> list[str]:
        messages = [f"{code}: {error}" for code, error in self.issue_errors.items()]
        messages.extend(f"{f.entry.date} ({f.entry.hours:.2f}h): {f.error}" for f in self.failed)
        return messages

    @property
    def created_hours(self) -> float:
        return sum(c.entry.hours for c in self.created)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": len(self.created),
            "failed": len(self.failed),
            "created_hours": round(self.created_hours, 2),
            "issues_created": dict(self.issues_created),
            "errors": self.errors,
        }


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome carrying the operation's payload."""

    value: T
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Failure:
    """Failed outcome carrying a structured error."""

    error: str
    details: list[str] = field(default_factory=list)
    success: bool = field(default=False, init=False)


Result = Union[Success[T], Failure]
