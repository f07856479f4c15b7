"""Match Tempo worklogs against Redmine time entries and detect missing entries."""

import logging
from collections import defaultdict
from datetime import date
from typing import Optional

from ..domain.models import (
    DateBreakdown,
    Discrepancy,
    MappingStatus,
    Match,
    MatchReason,
    MissingEntry,
    ReconciliationResult,
    ReconciliationStats,
    Suggestion,
    TimeRecord,
)
from .similarity import text_similarity

logger = logging.getLogger(__name__)

ISSUE_CODE_WEIGHT = 0.8
HOURS_MATCH_WEIGHT = 0.3
HOURS_SIMILAR_WEIGHT = 0.1
DESCRIPTION_WEIGHT = 0.2

HOURS_MATCH_TOLERANCE = 0.1
HOURS_SIMILAR_TOLERANCE = 0.5
DESCRIPTION_SIMILAR_THRESHOLD = 0.5

MATCH_THRESHOLD = 0.5
EXACT_THRESHOLD = 0.9

SUGGESTION_HOURS_TOLERANCE = 0.5
SUGGESTION_DESCRIPTION_THRESHOLD = 0.6


def _group_by_date(records: list[TimeRecord]) -> dict[str, list[TimeRecord]]:
    grouped: dict[str, list[TimeRecord]] = defaultdict(list)
    for record in records:
        grouped[record.date].append(record)
    return grouped


def _date_status(worklogs: list[TimeRecord], ledger: list[TimeRecord]) -> str:
    if not worklogs and not ledger:
        return "no_entries"
    if not ledger:
        return "missing_in_ledger"
    if not worklogs:
        return "extra_in_ledger"

    difference = abs(sum(r.hours for r in worklogs) - sum(r.hours for r in ledger))
    if difference < 0.1:
        return "matched"
    if difference < 1:
        return "minor_difference"
    return "major_difference"


class Matcher:
    """Pair worklogs with same-date ledger entries by weighted similarity.

    Each candidate is scored on issue code, hours and description. Candidates
    below ``MATCH_THRESHOLD`` are never selected. Of the rest the highest score
    wins and the first seen wins on ties. A worklog without a qualifying
    candidate is reported as missing.
    """

    def __init__(self, strict: bool = False) -> None:
        """Initialize matcher.

        Args:
            strict: Also report partial matches as hour discrepancies
        """
        self.strict = strict

    def score(self, worklog: TimeRecord, candidate: TimeRecord) -> tuple[float, list[MatchReason]]:
        """Score a ledger candidate against a worklog.

        Args:
            worklog: Worklog record
            candidate: Ledger record on the same date

        Returns:
            Tuple of (raw score, reasons)
        """
        score = 0.0
        reasons: list[MatchReason] = []

        if (
            worklog.linked_issue_code
            and candidate.linked_issue_code
            and worklog.linked_issue_code == candidate.linked_issue_code
        ):
            score += ISSUE_CODE_WEIGHT
            reasons.append(MatchReason.ISSUE_CODE_MATCH)

        hours_difference = abs(worklog.hours - candidate.hours)
        if hours_difference < HOURS_MATCH_TOLERANCE:
            score += HOURS_MATCH_WEIGHT
            reasons.append(MatchReason.HOURS_MATCH)
        elif hours_difference < HOURS_SIMILAR_TOLERANCE:
            score += HOURS_SIMILAR_WEIGHT
            reasons.append(MatchReason.HOURS_SIMILAR)

        description_similarity = text_similarity(worklog.description, candidate.description)
        score += DESCRIPTION_WEIGHT * description_similarity
        if description_similarity > DESCRIPTION_SIMILAR_THRESHOLD:
            reasons.append(MatchReason.DESCRIPTION_SIMILAR)

        return score, reasons

    def find_best_match(self, worklog: TimeRecord, candidates: list[TimeRecord]) -> Optional[Match]:
        """Pick the best qualifying candidate, or None when nothing reaches the threshold."""
        best: Optional[tuple[float, list[MatchReason], TimeRecord]] = None
        for candidate in candidates:
            score, reasons = self.score(worklog, candidate)
            if score < MATCH_THRESHOLD:
                continue
            if best is None or score > best[0]:
                best = (score, reasons, candidate)

        if best is None:
            return None

        score, reasons, candidate = best
        return Match(
            worklog=worklog,
            ledger=candidate,
            similarity=min(score, 1.0),
            reasons=reasons,
            match_type="exact" if score >= EXACT_THRESHOLD else "partial",
        )

    def get_suggestions(self, worklog: TimeRecord, candidates: list[TimeRecord]) -> list[Suggestion]:
        suggestions = []

        similar_hours = [
            c for c in candidates if abs(c.hours - worklog.hours) < SUGGESTION_HOURS_TOLERANCE
        ]
        if similar_hours:
            suggestions.append(
                Suggestion(
                    type="similar_hours",
                    entries=similar_hours,
                    message=f"Found {len(similar_hours)} entries with similar hours",
                )
            )

        similar_descriptions = [
            c
            for c in candidates
            if text_similarity(c.description, worklog.description) > SUGGESTION_DESCRIPTION_THRESHOLD
        ]
        if similar_descriptions:
            suggestions.append(
                Suggestion(
                    type="similar_description",
                    entries=similar_descriptions,
                    message=f"Found {len(similar_descriptions)} entries with similar descriptions",
                )
            )

        return suggestions

    def analyze_mapping(
        self, worklog: TimeRecord, ledger_by_code: dict[str, list[TimeRecord]]
    ) -> tuple[MappingStatus, list[int]]:
        """Classify how a worklog's issue code is linked in the ledger.

        Args:
            worklog: Worklog record
            ledger_by_code: All ledger records of the period grouped by issue code

        Returns:
            Tuple of (mapping status, distinct linked ledger issue IDs)
        """
        code = worklog.linked_issue_code
        if not code:
            if worklog.issue_ref:
                return MappingStatus.JIRA_ID_UNRESOLVED, []
            return MappingStatus.NO_JIRA_TASK, []

        linked = ledger_by_code.get(code, [])
        issue_ids = list(
            dict.fromkeys(r.linked_ledger_issue_id for r in linked if r.linked_ledger_issue_id)
        )
        if not linked:
            return MappingStatus.NO_REDMINE_LINK, issue_ids
        if len(linked) == 1:
            return MappingStatus.SINGLE_LINK, issue_ids
        return MappingStatus.MULTIPLE_LINKS, issue_ids

    def reconcile(
        self,
        worklogs: list[TimeRecord],
        ledger: list[TimeRecord],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ReconciliationResult:
        """Compare normalized worklogs with normalized ledger entries.

        Args:
            worklogs: Normalized Tempo records
            ledger: Normalized Redmine records
            start_date: Period start, kept on the result
            end_date: Period end, kept on the result

        Returns:
            ReconciliationResult with matches, missing entries and statistics
        """
        ledger_by_date = _group_by_date(ledger)
        ledger_by_code: dict[str, list[TimeRecord]] = defaultdict(list)
        for record in ledger:
            if record.linked_issue_code:
                ledger_by_code[record.linked_issue_code].append(record)

        matched: list[Match] = []
        missing: list[MissingEntry] = []
        discrepancies: list[Discrepancy] = []

        for worklog in worklogs:
            candidates = ledger_by_date.get(worklog.date, [])
            match = self.find_best_match(worklog, candidates)

            if match is None:
                status, issue_ids = self.analyze_mapping(worklog, ledger_by_code)
                missing.append(
                    MissingEntry(
                        record=worklog,
                        jira_task=worklog.linked_issue_code,
                        redmine_task=issue_ids[0] if status.is_linked and issue_ids else None,
                        mapping_status=status,
                        linked_ledger_issue_ids=issue_ids,
                        suggestions=self.get_suggestions(worklog, candidates),
                    )
                )
                continue

            matched.append(match)
            if self.strict and match.match_type == "partial":
                discrepancies.append(
                    Discrepancy(
                        worklog=worklog,
                        ledger=match.ledger,
                        similarity=match.similarity,
                        hours_difference=worklog.hours - match.ledger.hours,
                    )
                )

        stats = ReconciliationStats(
            tempo_total=len(worklogs),
            tempo_hours=sum(r.hours for r in worklogs),
            redmine_total=len(ledger),
            redmine_hours=sum(r.hours for r in ledger),
            missing=len(missing),
            missing_hours=sum(e.hours for e in missing),
            matched=len(matched),
            discrepancies=len(discrepancies),
            mapping_rate=self._mapping_rate(worklogs, matched, missing),
        )

        worklogs_by_date = _group_by_date(worklogs)
        by_date = {}
        for day in sorted(set(worklogs_by_date) | set(ledger_by_date)):
            day_worklogs = worklogs_by_date.get(day, [])
            day_ledger = ledger_by_date.get(day, [])
            by_date[day] = DateBreakdown(
                tempo_entries=len(day_worklogs),
                tempo_hours=sum(r.hours for r in day_worklogs),
                redmine_entries=len(day_ledger),
                redmine_hours=sum(r.hours for r in day_ledger),
                status=_date_status(day_worklogs, day_ledger),
            )

        logger.info(
            f"Reconciled {stats.tempo_total} worklogs against {stats.redmine_total} entries: "
            f"{stats.matched} matched, {stats.missing} missing ({stats.missing_hours:.2f}h)"
        )

        return ReconciliationResult(
            missing_in_redmine=missing,
            matched=matched,
            stats=stats,
            discrepancies=discrepancies,
            by_date=by_date,
            start_date=start_date,
            end_date=end_date,
        )

    @staticmethod
    def _mapping_rate(
        worklogs: list[TimeRecord], matched: list[Match], missing: list[MissingEntry]
    ) -> float:
        """Share (in percent) of coded worklogs linked to an existing ledger issue."""
        with_code = sum(1 for r in worklogs if r.linked_issue_code)
        if not with_code:
            return 0.0

        linked = sum(
            1
            for m in matched
            if m.worklog.linked_issue_code
            and m.ledger is not None
            and m.ledger.linked_issue_code == m.worklog.linked_issue_code
        )
        linked += sum(1 for e in missing if e.jira_task and e.mapping_status.is_linked)
        return round(linked / with_code * 100, 1)
