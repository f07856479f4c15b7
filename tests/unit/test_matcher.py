"""Tests for the worklog/time entry matcher."""

from tempo2redmine.domain.models import MappingStatus, MatchReason, Origin, TimeRecord
from tempo2redmine.sync.matcher import Matcher


def worklog(date="2024-06-01", hours=2.0, description="Fix login", code=None, issue_ref=None):
    return TimeRecord(
        date=date,
        hours=hours,
        description=description,
        origin=Origin.WORKLOG,
        linked_issue_code=code,
        issue_ref=issue_ref,
    )


def ledger(date="2024-06-01", hours=2.0, description="Fix login", code=None, issue_id=None, source_id=None):
    return TimeRecord(
        date=date,
        hours=hours,
        description=description,
        origin=Origin.LEDGER,
        source_id=source_id,
        linked_issue_code=code,
        linked_ledger_issue_id=issue_id,
    )


class TestScoring:
    """Test candidate scoring."""

    def test_code_hours_and_description(self):
        score, reasons = Matcher().score(worklog(code="AB-1"), ledger(code="AB-1"))

        assert score == 0.8 + 0.3 + 0.2
        assert reasons == [
            MatchReason.ISSUE_CODE_MATCH,
            MatchReason.HOURS_MATCH,
            MatchReason.DESCRIPTION_SIMILAR,
        ]

    def test_close_hours_score_lower(self):
        score, reasons = Matcher().score(worklog(description=""), ledger(hours=2.3, description="x"))

        assert score == 0.1
        assert reasons == [MatchReason.HOURS_SIMILAR]

    def test_missing_codes_never_match(self):
        _, reasons = Matcher().score(worklog(), ledger())
        assert MatchReason.ISSUE_CODE_MATCH not in reasons


class TestFindBestMatch:
    """Test best-candidate selection."""

    def test_code_match_wins_over_hours_only_candidate(self):
        target = worklog(code="AB-1")
        first = ledger(code="AB-1", source_id="1")
        second = ledger(hours=2.05, description="Standup", source_id="2")

        match = Matcher().find_best_match(target, [first, second])

        assert match.ledger is first
        assert match.match_type == "exact"
        assert match.similarity == 1.0
        assert MatchReason.ISSUE_CODE_MATCH in match.reasons
        assert MatchReason.HOURS_MATCH in match.reasons

    def test_highest_score_wins_regardless_of_order(self):
        weaker = ledger(source_id="weak")
        stronger = ledger(code="AB-1", source_id="strong")

        match = Matcher().find_best_match(worklog(code="AB-1"), [weaker, stronger])

        assert match.ledger is stronger

    def test_first_candidate_wins_ties(self):
        first = ledger(source_id="1")
        second = ledger(source_id="2")

        match = Matcher().find_best_match(worklog(), [first, second])

        assert match.ledger is first

    def test_candidates_below_threshold_are_never_selected(self):
        far = ledger(hours=6.0, description="Weekly planning")
        assert Matcher().find_best_match(worklog(), [far]) is None

    def test_partial_match(self):
        match = Matcher().find_best_match(
            worklog(code="AB-1"), [ledger(hours=3.5, description="", code="AB-1")]
        )
        assert match.match_type == "partial"
        assert match.similarity == 0.8


class TestReconcile:
    """Test full reconciliation of two record sets."""

    def test_missing_when_no_same_date_entries(self):
        worklogs = [worklog(hours=4.0, code="AB-1"), worklog(date="2024-06-02", hours=1.5)]

        result = Matcher().reconcile(worklogs, [ledger(date="2024-06-03")])

        assert len(result.missing_in_redmine) == 2
        assert result.stats.missing == len(result.missing_in_redmine)
        assert result.stats.missing_hours == sum(e.hours for e in result.missing_in_redmine)
        assert result.stats.tempo_total == 2
        assert result.stats.tempo_hours == 5.5
        assert result.stats.redmine_total == 1

    def test_partial_match_counts_as_matched_without_discrepancy(self):
        result = Matcher().reconcile(
            [worklog(code="AB-1")], [ledger(hours=3.0, description="", code="AB-1")]
        )

        assert result.stats.matched == 1
        assert result.stats.missing == 0
        assert result.discrepancies == []

    def test_strict_mode_reports_discrepancies(self):
        result = Matcher(strict=True).reconcile(
            [worklog(code="AB-1")], [ledger(hours=3.0, description="", code="AB-1")]
        )

        assert result.stats.matched == 1
        assert result.stats.discrepancies == 1
        assert result.discrepancies[0].hours_difference == -1.0

    def test_mapping_statuses(self):
        worklogs = [
            worklog(date="2024-06-10", description="a"),
            worklog(date="2024-06-10", description="b", issue_ref="404"),
            worklog(date="2024-06-10", description="c", code="AB-2"),
            worklog(date="2024-06-10", description="d", code="AB-1"),
            worklog(date="2024-06-10", description="e", code="AB-3"),
        ]
        entries = [
            ledger(date="2024-06-01", code="AB-1", issue_id=77),
            ledger(date="2024-06-02", code="AB-3", issue_id=88),
            ledger(date="2024-06-03", code="AB-3", issue_id=88),
        ]

        result = Matcher().reconcile(worklogs, entries)
        by_description = {e.description: e for e in result.missing_in_redmine}

        assert by_description["a"].mapping_status == MappingStatus.NO_JIRA_TASK
        assert by_description["b"].mapping_status == MappingStatus.JIRA_ID_UNRESOLVED
        assert by_description["c"].mapping_status == MappingStatus.NO_REDMINE_LINK
        assert by_description["c"].redmine_task is None
        assert by_description["d"].mapping_status == MappingStatus.SINGLE_LINK
        assert by_description["d"].redmine_task == 77
        assert by_description["e"].mapping_status == MappingStatus.MULTIPLE_LINKS
        assert by_description["e"].linked_ledger_issue_ids == [88]
        assert by_description["e"].redmine_task == 88

    def test_mapping_rate(self):
        worklogs = [
            worklog(code="AB-1"),
            worklog(date="2024-06-02", code="AB-2"),
            worklog(date="2024-06-03", description="no code"),
        ]

        result = Matcher().reconcile(worklogs, [ledger(code="AB-1", issue_id=77)])

        assert result.stats.mapping_rate == 50.0

    def test_mapping_rate_without_codes_is_zero(self):
        result = Matcher().reconcile([worklog()], [])
        assert result.stats.mapping_rate == 0.0

    def test_suggestions_for_missing_entry(self):
        result = Matcher().reconcile(
            [worklog(hours=2.0, description="Sprint planning")],
            [ledger(hours=2.2, description="Something else entirely")],
        )

        suggestions = result.missing_in_redmine[0].suggestions
        assert [s.type for s in suggestions] == ["similar_hours"]
        assert suggestions[0].message == "Found 1 entries with similar hours"

    def test_date_breakdown(self):
        result = Matcher().reconcile(
            [worklog(date="2024-06-01"), worklog(date="2024-06-02")],
            [ledger(date="2024-06-01"), ledger(date="2024-06-03")],
        )

        assert result.by_date["2024-06-01"].status == "matched"
        assert result.by_date["2024-06-02"].status == "missing_in_ledger"
        assert result.by_date["2024-06-03"].status == "extra_in_ledger"
        assert list(result.by_date) == ["2024-06-01", "2024-06-02", "2024-06-03"]
