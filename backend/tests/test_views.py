"""Tests for the derived views: open counts, label series, triage, PR health, bus factor."""

from datetime import date, datetime, timedelta, timezone

import pytest

from ci_insights.config import TriageConfig
from ci_insights.models import GitHubItem, IssueNode, PullRequestNode
from ci_insights.services import views
from tests.conftest import NOW, issue_node, pr_node


def _at(day: int, hour: int = 12) -> datetime:
    return datetime(2026, 1, day, hour, tzinfo=timezone.utc)


def _issue(number: int, created: datetime, **kw) -> GitHubItem:
    return IssueNode.model_validate(issue_node(number, created, **kw)).to_item()


def _pr(number: int, created: datetime, **kw) -> GitHubItem:
    return PullRequestNode.model_validate(pr_node(number, created, **kw)).to_item()


# ── Open counts ──────────────────────────────────────────────────────────────

class TestDailyOpenCounts:
    def test_closed_on_day_counts_as_closed(self):
        item = _issue(1, _at(1), closed_at=_at(5))

        counts = {p["date"]: p["openCount"] for p in views.daily_open_counts([item], date(2026, 1, 1), date(2026, 1, 6))}

        assert counts["2026-01-01"] == 1
        assert counts["2026-01-03"] == 1
        assert counts["2026-01-05"] == 0
        assert counts["2026-01-06"] == 0

    def test_created_late_in_day_counts_that_day(self):
        item = _issue(1, datetime(2026, 1, 2, 23, 59, 59, tzinfo=timezone.utc))

        counts = views.daily_open_counts([item], date(2026, 1, 1), date(2026, 1, 2))

        assert counts == [{"date": "2026-01-01", "openCount": 0}, {"date": "2026-01-02", "openCount": 1}]

    def test_range_is_inclusive(self):
        assert len(views.daily_open_counts([], date(2026, 1, 1), date(2026, 1, 31))) == 31


class TestLabelTimeSeries:
    def test_counts_per_label_and_total(self):
        items = [
            _issue(1, _at(1), labels=("bug", "wrangler")),
            _issue(2, _at(2), labels=("bug",), closed_at=_at(3)),
            _issue(3, _at(3)),
        ]

        series = views.label_time_series(items, date(2026, 1, 1), date(2026, 1, 3))

        assert series["total"] == [1, 2, 2]
        assert series["labels"] == {"bug": [1, 2, 1], "wrangler": [1, 1, 1]}
        assert series["timestamps"][0] == int(datetime(2026, 1, 1, 23, 59, 59, tzinfo=timezone.utc).timestamp())
        assert series["timestamps"][1] - series["timestamps"][0] == 86400

    def test_empty_items(self):
        series = views.label_time_series([], date(2026, 1, 1), date(2026, 1, 2))
        assert series["total"] == [0, 0]
        assert series["labels"] == {}


# ── Triage ───────────────────────────────────────────────────────────────────

class TestTriage:
    def test_awaiting_dev_takes_precedence(self):
        config = TriageConfig()
        items = [
            # in both label sets
            _issue(1, _at(1), labels=("Needs Reproduction",)),
            _issue(2, _at(2), labels=("blocked",)),
            _issue(3, _at(3), labels=("bug",)),
            _issue(4, _at(4)),
            _issue(5, _at(1), closed_at=_at(2)),
            _pr(6, _at(1)),
            _issue(7, _at(1), labels=("awaiting dev response",), updated_at=_at(4)),
        ]

        result = views.triage(items, config)

        assert [i["number"] for i in result["awaitingDev"]] == [7, 1]
        assert [i["number"] for i in result["untriaged"]] == [4, 3]
        assert (result["totalAwaitingDev"], result["totalUntriaged"]) == (2, 2)

    def test_lists_are_limited(self):
        config = TriageConfig(list_limit=2)
        items = [_issue(n, _at(1) + timedelta(minutes=n)) for n in range(1, 6)]

        result = views.triage(items, config)

        assert [i["number"] for i in result["untriaged"]] == [5, 4]
        assert result["totalUntriaged"] == 5


# ── PR health ────────────────────────────────────────────────────────────────

class TestPRHealth:
    def _prs(self):
        return [
            _pr(1, NOW - timedelta(days=40), updated_at=NOW - timedelta(days=35), comments=1),
            _pr(2, NOW - timedelta(days=20), updated_at=NOW - timedelta(days=15), comments=9),
            _pr(3, NOW - timedelta(days=2), updated_at=NOW - timedelta(hours=1), comments=4),
            _pr(4, NOW - timedelta(days=90), merged_at=NOW - timedelta(days=80)),
            _issue(5, NOW - timedelta(days=100)),
        ]

    def test_open_sorted_by_staleness(self):
        result = views.pr_health(self._prs(), NOW)

        assert [p["number"] for p in result["prs"]] == [1, 2, 3]
        assert [p["staleDays"] for p in result["prs"]] == [35, 15, 0]
        assert result["total"] == 3
        assert result["stats"] == {"avgAgeDays": 21, "avgStaleDays": 17, "staleCount": 2, "veryStaleCount": 1}

    def test_all_states_sorted_by_comments_ascending(self):
        result = views.pr_health(self._prs(), NOW, state="all", sort="comments", order="asc")

        assert [p["number"] for p in result["prs"]] == [4, 1, 3, 2]
        assert result["prs"][0]["state"] == "merged"
        assert "closedAt" not in result["prs"][0]

    def test_age_descending(self):
        result = views.pr_health(self._prs(), NOW, sort="age")
        assert [p["ageDays"] for p in result["prs"]] == [40, 20, 2]

    def test_no_prs(self):
        result = views.pr_health([], NOW)
        assert result["stats"]["avgAgeDays"] == 0
        assert result["prs"] == []


# ── Bus factor ───────────────────────────────────────────────────────────────

class TestCalculateBusFactor:
    def test_exactly_half_stops_at_first_author(self):
        authors = ["A"] * 5 + ["B"] * 3 + ["C"] * 2
        result = views.calculate_bus_factor("pkg", authors, ["A", "Z"])
        assert result.bus_factor == 1
        assert result.team_member_contributions == {"A": 50.0, "Z": 0.0}

    def test_needs_two_authors(self):
        authors = ["A"] * 4 + ["B"] * 4 + ["C"] * 2
        result = views.calculate_bus_factor("pkg", authors, [])
        assert result.bus_factor == 2
        assert [c.login for c in result.top_contributors] == ["A", "B", "C"]
        assert [c.percentage for c in result.top_contributors] == pytest.approx([40.0, 40.0, 20.0])

    def test_ties_keep_first_seen_order(self):
        authors = ["B", "A", "A", "B", "C"]
        result = views.calculate_bus_factor("pkg", authors, [])
        assert [c.login for c in result.top_contributors] == ["B", "A", "C"]

    def test_unlinked_commits_count_toward_total(self):
        authors = ["A", None, None, None]
        result = views.calculate_bus_factor("pkg", authors, [])
        assert result.bus_factor == 1
        assert result.top_contributors[0].percentage == 25.0

    def test_no_commits(self):
        result = views.calculate_bus_factor("pkg", [], ["A"])
        assert result.bus_factor == 0
        assert result.top_contributors == []
        assert result.team_member_contributions == {"A": 0}

    def test_top_contributors_capped(self):
        authors = [f"user{n}" for n in range(15)]
        result = views.calculate_bus_factor("pkg", authors, [], top_n=10)
        assert len(result.top_contributors) == 10
        assert result.bus_factor == 8

    @pytest.mark.parametrize("counts,expected", [({"A": 1}, 1), ({"A": 3, "B": 3, "C": 3, "D": 1}, 2)])
    def test_threshold_cases(self, counts, expected):
        authors = [login for login, n in counts.items() for _ in range(n)]
        assert views.calculate_bus_factor("pkg", authors, []).bus_factor == expected
