"""
Derived views over the issue/PR mirror and commit authorship.

Everything here is a pure function of its inputs; loading the mirror and
deciding what to do when nothing has been synced is the API layer's job.

Openness rule used by every time series:
    open on D  <=>  created_at <= end-of-D  and  (closed_at is None or closed_at > end-of-D)
An item closed during D therefore already counts as closed on D.
"""

from datetime import date, datetime, timedelta
from typing import Iterable

from ci_insights.config import TriageConfig
from ci_insights.models import BusFactorResult, Contributor, GitHubItem, ItemState, ItemType
from ci_insights.timeutil import as_utc, date_key, end_of_day, iter_days

DAY_SECONDS = 24 * 60 * 60

PR_SORT_KEYS = {
    "stale": lambda pr: pr["staleDays"],
    "age": lambda pr: pr["ageDays"],
    "comments": lambda pr: pr["commentCount"],
}


def is_open_at(item: GitHubItem, moment: datetime) -> bool:
    if as_utc(item.created_at) > moment:
        return False
    return item.closed_at is None or as_utc(item.closed_at) > moment


def of_type(items: Iterable[GitHubItem], item_type: ItemType) -> list[GitHubItem]:
    return [item for item in items if item.type == item_type]


def default_range(today: date, days: int = 30) -> tuple[date, date]:
    return today - timedelta(days=days), today


# ── Open counts ──────────────────────────────────────────────────────────────

def daily_open_counts(items: list[GitHubItem], start: date, end: date) -> list[dict]:
    result = []
    for day in iter_days(start, end):
        day_end = end_of_day(day)
        result.append({
            "date": date_key(day),
            "openCount": sum(1 for item in items if is_open_at(item, day_end)),
        })
    return result


def label_time_series(items: list[GitHubItem], start: date, end: date) -> dict:
    """One series per label seen in `items`, plus the total open count.

    Timestamps are end-of-day epoch seconds.
    """
    label_names = list(dict.fromkeys(name for item in items for name in item.label_names()))
    timestamps: list[int] = []
    total: list[int] = []
    labels: dict[str, list[int]] = {name: [] for name in label_names}

    for day in iter_days(start, end):
        day_end = end_of_day(day)
        timestamps.append(int(day_end.timestamp()))
        counts = dict.fromkeys(label_names, 0)
        open_count = 0
        for item in items:
            if not is_open_at(item, day_end):
                continue
            open_count += 1
            for name in item.label_names():
                counts[name] += 1
        total.append(open_count)
        for name in label_names:
            labels[name].append(counts[name])

    return {"timestamps": timestamps, "total": total, "labels": labels}


# ── Triage ───────────────────────────────────────────────────────────────────

def triage(items: Iterable[GitHubItem], config: TriageConfig) -> dict:
    """Split open issues into awaiting-dev and untriaged.

    Awaiting-dev is checked first, so an issue carrying both an awaiting and a
    blocking label lands in awaiting-dev.
    """
    blocking = {label.lower() for label in config.blocking_labels}
    awaiting = {label.lower() for label in config.awaiting_dev_labels}

    untriaged: list[GitHubItem] = []
    awaiting_dev: list[GitHubItem] = []
    for item in items:
        if item.type != ItemType.ISSUE or item.state != ItemState.OPEN:
            continue
        names = {name.lower() for name in item.label_names()}
        if names & awaiting:
            awaiting_dev.append(item)
        elif not names & blocking:
            untriaged.append(item)

    untriaged.sort(key=lambda i: i.created_at, reverse=True)
    awaiting_dev.sort(key=lambda i: i.updated_at, reverse=True)

    limit = config.list_limit
    return {
        "untriaged": [i.to_json_dict() for i in untriaged[:limit]],
        "awaitingDev": [i.to_json_dict() for i in awaiting_dev[:limit]],
        "totalUntriaged": len(untriaged),
        "totalAwaitingDev": len(awaiting_dev),
    }


# ── PR health ────────────────────────────────────────────────────────────────

def _whole_days(now: datetime, then: datetime) -> int:
    return int((now - as_utc(then)).total_seconds() // DAY_SECONDS)


def pr_health(
    items: Iterable[GitHubItem],
    now: datetime,
    state: str = "open",
    sort: str = "stale",
    order: str = "desc",
    limit: int = 100,
) -> dict:
    prs = []
    for item in items:
        if item.type != ItemType.PR:
            continue
        if state == "open" and item.state != ItemState.OPEN:
            continue
        entry = item.to_json_dict(exclude={"type", "closed_at"})
        entry["ageDays"] = _whole_days(now, item.created_at)
        entry["staleDays"] = _whole_days(now, item.updated_at)
        prs.append(entry)

    prs.sort(key=PR_SORT_KEYS.get(sort, PR_SORT_KEYS["stale"]), reverse=order == "desc")

    count = len(prs)
    return {
        "prs": prs[:limit],
        "total": count,
        "stats": {
            "avgAgeDays": round(sum(p["ageDays"] for p in prs) / count) if count else 0,
            "avgStaleDays": round(sum(p["staleDays"] for p in prs) / count) if count else 0,
            "staleCount": sum(1 for p in prs if p["staleDays"] > 14),
            "veryStaleCount": sum(1 for p in prs if p["staleDays"] > 30),
        },
    }


# ── Bus factor ───────────────────────────────────────────────────────────────

def calculate_bus_factor(
    directory: str,
    authors: list[str | None],
    team_members: list[str],
    top_n: int = 10,
) -> BusFactorResult:
    """Minimum number of top authors covering at least half of all commits.

    `authors` holds one entry per commit; None marks a commit with no linked
    account, which still counts toward the total.
    """
    total = len(authors)
    if total == 0:
        return BusFactorResult(
            directory=directory,
            team_member_contributions={member: 0 for member in team_members},
        )

    counts: dict[str, int] = {}
    for login in authors:
        if login:
            counts[login] = counts.get(login, 0) + 1

    # sorted() is stable: equal counts keep first-seen order
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)

    bus_factor = 0
    cumulative = 0
    for _, commits in ranked:
        bus_factor += 1
        cumulative += commits
        if cumulative * 2 >= total:
            break

    return BusFactorResult(
        directory=directory,
        bus_factor=bus_factor,
        top_contributors=[
            Contributor(login=login, commits=commits, percentage=commits / total * 100)
            for login, commits in ranked[:top_n]
        ],
        team_member_contributions={
            member: counts.get(member, 0) / total * 100 for member in team_members
        },
    )
