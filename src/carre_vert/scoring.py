"""
Participation scoring.

Credited outings: weekend outings (Saturday/Sunday) count at most once per ISO
week; weekday outings count once per distinct date. A member riding both
Saturday and Sunday of the same week gets one credit for that week, a member
riding Tuesday and Wednesday gets two.
"""

import datetime
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field

from carre_vert import constants
from carre_vert.errors import ValidationError
from carre_vert.logging_config import get_logger
from carre_vert.models import Member, ScoreEntry
from carre_vert.utils import is_valid_year, parse_date_token

logger = get_logger("scoring", "scoring", console_output=False)

SATURDAY = 5
SUNDAY = 6


def is_weekend(day: datetime.date) -> bool:
    return day.weekday() in (SATURDAY, SUNDAY)


def iso_week_key(day: datetime.date) -> tuple[int, int]:
    """(ISO year, ISO week number); weeks start on Monday."""
    iso_year, iso_week, _ = day.isocalendar()
    return iso_year, iso_week


def _credit_keys(dates) -> tuple[set[tuple[int, int]], set[datetime.date]]:
    weekend_weeks = set()
    weekdays = set()
    for day in dates:
        if is_weekend(day):
            weekend_weeks.add(iso_week_key(day))
        else:
            weekdays.add(day)
    return weekend_weeks, weekdays


def _as_dates(values):
    for value in values:
        if isinstance(value, datetime.date):
            yield value
            continue
        day = parse_date_token(value)
        if day is None:
            raise ValueError(f"not a date: {value!r}")
        yield day


def credited_count(dates) -> int:
    """Number of credited outings for a collection of dates (date objects or date strings)."""
    weekend_weeks, weekdays = _credit_keys(_as_dates(dates))
    return len(weekend_weeks) + len(weekdays)


def dates_in_year(tokens, year: str) -> set[datetime.date]:
    """Parse stored date tokens, keeping the distinct dates of one calendar year."""
    result = set()
    for token in tokens:
        day = parse_date_token(token)
        if day is None:
            logger.debug(f"Skipping unparseable date token '{token}'")
            continue
        if day.year == int(year):
            result.add(day)
    return result


def bucket_label(count: int) -> str:
    for label, low, high in constants.BUCKETS:
        if count >= low and (high is None or count <= high):
            return label
    raise ValueError(f"no bucket for count {count}")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class GroupStat:
    group: str
    count: int
    avg_credits: int

    def to_dict(self) -> dict:
        return {"group": self.group, "count": self.count, "avgCredits": self.avg_credits}


@dataclass
class Bucket:
    label: str
    min: int
    max: int | None
    count: int = 0

    def to_dict(self) -> dict:
        return {"label": self.label, "min": self.min, "max": self.max, "count": self.count}


@dataclass
class ScoreReport:
    year: str
    entries: list[ScoreEntry] = field(default_factory=list)
    group_stats: list[GroupStat] = field(default_factory=list)
    buckets: list[Bucket] = field(default_factory=list)
    total_possible_credits: int = 0
    total_members: int = 0
    active_members: int = 0
    total_credits: int = 0
    average_credits: float = 0.0
    monthly: list[dict] = field(default_factory=list)
    weekly: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "entries": [entry.to_dict() for entry in self.entries],
            "groupStats": [stat.to_dict() for stat in self.group_stats],
            "buckets": [bucket.to_dict() for bucket in self.buckets],
            "totalPossibleCredits": self.total_possible_credits,
            "totalMembers": self.total_members,
            "activeMembers": self.active_members,
            "totalCredits": self.total_credits,
            "averageCredits": self.average_credits,
            "monthly": list(self.monthly),
            "weekly": list(self.weekly),
        }


def compute_scores(members: list[Member], year: str) -> ScoreReport:
    """
    Score every member for one calendar year.

    Members without dates in the year are ranked with 0 credits, counted in
    the "0" bucket and in total_members, but not in active figures.
    """
    year = str(year)
    report = ScoreReport(year=year)

    all_weekend_weeks = set()
    all_weekdays = set()
    monthly = Counter()
    weekly = Counter()

    for member in members:
        days = dates_in_year(member.attended_dates, year)
        weekend_weeks, weekdays = _credit_keys(days)
        all_weekend_weeks |= weekend_weeks
        all_weekdays |= weekdays
        for day in days:
            monthly[day.month] += 1
            weekly[iso_week_key(day)] += 1

        report.entries.append(ScoreEntry(
            member_id=member.id,
            name=member.name,
            group=member.group,
            credited_count=len(weekend_weeks) + len(weekdays),
            raw_count=len(days),
        ))

    report.total_possible_credits = len(all_weekend_weeks) + len(all_weekdays)

    report.entries.sort(key=lambda e: (-e.credited_count, e.name))
    for position, entry in enumerate(report.entries, start=1):
        entry.rank = position
        if report.total_possible_credits:
            entry.attendance_rate = round(100 * entry.credited_count / report.total_possible_credits, 1)

    active = [entry for entry in report.entries if entry.credited_count > 0]
    report.total_members = len(report.entries)
    report.active_members = len(active)
    report.total_credits = sum(entry.credited_count for entry in active)
    if active:
        report.average_credits = round(report.total_credits / len(active), 1)

    by_group = defaultdict(list)
    for entry in active:
        by_group[entry.group].append(entry.credited_count)
    report.group_stats = [
        GroupStat(group=group, count=len(counts), avg_credits=_round_half_up(sum(counts) / len(counts)))
        for group, counts in sorted(by_group.items())
    ]

    report.buckets = [Bucket(label=label, min=low, max=high) for label, low, high in constants.BUCKETS]
    by_label = {bucket.label: bucket for bucket in report.buckets}
    for entry in report.entries:
        by_label[bucket_label(entry.credited_count)].count += 1

    report.monthly = [{"month": f"{year}-{month:02d}", "count": monthly.get(month, 0)} for month in range(1, 13)]
    report.weekly = [
        {"week": f"{iso_year}-W{iso_week:02d}", "count": count}
        for (iso_year, iso_week), count in sorted(weekly.items())
    ]
    return report


def get_scores(store, year: str) -> ScoreReport:
    """Score all stored members for ``year``."""
    year = str(year).strip()
    if not is_valid_year(year):
        raise ValidationError(f"invalid year '{year}': expected four digits")
    members = store.list_members()
    report = compute_scores(members, year)
    logger.info(
        f"Scored {report.total_members} members for {year}: "
        f"{report.active_members} active, {report.total_possible_credits} possible credits"
    )
    return report
