"""Streak and weekly-trend statistics over a user's learning logs."""
from __future__ import annotations

import math
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable

from services.log_service import LogEntry
from utils.date_values import normalize_day_key, to_instant
from utils.datetime_utils import day_key, previous_day, to_local, utcnow

TOP_TAG_LIMIT = 5


@dataclass
class StatsSnapshot:
    totalLogs: int = 0
    currentStreak: int = 0
    uniqueDays: int = 0
    topTags: list[dict] = field(default_factory=list)
    lastLogDate: str | None = None
    weeklyGrowth: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def current_streak(day_keys: set[str], today) -> int:
    """Length of the contiguous run of logged days ending today or yesterday.

    A missing entry for today is tolerated until the day lapses, so the walk
    starts from yesterday when today has nothing yet.
    """
    yesterday = previous_day(today)
    if day_key(today) in day_keys:
        cursor = today
    elif day_key(yesterday) in day_keys:
        cursor = yesterday
    else:
        return 0

    streak = 0
    while day_key(cursor) in day_keys:
        streak += 1
        cursor = previous_day(cursor)
    return streak


def weekly_counts(entries: Iterable[LogEntry], now: datetime, tz_name: str | None = None) -> tuple[int, int]:
    """Return (current_week, previous_week) counts from each entry's raw timestamp."""
    one_week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)
    current = previous = 0
    for entry in entries:
        if entry.date is None:
            continue
        moment = to_instant(entry.date, tz_name)
        if moment is None:
            continue
        if moment >= one_week_ago:
            current += 1
        elif moment >= two_weeks_ago:
            previous += 1
    return current, previous


def weekly_growth(streak: int, current: int, previous: int) -> int:
    if streak == 0:
        # A broken streak reports no trend at all.
        return 0
    if previous == 0:
        return 100 if current > 0 else 0
    return int(math.floor((current - previous) / previous * 100 + 0.5))


def top_tags(entries: Iterable[LogEntry], limit: int = TOP_TAG_LIMIT) -> list[dict]:
    counts: Counter[str] = Counter()
    for entry in entries:
        counts.update(entry.tags)
    # most_common keeps insertion order among equal counts.
    return [{"tag": tag, "count": count} for tag, count in counts.most_common(limit)]


def compute_stats(
    entries: list[LogEntry],
    now: datetime | None = None,
    tz_name: str | None = None,
) -> StatsSnapshot:
    if not entries:
        return StatsSnapshot()

    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = to_local(now, tz_name).date()

    day_keys = {normalize_day_key(e.date, tz_name) for e in entries if e.date is not None}
    streak = current_streak(day_keys, today)
    current, previous = weekly_counts(entries, now, tz_name)
    # Entries dated after today never count as the last log.
    past_keys = [k for k in day_keys if k <= day_key(today)]

    return StatsSnapshot(
        totalLogs=len(entries),
        currentStreak=streak,
        uniqueDays=len(day_keys),
        topTags=top_tags(entries),
        lastLogDate=max(past_keys) if past_keys else None,
        weeklyGrowth=weekly_growth(streak, current, previous),
    )
