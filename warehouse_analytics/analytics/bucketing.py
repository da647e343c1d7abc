"""
Time-Series Bucketing

Groups per-day metric rows into day, week or month buckets. Metrics are
summed within a bucket; buckets come back sorted by key.

Bucket rules:
- day:   key "YYYY-MM-DD", label "5 Jan", bounds = that day
- week:  ISO-8601 week, key "YYYY-Www" using the ISO year, bounds = first
         and last observed date in the bucket (not Monday/Sunday)
- month: key "YYYY-MM", label "Jan 2024", bounds = first and last calendar
         day of the month
"""

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Tuple

from warehouse_analytics.analytics.filters import Granularity

DailyRow = Tuple[date, Mapping[str, float]]


@dataclass
class Bucket:
    key: str
    label: str
    start: date
    end: date
    metrics: Dict[str, float] = field(default_factory=dict)
    days: int = 0

    def average(self, metric: str) -> float:
        """Bucket sum divided by the number of days with data."""
        return self.metrics.get(metric, 0.0) / self.days if self.days else 0.0


def day_label(day: date) -> str:
    return f"{day.day} {calendar.month_abbr[day.month]}"


def month_label(day: date) -> str:
    return f"{calendar.month_abbr[day.month]} {day.year}"


def bucket_key(day: date, granularity: Granularity) -> str:
    if granularity == Granularity.DAY:
        return day.isoformat()
    if granularity == Granularity.WEEK:
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{day.year}-{day.month:02d}"


def bucketize(rows: Iterable[DailyRow], granularity: Granularity) -> List[Bucket]:
    """
    Sum daily metric rows into buckets of the given granularity.

    Args:
        rows: (date, {metric: value}) pairs, at most one per date is expected
              but repeated dates are summed as well
        granularity: Bucket size

    Returns:
        Buckets sorted ascending by key
    """
    granularity = Granularity(granularity)
    sums: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    dates: Dict[str, set] = defaultdict(set)

    for day, metrics in rows:
        key = bucket_key(day, granularity)
        dates[key].add(day)
        for name, value in metrics.items():
            sums[key][name] += float(value or 0.0)

    buckets = []
    for key in sorted(dates):
        observed = dates[key]
        first, last = min(observed), max(observed)
        if granularity == Granularity.DAY:
            label = day_label(first)
        elif granularity == Granularity.WEEK:
            label = key
        else:
            label = month_label(first)
            first = first.replace(day=1)
            last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
        buckets.append(
            Bucket(
                key=key,
                label=label,
                start=first,
                end=last,
                metrics=dict(sums[key]),
                days=len(observed),
            )
        )
    return buckets
