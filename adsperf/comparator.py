"""
Period-over-period comparison.
"""
from typing import Dict, Optional

from adsperf import dates
from adsperf.models import ComparisonResult, PeriodAggregate, TimeRange

COMPARED_METRICS = (
    "impressions",
    "clicks",
    "spend",
    "conversions",
    "purchases",
    "revenue",
    "ctr",
    "cpc",
    "cpm",
    "conversion_rate",
    "cost_per_conversion",
    "roas",
)


def compute_previous_period(current: TimeRange) -> TimeRange:
    """
    The period of equal length ending the day before current starts.

    2024-03-10..2024-03-19 (10 days) -> 2024-02-29..2024-03-09.
    """
    until = dates.shift_days(current.since, -1)
    since = dates.shift_days(until, -(current.days - 1))
    return TimeRange(since, until)


def percent_change(current: float, previous: float) -> float:
    """(current - previous) / previous * 100, defined as 0 when previous is 0."""
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def compare_aggregates(
    current: PeriodAggregate,
    previous: PeriodAggregate,
    current_range: Optional[TimeRange] = None,
    previous_range: Optional[TimeRange] = None,
) -> ComparisonResult:
    """Percent change of every compared metric between two periods."""
    changes: Dict[str, float] = {
        metric: percent_change(getattr(current, metric), getattr(previous, metric))
        for metric in COMPARED_METRICS
    }
    return ComparisonResult(
        current=current,
        previous=previous,
        current_range=current_range,
        previous_range=previous_range,
        changes=changes,
    )
