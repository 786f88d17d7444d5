"""
Gap filling and period aggregation for daily records.

Charts need one point per calendar day, so a sparse list of upstream records
is expanded to a dense series: days without a record get a zero record (a day
with no activity, not a simulated one). Totals are then summed over the dense
series and all rates are derived from the totals.
"""
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple

from adsperf import dates
from adsperf.models import DailyMetricRecord, PeriodAggregate, TimeRange
from adsperf.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeriesConsistency:
    """Outcome of checking a series against the range it was requested for."""
    is_valid: bool
    first_date: Optional[str]
    last_date: Optional[str]
    expected_start: str
    expected_end: str
    has_gaps: bool
    missing_days: int = 0

    @property
    def message(self) -> str:
        if self.first_date is None:
            return "No data to validate"
        return "Consistent series" if self.is_valid else "Series does not match the requested range"


def merge_records(records: List[DailyMetricRecord]) -> DailyMetricRecord:
    """
    Combine several records for the same day into one.

    Happens when paging or a split request returns a day more than once.
    """
    first = records[0]
    if len(records) == 1:
        return first

    reach_values = [r.reach for r in records if r.reach is not None]
    return replace(
        first,
        impressions=sum(r.impressions for r in records),
        clicks=sum(r.clicks for r in records),
        spend=sum(r.spend for r in records),
        conversions=sum(r.conversions for r in records),
        purchases=sum(r.purchases for r in records),
        revenue=sum(r.revenue for r in records),
        is_simulated=any(r.is_simulated for r in records),
        reach=sum(reach_values) if reach_values else None,
        frequency=None,
    )


def index_by_date(
    records: Iterable[DailyMetricRecord],
    time_range: Optional[TimeRange] = None,
) -> Dict[str, DailyMetricRecord]:
    """
    Index records by canonical date, merging duplicates.

    Records outside time_range (when given) are dropped.
    """
    grouped: Dict[str, List[DailyMetricRecord]] = defaultdict(list)
    dropped = 0
    for record in records:
        day = dates.normalize(record.date_start)
        if time_range is not None and not time_range.contains(day):
            dropped += 1
            continue
        grouped[day].append(record)

    if dropped:
        logger.debug(
            f"Dropped {dropped} records outside {time_range}",
            extra={"dropped": dropped}
        )

    duplicated = [day for day, items in grouped.items() if len(items) > 1]
    if duplicated:
        logger.warning(
            f"Merging duplicate records for {len(duplicated)} days",
            extra={"days": duplicated[:10]}
        )

    return {day: merge_records(items) for day, items in grouped.items()}


def fill_gaps(
    records: Iterable[DailyMetricRecord],
    time_range: TimeRange,
) -> List[DailyMetricRecord]:
    """
    One record per day of time_range, ascending; missing days are zero records.

    Every record in the result carries the canonical day as date_start and date_stop.
    """
    indexed = index_by_date(records, time_range)
    dense = []
    for day in time_range.iter_days():
        record = indexed.get(day)
        if record is None:
            dense.append(DailyMetricRecord.zero(day))
        elif record.date_start != day or record.date_stop != day:
            dense.append(replace(record, date_start=day, date_stop=day))
        else:
            dense.append(record)
    return dense


def aggregate(records: Iterable[DailyMetricRecord]) -> PeriodAggregate:
    """Sum records into a PeriodAggregate; data_points_count counts active days."""
    impressions = clicks = conversions = purchases = data_points = 0
    spend = revenue = 0.0

    for record in records:
        impressions += record.impressions
        clicks += record.clicks
        spend += record.spend
        conversions += record.conversions
        purchases += record.purchases
        revenue += record.revenue
        if record.has_activity:
            data_points += 1

    return PeriodAggregate(
        impressions=impressions,
        clicks=clicks,
        spend=spend,
        conversions=conversions,
        purchases=purchases,
        revenue=revenue,
        data_points_count=data_points,
    )


def fill_and_aggregate(
    records: Iterable[DailyMetricRecord],
    time_range: TimeRange,
) -> Tuple[List[DailyMetricRecord], PeriodAggregate]:
    """
    Produce the dense daily series for time_range and its totals.

    Returns:
        (dense records, totals); len(dense) == time_range.days
    """
    dense = fill_gaps(records, time_range)
    totals = aggregate(dense)

    logger.debug(
        f"Aggregated {time_range}",
        extra={
            "days": len(dense),
            "data_points": totals.data_points_count,
            "spend": round(totals.spend, 2),
            "purchases": totals.purchases,
        }
    )
    return dense, totals


def check_series_consistency(
    records: List[DailyMetricRecord],
    time_range: TimeRange,
) -> SeriesConsistency:
    """
    Check that a series starts and ends on the range bounds with no missing days.

    Intended for series as returned by the API (before gap filling), where
    gaps reveal days the upstream did not report.
    """
    if not records:
        return SeriesConsistency(
            is_valid=False,
            first_date=None,
            last_date=None,
            expected_start=time_range.since,
            expected_end=time_range.until,
            has_gaps=True,
            missing_days=time_range.days,
        )

    ordered = sorted(records, key=lambda r: r.date_start)
    first_date = ordered[0].date_start
    last_date = ordered[-1].date_stop

    missing = 0
    for previous, current in zip(ordered, ordered[1:]):
        step = dates.days_between(previous.date_stop, current.date_start)
        if step > 1:
            missing += step - 1

    has_gaps = missing > 0
    return SeriesConsistency(
        is_valid=first_date == time_range.since and last_date == time_range.until and not has_gaps,
        first_date=first_date,
        last_date=last_date,
        expected_start=time_range.since,
        expected_end=time_range.until,
        has_gaps=has_gaps,
        missing_days=missing,
    )
