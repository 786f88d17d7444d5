"""
Performance service: the entry points the dashboard and reports call.

Ties together account resolution, the insights adapter, gap filling,
aggregation, comparison, and the simulation policy:

- Inputs are validated before any network activity.
- Whether placeholder data may stand in for real data is decided here, per
  call, through ``allow_simulated_data``. Simulated records are always flagged.
- Same-day data is not final upstream. When a range ends today and
  simulation is allowed, the range is split explicitly into a real part
  ending yesterday and a simulated today.
- Retry is a caller policy (``RetryConfig``, one attempt by default) applied
  to connection errors only.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from random import Random
from typing import Any, Callable, List, Optional, Tuple

from adsperf import dates, simulation
from adsperf.accounts import AccountStore, AdAccount, resolve_account
from adsperf.aggregator import SeriesConsistency, check_series_consistency, fill_and_aggregate
from adsperf.cache import InsightsCache
from adsperf.classifier import reconcile
from adsperf.comparator import compare_aggregates, compute_previous_period
from adsperf.exceptions import InvalidDateError, UpstreamUnavailableError
from adsperf.insights import ACCOUNT_FIELDS, CAMPAIGN_FIELDS, InsightsAdapter
from adsperf.meta_client import MetaGraphClient
from adsperf.models import (
    ComparisonResult,
    DailyMetricRecord,
    InsightRow,
    PeriodAggregate,
    TimeRange,
)
from adsperf.observability import get_logger, log_scope, timed
from adsperf.resilience import RetryConfig, retry_with_backoff
from adsperf.schemas import (
    CampaignPerformanceResponse,
    ComparisonResponse,
    DailyMetricResponse,
    DashboardStatsResponse,
    PeriodMetricsResponse,
    PeriodRangeResponse,
)
from adsperf.validators import validate_date_range, validate_entity_id, validate_granularity

logger = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DashboardStats:
    """Dense current series plus current/previous totals and their comparison."""
    daily: List[DailyMetricRecord]
    current: PeriodAggregate
    previous: PeriodAggregate
    comparison: ComparisonResult
    requested_range: TimeRange
    current_range: TimeRange
    previous_range: TimeRange
    has_simulated_data: bool = False

    def to_response(self) -> DashboardStatsResponse:
        return DashboardStatsResponse(
            current=PeriodMetricsResponse.from_aggregate(self.current),
            previous=PeriodMetricsResponse.from_aggregate(self.previous),
            changes=ComparisonResponse.from_result(self.comparison),
            dailyData=[DailyMetricResponse.from_record(r) for r in self.daily],
            hasSimulatedData=self.has_simulated_data,
            requestedPeriod=PeriodRangeResponse.from_range(self.requested_range),
            currentPeriod=PeriodRangeResponse.from_range(self.current_range),
            previousPeriod=PeriodRangeResponse.from_range(self.previous_range),
        )


@dataclass(frozen=True)
class CampaignPerformance:
    """Campaign series as reported upstream (not gap-filled), ascending."""
    campaign_id: str
    records: List[DailyMetricRecord]
    time_range: TimeRange
    consistency: SeriesConsistency
    campaign_name: Optional[str] = None

    def to_response(self) -> CampaignPerformanceResponse:
        return CampaignPerformanceResponse(
            campaignId=self.campaign_id,
            campaignName=self.campaign_name,
            data=[DailyMetricResponse.from_record(r) for r in self.records],
            timeRange=PeriodRangeResponse.from_range(self.time_range),
            isConsistent=self.consistency.is_valid,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════════

def validate_time_range(start_date: dates.DateLike, end_date: dates.DateLike) -> TimeRange:
    """
    Normalize and validate a requested range.

    Raises:
        InvalidDateError: Unparseable dates, start after end, or range too long
    """
    if start_date in (None, "") or end_date in (None, ""):
        raise InvalidDateError("Start and end dates are required", field="date_range")

    since, until = validate_date_range(dates.normalize(start_date), dates.normalize(end_date))
    return TimeRange(dates.format_date(since), dates.format_date(until))


def split_at_today(time_range: TimeRange, today: str) -> Tuple[Optional[TimeRange], Optional[TimeRange]]:
    """
    (real part, simulated part) of a range relative to today.

    Only ranges ending today are split; others come back whole as the real part.
    """
    if time_range.until != today:
        return time_range, None
    if time_range.since == today:
        return None, time_range
    return TimeRange(time_range.since, dates.shift_days(today, -1)), TimeRange.single_day(today)


class PerformanceService:
    """
    Account, dashboard and campaign performance.

    Usage:
        service = PerformanceService(account_store=store)
        stats = await service.get_dashboard_stats("2024-03-01", "2024-03-31")
        payload = stats.to_response().model_dump()
    """

    def __init__(
        self,
        account_store: Optional[AccountStore] = None,
        client_factory: Callable[..., MetaGraphClient] = MetaGraphClient,
        cache: Optional[InsightsCache] = None,
        retry_config: Optional[RetryConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[Random] = None,
    ):
        """
        Args:
            account_store: Lookup for stored accounts (environment only if None)
            client_factory: Builds a Graph client from an access token
            cache: Insights cache for real data
            retry_config: Caller retry policy (defaults to UPSTREAM_RETRY_ATTEMPTS)
            clock: Returns the current time, for "today" in the reference timezone
            rng: Random source for simulated data
        """
        self.account_store = account_store
        self.client_factory = client_factory
        self.cache = cache
        self.retry_config = retry_config or RetryConfig.from_performance()
        self._clock = clock
        self._rng = rng or Random()

    def today(self) -> str:
        return dates.today(self._clock() if self._clock else None)

    async def _call_adapter(self, account: AdAccount, method: str, *args, **kwargs) -> Any:
        with log_scope(account_id=account.account_id):
            async with self.client_factory(access_token=account.access_token) as client:
                adapter = InsightsAdapter(client, cache=self.cache)
                return await retry_with_backoff(
                    getattr(adapter, method),
                    *args,
                    config=self.retry_config,
                    **kwargs
                )

    async def _fetch_real(
        self,
        account: AdAccount,
        time_range: TimeRange,
        time_increment: int = 1,
    ) -> List[DailyMetricRecord]:
        return await self._call_adapter(
            account,
            "fetch_insights",
            account.graph_id,
            "account",
            time_range,
            fields=ACCOUNT_FIELDS,
            time_increment=time_increment,
        )

    async def _fetch_or_simulate(
        self,
        account: AdAccount,
        time_range: TimeRange,
        allow_simulated_data: bool,
        time_increment: int = 1,
    ) -> List[DailyMetricRecord]:
        try:
            return await self._fetch_real(account, time_range, time_increment)
        except UpstreamUnavailableError as e:
            if not allow_simulated_data:
                raise
            logger.warning(
                f"Insights unavailable for {time_range}, using simulated data",
                extra={
                    "account_id": account.account_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return simulation.generate(time_range, self._rng)

    async def _collect(
        self,
        account: AdAccount,
        time_range: TimeRange,
        allow_simulated_data: bool,
        time_increment: int = 1,
    ) -> List[DailyMetricRecord]:
        if not allow_simulated_data:
            return await self._fetch_or_simulate(account, time_range, False, time_increment)

        real_range, simulated_range = split_at_today(time_range, self.today())
        records: List[DailyMetricRecord] = []
        if real_range is not None:
            if simulated_range is not None:
                logger.info(
                    f"Splitting {time_range}: real {real_range}, simulated {simulated_range}",
                    extra={"account_id": account.account_id}
                )
            records = await self._fetch_or_simulate(account, real_range, True, time_increment)
        if simulated_range is not None:
            records = records + simulation.generate(simulated_range, self._rng)
        return records

    @timed("get_account_performance")
    async def get_account_performance(
        self,
        start_date: dates.DateLike,
        end_date: dates.DateLike,
        allow_simulated_data: bool = True,
        increment: Any = "day",
        account_id: Optional[str] = None,
    ) -> List[DailyMetricRecord]:
        """
        Daily account records for a range.

        Args:
            start_date: First day (any supported date representation)
            end_date: Last day, inclusive
            allow_simulated_data: Allow placeholders for today and on upstream failure
            increment: "day", "week", "month" or 1, 7, 30
            account_id: Explicit account (defaults to the active account)

        Returns:
            Records in upstream order; not gap-filled

        Raises:
            InvalidDateError: Invalid input (before any network activity)
            NoActiveAccountError: No account configured
            AuthMissingError: Account has no access token
            UpstreamUnavailableError: Upstream failed and simulation is not allowed
        """
        time_range = validate_time_range(start_date, end_date)
        time_increment = validate_granularity(increment)
        account = await resolve_account(self.account_store, account_id)

        return await self._collect(account, time_range, allow_simulated_data, time_increment)

    def _clamp_to_today(self, time_range: TimeRange) -> TimeRange:
        today = self.today()
        if time_range.until <= today:
            return time_range
        clamped = TimeRange(min(time_range.since, today), today)
        logger.info(
            f"Clamped future range {time_range} to {clamped}",
            extra={"today": today}
        )
        return clamped

    @timed("get_dashboard_stats")
    async def get_dashboard_stats(
        self,
        start_date: dates.DateLike,
        end_date: dates.DateLike,
        account_id: Optional[str] = None,
        allow_simulated_data: bool = False,
    ) -> DashboardStats:
        """
        Dashboard totals, comparison with the previous period, and daily series.

        Future dates are clamped to today. Current and previous periods are
        fetched concurrently; a failure in either fails the whole request.
        """
        requested = validate_time_range(start_date, end_date)
        current_range = self._clamp_to_today(requested)
        previous_range = compute_previous_period(current_range)
        account = await resolve_account(self.account_store, account_id)

        results = await asyncio.gather(
            self._collect(account, current_range, allow_simulated_data),
            self._collect(account, previous_range, allow_simulated_data),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        current_records, previous_records = results

        daily, current = fill_and_aggregate(current_records, current_range)
        previous_daily, previous = fill_and_aggregate(previous_records, previous_range)
        comparison = compare_aggregates(current, previous, current_range, previous_range)

        has_simulated_data = any(r.is_simulated for r in daily + previous_daily)
        if current.is_empty and current_range.until == self.today():
            logger.info("Current period has no data, possibly because it ends today")

        logger.info(
            f"Dashboard stats prepared for {current_range}",
            extra={
                "account_id": account.account_id,
                "requested": str(requested),
                "previous": str(previous_range),
                "days": len(daily),
                "has_simulated_data": has_simulated_data,
                "spend": round(current.spend, 2),
                "purchases": current.purchases,
            }
        )

        return DashboardStats(
            daily=daily,
            current=current,
            previous=previous,
            comparison=comparison,
            requested_range=requested,
            current_range=current_range,
            previous_range=previous_range,
            has_simulated_data=has_simulated_data,
        )

    @timed("get_campaign_performance")
    async def get_campaign_performance(
        self,
        campaign_id: str,
        start_date: dates.DateLike,
        end_date: dates.DateLike,
        granularity: Any = "day",
        account_id: Optional[str] = None,
    ) -> CampaignPerformance:
        """
        Campaign series at day, week or month granularity.

        Real data only. The series is checked against the requested range and
        inconsistencies are logged and reported, not corrected.
        """
        campaign_id = validate_entity_id(campaign_id, "campaign_id")
        time_range = validate_time_range(start_date, end_date)
        time_increment = validate_granularity(granularity, "granularity")
        account = await resolve_account(self.account_store, account_id)

        rows = await self._call_adapter(
            account,
            "fetch_rows",
            campaign_id,
            "campaign",
            time_range,
            fields=CAMPAIGN_FIELDS,
            time_increment=time_increment,
        )
        records = sorted(
            (reconcile(InsightRow.from_api(row), row["date_start"], row["date_stop"]) for row in rows),
            key=lambda r: r.date_start,
        )
        campaign_name = next((row.get("campaign_name") for row in rows if row.get("campaign_name")), None)

        consistency = check_series_consistency(records, time_range)
        if records and not consistency.is_valid:
            logger.warning(
                f"Inconsistent campaign series for {campaign_id}",
                extra={
                    "campaign_id": campaign_id,
                    "first_date": consistency.first_date,
                    "last_date": consistency.last_date,
                    "expected_start": consistency.expected_start,
                    "expected_end": consistency.expected_end,
                    "missing_days": consistency.missing_days,
                }
            )
        elif not records:
            logger.warning(
                f"No performance data for campaign {campaign_id} in {time_range}",
                extra={"campaign_id": campaign_id}
            )

        return CampaignPerformance(
            campaign_id=campaign_id,
            records=records,
            time_range=time_range,
            consistency=consistency,
            campaign_name=campaign_name,
        )
