"""
Integration tests for adsperf/performance.py

Runs the whole pipeline (validation, account resolution, insights adapter,
gap filling, comparison, simulation policy) against a fake Graph client.
"""
import json
import logging
import pytest
from unittest.mock import patch

from conftest import FakeGraphClient, StaticAccountStore, make_client_factory
from adsperf.exceptions import (
    AuthMissingError,
    InvalidDateError,
    MetaAPIError,
    MetaConnectionError,
    NoActiveAccountError,
    ValidationError,
)
from adsperf.accounts import AdAccount
from adsperf.models import TimeRange
from adsperf.observability import get_log_context
from adsperf.performance import PerformanceService, split_at_today
from adsperf.resilience import RetryConfig
from adsperf.schemas import DashboardStatsResponse


def make_service(client, account_store, clock, rng, **kwargs) -> PerformanceService:
    return PerformanceService(
        account_store=account_store,
        client_factory=make_client_factory(client),
        clock=clock,
        rng=rng,
        **kwargs
    )


class TestSplitAtToday:
    """Tests for split_at_today function."""

    def test_range_ending_today(self):
        real, simulated = split_at_today(TimeRange("2024-03-14", "2024-03-20"), "2024-03-20")
        assert real == TimeRange("2024-03-14", "2024-03-19")
        assert simulated == TimeRange("2024-03-20", "2024-03-20")

    def test_today_only(self):
        real, simulated = split_at_today(TimeRange("2024-03-20", "2024-03-20"), "2024-03-20")
        assert real is None
        assert simulated == TimeRange("2024-03-20", "2024-03-20")

    def test_past_range(self):
        time_range = TimeRange("2024-03-01", "2024-03-07")
        assert split_at_today(time_range, "2024-03-20") == (time_range, None)


class TestGetAccountPerformance:
    """Tests for PerformanceService.get_account_performance."""

    @pytest.mark.asyncio
    async def test_real_data(self, daily_rows, account_store, clock, rng):
        client = FakeGraphClient({"2024-03-01": [{"data": daily_rows}]})
        service = make_service(client, account_store, clock, rng)

        records = await service.get_account_performance("2024-03-01", "2024-03-07")

        assert len(records) == 6
        assert not any(r.is_simulated for r in records)
        assert client.calls[0]["entity_id"] == "act_1234567890"
        assert client.access_token == "EAAtest"

    @pytest.mark.asyncio
    async def test_non_finite_numbers_are_not_fatal(self, account_store, clock, rng):
        """An overflowing or NaN metric is read as zero, not raised."""
        rows = [{"date_start": "2024-03-01", "impressions": "1e400", "spend": "NaN", "clicks": "5"}]
        client = FakeGraphClient({"2024-03-01": [{"data": rows}]})
        service = make_service(client, account_store, clock, rng)

        records = await service.get_account_performance("2024-03-01", "2024-03-02", allow_simulated_data=True)

        assert len(records) == 1
        assert records[0].is_simulated is False
        assert records[0].impressions == 0
        assert records[0].spend == 0.0
        assert records[0].clicks == 5

    @pytest.mark.asyncio
    async def test_adapter_logs_carry_account_id(self, daily_rows, account, account_store, clock, rng):
        """Log lines from the insights fetch are tagged with the account."""
        seen = []

        class ContextHandler(logging.Handler):
            def emit(self, record):
                seen.append((record.getMessage(), get_log_context()))

        handler = ContextHandler(level=logging.DEBUG)
        insights_logger = logging.getLogger("adsperf.insights")
        insights_logger.addHandler(handler)
        insights_logger.setLevel(logging.DEBUG)
        try:
            client = FakeGraphClient({"2024-03-01": [{"data": daily_rows}]})
            service = make_service(client, account_store, clock, rng)
            await service.get_account_performance("2024-03-01", "2024-03-07")
        finally:
            insights_logger.removeHandler(handler)
            insights_logger.setLevel(logging.NOTSET)

        fetched = [context for message, context in seen if message.startswith("Fetched")]
        assert fetched == [{"account_id": account.account_id}]
        assert get_log_context() == {}

    @pytest.mark.asyncio
    async def test_invalid_dates_rejected_before_network(self, account_store, clock, rng):
        client = FakeGraphClient()
        service = make_service(client, account_store, clock, rng)

        with pytest.raises(InvalidDateError):
            await service.get_account_performance("2024-02-30", "2024-03-07")
        with pytest.raises(InvalidDateError):
            await service.get_account_performance("2024-03-07", "2024-03-01")

        assert client.calls == []
        assert client.entered == 0

    @pytest.mark.asyncio
    async def test_accepts_timestamps(self, daily_rows, account_store, clock, rng):
        client = FakeGraphClient({"2024-03-01": [{"data": daily_rows}]})
        service = make_service(client, account_store, clock, rng)

        records = await service.get_account_performance("2024-03-01T00:00:00Z", "2024-03-07T00:00:00Z")

        assert len(records) == 6

    @pytest.mark.asyncio
    async def test_range_ending_today_is_split(self, daily_rows, account_store, clock, rng):
        """Real data up to yesterday, simulated today."""
        rows = [dict(r, date_start=f"2024-03-{14 + i}", date_stop=f"2024-03-{14 + i}") for i, r in enumerate(daily_rows)]
        client = FakeGraphClient({"2024-03-14": [{"data": rows}]})
        service = make_service(client, account_store, clock, rng)

        records = await service.get_account_performance("2024-03-14", "2024-03-20")

        assert len(client.calls) == 1
        assert json.loads(client.calls[0]["time_range"])["until"] == "2024-03-19"
        assert [r.date for r in records if r.is_simulated] == ["2024-03-20"]
        assert len(records) == 7

    @pytest.mark.asyncio
    async def test_today_only_is_simulated_without_request(self, account_store, clock, rng):
        client = FakeGraphClient()
        service = make_service(client, account_store, clock, rng)

        records = await service.get_account_performance("2024-03-20", "2024-03-20")

        assert len(records) == 1
        assert records[0].is_simulated is True
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_today_not_simulated_when_disallowed(self, account_store, clock, rng):
        client = FakeGraphClient()
        service = make_service(client, account_store, clock, rng)

        records = await service.get_account_performance("2024-03-20", "2024-03-20", allow_simulated_data=False)

        assert records == []
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_upstream_failure_falls_back_when_allowed(self, account_store, clock, rng):
        client = FakeGraphClient(error=MetaAPIError("Graph API returned 500", status_code=500))
        service = make_service(client, account_store, clock, rng)

        records = await service.get_account_performance("2024-03-01", "2024-03-07")

        assert len(records) == 7
        assert all(r.is_simulated for r in records)

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates_when_disallowed(self, account_store, clock, rng):
        client = FakeGraphClient(error=MetaAPIError("Graph API returned 500", status_code=500))
        service = make_service(client, account_store, clock, rng)

        with pytest.raises(MetaAPIError):
            await service.get_account_performance("2024-03-01", "2024-03-07", allow_simulated_data=False)

    @pytest.mark.asyncio
    async def test_no_account_is_fatal(self, clock, rng):
        client = FakeGraphClient()
        service = make_service(client, StaticAccountStore(), clock, rng)
        with patch("adsperf.accounts.config") as mock_config:
            mock_config.meta.ad_account_id = ""
            mock_config.meta.access_token = ""
            with pytest.raises(NoActiveAccountError):
                await service.get_account_performance("2024-03-01", "2024-03-07")

    @pytest.mark.asyncio
    async def test_missing_token_never_simulated(self, clock, rng):
        """Credential errors are not upstream errors, so no fallback."""
        store = StaticAccountStore([AdAccount("123", access_token="")], active="123")
        service = make_service(FakeGraphClient(), store, clock, rng)

        with pytest.raises(AuthMissingError):
            await service.get_account_performance("2024-03-01", "2024-03-07", allow_simulated_data=True)

    @pytest.mark.asyncio
    async def test_retry_policy_applied(self, daily_rows, account_store, clock, rng):
        """Connection errors are retried when the caller configures attempts."""
        client = FakeGraphClient({"2024-03-01": [{"data": daily_rows}]})
        failures = [MetaConnectionError("Request timeout after 30.0s")]
        original = client.iter_pages

        def flaky_iter_pages(entity_id, params, max_pages=None):
            if failures:
                client.error = failures.pop()
            else:
                client.error = None
            return original(entity_id, params, max_pages)

        client.iter_pages = flaky_iter_pages
        service = make_service(
            client, account_store, clock, rng,
            retry_config=RetryConfig(max_attempts=2, base_delay=0.01, max_delay=0.01),
        )

        records = await service.get_account_performance("2024-03-01", "2024-03-07", allow_simulated_data=False)

        assert len(records) == 6
        assert len(client.calls) == 2


class TestGetDashboardStats:
    """Tests for PerformanceService.get_dashboard_stats."""

    @pytest.mark.asyncio
    async def test_dense_series_and_comparison(self, daily_rows, account_store, clock, rng):
        previous_rows = [
            dict(r, date_start=f"2024-02-{23 + i}", date_stop=f"2024-02-{23 + i}", spend="10.00")
            for i, r in enumerate(daily_rows[:5])
        ]
        client = FakeGraphClient({
            "2024-03-01": [{"data": daily_rows}],
            "2024-02-23": [{"data": previous_rows}],
        })
        service = make_service(client, account_store, clock, rng)

        stats = await service.get_dashboard_stats("2024-03-01", "2024-03-07")

        assert len(stats.daily) == 7
        assert stats.daily[4].date == "2024-03-05"
        assert stats.daily[4].is_simulated is False
        assert stats.daily[4].impressions == 0
        assert stats.previous_range == TimeRange("2024-02-23", "2024-02-29")
        assert stats.current.spend == pytest.approx(120.0)
        assert stats.previous.spend == pytest.approx(50.0)
        assert stats.comparison.spend_change == pytest.approx(140.0)
        assert stats.current.data_points_count == 6
        assert stats.has_simulated_data is False
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_future_dates_clamped(self, account_store, clock, rng):
        client = FakeGraphClient()
        service = make_service(client, account_store, clock, rng)

        stats = await service.get_dashboard_stats("2024-03-14", "2024-03-31")

        assert stats.requested_range == TimeRange("2024-03-14", "2024-03-31")
        assert stats.current_range == TimeRange("2024-03-14", "2024-03-20")
        assert stats.previous_range == TimeRange("2024-03-07", "2024-03-13")
        assert len(stats.daily) == 7

    @pytest.mark.asyncio
    async def test_no_simulation_by_default(self, account_store, clock, rng):
        """Dashboard never shows placeholders unless asked to."""
        client = FakeGraphClient()
        service = make_service(client, account_store, clock, rng)

        stats = await service.get_dashboard_stats("2024-03-14", "2024-03-20")

        assert stats.has_simulated_data is False
        assert stats.daily[-1].is_simulated is False

    @pytest.mark.asyncio
    async def test_any_failure_fails_request(self, account_store, clock, rng):
        client = FakeGraphClient(error=MetaConnectionError("Request timeout after 30.0s"))
        service = make_service(client, account_store, clock, rng)

        with pytest.raises(MetaConnectionError):
            await service.get_dashboard_stats("2024-03-01", "2024-03-07")

    @pytest.mark.asyncio
    async def test_simulated_flag_when_allowed(self, account_store, clock, rng):
        client = FakeGraphClient(error=MetaConnectionError("Request timeout after 30.0s"))
        service = make_service(client, account_store, clock, rng)

        stats = await service.get_dashboard_stats("2024-03-01", "2024-03-07", allow_simulated_data=True)

        assert stats.has_simulated_data is True
        assert all(r.is_simulated for r in stats.daily)

    @pytest.mark.asyncio
    async def test_to_response(self, daily_rows, account_store, clock, rng):
        client = FakeGraphClient({"2024-03-01": [{"data": daily_rows}]})
        service = make_service(client, account_store, clock, rng)

        stats = await service.get_dashboard_stats("2024-03-01", "2024-03-07")
        response = stats.to_response()

        assert isinstance(response, DashboardStatsResponse)
        data = response.model_dump()
        assert len(data["dailyData"]) == 7
        assert data["currentPeriod"] == {"startDate": "2024-03-01", "endDate": "2024-03-07"}
        assert data["previousPeriod"] == {"startDate": "2024-02-23", "endDate": "2024-02-29"}
        assert data["current"]["roas"] == pytest.approx(3.0)
        # previous period is empty, so every change is 0
        assert data["changes"]["roas"] == 0.0


class TestGetCampaignPerformance:
    """Tests for PerformanceService.get_campaign_performance."""

    @pytest.mark.asyncio
    async def test_series_sorted_with_consistency(self, daily_rows, account_store, clock, rng):
        rows = [dict(r, campaign_name="Spring Sale") for r in reversed(daily_rows)]
        client = FakeGraphClient({"2024-03-01": [{"data": rows}]})
        service = make_service(client, account_store, clock, rng)

        result = await service.get_campaign_performance("120200000000001", "2024-03-01", "2024-03-07")

        assert [r.date for r in result.records] == sorted(r.date for r in result.records)
        assert result.campaign_name == "Spring Sale"
        assert result.consistency.has_gaps is True
        assert result.consistency.missing_days == 1
        assert client.calls[0]["entity_id"] == "120200000000001"
        assert client.calls[0]["level"] == "campaign"

    @pytest.mark.asyncio
    async def test_granularity_sets_increment(self, account_store, clock, rng):
        client = FakeGraphClient()
        service = make_service(client, account_store, clock, rng)

        result = await service.get_campaign_performance("120200000000001", "2024-03-01", "2024-03-31", granularity="week")

        assert client.calls[0]["time_increment"] == "7"
        assert result.records == []
        assert result.to_response().isConsistent is False

    @pytest.mark.asyncio
    async def test_invalid_campaign_id(self, account_store, clock, rng):
        client = FakeGraphClient()
        service = make_service(client, account_store, clock, rng)

        with pytest.raises(ValidationError) as exc_info:
            await service.get_campaign_performance("abc", "2024-03-01", "2024-03-07")

        assert exc_info.value.field == "campaign_id"
        assert client.calls == []
