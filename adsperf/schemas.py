"""
Pydantic response models for dashboard and campaign endpoints.

Field names are camelCase, matching what the dashboard frontend reads.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from adsperf.models import ComparisonResult, DailyMetricRecord, PeriodAggregate, TimeRange


# ═══════════════════════════════════════════════════════════════════════════════
# DAILY SERIES
# ═══════════════════════════════════════════════════════════════════════════════

class DailyMetricResponse(BaseModel):
    """One point of a daily chart."""
    date: str = Field(description="Day (YYYY-MM-DD)")
    impressions: int
    clicks: int
    spend: float
    conversions: int
    purchases: int
    revenue: float
    ctr: float = Field(description="Click-through rate, percent")
    cpc: float
    cpm: float
    conversionRate: float = Field(description="Conversions per click, percent")
    costPerConversion: float
    roas: float = Field(description="Revenue / spend ratio")
    isSimulated: bool = Field(False, description="Placeholder values, not real data")

    @classmethod
    def from_record(cls, record: DailyMetricRecord) -> "DailyMetricResponse":
        return cls(
            date=record.date,
            impressions=record.impressions,
            clicks=record.clicks,
            spend=round(record.spend, 2),
            conversions=record.conversions,
            purchases=record.purchases,
            revenue=round(record.revenue, 2),
            ctr=round(record.ctr, 2),
            cpc=round(record.cpc, 2),
            cpm=round(record.cpm, 2),
            conversionRate=round(record.conversion_rate, 2),
            costPerConversion=round(record.cost_per_conversion, 2),
            roas=round(record.roas, 2),
            isSimulated=record.is_simulated,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# PERIOD TOTALS AND COMPARISON
# ═══════════════════════════════════════════════════════════════════════════════

class PeriodMetricsResponse(BaseModel):
    """Totals and derived rates for a period."""
    impressions: int
    clicks: int
    spend: float
    conversions: int
    purchases: int
    revenue: float
    ctr: float
    costPerClick: float
    cpm: float
    conversionRate: float
    costPerConversion: float
    roas: float
    dataPointsCount: int = Field(description="Days with any activity")

    @classmethod
    def from_aggregate(cls, aggregate: PeriodAggregate) -> "PeriodMetricsResponse":
        return cls(
            impressions=aggregate.impressions,
            clicks=aggregate.clicks,
            spend=round(aggregate.spend, 2),
            conversions=aggregate.conversions,
            purchases=aggregate.purchases,
            revenue=round(aggregate.revenue, 2),
            ctr=round(aggregate.ctr, 2),
            costPerClick=round(aggregate.cpc, 2),
            cpm=round(aggregate.cpm, 2),
            conversionRate=round(aggregate.conversion_rate, 2),
            costPerConversion=round(aggregate.cost_per_conversion, 2),
            roas=round(aggregate.roas, 2),
            dataPointsCount=aggregate.data_points_count,
        )


class PeriodRangeResponse(BaseModel):
    """Inclusive date range."""
    startDate: str = Field(description="Period start date (YYYY-MM-DD)")
    endDate: str = Field(description="Period end date (YYYY-MM-DD)")

    @classmethod
    def from_range(cls, time_range: TimeRange) -> "PeriodRangeResponse":
        return cls(startDate=time_range.since, endDate=time_range.until)


class ComparisonResponse(BaseModel):
    """Percent change from the previous period (0 when the previous value is 0)."""
    impressions: float
    clicks: float
    spend: float
    conversions: float
    purchases: float
    revenue: float
    ctr: float
    cpc: float
    cpm: float
    conversionRate: float
    costPerConversion: float
    roas: float

    @classmethod
    def from_result(cls, result: ComparisonResult) -> "ComparisonResponse":
        return cls(
            impressions=round(result.change("impressions"), 2),
            clicks=round(result.change("clicks"), 2),
            spend=round(result.change("spend"), 2),
            conversions=round(result.change("conversions"), 2),
            purchases=round(result.change("purchases"), 2),
            revenue=round(result.change("revenue"), 2),
            ctr=round(result.change("ctr"), 2),
            cpc=round(result.change("cpc"), 2),
            cpm=round(result.change("cpm"), 2),
            conversionRate=round(result.change("conversion_rate"), 2),
            costPerConversion=round(result.change("cost_per_conversion"), 2),
            roas=round(result.change("roas"), 2),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════════

class DashboardStatsResponse(BaseModel):
    """Dashboard statistics with comparison against the previous period."""
    current: PeriodMetricsResponse
    previous: PeriodMetricsResponse
    changes: ComparisonResponse
    dailyData: List[DailyMetricResponse] = Field(description="One point per day, ascending")
    hasSimulatedData: bool = False
    requestedPeriod: PeriodRangeResponse
    currentPeriod: PeriodRangeResponse
    previousPeriod: PeriodRangeResponse


class CampaignPerformanceResponse(BaseModel):
    """Campaign time series."""
    campaignId: str
    campaignName: Optional[str] = None
    data: List[DailyMetricResponse]
    timeRange: PeriodRangeResponse
    isConsistent: bool = Field(True, description="Series covers the range without gaps")
