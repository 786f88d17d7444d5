"""
Meta Ads performance core.

Fetches Graph API insights for an ad account or campaign and turns them into
chart-ready daily series and period comparisons:
- dates: Date normalization in the reference timezone
- classifier: Purchase/revenue reconciliation
- aggregator: Gap filling and period totals
- comparator: Previous period and percent changes
- simulation: Placeholder data, used only when the caller allows it
- performance: Service entry points
"""

# Import in dependency order
from adsperf.exceptions import (
    MetaAdsError,
    AuthMissingError,
    NoActiveAccountError,
    UpstreamUnavailableError,
    MetaConnectionError,
    MetaAPIError,
    MetaDataError,
    ValidationError,
    InvalidDateError,
)

from adsperf.config import config

from adsperf.models import (
    TimeRange,
    DailyMetricRecord,
    PeriodAggregate,
    ComparisonResult,
)

from adsperf.accounts import AdAccount, EnvAccountStore, resolve_account

from adsperf.performance import (
    PerformanceService,
    DashboardStats,
    CampaignPerformance,
)

__all__ = [
    # Exceptions
    "MetaAdsError",
    "AuthMissingError",
    "NoActiveAccountError",
    "UpstreamUnavailableError",
    "MetaConnectionError",
    "MetaAPIError",
    "MetaDataError",
    "ValidationError",
    "InvalidDateError",
    # Config
    "config",
    # Models
    "TimeRange",
    "DailyMetricRecord",
    "PeriodAggregate",
    "ComparisonResult",
    # Accounts
    "AdAccount",
    "EnvAccountStore",
    "resolve_account",
    # Service
    "PerformanceService",
    "DashboardStats",
    "CampaignPerformance",
]
