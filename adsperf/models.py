"""
Domain models for Meta Ads insights data.

Provides type-safe dataclasses for time ranges, upstream insight rows,
reconciled daily records, and period aggregates. Upstream payloads are read
through ``from_api`` constructors that check for every field explicitly; the
Graph API omits fields freely, so nothing here assumes presence.
"""
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from adsperf import dates
from adsperf.exceptions import InvalidDateError


# ═══════════════════════════════════════════════════════════════════════════════
# PARSING HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def to_float(value: Any, default: float = 0.0) -> float:
    """
    Parse a numeric upstream value; the Graph API sends numbers as strings.

    Non-finite values ("NaN", "inf", "1e400") are treated as unusable.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return number


def to_int(value: Any, default: int = 0) -> int:
    """Parse an integer upstream value, accepting "12" and "12.0"."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        number = to_float(value, default=None)
        return default if number is None else int(number)


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return numerator / denominator


class MetricRatesMixin:
    """
    Derived rates for anything carrying the six base metrics.

    Rates are always derived from the totals on the object itself, never
    averaged from finer-grained rates.
    """

    @property
    def ctr(self) -> float:
        """Click-through rate, percent."""
        return safe_divide(self.clicks, self.impressions) * 100

    @property
    def cpc(self) -> float:
        """Cost per click."""
        return safe_divide(self.spend, self.clicks)

    @property
    def cpm(self) -> float:
        """Cost per thousand impressions."""
        return safe_divide(self.spend, self.impressions) * 1000

    @property
    def conversion_rate(self) -> float:
        """Conversions per click, percent."""
        return safe_divide(self.conversions, self.clicks) * 100

    @property
    def cost_per_conversion(self) -> float:
        return safe_divide(self.spend, self.conversions)

    @property
    def roas(self) -> float:
        """Return on ad spend as a ratio (revenue / spend)."""
        return safe_divide(self.revenue, self.spend)

    def rates(self) -> Dict[str, float]:
        return {
            "ctr": self.ctr,
            "cpc": self.cpc,
            "cpm": self.cpm,
            "conversion_rate": self.conversion_rate,
            "cost_per_conversion": self.cost_per_conversion,
            "roas": self.roas,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# TIME RANGE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TimeRange:
    """Inclusive (since, until) pair of canonical dates."""
    since: str
    until: str

    def __post_init__(self):
        if not dates.is_valid_format(self.since):
            raise InvalidDateError("Invalid date format. Expected YYYY-MM-DD", self.since, field="since")
        if not dates.is_valid_format(self.until):
            raise InvalidDateError("Invalid date format. Expected YYYY-MM-DD", self.until, field="until")
        if self.since > self.until:
            raise InvalidDateError(
                "Start date must be before or equal to end date",
                f"{self.since} to {self.until}",
                field="time_range",
            )

    @classmethod
    def from_dates(cls, start: dates.DateLike, end: dates.DateLike) -> "TimeRange":
        """Build a range from any date representations."""
        return cls(dates.normalize(start), dates.normalize(end))

    @classmethod
    def single_day(cls, day: dates.DateLike) -> "TimeRange":
        day = dates.normalize(day)
        return cls(day, day)

    @property
    def days(self) -> int:
        """Number of calendar days covered, both ends included."""
        return dates.days_between(self.since, self.until) + 1

    def iter_days(self) -> Iterator[str]:
        return dates.iter_days(self.since, self.until)

    def contains(self, day: str) -> bool:
        return self.since <= day <= self.until

    def to_api(self) -> Dict[str, str]:
        """``time_range`` object for the insights endpoint."""
        return {"since": self.since, "until": self.until}

    def __str__(self) -> str:
        return f"{self.since}..{self.until}"


# ═══════════════════════════════════════════════════════════════════════════════
# UPSTREAM PAYLOAD
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RawActionEvent:
    """One entry of an ``actions`` / ``action_values`` list."""
    action_type: str
    value: float = 0.0

    @classmethod
    def from_api(cls, data: Any) -> Optional["RawActionEvent"]:
        """Create from a Graph API action entry; None if the entry is unusable."""
        if not isinstance(data, dict):
            return None
        action_type = data.get("action_type")
        if not isinstance(action_type, str) or not action_type:
            return None
        return cls(action_type=action_type, value=to_float(data.get("value")))


def _parse_events(raw: Any, name: str, malformed: List[str]) -> Optional[List[RawActionEvent]]:
    if raw is None:
        return None
    if not isinstance(raw, list):
        malformed.append(name)
        return None

    events = []
    for entry in raw:
        event = RawActionEvent.from_api(entry)
        if event is None:
            if name not in malformed:
                malformed.append(name)
            continue
        events.append(event)
    return events


def _parse_conversions(raw: Any, malformed: List[str]) -> int:
    # Newer API versions return conversions as a list of action stats
    if isinstance(raw, list):
        events = _parse_events(raw, "conversions", malformed) or []
        return sum(to_int(event.value) for event in events)
    return to_int(raw)


@dataclass
class InsightRow:
    """One element of an insights response ``data`` list."""
    date_start: Optional[str] = None
    date_stop: Optional[str] = None
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    conversions: int = 0
    reach: Optional[int] = None
    frequency: Optional[float] = None
    actions: Optional[List[RawActionEvent]] = None
    action_values: Optional[List[RawActionEvent]] = None
    purchase_roas: Optional[float] = None
    purchase_roas_by_type: Optional[List[RawActionEvent]] = None
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    malformed: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "InsightRow":
        """Create InsightRow from a Graph API insights element."""
        malformed: List[str] = []

        purchase_roas = None
        purchase_roas_by_type = None
        raw_roas = data.get("purchase_roas")
        if isinstance(raw_roas, list):
            purchase_roas_by_type = _parse_events(raw_roas, "purchase_roas", malformed)
        elif raw_roas not in (None, ""):
            purchase_roas = to_float(raw_roas, default=None)
            if purchase_roas is None:
                malformed.append("purchase_roas")

        reach = data.get("reach")
        frequency = data.get("frequency")

        return cls(
            date_start=data.get("date_start"),
            date_stop=data.get("date_stop"),
            impressions=to_int(data.get("impressions")),
            clicks=to_int(data.get("clicks")),
            spend=to_float(data.get("spend")),
            conversions=_parse_conversions(data.get("conversions"), malformed),
            reach=to_int(reach) if reach not in (None, "") else None,
            frequency=to_float(frequency) if frequency not in (None, "") else None,
            actions=_parse_events(data.get("actions"), "actions", malformed),
            action_values=_parse_events(data.get("action_values"), "action_values", malformed),
            purchase_roas=purchase_roas,
            purchase_roas_by_type=purchase_roas_by_type,
            campaign_id=data.get("campaign_id"),
            campaign_name=data.get("campaign_name"),
            malformed=malformed,
        )

    @property
    def has_roas(self) -> bool:
        """True when the row carries a direct return-on-spend figure."""
        return self.purchase_roas is not None or bool(self.purchase_roas_by_type)


# ═══════════════════════════════════════════════════════════════════════════════
# RECONCILED RECORDS AND AGGREGATES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DailyMetricRecord(MetricRatesMixin):
    """Performance of one account or campaign for one calendar day."""
    date_start: str
    date_stop: str
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    conversions: int = 0
    purchases: int = 0
    revenue: float = 0.0
    is_simulated: bool = False
    reach: Optional[int] = None
    frequency: Optional[float] = None

    @classmethod
    def zero(cls, day: str) -> "DailyMetricRecord":
        """A day with no activity (not a simulated day)."""
        return cls(date_start=day, date_stop=day)

    @property
    def date(self) -> str:
        return self.date_start

    @property
    def has_activity(self) -> bool:
        """True if any base metric is non-zero."""
        return any((
            self.impressions,
            self.clicks,
            self.spend,
            self.conversions,
            self.purchases,
            self.revenue,
        ))

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict with base metrics and derived rates, for charts and reports."""
        return {**asdict(self), **self.rates()}


@dataclass(frozen=True)
class PeriodAggregate(MetricRatesMixin):
    """Totals over a time range."""
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    conversions: int = 0
    purchases: int = 0
    revenue: float = 0.0
    data_points_count: int = 0

    @property
    def is_empty(self) -> bool:
        """True when no day in the period had any activity."""
        return self.data_points_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), **self.rates()}


@dataclass(frozen=True)
class ComparisonResult:
    """Current vs previous period with percent changes per metric."""
    current: PeriodAggregate
    previous: PeriodAggregate
    current_range: Optional[TimeRange] = None
    previous_range: Optional[TimeRange] = None
    changes: Dict[str, float] = field(default_factory=dict)

    def change(self, metric: str) -> float:
        """Percent change for a metric; 0.0 for metrics not compared."""
        return self.changes.get(metric, 0.0)

    @property
    def impressions_change(self) -> float:
        return self.change("impressions")

    @property
    def clicks_change(self) -> float:
        return self.change("clicks")

    @property
    def spend_change(self) -> float:
        return self.change("spend")

    @property
    def conversions_change(self) -> float:
        return self.change("conversions")

    @property
    def purchases_change(self) -> float:
        return self.change("purchases")

    @property
    def revenue_change(self) -> float:
        return self.change("revenue")

    @property
    def ctr_change(self) -> float:
        return self.change("ctr")

    @property
    def roas_change(self) -> float:
        return self.change("roas")
