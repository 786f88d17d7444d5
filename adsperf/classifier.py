"""
Purchase and conversion reconciliation for insight rows.

The Graph API reports one purchase several times over, once per attribution
path (pixel, on-site, omnichannel, ...). Those types are never summed: the
first type in PURCHASE_ACTION_TYPES that has any events is taken as the day's
purchase count, and the same priority picks the revenue figure. Lead and cart
events are distinct funnel steps and are added to conversions as they are.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Tuple

from adsperf.models import DailyMetricRecord, InsightRow, RawActionEvent
from adsperf.observability import get_logger

logger = get_logger(__name__)


# Most authoritative first
PURCHASE_ACTION_TYPES: Tuple[str, ...] = (
    "offsite_conversion.fb_pixel_purchase",
    "purchase",
    "onsite_web_purchase",
    "web_in_store_purchase",
    "onsite_web_app_purchase",
    "omni_purchase",
)

LEAD_ACTION_TYPES: Tuple[str, ...] = (
    "lead",
    "complete_registration",
    "contact",
    "submit_application",
    "subscribe",
    "messaging_conversation_started_7d",
)

CART_ACTION_TYPES: Tuple[str, ...] = (
    "add_to_cart",
    "add_to_wishlist",
    "initiate_checkout",
)

FUNNEL_ACTION_TYPES: Tuple[str, ...] = LEAD_ACTION_TYPES + CART_ACTION_TYPES


@dataclass(frozen=True)
class ActionTally:
    """Occurrence counts and value sums per action type."""
    counts: Dict[str, int] = field(default_factory=dict)
    values: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one day's events."""
    purchases: int = 0
    revenue: float = 0.0
    funnel_conversions: int = 0
    purchase_type: Optional[str] = None
    revenue_type: Optional[str] = None


def tally(events: Iterable[RawActionEvent]) -> ActionTally:
    """Group events by type: +1 per occurrence, and the sum of their values."""
    counts: Dict[str, int] = defaultdict(int)
    values: Dict[str, float] = defaultdict(float)
    for event in events:
        counts[event.action_type] += 1
        values[event.action_type] += event.value
    return ActionTally(counts=dict(counts), values=dict(values))


def first_by_priority(
    amounts: Dict[str, float],
    priority: Sequence[str] = PURCHASE_ACTION_TYPES,
) -> Tuple[Optional[str], float]:
    """Return (type, amount) for the first type in priority order with a non-zero amount."""
    for action_type in priority:
        amount = amounts.get(action_type, 0)
        if amount:
            return action_type, amount
    return None, 0


def count_funnel_conversions(counts: Dict[str, int]) -> int:
    """Sum lead and cart event counts; each is a separate funnel step."""
    return sum(counts.get(action_type, 0) for action_type in FUNNEL_ACTION_TYPES)


def classify(events: Iterable[RawActionEvent]) -> Classification:
    """
    Classify one day's events into purchases, revenue and funnel conversions.

    Pure: the same events always produce the same Classification.
    """
    grouped = tally(events)
    purchase_type, purchases = first_by_priority(grouped.counts)
    revenue_type, revenue = first_by_priority(grouped.values)

    return Classification(
        purchases=int(purchases),
        revenue=float(revenue),
        funnel_conversions=count_funnel_conversions(grouped.counts),
        purchase_type=purchase_type,
        revenue_type=revenue_type,
    )


def resolve_roas(row: InsightRow) -> Optional[float]:
    """
    Return the row's direct return-on-spend ratio, if it carries one.

    The list form (one entry per purchase type) is read with the same
    priority as purchases; an unknown type falls back to the first entry.
    """
    if not row.has_roas:
        return None
    if row.purchase_roas is not None:
        return row.purchase_roas

    by_type = {event.action_type: event.value for event in row.purchase_roas_by_type}
    for action_type in PURCHASE_ACTION_TYPES:
        if action_type in by_type:
            return by_type[action_type]
    return row.purchase_roas_by_type[0].value


def _log_malformed(row: InsightRow, day: str) -> None:
    for name in row.malformed:
        logger.warning(
            f"Unexpected shape for {name} on {day}, ignoring affected events",
            extra={"field": name, "date": day}
        )


def reconcile(
    row: InsightRow,
    date_start: str,
    date_stop: Optional[str] = None,
) -> DailyMetricRecord:
    """
    Build a DailyMetricRecord from an upstream row.

    Args:
        row: Parsed upstream row
        date_start: Canonical start date for the record
        date_stop: Canonical stop date (defaults to date_start)

    Returns:
        New record with purchases, revenue and conversions reconciled
    """
    date_stop = date_stop or date_start
    _log_malformed(row, date_start)

    actions = classify(row.actions or [])
    conversions = row.conversions + actions.funnel_conversions

    roas = resolve_roas(row)
    if roas is not None:
        revenue = row.spend * roas
        revenue_source = "purchase_roas"
    else:
        values = classify(row.action_values or [])
        revenue = values.revenue
        revenue_source = values.revenue_type

    purchases = actions.purchases
    # purchases are a subset of conversions even if upstream under-reports them
    conversions = max(conversions, purchases)

    logger.debug(
        f"Reconciled insights for {date_start}",
        extra={
            "date": date_start,
            "purchases": purchases,
            "purchase_type": actions.purchase_type,
            "conversions": conversions,
            "revenue": round(revenue, 2),
            "revenue_source": revenue_source,
        }
    )

    return DailyMetricRecord(
        date_start=date_start,
        date_stop=date_stop,
        impressions=row.impressions,
        clicks=row.clicks,
        spend=row.spend,
        conversions=conversions,
        purchases=purchases,
        revenue=revenue,
        reach=row.reach,
        frequency=row.frequency,
    )

