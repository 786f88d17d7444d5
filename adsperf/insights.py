"""
Insights adapter: Graph API rows in, reconciled daily records out.

Builds the insights query for an entity and range, follows paging, normalizes
the dates on every row, and hands each row to the classifier. Errors from the
transport propagate unchanged as UpstreamUnavailableError subclasses; this
layer never retries and never substitutes simulated data.
"""
import json
from typing import Any, Dict, List, Optional, Sequence

from adsperf import dates
from adsperf.cache import InsightsCache
from adsperf.classifier import reconcile
from adsperf.config import config
from adsperf.exceptions import MetaDataError, ValidationError
from adsperf.meta_client import MetaGraphClient
from adsperf.models import DailyMetricRecord, InsightRow, TimeRange
from adsperf.observability import Timer, get_logger
from adsperf.validators import validate_fields

logger = get_logger(__name__)

ACCOUNT_FIELDS: Sequence[str] = (
    "impressions",
    "clicks",
    "spend",
    "conversions",
    "actions",
    "action_values",
    "purchase_roas",
    "cpc",
    "cpm",
    "ctr",
    "reach",
    "frequency",
)

CAMPAIGN_FIELDS: Sequence[str] = (
    "campaign_name",
    "impressions",
    "reach",
    "clicks",
    "spend",
    "conversions",
    "actions",
    "action_values",
    "purchase_roas",
    "cpc",
    "cpm",
    "ctr",
    "frequency",
)

ENTITY_TYPES = ("account", "campaign", "adset", "ad")

_ROW_DATE_FIELDS = ("date_start", "date_stop")


def build_insights_params(
    entity_type: str,
    time_range: TimeRange,
    fields: Sequence[str] = ACCOUNT_FIELDS,
    time_increment: int = 1,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Query parameters for the insights edge.

    Raises:
        ValidationError: Empty or malformed field list
    """
    return {
        "time_range": json.dumps(time_range.to_api()),
        "fields": ",".join(validate_fields(fields)),
        "time_increment": str(time_increment),
        "level": entity_type,
        "limit": limit or config.meta.page_limit,
    }


def normalize_row(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize the dates of one raw insights row.

    Returns None (after logging) for rows that are not objects or whose
    start date cannot be parsed. A missing stop date defaults to the start.
    """
    if not isinstance(raw, dict):
        logger.warning(
            "Skipping insights row that is not an object",
            extra={"got": type(raw).__name__}
        )
        return None

    row = dates.normalize_entity_dates(raw, _ROW_DATE_FIELDS)
    if not dates.is_valid_format(row.get("date_start")):
        logger.warning(
            "Skipping insights row with unusable date_start",
            extra={"date_start": raw.get("date_start")}
        )
        return None

    if not dates.is_valid_format(row.get("date_stop")):
        row["date_stop"] = row["date_start"]
    return row


def _extract_data(payload: Dict[str, Any]) -> List[Any]:
    if "data" not in payload or payload["data"] is None:
        return []
    data = payload["data"]
    if not isinstance(data, list):
        raise MetaDataError(
            "Insights response has an invalid data field",
            expected="list",
            got=type(data).__name__,
        )
    return data


class InsightsAdapter:
    """
    Fetches insights for one ad account's credentials.

    Usage:
        async with MetaGraphClient(access_token=token) as client:
            adapter = InsightsAdapter(client)
            records = await adapter.fetch_insights("act_123", "account", time_range)
    """

    def __init__(
        self,
        client: MetaGraphClient,
        cache: Optional[InsightsCache] = None,
        validate_samples: bool = True,
    ):
        self.client = client
        self.cache = cache
        self.validate_samples = validate_samples

    async def fetch_rows(
        self,
        entity_id: str,
        entity_type: str,
        time_range: TimeRange,
        fields: Sequence[str] = ACCOUNT_FIELDS,
        time_increment: int = 1,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Raw rows for the range with normalized dates, all pages followed.

        Rows outside the requested range are dropped.
        """
        if entity_type not in ENTITY_TYPES:
            raise ValidationError("entity_type", f"Must be one of {', '.join(ENTITY_TYPES)}", entity_type)

        params = build_insights_params(entity_type, time_range, fields, time_increment, limit)

        logger.debug(
            f"Fetching {entity_type} insights for {entity_id}",
            extra={
                "entity_id": entity_id,
                "entity_type": entity_type,
                "time_range": str(time_range),
                "time_increment": time_increment,
            }
        )

        rows: List[Dict[str, Any]] = []
        skipped = 0
        outside = 0
        with Timer(f"fetch_{entity_type}_insights", logger):
            async for payload in self.client.iter_pages(entity_id, params):
                for raw in _extract_data(payload):
                    row = normalize_row(raw)
                    if row is None:
                        skipped += 1
                        continue
                    if not time_range.contains(row["date_start"]):
                        outside += 1
                        continue
                    rows.append(row)

        if outside:
            logger.warning(
                f"Upstream returned {outside} rows outside {time_range}",
                extra={"entity_id": entity_id, "outside": outside}
            )

        logger.info(
            f"Fetched {len(rows)} insights rows for {entity_id}",
            extra={"entity_id": entity_id, "rows": len(rows), "skipped": skipped}
        )

        if self.validate_samples and rows:
            self._log_sample(rows, time_range)

        return rows

    async def fetch_insights(
        self,
        entity_id: str,
        entity_type: str,
        time_range: TimeRange,
        fields: Sequence[str] = ACCOUNT_FIELDS,
        time_increment: int = 1,
        limit: Optional[int] = None,
    ) -> List[DailyMetricRecord]:
        """
        Reconciled records for an entity and range.

        Args:
            entity_id: Graph ID (``act_<id>`` for accounts)
            entity_type: One of ENTITY_TYPES, sent as ``level``
            time_range: Inclusive range of canonical dates
            fields: Insights fields to request
            time_increment: 1 for daily rows, 7 weekly, 30 monthly
            limit: Page size (defaults to config)

        Returns:
            One record per upstream row, in upstream order

        Raises:
            UpstreamUnavailableError: On any transport or payload failure
        """
        if self.cache is None or not self.cache.enabled:
            return await self._fetch_records(entity_id, entity_type, time_range, fields, time_increment, limit)

        key = InsightsCache.build_key(
            "insights",
            entity_id,
            entity_type,
            time_range.since,
            time_range.until,
            ",".join(fields),
            time_increment,
        )
        return await self.cache.get_or_set(
            key,
            lambda: self._fetch_records(entity_id, entity_type, time_range, fields, time_increment, limit),
        )

    async def _fetch_records(
        self,
        entity_id: str,
        entity_type: str,
        time_range: TimeRange,
        fields: Sequence[str],
        time_increment: int,
        limit: Optional[int],
    ) -> List[DailyMetricRecord]:
        rows = await self.fetch_rows(entity_id, entity_type, time_range, fields, time_increment, limit)
        return [
            reconcile(InsightRow.from_api(row), row["date_start"], row["date_stop"])
            for row in rows
        ]

    def _log_sample(self, rows: List[Dict[str, Any]], time_range: TimeRange) -> None:
        sample = rows[:5]
        logger.debug(
            "Insights date sample",
            extra={
                "requested": str(time_range),
                "sample": [
                    {"date_start": row["date_start"], "date_stop": row["date_stop"]}
                    for row in sample
                ],
            }
        )
