"""
Pytest configuration and shared fixtures.
"""
import json
import pytest
from datetime import datetime, timezone
from random import Random
from typing import Any, Dict, List, Optional

from adsperf.accounts import AdAccount
from adsperf.exceptions import MetaConnectionError
from adsperf.models import DailyMetricRecord


class FakeGraphClient:
    """
    Stand-in for MetaGraphClient.

    Serves insights payloads keyed by ``since`` of the requested time_range,
    or raises the configured error. Records every call.
    """

    def __init__(
        self,
        pages_by_since: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        error: Optional[Exception] = None,
        access_token: str = "token",
    ):
        self.pages_by_since = pages_by_since or {}
        self.error = error
        self.access_token = access_token
        self.calls: List[Dict[str, Any]] = []
        self.entered = 0
        self.closed = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed += 1

    async def iter_pages(self, entity_id, params, max_pages=None):
        self.calls.append({"entity_id": entity_id, **params})
        if self.error is not None:
            raise self.error
        since = json.loads(params["time_range"])["since"]
        for page in self.pages_by_since.get(since, [{"data": []}]):
            yield page


def make_client_factory(client: FakeGraphClient):
    """client_factory for PerformanceService that always returns client."""
    def factory(access_token=None):
        client.access_token = access_token
        return client
    return factory


class StaticAccountStore:
    """AccountStore holding a fixed set of accounts."""

    def __init__(self, accounts: Optional[List[AdAccount]] = None, active: Optional[str] = None):
        self.accounts = {a.graph_id: a for a in (accounts or [])}
        self.active = active

    async def get_active_account(self):
        if self.active is None:
            return None
        return self.accounts.get(AdAccount(self.active).graph_id)

    async def get_account(self, account_id):
        return self.accounts.get(AdAccount(account_id).graph_id)


@pytest.fixture
def account() -> AdAccount:
    """Connected ad account with a token."""
    return AdAccount(account_id="1234567890", access_token="EAAtest", name="Main")


@pytest.fixture
def account_store(account) -> StaticAccountStore:
    return StaticAccountStore([account], active=account.account_id)


@pytest.fixture
def fixed_now() -> datetime:
    """'Now' used by service tests: 2024-03-20 15:00 UTC."""
    return datetime(2024, 3, 20, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def rng() -> Random:
    return Random(42)


@pytest.fixture
def sample_insight_row() -> Dict[str, Any]:
    """One daily row from the insights edge."""
    return {
        "date_start": "2024-03-05",
        "date_stop": "2024-03-05",
        "impressions": "1200",
        "clicks": "60",
        "spend": "100.00",
        "conversions": "4",
        "reach": "950",
        "frequency": "1.26",
        "actions": [
            {"action_type": "link_click", "value": "60"},
            {"action_type": "purchase", "value": "1"},
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "1"},
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "1"},
            {"action_type": "lead", "value": "1"},
        ],
        "action_values": [
            {"action_type": "purchase", "value": "180.00"},
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "200.00"},
        ],
    }


@pytest.fixture
def daily_rows() -> List[Dict[str, Any]]:
    """Rows for 2024-03-01..2024-03-07 with 2024-03-05 missing."""
    rows = []
    for day in (1, 2, 3, 4, 6, 7):
        rows.append({
            "date_start": f"2024-03-{day:02d}",
            "date_stop": f"2024-03-{day:02d}",
            "impressions": "1000",
            "clicks": "50",
            "spend": "20.00",
            "actions": [{"action_type": "purchase", "value": "1"}],
            "action_values": [{"action_type": "purchase", "value": "60.00"}],
        })
    return rows


@pytest.fixture
def make_record():
    """Factory for DailyMetricRecord with sensible defaults."""
    def _make(day: str, **kwargs) -> DailyMetricRecord:
        values = {
            "impressions": 1000,
            "clicks": 50,
            "spend": 20.0,
            "conversions": 2,
            "purchases": 1,
            "revenue": 60.0,
        }
        values.update(kwargs)
        return DailyMetricRecord(date_start=day, date_stop=day, **values)
    return _make


@pytest.fixture
def connection_error() -> MetaConnectionError:
    return MetaConnectionError("Request timeout after 30.0s")
