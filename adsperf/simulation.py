"""
Placeholder metrics for days the Graph API cannot serve.

Same-day data is not final upstream, and a failed request may be allowed to
degrade to placeholders. Whether to simulate is always the caller's decision;
this module only produces plausible numbers inside fixed bands, one record per
day, each flagged ``is_simulated``.
"""
import random
from typing import List, Optional

from adsperf.config import SimulationConfig, config
from adsperf.models import DailyMetricRecord, TimeRange
from adsperf.observability import get_logger

logger = get_logger(__name__)


def simulate_day(
    day: str,
    rng: random.Random,
    bands: SimulationConfig,
) -> DailyMetricRecord:
    """One simulated day."""
    impressions = rng.randrange(*bands.impressions)
    clicks = rng.randrange(*bands.clicks)
    spend = round(rng.uniform(*bands.spend), 2)
    conversions = rng.randrange(*bands.conversions)
    purchases = rng.randint(0, conversions)
    roas = rng.uniform(*bands.roas)

    return DailyMetricRecord(
        date_start=day,
        date_stop=day,
        impressions=impressions,
        clicks=clicks,
        spend=spend,
        conversions=conversions,
        purchases=purchases,
        revenue=round(spend * roas, 2),
        is_simulated=True,
        reach=int(impressions * bands.reach_ratio),
        frequency=round(rng.uniform(*bands.frequency), 2),
    )


def generate(
    time_range: TimeRange,
    rng: Optional[random.Random] = None,
    bands: Optional[SimulationConfig] = None,
) -> List[DailyMetricRecord]:
    """
    Simulated records for every day in time_range, ascending.

    Args:
        time_range: Days to simulate
        rng: Random source (pass a seeded Random for reproducible output)
        bands: Value bands (defaults to config.simulation)
    """
    rng = rng or random.Random()
    bands = bands or config.simulation

    logger.info(
        f"Generating simulated data for {time_range}",
        extra={"days": time_range.days}
    )
    return [simulate_day(day, rng, bands) for day in time_range.iter_days()]
